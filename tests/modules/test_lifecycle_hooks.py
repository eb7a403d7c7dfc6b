"""
Tests for the save/delete hooks and service composition.

Validates:
- Titles mirror their source field on every save
- Hooks never loop on their own writes
- AUTOSAVE and REVISION writes trigger no hook
- Unsubscribing removes the behaviour
- build_services honours the configured cache backend
"""

from __future__ import annotations

from datetime import date

import pytest

from backoffice_config.schema import BackofficeSettings, CacheSettings
from backoffice_kernel.cache import MemoryCacheBackend, SqlCacheBackend
from backoffice_kernel.domain.values import EntityType
from backoffice_kernel.store import (
    MutationDispatcher,
    SqlObjectStore,
    WriteOrigin,
    WriteScope,
)
from backoffice_modules import build_services, register_lifecycle_hooks, sync_title
from backoffice_modules._lifecycle import TITLE_GUARD, build_cache_backend
from backoffice_modules.billing import LineItemService
from backoffice_modules.projects import ReferenceNumberService


def _autosave() -> WriteScope:
    return WriteScope(origin=WriteOrigin.AUTOSAVE)


class TestTitleSync:
    @pytest.mark.parametrize(
        "entity_type, source, value",
        [
            (EntityType.PROJECT, "project_name", "Website"),
            (EntityType.MILESTONE, "milestone_name", "Design"),
            (EntityType.INVOICE, "invoice_number", "INV-0100"),
        ],
    )
    def test_title_mirrors_source(self, store, entity_type, source, value):
        entity_id = store.create(entity_type, {source: value})
        assert store.get(entity_type, entity_id).get("title") == value

    def test_title_follows_rename(self, factory, store):
        project_id = factory.project(name="Website")
        store.set_field(EntityType.PROJECT, project_id, "project_name", "Website v2")
        assert store.get(EntityType.PROJECT, project_id).get("title") == "Website v2"

    def test_empty_source_keeps_title(self, store):
        project_id = store.create(EntityType.PROJECT, {"title": "Draft title", "project_name": ""})
        assert store.get(EntityType.PROJECT, project_id).get("title") == "Draft title"

    def test_report_title_is_its_number(self, factory, store):
        report_id = factory.project_report(report_date=date(2025, 3, 4))
        assert store.get(EntityType.PROJECT_REPORT, report_id).get("title") == "RR-2503-001"

    def test_guarded_scope_does_nothing(self, store):
        project_id = store.create(EntityType.PROJECT, {"project_name": "Website"})
        store.set_field(EntityType.PROJECT, project_id, "title", "Stale", scope=_autosave())
        scope = WriteScope()

        with scope.guard(TITLE_GUARD):
            assert sync_title(store, EntityType.PROJECT, project_id, scope=scope) is None
        assert sync_title(store, EntityType.PROJECT, project_id, scope=scope) == "Website"

    def test_synced_once_per_save(self, store, captured_logs):
        store.create(EntityType.MILESTONE, {"milestone_name": "Design"})
        synced = [r for r in captured_logs() if r["message"] == "title_synced"]
        assert len(synced) == 1


class TestBookkeepingWrites:
    @pytest.mark.parametrize("origin", [WriteOrigin.AUTOSAVE, WriteOrigin.REVISION])
    def test_no_reference_or_title(self, store, origin):
        project_id = store.create(
            EntityType.PROJECT, {"project_name": "Website"}, scope=WriteScope(origin=origin)
        )
        doc = store.get(EntityType.PROJECT, project_id)
        assert doc.get("reference_number") is None
        assert doc.get("title") is None

    def test_next_user_save_catches_up(self, store):
        project_id = store.create(EntityType.PROJECT, {"project_name": "Website"}, scope=_autosave())
        store.set_field(EntityType.PROJECT, project_id, "status", "Active")

        doc = store.get(EntityType.PROJECT, project_id)
        assert doc.get("reference_number") == "PR-0001"
        assert doc.get("title") == "Website"


class TestRegistration:
    @pytest.fixture
    def wiring(self, session, deterministic_clock):
        dispatcher = MutationDispatcher()
        store = SqlObjectStore(session, clock=deterministic_clock, dispatcher=dispatcher)
        references = ReferenceNumberService(store, session, deterministic_clock)
        unsubscribes = register_lifecycle_hooks(
            dispatcher, store, references, LineItemService(store)
        )
        return dispatcher, store, unsubscribes

    def test_registers_every_hook(self, wiring):
        dispatcher, _, unsubscribes = wiring
        assert len(unsubscribes) == 5
        assert dispatcher.listener_count == 5

    def test_unsubscribe_removes_behaviour(self, wiring):
        dispatcher, store, unsubscribes = wiring
        for unsubscribe in unsubscribes:
            unsubscribe()

        project_id = store.create(EntityType.PROJECT, {"project_name": "Website"})

        assert dispatcher.listener_count == 0
        assert store.get(EntityType.PROJECT, project_id).get("reference_number") is None

    def test_hook_failure_propagates_to_writer(self, wiring):
        dispatcher, store, _ = wiring

        def failing(event, scope):
            raise RuntimeError("hook failed")

        dispatcher.subscribe(failing, entity_types=(EntityType.PROJECT,))
        with pytest.raises(RuntimeError):
            store.create(EntityType.PROJECT, {"project_name": "Website"})


class TestComposition:
    def test_cache_backend_from_settings(self, session):
        sql = BackofficeSettings(cache=CacheSettings(backend="sql"))
        assert isinstance(build_cache_backend(sql, session), SqlCacheBackend)
        assert isinstance(build_cache_backend(BackofficeSettings(), session), MemoryCacheBackend)

    def test_shared_memory_backend(self, session, settings, deterministic_clock):
        backend = MemoryCacheBackend()
        first = build_services(session, settings, deterministic_clock, cache_backend=backend)
        second = build_services(session, settings, deterministic_clock, cache_backend=backend)

        first.cache.set("open_srs_org_1", [1])

        assert second.cache.get("open_srs_org_1") == [1]

    def test_composed_store_evicts_on_write(self, services, factory):
        project_id = factory.project()
        services.cache.set(f"project_total_{project_id}", 1)

        services.store.set_field(EntityType.PROJECT, project_id, "project_name", "Renamed")

        assert not services.cache.has(f"project_total_{project_id}")
