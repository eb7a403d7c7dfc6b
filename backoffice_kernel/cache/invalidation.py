"""
CacheInvalidationRouter -- evicts cached aggregates when entities change.

Responsibility:
    Maps each mutated entity type to the cache namespaces derived from it
    and flushes those prefixes.  Subscribed to the store's
    ``MutationDispatcher``.

Architecture position:
    Kernel > Cache.  Depends on the store protocol types and the ``Cache``
    facade only.

Invariants enforced:
    - The dependency table is validated against ``CacheKeys`` when the
      router is built: every type a key depends on must evict the key's
      prefix.
    - AUTOSAVE and REVISION writes never evict.
    - Deletes evict on DELETING (the type is still known and dependents may
      still be read) and again on DELETED, so a value recomputed by a
      delete hook in between is not left behind.

Failure modes:
    - InvalidationTableError at construction when the table is inconsistent.
    - Never raises from ``handle``; backend failures are absorbed by the
      cache facade.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType

from backoffice_kernel.cache.cache import Cache
from backoffice_kernel.cache.keys import CacheKeys, CacheNamespace, KeySpec
from backoffice_kernel.domain.values import EntityType
from backoffice_kernel.exceptions import InvalidationTableError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.store.dispatcher import MutationDispatcher
from backoffice_kernel.store.protocol import MutationEvent, WriteScope

logger = get_logger("kernel.cache.invalidation")

N = CacheNamespace

INVALIDATION_TABLE: Mapping[EntityType, tuple[CacheNamespace, ...]] = MappingProxyType(
    {
        EntityType.SERVICE_REQUEST: (
            N.OPEN_SRS,
            N.SR,
            N.WORKBENCH_OPEN_SRS,
            N.REQUESTS_SUMMARY,
        ),
        EntityType.PROJECT: (
            N.ACTIVE_PROJECTS,
            N.PROJECT,
            N.WORKBENCH_ACTIVE_PROJECTS,
        ),
        EntityType.INVOICE: (
            N.PENDING_INVOICES,
            N.INVOICE,
            N.WORKBENCH_PENDING_INVOICES,
        ),
        EntityType.MILESTONE: (
            N.ACTIVE_PROJECTS,
            N.MILESTONE,
            N.PROJECT,
            N.WORKBENCH_ACTIVE_PROJECTS,
        ),
        EntityType.TIME_ENTRY: (
            N.OPEN_SRS,
            N.ACTIVE_PROJECTS,
            N.TIME_ENTRY,
            N.SR,
            N.PROJECT,
            N.MILESTONE,
            N.WORKBENCH,
            N.REQUESTS_SUMMARY,
        ),
        EntityType.MONTHLY_REPORT: (N.REQUESTS_SUMMARY,),
    }
)


def validate_invalidation_table(
    table: Mapping[EntityType, tuple[CacheNamespace, ...]],
    keys: Iterable[KeySpec] | None = None,
) -> None:
    """Raise InvalidationTableError listing every uncovered dependency."""
    problems: list[str] = []
    for spec in keys if keys is not None else CacheKeys.all():
        prefix = spec.static_prefix
        if not prefix.startswith(spec.namespace.value):
            problems.append(
                f"{spec.name}: template {spec.template!r} is outside namespace "
                f"{spec.namespace.value!r}"
            )
        for etype in sorted(spec.depends_on, key=lambda t: t.value):
            evicted = table.get(etype, ())
            if not any(prefix.startswith(ns.value) for ns in evicted):
                problems.append(
                    f"{spec.name}: writes to {etype.value} do not evict {prefix!r}"
                )
    if problems:
        raise InvalidationTableError(problems)


class CacheInvalidationRouter:
    """
    Routes mutation events to cache evictions.

    Contract:
        ``handle(event)`` flushes every namespace registered for the event's
        entity type and returns the number of keys evicted.

    Non-goals:
        - Does NOT evict individual keys; eviction is by namespace prefix.
    """

    def __init__(
        self,
        cache: Cache,
        table: Mapping[EntityType, tuple[CacheNamespace, ...]] = INVALIDATION_TABLE,
        keys: Iterable[KeySpec] | None = None,
    ):
        validate_invalidation_table(table, keys)
        self._cache = cache
        self._table = table

    def namespaces_for(self, entity_type: EntityType) -> tuple[CacheNamespace, ...]:
        return self._table.get(entity_type, ())

    def handle(self, event: MutationEvent) -> int:
        if event.is_bookkeeping:
            logger.debug(
                "cache_invalidation_skipped",
                extra={
                    "entity_type": event.entity_type.value,
                    "entity_id": event.entity_id,
                    "origin": event.origin.value,
                },
            )
            return 0

        namespaces = self.namespaces_for(event.entity_type)
        if not namespaces:
            return 0

        evicted = sum(self._cache.flush_pattern(ns.value) for ns in namespaces)
        logger.info(
            "cache_invalidated",
            extra={
                "entity_type": event.entity_type.value,
                "entity_id": event.entity_id,
                "kind": event.kind.value,
                "namespaces": [ns.value for ns in namespaces],
                "evicted": evicted,
            },
        )
        return evicted

    def __call__(self, event: MutationEvent, scope: WriteScope) -> None:
        self.handle(event)

    def attach(self, dispatcher: MutationDispatcher) -> Callable[[], None]:
        return dispatcher.subscribe(
            self,
            entity_types=self._table.keys(),
            name="cache_invalidation",
        )
