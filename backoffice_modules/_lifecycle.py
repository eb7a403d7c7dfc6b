"""
Save and delete hooks, and the composition root that wires them.

Responsibility
--------------
* ``register_lifecycle_hooks`` subscribes the entity save/delete behaviour
  to the store's ``MutationDispatcher``: reference numbers for projects,
  milestones and project reports; titles synced from their source fields;
  line item titles; line item cascades when an invoice is trashed or
  deleted.
* ``build_services`` builds the store, cache, invalidation router and every
  module service for one session.

Invariants enforced
-------------------
* Hooks that write back to the entity that triggered them enter a guard
  on the ``WriteScope``; the nested event returns immediately.  Guards
  are per transaction, never process-wide.
* Reference assignment runs before title sync, so a project report's title
  is its freshly assigned number.
* Cache invalidation is subscribed first, so every write a hook makes is
  invalidated like any other.
* AUTOSAVE and REVISION writes trigger no hook.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from backoffice_config.schema import BackofficeSettings
from backoffice_kernel.cache import (
    Cache,
    CacheBackend,
    CacheInvalidationRouter,
    MemoryCacheBackend,
    SqlCacheBackend,
    TransactionalCache,
)
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.values import EntityType
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.services.sequence_service import SequenceService
from backoffice_kernel.store import (
    MutationDispatcher,
    MutationEvent,
    MutationKind,
    ObjectStore,
    SqlObjectStore,
    WriteScope,
)
from backoffice_modules.billing import (
    BillingAlerts,
    InvoiceService,
    LineItemService,
    MonthlyReportService,
)
from backoffice_modules.projects import (
    MilestoneService,
    ProgressCalculator,
    ProjectService,
    ReferenceNumberService,
)
from backoffice_modules.requests import ServiceRequestService

logger = get_logger("modules.lifecycle")

TITLE_GUARD = "title_sync"

# Field each entity's title mirrors.
TITLE_SOURCES = {
    EntityType.PROJECT: "project_name",
    EntityType.MILESTONE: "milestone_name",
    EntityType.INVOICE: "invoice_number",
    EntityType.PROJECT_REPORT: "report_number",
}

SAVE_KINDS = (MutationKind.CREATED, MutationKind.UPDATED)


def sync_title(
    store: ObjectStore,
    entity_type: EntityType,
    entity_id: int,
    *,
    scope: WriteScope | None = None,
) -> str | None:
    """Copy the entity's source field into ``title`` when set and different."""
    scope = scope or WriteScope()
    if scope.is_guarded(TITLE_GUARD):
        return None
    doc = store.get(entity_type, entity_id)
    source = doc.get(TITLE_SOURCES[entity_type])
    if not source or doc.get("title") == source:
        return None
    with scope.guard(TITLE_GUARD):
        store.set_field(entity_type, entity_id, "title", source, scope=scope)
    logger.debug(
        "title_synced",
        extra={"entity_type": entity_type.value, "entity_id": entity_id, "title": source},
    )
    return source


def register_lifecycle_hooks(
    dispatcher: MutationDispatcher,
    store: ObjectStore,
    references: ReferenceNumberService,
    line_items: LineItemService,
) -> list[Callable[[], None]]:
    """Subscribe every save/delete hook; returns their unsubscribe callables."""

    def assign_reference(event: MutationEvent, scope: WriteScope) -> None:
        if event.is_bookkeeping:
            return
        if event.entity_type is EntityType.PROJECT:
            references.assign_project_reference(event.entity_id, scope=scope)
        elif event.entity_type is EntityType.MILESTONE:
            references.assign_milestone_reference(event.entity_id, scope=scope)
        else:
            references.assign_report_reference(event.entity_id, scope=scope)

    def title_sync(event: MutationEvent, scope: WriteScope) -> None:
        if event.is_bookkeeping:
            return
        sync_title(store, event.entity_type, event.entity_id, scope=scope)

    def line_item_title(event: MutationEvent, scope: WriteScope) -> None:
        if event.is_bookkeeping:
            return
        line_items.auto_title(event.entity_id, scope=scope)

    def invoice_trashed(event: MutationEvent, scope: WriteScope) -> None:
        line_items.cascade_trash(event.entity_id, scope=scope)

    def invoice_deleting(event: MutationEvent, scope: WriteScope) -> None:
        line_items.cascade_delete(event.entity_id, scope=scope)

    subscriptions = [
        dispatcher.subscribe(
            assign_reference,
            entity_types=(EntityType.PROJECT, EntityType.MILESTONE, EntityType.PROJECT_REPORT),
            kinds=SAVE_KINDS,
            name="reference_assignment",
        ),
        dispatcher.subscribe(
            title_sync,
            entity_types=tuple(TITLE_SOURCES),
            kinds=SAVE_KINDS,
            name="title_sync",
        ),
        dispatcher.subscribe(
            line_item_title,
            entity_types=(EntityType.INVOICE_LINE_ITEM,),
            kinds=SAVE_KINDS,
            name="line_item_title",
        ),
        dispatcher.subscribe(
            invoice_trashed,
            entity_types=(EntityType.INVOICE,),
            kinds=(MutationKind.TRASHED,),
            name="line_item_cascade_trash",
        ),
        dispatcher.subscribe(
            invoice_deleting,
            entity_types=(EntityType.INVOICE,),
            kinds=(MutationKind.DELETING,),
            name="line_item_cascade_delete",
        ),
    ]
    logger.debug("lifecycle_hooks_registered", extra={"count": len(subscriptions)})
    return subscriptions


@dataclass(frozen=True)
class BackofficeServices:
    """Every service of one session, sharing a store, cache and clock."""

    store: SqlObjectStore
    cache: Cache
    router: CacheInvalidationRouter
    references: ReferenceNumberService
    invoices: InvoiceService
    line_items: LineItemService
    monthly_reports: MonthlyReportService
    requests: ServiceRequestService
    alerts: BillingAlerts
    projects: ProjectService
    milestones: MilestoneService
    progress: ProgressCalculator


def build_cache_backend(settings: BackofficeSettings, session: Session) -> CacheBackend:
    if settings.cache.backend == "sql":
        return SqlCacheBackend(session)
    return MemoryCacheBackend()


def build_cache(
    session: Session,
    settings: BackofficeSettings,
    clock: Clock,
    backend: CacheBackend | None = None,
) -> Cache:
    """
    Cache for one session.

    A backend that writes inside the session's transaction rolls back with
    it; any other backend is shared with sessions that must not see
    uncommitted aggregates, so it is fronted by ``TransactionalCache``.
    """
    backend = backend or build_cache_backend(settings, session)
    options = dict(
        backend=backend,
        clock=clock,
        default_ttl=settings.cache.default_ttl_seconds,
        key_prefix=settings.cache.key_prefix,
    )
    if backend.joins_transaction_of(session):
        return Cache(**options)
    return TransactionalCache(session, **options)


def build_services(
    session: Session,
    settings: BackofficeSettings | None = None,
    clock: Clock | None = None,
    cache_backend: CacheBackend | None = None,
) -> BackofficeServices:
    """
    Compose the services for one session.

    ``cache_backend`` lets callers share one memory backend across
    sessions; by default it is built from ``settings.cache``.  Values
    computed from this session's uncommitted writes reach a shared
    backend only after commit.
    """
    settings = settings or BackofficeSettings()
    clock = clock or SystemClock()

    dispatcher = MutationDispatcher()
    store = SqlObjectStore(
        session,
        clock=clock,
        dispatcher=dispatcher,
        call_timeout_seconds=settings.store.call_timeout_seconds,
    )
    cache = build_cache(session, settings, clock, cache_backend)
    router = CacheInvalidationRouter(cache)
    router.attach(dispatcher)

    SequenceService(session).initialize_sequences()

    billing = settings.billing
    references = ReferenceNumberService(store, session, clock, timezone=billing.timezone)
    invoices = InvoiceService(store, cache, billing, clock)
    line_items = LineItemService(store)
    requests = ServiceRequestService(store, cache)
    projects = ProjectService(store, cache, invoices)
    milestones = MilestoneService(store, cache, invoices)

    register_lifecycle_hooks(dispatcher, store, references, line_items)

    return BackofficeServices(
        store=store,
        cache=cache,
        router=router,
        references=references,
        invoices=invoices,
        line_items=line_items,
        monthly_reports=MonthlyReportService(store, cache, billing),
        requests=requests,
        alerts=BillingAlerts(store, invoices, line_items, requests, billing, clock),
        projects=projects,
        milestones=milestones,
        progress=ProgressCalculator(projects, milestones),
    )
