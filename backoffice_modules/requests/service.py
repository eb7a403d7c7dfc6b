"""
Service Request Service (``backoffice_modules.requests.service``).

Responsibility
--------------
Hour rollups and open-request lists for service requests.  Time entries
link to a request through ``related_service_request``.

Architecture position
---------------------
**Modules layer** -- store queries behind the kernel ``Cache``.  Depends on
nothing else in ``backoffice_modules``.

Invariants enforced
-------------------
* Request hours are the plain sum of entry hours; quarter-hour rounding
  applies to monthly report billing only.
* Open requests exclude Completed and Cancelled.
"""

from __future__ import annotations

from decimal import Decimal

from backoffice_kernel.cache import Cache, CacheKeys
from backoffice_kernel.domain.deadline import Deadline, resolve
from backoffice_kernel.domain.values import ZERO, EntityType, is_numeric, round_hours, to_decimal
from backoffice_kernel.store import ORDER_CREATED, Document, Filter, ObjectStore
from backoffice_modules.requests.models import (
    CLOSED_STATUSES,
    IN_PROGRESS_STATUSES,
    STATUS_ORDER,
    RequestStatus,
)


class ServiceRequestService:
    """
    Service request rollups.

    Guarantees
    ----------
    * Cached lists hold ids only; callers load the documents they render.
    """

    def __init__(self, store: ObjectStore, cache: Cache):
        self._store = store
        self._cache = cache

    def total_hours(self, request_id: int, *, deadline: Deadline | None = None) -> Decimal:
        key = CacheKeys.SR_HOURS.key(service_request_id=request_id)
        return self._cache.remember(
            key, lambda: self._sum_hours(request_id, deadline), deadline=deadline
        )

    def _sum_hours(self, request_id: int, deadline: Deadline | None) -> Decimal:
        budget = resolve(deadline)
        ids = self._store.find(
            EntityType.TIME_ENTRY,
            [Filter.eq("related_service_request", request_id)],
            deadline=deadline,
        )
        total = ZERO
        for entry in self._store.get_many(EntityType.TIME_ENTRY, ids, deadline=deadline):
            budget.check("service_request_hours")
            if is_numeric(entry.get("hours")):
                total += to_decimal(entry.get("hours"))
        return round_hours(total)

    def requests_for_org(
        self, organization_id: int, *, deadline: Deadline | None = None
    ) -> list[Document]:
        ids = self._store.find(
            EntityType.SERVICE_REQUEST,
            [Filter.eq("organization_id", organization_id)],
            order_by=ORDER_CREATED,
            descending=True,
            deadline=deadline,
        )
        return self._store.get_many(EntityType.SERVICE_REQUEST, ids, deadline=deadline)

    def open_request_ids(
        self, organization_id: int, *, deadline: Deadline | None = None
    ) -> list[int]:
        key = CacheKeys.OPEN_SRS.key(organization_id=organization_id)
        return self._cache.remember(
            key,
            lambda: self._open_ids(
                [Filter.eq("organization_id", organization_id)], None, deadline
            ),
            deadline=deadline,
        )

    def workbench_open_request_ids(
        self, limit: int = 10, *, deadline: Deadline | None = None
    ) -> list[int]:
        """Open requests across organizations, by status then newest first."""
        key = CacheKeys.WORKBENCH_OPEN_SRS.key(limit=limit)
        return self._cache.remember(
            key, lambda: self._open_ids([], limit, deadline), deadline=deadline
        )

    def _open_ids(
        self, filters: list[Filter], limit: int | None, deadline: Deadline | None
    ) -> list[int]:
        ids = self._store.find(
            EntityType.SERVICE_REQUEST,
            [*filters, Filter.not_in("request_status", [s.value for s in CLOSED_STATUSES])],
            order_by=ORDER_CREATED,
            descending=True,
            deadline=deadline,
        )
        docs = self._store.get_many(EntityType.SERVICE_REQUEST, ids, deadline=deadline)
        # Stable sort keeps newest first within a status.
        docs.sort(key=lambda d: STATUS_ORDER.get(d.get("request_status"), 99))
        if limit is not None and limit > 0:
            docs = docs[:limit]
        return [d.id for d in docs]

    def new_request_ids(self, *, deadline: Deadline | None = None) -> list[int]:
        return self._store.find(
            EntityType.SERVICE_REQUEST,
            [Filter.eq("request_status", RequestStatus.NEW.value)],
            order_by=ORDER_CREATED,
            deadline=deadline,
        )

    def in_progress_count(self, *, deadline: Deadline | None = None) -> int:
        return len(
            self._store.find(
                EntityType.SERVICE_REQUEST,
                [Filter.in_("request_status", [s.value for s in IN_PROGRESS_STATUSES])],
                deadline=deadline,
            )
        )
