"""
Project Service (``backoffice_modules.projects.service``).

Responsibility
--------------
Project lists, milestone listing, budget and hour rollups, and the
project's invoice totals.

Architecture position
---------------------
**Modules layer** -- reads through the kernel ``ObjectStore``; rollups and
lists are cached through the kernel ``Cache`` under the ``project_`` and
``active_projects`` namespaces.  Invoice totals delegate to
``billing.InvoiceService``.

Invariants enforced
-------------------
* Project total is the sum of milestone amounts; ``total_budget`` is used
  only when the project has no milestones.
* Project hours count each time entry once, whether it is linked to the
  project directly or to one of its milestones.
* Invoice totals cover direct and milestone invoices (see
  ``InvoiceService.invoices_for_project``).

Failure modes
-------------
* ``EntityNotFoundError`` for an unknown project id; store failures
  propagate.
"""

from __future__ import annotations

from decimal import Decimal

from backoffice_kernel.cache import Cache, CacheKeys
from backoffice_kernel.domain.deadline import Deadline, resolve
from backoffice_kernel.domain.values import (
    ZERO,
    EntityType,
    is_numeric,
    round_hours,
    round_money,
    to_decimal,
)
from backoffice_kernel.store import ORDER_CREATED, Document, Filter, ObjectStore
from backoffice_modules.billing.invoices import InvoiceService, newest_first
from backoffice_modules.projects.milestones import milestone_ids_for_project
from backoffice_modules.projects.models import (
    CLOSED_PROJECT_STATUSES,
    WORKBENCH_PROJECT_STATUS_ORDER,
)


class ProjectService:
    """
    Project queries and rollups.

    Contract
    --------
    * Cached lists hold ids only; callers load the documents they render.

    Non-goals
    ---------
    * Does NOT change project status; status is edited by the caller.
    """

    def __init__(self, store: ObjectStore, cache: Cache, invoices: InvoiceService):
        self._store = store
        self._cache = cache
        self._invoices = invoices

    def get(self, project_id: int, *, deadline: Deadline | None = None) -> Document:
        return self._store.get(EntityType.PROJECT, project_id, deadline=deadline)

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def projects_for_org(
        self, organization_id: int, *, deadline: Deadline | None = None
    ) -> list[Document]:
        ids = self._store.find(
            EntityType.PROJECT,
            [Filter.eq("organization_id", organization_id)],
            order_by=ORDER_CREATED,
            descending=True,
            deadline=deadline,
        )
        return self._store.get_many(EntityType.PROJECT, ids, deadline=deadline)

    def active_project_ids(
        self, organization_id: int, *, deadline: Deadline | None = None
    ) -> list[int]:
        """Projects not Completed or Cancelled, newest first."""
        key = CacheKeys.ACTIVE_PROJECTS.key(organization_id=organization_id)
        return self._cache.remember(
            key,
            lambda: self._store.find(
                EntityType.PROJECT,
                [
                    Filter.eq("organization_id", organization_id),
                    Filter.not_in("status", [s.value for s in CLOSED_PROJECT_STATUSES]),
                ],
                order_by=ORDER_CREATED,
                descending=True,
                deadline=deadline,
            ),
            deadline=deadline,
        )

    def active_projects(
        self, organization_id: int, *, deadline: Deadline | None = None
    ) -> list[Document]:
        ids = self.active_project_ids(organization_id, deadline=deadline)
        return self._store.get_many(EntityType.PROJECT, ids, deadline=deadline)

    def workbench_active_project_ids(
        self, limit: int = 10, *, deadline: Deadline | None = None
    ) -> list[int]:
        """Active, Waiting on Client and On Hold projects of every organization."""
        key = CacheKeys.WORKBENCH_ACTIVE_PROJECTS.key(limit=limit)
        return self._cache.remember(
            key, lambda: self._workbench_ids(limit, deadline), deadline=deadline
        )

    def _workbench_ids(self, limit: int, deadline: Deadline | None) -> list[int]:
        ids = self._store.find(
            EntityType.PROJECT,
            [Filter.in_("status", list(WORKBENCH_PROJECT_STATUS_ORDER))],
            deadline=deadline,
        )
        docs = newest_first(self._store.get_many(EntityType.PROJECT, ids, deadline=deadline))
        docs.sort(key=lambda d: WORKBENCH_PROJECT_STATUS_ORDER.get(d.get("status"), 99))
        if limit > 0:
            docs = docs[:limit]
        return [d.id for d in docs]

    def milestones(self, project_id: int, *, deadline: Deadline | None = None) -> list[Document]:
        """Milestones ordered by ``order`` then id."""
        ids = milestone_ids_for_project(self._store, project_id, deadline=deadline)
        return self._store.get_many(EntityType.MILESTONE, ids, deadline=deadline)

    def invoices(self, project_id: int, *, deadline: Deadline | None = None) -> list[Document]:
        return self._invoices.invoices_for_project(project_id, deadline=deadline)

    # ------------------------------------------------------------------
    # Rollups
    # ------------------------------------------------------------------

    def project_total(self, project_id: int, *, deadline: Deadline | None = None) -> Decimal:
        key = CacheKeys.PROJECT_TOTAL.key(project_id=project_id)
        return self._cache.remember(
            key, lambda: self._project_total(project_id, deadline), deadline=deadline
        )

    def _project_total(self, project_id: int, deadline: Deadline | None) -> Decimal:
        milestones = self.milestones(project_id, deadline=deadline)
        if milestones:
            return round_money(sum((to_decimal(m.get("amount")) for m in milestones), ZERO))
        return round_money(to_decimal(self.get(project_id, deadline=deadline).get("total_budget")))

    def total_hours(self, project_id: int, *, deadline: Deadline | None = None) -> Decimal:
        key = CacheKeys.PROJECT_HOURS.key(project_id=project_id)
        return self._cache.remember(
            key, lambda: self._total_hours(project_id, deadline), deadline=deadline
        )

    def _total_hours(self, project_id: int, deadline: Deadline | None) -> Decimal:
        budget = resolve(deadline)
        ids = self._store.find(
            EntityType.TIME_ENTRY,
            [Filter.eq("related_project", project_id)],
            deadline=deadline,
        )
        milestone_ids = milestone_ids_for_project(self._store, project_id, deadline=deadline)
        if milestone_ids:
            ids += self._store.find(
                EntityType.TIME_ENTRY,
                [Filter.in_("related_milestone", milestone_ids)],
                deadline=deadline,
            )
        total = ZERO
        for entry in self._store.get_many(
            EntityType.TIME_ENTRY, list(dict.fromkeys(ids)), deadline=deadline
        ):
            budget.check("project_hours")
            if is_numeric(entry.get("hours")):
                total += to_decimal(entry.get("hours"))
        return round_hours(total)

    def invoiced_total(self, project_id: int, *, deadline: Deadline | None = None) -> Decimal:
        return self._invoices.total_invoiced_for_project(project_id, deadline=deadline)

    def paid_total(self, project_id: int, *, deadline: Deadline | None = None) -> Decimal:
        return self._invoices.total_paid_for_project(project_id, deadline=deadline)
