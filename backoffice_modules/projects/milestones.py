"""
Milestone Service (``backoffice_modules.projects.milestones``).

Responsibility
--------------
Milestone accessors and the derived payment status.

Architecture position
---------------------
**Modules layer** -- reads milestones from the ``ObjectStore`` and their
invoices through ``billing.InvoiceService``.

Invariants enforced
-------------------
* Payment status is recomputed on every read from the milestone's linked
  invoices and is never stored or cached:
  no invoices -> Pending; amount > 0 and paid >= amount -> Paid;
  otherwise Invoiced.
* Paid totals add ``amount_paid`` across every linked invoice, whatever
  its status.

Failure modes
-------------
* Store failures propagate.  ``DeadlineExceededError`` stops the
  per-invoice sum as soon as the caller's deadline expires.
"""

from __future__ import annotations

from decimal import Decimal

from backoffice_kernel.cache import Cache, CacheKeys
from backoffice_kernel.domain.deadline import Deadline, resolve
from backoffice_kernel.domain.values import (
    ZERO,
    EntityType,
    coerce_id,
    is_flag_set,
    is_numeric,
    round_hours,
    round_money,
    to_decimal,
)
from backoffice_kernel.store import Document, Filter, ObjectStore
from backoffice_modules.billing.invoices import InvoiceService
from backoffice_modules.projects.models import PaymentStatus, WorkStatus

MilestoneRef = int | Document


def milestone_ids_for_project(
    store: ObjectStore, project_id: int, *, deadline: Deadline | None = None
) -> list[int]:
    """Published milestones of a project, by order then id."""
    return store.find(
        EntityType.MILESTONE,
        [Filter.eq("project_id", project_id)],
        order_by="order",
        deadline=deadline,
    )


def order_text(order) -> str:
    """Stored order as written on screen: ``2`` not ``2.0``, ``1.5`` stays ``1.5``."""
    if order is None or order == "":
        return ""
    if is_numeric(order):
        return format(to_decimal(order).normalize(), "f")
    return str(order)


class MilestoneService:
    """
    Milestone accessors and payment status.

    Contract
    --------
    * Accessors accept a milestone id or a loaded ``Document``.

    Guarantees
    ----------
    * ``payment_status`` is monotonic in the paid total: once Paid, more
      payments keep it Paid.
    """

    def __init__(self, store: ObjectStore, cache: Cache, invoices: InvoiceService):
        self._store = store
        self._cache = cache
        self._invoices = invoices

    def get(self, milestone: MilestoneRef, *, deadline: Deadline | None = None) -> Document:
        if isinstance(milestone, Document):
            return milestone
        return self._store.get(EntityType.MILESTONE, milestone, deadline=deadline)

    def milestones_for_project(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> list[Document]:
        ids = milestone_ids_for_project(self._store, project_id, deadline=deadline)
        return self._store.get_many(EntityType.MILESTONE, ids, deadline=deadline)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def invoices(self, milestone: MilestoneRef, *, deadline: Deadline | None = None) -> list[Document]:
        """Linked invoices, newest first."""
        return self._invoices.invoices_for_milestone(self.get(milestone).id, deadline=deadline)

    def invoice_ids(self, milestone: MilestoneRef, *, deadline: Deadline | None = None) -> list[int]:
        return [doc.id for doc in self.invoices(milestone, deadline=deadline)]

    def invoice_count(self, milestone: MilestoneRef, *, deadline: Deadline | None = None) -> int:
        return len(self.invoices(milestone, deadline=deadline))

    def paid_total(self, milestone: MilestoneRef, *, deadline: Deadline | None = None) -> Decimal:
        return self._paid(self.invoices(milestone, deadline=deadline), deadline)

    @staticmethod
    def _paid(invoices: list[Document], deadline: Deadline | None) -> Decimal:
        budget = resolve(deadline)
        total = ZERO
        for invoice in invoices:
            budget.check("milestone_paid_total")
            total += to_decimal(invoice.get("amount_paid"))
        return round_money(total)

    def payment_status(
        self, milestone: MilestoneRef, *, deadline: Deadline | None = None
    ) -> PaymentStatus:
        doc = self.get(milestone, deadline=deadline)
        invoices = self.invoices(doc, deadline=deadline)
        if not invoices:
            return PaymentStatus.PENDING

        amount = self.amount(doc)
        if amount > 0 and self._paid(invoices, deadline) >= amount:
            return PaymentStatus.PAID
        return PaymentStatus.INVOICED

    def is_paid(self, milestone: MilestoneRef, *, deadline: Deadline | None = None) -> bool:
        return self.payment_status(milestone, deadline=deadline) is PaymentStatus.PAID

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def work_status(self, milestone: MilestoneRef) -> str:
        return self.get(milestone).get("work_status") or WorkStatus.PLANNED.value

    def amount(self, milestone: MilestoneRef) -> Decimal:
        return to_decimal(self.get(milestone).get("amount"))

    def is_deposit(self, milestone: MilestoneRef) -> bool:
        return is_flag_set(self.get(milestone).get("is_deposit"))

    def project_id(self, milestone: MilestoneRef) -> int | None:
        return coerce_id(self.get(milestone).get("project_id"))

    def reference_number(self, milestone: MilestoneRef) -> str:
        return self.get(milestone).get("reference_number") or ""

    def total_hours(self, milestone_id: int, *, deadline: Deadline | None = None) -> Decimal:
        """Raw hours of time entries linked to the milestone."""
        key = CacheKeys.MILESTONE_HOURS.key(milestone_id=milestone_id)
        return self._cache.remember(
            key, lambda: self._sum_hours(milestone_id, deadline), deadline=deadline
        )

    def _sum_hours(self, milestone_id: int, deadline: Deadline | None) -> Decimal:
        ids = self._store.find(
            EntityType.TIME_ENTRY,
            [Filter.eq("related_milestone", milestone_id)],
            deadline=deadline,
        )
        entries = self._store.get_many(EntityType.TIME_ENTRY, ids, deadline=deadline)
        return round_hours(sum((to_decimal(e.get("hours")) for e in entries), ZERO))

    def order_display(self, milestone: MilestoneRef, *, deadline: Deadline | None = None) -> str:
        """``"2 / 5"``: order over the number of milestones in the project."""
        doc = self.get(milestone, deadline=deadline)
        order = order_text(doc.get("order"))
        project_id = self.project_id(doc)
        if not order or project_id is None or not self._store.exists(
            EntityType.PROJECT, project_id, deadline=deadline
        ):
            return order
        total = len(milestone_ids_for_project(self._store, project_id, deadline=deadline))
        return f"{order} / {total}"
