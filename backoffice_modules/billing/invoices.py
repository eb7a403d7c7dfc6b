"""
Invoice Service (``backoffice_modules.billing.invoices``).

Responsibility
--------------
Invoice queries, the derived balance/overdue values, project and
organization rollups, and the payment-recording operation.

Architecture position
---------------------
**Modules layer** -- reads and writes invoices through the kernel
``ObjectStore``; list queries that feed dashboards go through the kernel
``Cache``.

Invariants enforced
-------------------
* ``Overdue`` is computed at read time from stored status, due date and
  the business-calendar date.  ``effective_status`` applies it;
  ``stored_status`` never does.  Nothing here persists ``Overdue``.
* ``record_payment`` is the only path that persists ``Paid``/``Partial``.
  It rejects non-positive amounts, payments against Paid/Void/Credited
  invoices, and payments larger than the balance, so ``amount_paid``
  never exceeds ``amount``.
* Project rollups cover invoices linked directly to the project and
  invoices linked to any of its milestones, each invoice counted once.
* All monetary values are ``Decimal`` -- NEVER ``float``.

Failure modes
-------------
* ``EntityNotFoundError`` / ``StoreUnavailableError`` from the store
  propagate unchanged; a failed read is never reported as zero.
* ``PaymentError`` subclasses from ``record_payment``.
* ``ValueError`` from ``update_status`` for an unknown status.

Audit relevance
---------------
``payment_recorded`` and ``invoice_status_updated`` log events carry the
invoice id, amounts and the resulting status.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from backoffice_config.schema import BillingSettings
from backoffice_kernel.cache import Cache, CacheKeys
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.deadline import Deadline, resolve
from backoffice_kernel.domain.values import (
    ZERO,
    EntityType,
    coerce_id,
    round_money,
    to_date,
    to_decimal,
)
from backoffice_kernel.exceptions import (
    InvalidPaymentAmountError,
    InvoiceNotPayableError,
    OverpaymentError,
)
from backoffice_kernel.logging_config import LogContext, get_logger
from backoffice_kernel.store import ORDER_CREATED, Document, Filter, ObjectStore, WriteScope
from backoffice_modules.billing.models import (
    CANCELLED_STATUSES,
    SETTLED_STATUSES,
    InvoiceStatus,
    InvoiceType,
    PaymentResult,
)

logger = get_logger("modules.billing.invoices")

# Sort order of unpaid invoices on the workbench.
PENDING_STATUS_ORDER = {
    InvoiceStatus.DRAFT.value: 1,
    InvoiceStatus.PENDING.value: 2,
    InvoiceStatus.PARTIAL.value: 3,
    InvoiceStatus.OVERDUE.value: 4,
}

_FAR_FUTURE = date(9999, 12, 31)

InvoiceRef = int | Document


def newest_first(documents: Sequence[Document]) -> list[Document]:
    return sorted(
        documents,
        key=lambda d: (d.created_at is not None, d.created_at, d.id),
        reverse=True,
    )


class InvoiceService:
    """
    Invoice reads, rollups and payment recording.

    Contract
    --------
    * Accessors accept an invoice id or an already-loaded ``Document``.
    * List queries return ``Document`` objects, newest first unless noted.

    Guarantees
    ----------
    * "Today" is the calendar date in ``settings.timezone``, read from the
      injected clock.
    * Writes flush through the store; the caller owns the transaction.

    Non-goals
    ---------
    * Does NOT send invoices, render PDFs or charge payment processors.
    * Does NOT cache balances or overdue flags (they depend on the date).
    """

    def __init__(
        self,
        store: ObjectStore,
        cache: Cache,
        settings: BillingSettings | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._cache = cache
        self._settings = settings or BillingSettings()
        self._clock = clock or SystemClock()

    @property
    def settings(self) -> BillingSettings:
        return self._settings

    def today(self) -> date:
        return self._clock.today(self._settings.timezone)

    def get(self, invoice: InvoiceRef, *, deadline: Deadline | None = None) -> Document:
        if isinstance(invoice, Document):
            return invoice
        return self._store.get(EntityType.INVOICE, invoice, deadline=deadline)

    # ------------------------------------------------------------------
    # Field accessors and derived values
    # ------------------------------------------------------------------

    def stored_status(self, invoice: InvoiceRef) -> str:
        """The persisted status; Draft when unset."""
        return self.get(invoice).get("status") or InvoiceStatus.DRAFT.value

    def effective_status(self, invoice: InvoiceRef) -> str:
        """The status to display: ``Overdue`` when past due, else the stored status."""
        doc = self.get(invoice)
        if self.is_overdue(doc):
            return InvoiceStatus.OVERDUE.value
        return self.stored_status(doc)

    def is_overdue(self, invoice: InvoiceRef) -> bool:
        doc = self.get(invoice)
        if self.stored_status(doc) in {s.value for s in SETTLED_STATUSES}:
            return False
        due = to_date(doc.get("due_date"))
        if due is None:
            return False
        return due < self.today()

    def days_overdue(self, invoice: InvoiceRef) -> int:
        doc = self.get(invoice)
        if not self.is_overdue(doc):
            return 0
        return (self.today() - to_date(doc.get("due_date"))).days

    def is_paid(self, invoice: InvoiceRef) -> bool:
        return self.stored_status(invoice) == InvoiceStatus.PAID.value

    def amount(self, invoice: InvoiceRef) -> Decimal:
        return to_decimal(self.get(invoice).get("amount"))

    def paid_amount(self, invoice: InvoiceRef) -> Decimal:
        return to_decimal(self.get(invoice).get("amount_paid"))

    def balance(self, invoice: InvoiceRef) -> Decimal:
        """max(0, amount - amount_paid)."""
        doc = self.get(invoice)
        return max(ZERO, self.amount(doc) - self.paid_amount(doc))

    def invoice_type(self, invoice: InvoiceRef) -> str:
        return self.get(invoice).get("invoice_type") or InvoiceType.STANDARD.value

    def number(self, invoice: InvoiceRef) -> str:
        return self.get(invoice).get("invoice_number") or ""

    def due_date(self, invoice: InvoiceRef) -> date | None:
        return to_date(self.get(invoice).get("due_date"))

    def organization_id(self, invoice: InvoiceRef) -> int | None:
        return coerce_id(self.get(invoice).get("organization_id"))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def invoices_for_org(
        self,
        organization_id: int,
        status: str | Sequence[str] | None = None,
        limit: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> list[Document]:
        filters = [Filter.eq("organization_id", organization_id)]
        if isinstance(status, (list, tuple)):
            filters.append(Filter.in_("status", [str(s) for s in status]))
        elif status:
            filters.append(Filter.eq("status", str(status)))
        ids = self._store.find(
            EntityType.INVOICE,
            filters,
            order_by=ORDER_CREATED,
            descending=True,
            limit=limit,
            deadline=deadline,
        )
        return self._store.get_many(EntityType.INVOICE, ids, deadline=deadline)

    def invoices_for_milestone(
        self, milestone_id: int, *, deadline: Deadline | None = None
    ) -> list[Document]:
        ids = self._store.find(
            EntityType.INVOICE,
            [Filter.eq("milestone_id", milestone_id)],
            order_by=ORDER_CREATED,
            descending=True,
            deadline=deadline,
        )
        return self._store.get_many(EntityType.INVOICE, ids, deadline=deadline)

    def invoices_for_project(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> list[Document]:
        """Invoices linked to the project directly or through its milestones."""
        ids = self._store.find(
            EntityType.INVOICE, [Filter.eq("project_id", project_id)], deadline=deadline
        )
        milestone_ids = self._store.find(
            EntityType.MILESTONE, [Filter.eq("project_id", project_id)], deadline=deadline
        )
        if milestone_ids:
            ids += self._store.find(
                EntityType.INVOICE,
                [Filter.in_("milestone_id", milestone_ids)],
                deadline=deadline,
            )
        unique = list(dict.fromkeys(ids))
        return newest_first(self._store.get_many(EntityType.INVOICE, unique, deadline=deadline))

    def invoice_for_monthly_report(
        self, report_id: int, *, deadline: Deadline | None = None
    ) -> Document | None:
        """The invoice billed for a monthly report, whatever its status."""
        ids = self._store.find(
            EntityType.INVOICE,
            [Filter.eq("monthly_report_id", report_id)],
            limit=1,
            deadline=deadline,
        )
        return self._store.get(EntityType.INVOICE, ids[0], deadline=deadline) if ids else None

    def closeout_invoice_for_project(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> Document | None:
        ids = self._store.find(
            EntityType.INVOICE,
            [Filter.eq("project_id", project_id), Filter.eq("is_closeout", "1")],
            limit=1,
            deadline=deadline,
        )
        return self._store.get(EntityType.INVOICE, ids[0], deadline=deadline) if ids else None

    def pending_invoice_ids(
        self, organization_id: int, *, deadline: Deadline | None = None
    ) -> list[int]:
        """Unsettled invoices of an organization, by status then due date."""
        key = CacheKeys.PENDING_INVOICES.key(organization_id=organization_id)
        return self._cache.remember(
            key,
            lambda: self._pending_ids(
                [Filter.eq("organization_id", organization_id)], None, deadline
            ),
            deadline=deadline,
        )

    def workbench_pending_invoice_ids(
        self, limit: int = 10, *, deadline: Deadline | None = None
    ) -> list[int]:
        """Unsettled invoices across all organizations, by status then due date."""
        key = CacheKeys.WORKBENCH_PENDING_INVOICES.key(limit=limit)
        return self._cache.remember(
            key, lambda: self._pending_ids([], limit, deadline), deadline=deadline
        )

    def _pending_ids(
        self, filters: list[Filter], limit: int | None, deadline: Deadline | None
    ) -> list[int]:
        settled = {s.value for s in SETTLED_STATUSES}
        ids = self._store.find(EntityType.INVOICE, filters, deadline=deadline)
        docs = [
            doc
            for doc in self._store.get_many(EntityType.INVOICE, ids, deadline=deadline)
            if self.stored_status(doc) not in settled
        ]
        docs.sort(
            key=lambda d: (
                PENDING_STATUS_ORDER.get(self.stored_status(d), 99),
                to_date(d.get("due_date")) or _FAR_FUTURE,
                d.id,
            )
        )
        if limit is not None and limit > 0:
            docs = docs[:limit]
        return [d.id for d in docs]

    # ------------------------------------------------------------------
    # Rollups
    # ------------------------------------------------------------------

    def total_for_org(
        self,
        organization_id: int,
        status: str | Sequence[str] | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> Decimal:
        invoices = self.invoices_for_org(organization_id, status, deadline=deadline)
        return self._sum(invoices, "amount", deadline)

    def total_paid_for_org(
        self, organization_id: int, *, deadline: Deadline | None = None
    ) -> Decimal:
        invoices = self.invoices_for_org(organization_id, deadline=deadline)
        return self._sum(invoices, "amount_paid", deadline)

    def total_invoiced_for_project(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> Decimal:
        """Sum of amounts over the project's invoices, Void and Credited excluded."""
        cancelled = {s.value for s in CANCELLED_STATUSES}
        invoices = [
            doc
            for doc in self.invoices_for_project(project_id, deadline=deadline)
            if doc.get("status") not in cancelled
        ]
        return self._sum(invoices, "amount", deadline)

    def total_paid_for_project(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> Decimal:
        invoices = self.invoices_for_project(project_id, deadline=deadline)
        return self._sum(invoices, "amount_paid", deadline)

    @staticmethod
    def _sum(invoices: Sequence[Document], field: str, deadline: Deadline | None) -> Decimal:
        budget = resolve(deadline)
        total = ZERO
        for doc in invoices:
            budget.check("invoice_rollup")
            total += to_decimal(doc.get(field))
        return round_money(total)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_status(
        self,
        invoice_id: int,
        status: InvoiceStatus | str,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        new_status = InvoiceStatus(status)
        previous = self.stored_status(self.get(invoice_id, deadline=deadline))
        self._store.set_field(
            EntityType.INVOICE,
            invoice_id,
            "status",
            new_status.value,
            scope=scope,
            deadline=deadline,
        )
        logger.info(
            "invoice_status_updated",
            extra={
                "invoice_id": invoice_id,
                "previous_status": previous,
                "status": new_status.value,
            },
        )

    def record_payment(
        self,
        invoice_id: int,
        amount,
        *,
        payment_method: str | None = None,
        transaction_id: str | None = None,
        processing_fee=None,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> PaymentResult:
        """
        Add a payment to ``amount_paid`` and move the stored status.

        The invoice becomes Paid (with ``payment_date`` set to today) when
        the running total reaches the amount, otherwise Partial.

        Raises:
            InvalidPaymentAmountError: amount is not a positive number.
            InvoiceNotPayableError: invoice is Paid, Void or Credited.
            OverpaymentError: amount exceeds the remaining balance.
        """
        with LogContext.bind(entity_type=EntityType.INVOICE.value, entity_id=str(invoice_id)):
            payment = to_decimal(amount)
            if payment <= 0:
                raise InvalidPaymentAmountError(invoice_id, amount)

            doc = self.get(invoice_id, deadline=deadline)
            status = self.stored_status(doc)
            if status in {s.value for s in SETTLED_STATUSES}:
                raise InvoiceNotPayableError(invoice_id, status)

            invoice_amount = self.amount(doc)
            balance = self.balance(doc)
            if payment > balance:
                raise OverpaymentError(invoice_id, payment, balance)

            new_paid = round_money(self.paid_amount(doc) + payment)
            fields: dict = {"amount_paid": new_paid}
            payment_date = None
            if new_paid >= invoice_amount:
                payment_date = self.today()
                fields["status"] = InvoiceStatus.PAID.value
                fields["payment_date"] = payment_date
            elif new_paid > 0:
                fields["status"] = InvoiceStatus.PARTIAL.value
            if payment_method:
                fields["payment_method"] = payment_method
            if transaction_id:
                fields["transaction_id"] = transaction_id
            if processing_fee is not None and processing_fee != "":
                fields["processing_fee"] = round_money(to_decimal(processing_fee))

            self._store.update(
                EntityType.INVOICE, invoice_id, fields, scope=scope, deadline=deadline
            )

            result = PaymentResult(
                invoice_id=invoice_id,
                amount=payment,
                amount_paid=new_paid,
                balance=max(ZERO, invoice_amount - new_paid),
                status=fields.get("status", status),
                payment_date=payment_date,
            )
            logger.info(
                "payment_recorded",
                extra={
                    "invoice_id": invoice_id,
                    "amount": str(payment),
                    "amount_paid": str(new_paid),
                    "balance": str(result.balance),
                    "status": result.status,
                    "payment_method": payment_method,
                },
            )
            return result
