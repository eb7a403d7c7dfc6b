"""
Billing alerts for the back-office dashboard.

Overdue invoices, invoices due soon, last month's reports that still need
an invoice, and new service requests.  Overdue is computed with
``InvoiceService.is_overdue``; a stored ``Overdue`` status is not needed for
an invoice to be flagged.
"""

from __future__ import annotations

from datetime import date, timedelta

from backoffice_config.schema import BillingSettings
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.deadline import Deadline
from backoffice_kernel.domain.values import EntityType, coerce_id, to_date, to_decimal
from backoffice_kernel.exceptions import EntityNotFoundError
from backoffice_kernel.store import Document, Filter, ObjectStore
from backoffice_modules.billing.invoices import InvoiceService
from backoffice_modules.billing.line_items import LineItemService
from backoffice_modules.billing.models import (
    DueSoonAlert,
    InvoiceStatus,
    LineType,
    NewRequestAlert,
    OverdueInvoiceAlert,
    ReportInvoiceAlert,
)
from backoffice_modules.requests.service import ServiceRequestService

UNKNOWN_ORGANIZATION = "Unknown"


def previous_month_label(today: date) -> str:
    """``"October 2025"`` for any day in November 2025."""
    last_of_previous = today.replace(day=1) - timedelta(days=1)
    return last_of_previous.strftime("%B %Y")


class BillingAlerts:
    """
    Computes the billing alert lists.

    Non-goals
    ---------
    * Does NOT send notifications; callers decide how alerts are shown.
    """

    def __init__(
        self,
        store: ObjectStore,
        invoices: InvoiceService,
        line_items: LineItemService,
        requests: ServiceRequestService,
        settings: BillingSettings | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._invoices = invoices
        self._line_items = line_items
        self._requests = requests
        self._settings = settings or BillingSettings()
        self._clock = clock or SystemClock()

    def today(self) -> date:
        return self._clock.today(self._settings.timezone)

    def organization_name(
        self, organization_id, *, deadline: Deadline | None = None
    ) -> str:
        ident = coerce_id(organization_id)
        if ident is None:
            return UNKNOWN_ORGANIZATION
        try:
            organization = self._store.get(EntityType.ORGANIZATION, ident, deadline=deadline)
        except EntityNotFoundError:
            return UNKNOWN_ORGANIZATION
        return organization.get("name") or UNKNOWN_ORGANIZATION

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def _overdue_candidates(self, deadline: Deadline | None) -> list[Document]:
        # Status is checked on the documents: an invoice without one is a Draft.
        ids = self._store.find(
            EntityType.INVOICE,
            [Filter.lt("due_date", self.today())],
            deadline=deadline,
        )
        docs = self._store.get_many(EntityType.INVOICE, ids, deadline=deadline)
        return [doc for doc in docs if self._invoices.is_overdue(doc)]

    def overdue_invoices(self, *, deadline: Deadline | None = None) -> list[OverdueInvoiceAlert]:
        """Overdue invoices, most days overdue first."""
        alerts = [
            OverdueInvoiceAlert(
                invoice_id=doc.id,
                invoice_number=self._invoices.number(doc),
                organization_name=self.organization_name(
                    doc.get("organization_id"), deadline=deadline
                ),
                balance=self._invoices.balance(doc),
                days_overdue=self._invoices.days_overdue(doc),
                has_late_fee=self._line_items.has_line_type(
                    doc.id, LineType.LATE_FEE, deadline=deadline
                ),
            )
            for doc in self._overdue_candidates(deadline)
        ]
        alerts.sort(key=lambda a: a.days_overdue, reverse=True)
        return alerts

    def overdue_invoice_count(self, *, deadline: Deadline | None = None) -> int:
        return len(self._overdue_candidates(deadline))

    def invoices_due_soon(
        self, days: int | None = None, *, deadline: Deadline | None = None
    ) -> list[DueSoonAlert]:
        """Pending invoices due between today and ``days`` from now, inclusive."""
        days = self._settings.due_soon_days if days is None else days
        today = self.today()
        ids = self._store.find(
            EntityType.INVOICE,
            [
                Filter.eq("status", InvoiceStatus.PENDING.value),
                Filter.ge("due_date", today),
                Filter.lt("due_date", today + timedelta(days=days + 1)),
            ],
            order_by="due_date",
            deadline=deadline,
        )
        return [
            DueSoonAlert(
                invoice_id=doc.id,
                invoice_number=self._invoices.number(doc),
                organization_name=self.organization_name(
                    doc.get("organization_id"), deadline=deadline
                ),
                amount=to_decimal(doc.get("amount")),
                days_until=(to_date(doc.get("due_date")) - today).days,
            )
            for doc in self._store.get_many(EntityType.INVOICE, ids, deadline=deadline)
        ]

    # ------------------------------------------------------------------
    # Monthly reports
    # ------------------------------------------------------------------

    def reports_needing_invoices(
        self, *, deadline: Deadline | None = None
    ) -> list[ReportInvoiceAlert]:
        """
        Last month's reports with no invoice yet.

        Only reported during the first ``report_invoice_window_days`` days
        of the month; empty afterwards.
        """
        today = self.today()
        if today.day > self._settings.report_invoice_window_days:
            return []

        month = previous_month_label(today)
        report_ids = self._store.find(
            EntityType.MONTHLY_REPORT,
            [Filter.eq("report_month", month)],
            deadline=deadline,
        )
        alerts = []
        for report in self._store.get_many(EntityType.MONTHLY_REPORT, report_ids, deadline=deadline):
            if self._invoices.invoice_for_monthly_report(report.id, deadline=deadline) is not None:
                continue
            alerts.append(
                ReportInvoiceAlert(
                    report_id=report.id,
                    report_month=month,
                    organization_name=self.organization_name(
                        report.get("organization_id"), deadline=deadline
                    ),
                )
            )
        return alerts

    # ------------------------------------------------------------------
    # Service requests
    # ------------------------------------------------------------------

    def new_service_requests(self, *, deadline: Deadline | None = None) -> list[NewRequestAlert]:
        ids = self._requests.new_request_ids(deadline=deadline)
        return [
            NewRequestAlert(
                request_id=doc.id,
                reference_number=doc.get("reference_number") or "",
                subject=doc.get("subject") or "",
                organization_name=self.organization_name(
                    doc.get("organization_id"), deadline=deadline
                ),
            )
            for doc in self._store.get_many(EntityType.SERVICE_REQUEST, ids, deadline=deadline)
        ]

    def in_progress_request_count(self, *, deadline: Deadline | None = None) -> int:
        return self._requests.in_progress_count(deadline=deadline)

    def total_alert_count(self, *, deadline: Deadline | None = None) -> int:
        """Overdue invoices plus reports needing invoices plus new requests."""
        return (
            self.overdue_invoice_count(deadline=deadline)
            + len(self.reports_needing_invoices(deadline=deadline))
            + len(self._requests.new_request_ids(deadline=deadline))
        )
