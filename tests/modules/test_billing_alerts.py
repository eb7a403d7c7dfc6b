"""
Tests for BillingAlerts.

Validates:
- Overdue alerts are computed from due dates, most overdue first
- Due-soon alerts cover Pending invoices due within the window
- Last month's reports without invoices are flagged early in the month only
- New service requests and the combined alert count
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from backoffice_kernel.domain.values import EntityType
from backoffice_modules.billing import LineType
from backoffice_modules.billing.alerts import previous_month_label


class TestOverdue:
    def test_most_overdue_first(self, services, factory):
        org_id = factory.organization(name="Acme Co")
        recent = factory.invoice(org_id, amount="50", due_date=date(2025, 11, 18))
        oldest = factory.invoice(
            org_id, amount="100", amount_paid="30", status="Partial", due_date=date(2025, 11, 10)
        )

        alerts = services.alerts.overdue_invoices()

        assert [a.invoice_id for a in alerts] == [oldest, recent]
        assert alerts[0].days_overdue == 10
        assert alerts[0].balance == Decimal("70")
        assert alerts[0].organization_name == "Acme Co"
        assert services.alerts.overdue_invoice_count() == 2

    def test_settled_and_future_invoices_excluded(self, services, factory, today):
        factory.invoice(amount="10", status="Paid", amount_paid="10", due_date=date(2025, 1, 1))
        factory.invoice(amount="10", status="Void", due_date=date(2025, 1, 1))
        factory.invoice(amount="10", due_date=today)
        factory.invoice(amount="10")

        assert services.alerts.overdue_invoices() == []

    def test_invoice_without_status_is_flagged(self, services, store):
        invoice_id = store.create(
            EntityType.INVOICE, {"amount": Decimal("10"), "due_date": date(2025, 11, 1)}
        )

        (alert,) = services.alerts.overdue_invoices()
        assert alert.invoice_id == invoice_id
        assert services.alerts.overdue_invoice_count() == 1
        assert services.invoices.effective_status(invoice_id) == "Overdue"

    def test_late_fee_flag_and_unknown_organization(self, services, factory):
        invoice_id = factory.invoice(amount="10", due_date=date(2025, 11, 1))
        services.line_items.create(invoice_id, line_type=LineType.LATE_FEE, amount="5")

        (alert,) = services.alerts.overdue_invoices()
        assert alert.has_late_fee
        assert alert.organization_name == "Unknown"


class TestDueSoon:
    def test_window_inclusive(self, services, factory, today):
        due_today = factory.invoice(amount="10", due_date=today)
        in_two_days = factory.invoice(amount="20", due_date=date(2025, 11, 22))
        factory.invoice(amount="30", due_date=date(2025, 11, 23))
        factory.invoice(amount="40", status="Partial", due_date=date(2025, 11, 21))

        alerts = services.alerts.invoices_due_soon()

        assert [(a.invoice_id, a.days_until) for a in alerts] == [(due_today, 0), (in_two_days, 2)]
        assert alerts[1].amount == Decimal("20")

    def test_due_date_with_time_on_last_day(self, services, factory):
        invoice_id = factory.invoice(amount="10", due_date=datetime(2025, 11, 22, 9, 0))

        (alert,) = services.alerts.invoices_due_soon()
        assert alert.invoice_id == invoice_id
        assert alert.days_until == 2

    def test_custom_window(self, services, factory):
        factory.invoice(amount="30", due_date=date(2025, 11, 23))
        assert len(services.alerts.invoices_due_soon(days=3)) == 1


class TestReportsNeedingInvoices:
    @pytest.fixture
    def early_december(self, deterministic_clock):
        deterministic_clock.set_time(datetime(2025, 12, 3, 18, 0, tzinfo=timezone.utc))

    def test_previous_month_label(self):
        assert previous_month_label(date(2025, 12, 3)) == "November 2025"
        assert previous_month_label(date(2025, 1, 31)) == "December 2024"

    @pytest.mark.usefixtures("early_december")
    def test_unbilled_reports_flagged(self, services, factory):
        org_id = factory.organization(name="Acme Co")
        unbilled = factory.monthly_report(org_id, "November 2025")
        billed = factory.monthly_report(factory.organization(name="Beta"), "November 2025")
        factory.invoice(amount="90", monthly_report_id=billed)
        factory.monthly_report(org_id, "October 2025")

        alerts = services.alerts.reports_needing_invoices()

        assert [a.report_id for a in alerts] == [unbilled]
        assert alerts[0].report_month == "November 2025"
        assert alerts[0].organization_name == "Acme Co"

    def test_nothing_after_the_window(self, services, factory, deterministic_clock):
        deterministic_clock.set_time(datetime(2025, 12, 10, 18, 0, tzinfo=timezone.utc))
        factory.monthly_report(factory.organization(), "November 2025")
        assert services.alerts.reports_needing_invoices() == []


class TestRequestsAndTotals:
    def test_new_requests(self, services, factory):
        org_id = factory.organization(name="Acme Co")
        request_id = factory.service_request(org_id, reference_number="SR-0001", subject="Down")
        factory.service_request(org_id, status="In Progress")

        (alert,) = services.alerts.new_service_requests()
        assert alert.request_id == request_id
        assert alert.reference_number == "SR-0001"
        assert alert.subject == "Down"
        assert alert.organization_name == "Acme Co"
        assert services.alerts.in_progress_request_count() == 1

    def test_total_alert_count(self, services, factory):
        factory.invoice(amount="10", due_date=date(2025, 11, 1))
        factory.service_request(status="New")
        factory.service_request(status="Completed")
        assert services.alerts.total_alert_count() == 2
