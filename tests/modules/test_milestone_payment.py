"""
Tests for milestone payment status and accessors.

Validates:
- Pending with no invoices, Invoiced until paid in full, then Paid
- Paid totals add amount_paid over every linked invoice
- Payment status is monotonic in the paid total
- Order display and hour rollups
"""

from __future__ import annotations

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from backoffice_kernel.domain.values import EntityType
from backoffice_modules.projects import PaymentStatus, WorkStatus


class TestPaymentStatus:
    def test_pending_without_invoices(self, services, factory):
        milestone_id = factory.milestone(factory.project(), amount="1000")
        assert services.milestones.payment_status(milestone_id) is PaymentStatus.PENDING

    def test_invoiced_until_paid_in_full(self, services, factory):
        milestone_id = factory.milestone(factory.project(), amount="1000")
        factory.invoice(amount="1000", amount_paid="400", milestone_id=milestone_id)

        assert services.milestones.payment_status(milestone_id) is PaymentStatus.INVOICED
        assert services.milestones.paid_total(milestone_id) == Decimal("400.00")

    def test_paid_across_several_invoices(self, services, factory):
        milestone_id = factory.milestone(factory.project(), amount="1000")
        factory.invoice(amount="500", amount_paid="500", milestone_id=milestone_id)
        factory.invoice(amount="500", amount_paid="500", milestone_id=milestone_id)

        assert services.milestones.payment_status(milestone_id) is PaymentStatus.PAID
        assert services.milestones.is_paid(milestone_id)
        assert services.milestones.invoice_count(milestone_id) == 2

    def test_zero_amount_milestone_is_never_paid(self, services, factory):
        milestone_id = factory.milestone(factory.project(), amount="0")
        factory.invoice(amount="0", milestone_id=milestone_id)
        assert services.milestones.payment_status(milestone_id) is PaymentStatus.INVOICED

    def test_follows_recorded_payments(self, services, factory):
        milestone_id = factory.milestone(factory.project(), amount="750")
        invoice_id = factory.invoice(amount="750", milestone_id=milestone_id)

        services.invoices.record_payment(invoice_id, "250")
        assert services.milestones.payment_status(milestone_id) is PaymentStatus.INVOICED

        services.invoices.record_payment(invoice_id, "500")
        assert services.milestones.payment_status(milestone_id) is PaymentStatus.PAID

    @settings(
        max_examples=20,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(
        amount_cents=st.integers(min_value=1, max_value=500_000),
        payments_cents=st.lists(st.integers(min_value=0, max_value=200_000), max_size=6),
    )
    def test_status_is_monotonic_in_paid_total(
        self, services, factory, amount_cents, payments_cents
    ):
        amount = Decimal(amount_cents) / 100
        milestone_id = factory.milestone(factory.project(), amount=amount)

        statuses = [services.milestones.payment_status(milestone_id)]
        for cents in payments_cents:
            paid = Decimal(cents) / 100
            factory.invoice(amount=paid, amount_paid=paid, milestone_id=milestone_id)
            statuses.append(services.milestones.payment_status(milestone_id))

        rank = {PaymentStatus.PENDING: 0, PaymentStatus.INVOICED: 1, PaymentStatus.PAID: 2}
        assert all(rank[b] >= rank[a] for a, b in zip(statuses, statuses[1:]))
        total_paid = sum((Decimal(c) / 100 for c in payments_cents), Decimal("0"))
        assert (statuses[-1] is PaymentStatus.PAID) == (
            bool(payments_cents) and total_paid >= amount
        )


class TestAccessors:
    def test_defaults(self, services, factory):
        milestone_id = factory.milestone(factory.project(), amount="125.50")

        assert services.milestones.work_status(milestone_id) == WorkStatus.PLANNED.value
        assert services.milestones.amount(milestone_id) == Decimal("125.50")
        assert not services.milestones.is_deposit(milestone_id)
        assert services.milestones.reference_number(milestone_id) == "PR-0001-01"

    def test_deposit_flag(self, services, factory):
        milestone_id = factory.milestone(factory.project(), is_deposit=True)
        assert services.milestones.is_deposit(milestone_id)

    def test_order_display(self, services, factory):
        project_id = factory.project()
        factory.milestone(project_id, order=1)
        second = factory.milestone(project_id, order=Decimal("2.0"))
        factory.milestone(project_id, order=Decimal("2.5"))

        assert services.milestones.order_display(second) == "2 / 3"

    def test_order_display_without_project(self, services, factory):
        milestone_id = factory.milestone(None, order=4)
        assert services.milestones.order_display(milestone_id) == "4"

    def test_hours_are_cached_and_invalidated(self, services, factory):
        milestone_id = factory.milestone(factory.project())
        factory.time_entry("1.5", related_milestone=milestone_id)

        assert services.milestones.total_hours(milestone_id) == Decimal("1.50")

        factory.time_entry("0.25", related_milestone=milestone_id)
        assert services.milestones.total_hours(milestone_id) == Decimal("1.75")

    def test_milestones_for_project_by_order(self, services, factory, store):
        project_id = factory.project()
        third = factory.milestone(project_id, order=3)
        first = factory.milestone(project_id, order=1)
        trashed = factory.milestone(project_id, order=2)
        store.trash(EntityType.MILESTONE, trashed)

        ids = [m.id for m in services.milestones.milestones_for_project(project_id)]
        assert ids == [first, third]
