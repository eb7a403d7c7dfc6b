"""
Project progress -- milestone completion, payment and invoicing progress.

Percentages are rounded to one decimal place and are 0 when the
denominator is 0.
"""

from __future__ import annotations

from backoffice_kernel.domain.deadline import Deadline
from backoffice_modules.billing.hours import percent_of
from backoffice_modules.projects.milestones import MilestoneService
from backoffice_modules.projects.models import (
    InvoicedProgress,
    MilestonePaymentCounts,
    MilestoneProgress,
    PaymentProgress,
    PaymentStatus,
    ProjectSummary,
    WorkStatus,
)
from backoffice_modules.projects.service import ProjectService


class ProgressCalculator:
    """Progress figures for one project."""

    def __init__(self, projects: ProjectService, milestones: MilestoneService):
        self._projects = projects
        self._milestones = milestones

    def milestone_progress(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> MilestoneProgress:
        milestones = self._projects.milestones(project_id, deadline=deadline)
        completed = sum(
            1 for m in milestones if m.get("work_status") == WorkStatus.COMPLETED.value
        )
        total = len(milestones)
        return MilestoneProgress(
            completed=completed,
            total=total,
            percent=percent_of(completed, total),
        )

    def payment_progress(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> PaymentProgress:
        total = self._projects.project_total(project_id, deadline=deadline)
        paid = self._projects.paid_total(project_id, deadline=deadline)
        return PaymentProgress(paid=paid, total=total, percent=percent_of(paid, total))

    def invoiced_progress(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> InvoicedProgress:
        total = self._projects.project_total(project_id, deadline=deadline)
        invoiced = self._projects.invoiced_total(project_id, deadline=deadline)
        return InvoicedProgress(
            invoiced=invoiced, total=total, percent=percent_of(invoiced, total)
        )

    def milestone_payment_counts(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> MilestonePaymentCounts:
        milestones = self._projects.milestones(project_id, deadline=deadline)
        statuses = [self._milestones.payment_status(m, deadline=deadline) for m in milestones]
        return MilestonePaymentCounts(
            pending=statuses.count(PaymentStatus.PENDING),
            invoiced=statuses.count(PaymentStatus.INVOICED),
            paid=statuses.count(PaymentStatus.PAID),
            total=len(milestones),
        )

    def project_summary(
        self, project_id: int, *, deadline: Deadline | None = None
    ) -> ProjectSummary:
        return ProjectSummary(
            milestones=self.milestone_progress(project_id, deadline=deadline),
            payment=self.payment_progress(project_id, deadline=deadline),
            invoiced=self.invoiced_progress(project_id, deadline=deadline),
            milestone_payments=self.milestone_payment_counts(project_id, deadline=deadline),
            hours=self._projects.total_hours(project_id, deadline=deadline),
            budget=self._projects.project_total(project_id, deadline=deadline),
        )
