"""
Projects: reference numbers, project and milestone rollups, progress.

Depends on ``backoffice_modules.billing`` for invoice lookups; billing
never imports from here.
"""

from backoffice_modules.projects.milestones import MilestoneService
from backoffice_modules.projects.models import (
    PaymentStatus,
    ProjectStatus,
    ProjectSummary,
    WorkStatus,
)
from backoffice_modules.projects.progress import ProgressCalculator
from backoffice_modules.projects.references import (
    ReferenceNumberService,
    format_milestone_order,
    generate_milestone_reference,
    month_year_from_report_number,
    parse_report_number,
)
from backoffice_modules.projects.service import ProjectService

__all__ = [
    "MilestoneService",
    "PaymentStatus",
    "ProgressCalculator",
    "ProjectService",
    "ProjectStatus",
    "ProjectSummary",
    "ReferenceNumberService",
    "WorkStatus",
    "format_milestone_order",
    "generate_milestone_reference",
    "month_year_from_report_number",
    "parse_report_number",
]
