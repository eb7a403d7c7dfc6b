"""
Project Domain Models (``backoffice_modules.projects.models``).

Responsibility
--------------
Status vocabularies for projects and milestones, and the frozen value
objects returned by the progress calculator and reference parser.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* Monetary and hour fields use ``Decimal`` -- NEVER ``float``.
* ``PaymentStatus`` is never stored; it is only ever computed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class ProjectStatus(str, Enum):
    ACTIVE = "Active"
    WAITING_ON_CLIENT = "Waiting on Client"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


CLOSED_PROJECT_STATUSES = (ProjectStatus.COMPLETED, ProjectStatus.CANCELLED)

# Statuses listed on the workbench, in display order.
WORKBENCH_PROJECT_STATUS_ORDER = {
    ProjectStatus.ACTIVE.value: 1,
    ProjectStatus.WAITING_ON_CLIENT.value: 2,
    ProjectStatus.ON_HOLD.value: 3,
}


class WorkStatus(str, Enum):
    PLANNED = "Planned"
    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"
    WAITING_FOR_CLIENT = "Waiting for Client"
    COMPLETED = "Completed"


class PaymentStatus(str, Enum):
    """Derived from linked invoices; see ``MilestoneService.payment_status``."""

    PENDING = "Pending"
    INVOICED = "Invoiced"
    PAID = "Paid"


@dataclass(frozen=True)
class ReportReference:
    """A parsed ``RR-YYMM-XXX`` project report number."""

    prefix: str
    yymm: str
    sequence: int


@dataclass(frozen=True)
class MilestoneProgress:
    completed: int
    total: int
    percent: Decimal


@dataclass(frozen=True)
class PaymentProgress:
    paid: Decimal
    total: Decimal
    percent: Decimal


@dataclass(frozen=True)
class InvoicedProgress:
    invoiced: Decimal
    total: Decimal
    percent: Decimal


@dataclass(frozen=True)
class MilestonePaymentCounts:
    pending: int
    invoiced: int
    paid: int
    total: int


@dataclass(frozen=True)
class ProjectSummary:
    milestones: MilestoneProgress
    payment: PaymentProgress
    invoiced: InvoicedProgress
    milestone_payments: MilestonePaymentCounts
    hours: Decimal
    budget: Decimal
