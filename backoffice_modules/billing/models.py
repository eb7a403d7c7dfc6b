"""
Billing Domain Models (``backoffice_modules.billing.models``).

Responsibility
--------------
Status vocabularies and frozen value objects for invoices, line items,
monthly reports and billing alerts.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary and hour fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum


class InvoiceStatus(str, Enum):
    DRAFT = "Draft"
    PENDING = "Pending"
    PAID = "Paid"
    PARTIAL = "Partial"
    OVERDUE = "Overdue"
    VOID = "Void"
    CREDITED = "Credited"


# Statuses an invoice can no longer become overdue (or be paid) in.
SETTLED_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.VOID, InvoiceStatus.CREDITED})

# Statuses excluded from invoiced totals.
CANCELLED_STATUSES = frozenset({InvoiceStatus.VOID, InvoiceStatus.CREDITED})


class InvoiceType(str, Enum):
    STANDARD = "Standard"
    MILESTONE = "Milestone"
    CLOSEOUT = "Closeout"
    DEPOSIT = "Deposit"
    CREDIT = "Credit"


class LineType:
    SUPPORT = "Support"
    SUPPORT_NON_BILLABLE = "Support (Non-Billable)"
    LATE_FEE = "Late Fee"

    # Line types whose quantity is hours.
    HOURLY = (SUPPORT, SUPPORT_NON_BILLABLE)


class ProgressColor(str, Enum):
    BLUE = "blue"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"


@dataclass(frozen=True)
class ReportWindow:
    """Calendar-day bounds of a report month, both inclusive."""

    start: date
    end: date


@dataclass(frozen=True)
class FreeHoursProgress:
    used: Decimal
    limit: Decimal
    percent: Decimal      # capped at 100, whole percent
    percent_raw: Decimal  # uncapped, one decimal place
    remaining: Decimal


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of ``InvoiceService.record_payment``."""

    invoice_id: int
    amount: Decimal
    amount_paid: Decimal
    balance: Decimal
    status: str
    payment_date: date | None = None


@dataclass(frozen=True)
class OverdueInvoiceAlert:
    invoice_id: int
    invoice_number: str
    organization_name: str
    balance: Decimal
    days_overdue: int
    has_late_fee: bool


@dataclass(frozen=True)
class DueSoonAlert:
    invoice_id: int
    invoice_number: str
    organization_name: str
    amount: Decimal
    days_until: int


@dataclass(frozen=True)
class ReportInvoiceAlert:
    report_id: int
    report_month: str
    organization_name: str


@dataclass(frozen=True)
class NewRequestAlert:
    request_id: int
    reference_number: str
    subject: str
    organization_name: str
