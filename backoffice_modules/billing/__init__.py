"""
Billing: invoices, line items, monthly report hours and billing alerts.

Pure hour arithmetic lives in ``hours``; everything that touches the store
is a service class taking the store (and cache, settings, clock) in its
constructor.
"""

from backoffice_modules.billing.alerts import BillingAlerts
from backoffice_modules.billing.invoices import InvoiceService
from backoffice_modules.billing.line_items import LineItemService, build_line_item_title
from backoffice_modules.billing.models import (
    FreeHoursProgress,
    InvoiceStatus,
    InvoiceType,
    LineType,
    PaymentResult,
    ProgressColor,
    ReportWindow,
)
from backoffice_modules.billing.monthly_reports import MonthlyReportService

__all__ = [
    "BillingAlerts",
    "FreeHoursProgress",
    "InvoiceService",
    "InvoiceStatus",
    "InvoiceType",
    "LineItemService",
    "LineType",
    "MonthlyReportService",
    "PaymentResult",
    "ProgressColor",
    "ReportWindow",
    "build_line_item_title",
]
