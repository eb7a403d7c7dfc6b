"""
Monthly Report Hours -- Pure Functions.

All functions are pure: no I/O, no side effects, no database.
They compute billing hours, free-hours usage and overage from inputs.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import datetime
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from backoffice_kernel.domain.values import (
    ZERO,
    is_numeric,
    round_decimal,
    round_hours,
    round_money,
    to_decimal,
)
from backoffice_kernel.exceptions import UnparsableReportMonthError
from backoffice_modules.billing.models import FreeHoursProgress, ProgressColor, ReportWindow

MINUTES_PER_INCREMENT = Decimal("15")
MINUTES_PER_HOUR = Decimal("60")
HUNDRED = Decimal("100")

REPORT_MONTH_FORMATS = ("%B %Y", "%b %Y", "%Y-%m", "%m/%Y")


def round_to_quarter_hour(hours) -> Decimal:
    """Round UP to the next 15 minutes.  0.1 -> 0.25, 1.0 -> 1.0, 1.26 -> 1.5."""
    minutes = to_decimal(hours) * MINUTES_PER_HOUR
    increments = (minutes / MINUTES_PER_INCREMENT).to_integral_value(rounding=ROUND_CEILING)
    return round_hours(increments * MINUTES_PER_INCREMENT / MINUTES_PER_HOUR)


def is_billable(value) -> bool:
    """Only an explicit false marks an entry non-billable; a missing flag bills."""
    return value not in (False, 0, "0")


def sum_quarter_hours(hours: Iterable) -> Decimal:
    """Sum of quarter-hour-rounded values, skipping non-numeric ones."""
    total = ZERO
    for value in hours:
        if is_numeric(value):
            total += round_to_quarter_hour(value)
    return round_hours(total)


def parse_report_month(report_month: str, report_id: int | None = None) -> ReportWindow:
    """
    Parse ``"November 2025"`` (or ``"Nov 2025"``, ``"2025-11"``, ``"11/2025"``)
    into the first and last day of that month.

    Raises:
        UnparsableReportMonthError: if no format matches.
    """
    text = (report_month or "").strip()
    for fmt in REPORT_MONTH_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        last_day = calendar.monthrange(parsed.year, parsed.month)[1]
        start = parsed.date().replace(day=1)
        return ReportWindow(start=start, end=start.replace(day=last_day))
    raise UnparsableReportMonthError(report_month, report_id)


def free_hours_progress(used: Decimal, limit: Decimal) -> FreeHoursProgress:
    percent = used / limit * HUNDRED if limit > 0 else ZERO
    return FreeHoursProgress(
        used=used,
        limit=limit,
        percent=min(round_decimal(percent, 0), HUNDRED),
        percent_raw=round_decimal(percent, 1),
        remaining=max(ZERO, limit - used),
    )


def progress_color(percent_raw: Decimal) -> ProgressColor:
    if percent_raw >= 100:
        return ProgressColor.RED
    if percent_raw >= 81:
        return ProgressColor.ORANGE
    if percent_raw >= 51:
        return ProgressColor.YELLOW
    return ProgressColor.BLUE


def overage_hours(used: Decimal, limit: Decimal) -> Decimal:
    """max(0, round(used - limit, 2)).  2.0 free, 5.25 used -> 3.25."""
    return max(ZERO, round_hours(used - limit))


def overage_amount(hours: Decimal, rate: Decimal) -> Decimal:
    return round_money(hours * rate)


def percent_of(part, whole) -> Decimal:
    """Percentage to one decimal place; 0 when ``whole`` is not positive."""
    part, whole = to_decimal(part), to_decimal(whole)
    if whole <= 0:
        return ZERO
    return round_decimal(part / whole * HUNDRED, 1, ROUND_HALF_UP)
