"""
Tests for the pure monthly-report hour functions.

Validates:
- Quarter-hour rounding always rounds up
- Report month parsing and its failure mode
- Free-hours progress, colour thresholds and overage
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from backoffice_kernel.exceptions import UnparsableReportMonthError
from backoffice_modules.billing import ProgressColor
from backoffice_modules.billing.hours import (
    free_hours_progress,
    is_billable,
    overage_amount,
    overage_hours,
    parse_report_month,
    percent_of,
    progress_color,
    round_to_quarter_hour,
    sum_quarter_hours,
)


class TestQuarterHourRounding:
    @pytest.mark.parametrize(
        "hours, expected",
        [
            ("0.1", "0.25"),
            ("0.25", "0.25"),
            ("1.0", "1.00"),
            ("1.26", "1.50"),
            ("2.01", "2.25"),
            ("0", "0"),
        ],
    )
    def test_rounds_up(self, hours, expected):
        assert round_to_quarter_hour(Decimal(hours)) == Decimal(expected)

    @given(st.decimals(min_value=0, max_value=1000, places=2))
    def test_never_rounds_down_and_adds_under_a_quarter(self, hours):
        rounded = round_to_quarter_hour(hours)
        assert rounded >= hours
        assert rounded - hours < Decimal("0.25")
        assert (rounded * 4) == (rounded * 4).to_integral_value()

    def test_sum_skips_non_numeric(self):
        assert sum_quarter_hours(["1.1", None, "", "n/a", Decimal("0.5")]) == Decimal("1.75")

    @pytest.mark.parametrize(
        "value, billable",
        [(None, True), (True, True), ("1", True), (1, True), (False, False), (0, False), ("0", False)],
    )
    def test_missing_flag_bills(self, value, billable):
        assert is_billable(value) is billable


class TestReportMonth:
    @pytest.mark.parametrize("text", ["November 2025", "Nov 2025", "2025-11", "11/2025", " November 2025 "])
    def test_formats(self, text):
        window = parse_report_month(text)
        assert window.start == date(2025, 11, 1)
        assert window.end == date(2025, 11, 30)

    def test_leap_february(self):
        assert parse_report_month("February 2024").end == date(2024, 2, 29)

    def test_unparsable(self):
        with pytest.raises(UnparsableReportMonthError) as exc_info:
            parse_report_month("Smarch 2025", report_id=7)
        assert exc_info.value.report_id == 7


class TestFreeHours:
    def test_progress_over_limit(self):
        progress = free_hours_progress(Decimal("5.25"), Decimal("2"))
        assert progress.percent == Decimal("100")
        assert progress.percent_raw == Decimal("262.5")
        assert progress.remaining == Decimal("0")

    def test_progress_under_limit(self):
        progress = free_hours_progress(Decimal("0.5"), Decimal("2"))
        assert progress.percent == Decimal("25")
        assert progress.remaining == Decimal("1.5")

    def test_zero_limit(self):
        progress = free_hours_progress(Decimal("1"), Decimal("0"))
        assert progress.percent == Decimal("0")
        assert progress.percent_raw == Decimal("0")

    @pytest.mark.parametrize(
        "percent, color",
        [
            ("0", ProgressColor.BLUE),
            ("50.9", ProgressColor.BLUE),
            ("51", ProgressColor.YELLOW),
            ("80.9", ProgressColor.YELLOW),
            ("81", ProgressColor.ORANGE),
            ("99.9", ProgressColor.ORANGE),
            ("100", ProgressColor.RED),
            ("262.5", ProgressColor.RED),
        ],
    )
    def test_colour_thresholds(self, percent, color):
        assert progress_color(Decimal(percent)) is color

    def test_overage(self):
        hours = overage_hours(Decimal("5.25"), Decimal("2.0"))
        assert hours == Decimal("3.25")
        assert overage_amount(hours, Decimal("30.00")) == Decimal("97.50")
        assert overage_hours(Decimal("1"), Decimal("2")) == Decimal("0")

    def test_percent_of(self):
        assert percent_of(1, 3) == Decimal("33.3")
        assert percent_of(2, 3) == Decimal("66.7")
        assert percent_of(5, 0) == Decimal("0")
