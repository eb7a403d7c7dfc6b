"""
Monthly Report Service (``backoffice_modules.billing.monthly_reports``).

Responsibility
--------------
Resolves a monthly report's time entries (service requests of the
report's organization, entries dated inside the report month), totals
their quarter-hour-rounded hours, and applies the free-hours allowance
and overage rate.

Architecture position
---------------------
**Modules layer** -- store queries plus the pure functions of
``backoffice_modules.billing.hours``.  Hour totals are cached under the
``requests_summary`` namespace.

Invariants enforced
-------------------
* Entries are associated with a report ONLY through organization and
  calendar month; the report stores no link to its entries.
* Every entry is rounded up to the quarter hour before summing.
* An entry is non-billable only when its ``billable`` flag is explicitly
  false; entries without the flag bill.
* Free-hours limit: the report's non-zero override, else the
  organization's, else ``settings.default_free_hours``.

Failure modes
-------------
* Unparsable ``report_month``  -> ``report_month_unparsable`` warning,
  and every hour, progress and overage value degrades to zero.
* Store failures propagate; they are never reported as zero hours.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from backoffice_config.schema import BillingSettings
from backoffice_kernel.cache import Cache, CacheKeys
from backoffice_kernel.domain.deadline import Deadline, resolve
from backoffice_kernel.domain.values import (
    EntityType,
    coerce_id,
    is_numeric,
    to_decimal,
)
from backoffice_kernel.exceptions import EntityNotFoundError, UnparsableReportMonthError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.store import Document, Filter, ObjectStore
from backoffice_modules.billing import hours
from backoffice_modules.billing.models import FreeHoursProgress, ProgressColor, ReportWindow

logger = get_logger("modules.billing.monthly_reports")

BILLABLE = "billable"
ALL = "all"


class MonthlyReportService:
    """
    Hours, free-hours usage and overage for a monthly report.

    Contract
    --------
    * Every public method takes the report id.
    * Hour values are ``Decimal`` rounded to two places.

    Non-goals
    ---------
    * Does NOT create invoices for overage; billing alerts only flag
      reports that still need one.
    """

    def __init__(
        self,
        store: ObjectStore,
        cache: Cache,
        settings: BillingSettings | None = None,
    ):
        self._store = store
        self._cache = cache
        self._settings = settings or BillingSettings()

    def _report(self, report_id: int, deadline: Deadline | None = None) -> Document:
        return self._store.get(EntityType.MONTHLY_REPORT, report_id, deadline=deadline)

    def report_month(self, report_id: int) -> str:
        return self._report(report_id).get("report_month") or ""

    def organization_id(self, report_id: int) -> int | None:
        return coerce_id(self._report(report_id).get("organization_id"))

    def report_window(
        self, report_id: int, *, deadline: Deadline | None = None
    ) -> ReportWindow | None:
        """First and last day of the report month, or None when it does not parse."""
        report_month = self._report(report_id, deadline).get("report_month")
        if not report_month:
            return None
        try:
            return hours.parse_report_month(report_month, report_id)
        except UnparsableReportMonthError as exc:
            logger.warning(
                "report_month_unparsable",
                extra={"report_id": report_id, "report_month": exc.report_month},
            )
            return None

    def time_entry_ids(self, report_id: int, *, deadline: Deadline | None = None) -> list[int]:
        """Entries of the organization's service requests inside the month, oldest first."""
        organization_id = coerce_id(self._report(report_id, deadline).get("organization_id"))
        if organization_id is None:
            return []
        window = self.report_window(report_id, deadline=deadline)
        if window is None:
            return []

        request_ids = self._store.find(
            EntityType.SERVICE_REQUEST,
            [Filter.eq("organization_id", organization_id)],
            deadline=deadline,
        )
        if not request_ids:
            return []

        return self._store.find(
            EntityType.TIME_ENTRY,
            [
                Filter.in_("related_service_request", request_ids),
                # Half-open, so entries stored with a time on the last day still match.
                Filter.ge("entry_date", window.start),
                Filter.lt("entry_date", window.end + timedelta(days=1)),
            ],
            order_by="entry_date",
            deadline=deadline,
        )

    def time_entries(self, report_id: int, *, deadline: Deadline | None = None) -> list[Document]:
        ids = self.time_entry_ids(report_id, deadline=deadline)
        return self._store.get_many(EntityType.TIME_ENTRY, ids, deadline=deadline)

    # ------------------------------------------------------------------
    # Hours
    # ------------------------------------------------------------------

    def total_billable_hours(self, report_id: int, *, deadline: Deadline | None = None) -> Decimal:
        key = CacheKeys.REPORT_HOURS.key(report_id=report_id, kind=BILLABLE)
        return self._cache.remember(
            key, lambda: self._sum_hours(report_id, True, deadline), deadline=deadline
        )

    def total_all_hours(self, report_id: int, *, deadline: Deadline | None = None) -> Decimal:
        key = CacheKeys.REPORT_HOURS.key(report_id=report_id, kind=ALL)
        return self._cache.remember(
            key, lambda: self._sum_hours(report_id, False, deadline), deadline=deadline
        )

    def _sum_hours(self, report_id: int, billable_only: bool, deadline: Deadline | None) -> Decimal:
        budget = resolve(deadline)
        values = []
        for entry in self.time_entries(report_id, deadline=deadline):
            budget.check("report_hours")
            if billable_only and not hours.is_billable(entry.get("billable")):
                continue
            values.append(entry.get("hours"))
        return hours.sum_quarter_hours(values)

    def free_hours_limit(self, report_id: int, *, deadline: Deadline | None = None) -> Decimal:
        report = self._report(report_id, deadline)
        override = report.get("free_hours_limit")
        if is_numeric(override) and to_decimal(override) != 0:
            return to_decimal(override)

        organization_id = coerce_id(report.get("organization_id"))
        if organization_id is not None:
            try:
                organization = self._store.get(
                    EntityType.ORGANIZATION, organization_id, deadline=deadline
                )
            except EntityNotFoundError:
                organization = None
            if organization is not None:
                org_limit = organization.get("free_hours_limit")
                if is_numeric(org_limit) and to_decimal(org_limit) != 0:
                    return to_decimal(org_limit)

        return self._settings.default_free_hours

    def free_hours_progress(
        self, report_id: int, *, deadline: Deadline | None = None
    ) -> FreeHoursProgress:
        return hours.free_hours_progress(
            self.total_billable_hours(report_id, deadline=deadline),
            self.free_hours_limit(report_id, deadline=deadline),
        )

    def progress_color(self, report_id: int, *, deadline: Deadline | None = None) -> ProgressColor:
        return hours.progress_color(
            self.free_hours_progress(report_id, deadline=deadline).percent_raw
        )

    def has_overage(self, report_id: int, *, deadline: Deadline | None = None) -> bool:
        used = self.total_billable_hours(report_id, deadline=deadline)
        return used > self.free_hours_limit(report_id, deadline=deadline)

    def overage_hours(self, report_id: int, *, deadline: Deadline | None = None) -> Decimal:
        return hours.overage_hours(
            self.total_billable_hours(report_id, deadline=deadline),
            self.free_hours_limit(report_id, deadline=deadline),
        )

    def overage_amount(
        self, report_id: int, rate=None, *, deadline: Deadline | None = None
    ) -> Decimal:
        """Overage hours times ``rate`` (default ``settings.hourly_rate``), to the cent."""
        rate = self.hourly_rate() if rate is None else to_decimal(rate)
        return hours.overage_amount(self.overage_hours(report_id, deadline=deadline), rate)

    def hourly_rate(self) -> Decimal:
        return self._settings.hourly_rate

    def remaining_free_hours(self, report_id: int, *, deadline: Deadline | None = None) -> Decimal:
        return self.free_hours_progress(report_id, deadline=deadline).remaining
