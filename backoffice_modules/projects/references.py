"""
Reference Numbers (``backoffice_modules.projects.references``).

Responsibility
--------------
Assigns the human-readable identifiers of projects (``PR-0001``),
milestones (``PR-0001-01``, ``PR-0001-01.5``) and project reports
(``RR-2412-001``).

Architecture position
---------------------
**Modules layer** -- pure formatting functions at module level, plus
``ReferenceNumberService`` which reads the store and allocates numbers
from the kernel ``SequenceService``.

Invariants enforced
-------------------
* A reference is assigned once.  Every ``assign_*`` call is a no-op when
  the entity already has one.
* Project numbers come from a locked counter floored at the highest
  ``PR-`` number already stored (trashed projects included), so
  concurrent creations never share a number and a counter introduced over
  existing data continues after it.
* A milestone reference is its project's reference plus the formatted
  order; it is only assigned once the project has a reference.

Failure modes
-------------
* Missing project, project reference or milestone order
  -> ``milestone_reference_skipped`` warning; the milestone keeps no
  reference until a later save.  Nothing is raised to the caller.
* Store failures propagate.

Audit relevance
---------------
``reference_assigned`` is logged with the entity type, id and reference.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import ROUND_FLOOR, Decimal

from sqlalchemy.orm import Session

from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.deadline import Deadline
from backoffice_kernel.domain.values import EntityType, coerce_id, to_date, to_decimal
from backoffice_kernel.exceptions import EntityNotFoundError, MissingReferenceInputError
from backoffice_kernel.logging_config import LogContext, get_logger
from backoffice_kernel.services.sequence_service import SequenceService
from backoffice_kernel.store import Filter, ObjectStore, WriteScope
from backoffice_modules.projects.models import ReportReference

logger = get_logger("modules.projects.references")

PROJECT_PREFIX = "PR-"
REPORT_PREFIX = "RR"
REFERENCE_FIELD = "reference_number"
REPORT_NUMBER_FIELD = "report_number"

_PROJECT_REFERENCE_RE = re.compile(r"^PR-(\d+)$")
_REPORT_NUMBER_RE = re.compile(r"^(RR)-(\d{4})-(\d{3})$")


# ---------------------------------------------------------------------------
# Pure formatting
# ---------------------------------------------------------------------------


def format_project_reference(number: int) -> str:
    return f"{PROJECT_PREFIX}{number:04d}"


def project_reference_number(reference: str | None) -> int | None:
    """``"PR-0042"`` -> 42; anything else -> None."""
    match = _PROJECT_REFERENCE_RE.match(reference or "")
    return int(match.group(1)) if match else None


def format_milestone_order(order) -> str:
    """
    Zero-pad the whole part to two digits and keep any fraction.

    ``1`` -> ``"01"``, ``1.5`` -> ``"01.5"``, ``10`` -> ``"10"``,
    ``2.75`` -> ``"02.75"``.
    """
    value = to_decimal(order)
    whole = value.to_integral_value(rounding=ROUND_FLOOR)
    fraction = value - whole
    formatted = f"{int(whole):02d}"
    if fraction > 0:
        formatted += format(fraction.normalize(), "f").lstrip("0")
    return formatted


def generate_milestone_reference(project_reference: str, order) -> str:
    return f"{project_reference}-{format_milestone_order(order)}"


def format_report_reference(yymm: str, sequence: int) -> str:
    return f"{REPORT_PREFIX}-{yymm}-{sequence:03d}"


def parse_report_number(report_number: str | None) -> ReportReference | None:
    match = _REPORT_NUMBER_RE.match(report_number or "")
    if match is None:
        return None
    return ReportReference(prefix=match.group(1), yymm=match.group(2), sequence=int(match.group(3)))


def month_year_from_report_number(report_number: str | None) -> str:
    """``"RR-2412-003"`` -> ``"December 2024"``; ``""`` when it does not parse."""
    parts = parse_report_number(report_number)
    if parts is None:
        return ""
    try:
        first = date(2000 + int(parts.yymm[:2]), int(parts.yymm[2:]), 1)
    except ValueError:
        return ""
    return first.strftime("%B %Y")


def _has_order(order) -> bool:
    return order not in (None, "") and to_decimal(order) != 0


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ReferenceNumberService:
    """
    Allocates and assigns reference numbers.

    Contract
    --------
    * ``assign_*`` methods return the assigned reference, or None when
      nothing was written (already set, or inputs missing).
    * ``next_*`` methods consume a number; ``peek_next_project_reference``
      does not.

    Guarantees
    ----------
    * Numbers are allocated inside the caller's transaction; a rolled-back
      transaction releases its number.

    Non-goals
    ---------
    * Does NOT renumber.  References are immutable once written.
    """

    def __init__(
        self,
        store: ObjectStore,
        session: Session,
        clock: Clock | None = None,
        timezone: str = "UTC",
    ):
        self._store = store
        self._sequences = SequenceService(session)
        self._clock = clock or SystemClock()
        self._timezone = timezone

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def _highest_project_number(self, deadline: Deadline | None) -> int:
        ids = self._store.find(
            EntityType.PROJECT,
            [Filter.ne(REFERENCE_FIELD, None)],
            include_trashed=True,
            deadline=deadline,
        )
        numbers = [
            project_reference_number(doc.get(REFERENCE_FIELD))
            for doc in self._store.get_many(EntityType.PROJECT, ids, deadline=deadline)
        ]
        return max((n for n in numbers if n is not None), default=0)

    def peek_next_project_reference(self, *, deadline: Deadline | None = None) -> str:
        """The reference the next project would get, without consuming it."""
        current = self._sequences.current_value(SequenceService.PROJECT_REFERENCE) or 0
        return format_project_reference(max(current, self._highest_project_number(deadline)) + 1)

    def next_project_reference(self, *, deadline: Deadline | None = None) -> str:
        floor = self._highest_project_number(deadline)
        number = self._sequences.next_value(SequenceService.PROJECT_REFERENCE, floor=floor)
        return format_project_reference(number)

    def assign_project_reference(
        self,
        project_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> str | None:
        with LogContext.bind(entity_type=EntityType.PROJECT.value, entity_id=str(project_id)):
            project = self._store.get(EntityType.PROJECT, project_id, deadline=deadline)
            if project.get(REFERENCE_FIELD):
                return None
            reference = self.next_project_reference(deadline=deadline)
            self._store.set_field(
                EntityType.PROJECT, project_id, REFERENCE_FIELD, reference,
                scope=scope, deadline=deadline,
            )
            self._log_assigned(reference)
            return reference

    # ------------------------------------------------------------------
    # Milestones
    # ------------------------------------------------------------------

    def generate_milestone_reference_for_project(
        self, project_id: int, order, *, deadline: Deadline | None = None
    ) -> str | None:
        """The reference a milestone at ``order`` would get; None if the project has none."""
        try:
            project = self._store.get(EntityType.PROJECT, project_id, deadline=deadline)
        except EntityNotFoundError:
            return None
        project_reference = project.get(REFERENCE_FIELD)
        if not project_reference:
            return None
        return generate_milestone_reference(project_reference, order)

    def _milestone_reference(self, milestone_id: int, deadline: Deadline | None) -> str | None:
        """
        Build the reference for an unreferenced milestone.

        Raises:
            MissingReferenceInputError: project, project reference or order missing.
        """
        milestone = self._store.get(EntityType.MILESTONE, milestone_id, deadline=deadline)
        if milestone.get(REFERENCE_FIELD):
            return None

        project_id = coerce_id(milestone.get("project_id"))
        if project_id is None:
            raise MissingReferenceInputError(milestone_id, "project")
        try:
            project = self._store.get(EntityType.PROJECT, project_id, deadline=deadline)
        except EntityNotFoundError:
            raise MissingReferenceInputError(milestone_id, "project") from None
        project_reference = project.get(REFERENCE_FIELD)
        if not project_reference:
            raise MissingReferenceInputError(milestone_id, "project reference")

        order = milestone.get("order")
        if not _has_order(order):
            raise MissingReferenceInputError(milestone_id, "order")

        return generate_milestone_reference(project_reference, order)

    def assign_milestone_reference(
        self,
        milestone_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> str | None:
        with LogContext.bind(entity_type=EntityType.MILESTONE.value, entity_id=str(milestone_id)):
            try:
                reference = self._milestone_reference(milestone_id, deadline)
            except MissingReferenceInputError as exc:
                logger.warning(
                    "milestone_reference_skipped",
                    extra={"milestone_id": milestone_id, "missing": exc.missing},
                )
                return None
            if reference is None:
                return None
            self._store.set_field(
                EntityType.MILESTONE, milestone_id, REFERENCE_FIELD, reference,
                scope=scope, deadline=deadline,
            )
            self._log_assigned(reference)
            return reference

    # ------------------------------------------------------------------
    # Project reports
    # ------------------------------------------------------------------

    def _highest_report_sequence(self, yymm: str, deadline: Deadline | None) -> int:
        ids = self._store.find(
            EntityType.PROJECT_REPORT,
            [Filter.ne(REPORT_NUMBER_FIELD, None)],
            deadline=deadline,
        )
        sequences = [
            parts.sequence
            for doc in self._store.get_many(EntityType.PROJECT_REPORT, ids, deadline=deadline)
            if (parts := parse_report_number(doc.get(REPORT_NUMBER_FIELD))) is not None
            and parts.yymm == yymm
        ]
        return max(sequences, default=0)

    def next_report_reference(
        self, report_date=None, *, deadline: Deadline | None = None
    ) -> str:
        """Next ``RR-YYMM-XXX`` for the month of ``report_date`` (today when empty)."""
        when = to_date(report_date) or self._clock.today(self._timezone)
        yymm = when.strftime("%y%m")
        number = self._sequences.next_value(
            SequenceService.project_report_sequence(yymm),
            floor=self._highest_report_sequence(yymm, deadline),
        )
        return format_report_reference(yymm, number)

    def assign_report_reference(
        self,
        report_id: int,
        *,
        scope: WriteScope | None = None,
        deadline: Deadline | None = None,
    ) -> str | None:
        with LogContext.bind(
            entity_type=EntityType.PROJECT_REPORT.value, entity_id=str(report_id)
        ):
            report = self._store.get(EntityType.PROJECT_REPORT, report_id, deadline=deadline)
            if report.get(REPORT_NUMBER_FIELD):
                return None
            reference = self.next_report_reference(report.get("report_date"), deadline=deadline)
            self._store.set_field(
                EntityType.PROJECT_REPORT, report_id, REPORT_NUMBER_FIELD, reference,
                scope=scope, deadline=deadline,
            )
            self._log_assigned(reference)
            return reference

    @staticmethod
    def _log_assigned(reference: str) -> None:
        # entity_type and entity_id come from the bound LogContext.
        logger.info("reference_assigned", extra={"reference": reference})
