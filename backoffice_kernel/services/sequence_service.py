"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for reference-number series
    (project references, per-month project report references).  Uses a
    dedicated counter table with row-level locking (``SELECT ... FOR
    UPDATE``) so two concurrent creations never receive the same number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the reference number service in ``backoffice_modules.projects``.

Invariants enforced:
    - Monotonicity: the locked counter row is the source of truth for the
      next value.  Existing data is honoured through ``floor``: the caller
      passes the highest number already in use and the counter continues
      after it.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from backoffice_kernel.db.base import Base
from backoffice_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    # e.g. "project_reference", "project_report_2511"
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly-monotonic
        integer value.  The increment is committed with the caller's
        transaction.

    Guarantees:
        - Concurrency safety: ``SELECT ... FOR UPDATE`` serializes
          concurrent allocations for the same sequence.
        - Never returns a value at or below ``floor``.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT scan entity data; the caller computes ``floor``.
    """

    PROJECT_REFERENCE = "project_reference"
    PROJECT_REPORT_PREFIX = "project_report_"

    def __init__(self, session: Session):
        self._session = session

    @classmethod
    def project_report_sequence(cls, yymm: str) -> str:
        return f"{cls.PROJECT_REPORT_PREFIX}{yymm}"

    def next_value(self, sequence_name: str, floor: int = 0) -> int:
        """
        Get the next value for a named sequence.

        Locks the counter row (creating it on first use), sets it to
        ``max(current, floor) + 1`` and returns the new value.

        Args:
            sequence_name: Name of the sequence.
            floor: Highest value already in use outside the counter.

        Returns:
            The next sequence value (always > 0 and > floor).
        """
        self._session.expire_all()

        counter = self._locked_counter(sequence_name)

        if counter is None:
            # Another writer may create the same counter; the savepoint
            # keeps the caller's other work if our insert loses.
            savepoint = self._session.begin_nested()
            try:
                value = max(floor, 0) + 1
                counter = SequenceCounter(name=sequence_name, current_value=value)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": value},
                )
                return value
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                self._session.expire_all()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value = max(counter.current_value, floor) + 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if the sequence doesn't exist."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: tests and data repair only.  Resetting a live sequence can
        hand out a reference number twice.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=value)
            self._session.add(counter)
        else:
            counter.current_value = value

        self._session.flush()

    def initialize_sequences(self, names: tuple[str, ...] = (PROJECT_REFERENCE,)) -> None:
        """Create the well-known counters at zero if they do not exist."""
        for name in names:
            existing = self._session.execute(
                select(SequenceCounter)
                .where(SequenceCounter.name == name)
            ).scalar_one_or_none()

            if existing is None:
                self._session.add(SequenceCounter(name=name, current_value=0))

        self._session.flush()

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
