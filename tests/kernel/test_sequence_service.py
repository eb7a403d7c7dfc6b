"""
Tests for SequenceService.

Validates:
- Strictly increasing values per named sequence
- ``floor`` lifts the counter over numbers already in use
- Counters are independent per name
- Rolled-back allocations are released
"""

from __future__ import annotations

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from backoffice_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    def test_first_value_is_one(self, session):
        sequences = SequenceService(session)
        assert sequences.next_value("project_reference") == 1
        assert sequences.next_value("project_reference") == 2

    def test_floor_skips_numbers_in_use(self, session):
        sequences = SequenceService(session)
        sequences.next_value("project_reference")
        assert sequences.next_value("project_reference", floor=41) == 42
        # A lower floor never moves the counter backwards.
        assert sequences.next_value("project_reference", floor=3) == 43

    def test_floor_on_new_counter(self, session):
        sequences = SequenceService(session)
        assert sequences.next_value("project_report_2412", floor=7) == 8

    def test_sequences_are_independent(self, session):
        sequences = SequenceService(session)
        sequences.next_value(SequenceService.project_report_sequence("2412"))
        sequences.next_value(SequenceService.project_report_sequence("2412"))
        assert sequences.next_value(SequenceService.project_report_sequence("2501")) == 1

    def test_current_value_does_not_increment(self, session):
        sequences = SequenceService(session)
        assert sequences.current_value("project_reference") is None
        sequences.next_value("project_reference")
        assert sequences.current_value("project_reference") == 1
        assert sequences.current_value("project_reference") == 1

    def test_initialize_sequences_is_idempotent(self, session):
        sequences = SequenceService(session)
        sequences.initialize_sequences()
        sequences.next_value(SequenceService.PROJECT_REFERENCE)
        sequences.initialize_sequences()
        assert sequences.current_value(SequenceService.PROJECT_REFERENCE) == 1

    def test_reset(self, session):
        sequences = SequenceService(session)
        sequences.next_value("project_reference")
        sequences.reset("project_reference", 10)
        assert sequences.next_value("project_reference") == 11

    def test_rolled_back_value_is_released(self, session):
        sequences = SequenceService(session)
        sequences.next_value("project_reference")

        savepoint = session.begin_nested()
        assert sequences.next_value("project_reference") == 2
        savepoint.rollback()

        assert sequences.next_value("project_reference") == 2

    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(floors=st.lists(st.integers(min_value=0, max_value=500), min_size=1, max_size=8))
    def test_values_strictly_increase_whatever_the_floors(self, session, floors):
        sequences = SequenceService(session)
        name = f"fuzz_{len(floors)}_{sum(floors)}"
        sequences.reset(name, 0)

        values = [sequences.next_value(name, floor=f) for f in floors]

        assert all(b > a for a, b in zip(values, values[1:]))
        assert all(v > f for v, f in zip(values, floors))
