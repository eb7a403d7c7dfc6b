"""Pure domain primitives: clock, deadline, entity types and decimal helpers."""

from backoffice_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from backoffice_kernel.domain.deadline import Deadline
from backoffice_kernel.domain.values import EntityType

__all__ = [
    "Clock",
    "Deadline",
    "DeterministicClock",
    "EntityType",
    "SystemClock",
]
