"""
Deadline -- caller-supplied time budget for store and cache calls.

Every object-store and cache call accepts an optional ``Deadline``.
Aggregate loops (per-milestone invoice sums, per-entry hour sums) call
``check()`` between iterations so an expired request stops instead of
finishing a computation nobody will read.
"""

from __future__ import annotations

import time

from backoffice_kernel.exceptions import DeadlineExceededError


class Deadline:
    """
    A point on the monotonic clock after which work must stop.

    ``Deadline.none()`` never expires; it is the default when the caller
    does not pass one.
    """

    __slots__ = ("_expires_at",)

    def __init__(self, expires_at: float | None):
        self._expires_at = expires_at

    @classmethod
    def after(cls, seconds: float) -> Deadline:
        return cls(time.monotonic() + seconds)

    @classmethod
    def none(cls) -> Deadline:
        return cls(None)

    @property
    def is_bounded(self) -> bool:
        return self._expires_at is not None

    def remaining(self) -> float | None:
        """Seconds left, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self, operation: str) -> None:
        """Raise DeadlineExceededError if the deadline has passed."""
        if self.expired():
            raise DeadlineExceededError(operation)


def resolve(deadline: Deadline | None) -> Deadline:
    return deadline if deadline is not None else Deadline.none()
