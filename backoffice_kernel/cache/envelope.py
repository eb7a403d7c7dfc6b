"""Stored cache value wrapper and the miss sentinel."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


class _Missing:
    """Returned by ``Cache.get`` on a miss; distinct from a cached None."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"

    def __reduce__(self):
        return (_Missing, ())


MISSING = _Missing()


@dataclass(frozen=True)
class CacheEnvelope:
    """
    A cached value with its timestamps.

    The envelope's presence is the hit signal, so ``None``, ``0`` and
    ``False`` are cacheable values.
    """

    data: Any
    cached_at: datetime
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at
