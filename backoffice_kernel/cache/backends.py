"""
Cache storage backends.

``MemoryCacheBackend`` keeps envelopes in a process-local dict; it is the
default and the test backend.  ``SqlCacheBackend`` persists envelopes in the
``cache_entries`` table so several workers share one cache.

Backends only store and evict; expiry is decided by the ``Cache`` facade
against the injected clock.  Backend failures raise ``CacheBackendError``,
which the facade logs and treats as a miss.
"""

from __future__ import annotations

import pickle
import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from sqlalchemy import DateTime, LargeBinary, String, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, Session, mapped_column

from backoffice_kernel.cache.envelope import CacheEnvelope
from backoffice_kernel.db.base import Base
from backoffice_kernel.exceptions import CacheBackendError


class CacheBackend(ABC):
    @abstractmethod
    def load(self, key: str) -> CacheEnvelope | None:
        """Return the stored envelope or None."""

    @abstractmethod
    def store(self, key: str, envelope: CacheEnvelope) -> None: ...

    @abstractmethod
    def remove(self, key: str) -> bool: ...

    @abstractmethod
    def remove_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; return the count."""

    @abstractmethod
    def clear(self) -> int: ...

    def joins_transaction_of(self, session: Session) -> bool:
        """True when writes land in ``session``'s transaction and roll back with it."""
        return False


class MemoryCacheBackend(CacheBackend):
    def __init__(self) -> None:
        self._entries: dict[str, CacheEnvelope] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> CacheEnvelope | None:
        with self._lock:
            return self._entries.get(key)

    def store(self, key: str, envelope: CacheEnvelope) -> None:
        with self._lock:
            self._entries[key] = envelope

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def remove_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)


class CacheEntryRecord(Base):
    """One cached value, pickled."""

    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlCacheBackend(CacheBackend):
    """
    Cache rows in ``cache_entries``.

    Each write runs in a SAVEPOINT so a failing cache write never poisons
    the caller's transaction.  Rows become visible to other workers when
    the caller commits.
    """

    def __init__(self, session: Session):
        self._session = session

    def joins_transaction_of(self, session: Session) -> bool:
        return session is self._session

    def load(self, key: str) -> CacheEnvelope | None:
        try:
            row = self._session.execute(
                select(CacheEntryRecord).where(CacheEntryRecord.key == key)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise CacheBackendError("load", key, str(exc)) from exc
        if row is None:
            return None
        try:
            data = pickle.loads(row.payload)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as exc:
            raise CacheBackendError("load", key, f"corrupt payload: {exc}") from exc
        return CacheEnvelope(
            data=data,
            cached_at=_as_utc(row.cached_at),
            expires_at=_as_utc(row.expires_at),
        )

    def store(self, key: str, envelope: CacheEnvelope) -> None:
        payload = pickle.dumps(envelope.data)
        savepoint = self._session.begin_nested()
        try:
            row = self._session.execute(
                select(CacheEntryRecord).where(CacheEntryRecord.key == key)
            ).scalar_one_or_none()
            if row is None:
                row = CacheEntryRecord(key=key)
                self._session.add(row)
            row.payload = payload
            row.cached_at = envelope.cached_at
            row.expires_at = envelope.expires_at
            self._session.flush()
            savepoint.commit()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            raise CacheBackendError("store", key, str(exc)) from exc

    def remove(self, key: str) -> bool:
        return self._delete_where(CacheEntryRecord.key == key, "remove", key) > 0

    def remove_prefix(self, prefix: str) -> int:
        return self._delete_where(
            CacheEntryRecord.key.like(_escape_like(prefix) + "%", escape="\\"),
            "remove_prefix",
            prefix,
        )

    def clear(self) -> int:
        return self._delete_where(CacheEntryRecord.key.is_not(None), "clear", "*")

    def _delete_where(self, condition, operation: str, key: str) -> int:
        savepoint = self._session.begin_nested()
        try:
            result = self._session.execute(
                delete(CacheEntryRecord)
                .where(condition)
                .execution_options(synchronize_session=False)
            )
            savepoint.commit()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            raise CacheBackendError(operation, key, str(exc)) from exc
        return result.rowcount or 0
