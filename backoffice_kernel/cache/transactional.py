"""
TransactionalCache -- a session-bound cache that only shares committed aggregates.

Responsibility:
    Fronts a backend shared between sessions (the process-wide memory
    backend).  Once a write in the session's transaction has invalidated a
    namespace, anything computed under that namespace reflects uncommitted
    rows.  Such values are held in a per-transaction buffer that only this
    session reads, and are published to the backend after the transaction
    commits.  A rollback discards them.

Architecture position:
    Kernel > Cache.  ``build_services`` uses it whenever the backend does
    not write inside the session's own transaction.

Invariants enforced:
    - Other sessions never read a value computed from uncommitted rows.
    - While the transaction is open, keys under an invalidated namespace
      are served from the buffer only; the shared backend may hold values
      other sessions computed before this transaction's writes.
    - On commit every invalidated namespace is flushed again before the
      buffer is published, so values cached from the pre-commit state in
      the meantime are evicted.
    - A rolled-back savepoint discards the buffer; the namespaces stay
      invalidated until the outer transaction ends.

Failure modes:
    - Backend failures while publishing are logged by ``Cache`` and the
      value is dropped; the next read recomputes it.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from backoffice_kernel.cache.backends import CacheBackend
from backoffice_kernel.cache.cache import DEFAULT_KEY_PREFIX, DEFAULT_TTL_SECONDS, Cache
from backoffice_kernel.cache.envelope import MISSING, CacheEnvelope
from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.domain.deadline import Deadline, resolve
from backoffice_kernel.logging_config import get_logger

logger = get_logger("kernel.cache.transactional")


class TransactionalCache(Cache):
    """``Cache`` whose writes under invalidated namespaces wait for commit."""

    def __init__(
        self,
        session: Session,
        backend: CacheBackend | None = None,
        clock: Clock | None = None,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        super().__init__(backend, clock, default_ttl, key_prefix)
        self._session = session
        self._invalidated: set[str] = set()
        self._pending: dict[str, CacheEnvelope] = {}
        event.listen(session, "after_commit", self._after_commit)
        event.listen(session, "after_soft_rollback", self._after_soft_rollback)
        event.listen(session, "after_transaction_end", self._after_transaction_end)

    def is_deferred(self, key: str) -> bool:
        """True when ``key`` falls under a namespace this transaction invalidated."""
        return any(key.startswith(prefix) for prefix in self._invalidated)

    def get(self, key: str, *, deadline: Deadline | None = None) -> Any:
        if not self.is_deferred(key):
            return super().get(key, deadline=deadline)
        resolve(deadline).check("cache.get")
        envelope = self._pending.get(key)
        if envelope is None or envelope.is_expired(self._clock.now()):
            return MISSING
        return envelope.data

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        if not self.is_deferred(key):
            return super().set(key, value, ttl)
        self._pending[key] = self._envelope(value, ttl)
        return True

    def delete(self, key: str) -> bool:
        held = self._pending.pop(key, None) is not None
        return super().delete(key) or held

    def flush_pattern(self, prefix: str) -> int:
        if self._session.in_transaction():
            self._invalidated.add(prefix)
        held = [key for key in self._pending if key.startswith(prefix)]
        for key in held:
            del self._pending[key]
        return super().flush_pattern(prefix) + len(held)

    def flush(self) -> int:
        held = len(self._pending)
        self._pending.clear()
        return super().flush() + held

    def _after_commit(self, session: Session) -> None:
        # Savepoint releases also fire after_commit.
        if session.in_nested_transaction():
            return
        for prefix in sorted(self._invalidated):
            super().flush_pattern(prefix)
        for key, envelope in self._pending.items():
            self._store(self.full_key(key), envelope)
        if self._pending:
            logger.debug("cache_writes_published", extra={"published": len(self._pending)})
        self._reset()

    def _after_soft_rollback(self, session: Session, previous_transaction: SessionTransaction) -> None:
        if self._pending:
            logger.debug("cache_writes_discarded", extra={"discarded": len(self._pending)})
        self._pending.clear()

    def _after_transaction_end(self, session: Session, transaction: SessionTransaction) -> None:
        if transaction.parent is None:
            self._reset()

    def _reset(self) -> None:
        self._invalidated.clear()
        self._pending.clear()
