"""
Cache -- read-through memoization in front of expensive aggregates.

Responsibility:
    ``remember(key, compute)`` returns the cached value or computes, stores
    and returns it.  ``flush_pattern(prefix)`` evicts every key starting with
    the prefix; the invalidation router drives it from mutation events.

Architecture position:
    Kernel > Cache.  Used by the module services; never imports them.

Invariants enforced:
    - A miss is ``MISSING``, never ``None``: cached ``None``/``0``/``False``
      are hits.
    - Expiry is evaluated against the injected clock.
    - Backend failures are logged and behave as misses.  A failing cache
      costs a recomputation, never a wrong answer or a failed request.
    - No lock is held across ``compute``; concurrent misses may both
      compute and the last write wins.

Failure modes:
    - DeadlineExceededError when the caller's deadline has already expired.
      Exceptions raised by ``compute`` propagate unchanged.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import Any, TypeVar

from backoffice_kernel.cache.backends import CacheBackend, MemoryCacheBackend
from backoffice_kernel.cache.envelope import MISSING, CacheEnvelope
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.deadline import Deadline, resolve
from backoffice_kernel.exceptions import CacheBackendError
from backoffice_kernel.logging_config import get_logger

logger = get_logger("kernel.cache")

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 3600
DEFAULT_KEY_PREFIX = "bbab_sc_"


class Cache:
    """
    Cache facade over a ``CacheBackend``.

    Keys passed in are logical (``project_hours_12``); the facade prepends
    ``key_prefix`` before touching the backend.  A ``ttl`` of 0 stores
    without expiry.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        clock: Clock | None = None,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        self._backend = backend or MemoryCacheBackend()
        self._clock = clock or SystemClock()
        self._default_ttl = default_ttl
        self._key_prefix = key_prefix

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    def full_key(self, key: str) -> str:
        return self._key_prefix + key

    def remember(
        self,
        key: str,
        compute: Callable[[], T],
        ttl: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> T:
        cached = self.get(key, deadline=deadline)
        if cached is not MISSING:
            return cached
        value = compute()
        self.set(key, value, ttl)
        return value

    def get(self, key: str, *, deadline: Deadline | None = None) -> Any:
        resolve(deadline).check("cache.get")
        full_key = self.full_key(key)
        try:
            envelope = self._backend.load(full_key)
        except CacheBackendError as exc:
            self._log_backend_failure(exc)
            return MISSING

        if envelope is None:
            logger.debug("cache_miss", extra={"cache_key": key})
            return MISSING

        if envelope.is_expired(self._clock.now()):
            logger.debug("cache_expired", extra={"cache_key": key})
            self._remove_quietly(full_key)
            return MISSING

        logger.debug("cache_hit", extra={"cache_key": key})
        return envelope.data

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return self._store(self.full_key(key), self._envelope(value, ttl))

    def has(self, key: str) -> bool:
        return self.get(key) is not MISSING

    def delete(self, key: str) -> bool:
        return self._remove_quietly(self.full_key(key))

    def flush_pattern(self, prefix: str) -> int:
        """Evict every key starting with ``prefix``; return the number evicted."""
        try:
            evicted = self._backend.remove_prefix(self.full_key(prefix))
        except CacheBackendError as exc:
            self._log_backend_failure(exc)
            return 0
        if evicted:
            logger.debug(
                "cache_pattern_flushed",
                extra={"pattern": prefix, "evicted": evicted},
            )
        return evicted

    def flush(self) -> int:
        try:
            evicted = self._backend.clear()
        except CacheBackendError as exc:
            self._log_backend_failure(exc)
            return 0
        logger.info("cache_flushed", extra={"evicted": evicted})
        return evicted

    @staticmethod
    def org_key(kind: str, organization_id: int) -> str:
        """Key for an organization-scoped list (``open_srs_org_5``)."""
        return f"{kind}_org_{organization_id}"

    def _envelope(self, value: Any, ttl: int | None) -> CacheEnvelope:
        ttl = self._default_ttl if ttl is None else ttl
        now = self._clock.now()
        return CacheEnvelope(
            data=value,
            cached_at=now,
            expires_at=now + timedelta(seconds=ttl) if ttl > 0 else None,
        )

    def _store(self, full_key: str, envelope: CacheEnvelope) -> bool:
        try:
            self._backend.store(full_key, envelope)
        except CacheBackendError as exc:
            self._log_backend_failure(exc)
            return False
        return True

    def _remove_quietly(self, full_key: str) -> bool:
        try:
            return self._backend.remove(full_key)
        except CacheBackendError as exc:
            self._log_backend_failure(exc)
            return False

    @staticmethod
    def _log_backend_failure(exc: CacheBackendError) -> None:
        logger.warning(
            "cache_backend_failed",
            extra={
                "operation": exc.operation,
                "cache_key": exc.key,
                "error": exc.reason,
            },
        )
