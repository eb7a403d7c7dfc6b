"""
Tests for the cache facade and its backends.

Validates:
- Read-through ``remember`` computes once per key
- Cached falsy values are hits; misses are ``MISSING``
- Expiry against the injected clock
- Prefix eviction, including keys with LIKE metacharacters (SQL backend)
- A failing backend behaves as a miss and is logged, never raised
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from backoffice_kernel.cache import (
    MISSING,
    Cache,
    CacheBackend,
    CacheEnvelope,
    MemoryCacheBackend,
    SqlCacheBackend,
)
from backoffice_kernel.domain.deadline import Deadline
from backoffice_kernel.exceptions import CacheBackendError, DeadlineExceededError


class FailingBackend(CacheBackend):
    """Backend whose every operation fails."""

    def load(self, key):
        raise CacheBackendError("load", key, "backend down")

    def store(self, key, envelope):
        raise CacheBackendError("store", key, "backend down")

    def remove(self, key):
        raise CacheBackendError("remove", key, "backend down")

    def remove_prefix(self, prefix):
        raise CacheBackendError("remove_prefix", prefix, "backend down")

    def clear(self):
        raise CacheBackendError("clear", "*", "backend down")


@pytest.fixture
def memory_cache(deterministic_clock) -> Cache:
    return Cache(MemoryCacheBackend(), deterministic_clock, default_ttl=60)


@pytest.fixture
def sql_cache(session, deterministic_clock) -> Cache:
    return Cache(SqlCacheBackend(session), deterministic_clock, default_ttl=60)


class Counter:
    def __init__(self, value):
        self.calls = 0
        self.value = value

    def __call__(self):
        self.calls += 1
        return self.value


# =============================================================================
# Facade behaviour (both backends)
# =============================================================================


@pytest.fixture(params=["memory", "sql"])
def cache(request, memory_cache, sql_cache) -> Cache:
    return memory_cache if request.param == "memory" else sql_cache


class TestRemember:
    def test_computes_once(self, cache):
        compute = Counter(Decimal("12.50"))
        assert cache.remember("project_hours_1", compute) == Decimal("12.50")
        assert cache.remember("project_hours_1", compute) == Decimal("12.50")
        assert compute.calls == 1

    @pytest.mark.parametrize("value", [None, 0, False, Decimal("0"), []])
    def test_falsy_values_are_hits(self, cache, value):
        compute = Counter(value)
        cache.remember("k", compute)
        assert cache.remember("k", compute) == value
        assert compute.calls == 1

    def test_miss_is_missing_sentinel(self, cache):
        assert cache.get("absent") is MISSING
        assert not cache.has("absent")

    def test_expires_by_clock(self, cache, deterministic_clock):
        cache.set("k", 1, ttl=30)
        deterministic_clock.advance(29)
        assert cache.get("k") == 1
        deterministic_clock.advance(1)
        assert cache.get("k") is MISSING

    def test_zero_ttl_never_expires(self, cache, deterministic_clock):
        cache.set("k", 1, ttl=0)
        deterministic_clock.advance(10 * 365 * 24 * 3600)
        assert cache.get("k") == 1

    def test_flush_pattern_evicts_by_prefix(self, cache):
        cache.set("project_hours_1", 1)
        cache.set("project_total_1", 2)
        cache.set("milestone_hours_1", 3)

        assert cache.flush_pattern("project_") == 2
        assert cache.get("project_hours_1") is MISSING
        assert cache.get("milestone_hours_1") == 3

    def test_delete_and_flush(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a")
        assert not cache.delete("a")
        assert cache.flush() == 1

    def test_compute_exception_propagates_and_is_not_cached(self, cache):
        def failing():
            raise ValueError("no data")

        with pytest.raises(ValueError):
            cache.remember("k", failing)
        assert cache.get("k") is MISSING

    def test_expired_deadline_raises(self, cache):
        with pytest.raises(DeadlineExceededError):
            cache.remember("k", lambda: 1, deadline=Deadline.after(-1))


class TestKeyPrefix:
    def test_prefix_applied_to_backend_keys(self, deterministic_clock):
        backend = MemoryCacheBackend()
        cache = Cache(backend, deterministic_clock, key_prefix="bbab_sc_")
        cache.set("open_srs_org_5", [1, 2])
        assert backend.keys() == ["bbab_sc_open_srs_org_5"]

    def test_org_key(self):
        assert Cache.org_key("open_srs", 5) == "open_srs_org_5"


class TestSqlBackend:
    def test_like_metacharacters_are_literal(self, sql_cache):
        sql_cache.set("sr_hours_1", 1)
        sql_cache.set("srXhours_1", 2)

        # "_" must not act as a wildcard.
        assert sql_cache.flush_pattern("sr_") == 1
        assert sql_cache.get("srXhours_1") == 2

    def test_envelope_timestamps_are_utc_aware(self, session, deterministic_clock):
        backend = SqlCacheBackend(session)
        now = deterministic_clock.now()
        backend.store("k", CacheEnvelope(data=1, cached_at=now, expires_at=now + timedelta(seconds=5)))

        envelope = backend.load("k")
        assert envelope.cached_at.tzinfo is not None
        assert not envelope.is_expired(now)


class TestBackendFailure:
    def test_failing_backend_is_a_miss(self, deterministic_clock, captured_logs):
        cache = Cache(FailingBackend(), deterministic_clock)
        compute = Counter(5)

        assert cache.remember("k", compute) == 5
        assert cache.remember("k", compute) == 5
        assert compute.calls == 2
        assert cache.flush_pattern("k") == 0

        failures = [r for r in captured_logs() if r["message"] == "cache_backend_failed"]
        assert failures
        assert failures[0]["error"] == "backend down"
