"""Read-through cache, typed keys and mutation-driven invalidation."""

from backoffice_kernel.cache.backends import (
    CacheBackend,
    MemoryCacheBackend,
    SqlCacheBackend,
)
from backoffice_kernel.cache.cache import Cache
from backoffice_kernel.cache.envelope import MISSING, CacheEnvelope
from backoffice_kernel.cache.invalidation import (
    INVALIDATION_TABLE,
    CacheInvalidationRouter,
    validate_invalidation_table,
)
from backoffice_kernel.cache.keys import CacheKeys, CacheNamespace, KeySpec
from backoffice_kernel.cache.transactional import TransactionalCache

__all__ = [
    "INVALIDATION_TABLE",
    "MISSING",
    "Cache",
    "CacheBackend",
    "CacheEnvelope",
    "CacheInvalidationRouter",
    "CacheKeys",
    "CacheNamespace",
    "KeySpec",
    "MemoryCacheBackend",
    "SqlCacheBackend",
    "TransactionalCache",
    "validate_invalidation_table",
]
