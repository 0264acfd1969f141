"""
Configuration and optional table cache for torchsht.

Transforms rebuild their sampling and weight tables on every call by default;
the basis itself is evaluated per block of colatitudes and never kept. When
caching is enabled the tables are kept in an LRU cache keyed by
``(scheme, L, spin, real)`` with a byte budget; results are identical either way.

Environment variables:
    TORCHSHT_CACHE            "1" enables the cache (default "0")
    TORCHSHT_CACHE_MAX_BYTES  LRU byte budget (default 256 MiB)
"""

import os
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Optional

import psutil

from .errors import AllocationError
from .logging import log_memory_usage, logger

_DEFAULT_MAX_BYTES = 256 * 1024 * 1024


class CacheConfig:
    """Cache configuration."""

    def __init__(self, enabled: bool = False, max_bytes: int = _DEFAULT_MAX_BYTES):
        self.enabled = enabled
        self.max_bytes = max_bytes

    @classmethod
    def from_environment(cls) -> "CacheConfig":
        """Read the cache configuration from TORCHSHT_* environment variables."""
        enabled = os.environ.get("TORCHSHT_CACHE", "0") != "0"
        max_bytes = int(os.environ.get("TORCHSHT_CACHE_MAX_BYTES", str(_DEFAULT_MAX_BYTES)))
        return cls(enabled=enabled, max_bytes=max_bytes)


class TableCache:
    """LRU cache of read-only transform tables with a byte budget."""

    def __init__(self, config: Optional[CacheConfig] = None):
        self.config = config or CacheConfig.from_environment()
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._entry_bytes: Dict[Hashable, int] = {}
        self._total_bytes = 0
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def get_or_build(self, key: Hashable, builder: Callable[[], Any], nbytes: Callable[[Any], int]):
        """Return the cached value for ``key`` or build it (and cache it when it fits)."""
        if not self.config.enabled:
            return builder()

        cached = self._entries.get(key)
        if cached is not None:
            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            return cached

        self._stats["misses"] += 1
        value = builder()
        size = int(nbytes(value))
        if size > self.config.max_bytes:
            # too big to ever fit; hand it back uncached
            logger.debug(f"Table {key} ({size} bytes) exceeds cache budget {self.config.max_bytes}")
            return value

        while (self._total_bytes + size) > self.config.max_bytes and self._entries:
            old_key, _ = self._entries.popitem(last=False)
            self._total_bytes -= self._entry_bytes.pop(old_key, 0)
            self._stats["evictions"] += 1

        self._entries[key] = value
        self._entry_bytes[key] = size
        self._total_bytes += size
        log_memory_usage("table cache", self._total_bytes / (1024 * 1024))
        return value

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "entries": len(self._entries),
            "bytes": self._total_bytes,
            "config": {"enabled": self.config.enabled, "max_bytes": self.config.max_bytes},
            "hit_rate": self._stats["hits"] / max(1, lookups),
        }

    def clear(self):
        """Drop every cached table and reset statistics."""
        self._entries.clear()
        self._entry_bytes.clear()
        self._total_bytes = 0
        self._stats = {key: 0 for key in self._stats}


# Global cache instance
_table_cache = None


def get_table_cache() -> TableCache:
    """Get the global table cache instance."""
    global _table_cache
    if _table_cache is None:
        _table_cache = TableCache()
    return _table_cache


def configure_cache(enabled: Optional[bool] = None, max_bytes: Optional[int] = None):
    """Manually configure the table cache; unspecified settings keep their current value."""
    global _table_cache
    current = get_table_cache().config
    config = CacheConfig(
        enabled=current.enabled if enabled is None else bool(enabled),
        max_bytes=current.max_bytes if max_bytes is None else int(max_bytes),
    )
    _table_cache = TableCache(config)


def get_cache_stats() -> Dict[str, Any]:
    """Get cache statistics."""
    return get_table_cache().get_stats()


def clear_cache():
    """Clear all cached tables."""
    get_table_cache().clear()


def check_allocation(nbytes: int, where: str):
    """Raise AllocationError when a buffer of ``nbytes`` cannot fit in available memory."""
    available = psutil.virtual_memory().available
    if nbytes > available:
        raise AllocationError(
            where,
            f"requires {nbytes / (1024 ** 2):.1f} MB but only {available / (1024 ** 2):.1f} MB is available",
        )
