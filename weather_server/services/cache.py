"""
CacheManager - Bounded in-memory cache with TTL expiry and LRU eviction.

Features:
- Per-entry TTL, including entries that never expire
- LRU eviction once the configured entry count is reached
- Lazy expiry on read, plus an opportunistic sweep when stats are requested
- Hit/miss/eviction statistics

All operations are synchronous and never await, so within one event loop a
get or set cannot interleave with another. Sharing an instance across OS
threads would need a lock around each operation.
"""

import hashlib
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Generic, TypeVar
from urllib.parse import quote

from loguru import logger

T = TypeVar("T")


class _Never(Enum):
    NEVER = "never"

    def __repr__(self) -> str:
        return "NEVER_EXPIRES"


class _Missing(Enum):
    MISSING = "missing"

    def __repr__(self) -> str:
        return "MISSING"


# TTL sentinel for data that cannot change once fetched
NEVER_EXPIRES = _Never.NEVER

# get() default that cannot collide with a stored value, None included
MISSING = _Missing.MISSING

Lifetime = timedelta | _Never

KEY_PRECISION = 2


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    key: str
    data: T
    stored_at: datetime
    expires_at: datetime | None  # None: never expires
    last_accessed_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is at or past its expiry time."""
        return self.expires_at is not None and now >= self.expires_at


class CacheManager:
    """
    Bounded cache keyed by request fingerprint.

    Usage:
        cache = CacheManager(max_size=1000)

        data = cache.get(key)
        if data is None:
            data = await fetch_data()
            cache.set(key, data, ttl=timedelta(hours=2))
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = datetime.now,
        debug: bool = False,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        # Ordered least- to most-recently accessed
        self._memory: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._debug = debug
        self._stats = CacheStats(max_size=max_size)

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        return len(self._memory)

    def __contains__(self, key: str) -> bool:
        """Presence check that does not touch stats or recency."""
        entry = self._memory.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get value from cache.

        Returns the stored value if present and unexpired, default otherwise.
        Pass MISSING as default to tell a stored None from a miss.
        A hit refreshes recency but never extends the entry's lifetime.
        """
        entry = self._memory.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}")
            return default

        now = self._clock()
        if entry.is_expired(now):
            del self._memory[key]
            self._stats.misses += 1
            self._stats.expirations += 1
            self._log(f"EXPIRED: {key[:50]}")
            return default

        entry.last_accessed_at = now
        self._memory.move_to_end(key)
        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}")
        return entry.data

    def set(self, key: str, data: Any, ttl: Lifetime | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            data: Data to cache
            ttl: Lifetime, NEVER_EXPIRES, or None for the default TTL
        """
        if ttl is None:
            ttl = self._default_ttl

        now = self._clock()
        expires_at = None if ttl is NEVER_EXPIRES else now + ttl

        if key in self._memory:
            del self._memory[key]
        elif len(self._memory) >= self._max_size:
            self._evict_oldest()

        self._memory[key] = CacheEntry(
            key=key,
            data=data,
            stored_at=now,
            expires_at=expires_at,
            last_accessed_at=now,
        )
        self._log(f"SET: {key[:50]} (TTL: {_describe(ttl)})")

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        if self._memory.pop(key, None) is not None:
            self._log(f"DELETE: {key[:50]}")
            return True
        return False

    def invalidate(self, pattern: str) -> int:
        """
        Invalidate all keys containing a substring.

        Returns:
            Number of entries invalidated
        """
        keys_to_delete = [k for k in self._memory if pattern in k]
        for key in keys_to_delete:
            del self._memory[key]

        if keys_to_delete:
            self._log(f"INVALIDATE: {len(keys_to_delete)} entries matching '{pattern}'")

        return len(keys_to_delete)

    def clear(self) -> None:
        """Clear all cache entries. Statistics are kept."""
        count = len(self._memory)
        self._memory.clear()
        self._log(f"CLEAR: {count} entries removed")

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._memory[key]

        if expired_keys:
            self._stats.expirations += len(expired_keys)
            self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")

        return len(expired_keys)

    def _evict_oldest(self) -> None:
        """Evict the least recently accessed entry."""
        oldest_key, _ = self._memory.popitem(last=False)
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}")

    def get_stats(self) -> "CacheStats":
        """Get a snapshot of cache statistics."""
        self.cleanup_expired()
        return CacheStats(
            hits=self._stats.hits,
            misses=self._stats.misses,
            evictions=self._stats.evictions,
            expirations=self._stats.expirations,
            size=len(self._memory),
            max_size=self._max_size,
        )

    def reset_stats(self) -> None:
        """Zero all counters without touching entries."""
        self._stats = CacheStats(max_size=self._max_size)

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheManager] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate, 0.0 before any lookups."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


def _describe(ttl: Lifetime) -> str:
    if ttl is NEVER_EXPIRES:
        return "never"
    return f"{ttl.total_seconds():g}s"


def _normalize(value: Any) -> str:
    # Percent-encoded, so separators inside a value cannot fake another parameter
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{round(value, KEY_PRECISION):.{KEY_PRECISION}f}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_normalize(v) for v in value) + "]"
    if isinstance(value, datetime):
        return quote(value.isoformat(), safe="")
    return quote(str(value), safe="")


def generate_key(namespace: str, params: dict[str, Any] | None = None) -> str:
    """
    Generate a deterministic cache key.

    Parameters are sorted by name, so argument order never matters. Floats
    are rounded to two decimals, which makes near-identical coordinates
    share an entry. None values are dropped. Names and values are
    percent-encoded, so distinct parameter sets never produce the same key.
    """
    if params:
        sorted_params = "&".join(
            f"{quote(str(k), safe='')}={_normalize(v)}"
            for k, v in sorted(params.items())
            if v is not None
        )
        full_key = f"{namespace}?{sorted_params}"
    else:
        full_key = namespace

    # Hash long keys
    if len(full_key) > 200:
        hash_val = hashlib.sha256(full_key.encode()).hexdigest()[:32]
        return f"{namespace[:64]}#{hash_val}"

    return full_key
