"""TTL cache for LLM responses."""

import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Any, Union

from loguru import logger

from .prompts import WeatherSnapshot


# Weather-grounded answers stay valid for a while
DEFAULT_TTL = 6 * 60 * 60


@dataclass
class CacheEntry:
    key: str
    value: str
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


class ResponseCache:
    """
    Key -> response store with per-entry TTL.

    Expired entries are evicted lazily on read, or in bulk by cleanup().
    """

    def __init__(self,
                 default_ttl: float = DEFAULT_TTL,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize response cache.

        Args:
            default_ttl: TTL in seconds used when set() gets none
            clock: Monotonic time source, injectable for tests
        """
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def set(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        """Store value under key, replacing any previous entry."""
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )

    def _fresh_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None

        return entry

    def get(self, key: str) -> Optional[str]:
        """Get cached value if still fresh."""
        entry = self._fresh_entry(key)
        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        return entry.value

    def has(self, key: str) -> bool:
        """Check freshness without touching hit/miss counters."""
        return self._fresh_entry(key) is not None

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cache entries."""
        self._entries.clear()
        logger.info("Response cache cleared")

    def cleanup(self) -> int:
        """Evict every expired entry, returning how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        hit_rate = self._hits / total * 100 if total > 0 else 0.0

        return {
            'hits': self._hits,
            'misses': self._misses,
            'total': total,
            'hit_rate': f"{hit_rate:.2f}%",
            'size': len(self._entries),
        }

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0

    def size_kb(self) -> int:
        """Approximate memory held by cached values (2 bytes per char)."""
        size = sum(len(e.value) * 2 for e in self._entries.values())
        return round(size / 1024)


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text.strip().lower())


def generate_cache_key(*parts: Union[str, int, float, None]) -> str:
    """
    Join key parts deterministically.

    >>> generate_cache_key('analysis', 'Jakarta, 25°C', None, 'Clear')
    'analysis::jakarta,_25°c::clear'
    """
    return '::'.join(
        _normalize(str(p)).replace(' ', '_')
        for p in parts
        if p is not None
    )


def make_cache_key(message: str, snapshot: Optional[WeatherSnapshot] = None) -> str:
    """Cache/dedup key for a chat message and the weather and place it was asked under."""
    if snapshot is None:
        context = "no-context"
    else:
        parts = (snapshot.location, snapshot.temperature, snapshot.condition)
        context = "_".join(str(p) for p in parts if p is not None)
    return f"kiro::{_normalize(message)}::{_normalize(context)}"
