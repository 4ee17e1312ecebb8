"""In-memory key/value cache with read-time TTL checks."""

from __future__ import annotations

import re
import time
from collections import OrderedDict
from collections.abc import Callable, Iterator
from typing import Any

from loguru import logger

from fetchcache.duration import parse_duration
from fetchcache.types import DEFAULT_TTL, CacheEntry, Duration


class TimedCache:
    """Process-wide store of fetched values with per-read freshness.

    Freshness is decided when reading: an entry is fresh while
    ``now - stored_at < ttl``. Stale entries are never removed by a read,
    only by ``delete``, ``delete_matching``, ``clear`` or, when
    ``max_items`` is set, LRU eviction on insert.

    All methods are synchronous; the cache is only touched from the event
    loop thread so it carries no lock.
    """

    def __init__(
        self,
        max_items: int | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_items is not None and max_items < 1:
            raise ValueError("max_items must be a positive integer")
        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._max_items = max_items
        self._clock = clock

    def now(self) -> float:
        """Current reading of the cache clock, in seconds."""
        return self._clock()

    def get(self, key: str, ttl: Duration = DEFAULT_TTL) -> Any | None:
        """Return the value for ``key`` if it is fresh, otherwise None."""
        entry = self._entries.get(key)
        if entry is None:
            logger.debug("cache miss: {}", key)
            return None
        if not self._is_fresh(entry, parse_duration(ttl)):
            logger.debug("cache stale: {}", key)
            return None
        self._entries.move_to_end(key)  # LRU touch
        logger.debug("cache hit: {}", key)
        return entry.value

    def get_entry(self, key: str) -> CacheEntry[Any] | None:
        """Raw lookup, ignoring freshness."""
        return self._entries.get(key)

    def is_fresh(self, key: str, ttl: Duration = DEFAULT_TTL) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._is_fresh(entry, parse_duration(ttl))

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, overwriting any previous entry."""
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())
        self._entries.move_to_end(key)
        if self._max_items and len(self._entries) > self._max_items:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("cache evict: {}", evicted)
        logger.debug("cache set: {}", key)

    def delete(self, key: str) -> None:
        """Remove a single entry. Missing keys are ignored."""
        if self._entries.pop(key, None) is not None:
            logger.debug("cache delete: {}", key)

    def delete_matching(self, pattern: str | re.Pattern[str]) -> int:
        """Remove every entry whose key matches ``pattern``.

        Returns:
            Number of entries removed.
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        doomed = [key for key in self._entries if regex.search(key)]
        for key in doomed:
            del self._entries[key]
        logger.debug("cache delete_matching {!r}: {} removed", regex.pattern, len(doomed))
        return len(doomed)

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()
        logger.debug("cache cleared")

    def keys(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def _is_fresh(self, entry: CacheEntry[Any], ttl_ms: int) -> bool:
        return (self._clock() - entry.stored_at) * 1000 < ttl_ms


__all__ = ["TimedCache"]
