"""Last-known-good cache, one entry per data source key.

Entries are written only after a successful fetch and read back by the
transition function to keep something on screen while a refresh is pending
or after it failed. There is no eviction beyond overwrite: the number of keys
is bounded by the configured data sources.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    fetched_at: float


class Cache:
    """In-memory cache keyed by data source key."""

    def __init__(self):
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for *key*, or None if nothing was cached yet."""
        return self._entries.get(key)

    def put(self, key: str, value: Any, fetched_at: float) -> CacheEntry:
        """Store *value* for *key*, replacing any previous entry."""
        entry = CacheEntry(value=value, fetched_at=fetched_at)
        self._entries[key] = entry
        logger.debug("Cached %s at %.3f", key, fetched_at)
        return entry

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def is_stale(entry: Optional[CacheEntry], now: float, max_age: float) -> bool:
    """True when *entry* is missing or older than *max_age* seconds at *now*."""
    if entry is None:
        return True
    return (now - entry.fetched_at) > max_age
