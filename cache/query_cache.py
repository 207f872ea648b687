"""
Client-side query cache the live-update bridge invalidates against.

Cached results are keyed by token tuples such as ``("assets", "42", "parts")``.
Invalidating a group marks every entry whose key starts with that group as
stale, so ``("assets",)`` stales the fleet list and every per-mower result.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Deque, Dict, Hashable, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[Hashable, ...]

DEFAULT_HISTORY_SIZE = 1000


class CacheFacade(Protocol):
    """Abstraction over the cache the bridge refreshes."""

    def invalidate(self, group: Sequence[Hashable]) -> None:
        """Mark every cached result under ``group`` as stale."""


@dataclass(slots=True)
class CacheEntry:
    """Cached result plus its freshness bookkeeping."""

    value: Any
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    stale: bool = False
    invalidated_at: Optional[datetime] = None


class QueryCache:
    """In-memory cache with prefix invalidation; safe to share across threads."""

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._invalidations: Deque[CacheKey] = deque(maxlen=history_size)
        self._lock = Lock()

    def set(self, key: Sequence[Hashable], value: Any) -> None:
        """Store a fresh result for ``key``."""
        with self._lock:
            self._entries[tuple(key)] = CacheEntry(value=value)

    def get(self, key: Sequence[Hashable]) -> Any:
        """Return the cached value (stale or not) or None when absent."""
        with self._lock:
            entry = self._entries.get(tuple(key))
            return entry.value if entry else None

    def is_stale(self, key: Sequence[Hashable]) -> bool:
        """Return True when ``key`` is missing or has been invalidated."""
        with self._lock:
            entry = self._entries.get(tuple(key))
            return entry is None or entry.stale

    def invalidate(self, group: Sequence[Hashable]) -> None:
        prefix = tuple(group)
        now = datetime.now(tz=timezone.utc)
        with self._lock:
            self._invalidations.append(prefix)
            matched = 0
            for key, entry in self._entries.items():
                if key[: len(prefix)] != prefix:
                    continue
                matched += 1
                if not entry.stale:
                    entry.stale = True
                    entry.invalidated_at = now
        logger.debug("Invalidated %s (%d cached entries)", "/".join(map(str, prefix)), matched)

    def stale_keys(self) -> List[CacheKey]:
        with self._lock:
            return [key for key, entry in self._entries.items() if entry.stale]

    @property
    def invalidations(self) -> List[CacheKey]:
        """The most recent groups passed to ``invalidate``, oldest first."""
        with self._lock:
            return list(self._invalidations)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._invalidations.clear()
