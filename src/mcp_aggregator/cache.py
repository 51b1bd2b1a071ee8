"""
In-memory response cache with per-entry TTL.

Callers choose the TTL; the cache does not guess how volatile a value is.
Values are deep-copied on the way in and out, so callers never share a
cached object.
Keys read ``<operation>:<name>:<digest>`` where the digest covers a canonical
JSON rendering of the arguments, so identical calls collide and prefix
invalidation by operation or name still works.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


class ResponseCache:
    """Thread-safe TTL cache bounded to ``max_size`` entries."""

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_size: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def generate_key(operation: str, name: str, args: Any = None) -> str:
        canonical = json.dumps(
            {"operation": operation, "name": name, "args": args},
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        digest = hashlib.sha256(canonical.encode()).hexdigest()[:16]
        return f"{operation}:{name}:{digest}"

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss or expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict()
            # Re-insert so insertion order tracks age
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(copy.deepcopy(value), self._clock() + ttl)

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]

        if len(self._entries) >= self.max_size:
            oldest = list(self._entries)[: max(1, self.max_size // 10)]
            for key in oldest:
                del self._entries[key]
            logger.debug(f"Cache full, evicted {len(oldest)} oldest entries")

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``."""
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries matching '{prefix}'")
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "maxSize": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
