"""In-memory TTL cache for API responses."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlencode


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    created_at: float


class ResponseCache:
    """Keyed response cache with per-entry TTLs (seconds)."""

    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(url: str, params: dict | None = None) -> str:
        """``url`` plus its parameters sorted by name, so argument order never splits entries."""
        if not params:
            return url
        query = urlencode(sorted((k, v) for k, v in params.items() if v is not None))
        return f"{url}?{query}" if query else url

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        now = self._clock()
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=now + ttl, created_at=now)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate(self, pattern: str | re.Pattern) -> int:
        """Drop every key starting with ``pattern`` (a string) or matching it (a compiled regex)."""
        if isinstance(pattern, re.Pattern):
            doomed = [key for key in self._entries if pattern.search(key)]
        else:
            doomed = [key for key in self._entries if key.startswith(pattern)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> dict:
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if now < entry.expires_at)
        lookups = self.hits + self.misses
        return {
            'total': len(self._entries),
            'valid': valid,
            'expired': len(self._entries) - valid,
            'hits': self.hits,
            'misses': self.misses,
            'hitRate': self.hits / lookups if lookups else 0.0,
        }

    def __len__(self) -> int:
        return len(self._entries)
