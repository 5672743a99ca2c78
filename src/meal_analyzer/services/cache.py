"""Cache abstractions for remote responses and nutrition records."""

import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from meal_analyzer.domain.foods import normalize_name
from meal_analyzer.domain.nutrition import NutritionCacheEntry


class Cache(Protocol):
    """Cache interface for simple key-value data."""

    def get(self, key: str) -> object | None:
        """Return a cached value if present and not expired."""

    def set(self, key: str, value: object, ttl_seconds: int) -> None:
        """Store a cached value with a TTL in seconds."""

    def __len__(self) -> int:
        """Return the number of stored entries."""


@dataclass
class _CacheEntry:
    value: object
    expires_at: datetime


class InMemoryCache(Cache):
    """Thread-safe in-memory TTL cache.

    Expired entries are dropped on read and swept on writes at most once per
    ``purge_interval_seconds``, so keys that are never read again do not pile up.
    """

    def __init__(self, purge_interval_seconds: float = 60.0) -> None:
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._purge_interval = timedelta(seconds=purge_interval_seconds)
        self._next_purge_at = datetime.now(tz=UTC) + self._purge_interval

    def get(self, key: str) -> object | None:
        """Return a cached value if it hasn't expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if datetime.now(tz=UTC) >= entry.expires_at:
                self._entries.pop(key, None)
                return None
            return entry.value

    def set(self, key: str, value: object, ttl_seconds: int) -> None:
        """Store a cached value with a TTL."""
        now = datetime.now(tz=UTC)
        expires_at = now + timedelta(seconds=ttl_seconds)
        with self._lock:
            self._entries[key] = _CacheEntry(value=value, expires_at=expires_at)
        if now >= self._next_purge_at:
            self._next_purge_at = now + self._purge_interval
            self.purge_expired()

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = datetime.now(tz=UTC)
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NutritionCacheStore(Protocol):
    """Persistent, append-only store of per-100 g nutrition records."""

    async def find_exact(self, food_name: str) -> list[NutritionCacheEntry]:
        """Return entries whose food name equals ``food_name``."""

    async def find_by_keywords(
        self, keywords: frozenset[str], limit: int = 20
    ) -> list[NutritionCacheEntry]:
        """Return entries sharing at least one search keyword."""

    async def append(self, entry: NutritionCacheEntry) -> None:
        """Persist a new entry without touching existing ones."""


class InMemoryNutritionCacheStore(NutritionCacheStore):
    """Process-local nutrition cache store."""

    def __init__(self) -> None:
        self._entries: list[NutritionCacheEntry] = []
        self._lock = threading.Lock()

    async def find_exact(self, food_name: str) -> list[NutritionCacheEntry]:
        """Return entries with the same normalized name, newest first."""
        target = normalize_name(food_name)
        with self._lock:
            matches = [
                entry
                for entry in self._entries
                if normalize_name(entry.food_name) == target
            ]
        return _newest_first(matches)

    async def find_by_keywords(
        self, keywords: frozenset[str], limit: int = 20
    ) -> list[NutritionCacheEntry]:
        """Return entries whose keywords overlap the given set."""
        if not keywords:
            return []
        with self._lock:
            matches = [
                entry for entry in self._entries if entry.search_keywords & keywords
            ]
        return _newest_first(matches)[:limit]

    async def append(self, entry: NutritionCacheEntry) -> None:
        """Append an entry."""
        with self._lock:
            self._entries.append(entry)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _newest_first(entries: list[NutritionCacheEntry]) -> list[NutritionCacheEntry]:
    return sorted(entries, key=lambda entry: entry.created_at, reverse=True)
