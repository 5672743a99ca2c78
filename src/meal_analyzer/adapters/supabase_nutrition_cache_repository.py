"""Supabase implementation of the nutrition cache store."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from meal_analyzer.domain.foods import normalize_name
from meal_analyzer.domain.nutrition import (
    NutritionCacheEntry,
    NutritionInfo,
    NutritionSource,
)
from meal_analyzer.services.cache import NutritionCacheStore

_logger = logging.getLogger(__name__)


@dataclass
class SupabaseNutritionCacheStore(NutritionCacheStore):
    """Supabase-backed, append-only nutrition cache.

    The supabase client is synchronous, so each request runs in a worker
    thread to keep the event loop free for concurrent resolutions.
    """

    client: Client
    table: str = "nutrition_cache"

    async def find_exact(self, food_name: str) -> list[NutritionCacheEntry]:
        """Return entries stored under the normalized food name."""
        query = (
            self.client.table(self.table)
            .select("*")
            .eq("food_name", normalize_name(food_name))
            .order("created_at", desc=True)
        )
        response = await asyncio.to_thread(query.execute)
        return _parse_rows(response.data)

    async def find_by_keywords(
        self, keywords: frozenset[str], limit: int = 20
    ) -> list[NutritionCacheEntry]:
        """Return entries whose keyword array overlaps ``keywords``."""
        if not keywords:
            return []
        query = (
            self.client.table(self.table)
            .select("*")
            .ov("search_keywords", sorted(keywords))
            .order("created_at", desc=True)
            .limit(limit)
        )
        response = await asyncio.to_thread(query.execute)
        return _parse_rows(response.data)

    async def append(self, entry: NutritionCacheEntry) -> None:
        """Insert a new row."""
        query = self.client.table(self.table).insert(_to_row(entry))
        response = await asyncio.to_thread(query.execute)
        if not response.data:
            raise RuntimeError(f"Failed to cache nutrition for {entry.food_name}")


def _to_row(entry: NutritionCacheEntry) -> dict[str, object]:
    return {
        "food_name": entry.food_name,
        "search_keywords": sorted(entry.search_keywords),
        "nutrition_per_100g": entry.nutrition_per_100g.to_dict(),
        "source": entry.source.value,
        "created_at": entry.created_at.isoformat(),
    }


def _parse_rows(rows: list[dict[str, object]] | None) -> list[NutritionCacheEntry]:
    entries = []
    for row in rows or []:
        try:
            entries.append(_parse_row(row))
        except (KeyError, TypeError, ValueError):
            _logger.warning("Skipping malformed nutrition cache row: %s", row.get("food_name"))
    return entries


def _parse_row(row: dict[str, object]) -> NutritionCacheEntry:
    """Parse a nutrition cache row into a domain model."""
    created_raw = row.get("created_at")
    created_at = (
        datetime.fromisoformat(created_raw)
        if isinstance(created_raw, str) and created_raw
        else datetime.now(tz=UTC)
    )
    nutrition_raw = row["nutrition_per_100g"]
    if not isinstance(nutrition_raw, dict):
        raise TypeError("nutrition_per_100g must be an object")
    return NutritionCacheEntry(
        food_name=str(row["food_name"]),
        search_keywords=frozenset(str(word) for word in row.get("search_keywords") or []),
        nutrition_per_100g=NutritionInfo.from_dict(nutrition_raw),
        source=NutritionSource(row.get("source") or NutritionSource.AUTHORITATIVE.value),
        created_at=created_at,
    )
