"""Nutrition resolution: cache, USDA FDC, generative estimate, heuristic."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from meal_analyzer.adapters.fdc_client import FdcClient
from meal_analyzer.domain.foods import name_similarity, normalize_name, search_keywords
from meal_analyzer.domain.nutrition import (
    FoodDetails,
    FoodSummary,
    NutritionCacheEntry,
    NutritionInfo,
    NutritionSource,
    estimate_default_nutrition,
)
from meal_analyzer.services.backfill import BackfillWorker
from meal_analyzer.services.breaker import CircuitBreaker
from meal_analyzer.services.cache import Cache, NutritionCacheStore
from meal_analyzer.services.estimator import GenerativeNutritionEstimator

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

# (FDC nutrient id, legacy nutrient number)
_MACRO_NUTRIENTS = {
    "calories": (1008, "208"),
    "protein_g": (1003, "203"),
    "fat_g": (1004, "204"),
    "carbs_g": (1005, "205"),
    "fiber_g": (1079, "291"),
    "sugar_g": (2000, "269"),
    "sodium_mg": (1093, "307"),
}
# Atwater energy, reported by Foundation foods instead of 1008
_ENERGY_FALLBACKS = ((2047, "957"), (2048, "958"))
_VITAMINS = {
    "A": (1106, "320"),
    "C": (1162, "401"),
    "D": (1114, "328"),
    "E": (1109, "323"),
    "K": (1185, "430"),
    "B1": (1165, "404"),
    "B2": (1166, "405"),
    "B3": (1167, "406"),
    "B6": (1175, "415"),
    "B12": (1178, "418"),
    "Folate": (1177, "417"),
}
_MINERALS = {
    "Calcium": (1087, "301"),
    "Iron": (1089, "303"),
    "Magnesium": (1090, "304"),
    "Phosphorus": (1091, "305"),
    "Potassium": (1092, "306"),
    "Zinc": (1095, "309"),
    "Copper": (1098, "312"),
    "Manganese": (1101, "315"),
    "Selenium": (1103, "317"),
}
_DATA_TYPE_SCORES = {"foundation": 3, "sr legacy": 2, "survey (fndds)": 1}

_logger = logging.getLogger(__name__)


@dataclass
class NutritionService:
    """USDA FDC lookups with response caching and a short retry."""

    fdc_client: FdcClient
    cache: Cache
    search_ttl_seconds: int = 3600
    food_ttl_seconds: int = 86400
    debug: bool = False
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3

    async def search(self, query: str, limit: int = 5) -> list[FoodSummary]:
        """Search FDC foods with caching."""
        cache_key = f"fdc:search:{query.lower()}:{limit}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, list):
            return cached

        payload = await self._call_with_retry(
            lambda: self.fdc_client.search_foods(query, page_size=limit),
            action="search",
        )
        foods = [_parse_summary(food) for food in payload.get("foods", [])]
        self.cache.set(cache_key, foods, ttl_seconds=self.search_ttl_seconds)
        if self.debug:
            _logger.info("Nutrition search FDC: query=%s results=%s", query, len(foods))
        return foods

    async def get_food(self, fdc_id: int) -> FoodDetails:
        """Retrieve a food with nutrients per 100 g from FDC."""
        cache_key = f"fdc:food:{fdc_id}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, FoodDetails):
            return cached

        payload = await self._call_with_retry(
            lambda: self.fdc_client.get_food(fdc_id),
            action=f"get_food:{fdc_id}",
        )
        details = FoodDetails(
            summary=_parse_summary(payload),
            nutrition_per_100g=_extract_nutrition(payload.get("foodNutrients", [])),
        )
        self.cache.set(cache_key, details, ttl_seconds=self.food_ttl_seconds)
        if self.debug:
            _logger.info("Nutrition food FDC: fdc_id=%s", fdc_id)
        return details

    async def lookup(self, food_name: str) -> FoodDetails | None:
        """Find the best FDC match for a free-text name, if any."""
        results = await self.search(food_name)
        best = _best_match(results, food_name)
        if best is None:
            return None
        return await self.get_food(best.fdc_id)

    async def _call_with_retry(
        self, func: "Callable[[], Awaitable[dict[str, object]]]", *, action: str
    ) -> dict[str, object]:
        """Call an async function with a short retry."""
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as exc:
                attempt += 1
                status_code = _status_code_from_exception(exc)
                if self.debug:
                    _logger.warning(
                        "Nutrition %s failed (attempt %s/%s, status=%s): %s",
                        action,
                        attempt,
                        self.retry_attempts + 1,
                        status_code,
                        exc,
                    )
                if attempt > self.retry_attempts:
                    raise
                await asyncio.sleep(self.retry_delay_seconds)


@dataclass(frozen=True)
class MatchPolicy:
    """Thresholds for fuzzy cache matches."""

    threshold: float = 0.6
    substring_score: float = 0.8


class NutritionTier(str, Enum):
    """Source that answered a nutrition lookup."""

    CACHE = "cache"
    DATABASE = "database"
    GENERATIVE = "generative"
    DEFAULT = "default"


@dataclass(frozen=True)
class NutritionLookup:
    """Resolved nutrition together with the tier that produced it."""

    nutrition: NutritionInfo
    tier: NutritionTier


@dataclass
class NutritionResolver:
    """Resolves (food name, weight) to nutrition through a tiered cascade.

    Tiers are tried in order: the shared nutrition cache, USDA FDC, the
    generative estimator and finally a weight-proportional heuristic. Each
    tier that fails or has nothing falls through to the next, so ``resolve``
    always returns a value. Database and generative hits are written back to
    the cache in the background.
    """

    store: NutritionCacheStore
    backfill: BackfillWorker
    database: NutritionService | None = None
    estimator: GenerativeNutritionEstimator | None = None
    cache_breaker: CircuitBreaker = field(
        default_factory=lambda: CircuitBreaker(name="nutrition_cache")
    )
    database_breaker: CircuitBreaker = field(
        default_factory=lambda: CircuitBreaker(name="fdc")
    )
    policy: MatchPolicy = field(default_factory=MatchPolicy)
    default_weight_g: float = 100.0

    async def resolve(self, food_name: str, weight_g: float) -> NutritionInfo:
        """Return nutrition for ``weight_g`` grams of ``food_name``."""
        return (await self.lookup(food_name, weight_g)).nutrition

    async def lookup(self, food_name: str, weight_g: float) -> NutritionLookup:
        """Resolve nutrition and report which tier answered."""
        name = food_name.strip()
        grams = weight_g if weight_g > 0 else self.default_weight_g
        if name:
            nutrition = await self._from_cache(name, grams)
            if nutrition is not None:
                return NutritionLookup(nutrition, NutritionTier.CACHE)
            nutrition = await self._from_database(name, grams)
            if nutrition is not None:
                return NutritionLookup(nutrition, NutritionTier.DATABASE)
            nutrition = await self._from_estimator(name, grams)
            if nutrition is not None:
                return NutritionLookup(nutrition, NutritionTier.GENERATIVE)
        _logger.info("Using default nutrition estimate for %r", food_name)
        return NutritionLookup(estimate_default_nutrition(grams), NutritionTier.DEFAULT)

    def stats(self) -> dict[str, object]:
        """Breaker states, pending backfills and the FDC response cache size."""
        return {
            "breakers": [self.cache_breaker.status(), self.database_breaker.status()],
            "backfill_pending": self.backfill.pending,
            "fdc_cache_entries": len(self.database.cache) if self.database else 0,
        }

    async def find_cached(self, food_name: str) -> NutritionCacheEntry | None:
        """Return the best cache entry for a name, or None below the threshold."""
        exact = await self.store.find_exact(food_name)
        if exact:
            return exact[0]
        candidates = await self.store.find_by_keywords(search_keywords(food_name))
        best: NutritionCacheEntry | None = None
        best_score = 0.0
        for candidate in candidates:
            score = name_similarity(
                food_name, candidate.food_name, self.policy.substring_score
            )
            if score > best_score:
                best, best_score = candidate, score
        if best is not None and best_score > self.policy.threshold:
            return best
        return None

    async def _from_cache(self, name: str, weight_g: float) -> NutritionInfo | None:
        if not self.cache_breaker.allow_request():
            return None
        try:
            entry = await self.find_cached(name)
        except Exception as exc:
            self.cache_breaker.record_failure()
            _logger.warning("Nutrition cache lookup failed for %r: %s", name, exc)
            return None
        self.cache_breaker.record_success()
        if entry is None:
            return None
        _logger.debug("Nutrition cache hit: %r -> %r", name, entry.food_name)
        return entry.nutrition_per_100g.scaled_to(weight_g)

    async def _from_database(self, name: str, weight_g: float) -> NutritionInfo | None:
        if self.database is None or not self.database_breaker.allow_request():
            return None
        try:
            details = await self.database.lookup(name)
        except Exception as exc:
            self.database_breaker.record_failure()
            _logger.warning("FDC lookup failed for %r: %s", name, exc)
            return None
        self.database_breaker.record_success()
        if details is None:
            _logger.info("No FDC match for %r", name)
            return None
        self._schedule_backfill(
            name, details.nutrition_per_100g, NutritionSource.AUTHORITATIVE
        )
        return details.nutrition_per_100g.scaled_to(weight_g)

    async def _from_estimator(self, name: str, weight_g: float) -> NutritionInfo | None:
        if self.estimator is None:
            return None
        try:
            nutrition = await self.estimator.estimate(name, weight_g)
        except Exception as exc:
            _logger.warning("Generative nutrition estimate failed for %r: %s", name, exc)
            return None
        self._schedule_backfill(
            name, nutrition.per_100g(), NutritionSource.GENERATIVE_BACKFILL
        )
        return nutrition

    def _schedule_backfill(
        self, name: str, per_100g: NutritionInfo, source: NutritionSource
    ) -> None:
        entry = NutritionCacheEntry(
            food_name=normalize_name(name),
            search_keywords=search_keywords(name),
            nutrition_per_100g=per_100g,
            source=source,
        )
        self.backfill.submit(entry)


def _parse_summary(food: dict[str, object]) -> FoodSummary:
    return FoodSummary(
        fdc_id=int(food["fdcId"]),
        description=str(food.get("description", "")),
        data_type=food.get("dataType"),
        brand_owner=food.get("brandOwner"),
    )


def _best_match(results: list[FoodSummary], query: str) -> FoodSummary | None:
    """Prefer higher-quality FDC datasets, then closer descriptions."""
    if not results:
        return None
    ranked = sorted(
        results,
        key=lambda food: (
            _DATA_TYPE_SCORES.get((food.data_type or "").lower(), 0),
            name_similarity(query, food.description),
        ),
        reverse=True,
    )
    return ranked[0]


def _status_code_from_exception(exc: Exception) -> str:
    """Extract HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"


def _extract_nutrition(food_nutrients: list[dict[str, object]]) -> NutritionInfo:
    """Build per-100 g nutrition from FDC nutrient rows.

    Handles the full, abridged and search-result row shapes.
    """
    by_id: dict[int, float] = {}
    by_number: dict[str, float] = {}
    for row in food_nutrients:
        nutrient_info = row.get("nutrient") or {}
        amount = row.get("amount", row.get("value"))
        if amount is None:
            continue
        nutrient_id = nutrient_info.get("id") or row.get("nutrientId")
        number = nutrient_info.get("number") or row.get("number") or row.get(
            "nutrientNumber"
        )
        if nutrient_id is not None:
            by_id[int(nutrient_id)] = float(amount)
        if number is not None:
            by_number[str(number)] = float(amount)

    def value(key: tuple[int, str]) -> float | None:
        nutrient_id, number = key
        if nutrient_id in by_id:
            return by_id[nutrient_id]
        return by_number.get(number)

    macros = {name: value(key) or 0.0 for name, key in _MACRO_NUTRIENTS.items()}
    if not macros["calories"]:
        for key in _ENERGY_FALLBACKS:
            energy = value(key)
            if energy:
                macros["calories"] = energy
                break

    vitamins: dict[str, float] = {}
    for name, key in _VITAMINS.items():
        vitamin = value(key)
        if vitamin:
            vitamins[name] = vitamin
    minerals: dict[str, float] = {}
    for name, key in _MINERALS.items():
        mineral = value(key)
        if mineral:
            minerals[name] = mineral
    return NutritionInfo(
        **macros,
        serving_size_g=100.0,
        vitamins=vitamins,
        minerals=minerals,
    )
