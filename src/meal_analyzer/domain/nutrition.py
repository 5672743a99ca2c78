"""Nutrition domain models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

_MACRO_FIELDS = (
    "calories",
    "protein_g",
    "carbs_g",
    "fat_g",
    "fiber_g",
    "sugar_g",
    "sodium_mg",
)


@dataclass(frozen=True)
class NutritionInfo:
    """Absolute nutrient amounts for a serving of ``serving_size_g`` grams."""

    calories: float
    protein_g: float
    carbs_g: float
    fat_g: float
    fiber_g: float
    sugar_g: float
    sodium_mg: float
    serving_size_g: float
    vitamins: dict[str, float] = field(default_factory=dict)
    minerals: dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.serving_size_g <= 0:
            raise ValueError("serving_size_g must be positive")
        for name in _MACRO_FIELDS:
            value = float(getattr(self, name))
            object.__setattr__(self, name, max(value, 0.0))
        object.__setattr__(self, "vitamins", _clean_amounts(self.vitamins))
        object.__setattr__(self, "minerals", _clean_amounts(self.minerals))

    def scaled_to(self, grams: float) -> "NutritionInfo":
        """Return the same food expressed for a serving of ``grams``."""
        factor = grams / self.serving_size_g
        return NutritionInfo(
            calories=self.calories * factor,
            protein_g=self.protein_g * factor,
            carbs_g=self.carbs_g * factor,
            fat_g=self.fat_g * factor,
            fiber_g=self.fiber_g * factor,
            sugar_g=self.sugar_g * factor,
            sodium_mg=self.sodium_mg * factor,
            serving_size_g=grams,
            vitamins={k: v * factor for k, v in self.vitamins.items()},
            minerals={k: v * factor for k, v in self.minerals.items()},
        )

    def per_100g(self) -> "NutritionInfo":
        """Normalize to a 100 g serving for cache storage."""
        return self.scaled_to(100.0)

    def to_dict(self) -> dict[str, object]:
        """Serialize into a JSON-friendly mapping."""
        payload: dict[str, object] = {name: getattr(self, name) for name in _MACRO_FIELDS}
        payload["serving_size_g"] = self.serving_size_g
        payload["vitamins"] = dict(self.vitamins)
        payload["minerals"] = dict(self.minerals)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "NutritionInfo":
        """Build from a mapping produced by ``to_dict``."""
        values = {name: float(payload.get(name) or 0.0) for name in _MACRO_FIELDS}
        vitamins = payload.get("vitamins") or {}
        minerals = payload.get("minerals") or {}
        return cls(
            **values,
            serving_size_g=float(payload.get("serving_size_g") or 100.0),
            vitamins=dict(vitamins) if isinstance(vitamins, dict) else {},
            minerals=dict(minerals) if isinstance(minerals, dict) else {},
        )


@dataclass(frozen=True)
class FoodSummary:
    """Summary information about a food from FDC."""

    fdc_id: int
    description: str
    data_type: str | None
    brand_owner: str | None = None


@dataclass(frozen=True)
class FoodDetails:
    """FDC food with nutrients normalized to 100 g."""

    summary: FoodSummary
    nutrition_per_100g: NutritionInfo


class NutritionSource(str, Enum):
    """Origin of a cached nutrition record."""

    AUTHORITATIVE = "authoritative"
    GENERATIVE_BACKFILL = "generative-backfill"


@dataclass(frozen=True)
class NutritionCacheEntry:
    """Append-only cache record holding per-100 g nutrition for a food."""

    food_name: str
    search_keywords: frozenset[str]
    nutrition_per_100g: NutritionInfo
    source: NutritionSource
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


def estimate_default_nutrition(weight_g: float) -> NutritionInfo:
    """Weight-proportional estimate used when no data source answers.

    Assumes a blended 2 kcal/g with 15% protein, 50% carbs and 35% fat by
    calories.
    """
    calories = weight_g * 2.0
    return NutritionInfo(
        calories=calories,
        protein_g=calories * 0.15 / 4,
        carbs_g=calories * 0.50 / 4,
        fat_g=calories * 0.35 / 9,
        fiber_g=weight_g * 0.02,
        sugar_g=weight_g * 0.05,
        sodium_mg=weight_g * 0.5,
        serving_size_g=weight_g,
    )


def _clean_amounts(amounts: dict[str, float]) -> dict[str, float]:
    return {str(name): max(float(value), 0.0) for name, value in amounts.items()}
