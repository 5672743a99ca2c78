"""Assemble detected items into the final meal analysis."""

from collections.abc import Sequence
from datetime import UTC, datetime

from meal_analyzer.domain.foods import detect_allergens
from meal_analyzer.domain.meals import (
    DetectedFoodItem,
    FoodCategory,
    MealAnalysisResult,
    MealTypeClassification,
)
from meal_analyzer.domain.nutrition import NutritionInfo

_EMPTY_SERVING_G = 100.0


def aggregate(
    items: Sequence[DetectedFoodItem],
    meal_type: MealTypeClassification,
    *,
    now: datetime | None = None,
) -> MealAnalysisResult:
    """Build a MealAnalysisResult from per-item nutrition and confidences."""
    confidence = (
        sum(item.confidence for item in items) / len(items) if items else 0.0
    )
    return MealAnalysisResult(
        detected_foods=tuple(items),
        total_nutrition=sum_nutrition([item.nutrition for item in items]),
        confidence_score=confidence,
        primary_food_category=primary_category(items),
        allergen_warnings=detect_allergens([item.name for item in items]),
        meal_type=meal_type.meal_type,
        meal_type_confidence=meal_type.confidence,
        meal_type_reason=meal_type.reason,
        analysis_timestamp=now or datetime.now(UTC),
    )


def sum_nutrition(values: Sequence[NutritionInfo]) -> NutritionInfo:
    """Add nutrient amounts; the serving size is the combined weight."""
    vitamins: dict[str, float] = {}
    minerals: dict[str, float] = {}
    for info in values:
        for name, amount in info.vitamins.items():
            vitamins[name] = vitamins.get(name, 0.0) + amount
        for name, amount in info.minerals.items():
            minerals[name] = minerals.get(name, 0.0) + amount

    serving = sum(info.serving_size_g for info in values)
    return NutritionInfo(
        calories=sum(info.calories for info in values),
        protein_g=sum(info.protein_g for info in values),
        carbs_g=sum(info.carbs_g for info in values),
        fat_g=sum(info.fat_g for info in values),
        fiber_g=sum(info.fiber_g for info in values),
        sugar_g=sum(info.sugar_g for info in values),
        sodium_mg=sum(info.sodium_mg for info in values),
        serving_size_g=serving if serving > 0 else _EMPTY_SERVING_G,
        vitamins=vitamins,
        minerals=minerals,
    )


def primary_category(items: Sequence[DetectedFoodItem]) -> FoodCategory:
    """Category with the largest confidence mass; first seen wins ties."""
    totals: dict[FoodCategory, float] = {}
    for item in items:
        totals[item.category] = totals.get(item.category, 0.0) + item.confidence
    best = FoodCategory.OTHER
    best_total = -1.0
    for category, total in totals.items():
        if total > best_total:
            best, best_total = category, total
    return best
