"""Domain models for meal analysis."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from meal_analyzer.domain.nutrition import NutritionInfo


class FoodCategory(str, Enum):
    """Coarse food groups used for the primary category."""

    PROTEIN = "protein"
    CARBOHYDRATES = "carbohydrates"
    VEGETABLES = "vegetables"
    FRUITS = "fruits"
    DAIRY = "dairy"
    FATS = "fats"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: str | None) -> "FoodCategory":
        """Map a free-text category onto the enum."""
        if not raw:
            return cls.OTHER
        value = raw.strip().lower()
        try:
            return cls(value)
        except ValueError:
            return _CATEGORY_ALIASES.get(value, cls.OTHER)


_CATEGORY_ALIASES = {
    "carbs": FoodCategory.CARBOHYDRATES,
    "carbohydrate": FoodCategory.CARBOHYDRATES,
    "grains": FoodCategory.CARBOHYDRATES,
    "grain": FoodCategory.CARBOHYDRATES,
    "starch": FoodCategory.CARBOHYDRATES,
    "vegetable": FoodCategory.VEGETABLES,
    "veggies": FoodCategory.VEGETABLES,
    "fruit": FoodCategory.FRUITS,
    "fat": FoodCategory.FATS,
    "oils": FoodCategory.FATS,
    "oil": FoodCategory.FATS,
    "meat": FoodCategory.PROTEIN,
    "seafood": FoodCategory.PROTEIN,
    "milk": FoodCategory.DAIRY,
}


class DetectionSource(str, Enum):
    """Detector that proposed an item."""

    LOCAL = "local"
    REMOTE = "remote"
    FALLBACK = "fallback"


class MealType(str, Enum):
    """Whether a photo shows raw ingredients, a finished dish, or both."""

    INGREDIENTS = "ingredients"
    READY_MADE = "ready_made"
    MIXED = "mixed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str | None) -> "MealType":
        """Parse the strings produced by vision models."""
        if not raw:
            return cls.UNKNOWN
        value = raw.strip().lower().replace("-", "_")
        if value == "readymade":
            value = "ready_made"
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class MealTypeClassification:
    """Meal type with the classifier's confidence and reasoning."""

    meal_type: MealType
    confidence: float
    reason: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("meal type confidence must be within [0, 1]")
        if (
            self.confidence == 0.0
            and self.reason is None
            and self.meal_type is not MealType.UNKNOWN
        ):
            raise ValueError("only the unknown meal type may lack confidence and reason")

    @classmethod
    def unknown(cls) -> "MealTypeClassification":
        return cls(meal_type=MealType.UNKNOWN, confidence=0.0, reason=None)


@dataclass(frozen=True)
class DetectedFoodItem:
    """Single food item proposed by a detector, with resolved nutrition."""

    name: str
    category: FoodCategory
    confidence: float
    estimated_weight_g: float
    alternative_names: tuple[str, ...]
    nutrition: NutritionInfo
    preparation_state: str | None = None
    source: DetectionSource = DetectionSource.REMOTE

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be within [0, 1]")
        if self.estimated_weight_g <= 0:
            raise ValueError("estimated_weight_g must be positive")

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "category": self.category.value,
            "confidence": self.confidence,
            "estimated_weight_g": self.estimated_weight_g,
            "alternative_names": list(self.alternative_names),
            "preparation_state": self.preparation_state,
            "source": self.source.value,
            "nutrition": self.nutrition.to_dict(),
        }


@dataclass(frozen=True)
class MealAnalysisResult:
    """Final immutable analysis handed to callers."""

    detected_foods: tuple[DetectedFoodItem, ...]
    total_nutrition: NutritionInfo
    confidence_score: float
    primary_food_category: FoodCategory
    allergen_warnings: frozenset[str]
    meal_type: MealType
    meal_type_confidence: float
    meal_type_reason: str | None
    analysis_timestamp: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "detected_foods": [item.to_dict() for item in self.detected_foods],
            "total_nutrition": self.total_nutrition.to_dict(),
            "confidence_score": self.confidence_score,
            "primary_food_category": self.primary_food_category.value,
            "allergen_warnings": sorted(self.allergen_warnings),
            "meal_type": self.meal_type.value,
            "meal_type_confidence": self.meal_type_confidence,
            "meal_type_reason": self.meal_type_reason,
            "analysis_timestamp": self.analysis_timestamp.isoformat(),
        }
