"""Remote food detection with a multimodal LLM."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from pydantic import ValidationError

from meal_analyzer.domain.errors import NonFoodImageError
from meal_analyzer.domain.foods import alternative_names
from meal_analyzer.domain.meals import (
    DetectedFoodItem,
    DetectionSource,
    FoodCategory,
    MealType,
    MealTypeClassification,
)
from meal_analyzer.domain.nutrition import estimate_default_nutrition
from meal_analyzer.domain.vision import VisionAnalysis, VisionFood, strip_code_fences

if TYPE_CHECKING:
    from meal_analyzer.services.nutrition import NutritionResolver

_logger = logging.getLogger(__name__)

GENERIC_FOOD_NAME = "Mixed Food"
GENERIC_FOOD_CONFIDENCE = 0.3

VISION_PROMPT = """\
Analyze this image and provide a comprehensive food analysis.

1. FOOD VALIDATION (decide this first):
   - Set "contains_food" to true only if the image shows food, ingredients or beverages.
   - Set "detected_content" to a short description of what the image shows.
   - If there is no food, return an empty "foods" list and meal type "unknown".

2. MEAL TYPE CLASSIFICATION:
   - "ingredients": raw or uncooked ingredients that could be used to prepare a meal
   - "ready_made": fully prepared dishes ready to eat
   - "mixed": contains both ingredients and prepared items
   - "unknown": cannot determine meal type

3. FOOD ITEM DETECTION. For each visible food item provide:
   - name of the food
   - estimated portion size in grams
   - confidence level (0-1)
   - food category (protein, carbohydrates, vegetables, fruits, dairy, fats, other)
   - preparation state (raw, cooked, processed)

Respond with JSON only:
{
  "contains_food": true,
  "detected_content": "short description of the image",
  "meal_type": "ingredients|ready_made|mixed|unknown",
  "meal_type_confidence": 0.85,
  "meal_type_reason": "brief explanation",
  "foods": [
    {
      "name": "food name",
      "estimated_weight": 150.0,
      "confidence": 0.85,
      "category": "protein",
      "preparation_state": "raw|cooked|processed"
    }
  ]
}
"""

_NULLABLE_NUMBER = {"anyOf": [{"type": "number"}, {"type": "null"}]}
_NULLABLE_STRING = {"anyOf": [{"type": "string"}, {"type": "null"}]}

VISION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "contains_food": {"type": "boolean"},
        "detected_content": {"type": "string"},
        "meal_type": {
            "type": "string",
            "enum": ["ingredients", "ready_made", "mixed", "unknown"],
        },
        "meal_type_confidence": {"type": "number", "minimum": 0.0, "maximum": 1.0},
        "meal_type_reason": _NULLABLE_STRING,
        "foods": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "estimated_weight": _NULLABLE_NUMBER,
                    "confidence": _NULLABLE_NUMBER,
                    "category": _NULLABLE_STRING,
                    "preparation_state": _NULLABLE_STRING,
                },
                "required": [
                    "name",
                    "estimated_weight",
                    "confidence",
                    "category",
                    "preparation_state",
                ],
                "additionalProperties": False,
            },
        },
    },
    "required": [
        "contains_food",
        "detected_content",
        "meal_type",
        "meal_type_confidence",
        "meal_type_reason",
        "foods",
    ],
    "additionalProperties": False,
}


class VisionClient(Protocol):
    """Interface for multimodal LLM calls."""

    async def analyze(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        image_data_url: str,
        schema: dict[str, object] | None,
        prompt: str,
    ) -> str:
        """Return the model's raw output text for an image and prompt."""


@dataclass(frozen=True)
class RemoteDetection:
    """Outcome of a remote vision call that passed the food gate."""

    is_food: bool
    detected_content: str
    meal_type: MealTypeClassification
    items: list[DetectedFoodItem]
    degraded: bool = False


@dataclass
class RemoteVisionDetector:
    """Validates, classifies and itemizes a meal photo via a vision model."""

    client: VisionClient
    resolver: "NutritionResolver"
    model: str
    reasoning_effort: str | None = None
    store: bool = False
    timeout_seconds: float = 30.0
    default_weight_g: float = 100.0

    async def detect(self, encoded_payload: str) -> RemoteDetection:
        """Analyze the image.

        Raises NonFoodImageError when the model says the image holds no food.
        Every other failure yields a degraded detection with one generic item.
        """
        try:
            raw = await asyncio.wait_for(
                self.client.analyze(
                    model=self.model,
                    reasoning_effort=self.reasoning_effort,
                    store=self.store,
                    image_data_url=encoded_payload,
                    schema=VISION_SCHEMA,
                    prompt=VISION_PROMPT,
                ),
                timeout=self.timeout_seconds,
            )
            analysis = parse_vision_response(raw)
        except TimeoutError:
            _logger.warning("Vision request timed out after %ss", self.timeout_seconds)
            return degraded_detection()
        except (ValueError, ValidationError) as exc:
            _logger.warning("Vision response could not be parsed: %s", exc)
            return degraded_detection()
        except Exception:
            _logger.exception("Vision request failed")
            return degraded_detection()

        if not analysis.contains_food:
            _logger.info("Image rejected as non-food: %s", analysis.detected_content)
            raise NonFoodImageError(analysis.detected_content)

        items = await self._build_items(analysis.foods)
        return RemoteDetection(
            is_food=True,
            detected_content=analysis.detected_content,
            meal_type=_meal_type_from(analysis),
            items=items,
        )

    async def _build_items(self, foods: list[VisionFood]) -> list[DetectedFoodItem]:
        weights = [
            food.estimated_weight
            if food.estimated_weight is not None and food.estimated_weight > 0
            else self.default_weight_g
            for food in foods
        ]
        nutrition = await asyncio.gather(
            *(
                self.resolver.resolve(food.name, weight)
                for food, weight in zip(foods, weights, strict=True)
            )
        )
        return [
            DetectedFoodItem(
                name=food.name.strip(),
                category=FoodCategory.parse(food.category),
                confidence=food.confidence if food.confidence is not None else 0.5,
                estimated_weight_g=weight,
                alternative_names=alternative_names(food.name),
                nutrition=info,
                preparation_state=food.preparation_state,
                source=DetectionSource.REMOTE,
            )
            for food, weight, info in zip(foods, weights, nutrition, strict=True)
        ]


def parse_vision_response(raw: str) -> VisionAnalysis:
    """Strip code fences and validate the vision JSON contract."""
    data = json.loads(strip_code_fences(raw))
    return VisionAnalysis.model_validate(data)


def generic_food_item(source: DetectionSource = DetectionSource.FALLBACK) -> DetectedFoodItem:
    """Low-confidence placeholder used when detection produced nothing usable."""
    return DetectedFoodItem(
        name=GENERIC_FOOD_NAME,
        category=FoodCategory.OTHER,
        confidence=GENERIC_FOOD_CONFIDENCE,
        estimated_weight_g=100.0,
        alternative_names=("food", "meal"),
        nutrition=estimate_default_nutrition(100.0),
        source=source,
    )


def degraded_detection() -> RemoteDetection:
    return RemoteDetection(
        is_food=True,
        detected_content="",
        meal_type=MealTypeClassification.unknown(),
        items=[generic_food_item()],
        degraded=True,
    )


def _meal_type_from(analysis: VisionAnalysis) -> MealTypeClassification:
    meal_type = MealType.parse(analysis.meal_type)
    reason = analysis.meal_type_reason or None
    if meal_type is MealType.UNKNOWN:
        return MealTypeClassification(MealType.UNKNOWN, analysis.meal_type_confidence, reason)
    if analysis.meal_type_confidence == 0.0 and reason is None:
        reason = "Reported by vision model without explanation"
    return MealTypeClassification(meal_type, analysis.meal_type_confidence, reason)
