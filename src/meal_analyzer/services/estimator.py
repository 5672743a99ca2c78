"""Generative nutrition estimates from a language model."""

import json
from dataclasses import dataclass
from typing import Protocol

from meal_analyzer.domain.nutrition import NutritionInfo
from meal_analyzer.domain.vision import NutritionEstimate, strip_code_fences

_NUMBER = {"type": "number", "minimum": 0.0}

ESTIMATE_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "calories": _NUMBER,
        "protein": _NUMBER,
        "carbs": _NUMBER,
        "fat": _NUMBER,
        "fiber": _NUMBER,
        "sugar": _NUMBER,
        "sodium": _NUMBER,
    },
    "required": ["calories", "protein", "carbs", "fat", "fiber", "sugar", "sodium"],
    "additionalProperties": False,
}


class CompletionClient(Protocol):
    """Interface for single-turn text completions."""

    async def complete(
        self,
        *,
        model: str,
        prompt: str,
        schema: dict[str, object] | None = None,
    ) -> str:
        """Return the model's raw output text."""


@dataclass
class GenerativeNutritionEstimator:
    """Asks a language model for nutrition at an exact weight."""

    client: CompletionClient
    model: str

    async def estimate(self, food_name: str, weight_g: float) -> NutritionInfo:
        """Return the model's estimate; raises on transport or schema errors."""
        prompt = (
            f"Provide detailed nutrition information for {weight_g:g}g of {food_name}.\n"
            "Return JSON with the keys calories, protein, carbs, fat, fiber, sugar "
            "and sodium. All values must be numbers (not strings) and represent "
            "the total amount for the specified weight; sodium is in milligrams, "
            "everything else except calories in grams."
        )
        raw = await self.client.complete(
            model=self.model, prompt=prompt, schema=ESTIMATE_SCHEMA
        )
        estimate = NutritionEstimate.model_validate(json.loads(strip_code_fences(raw)))
        return NutritionInfo(
            calories=estimate.calories,
            protein_g=estimate.protein,
            carbs_g=estimate.carbs,
            fat_g=estimate.fat,
            fiber_g=estimate.fiber,
            sugar_g=estimate.sugar,
            sodium_mg=estimate.sodium,
            serving_size_g=weight_g,
        )
