"""Models for structured LLM responses."""

from pydantic import BaseModel, Field


class VisionFood(BaseModel):
    """Single food item reported by the vision model."""

    name: str = Field(min_length=1)
    estimated_weight: float | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    category: str | None = None
    preparation_state: str | None = None


class VisionAnalysis(BaseModel):
    """Food validation, meal type and items returned by the vision model."""

    contains_food: bool
    detected_content: str = ""
    meal_type: str = "unknown"
    meal_type_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    meal_type_reason: str | None = None
    foods: list[VisionFood] = Field(default_factory=list)


class NutritionEstimate(BaseModel):
    """Nutrition breakdown produced by the generative estimator."""

    calories: float = Field(ge=0.0)
    protein: float = Field(default=0.0, ge=0.0)
    carbs: float = Field(default=0.0, ge=0.0)
    fat: float = Field(default=0.0, ge=0.0)
    fiber: float = Field(default=0.0, ge=0.0)
    sugar: float = Field(default=0.0, ge=0.0)
    sodium: float = Field(default=0.0, ge=0.0)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence such as a json-tagged block."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned[:4].lower() == "json":
            cleaned = cleaned[4:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()
