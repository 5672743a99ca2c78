"""Meal photo analysis pipeline."""

import logging
from dataclasses import dataclass

from meal_analyzer.domain.meals import MealAnalysisResult
from meal_analyzer.services.aggregator import aggregate
from meal_analyzer.services.orchestrator import DetectionOrchestrator
from meal_analyzer.services.preprocess import ImagePreprocessor

_logger = logging.getLogger(__name__)


@dataclass
class MealAnalyzer:
    """Service that turns a meal photo into a nutrition breakdown."""

    preprocessor: ImagePreprocessor
    orchestrator: DetectionOrchestrator

    async def analyze(
        self, image_bytes: bytes, weight_hint_g: float | None = None
    ) -> MealAnalysisResult:
        """Analyze a photo.

        Raises DecodeError for unreadable input and NonFoodImageError when the
        image shows no food. Detector and nutrition failures degrade instead
        of raising.
        """
        image = self.preprocessor.preprocess(image_bytes)
        outcome = await self.orchestrator.detect(image, weight_hint_g)
        result = aggregate(outcome.items, outcome.meal_type)
        _logger.info(
            "Meal analyzed: items=%s calories=%.1f confidence=%.2f meal_type=%s strategy=%s",
            len(result.detected_foods),
            result.total_nutrition.calories,
            result.confidence_score,
            result.meal_type.value,
            outcome.strategy.value,
        )
        return result
