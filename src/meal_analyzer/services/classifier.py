"""On-device food classification."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from meal_analyzer.domain.foods import alternative_names, categorize_food
from meal_analyzer.domain.meals import DetectedFoodItem, DetectionSource

if TYPE_CHECKING:
    from meal_analyzer.services.nutrition import NutritionResolver

_logger = logging.getLogger(__name__)


class ClassifierModel(Protocol):
    """Pretrained image classifier producing one score per label."""

    labels: Sequence[str]

    def predict(self, tensor: np.ndarray) -> Sequence[float]:
        """Return per-label scores in [0, 1] for an HxWx3 float tensor."""


@dataclass
class LocalClassifier:
    """Turns classifier scores into detected food items.

    Keeps the top ``max_results`` labels scoring above ``min_confidence``.
    A missing model or an inference failure yields an empty list so the
    orchestrator can route around the classifier.
    """

    model: ClassifierModel | None
    resolver: "NutritionResolver"
    min_confidence: float = 0.1
    max_results: int = 5
    default_weight_g: float = 100.0

    @property
    def is_available(self) -> bool:
        return self.model is not None

    async def classify(
        self, tensor: np.ndarray, weight_hint_g: float | None = None
    ) -> list[DetectedFoodItem]:
        """Classify the image tensor; never raises."""
        if self.model is None:
            return []
        try:
            scores = list(self.model.predict(tensor))
            labels = list(self.model.labels)
        except Exception:
            _logger.exception("Local classifier inference failed")
            return []

        ranked = sorted(
            zip(labels, scores, strict=False), key=lambda pair: pair[1], reverse=True
        )
        retained = [
            (label, float(score))
            for label, score in ranked[: self.max_results]
            if score > self.min_confidence
        ]
        if not retained:
            return []

        weight_g = (
            weight_hint_g
            if weight_hint_g is not None and weight_hint_g > 0
            else self.default_weight_g
        )
        nutrition = await asyncio.gather(
            *(self.resolver.resolve(label, weight_g) for label, _ in retained)
        )
        items = [
            DetectedFoodItem(
                name=label,
                category=categorize_food(label),
                confidence=min(score, 1.0),
                estimated_weight_g=weight_g,
                alternative_names=alternative_names(label),
                nutrition=info,
                source=DetectionSource.LOCAL,
            )
            for (label, score), info in zip(retained, nutrition, strict=True)
        ]
        _logger.info(
            "Local classifier detected %s items: %s",
            len(items),
            ", ".join(f"{item.name} ({item.confidence:.2f})" for item in items),
        )
        return items
