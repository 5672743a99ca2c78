"""Routing between the local classifier and the remote vision detector."""

import logging
from dataclasses import dataclass, field
from enum import Enum

from meal_analyzer.domain.errors import NonFoodImageError
from meal_analyzer.domain.foods import infer_meal_type, is_same_food
from meal_analyzer.domain.meals import (
    DetectedFoodItem,
    MealType,
    MealTypeClassification,
)
from meal_analyzer.services.classifier import LocalClassifier
from meal_analyzer.services.preprocess import PreprocessedImage
from meal_analyzer.services.vision import (
    RemoteDetection,
    RemoteVisionDetector,
    generic_food_item,
)

_logger = logging.getLogger(__name__)

HEURISTIC_MEAL_TYPE_CONFIDENCE = 0.7
HEURISTIC_MEAL_TYPE_REASON = "Determined from food type analysis"


class DetectionState(str, Enum):
    """Stages an analysis passes through."""

    NOT_STARTED = "not_started"
    VALIDATING = "validating"
    CLASSIFYING = "classifying"
    AWAITING_REMOTE = "awaiting_remote"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


class DetectionStrategy(str, Enum):
    """Which policy branch produced the final items."""

    LOCAL_TRUSTED = "local_trusted"
    MERGED = "merged"
    REMOTE_ONLY = "remote_only"
    LOCAL_ONLY = "local_only"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class DetectionPolicy:
    """Confidence thresholds and item limits for routing and merging."""

    local_trust_confidence: float = 0.7
    merge_keep_confidence: float = 0.6
    merge_min_items: int = 3
    merge_max_items: int = 5


@dataclass(frozen=True)
class DetectionOutcome:
    """Items and meal type chosen for an image."""

    items: list[DetectedFoodItem]
    meal_type: MealTypeClassification
    strategy: DetectionStrategy
    state_trail: tuple[DetectionState, ...]
    failure: str | None = None


@dataclass
class _Trail:
    states: list[DetectionState] = field(
        default_factory=lambda: [DetectionState.NOT_STARTED]
    )
    failure: str | None = None

    def enter(self, state: DetectionState) -> None:
        self.states.append(state)

    def fail(self, kind: str) -> None:
        self.failure = kind
        self.states.append(DetectionState.FAILED)


@dataclass
class DetectionOrchestrator:
    """Decides which detectors run and how their results combine.

    The remote detector runs first because only it can reject non-food
    images. A confident local classification is trusted outright; otherwise
    local and remote items are merged. When nothing usable comes back a single
    generic item keeps downstream aggregation non-empty.
    """

    remote: RemoteVisionDetector | None
    local: LocalClassifier | None
    policy: DetectionPolicy = field(default_factory=DetectionPolicy)

    async def detect(
        self, image: PreprocessedImage, weight_hint_g: float | None = None
    ) -> DetectionOutcome:
        """Run the detectors; only NonFoodImageError escapes."""
        trail = _Trail()
        remote_result: RemoteDetection | None = None

        if self.remote is not None:
            trail.enter(DetectionState.VALIDATING)
            trail.enter(DetectionState.AWAITING_REMOTE)
            try:
                remote_result = await self.remote.detect(image.encoded_payload)
            except NonFoodImageError:
                trail.fail("non_food")
                raise
            if remote_result.degraded:
                trail.fail("remote_degraded")

        local_items: list[DetectedFoodItem] = []
        if self.local is not None and self.local.is_available:
            trail.enter(DetectionState.CLASSIFYING)
            local_items = await self.local.classify(image.tensor, weight_hint_g)
            if not local_items:
                _logger.info("Local classifier returned no items")

        outcome = self._route(remote_result, local_items, trail)
        _logger.info(
            "Detection finished: strategy=%s items=%s meal_type=%s",
            outcome.strategy.value,
            len(outcome.items),
            outcome.meal_type.meal_type.value,
        )
        return outcome

    def _route(
        self,
        remote: RemoteDetection | None,
        local_items: list[DetectedFoodItem],
        trail: _Trail,
    ) -> DetectionOutcome:
        remote_usable = remote is not None and not remote.degraded
        if remote_usable:
            meal_type = remote.meal_type
        else:
            meal_type = _heuristic_meal_type(local_items)

        if local_items:
            mean_confidence = sum(item.confidence for item in local_items) / len(
                local_items
            )
            if not remote_usable:
                return self._finish(trail, local_items, meal_type, DetectionStrategy.LOCAL_ONLY)
            if mean_confidence >= self.policy.local_trust_confidence:
                return self._finish(
                    trail, local_items, meal_type, DetectionStrategy.LOCAL_TRUSTED
                )
            trail.enter(DetectionState.MERGING)
            merged = merge_detections(local_items, remote.items, self.policy)
            if merged:
                return self._finish(trail, merged, meal_type, DetectionStrategy.MERGED)

        if remote_usable and remote.items:
            return self._finish(trail, remote.items, meal_type, DetectionStrategy.REMOTE_ONLY)

        if trail.failure is None:
            trail.fail("no_detections")
        return self._finish(
            trail, [generic_food_item()], meal_type, DetectionStrategy.FALLBACK
        )

    def _finish(
        self,
        trail: _Trail,
        items: list[DetectedFoodItem],
        meal_type: MealTypeClassification,
        strategy: DetectionStrategy,
    ) -> DetectionOutcome:
        trail.enter(DetectionState.DONE)
        return DetectionOutcome(
            items=list(items),
            meal_type=meal_type,
            strategy=strategy,
            state_trail=tuple(trail.states),
            failure=trail.failure,
        )


def merge_detections(
    local_items: list[DetectedFoodItem],
    remote_items: list[DetectedFoodItem],
    policy: DetectionPolicy,
) -> list[DetectedFoodItem]:
    """Combine confident local items with non-duplicate remote items.

    Local items at or above ``merge_keep_confidence`` are kept first. Remote
    items that name the same food as a kept item are dropped. If fewer than
    ``merge_min_items`` remain, the best leftover local items are added, by
    confidence descending and then classifier order, up to
    ``merge_max_items``.
    """
    kept = [
        item for item in local_items if item.confidence >= policy.merge_keep_confidence
    ]
    merged = list(kept)
    for remote_item in remote_items:
        if any(is_same_food(remote_item.name, item.name) for item in merged):
            continue
        merged.append(remote_item)

    if len(merged) < policy.merge_min_items:
        leftovers = [
            (index, item)
            for index, item in enumerate(local_items)
            if item not in kept
        ]
        leftovers.sort(key=lambda pair: (-pair[1].confidence, pair[0]))
        for _, item in leftovers:
            if len(merged) >= policy.merge_max_items:
                break
            if any(is_same_food(item.name, existing.name) for existing in merged):
                continue
            merged.append(item)
    return merged


def _heuristic_meal_type(items: list[DetectedFoodItem]) -> MealTypeClassification:
    meal_type = infer_meal_type([item.name for item in items])
    if meal_type is MealType.UNKNOWN:
        return MealTypeClassification.unknown()
    return MealTypeClassification(
        meal_type, HEURISTIC_MEAL_TYPE_CONFIDENCE, HEURISTIC_MEAL_TYPE_REASON
    )
