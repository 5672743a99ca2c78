"""Tests for detection routing and merging."""

import asyncio

import pytest

from meal_analyzer.domain.errors import NonFoodImageError
from meal_analyzer.domain.meals import (
    DetectedFoodItem,
    DetectionSource,
    FoodCategory,
    MealType,
)
from meal_analyzer.domain.nutrition import estimate_default_nutrition
from meal_analyzer.services.orchestrator import (
    HEURISTIC_MEAL_TYPE_REASON,
    DetectionPolicy,
    DetectionState,
    DetectionStrategy,
    merge_detections,
)
from meal_analyzer.services.preprocess import ImagePreprocessor
from tests.conftest import (
    FakeClassifierModel,
    FakeFdcClient,
    FakeVisionClient,
    food_payload,
    make_image_bytes,
    make_orchestrator,
    make_resolver,
    vision_payload,
)


@pytest.fixture
def image():
    return ImagePreprocessor().preprocess(make_image_bytes())


def _item(name: str, confidence: float) -> DetectedFoodItem:
    return DetectedFoodItem(
        name=name,
        category=FoodCategory.OTHER,
        confidence=confidence,
        estimated_weight_g=100.0,
        alternative_names=(),
        nutrition=estimate_default_nutrition(100.0),
        source=DetectionSource.LOCAL,
    )


def test_non_food_aborts_before_classification_and_lookup(image) -> None:
    fdc_client = FakeFdcClient()
    model = FakeClassifierModel()
    vision = FakeVisionClient(
        payload=vision_payload(
            contains_food=False,
            detected_content="a photograph of a car",
            meal_type="unknown",
            meal_type_confidence=0.0,
            meal_type_reason=None,
        )
    )
    orchestrator = make_orchestrator(make_resolver(fdc_client=fdc_client), vision, model)

    with pytest.raises(NonFoodImageError) as exc_info:
        asyncio.run(orchestrator.detect(image))

    assert exc_info.value.detected_content == "a photograph of a car"
    assert model.calls == 0
    assert fdc_client.search_calls == []


def test_confident_local_items_are_trusted(image) -> None:
    vision = FakeVisionClient(
        payload=vision_payload(
            [food_payload("banana", 0.8, category="fruits")],
            meal_type="ingredients",
            meal_type_confidence=0.9,
            meal_type_reason="A single raw fruit",
        )
    )
    model = FakeClassifierModel(labels=("apple", "pear"), scores=(0.95, 0.02))
    orchestrator = make_orchestrator(make_resolver(), vision, model)

    outcome = asyncio.run(orchestrator.detect(image))

    assert outcome.strategy is DetectionStrategy.LOCAL_TRUSTED
    assert [item.name for item in outcome.items] == ["apple"]
    assert outcome.items[0].category is FoodCategory.FRUITS
    assert outcome.meal_type.meal_type is MealType.INGREDIENTS
    assert outcome.meal_type.reason == "A single raw fruit"
    assert outcome.state_trail == (
        DetectionState.NOT_STARTED,
        DetectionState.VALIDATING,
        DetectionState.AWAITING_REMOTE,
        DetectionState.CLASSIFYING,
        DetectionState.DONE,
    )


def test_weight_hint_applies_to_local_items(image) -> None:
    model = FakeClassifierModel(labels=("apple",), scores=(0.95,))
    orchestrator = make_orchestrator(make_resolver(), FakeVisionClient(), model)

    outcome = asyncio.run(orchestrator.detect(image, weight_hint_g=180))

    assert outcome.items[0].estimated_weight_g == 180
    assert outcome.items[0].nutrition.serving_size_g == 180


def test_merge_drops_remote_duplicate_of_kept_local_item(image) -> None:
    vision = FakeVisionClient(
        payload=vision_payload(
            [
                food_payload("grilled chicken breast", 0.9),
                food_payload("steamed broccoli", 0.8, category="vegetables"),
            ]
        )
    )
    model = FakeClassifierModel(labels=("chicken breast", "rice"), scores=(0.65, 0.2))
    orchestrator = make_orchestrator(make_resolver(), vision, model)

    outcome = asyncio.run(orchestrator.detect(image))

    names = [item.name for item in outcome.items]
    assert outcome.strategy is DetectionStrategy.MERGED
    assert names == ["chicken breast", "steamed broccoli", "rice"]
    assert sum("chicken" in name for name in names) == 1
    assert DetectionState.MERGING in outcome.state_trail


def test_merge_backfill_is_stable_by_confidence_then_order() -> None:
    local = [_item("a", 0.5), _item("b", 0.55), _item("c", 0.5), _item("d", 0.3)]

    merged = merge_detections(local, [], DetectionPolicy())

    assert [item.name for item in merged] == ["b", "a", "c", "d"]


def test_merge_backfill_stops_at_max_items() -> None:
    names = ("bean", "corn", "pea", "oat", "rye", "fig", "kiwi", "lime")
    local = [_item(name, 0.2) for name in names]
    policy = DetectionPolicy(merge_min_items=3, merge_max_items=5)

    merged = merge_detections(local, [_item("soup", 0.9)], policy)

    assert [item.name for item in merged] == ["soup", "bean", "corn", "pea", "oat"]


def test_merge_skips_backfill_when_enough_items() -> None:
    local = [_item("toast", 0.65), _item("jam", 0.3)]
    remote = [_item("coffee", 0.9), _item("orange juice", 0.8)]

    merged = merge_detections(local, remote, DetectionPolicy())

    assert [item.name for item in merged] == ["toast", "coffee", "orange juice"]


def test_remote_only_without_classifier(image) -> None:
    orchestrator = make_orchestrator(make_resolver(), FakeVisionClient(), None)

    outcome = asyncio.run(orchestrator.detect(image))

    assert outcome.strategy is DetectionStrategy.REMOTE_ONLY
    assert [item.name for item in outcome.items] == ["grilled chicken breast"]
    assert outcome.items[0].source is DetectionSource.REMOTE
    assert outcome.meal_type.meal_type is MealType.READY_MADE
    assert outcome.state_trail == (
        DetectionState.NOT_STARTED,
        DetectionState.VALIDATING,
        DetectionState.AWAITING_REMOTE,
        DetectionState.DONE,
    )


def test_degraded_remote_uses_local_items_with_heuristic_meal_type(image) -> None:
    vision = FakeVisionClient(error=RuntimeError("service unavailable"))
    model = FakeClassifierModel(labels=("pizza",), scores=(0.5,))
    orchestrator = make_orchestrator(make_resolver(), vision, model)

    outcome = asyncio.run(orchestrator.detect(image))

    assert outcome.strategy is DetectionStrategy.LOCAL_ONLY
    assert [item.name for item in outcome.items] == ["pizza"]
    assert outcome.meal_type.meal_type is MealType.READY_MADE
    assert outcome.meal_type.confidence == 0.7
    assert outcome.meal_type.reason == HEURISTIC_MEAL_TYPE_REASON
    assert outcome.failure == "remote_degraded"
    assert outcome.state_trail == (
        DetectionState.NOT_STARTED,
        DetectionState.VALIDATING,
        DetectionState.AWAITING_REMOTE,
        DetectionState.FAILED,
        DetectionState.CLASSIFYING,
        DetectionState.DONE,
    )


def test_everything_failing_yields_generic_item(image) -> None:
    vision = FakeVisionClient(raw_text="not json at all")
    model = FakeClassifierModel(error=RuntimeError("bad model"))
    orchestrator = make_orchestrator(make_resolver(), vision, model)

    outcome = asyncio.run(orchestrator.detect(image))

    assert outcome.strategy is DetectionStrategy.FALLBACK
    assert len(outcome.items) == 1
    assert outcome.items[0].name == "Mixed Food"
    assert outcome.items[0].confidence == 0.3
    assert outcome.meal_type.meal_type is MealType.UNKNOWN


def test_food_image_without_items_falls_back(image) -> None:
    vision = FakeVisionClient(payload=vision_payload([]))
    orchestrator = make_orchestrator(make_resolver(), vision, None)

    outcome = asyncio.run(orchestrator.detect(image))

    assert outcome.strategy is DetectionStrategy.FALLBACK
    assert outcome.items[0].name == "Mixed Food"
    assert outcome.meal_type.meal_type is MealType.READY_MADE
    assert outcome.failure == "no_detections"


def test_local_only_without_remote_detector(image) -> None:
    model = FakeClassifierModel(labels=("fresh spinach",), scores=(0.4,))
    orchestrator = make_orchestrator(make_resolver(), None, model)

    outcome = asyncio.run(orchestrator.detect(image))

    assert outcome.strategy is DetectionStrategy.LOCAL_ONLY
    assert outcome.meal_type.meal_type is MealType.INGREDIENTS
    assert DetectionState.VALIDATING not in outcome.state_trail
