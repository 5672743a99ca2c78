"""Shared test fixtures."""

import asyncio
import io
import json
from collections.abc import Sequence
from dataclasses import dataclass, field

import httpx
import numpy as np
import pytest
from PIL import Image

from meal_analyzer.adapters.fdc_client import FdcClient
from meal_analyzer.config import Settings
from meal_analyzer.containers import AppContainer
from meal_analyzer.domain.nutrition import NutritionCacheEntry
from meal_analyzer.services.analysis import MealAnalyzer
from meal_analyzer.services.backfill import BackfillWorker
from meal_analyzer.services.breaker import CircuitBreaker
from meal_analyzer.services.cache import (
    InMemoryCache,
    InMemoryNutritionCacheStore,
    NutritionCacheStore,
)
from meal_analyzer.services.classifier import ClassifierModel, LocalClassifier
from meal_analyzer.services.estimator import (
    CompletionClient,
    GenerativeNutritionEstimator,
)
from meal_analyzer.services.nutrition import NutritionResolver, NutritionService
from meal_analyzer.services.orchestrator import DetectionOrchestrator
from meal_analyzer.services.preprocess import ImagePreprocessor
from meal_analyzer.services.vision import RemoteVisionDetector, VisionClient

CHICKEN_NUTRIENTS = [
    {"nutrientId": 1008, "amount": 165},
    {"nutrientId": 1003, "amount": 31},
    {"nutrientId": 1004, "amount": 3.6},
    {"nutrientId": 1005, "amount": 0},
    {"nutrientId": 1093, "amount": 74},
    {"nutrientId": 1092, "amount": 256},
]


def vision_payload(
    foods: list[dict[str, object]] | None = None,
    *,
    contains_food: bool = True,
    detected_content: str = "a plate of food",
    meal_type: str = "ready_made",
    meal_type_confidence: float = 0.85,
    meal_type_reason: str | None = "Cooked dish on a plate",
) -> dict[str, object]:
    return {
        "contains_food": contains_food,
        "detected_content": detected_content,
        "meal_type": meal_type,
        "meal_type_confidence": meal_type_confidence,
        "meal_type_reason": meal_type_reason,
        "foods": foods if foods is not None else [],
    }


def food_payload(
    name: str,
    confidence: float | None = 0.9,
    weight: float | None = 150.0,
    category: str | None = "protein",
) -> dict[str, object]:
    return {
        "name": name,
        "estimated_weight": weight,
        "confidence": confidence,
        "category": category,
        "preparation_state": "cooked",
    }


@dataclass
class FakeVisionClient(VisionClient):
    """Fake vision client returning a fixed JSON payload."""

    payload: dict[str, object] = field(
        default_factory=lambda: vision_payload([food_payload("grilled chicken breast")])
    )
    raw_text: str | None = None
    delay_seconds: float = 0.0
    error: Exception | None = None
    calls: list[dict[str, object]] = field(default_factory=list)

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
        self.calls.append({"model": model, "image_data_url": image_data_url})
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        if self.raw_text is not None:
            return self.raw_text
        return json.dumps(self.payload)


@dataclass
class FakeFdcClient(FdcClient):
    """Fake FDC client with in-memory responses."""

    search_payload: dict[str, object] = field(
        default_factory=lambda: {
            "foods": [
                {
                    "fdcId": 171077,
                    "description": "Chicken, broilers or fryers, breast, meat only, cooked",
                    "dataType": "SR Legacy",
                },
                {
                    "fdcId": 999001,
                    "description": "Chicken breast strips",
                    "brandOwner": "Acme Foods",
                    "dataType": "Branded",
                },
            ]
        }
    )
    food_payload: dict[str, object] = field(
        default_factory=lambda: {
            "fdcId": 171077,
            "description": "Chicken, broilers or fryers, breast, meat only, cooked",
            "dataType": "SR Legacy",
            "foodNutrients": list(CHICKEN_NUTRIENTS),
        }
    )
    search_calls: list[str] = field(default_factory=list)
    food_calls: list[int] = field(default_factory=list)

    async def search_foods(self, query: str, page_size: int = 10) -> dict[str, object]:
        self.search_calls.append(query)
        return self.search_payload

    async def get_food(self, fdc_id: int) -> dict[str, object]:
        self.food_calls.append(fdc_id)
        return self.food_payload


@dataclass
class FailingFdcClient(FdcClient):
    """FDC client that is always unreachable."""

    calls: int = 0

    async def search_foods(self, query: str, page_size: int = 10) -> dict[str, object]:
        self.calls += 1
        raise httpx.ConnectError("FDC unreachable")

    async def get_food(self, fdc_id: int) -> dict[str, object]:
        self.calls += 1
        raise httpx.ConnectError("FDC unreachable")


@dataclass
class FakeCompletionClient(CompletionClient):
    """Fake completion client returning a nutrition estimate."""

    payload: dict[str, object] = field(
        default_factory=lambda: {
            "calories": 250,
            "protein": 10,
            "carbs": 30,
            "fat": 9,
            "fiber": 2,
            "sugar": 4,
            "sodium": 300,
        }
    )
    error: Exception | None = None
    prompts: list[str] = field(default_factory=list)

    async def complete(
        self,
        *,
        model: str,
        prompt: str,
        schema: dict[str, object] | None = None,
    ) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return f"```json\n{json.dumps(self.payload)}\n```"


@dataclass
class FakeClassifierModel(ClassifierModel):
    """Classifier returning fixed scores."""

    labels: Sequence[str] = ("apple",)
    scores: Sequence[float] = (0.95,)
    error: Exception | None = None
    calls: int = 0

    def predict(self, tensor: np.ndarray) -> Sequence[float]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.scores)


class FailingNutritionCacheStore(NutritionCacheStore):
    """Cache store whose backend is down."""

    def __init__(self) -> None:
        self.calls = 0

    async def find_exact(self, food_name: str) -> list[NutritionCacheEntry]:
        self.calls += 1
        raise ConnectionError("cache unavailable")

    async def find_by_keywords(
        self, keywords: frozenset[str], limit: int = 20
    ) -> list[NutritionCacheEntry]:
        self.calls += 1
        raise ConnectionError("cache unavailable")

    async def append(self, entry: NutritionCacheEntry) -> None:
        self.calls += 1
        raise ConnectionError("cache unavailable")


def make_image_bytes(
    color: tuple[int, int, int] = (200, 30, 30), image_format: str = "PNG"
) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (64, 48), color).save(buffer, format=image_format)
    return buffer.getvalue()


def make_resolver(
    fdc_client: FdcClient | None = None,
    completion_client: CompletionClient | None = None,
    store: NutritionCacheStore | None = None,
) -> NutritionResolver:
    resolved_store = store if store is not None else InMemoryNutritionCacheStore()
    database = None
    if fdc_client is not None:
        database = NutritionService(
            fdc_client=fdc_client,
            cache=InMemoryCache(),
            retry_attempts=0,
        )
    estimator = None
    if completion_client is not None:
        estimator = GenerativeNutritionEstimator(
            client=completion_client, model="gpt-4o-mini"
        )
    return NutritionResolver(
        store=resolved_store,
        backfill=BackfillWorker(resolved_store),
        database=database,
        estimator=estimator,
    )


def make_orchestrator(
    resolver: NutritionResolver,
    vision_client: VisionClient | None = None,
    classifier_model: ClassifierModel | None = None,
) -> DetectionOrchestrator:
    remote = None
    if vision_client is not None:
        remote = RemoteVisionDetector(
            client=vision_client, resolver=resolver, model="gpt-4o"
        )
    local = LocalClassifier(model=classifier_model, resolver=resolver)
    return DetectionOrchestrator(remote=remote, local=local)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key="openai-key",
        fdc_api_key="fdc-key",
    )


@pytest.fixture
def image_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def resolver() -> NutritionResolver:
    return make_resolver(
        fdc_client=FakeFdcClient(), completion_client=FakeCompletionClient()
    )


@pytest.fixture
def container(settings: Settings) -> AppContainer:
    store = InMemoryNutritionCacheStore()
    backfill = BackfillWorker(store)
    cache_breaker = CircuitBreaker(name="nutrition_cache")
    database_breaker = CircuitBreaker(name="fdc")
    nutrition_service = NutritionService(
        fdc_client=FakeFdcClient(), cache=InMemoryCache(), retry_attempts=0
    )
    resolver = NutritionResolver(
        store=store,
        backfill=backfill,
        database=nutrition_service,
        estimator=GenerativeNutritionEstimator(
            client=FakeCompletionClient(), model=settings.openai_text_model
        ),
        cache_breaker=cache_breaker,
        database_breaker=database_breaker,
    )
    remote_detector = RemoteVisionDetector(
        client=FakeVisionClient(), resolver=resolver, model=settings.openai_vision_model
    )
    local_classifier = LocalClassifier(model=None, resolver=resolver)
    orchestrator = DetectionOrchestrator(remote=remote_detector, local=local_classifier)
    preprocessor = ImagePreprocessor()

    async def close_resources() -> None:
        await backfill.drain()

    return AppContainer(
        settings=settings,
        preprocessor=preprocessor,
        cache_store=store,
        backfill=backfill,
        cache_breaker=cache_breaker,
        database_breaker=database_breaker,
        nutrition_service=nutrition_service,
        resolver=resolver,
        remote_detector=remote_detector,
        local_classifier=local_classifier,
        orchestrator=orchestrator,
        analyzer=MealAnalyzer(preprocessor=preprocessor, orchestrator=orchestrator),
        close_resources=close_resources,
    )
