"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from meal_analyzer.adapters.fdc_client import HttpxFdcClient
from meal_analyzer.adapters.onnx_classifier import OnnxClassifierModel
from meal_analyzer.adapters.openai_client import OpenAIResponsesClient
from meal_analyzer.adapters.supabase_nutrition_cache_repository import (
    SupabaseNutritionCacheStore,
)
from meal_analyzer.config import Settings
from meal_analyzer.services.analysis import MealAnalyzer
from meal_analyzer.services.backfill import BackfillWorker
from meal_analyzer.services.breaker import CircuitBreaker
from meal_analyzer.services.cache import (
    InMemoryCache,
    InMemoryNutritionCacheStore,
    NutritionCacheStore,
)
from meal_analyzer.services.classifier import LocalClassifier
from meal_analyzer.services.estimator import GenerativeNutritionEstimator
from meal_analyzer.services.nutrition import (
    MatchPolicy,
    NutritionResolver,
    NutritionService,
)
from meal_analyzer.services.orchestrator import DetectionOrchestrator, DetectionPolicy
from meal_analyzer.services.preprocess import ImagePreprocessor
from meal_analyzer.services.vision import RemoteVisionDetector


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    preprocessor: ImagePreprocessor
    cache_store: NutritionCacheStore
    backfill: BackfillWorker
    cache_breaker: CircuitBreaker
    database_breaker: CircuitBreaker
    nutrition_service: NutritionService
    resolver: NutritionResolver
    remote_detector: RemoteVisionDetector
    local_classifier: LocalClassifier
    orchestrator: DetectionOrchestrator
    analyzer: MealAnalyzer
    close_resources: Callable[[], Awaitable[None]]


def build_cache_store(settings: Settings) -> NutritionCacheStore:
    """Use Supabase when configured, otherwise a process-local store."""
    if settings.supabase_enabled:
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return SupabaseNutritionCacheStore(client, settings.nutrition_cache_table)
    return InMemoryNutritionCacheStore()


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    cache_store = build_cache_store(resolved_settings)
    backfill = BackfillWorker(cache_store)
    cache_breaker = CircuitBreaker(
        name="nutrition_cache",
        failure_threshold=resolved_settings.breaker_failure_threshold,
        cooldown_seconds=resolved_settings.breaker_cooldown_seconds,
    )
    database_breaker = CircuitBreaker(
        name="fdc",
        failure_threshold=resolved_settings.breaker_failure_threshold,
        cooldown_seconds=resolved_settings.breaker_cooldown_seconds,
    )

    fdc_client = HttpxFdcClient.create(
        api_key=resolved_settings.fdc_api_key,
        base_url=resolved_settings.fdc_base_url,
        timeout=resolved_settings.fdc_timeout_seconds,
    )
    nutrition_service = NutritionService(
        fdc_client=fdc_client,
        cache=InMemoryCache(),
        debug=resolved_settings.debug,
    )
    openai_client = OpenAIResponsesClient.create(resolved_settings.openai_api_key)
    estimator = GenerativeNutritionEstimator(
        client=openai_client,
        model=resolved_settings.openai_text_model,
    )
    resolver = NutritionResolver(
        store=cache_store,
        backfill=backfill,
        database=nutrition_service,
        estimator=estimator,
        cache_breaker=cache_breaker,
        database_breaker=database_breaker,
        policy=MatchPolicy(
            threshold=resolved_settings.cache_match_threshold,
            substring_score=resolved_settings.substring_similarity,
        ),
        default_weight_g=resolved_settings.default_weight_grams,
    )

    remote_detector = RemoteVisionDetector(
        client=openai_client,
        resolver=resolver,
        model=resolved_settings.openai_vision_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
        timeout_seconds=resolved_settings.remote_timeout_seconds,
        default_weight_g=resolved_settings.default_weight_grams,
    )
    local_classifier = LocalClassifier(
        model=OnnxClassifierModel.load(
            resolved_settings.classifier_model_path,
            resolved_settings.classifier_labels_path,
        ),
        resolver=resolver,
        min_confidence=resolved_settings.classifier_min_confidence,
        max_results=resolved_settings.classifier_max_results,
        default_weight_g=resolved_settings.default_weight_grams,
    )
    orchestrator = DetectionOrchestrator(
        remote=remote_detector,
        local=local_classifier,
        policy=DetectionPolicy(
            local_trust_confidence=resolved_settings.local_trust_confidence,
            merge_keep_confidence=resolved_settings.merge_keep_confidence,
            merge_min_items=resolved_settings.merge_min_items,
            merge_max_items=resolved_settings.merge_max_items,
        ),
    )
    preprocessor = ImagePreprocessor(input_size=resolved_settings.classifier_input_size)
    analyzer = MealAnalyzer(preprocessor=preprocessor, orchestrator=orchestrator)

    async def close_resources() -> None:
        await backfill.drain()
        await fdc_client.close()
        await openai_client.close()

    return AppContainer(
        settings=resolved_settings,
        preprocessor=preprocessor,
        cache_store=cache_store,
        backfill=backfill,
        cache_breaker=cache_breaker,
        database_breaker=database_breaker,
        nutrition_service=nutrition_service,
        resolver=resolver,
        remote_detector=remote_detector,
        local_classifier=local_classifier,
        orchestrator=orchestrator,
        analyzer=analyzer,
        close_resources=close_resources,
    )
