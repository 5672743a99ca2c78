"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    openai_api_key: str
    openai_vision_model: str = "gpt-4o"
    openai_text_model: str = "gpt-4o-mini"
    openai_reasoning_effort: str | None = None
    openai_store: bool = False
    fdc_api_key: str
    fdc_base_url: str = "https://api.nal.usda.gov/fdc/v1"
    fdc_timeout_seconds: float = 15.0
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    nutrition_cache_table: str = "nutrition_cache"
    classifier_model_path: str | None = None
    classifier_labels_path: str | None = None
    classifier_input_size: int = 224

    # Detection policy
    local_trust_confidence: float = 0.7
    merge_keep_confidence: float = 0.6
    classifier_min_confidence: float = 0.1
    classifier_max_results: int = 5
    merge_min_items: int = 3
    merge_max_items: int = 5
    default_weight_grams: float = 100.0
    remote_timeout_seconds: float = 30.0

    # Nutrition matching and resilience
    cache_match_threshold: float = 0.6
    substring_similarity: float = 0.8
    breaker_failure_threshold: int = 5
    breaker_cooldown_seconds: float = 300.0

    environment: str = _ENVIRONMENT
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def supabase_enabled(self) -> bool:
        """Whether a Supabase-backed nutrition cache is configured."""
        return bool(self.supabase_url and self.supabase_service_key)
