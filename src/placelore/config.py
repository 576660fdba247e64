"""Runtime configuration for the PlaceLore services."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="placelore_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    # AI search (Perplexity chat completions)
    perplexity_api_key: str | None = None
    perplexity_base_url: str = "https://api.perplexity.ai"
    search_model: str = "sonar-pro"
    search_temperature: float | None = None
    search_context_size: Literal["low", "medium", "high"] | None = None
    search_timeout_seconds: float = 60.0

    # Geocoding (Nominatim)
    nominatim_base_url: str = "https://nominatim.openstreetmap.org"
    nominatim_user_agent: str = "placelore/0.1 (+https://github.com/placelore/placelore)"
    nominatim_language: str = "en"
    geocode_timeout_seconds: float = 15.0

    # Progressive emission, milliseconds between batches
    timeline_emit_delay_ms: int = 250
    keyword_emit_delay_ms: int = 180
    keyword_batch_size: int = 8
    person_path_emit_delay_ms: int = 200

    keyword_max_words: int = 60
    timeline_event_count: int = 8
    connection_count: int = 5
    connection_max_geocoded: int = 10
    geocode_concurrency: int = 4

    # CORS
    cors_allow_origins: tuple[str, ...] = ()  # e.g., ("*") to allow all
    cors_allow_credentials: bool = False
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "DELETE", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("*",)

    # Security
    api_key: str | None = None  # if set, required in X-API-Key header
    rate_limit_requests: int = 120  # per window per client
    rate_limit_window_seconds: int = 60

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def timeline_emit_delay_seconds(self) -> float:
        return max(self.timeline_emit_delay_ms, 0) / 1000

    @property
    def keyword_emit_delay_seconds(self) -> float:
        return max(self.keyword_emit_delay_ms, 0) / 1000

    @property
    def person_path_emit_delay_seconds(self) -> float:
        return max(self.person_path_emit_delay_ms, 0) / 1000


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
