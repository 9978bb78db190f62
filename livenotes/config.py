from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Values may be provided via environment variables (``LIVENOTES_`` prefix).
    Provider keys set here are only defaults; keys saved through the settings
    endpoint take precedence.
    """

    # HTTP
    cors_allow_origins: str = Field("*", description="Comma-separated origins")

    # Chunk accumulation
    chunk_seconds: float = Field(180.0, description="Wall-clock cap per chunk")
    chunk_max_chars: int = Field(5000, description="Finalize once chunk text is longer than this")
    tail_context_seconds: float = 30.0
    transcript_display_limit: int = 50
    update_window_seconds: float = 15.0

    # Synthesis queue
    min_llm_interval_ms: int = Field(5000, description="Global spacing between model calls")

    # Model resolution
    model_cache_ttl_seconds: float = 300.0
    http_timeout_seconds: int = 60

    # Quality merge
    max_sections: int = 30
    max_bullets_per_section: int = 80
    heading_match_threshold: float = 0.72
    bullet_duplicate_threshold: float = 0.82

    # Pipeline temperatures
    clean_temperature: float = 0.15
    merge_temperature: float = 0.05
    repair_temperature: float = 0.0

    # AI defaults (stored settings override these)
    ai_enabled: bool = False
    ai_provider: str = Field("gemini", description="gemini|openai|anthropic")
    gemini_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Storage
    db_path: str = Field("", description="SQLite file; empty means livenotes.db beside the package")

    model_config = SettingsConfigDict(env_prefix="LIVENOTES_", case_sensitive=False)


def load_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
