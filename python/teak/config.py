"""Application settings loaded from environment variables.

Environment Configuration:
    TEAK_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: PostgreSQL connection string (required)
    TEAK_INTERNAL_SECRET: Secret for /internal routes (required in staging/prod)
    TEAK_JWT_SECRET: Shared secret used to verify bearer tokens (required in staging/prod)

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (required for worker and admission limiter)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)

AI Configuration:
    AI_BASE_URL: OpenAI-compatible API root (defaults to Groq)
    AI_API_KEY: API key for the AI provider
    AI_*_MODEL: Model name per content type

The AI settings are never read by generators directly. Call
``Settings.ai_config()`` and pass the resulting ``AIConfig`` into each call.
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


@dataclass(frozen=True)
class AIConfig:
    """Explicit AI configuration passed into every generator call.

    Attributes:
        provider: Provider label recorded in aiModelMeta.
        base_url: OpenAI-compatible API root (no trailing slash).
        api_key: Credential for the provider. None disables generation.
        text_model: Model for text, quote, palette, document and audio follow-up.
        link_model: Model for link cards.
        image_model: Vision-capable model for image cards.
        transcription_model: Speech-to-text model for audio cards.
        timeout_s: Per-request timeout.
        max_tokens: Completion budget per request.
    """

    provider: str
    base_url: str
    api_key: str | None
    text_model: str
    link_model: str
    image_model: str
    transcription_model: str
    timeout_s: int = 45
    max_tokens: int = 512


class Settings(BaseSettings):
    """Application configuration.

    Validation rules:
    - DATABASE_URL is always required
    - TEAK_INTERNAL_SECRET and TEAK_JWT_SECRET are required in staging and prod
    """

    teak_env: Environment = Field(default=Environment.LOCAL, alias="TEAK_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    teak_internal_secret: str | None = Field(default=None, alias="TEAK_INTERNAL_SECRET")

    # Bearer token verification
    teak_jwt_secret: str | None = Field(default=None, alias="TEAK_JWT_SECRET")
    teak_jwt_issuer: str | None = Field(default=None, alias="TEAK_JWT_ISSUER")
    teak_jwt_audience: str = Field(default="authenticated", alias="TEAK_JWT_AUDIENCE")

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Supabase Storage settings
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    storage_bucket: str = Field(default="cards", alias="STORAGE_BUCKET")
    signed_url_expiry_s: int = Field(default=600, alias="SIGNED_URL_EXPIRY_S")

    # AI provider (OpenAI-compatible)
    ai_provider: str = Field(default="groq", alias="AI_PROVIDER")
    ai_base_url: str = Field(default="https://api.groq.com/openai/v1", alias="AI_BASE_URL")
    ai_api_key: str | None = Field(default=None, alias="AI_API_KEY")
    ai_text_model: str = Field(default="openai/gpt-oss-20b", alias="AI_TEXT_MODEL")
    ai_link_model: str = Field(default="openai/gpt-oss-20b", alias="AI_LINK_MODEL")
    ai_image_model: str = Field(
        default="meta-llama/llama-4-scout-17b-16e-instruct", alias="AI_IMAGE_MODEL"
    )
    ai_transcription_model: str = Field(
        default="whisper-large-v3-turbo", alias="AI_TRANSCRIPTION_MODEL"
    )
    ai_timeout_s: int = Field(default=45, alias="AI_TIMEOUT_S")
    ai_max_tokens: int = Field(default=512, alias="AI_MAX_TOKENS")

    # Link fetching
    link_fetch_timeout_s: float = Field(default=15.0, alias="LINK_FETCH_TIMEOUT_S")
    link_fetch_user_agent: str = Field(default="TeakBot/1.0", alias="LINK_FETCH_USER_AGENT")

    # Retention and backfill schedules
    retention_days: int = Field(default=30, alias="RETENTION_DAYS")
    retention_sweep_hour_utc: int = Field(default=3, alias="RETENTION_SWEEP_HOUR_UTC")
    backfill_interval_hours: int = Field(default=6, alias="BACKFILL_INTERVAL_HOURS")
    backfill_batch_size: int = Field(default=50, alias="BACKFILL_BATCH_SIZE")
    backfill_grace_minutes: int = Field(default=5, alias="BACKFILL_GRACE_MINUTES")
    # Runs with no progress for this long are re-enqueued from their cursor.
    pipeline_stall_minutes: int = Field(default=15, alias="PIPELINE_STALL_MINUTES")

    # Admission limiter
    card_creation_capacity: int = Field(default=30, alias="CARD_CREATION_CAPACITY")
    card_creation_per_minute: int = Field(default=30, alias="CARD_CREATION_PER_MINUTE")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure secrets are present in deployed environments."""
        if self.teak_env in (Environment.STAGING, Environment.PROD):
            missing = []
            if not self.teak_internal_secret:
                missing.append("TEAK_INTERNAL_SECRET")
            if not self.teak_jwt_secret:
                missing.append("TEAK_JWT_SECRET")
            if missing:
                raise ValueError(
                    f"{', '.join(missing)} required for TEAK_ENV={self.teak_env.value}"
                )

        if not 0 <= self.retention_sweep_hour_utc <= 23:
            raise ValueError("RETENTION_SWEEP_HOUR_UTC must be between 0 and 23")

        return self

    @property
    def requires_internal_header(self) -> bool:
        """Whether /internal requests must carry the internal secret header."""
        return self.teak_env in (Environment.STAGING, Environment.PROD)

    @property
    def effective_celery_broker_url(self) -> str | None:
        """Return Celery broker URL, falling back to REDIS_URL if not set."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str | None:
        """Return Celery result backend URL, falling back to REDIS_URL if not set."""
        return self.celery_result_backend or self.redis_url

    def ai_config(self) -> AIConfig:
        """Build the explicit AI configuration for generator calls."""
        return AIConfig(
            provider=self.ai_provider,
            base_url=self.ai_base_url.rstrip("/"),
            api_key=self.ai_api_key,
            text_model=self.ai_text_model,
            link_model=self.ai_link_model,
            image_model=self.ai_image_model,
            transcription_model=self.ai_transcription_model,
            timeout_s=self.ai_timeout_s,
            max_tokens=self.ai_max_tokens,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
