"""Tests for application configuration and the Celery schedule."""

import pytest
from pydantic import ValidationError

from teak.celery import celery_app
from teak.config import Environment, Settings


def _make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides."""
    defaults = {
        "DATABASE_URL": "postgresql+psycopg://localhost/test",
        "TEAK_ENV": "test",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


class TestSettings:
    def test_defaults(self):
        settings = _make_settings()

        assert settings.teak_env == Environment.TEST
        assert settings.retention_days == 30
        assert settings.card_creation_capacity == 30
        assert settings.pipeline_stall_minutes == 15
        assert settings.requires_internal_header is False

    @pytest.mark.parametrize("env", ["staging", "prod"])
    def test_deployed_envs_require_secrets(self, env):
        with pytest.raises(ValidationError, match="TEAK_INTERNAL_SECRET, TEAK_JWT_SECRET"):
            _make_settings(TEAK_ENV=env)

    def test_deployed_env_with_secrets(self):
        settings = _make_settings(
            TEAK_ENV="prod", TEAK_INTERNAL_SECRET="s1", TEAK_JWT_SECRET="s2"
        )

        assert settings.requires_internal_header is True

    @pytest.mark.parametrize("hour", [-1, 24])
    def test_retention_hour_range(self, hour):
        with pytest.raises(ValidationError, match="RETENTION_SWEEP_HOUR_UTC"):
            _make_settings(RETENTION_SWEEP_HOUR_UTC=hour)

    def test_celery_urls_fall_back_to_redis(self):
        settings = _make_settings(REDIS_URL="redis://cache:6379/0")

        assert settings.effective_celery_broker_url == "redis://cache:6379/0"
        assert settings.effective_celery_result_backend == "redis://cache:6379/0"

        explicit = _make_settings(
            REDIS_URL="redis://cache:6379/0", CELERY_BROKER_URL="redis://broker:6379/1"
        )
        assert explicit.effective_celery_broker_url == "redis://broker:6379/1"

    def test_ai_config(self):
        config = _make_settings(
            AI_BASE_URL="https://api.groq.com/openai/v1/",
            AI_API_KEY="gsk-test",
            AI_TEXT_MODEL="llama-3.1-8b-instant",
        ).ai_config()

        assert config.provider == "groq"
        assert config.base_url == "https://api.groq.com/openai/v1"
        assert config.api_key == "gsk-test"
        assert config.text_model == "llama-3.1-8b-instant"
        assert config.timeout_s == 45


class TestCelerySchedule:
    def test_task_routes(self):
        routes = celery_app.conf.task_routes

        assert routes["run_card_pipeline"] == {"queue": "pipeline"}
        assert routes["sweep_deleted_cards"] == {"queue": "maintenance"}
        assert routes["backfill_missing_ai"] == {"queue": "maintenance"}
        assert routes["resume_stalled_runs"] == {"queue": "maintenance"}

    def test_beat_schedule(self):
        schedule = celery_app.conf.beat_schedule

        assert schedule["sweep-deleted-cards"]["task"] == "sweep_deleted_cards"
        assert schedule["backfill-missing-ai"]["task"] == "backfill_missing_ai"
        assert schedule["backfill-missing-ai"]["schedule"] == 6 * 3600.0
        assert schedule["resume-stalled-runs"]["task"] == "resume_stalled_runs"
        assert schedule["resume-stalled-runs"]["schedule"] == 15 * 60.0
