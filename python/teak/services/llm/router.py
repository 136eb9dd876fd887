"""LLM router: credentials, error normalization and observability.

- Reads endpoint, key and timeout from the AIConfig it is built with
- Wraps adapter calls with error normalization (one place, not per adapter)
- Emits llm.request.started / llm.request.finished / llm.request.failed

Error handling:
- Provider 401/403 → E_LLM_INVALID_KEY
- Provider 429 → E_LLM_RATE_LIMIT
- Timeout → E_LLM_TIMEOUT
- Context too large → E_LLM_CONTEXT_TOO_LARGE
- Other → E_LLM_PROVIDER_DOWN
"""

import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from teak.config import AIConfig
from teak.logging import get_logger
from teak.services.llm.adapter import LLMAdapter
from teak.services.llm.errors import LLMError, LLMErrorClass, classify_provider_error
from teak.services.llm.openai_adapter import OpenAICompatibleAdapter
from teak.services.llm.types import (
    LLMRequest,
    LLMResponse,
    TranscriptionRequest,
    TranscriptionResponse,
)
from teak.services.redact import safe_kv

logger = get_logger(__name__)

T = TypeVar("T")


class LLMRouter:
    """Sends requests to the configured provider and normalizes failures."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: AIConfig,
        adapter: LLMAdapter | None = None,
    ):
        """Initialize router with a shared HTTP client.

        Args:
            client: Shared httpx.AsyncClient for connection pooling.
            config: Endpoint, credentials and model names.
            adapter: Override the OpenAI-compatible adapter (tests).
        """
        self._config = config
        self._adapter = adapter or OpenAICompatibleAdapter(client, config.base_url)

    @property
    def provider(self) -> str:
        return self._config.provider

    def _api_key(self) -> str:
        if not self._config.api_key:
            raise LLMError(
                LLMErrorClass.INVALID_KEY,
                "No API key configured for AI provider",
                provider=self.provider,
            )
        return self._config.api_key

    async def generate(self, req: LLMRequest, *, operation: str = "other") -> LLMResponse:
        """Chat completion with error normalization.

        Raises:
            LLMError: With normalized error class on failure.
        """
        base = {
            "provider": self.provider,
            "model_name": req.model_name,
            "llm_operation": operation,
        }
        logger.info(
            "llm.request.started",
            **safe_kv(**base, message_chars=sum(turn.text_chars for turn in req.messages)),
        )
        api_key = self._api_key()
        response = await self._call(
            base,
            lambda: self._adapter.generate(req, api_key=api_key, timeout_s=self._config.timeout_s),
        )
        usage = response.usage
        logger.info(
            "llm.request.finished",
            **safe_kv(
                **base,
                outcome="success",
                tokens_input=usage.prompt_tokens if usage else None,
                tokens_output=usage.completion_tokens if usage else None,
                provider_request_id=response.provider_request_id,
            ),
        )
        return response

    async def transcribe(
        self, req: TranscriptionRequest, *, operation: str = "transcription"
    ) -> TranscriptionResponse:
        """Speech to text with error normalization.

        Raises:
            LLMError: With normalized error class on failure.
        """
        base = {
            "provider": self.provider,
            "model_name": req.model_name,
            "llm_operation": operation,
        }
        logger.info("llm.request.started", **safe_kv(**base, audio_length=len(req.audio)))
        api_key = self._api_key()
        response = await self._call(
            base,
            lambda: self._adapter.transcribe(
                req, api_key=api_key, timeout_s=self._config.timeout_s
            ),
        )
        logger.info(
            "llm.request.finished",
            **safe_kv(
                **base, outcome="success", provider_request_id=response.provider_request_id
            ),
        )
        return response

    async def _call(self, base: dict, send: Callable[[], Awaitable[T]]) -> T:
        start = time.monotonic()

        def failed(error_class: LLMErrorClass, **extra) -> None:
            logger.error(
                "llm.request.failed",
                **safe_kv(
                    **base,
                    outcome="error",
                    error_class=error_class.value,
                    latency_ms=int((time.monotonic() - start) * 1000),
                    **extra,
                ),
            )

        try:
            return await send()

        except httpx.TimeoutException as e:
            failed(LLMErrorClass.TIMEOUT)
            raise LLMError(
                LLMErrorClass.TIMEOUT, "Request timed out", provider=self.provider
            ) from e

        except httpx.HTTPStatusError as e:
            json_body = self._safe_parse_json(e.response)
            error_class = classify_provider_error(e.response.status_code, json_body)
            failed(error_class, provider_request_id=e.response.headers.get("x-request-id"))
            raise LLMError(
                error_class,
                f"Provider returned HTTP {e.response.status_code}",
                provider=self.provider,
            ) from e

        except httpx.NetworkError as e:
            failed(LLMErrorClass.PROVIDER_DOWN)
            raise LLMError(
                LLMErrorClass.PROVIDER_DOWN, "Network error", provider=self.provider
            ) from e

        except LLMError as e:
            failed(e.error_class)
            raise

        except Exception as e:
            failed(LLMErrorClass.PROVIDER_DOWN)
            raise LLMError(
                LLMErrorClass.PROVIDER_DOWN,
                f"Unexpected error: {type(e).__name__}",
                provider=self.provider,
            ) from e

    def _safe_parse_json(self, response: httpx.Response) -> dict | None:
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None
