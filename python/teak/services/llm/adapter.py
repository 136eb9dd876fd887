"""Abstract base class for LLM adapters.

- Async adapters with httpx.AsyncClient
- No retries inside adapters (the pipeline orchestrator owns retries)
- No DB access
- No logging of request/response bodies
- Raw provider errors bubble up to the router for classification
"""

from abc import ABC, abstractmethod

import httpx

from teak.services.llm.types import (
    LLMRequest,
    LLMResponse,
    TranscriptionRequest,
    TranscriptionResponse,
)


class LLMAdapter(ABC):
    """Abstract base class for LLM provider adapters."""

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        """Initialize adapter with a shared HTTP client.

        Args:
            client: Shared httpx.AsyncClient for connection pooling.
            base_url: API root, e.g. "https://api.groq.com/openai/v1".
        """
        self._client = client
        self._base_url = base_url.rstrip("/")

    @abstractmethod
    async def generate(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> LLMResponse:
        """Non-streaming chat completion.

        Raises:
            httpx.HTTPStatusError: On non-2xx HTTP response.
            httpx.TimeoutException: On request timeout.
            httpx.NetworkError: On network failure.
        """

    @abstractmethod
    async def transcribe(
        self,
        req: TranscriptionRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> TranscriptionResponse:
        """Speech-to-text for an audio payload.

        Raises:
            httpx.HTTPStatusError: On non-2xx HTTP response.
            httpx.TimeoutException: On request timeout.
            httpx.NetworkError: On network failure.
        """
