"""LLM adapter layer for card metadata generation.

Usage:
    from teak.services.llm import LLMRouter, LLMRequest, Turn

    async with httpx.AsyncClient() as client:
        router = LLMRouter(client, settings.ai_config())
        request = LLMRequest(
            model_name=config.text_model,
            messages=[Turn(role="user", content="Hello!")],
            max_tokens=100,
            json_output=True,
        )
        response = await router.generate(request)

Rules:
- Adapters are async using httpx.AsyncClient
- No retries inside adapters or the router
- No DB access
- No logging of request/response bodies
"""

from teak.services.llm.adapter import LLMAdapter
from teak.services.llm.errors import LLMError, LLMErrorClass, classify_provider_error
from teak.services.llm.openai_adapter import OpenAICompatibleAdapter
from teak.services.llm.router import LLMRouter
from teak.services.llm.types import (
    LLMRequest,
    LLMResponse,
    LLMUsage,
    TranscriptionRequest,
    TranscriptionResponse,
    Turn,
)

__all__ = [
    # Core types
    "Turn",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "TranscriptionRequest",
    "TranscriptionResponse",
    # Adapters
    "LLMAdapter",
    "OpenAICompatibleAdapter",
    # Router
    "LLMRouter",
    # Errors
    "LLMError",
    "LLMErrorClass",
    "classify_provider_error",
]
