"""Shared type definitions for the LLM adapter layer.

- Turn: one chat message; content is text, or a list of OpenAI-style parts
  for vision requests
- LLMRequest / LLMResponse: chat completion
- TranscriptionRequest / TranscriptionResponse: speech to text
"""

from dataclasses import dataclass
from typing import Any, Literal


@dataclass(frozen=True)
class Turn:
    """Provider-agnostic conversation turn.

    Attributes:
        role: One of "system", "user", or "assistant"
        content: Text, or a list of content parts
            ({"type": "text", ...} / {"type": "image_url", ...})
    """

    role: Literal["system", "user", "assistant"]
    content: str | list[dict[str, Any]]

    @property
    def text_chars(self) -> int:
        if isinstance(self.content, str):
            return len(self.content)
        return sum(len(part.get("text", "")) for part in self.content)


@dataclass(frozen=True)
class LLMUsage:
    prompt_tokens: int | None
    completion_tokens: int | None
    total_tokens: int | None


@dataclass(frozen=True)
class LLMRequest:
    """Chat completion request.

    Attributes:
        model_name: The model identifier
        messages: List of Turn objects (system turn first if present)
        max_tokens: Maximum tokens in the completion
        temperature: Sampling temperature, None uses provider default
        json_output: Ask the provider for a JSON object response
    """

    model_name: str
    messages: list[Turn]
    max_tokens: int
    temperature: float | None = None
    json_output: bool = False


@dataclass(frozen=True)
class LLMResponse:
    text: str
    usage: LLMUsage | None
    provider_request_id: str | None


@dataclass(frozen=True)
class TranscriptionRequest:
    model_name: str
    audio: bytes
    filename: str
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class TranscriptionResponse:
    text: str
    provider_request_id: str | None = None
