"""OpenAI-compatible adapter (Groq, OpenAI, local gateways).

Chat completions:
    POST {base_url}/chat/completions
    {"model", "messages", "max_tokens", "temperature"?,
     "response_format": {"type": "json_object"}?}
    text = choices[0].message.content

Audio transcriptions:
    POST {base_url}/audio/transcriptions (multipart: file, model)
    text = body["text"]
"""

import httpx

from teak.services.llm.adapter import LLMAdapter
from teak.services.llm.errors import LLMError, LLMErrorClass
from teak.services.llm.types import (
    LLMRequest,
    LLMResponse,
    LLMUsage,
    TranscriptionRequest,
    TranscriptionResponse,
    Turn,
)


class OpenAICompatibleAdapter(LLMAdapter):
    """Chat completions and transcriptions over the OpenAI wire format."""

    provider = "openai"

    @property
    def chat_url(self) -> str:
        return f"{self._base_url}/chat/completions"

    @property
    def transcription_url(self) -> str:
        return f"{self._base_url}/audio/transcriptions"

    async def generate(
        self,
        req: LLMRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> LLMResponse:
        response = await self._client.post(
            self.chat_url,
            headers=self._build_headers(api_key),
            json=self._build_request_body(req),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        )
        response.raise_for_status()
        return self._parse_response(response.json(), response.headers)

    async def transcribe(
        self,
        req: TranscriptionRequest,
        *,
        api_key: str,
        timeout_s: int,
    ) -> TranscriptionResponse:
        response = await self._client.post(
            self.transcription_url,
            headers={"Authorization": f"Bearer {api_key}"},
            data={"model": req.model_name, "response_format": "json"},
            files={"file": (req.filename, req.audio, req.content_type)},
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        )
        response.raise_for_status()
        data = response.json()
        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise LLMError(
                LLMErrorClass.BAD_RESPONSE,
                "Transcription response missing text",
                provider=self.provider,
            )
        return TranscriptionResponse(
            text=text.strip(), provider_request_id=response.headers.get("x-request-id")
        )

    def _build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _build_request_body(self, req: LLMRequest) -> dict:
        body: dict = {
            "model": req.model_name,
            "messages": [self._turn_to_message(turn) for turn in req.messages],
            "max_tokens": req.max_tokens,
        }
        if req.temperature is not None:
            body["temperature"] = req.temperature
        if req.json_output:
            body["response_format"] = {"type": "json_object"}
        return body

    def _turn_to_message(self, turn: Turn) -> dict:
        return {"role": turn.role, "content": turn.content}

    def _parse_response(self, data: dict, headers: httpx.Headers) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise LLMError(
                LLMErrorClass.BAD_RESPONSE,
                "Chat completion response missing choices",
                provider=self.provider,
            )

        text = (choices[0].get("message") or {}).get("content") or ""

        usage = None
        usage_data = data.get("usage")
        if usage_data:
            usage = LLMUsage(
                prompt_tokens=usage_data.get("prompt_tokens"),
                completion_tokens=usage_data.get("completion_tokens"),
                total_tokens=usage_data.get("total_tokens"),
            )

        return LLMResponse(
            text=text,
            usage=usage,
            provider_request_id=headers.get("x-request-id") or data.get("id"),
        )
