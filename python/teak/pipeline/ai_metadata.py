"""Metadata stage: AI tags, summary and transcript.

Each card type has its own generation path:

- text / quote: the content (confidence 0.95)
- link: title, description, author, publisher and publish date from the
  link preview (0.9); NotReady while the preview is still pending
- image: vision model on a short-lived signed URL of the file (0.9)
- audio: transcription of the file, then text analysis of the transcript (0.85)
- video: the content and file name as text (0.85)
- document: file name plus content (0.85)
- palette: the color list plus content (0.9)

Only AI-owned fields are written (ai_tags, ai_summary, ai_transcript,
ai_model_meta). The model call is async httpx; the stage itself is sync and
runs the coroutine to completion.
"""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any

import httpx

from teak.config import AIConfig
from teak.db.models import Card, CardType, MetadataStatus
from teak.errors import GenerationFailure
from teak.logging import get_logger
from teak.pipeline.context import PipelineContext
from teak.pipeline.results import Failed, NotReady, Ready, StageResult
from teak.services.llm import LLMError, LLMRequest, LLMRouter, TranscriptionRequest, Turn
from teak.services.llm.prompt import render_image_prompt, render_link_prompt, render_text_prompt
from teak.storage import StorageError

logger = get_logger(__name__)

MAX_TAGS = 6
MAX_SUMMARY_CHARS = 600

TEXT_CONFIDENCE = 0.95
LINK_CONFIDENCE = 0.9
IMAGE_CONFIDENCE = 0.9
PALETTE_CONFIDENCE = 0.9
MEDIA_CONFIDENCE = 0.85

_TAG_CLEAN_RE = re.compile(r"[^\w]+", re.UNICODE)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class GeneratedMetadata:
    tags: list[str]
    summary: str | None
    transcript: str | None
    model: str
    confidence: float
    source: str


def normalize_tags(raw_tags: Any) -> list[str]:
    """Single-word, de-duplicated tags, at most MAX_TAGS.

    Multi-word tags keep their first word; punctuation is dropped.
    """
    if not isinstance(raw_tags, list):
        return []
    tags: list[str] = []
    seen: set[str] = set()
    for raw in raw_tags:
        if not isinstance(raw, str):
            continue
        words = [word for word in _TAG_CLEAN_RE.split(raw.strip()) if word]
        if not words:
            continue
        tag = words[0].replace("_", "").lower()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
        if len(tags) >= MAX_TAGS:
            break
    return tags


def parse_generation_output(text: str) -> tuple[list[str], str | None]:
    """Parse the model's JSON answer into (tags, summary).

    Raises:
        GenerationFailure: If the answer holds neither tags nor a summary.
    """
    data: Any = None
    stripped = (text or "").strip()
    if stripped:
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            # Some models wrap the object in prose or code fences.
            match = _JSON_OBJECT_RE.search(stripped)
            if match:
                try:
                    data = json.loads(match.group(0))
                except json.JSONDecodeError:
                    data = None

    if not isinstance(data, dict):
        raise GenerationFailure("Model returned no JSON object")

    tags = normalize_tags(data.get("tags"))
    summary = data.get("summary")
    summary = summary.strip()[:MAX_SUMMARY_CHARS] if isinstance(summary, str) else None
    if not tags and not summary:
        raise GenerationFailure("Model returned neither tags nor summary")
    return tags, summary or None


def link_analysis_content(card: Card) -> str:
    preview = card.link_preview or {}
    if preview.get("status") != "success":
        preview = {}
    parts = []
    for label, key in (
        ("Title", "title"),
        ("Description", "description"),
        ("Author", "author"),
        ("Publisher", "publisher"),
        ("Published", "publishedAt"),
    ):
        if preview.get(key):
            parts.append(f"{label}: {preview[key]}")
    if not parts and (card.url or card.content):
        parts.append(f"URL: {card.url or card.content}")
    return "\n".join(parts)


def palette_analysis_content(card: Card) -> str:
    content = card.content or ""
    if card.colors:
        color_info = ", ".join(
            f"{color['hex']} ({color['name']})" if color.get("name") else color["hex"]
            for color in card.colors
            if isinstance(color, dict) and color.get("hex")
        )
        content = f"Colors: {color_info}\n{content}"
    return content


def _file_name(card: Card) -> str | None:
    file_metadata = card.file_metadata or {}
    name = file_metadata.get("fileName")
    if name:
        return name
    if card.file_path:
        return card.file_path.rsplit("/", 1)[-1]
    return None


class MetadataGenerator:
    """Runs one card through its generation path against an LLMRouter."""

    def __init__(self, router: LLMRouter, config: AIConfig):
        self._router = router
        self._config = config

    async def _complete(
        self, model: str, messages: list[Turn], operation: str
    ) -> tuple[list[str], str | None]:
        response = await self._router.generate(
            LLMRequest(
                model_name=model,
                messages=messages,
                max_tokens=self._config.max_tokens,
                temperature=0.2,
                json_output=True,
            ),
            operation=operation,
        )
        return parse_generation_output(response.text)

    async def from_text(
        self, content: str, *, confidence: float, source: str, transcript: str | None = None
    ) -> GeneratedMetadata:
        if not content.strip():
            raise GenerationFailure(f"No {source} content to analyze", retryable=False)
        model = self._config.text_model
        tags, summary = await self._complete(model, render_text_prompt(content), source)
        return GeneratedMetadata(tags, summary, transcript, model, confidence, source)

    async def from_link(self, card: Card) -> GeneratedMetadata:
        content = link_analysis_content(card)
        if not content.strip():
            raise GenerationFailure("No link content to analyze", retryable=False)
        model = self._config.link_model
        tags, summary = await self._complete(
            model, render_link_prompt(content, card.url or card.content), "link"
        )
        return GeneratedMetadata(tags, summary, None, model, LINK_CONFIDENCE, "link")

    async def from_image(self, image_url: str) -> GeneratedMetadata:
        model = self._config.image_model
        tags, summary = await self._complete(model, render_image_prompt(image_url), "image")
        return GeneratedMetadata(tags, summary, None, model, IMAGE_CONFIDENCE, "image")

    async def from_audio(
        self, audio: bytes, filename: str, content_type: str
    ) -> GeneratedMetadata:
        response = await self._router.transcribe(
            TranscriptionRequest(
                model_name=self._config.transcription_model,
                audio=audio,
                filename=filename,
                content_type=content_type,
            )
        )
        transcript = response.text.strip()
        if not transcript:
            raise GenerationFailure("Transcription was empty")
        return await self.from_text(
            transcript, confidence=MEDIA_CONFIDENCE, source="audio", transcript=transcript
        )

    async def generate(self, card: Card, ctx: PipelineContext) -> GeneratedMetadata:
        """Dispatch on card type.

        Raises:
            GenerationFailure: Nothing usable to analyze or returned.
            LLMError: Provider call failed.
            StorageError: The card's file could not be read or signed.
        """
        card_type = card.type
        content = card.content or ""

        if card_type in (CardType.text.value, CardType.quote.value):
            return await self.from_text(content, confidence=TEXT_CONFIDENCE, source=card_type)

        if card_type == CardType.link.value:
            return await self.from_link(card)

        if card_type == CardType.image.value:
            if not card.file_path:
                raise GenerationFailure("Image card has no file", retryable=False)
            url = ctx.storage.sign_download(card.file_path, expires_in=ctx.signed_url_expiry_s)
            return await self.from_image(url)

        if card_type == CardType.audio.value:
            if not card.file_path:
                raise GenerationFailure("Audio card has no file", retryable=False)
            audio = ctx.storage.get_bytes(card.file_path)
            mime = (card.file_metadata or {}).get("mimeType") or "application/octet-stream"
            return await self.from_audio(audio, _file_name(card) or "audio", mime)

        if card_type in (CardType.video.value, CardType.document.value):
            name = _file_name(card)
            text = f"{name}\n{content}" if name else content
            return await self.from_text(text, confidence=MEDIA_CONFIDENCE, source=card_type)

        if card_type == CardType.palette.value:
            return await self.from_text(
                palette_analysis_content(card), confidence=PALETTE_CONFIDENCE, source="palette"
            )

        raise GenerationFailure(f"Unsupported card type: {card_type}", retryable=False)


async def _generate(card: Card, ctx: PipelineContext) -> GeneratedMetadata:
    async with httpx.AsyncClient() as client:
        generator = MetadataGenerator(LLMRouter(client, ctx.ai_config), ctx.ai_config)
        return await generator.generate(card, ctx)


def run_ai_metadata(card: Card, ctx: PipelineContext) -> StageResult:
    """Generate AI metadata for a card.

    Returns:
        NotReady while a link card's preview is pending; Failed when the
        provider errors (retryable per error class) or nothing usable comes
        back; Ready with the AI field patch otherwise.
    """
    if (
        card.type == CardType.link.value
        and card.metadata_status == MetadataStatus.pending.value
    ):
        return NotReady("link preview pending")

    try:
        generated = asyncio.run(_generate(card, ctx))
    except LLMError as e:
        logger.warning(
            "ai_metadata_provider_failed",
            card_id=str(card.id),
            error_class=e.error_class.value,
            retryable=e.retryable,
        )
        return Failed(error=f"{e.error_class.value}: {e.message}", retryable=e.retryable)
    except GenerationFailure as e:
        logger.warning("ai_metadata_generation_failed", card_id=str(card.id), error=str(e))
        return Failed(error=e.message, retryable=e.retryable)
    except StorageError as e:
        logger.warning("ai_metadata_storage_failed", card_id=str(card.id), error=e.message)
        return Failed(error=e.message, retryable=True)

    updates: dict[str, Any] = {
        "ai_tags": generated.tags or None,
        "ai_summary": generated.summary,
        "ai_model_meta": {
            "provider": ctx.ai_config.provider,
            "model": generated.model,
            "generatedAt": ctx.now_ms(),
        },
    }
    if generated.transcript:
        updates["ai_transcript"] = generated.transcript

    logger.info(
        "ai_metadata_generated",
        card_id=str(card.id),
        source=generated.source,
        ai_tags_count=len(generated.tags),
        has_summary=bool(generated.summary),
        has_transcript=bool(generated.transcript),
    )
    return Ready(
        confidence=generated.confidence,
        updates=updates,
        summary={
            "ai_tags_count": len(generated.tags),
            "has_summary": bool(generated.summary),
            "has_transcript": bool(generated.transcript),
        },
    )
