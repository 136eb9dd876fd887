"""Card type classification.

Deterministic heuristics only, evaluated in this order:

1. A card already typed as quote with no URL or file stays a quote.
2. Content wrapped in matching quote marks (no URL or file) is a quote.
3. File metadata: mime type, then duration / dimensions.
4. URL file extension.
5. A file with no other signal is a document.
6. Any URL makes a link.
7. Text with enough color values (and optionally a palette hint) is a palette.
8. Everything else is text.

A text card whose content is a single URL is promoted to a link card with
that URL copied to ``url``.
"""

import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from teak.db.models import Card, CardType, MetadataStatus
from teak.logging import get_logger
from teak.pipeline.colors import MAX_CARD_COLORS, extract_palette_colors
from teak.pipeline.processing_status import should_categorize, should_generate_renderables
from teak.pipeline.results import Ready, StageResult

logger = get_logger(__name__)

STRONG_CONFIDENCE = 0.97
MEDIUM_CONFIDENCE = 0.9
PALETTE_CONFIDENCE = 0.88
DEFAULT_CONFIDENCE = 0.7
QUOTE_CONFIDENCE = 0.95

# Reclassification below this confidence keeps the stored type.
TYPE_UPDATE_THRESHOLD = 0.6

DOCUMENT_MIMES = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/markdown",
    "text/csv",
    "application/rtf",
)

IMAGE_EXTENSIONS = frozenset(
    {"png", "jpg", "jpeg", "webp", "gif", "bmp", "svg", "tiff", "avif", "heic"}
)
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "m4v", "webm", "mkv", "avi", "mpeg", "mpg", "wmv"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "flac", "m4a", "aac", "ogg", "oga", "opus"})
DOCUMENT_EXTENSIONS = frozenset(
    {
        "pdf",
        "doc",
        "docx",
        "ppt",
        "pptx",
        "xls",
        "xlsx",
        "csv",
        "rtf",
        "md",
        "txt",
        "pages",
        "key",
        "numbers",
    }
)

PALETTE_HINTS = (
    "palette",
    "color palette",
    "brand colors",
    "brand palette",
    "swatch",
    "swatches",
    "colorway",
)
PALETTE_TAG_RE = re.compile(r"palette|color", re.IGNORECASE)
SINGLE_URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)

QUOTE_PAIRS = {
    '"': '"',
    "'": "'",
    "`": "`",
    "＂": "＂",
    "“": "”",
    "„": "“",
    "‘": "’",
    "‚": "‘",
    "❝": "❞",
    "❛": "❜",
    "«": "»",
    "‹": "›",
    "｢": "｣",
    "「": "」",
    "『": "』",
    "《": "》",
    "〈": "〉",
    "〝": "〞",
}
ATTRIBUTION_PREFIXES = frozenset({"—", "-", "–", "―", "~", "(", "[", "{"})
TRAILING_PUNCTUATION_RE = re.compile(r"^[\s.,!?;:…·、。！？；：•]+$")


@dataclass(frozen=True)
class ClassificationResult:
    type: str
    confidence: float
    needs_link_metadata: bool
    should_categorize: bool
    should_generate_renderables: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "confidence": self.confidence,
            "needs_link_metadata": self.needs_link_metadata,
            "should_categorize": self.should_categorize,
            "should_generate_renderables": self.should_generate_renderables,
        }


def _trailing_allowed(text: str) -> bool:
    trimmed = text.lstrip()
    if not trimmed:
        return True
    return trimmed[0] in ATTRIBUTION_PREFIXES or bool(TRAILING_PUNCTUATION_RE.match(trimmed))


def strip_wrapping_quotes(content: str | None) -> tuple[str, bool]:
    """Remove decorative quote marks wrapping the content.

    A closing mark may be followed by an attribution ("- Author") or
    punctuation only. Nested layers are removed one at a time.

    Returns:
        Tuple of (text, removed). Text is unchanged when nothing was removed.
    """
    original = content or ""
    working = original.strip()
    removed = False

    while len(working) > 1:
        closing = QUOTE_PAIRS.get(working[0])
        if closing is None:
            break
        closing_index = -1
        for index in range(len(working) - 1, 0, -1):
            if working[index] == closing and _trailing_allowed(working[index + 1 :]):
                closing_index = index
                break
        if closing_index == -1:
            break
        working = (working[1:closing_index] + working[closing_index + 1 :]).strip()
        removed = True

    return (working if removed else original), removed


def palette_analysis_text(card: Card) -> str:
    sections = []
    if card.content and card.content.strip():
        sections.append(card.content)
    if card.notes and card.notes.strip():
        sections.append(f"Notes: {card.notes}")
    if card.tags:
        sections.append(f"Tags: {', '.join(card.tags)}")
    return "\n".join(sections).strip()


def has_palette_hint(card: Card) -> bool:
    text = palette_analysis_text(card).lower()
    if any(hint in text for hint in PALETTE_HINTS):
        return True
    return any(isinstance(tag, str) and PALETTE_TAG_RE.search(tag) for tag in card.tags or [])


def is_probably_palette(card: Card) -> bool:
    colors = extract_palette_colors(palette_analysis_text(card), max_colors=12)
    if len(colors) >= 3:
        return True
    return len(colors) >= 2 and has_palette_hint(card)


def extension_from_url(url: str | None) -> str | None:
    if not url:
        return None
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    match = re.search(r"\.([a-zA-Z0-9]+)$", path)
    return match.group(1).lower() if match else None


def classify_by_mime(mime_type: str | None) -> tuple[str, float] | None:
    if not mime_type:
        return None
    mime = mime_type.lower()
    if mime.startswith("image/"):
        return CardType.image.value, STRONG_CONFIDENCE
    if mime.startswith("video/"):
        return CardType.video.value, STRONG_CONFIDENCE
    if mime.startswith("audio/"):
        return CardType.audio.value, STRONG_CONFIDENCE
    if any(candidate in mime for candidate in DOCUMENT_MIMES):
        return CardType.document.value, STRONG_CONFIDENCE
    if mime.startswith("text/"):
        return CardType.text.value, MEDIUM_CONFIDENCE
    return None


def classify_by_extension(extension: str | None) -> tuple[str, float] | None:
    if not extension:
        return None
    ext = extension.lower()
    if ext in IMAGE_EXTENSIONS:
        return CardType.image.value, MEDIUM_CONFIDENCE
    if ext in VIDEO_EXTENSIONS:
        return CardType.video.value, MEDIUM_CONFIDENCE
    if ext in AUDIO_EXTENSIONS:
        return CardType.audio.value, MEDIUM_CONFIDENCE
    if ext in DOCUMENT_EXTENSIONS:
        return CardType.document.value, MEDIUM_CONFIDENCE
    return None


def classify_by_file_metadata(file_metadata: dict[str, Any] | None) -> tuple[str, float] | None:
    if not file_metadata:
        return None

    by_mime = classify_by_mime(file_metadata.get("mimeType"))
    if by_mime:
        return by_mime

    duration = file_metadata.get("duration")
    has_dimensions = bool(file_metadata.get("width") or file_metadata.get("height"))
    if isinstance(duration, int | float) and duration > 0:
        if has_dimensions:
            return CardType.video.value, MEDIUM_CONFIDENCE
        return CardType.audio.value, MEDIUM_CONFIDENCE
    if has_dimensions:
        return CardType.image.value, MEDIUM_CONFIDENCE

    return CardType.document.value, MEDIUM_CONFIDENCE


def deterministic_classify(card: Card, url: str | None) -> tuple[str, float]:
    """Type and confidence from file, URL and text signals (steps 3-8)."""
    by_file = classify_by_file_metadata(card.file_metadata)
    if by_file:
        return by_file

    by_extension = classify_by_extension(extension_from_url(url))
    if by_extension:
        return by_extension

    if card.file_path:
        return CardType.document.value, MEDIUM_CONFIDENCE
    if url:
        return CardType.link.value, MEDIUM_CONFIDENCE
    if is_probably_palette(card):
        return CardType.palette.value, PALETTE_CONFIDENCE
    return CardType.text.value, DEFAULT_CONFIDENCE


def _needs_link_metadata(card_type: str, card: Card) -> bool:
    if card_type != CardType.link.value:
        return False
    preview = card.link_preview or {}
    return preview.get("status") != "success"


def _result(card_type: str, confidence: float, card: Card) -> ClassificationResult:
    return ClassificationResult(
        type=card_type,
        confidence=max(0.0, min(confidence, 1.0)),
        needs_link_metadata=_needs_link_metadata(card_type, card),
        should_categorize=should_categorize(card_type),
        should_generate_renderables=should_generate_renderables(card_type),
    )


def run_classification(card: Card) -> StageResult:
    """Classify a card and build the field patches that go with it.

    Returns:
        Ready whose summary holds the ClassificationResult as a dict.
    """
    stored_classify = (card.processing_status or {}).get("classify") or {}

    if card.type == CardType.quote.value and not card.url and not card.file_path:
        confidence = stored_classify.get("confidence") or QUOTE_CONFIDENCE
        result = _result(CardType.quote.value, confidence, card)
        logger.info("card_classified", card_id=str(card.id), type=result.type, rule="sticky_quote")
        return Ready(confidence=result.confidence, summary=result.to_dict())

    _, quoted = strip_wrapping_quotes(card.content)
    if quoted and not card.url and not card.file_path:
        result = _result(CardType.quote.value, QUOTE_CONFIDENCE, card)
        logger.info(
            "card_classified", card_id=str(card.id), type=result.type, rule="heuristic_quote"
        )
        return Ready(
            confidence=result.confidence,
            updates={"type": CardType.quote.value},
            summary=result.to_dict(),
        )

    updates: dict[str, Any] = {}
    url = card.url
    content = (card.content or "").strip()

    # A text card holding nothing but a URL becomes a link card.
    if not url and not card.file_path and SINGLE_URL_RE.match(content):
        url = content
        updates["url"] = url

    card_type, confidence = deterministic_classify(card, url)
    url_only = bool(url) and not card.file_path and (not content or content == url)
    if url_only:
        card_type = CardType.link.value

    confidence = max(0.0, min(confidence, 1.0))
    force_link = url_only and card.type != CardType.link.value
    if force_link or (card_type != card.type and confidence >= TYPE_UPDATE_THRESHOLD):
        updates["type"] = card_type
    else:
        card_type = card.type

    if card_type == CardType.palette.value:
        colors = extract_palette_colors(palette_analysis_text(card), max_colors=MAX_CARD_COLORS)
        if colors and colors != (card.colors or []):
            updates["colors"] = colors

    result = _result(card_type, confidence, card)
    if result.needs_link_metadata and card.metadata_status != MetadataStatus.pending.value:
        updates["metadata_status"] = MetadataStatus.pending.value

    logger.info(
        "card_classified",
        card_id=str(card.id),
        type=result.type,
        previous_type=card.type,
        confidence=result.confidence,
        needs_link_metadata=result.needs_link_metadata,
    )
    return Ready(confidence=result.confidence, updates=updates, summary=result.to_dict())
