"""Prompt rendering for card metadata generation.

System prompts are static per content kind so providers that cache prompt
prefixes can reuse them; the card content always goes last.

Prompt structure:
- System turn first (analysis guidelines for the content kind)
- One user turn holding the card content, or text plus an image part

Oversized content is truncated to MAX_CONTENT_CHARS rather than rejected.
"""

from teak.services.llm.types import Turn

MAX_CONTENT_CHARS = 24_000

_OUTPUT_FORMAT = """
Respond with a JSON object only: {"tags": ["tag1", "..."], "summary": "..."}"""

SYSTEM_PROMPTS = {
    "text": """You are an expert content analyzer. Generate relevant tags and a concise summary \
for the given content.

Guidelines:
- Tags should be 5-6 specific, relevant single words only (no spaces, no hyphens)
- Summary should be 1-2 sentences that capture the essence
- Focus on the main topics, themes, and key information
- Use clear, searchable language"""
    + _OUTPUT_FORMAT,
    "image": """You are an expert image analyzer. Generate relevant tags and a concise summary \
for the given image.

Guidelines:
- Tags should be 5-6 single words describing objects, scenes, concepts, emotions \
(no spaces, no hyphens)
- Summary should be 1-2 sentences describing what the image shows
- Focus on the main visual elements and context
- Use clear, searchable language"""
    + _OUTPUT_FORMAT,
    "link": """You are an expert web content analyzer. Generate relevant tags and a concise \
summary for the given web page content.

Guidelines:
- Tags should be 5-6 single words capturing main topics, categories, and key concepts \
(no spaces, no hyphens)
- Include relevant technology, industry, or topic tags where applicable
- Summary should be 1-2 sentences capturing the essence and value of the content
- Focus on what makes this link useful and searchable
- Consider the source, author, and context when available"""
    + _OUTPUT_FORMAT,
}


def _truncate(content: str) -> str:
    if len(content) <= MAX_CONTENT_CHARS:
        return content
    return content[:MAX_CONTENT_CHARS]


def render_text_prompt(content: str, title: str | None = None) -> list[Turn]:
    """Turns for plain text analysis (text, quote, palette, document, transcripts)."""
    body = f"Title: {title}\n\nContent: {content}" if title else content
    return [
        Turn(role="system", content=SYSTEM_PROMPTS["text"]),
        Turn(
            role="user",
            content=f"Analyze this content and generate tags and summary:\n\n{_truncate(body)}",
        ),
    ]


def render_link_prompt(content: str, url: str | None = None) -> list[Turn]:
    """Turns for a web page described by its preview fields."""
    parts = [
        "Analyze this web page content and generate optimized tags and summary "
        "for knowledge management:",
        "",
        _truncate(content),
    ]
    if url:
        parts.extend(["", f"URL: {url}"])
    parts.extend(
        [
            "",
            "Generate tags and summary that will help the user rediscover and understand "
            "the value of this content.",
        ]
    )
    return [
        Turn(role="system", content=SYSTEM_PROMPTS["link"]),
        Turn(role="user", content="\n".join(parts)),
    ]


def render_image_prompt(image_url: str, title: str | None = None) -> list[Turn]:
    """Turns for vision analysis of an image reachable at ``image_url``."""
    text = (
        f"Image title: {title}\n\nAnalyze this image and generate tags and summary:"
        if title
        else "Analyze this image and generate tags and summary:"
    )
    return [
        Turn(role="system", content=SYSTEM_PROMPTS["image"]),
        Turn(
            role="user",
            content=[
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": image_url}},
            ],
        ),
    ]
