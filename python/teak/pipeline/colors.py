"""Color parsing from free text (palette cards).

Recognizes hex (#RGB, #RGBA, #RRGGBB, #RRGGBBAA), rgb()/rgba() and
hsl()/hsla() values. "Label: #0F4C81" pairs and CSS custom properties give
the color a name. Output hex values are uppercase and de-duplicated in
first-seen order.
"""

import re
from typing import Any

MAX_CARD_COLORS = 5

_HEX = r"#(?:[0-9a-f]{8}|[0-9a-f]{6}|[0-9a-f]{3,4})\b"
_RGB = r"rgba?\(\s*\d{1,3}\s*,\s*\d{1,3}\s*,\s*\d{1,3}\s*(?:,\s*[\d.]+\s*)?\)"
_HSL = r"hsla?\(\s*\d{1,3}\s*,\s*\d{1,3}%\s*,\s*\d{1,3}%\s*(?:,\s*[\d.]+\s*)?\)"
_ANY_COLOR = f"(?:{_HEX}|{_RGB}|{_HSL})"

COLOR_VALUE_RE = re.compile(_ANY_COLOR, re.IGNORECASE)
CSS_VARIABLE_RE = re.compile(rf"--([a-z0-9_-]+)\s*:\s*({_ANY_COLOR})", re.IGNORECASE)
LABELED_COLOR_RE = re.compile(
    rf"\b([A-Za-z][\w -]{{0,32}}?)\s*[:\-\u2013]\s*({_ANY_COLOR})", re.IGNORECASE
)
_RGB_PARTS_RE = re.compile(r"\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)")
_HSL_PARTS_RE = re.compile(r"\(\s*(\d+)\s*,\s*(\d+)%\s*,\s*(\d+)%")


def _hsl_to_rgb(h: int, s: int, lightness: int) -> tuple[int, int, int]:
    s_f = s / 100
    l_f = lightness / 100
    a = s_f * min(l_f, 1 - l_f)

    def channel(n: int) -> int:
        k = (n + h / 30) % 12
        return round(255 * (l_f - a * max(-1, min(k - 3, 9 - k, 1))))

    return channel(0), channel(8), channel(4)


def parse_color(value: str) -> dict[str, Any] | None:
    """Parse one color literal into {"hex", "rgb"}; None when invalid."""
    text = value.strip().lower()

    if text.startswith("#"):
        raw = text[1:]
        if len(raw) not in (3, 4, 6, 8) or not re.fullmatch(r"[0-9a-f]+", raw):
            return None
        if len(raw) in (3, 4):
            raw = "".join(char * 2 for char in raw)
        rgb_hex = raw[:6]
        r, g, b = (int(rgb_hex[i : i + 2], 16) for i in (0, 2, 4))
        return {"hex": f"#{raw.upper()}", "rgb": {"r": r, "g": g, "b": b}}

    if text.startswith("rgb"):
        match = _RGB_PARTS_RE.search(text)
        if not match:
            return None
        r, g, b = (int(part) for part in match.groups())
        if max(r, g, b) > 255:
            return None
        return {"hex": f"#{r:02X}{g:02X}{b:02X}", "rgb": {"r": r, "g": g, "b": b}}

    if text.startswith("hsl"):
        match = _HSL_PARTS_RE.search(text)
        if not match:
            return None
        h, s, lightness = (int(part) for part in match.groups())
        if h > 360 or s > 100 or lightness > 100:
            return None
        r, g, b = _hsl_to_rgb(h, s, lightness)
        return {"hex": f"#{r:02X}{g:02X}{b:02X}", "rgb": {"r": r, "g": g, "b": b}}

    return None


def _format_label(label: str) -> str | None:
    cleaned = re.sub(r"[_-]+", " ", label).strip()
    return cleaned.title() if cleaned else None


def extract_palette_colors(text: str, max_colors: int = MAX_CARD_COLORS) -> list[dict[str, Any]]:
    """Extract up to ``max_colors`` distinct colors from free text.

    Named sources (CSS variables, labeled pairs) are scanned first so a
    color keeps its label even when it also appears bare later on.
    """
    normalized = re.sub(r"\\[nrt]|<br\s*/?>", "\n", text or "", flags=re.IGNORECASE)
    limit = max(1, max_colors)
    found: dict[str, dict[str, Any]] = {}

    def add(value: str, name: str | None = None) -> None:
        color = parse_color(value)
        if color is None:
            return
        existing = found.get(color["hex"])
        if existing is not None:
            if name and "name" not in existing:
                existing["name"] = name
            return
        if len(found) >= limit:
            return
        if name:
            color["name"] = name
        found[color["hex"]] = color

    for match in CSS_VARIABLE_RE.finditer(normalized):
        add(match.group(2), _format_label(match.group(1)))
    for match in LABELED_COLOR_RE.finditer(normalized):
        add(match.group(2), _format_label(match.group(1)))
    for match in COLOR_VALUE_RE.finditer(normalized):
        add(match.group(0))

    return list(found.values())[:limit]
