"""Dominant color extraction from image bytes."""

from collections import Counter
from io import BytesIO

from PIL import Image

MIN_DIMENSION = 12
TARGET_SAMPLES = 4000
MIN_ALPHA = 16
QUANT_STEP = 16
MAX_PALETTE_COLORS = 5


def _quantize(value: int) -> int:
    return min(255, round(value / QUANT_STEP) * QUANT_STEP)


def extract_palette_from_image(
    image: Image.Image, max_colors: int = MAX_PALETTE_COLORS
) -> list[str]:
    """Most frequent quantized colors as uppercase ``#RRGGBB`` strings.

    Pixels are sampled with a fixed stride so large images cost roughly
    TARGET_SAMPLES reads. Nearly transparent pixels are ignored. Images
    smaller than MIN_DIMENSION on either side yield no palette.
    """
    width, height = image.size
    if width < MIN_DIMENSION or height < MIN_DIMENSION:
        return []

    raw = image.convert("RGBA").tobytes()
    stride = max(1, (width * height) // TARGET_SAMPLES)

    counts: Counter[tuple[int, int, int]] = Counter()
    for offset in range(0, len(raw), 4 * stride):
        r, g, b, a = raw[offset : offset + 4]
        if a < MIN_ALPHA:
            continue
        counts[(_quantize(r), _quantize(g), _quantize(b))] += 1

    return [f"#{r:02X}{g:02X}{b:02X}" for (r, g, b), _ in counts.most_common(max_colors)]


def extract_palette(data: bytes, max_colors: int = MAX_PALETTE_COLORS) -> list[str]:
    """Decode image bytes and extract the palette.

    Raises:
        PIL.UnidentifiedImageError, OSError: If the bytes are not a decodable image.
    """
    with Image.open(BytesIO(data)) as image:
        return extract_palette_from_image(image, max_colors)
