"""WebP thumbnails for large image uploads."""

from io import BytesIO

from PIL import Image, ImageOps

THUMBNAIL_MIN_SOURCE_BYTES = 500_000
THUMBNAIL_MAX_SIZE = (400, 400)
THUMBNAIL_CONTENT_TYPE = "image/webp"

# (source size upper bound in bytes, quality); larger sources compress harder.
QUALITY_STEPS = (
    (1_000_000, 70),
    (2_000_000, 65),
    (5_000_000, 60),
    (10_000_000, 55),
    (20_000_000, 50),
)
MIN_QUALITY = 40


def needs_thumbnail(source_size: int) -> bool:
    return source_size >= THUMBNAIL_MIN_SOURCE_BYTES


def thumbnail_quality(source_size: int) -> int:
    for limit, quality in QUALITY_STEPS:
        if source_size < limit:
            return quality
    return MIN_QUALITY


def render_thumbnail(data: bytes) -> bytes:
    """Downscale to fit THUMBNAIL_MAX_SIZE, aspect preserved, encoded as WebP.

    Raises:
        PIL.UnidentifiedImageError, OSError: If the bytes cannot be decoded.
    """
    with Image.open(BytesIO(data)) as image:
        image = ImageOps.exif_transpose(image)
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
        image.thumbnail(THUMBNAIL_MAX_SIZE, Image.Resampling.LANCZOS)
        out = BytesIO()
        image.save(out, format="WEBP", quality=thumbnail_quality(len(data)))
        return out.getvalue()
