"""Link metadata extraction: fetching, parsing, sanitizing and storing previews."""

from teak.pipeline.link_metadata.fetch import (
    FetchedImage,
    FetchedPage,
    LinkFetcher,
    LinkFetchError,
    validate_image_bytes,
)
from teak.pipeline.link_metadata.parsing import (
    build_error_preview,
    build_success_preview,
    collect_selector_map,
    extract_link_preview,
    parse_link_preview,
    sanitize_image_url,
    sanitize_text,
    sanitize_url,
)

__all__ = [
    "FetchedImage",
    "FetchedPage",
    "LinkFetcher",
    "LinkFetchError",
    "validate_image_bytes",
    "build_error_preview",
    "build_success_preview",
    "collect_selector_map",
    "extract_link_preview",
    "parse_link_preview",
    "sanitize_image_url",
    "sanitize_text",
    "sanitize_url",
]
