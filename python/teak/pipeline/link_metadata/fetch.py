"""Outbound fetching for link previews and categorization.

Pages:
- http(s) only, hostname denylist checked on every redirect hop
- at most MAX_REDIRECTS redirects, followed manually
- HTML content types only, body capped at MAX_PAGE_BYTES

Images:
- body capped at MAX_IMAGE_BYTES
- validated with Pillow (verify, then reopen for dimensions)
"""

import io
import warnings
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx
from PIL import Image

from teak.config import Settings, get_settings
from teak.errors import InvalidRequestError, ProviderFetchFailure
from teak.logging import get_logger
from teak.services.url_normalize import validate_fetch_url

logger = get_logger(__name__)

MAX_REDIRECTS = 5
MAX_PAGE_BYTES = 2_000_000
MAX_IMAGE_BYTES = 10 * 1024 * 1024
MAX_IMAGE_DIMENSION = 8192

REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
PAGE_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

IMAGE_FORMAT_TO_MIME = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "ico": "image/x-icon",
}
IMAGE_MIME_TO_EXT = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/x-icon": "ico",
}


class LinkFetchError(ProviderFetchFailure):
    """Fetching a link failed.

    error_type is one of: http_error, timeout, network, invalid_url,
    unsupported_content, too_many_redirects, response_too_large,
    invalid_image.
    """

    def __init__(
        self,
        error_type: str,
        message: str,
        retryable: bool = False,
        status_code: int | None = None,
    ):
        super().__init__(error_type, message, retryable)
        self.status_code = status_code


@dataclass(frozen=True)
class FetchedPage:
    url: str
    final_url: str
    html: str
    content_type: str


@dataclass(frozen=True)
class FetchedImage:
    data: bytes
    content_type: str
    width: int
    height: int

    @property
    def extension(self) -> str:
        return IMAGE_MIME_TO_EXT.get(self.content_type, "img")


def _check_url(url: str) -> None:
    try:
        validate_fetch_url(url)
    except InvalidRequestError as e:
        raise LinkFetchError("invalid_url", e.message) from e


def _status_error(status_code: int) -> LinkFetchError:
    retryable = status_code >= 500 or status_code == 429
    return LinkFetchError(
        "http_error", f"HTTP {status_code}", retryable=retryable, status_code=status_code
    )


def validate_image_bytes(data: bytes, upstream_content_type: str | None = None) -> FetchedImage:
    """Decode-check an image and derive its content type and dimensions.

    Raises:
        LinkFetchError: invalid_image when Pillow cannot decode it or it is too large.
    """
    Image.MAX_IMAGE_PIXELS = MAX_IMAGE_DIMENSION * MAX_IMAGE_DIMENSION
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            img = Image.open(io.BytesIO(data))
            img.verify()
            # verify() leaves the image unusable, reopen for the header fields
            img = Image.open(io.BytesIO(data))
            width, height = img.size
            img_format = (img.format or "").lower()
    except (Image.DecompressionBombWarning, Image.DecompressionBombError) as e:
        raise LinkFetchError("invalid_image", "Image exceeds dimension limits") from e
    except Exception as e:
        raise LinkFetchError("invalid_image", f"Content is not a valid image: {e}") from e

    content_type = IMAGE_FORMAT_TO_MIME.get(img_format)
    if content_type is None and upstream_content_type:
        candidate = upstream_content_type.lower().split(";")[0].strip()
        if candidate.startswith("image/") and candidate != "image/svg+xml":
            content_type = candidate
    return FetchedImage(
        data=data,
        content_type=content_type or "application/octet-stream",
        width=width,
        height=height,
    )


class LinkFetcher:
    """Synchronous fetcher shared by the link metadata and categorize steps."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.user_agent = settings.link_fetch_user_agent
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=settings.link_fetch_timeout_s,
            follow_redirects=False,
            trust_env=False,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "LinkFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(self, url: str, accept: str) -> httpx.Response:
        """GET with manual redirect handling; returns the final non-redirect response."""
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            _check_url(current)
            try:
                request = self._client.build_request(
                    "GET", current, headers={"User-Agent": self.user_agent, "Accept": accept}
                )
                response = self._client.send(request, stream=True)
            except httpx.TimeoutException as e:
                raise LinkFetchError("timeout", "Request timed out", retryable=True) from e
            except httpx.RequestError as e:
                raise LinkFetchError("network", f"Failed to fetch: {e}", retryable=True) from e

            if response.status_code not in REDIRECT_STATUS_CODES:
                return response

            location = response.headers.get("location")
            response.close()
            if not location:
                raise LinkFetchError("http_error", "Redirect missing location header")
            current = urljoin(current, location)

        raise LinkFetchError("too_many_redirects", "Too many redirects")

    def _read_body(self, response: httpx.Response, limit: int) -> bytes:
        chunks = []
        total = 0
        try:
            for chunk in response.iter_bytes(chunk_size=8192):
                total += len(chunk)
                if total > limit:
                    raise LinkFetchError("response_too_large", "Response too large")
                chunks.append(chunk)
        except httpx.TimeoutException as e:
            raise LinkFetchError("timeout", "Request timed out", retryable=True) from e
        except httpx.RequestError as e:
            raise LinkFetchError("network", f"Failed to read body: {e}", retryable=True) from e
        finally:
            response.close()
        return b"".join(chunks)

    def fetch_page(self, url: str) -> FetchedPage:
        """Fetch an HTML page.

        Raises:
            LinkFetchError: On any fetch, status or content failure.
        """
        response = self._get(url, PAGE_ACCEPT)
        if response.status_code >= 400:
            response.close()
            raise _status_error(response.status_code)

        content_type = response.headers.get("content-type", "")
        if not any(kind in content_type.lower() for kind in HTML_CONTENT_TYPES):
            response.close()
            raise LinkFetchError(
                "unsupported_content", f"Unsupported content type: {content_type or 'unknown'}"
            )

        body = self._read_body(response, MAX_PAGE_BYTES)
        encoding = response.charset_encoding or "utf-8"
        try:
            html = body.decode(encoding, errors="replace")
        except LookupError:
            html = body.decode("utf-8", errors="replace")

        logger.debug("link_page_fetched", url=url, final_url=str(response.url), bytes=len(body))
        return FetchedPage(
            url=url, final_url=str(response.url), html=html, content_type=content_type
        )

    def fetch_image(self, url: str) -> FetchedImage:
        """Download and validate an image.

        Raises:
            LinkFetchError: On fetch failure or when the body is not a decodable image.
        """
        response = self._get(url, "image/*,*/*;q=0.8")
        if response.status_code >= 400:
            response.close()
            raise _status_error(response.status_code)
        content_type = response.headers.get("content-type")
        body = self._read_body(response, MAX_IMAGE_BYTES)
        return validate_image_bytes(body, content_type)
