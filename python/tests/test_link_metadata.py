"""Tests for link preview parsing, page fetching and the link metadata step.

Outbound HTTP is mocked with respx.
"""

from uuid import uuid4

import httpx
import pytest
import respx

from teak.db.models import Card
from teak.pipeline.link_metadata.fetch import LinkFetchError, validate_image_bytes
from teak.pipeline.link_metadata.parsing import (
    MAX_TITLE_LENGTH,
    build_error_preview,
    collect_selector_map,
    extract_link_preview,
    normalize_link_url,
    sanitize_url,
)
from teak.pipeline.link_metadata.step import run_link_metadata
from teak.pipeline.results import Failed, Ready
from teak.tasks.sweep_deleted_cards import card_blob_paths
from tests.image_fixtures import HTML_CONTENT, make_png

ARTICLE_URL = "https://example.com/articles/launch"
IMAGE_URL = "https://cdn.example.com/cover.png"

ARTICLE_HTML = f"""<!DOCTYPE html>
<html>
<head>
  <title>Fallback title</title>
  <meta property="og:title" content="  Launch   day  ">
  <meta name="description" content="What we shipped">
  <meta property="og:image" content="{IMAGE_URL}">
  <meta property="og:site_name" content="Example">
  <meta name="author" content="Ada">
  <meta property="article:published_time" content="2024-05-01T10:00:00Z">
  <link rel="icon" href="/favicon.ico">
  <link rel="canonical" href="javascript:alert(1)">
</head>
<body><p>Hello</p></body>
</html>"""

HTML_HEADERS = {"content-type": "text/html; charset=utf-8"}


class TestParsing:
    def test_extracts_sanitized_fields(self):
        """Meta sources win, whitespace collapses, relative URLs resolve."""
        preview = extract_link_preview(ARTICLE_URL, ARTICLE_HTML)

        assert preview["title"] == "Launch day"
        assert preview["description"] == "What we shipped"
        assert preview["imageUrl"] == IMAGE_URL
        assert preview["faviconUrl"] == "https://example.com/favicon.ico"
        assert preview["siteName"] == "Example"
        assert preview["author"] == "Ada"
        assert preview["publishedAt"] == "2024-05-01T10:00:00Z"

    def test_javascript_canonical_rejected(self):
        preview = extract_link_preview(ARTICLE_URL, ARTICLE_HTML)

        assert "canonicalUrl" not in preview
        assert preview["finalUrl"] == ARTICLE_URL

    def test_raw_selector_map_kept(self):
        preview = extract_link_preview(ARTICLE_URL, ARTICLE_HTML)

        assert preview["raw"]["meta[property='og:title']"]["attributes"]["content"] == (
            "Launch   day"
        )

    def test_title_truncated(self):
        html = f"<html><head><title>{'x' * 600}</title></head></html>"

        assert len(extract_link_preview(ARTICLE_URL, html)["title"]) == MAX_TITLE_LENGTH

    def test_fallback_image_is_largest_declared(self):
        html = """<html><body>
            <img src="/small.png" width="10" height="10">
            <img src="/big.png" width="600" height="400">
            <img src="javascript:void(0)" width="9000" height="9000">
        </body></html>"""

        assert extract_link_preview(ARTICLE_URL, html)["imageUrl"] == "https://example.com/big.png"

    def test_empty_document(self):
        assert collect_selector_map("") == {}
        assert extract_link_preview(ARTICLE_URL, "") == {"finalUrl": ARTICLE_URL, "raw": {}}

    @pytest.mark.parametrize(
        "value,allow_data,expected",
        [
            ("mailto:a@b.c", False, None),
            ("data:image/png;base64,AAA", True, "data:image/png;base64,AAA"),
            ("data:image/png;base64,AAA", False, None),
            ("ftp://files.example.com/x", False, None),
            ("../up", False, "https://example.com/up"),
        ],
    )
    def test_sanitize_url(self, value, allow_data, expected):
        assert sanitize_url(ARTICLE_URL, value, allow_data=allow_data) == expected

    def test_normalize_link_url(self):
        assert normalize_link_url(" example.com/a ") == "https://example.com/a"
        assert normalize_link_url("http://example.com") == "http://example.com"

    def test_error_preview_keeps_screenshot(self):
        preview = build_error_preview(
            ARTICLE_URL,
            "timeout",
            "Request timed out",
            123,
            {"screenshotStorageId": "shots/1.png", "screenshotUpdatedAt": 100, "title": "Old"},
        )

        assert preview["status"] == "error"
        assert preview["error"] == {"type": "timeout", "message": "Request timed out"}
        assert preview["screenshotStorageId"] == "shots/1.png"
        assert "title" not in preview

    def test_error_preview_keeps_stored_image(self):
        previous = {"imageStorageId": "cards/x/preview-image-1.png", "imageUpdatedAt": 90}

        preview = build_error_preview(ARTICLE_URL, "http_error", "Not found", 123, previous)

        assert preview["imageStorageId"] == "cards/x/preview-image-1.png"
        assert preview["imageUpdatedAt"] == 90


class TestLinkFetcher:
    @respx.mock
    def test_fetch_page(self, pipeline_ctx):
        respx.get(ARTICLE_URL).mock(
            return_value=httpx.Response(200, headers=HTML_HEADERS, text=ARTICLE_HTML)
        )

        page = pipeline_ctx.link_fetcher.fetch_page(ARTICLE_URL)

        assert "Launch" in page.html
        assert page.final_url == ARTICLE_URL
        request = respx.calls.last.request
        assert request.headers["user-agent"] == "TeakBot/1.0"

    @respx.mock
    def test_follows_redirects(self, pipeline_ctx):
        respx.get("https://example.com/old").mock(
            return_value=httpx.Response(301, headers={"location": "/articles/launch"})
        )
        respx.get(ARTICLE_URL).mock(
            return_value=httpx.Response(200, headers=HTML_HEADERS, text=ARTICLE_HTML)
        )

        page = pipeline_ctx.link_fetcher.fetch_page("https://example.com/old")

        assert page.final_url == ARTICLE_URL

    @respx.mock
    def test_redirect_to_private_address_blocked(self, pipeline_ctx):
        """Every redirect hop is validated, not just the first URL."""
        respx.get("https://example.com/old").mock(
            return_value=httpx.Response(302, headers={"location": "http://10.0.0.5/admin"})
        )

        with pytest.raises(LinkFetchError) as exc_info:
            pipeline_ctx.link_fetcher.fetch_page("https://example.com/old")

        assert exc_info.value.error_type == "invalid_url"
        assert exc_info.value.retryable is False

    @pytest.mark.parametrize("status,retryable", [(503, True), (429, True), (404, False)])
    @respx.mock
    def test_http_errors(self, pipeline_ctx, status, retryable):
        respx.get(ARTICLE_URL).mock(return_value=httpx.Response(status))

        with pytest.raises(LinkFetchError) as exc_info:
            pipeline_ctx.link_fetcher.fetch_page(ARTICLE_URL)

        assert exc_info.value.error_type == "http_error"
        assert exc_info.value.status_code == status
        assert exc_info.value.retryable is retryable

    @respx.mock
    def test_timeout_is_retryable(self, pipeline_ctx):
        respx.get(ARTICLE_URL).mock(side_effect=httpx.ConnectTimeout("slow"))

        with pytest.raises(LinkFetchError) as exc_info:
            pipeline_ctx.link_fetcher.fetch_page(ARTICLE_URL)

        assert exc_info.value.error_type == "timeout"
        assert exc_info.value.retryable is True

    @respx.mock
    def test_non_html_rejected(self, pipeline_ctx):
        respx.get(ARTICLE_URL).mock(
            return_value=httpx.Response(
                200, headers={"content-type": "application/json"}, text="{}"
            )
        )

        with pytest.raises(LinkFetchError) as exc_info:
            pipeline_ctx.link_fetcher.fetch_page(ARTICLE_URL)

        assert exc_info.value.error_type == "unsupported_content"

    def test_validate_image_bytes(self):
        image = validate_image_bytes(make_png(30, 20))

        assert (image.content_type, image.width, image.height) == ("image/png", 30, 20)
        assert image.extension == "png"

    def test_validate_rejects_non_image(self):
        with pytest.raises(LinkFetchError) as exc_info:
            validate_image_bytes(HTML_CONTENT, "image/png")

        assert exc_info.value.error_type == "invalid_image"


def link_card(**fields) -> Card:
    return Card(
        id=uuid4(),
        user_id=uuid4(),
        type="link",
        content="",
        url=fields.pop("url", ARTICLE_URL),
        metadata_status="pending",
        **fields,
    )


class TestRunLinkMetadata:
    @respx.mock
    def test_success_stores_preview_image(self, pipeline_ctx, storage):
        respx.get(ARTICLE_URL).mock(
            return_value=httpx.Response(200, headers=HTML_HEADERS, text=ARTICLE_HTML)
        )
        respx.get(IMAGE_URL).mock(
            return_value=httpx.Response(
                200, headers={"content-type": "image/png"}, content=make_png(64, 32)
            )
        )
        card = link_card()

        result = run_link_metadata(card, pipeline_ctx)

        assert isinstance(result, Ready)
        assert result.updates == {
            "metadata_status": "completed",
            "metadata_title": "Launch day",
            "metadata_description": "What we shipped",
        }
        preview = result.metadata_updates["linkPreview"]
        assert preview["status"] == "success"
        assert preview["source"] == "teak_fetch"
        assert (preview["imageWidth"], preview["imageHeight"]) == (64, 32)
        assert preview["imageStorageId"].endswith(".png")
        assert result.created_blobs == (preview["imageStorageId"],)
        assert storage.has_object(preview["imageStorageId"])
        assert result.replaced_blobs == ()

    @respx.mock
    def test_new_image_replaces_previous_blob(self, pipeline_ctx, storage):
        """The old preview image is handed back for deletion after commit."""
        respx.get(ARTICLE_URL).mock(
            return_value=httpx.Response(200, headers=HTML_HEADERS, text=ARTICLE_HTML)
        )
        respx.get(IMAGE_URL).mock(
            return_value=httpx.Response(
                200, headers={"content-type": "image/png"}, content=make_png(16, 16)
            )
        )
        card = link_card(
            card_metadata={
                "linkPreview": {
                    "status": "success",
                    "imageUrl": "https://cdn.example.com/old.png",
                    "imageStorageId": "cards/x/preview-image-old.png",
                    "screenshotStorageId": "cards/x/screenshot-1.png",
                }
            }
        )

        result = run_link_metadata(card, pipeline_ctx)

        assert result.replaced_blobs == ("cards/x/preview-image-old.png",)
        preview = result.metadata_updates["linkPreview"]
        assert preview["screenshotStorageId"] == "cards/x/screenshot-1.png"
        # Nothing is deleted by the step itself.
        assert storage.deleted == []

    @respx.mock
    def test_same_image_url_reuses_stored_copy(self, pipeline_ctx):
        respx.get(ARTICLE_URL).mock(
            return_value=httpx.Response(200, headers=HTML_HEADERS, text=ARTICLE_HTML)
        )
        image_route = respx.get(IMAGE_URL)
        card = link_card(
            card_metadata={
                "linkPreview": {
                    "status": "success",
                    "imageUrl": IMAGE_URL,
                    "imageStorageId": "cards/x/preview-image-1.png",
                    "imageWidth": 10,
                    "imageHeight": 10,
                }
            }
        )

        result = run_link_metadata(card, pipeline_ctx)

        assert not image_route.called
        assert result.metadata_updates["linkPreview"]["imageStorageId"] == (
            "cards/x/preview-image-1.png"
        )
        assert result.created_blobs == () and result.replaced_blobs == ()

    @respx.mock
    def test_server_error_fails_retryable(self, pipeline_ctx):
        respx.get(ARTICLE_URL).mock(return_value=httpx.Response(503))
        card = link_card(
            card_metadata={"linkPreview": {"screenshotStorageId": "cards/x/screenshot-1.png"}}
        )

        result = run_link_metadata(card, pipeline_ctx)

        assert isinstance(result, Failed)
        assert result.retryable is True
        assert result.updates == {"metadata_status": "failed"}
        preview = result.metadata_updates["linkPreview"]
        assert preview["status"] == "error"
        assert preview["error"]["type"] == "http_error"
        assert preview["screenshotStorageId"] == "cards/x/screenshot-1.png"

    @respx.mock
    def test_failed_refetch_keeps_stored_image(self, pipeline_ctx):
        """The stored preview image stays referenced so the sweeper can delete it."""
        respx.get(ARTICLE_URL).mock(return_value=httpx.Response(404))
        previous = {
            "status": "success",
            "imageUrl": IMAGE_URL,
            "imageStorageId": "cards/x/preview-image-1.png",
            "imageWidth": 64,
            "imageHeight": 32,
        }
        card = link_card(card_metadata={"linkPreview": previous})

        result = run_link_metadata(card, pipeline_ctx)

        assert isinstance(result, Failed)
        preview = result.metadata_updates["linkPreview"]
        assert preview["status"] == "error"
        assert preview["imageStorageId"] == "cards/x/preview-image-1.png"
        assert preview["imageWidth"] == 64
        assert "imageUrl" not in preview
        card.card_metadata = {"linkPreview": preview}
        assert card_blob_paths(card) == ["cards/x/preview-image-1.png"]

    def test_missing_url_fails_permanently(self, pipeline_ctx):
        result = run_link_metadata(link_card(url=None), pipeline_ctx)

        assert isinstance(result, Failed)
        assert result.retryable is False
        assert result.metadata_updates["linkPreview"]["error"]["type"] == "invalid_url"

    @respx.mock
    def test_undecodable_image_is_skipped(self, pipeline_ctx, storage):
        """A broken preview image never fails the step."""
        respx.get(ARTICLE_URL).mock(
            return_value=httpx.Response(200, headers=HTML_HEADERS, text=ARTICLE_HTML)
        )
        respx.get(IMAGE_URL).mock(
            return_value=httpx.Response(200, headers={"content-type": "image/png"}, content=b"no")
        )

        result = run_link_metadata(link_card(), pipeline_ctx)

        assert isinstance(result, Ready)
        assert "imageStorageId" not in result.metadata_updates["linkPreview"]
        assert result.created_blobs == ()
