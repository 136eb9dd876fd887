"""Tests for palette extraction, thumbnails and the renderables stage."""

from io import BytesIO
from uuid import uuid4

from PIL import Image

from teak.db.models import Card
from teak.pipeline.palette import extract_palette, extract_palette_from_image
from teak.pipeline.renderables import run_renderables
from teak.pipeline.results import Failed, Ready
from teak.pipeline.thumbnail import needs_thumbnail, render_thumbnail, thumbnail_quality
from tests.image_fixtures import (
    SMALL_8X8_PNG,
    make_large_noise_png,
    make_png,
    make_two_tone_png,
)


def image_card(storage, data: bytes | None, **fields) -> Card:
    card_id = uuid4()
    file_path = f"uploads/{card_id}.png"
    if data is not None:
        storage.put_object(file_path, data, "image/png")
    return Card(
        id=card_id,
        user_id=uuid4(),
        type=fields.pop("type", "image"),
        content="",
        file_path=file_path,
        **fields,
    )


class TestPalette:
    def test_two_tone_image(self):
        colors = extract_palette(make_two_tone_png())

        assert set(colors) == {"#FF0000", "#0000FF"}

    def test_quantized_uppercase_hex(self):
        colors = extract_palette(make_png(20, 20, (250, 3, 17)))

        assert colors == ["#FF0010"]

    def test_small_images_have_no_palette(self):
        """Images under 12 px on either side yield nothing."""
        assert extract_palette(SMALL_8X8_PNG) == []
        assert extract_palette(make_png(100, 11)) == []

    def test_transparent_pixels_ignored(self):
        image = Image.new("RGBA", (20, 20), (0, 0, 0, 0))
        image.paste((0, 255, 0, 255), (0, 0, 10, 20))

        assert extract_palette_from_image(image) == ["#00FF00"]

    def test_at_most_five_colors(self):
        image = Image.new("RGB", (60, 12))
        for index in range(6):
            image.paste((index * 40, 0, 0), (index * 10, 0, index * 10 + 10, 12))

        assert len(extract_palette_from_image(image)) == 5


class TestThumbnail:
    def test_threshold(self):
        assert not needs_thumbnail(499_999)
        assert needs_thumbnail(500_000)

    def test_quality_steps(self):
        assert thumbnail_quality(600_000) == 70
        assert thumbnail_quality(1_500_000) == 65
        assert thumbnail_quality(3_000_000) == 60
        assert thumbnail_quality(50_000_000) == 40

    def test_render_preserves_aspect(self):
        thumbnail = render_thumbnail(make_png(800, 400))

        with Image.open(BytesIO(thumbnail)) as image:
            assert image.format == "WEBP"
            assert image.size == (400, 200)


class TestRunRenderables:
    def test_tiny_image_completes_without_assets(self, pipeline_ctx, storage):
        """An 8x8 image completes with no palette and no thumbnail."""
        card = image_card(storage, SMALL_8X8_PNG)

        result = run_renderables(card, pipeline_ctx)

        assert isinstance(result, Ready)
        assert result.updates == {}
        assert result.summary == {"thumbnail_generated": False, "palette_colors": 0}

    def test_small_image_gets_palette_only(self, pipeline_ctx, storage):
        card = image_card(storage, make_two_tone_png())

        result = run_renderables(card, pipeline_ctx)

        assert "thumbnail_path" not in result.updates
        assert {color["hex"] for color in result.updates["colors"]} == {"#FF0000", "#0000FF"}
        assert result.created_blobs == ()

    def test_large_image_gets_thumbnail(self, pipeline_ctx, storage):
        card = image_card(storage, make_large_noise_png())

        result = run_renderables(card, pipeline_ctx)

        path = result.updates["thumbnail_path"]
        assert path.startswith(f"cards/{card.id}/thumbnail-")
        assert path.endswith(".webp")
        assert result.created_blobs == (path,)
        with Image.open(BytesIO(storage.get_object(path))) as image:
            assert max(image.size) <= 400

    def test_existing_assets_not_recomputed(self, pipeline_ctx, storage):
        card = image_card(
            storage,
            make_large_noise_png(),
            thumbnail_path="cards/x/thumbnail-old.webp",
            colors=[{"hex": "#123456"}],
        )

        result = run_renderables(card, pipeline_ctx)

        assert result.updates == {}

    def test_missing_source_is_retryable(self, pipeline_ctx, storage):
        card = image_card(storage, None)

        result = run_renderables(card, pipeline_ctx)

        assert isinstance(result, Failed)
        assert result.retryable is True

    def test_undecodable_source_still_completes(self, pipeline_ctx, storage):
        card = image_card(storage, b"definitely not an image")

        result = run_renderables(card, pipeline_ctx)

        assert isinstance(result, Ready)
        assert result.updates == {}

    def test_document_completes_without_asset(self, pipeline_ctx, storage):
        card = image_card(storage, b"%PDF-1.4", type="document")

        result = run_renderables(card, pipeline_ctx)

        assert isinstance(result, Ready)
        assert result.updates == {}
