"""Tests for the image codec (decode, cover-resize, JPEG encode)."""

from io import BytesIO

import pytest
from PIL import Image

from snapthumb.services.exceptions import EncodeError
from snapthumb.services.imaging.codec import (
    cover,
    encode_image,
    image_size,
    is_valid_image,
    normalize,
)
from tests.fakes import make_png


def test_normalize_produces_exact_jpeg_size():
    data = normalize(make_png(2048, 1536), 640, 360, quality=85)

    image = Image.open(BytesIO(data))
    assert image.format == "JPEG"
    assert image.size == (640, 360)
    assert image.mode == "RGB"


def test_normalize_upscales_small_sources():
    data = normalize(make_png(100, 50), 640, 360)
    assert image_size(data) == (640, 360)


def test_cover_keeps_top_of_tall_page():
    """A tall screenshot keeps its top edge (above-the-fold content)."""
    source = Image.new("RGB", (400, 1600), (255, 0, 0))
    source.paste((0, 0, 255), (0, 800, 400, 1600))

    result = cover(source, 400, 225)

    assert result.size == (400, 225)
    r, g, b = result.getpixel((200, 200))
    assert r > 200 and b < 50


def test_transparency_is_flattened_onto_white():
    buffer = BytesIO()
    Image.new("RGBA", (200, 100), (0, 0, 0, 0)).save(buffer, format="PNG")

    data = normalize(buffer.getvalue(), 64, 32)

    pixel = Image.open(BytesIO(data)).convert("RGB").getpixel((32, 16))
    assert all(channel > 240 for channel in pixel)


def test_encode_image_accepts_palette_images():
    data = encode_image(Image.new("P", (32, 32)))
    assert is_valid_image(data)


@pytest.mark.parametrize("raw", [b"", b"not an image", b"\x89PNG\r\n\x1a\n truncated"])
def test_undecodable_input_raises_encode_error(raw):
    with pytest.raises(EncodeError):
        normalize(raw, 640, 360)
    assert not is_valid_image(raw)


def test_invalid_target_size_raises_encode_error():
    with pytest.raises(EncodeError):
        normalize(make_png(), 0, 360)
