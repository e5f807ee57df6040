"""Tests for synthesized placeholder thumbnails."""

from io import BytesIO
from xml.etree import ElementTree

import pytest
from PIL import Image

from snapthumb.services.imaging.codec import image_size
from snapthumb.services.imaging.synthesis import (
    LOADING_COLORS,
    ThumbnailSynthesizer,
    escape_markup,
    extract_domain,
    pick_colors,
    truncate_title,
)


@pytest.fixture
def synthesizer(settings) -> ThumbnailSynthesizer:
    return ThumbnailSynthesizer(settings)


# Title truncation


def test_short_title_is_unchanged():
    assert truncate_title("Example Domain") == "Example Domain"


def test_long_title_cut_on_word_boundary():
    title = "A Very Long Title That Exceeds The Truncation Limit For Display"

    result = truncate_title(title, max_length=50)

    assert result == "A Very Long Title That Exceeds The Truncation..."
    assert len(result) <= 50


def test_single_overlong_word_is_hard_cut():
    result = truncate_title("x" * 80, max_length=50)

    assert result == "x" * 47 + "..."


def test_empty_title_becomes_untitled():
    assert truncate_title("") == "Untitled"
    assert truncate_title(None) == "Untitled"
    assert truncate_title("   \n\t ") == "Untitled"


def test_whitespace_is_collapsed():
    assert truncate_title("  Hello \n   world  ") == "Hello world"


# Metadata helpers


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://www.example.com/path?q=1", "example.com"),
        ("http://news.ycombinator.com", "news.ycombinator.com"),
        ("example.org/page", "example.org"),
        ("", "Unknown"),
        ("http://", "Unknown"),
    ],
)
def test_extract_domain(url, expected):
    assert extract_domain(url) == expected


def test_unknown_category_uses_default_colors(settings):
    assert pick_colors("No Such Category", settings.category_colors) == (
        settings.category_colors["default"]
    )
    assert pick_colors("Technology", settings.category_colors) == ("#6366F1", "#3730A3")


def test_escape_markup_handles_markup_and_control_characters():
    escaped = escape_markup('<script>alert("x")</script> & \x00\x1f')

    assert "<" not in escaped
    assert "&lt;script&gt;" in escaped
    assert "&quot;" in escaped
    assert "&amp;" in escaped
    assert "\x00" not in escaped and "\x1f" not in escaped


def test_scene_svg_is_well_formed_with_hostile_text(synthesizer):
    scene = synthesizer.build_scene(
        title='Tom & Jerry <b>"quoted"</b>',
        category="<Design>",
        url="https://www.example.com",
    )

    svg = scene.to_svg()
    root = ElementTree.fromstring(svg)

    texts = [element.text for element in root.iter("{http://www.w3.org/2000/svg}text")]
    assert "<Design>" in texts
    assert "example.com" in texts
    assert "Tom & Jerry" in " ".join(text or "" for text in texts)


def test_svg_and_raster_share_one_layout(synthesizer, settings):
    scene = synthesizer.build_scene("Example Domain", "Technology", "https://www.example.com")
    layout = scene.layout()
    left, top, right, bottom = layout.badge_box

    root = ElementTree.fromstring(scene.to_svg())
    badge_rect = next(
        rect for rect in root.iter("{http://www.w3.org/2000/svg}rect") if rect.get("rx")
    )
    assert int(badge_rect.get("width")) == right - left
    assert int(badge_rect.get("height")) == bottom - top
    text_ys = [int(t.get("y")) for t in root.iter("{http://www.w3.org/2000/svg}text")]
    assert text_ys == [layout.badge_text[1], *layout.title_baselines, layout.caption_baseline]

    # The rasterized badge covers exactly the box the SVG declares
    image = scene.render()
    y = top + 8
    inside = sum(image.getpixel((right - 4, y)))
    outside = sum(image.getpixel((right + 4, y)))
    assert inside < outside - 20


def test_badge_never_wider_than_the_thumbnail(synthesizer, settings):
    scene = synthesizer.build_scene("t", "W" * 24, "")

    left, _, right, _ = scene.layout().badge_box

    assert right <= settings.thumbnail_width - left


# Rendering


def test_branded_thumbnail_has_canonical_size(synthesizer, settings):
    data = synthesizer.render_branded(
        "Example Domain", "Technology", "https://www.example.com"
    )

    assert image_size(data) == (settings.thumbnail_width, settings.thumbnail_height)


def test_default_gradient_starts_with_default_color(synthesizer):
    """Unknown category: the top-left corner shows the default start colour (#6B7280)."""
    data = synthesizer.render_branded("", "", "")

    r, g, b = Image.open(BytesIO(data)).convert("RGB").getpixel((2, 2))
    assert abs(r - 107) <= 12
    assert abs(g - 114) <= 12
    assert abs(b - 128) <= 12


def test_loading_placeholder_uses_loading_colors(synthesizer):
    data = synthesizer.render_loading("Some page", "Technology")

    r, g, b = Image.open(BytesIO(data)).convert("RGB").getpixel((2, 2))
    expected = (0x66, 0x7E, 0xEA)
    assert LOADING_COLORS[0] == "#667EEA"
    assert all(abs(actual - want) <= 12 for actual, want in zip((r, g, b), expected))


def test_minimal_placeholder_is_grey(synthesizer, settings):
    data = synthesizer.render_minimal()

    image = Image.open(BytesIO(data)).convert("RGB")
    assert image.size == (settings.thumbnail_width, settings.thumbnail_height)
    r, g, b = image.getpixel((2, 2))
    assert all(abs(channel - 128) <= 8 for channel in (r, g, b))


@pytest.mark.parametrize(
    "title,category,url",
    [
        ("", "", ""),
        (None, None, None),
        ("x" * 5000, "y" * 500, "not a url at all"),
        ("\x00\x01\ufffe", "\u202e", "https://[::1"),
        ("日本語のタイトル 🚀", "Technology", "https://例え.jp"),
    ],
)
def test_synthesize_is_total(synthesizer, settings, title, category, url):
    data = synthesizer.synthesize(title, category, url)

    assert image_size(data) == (settings.thumbnail_width, settings.thumbnail_height)


def test_synthesize_falls_back_to_minimal_when_branded_fails(synthesizer, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("font subsystem unavailable")

    monkeypatch.setattr(synthesizer, "render_branded", broken)

    data = synthesizer.synthesize("Title", "Technology", "https://example.com")

    r, g, b = Image.open(BytesIO(data)).convert("RGB").getpixel((2, 2))
    assert all(abs(channel - 128) <= 8 for channel in (r, g, b))
