"""Deterministic placeholder thumbnails synthesized from text metadata.

Synthesis is the backstop when page capture fails, so the public entry point
(`ThumbnailSynthesizer.synthesize`) is total: any error while composing the
branded image falls through to a minimal placeholder, and any error there
falls through to a flat colour image.

Workflow:
1. Pick a gradient colour pair for the category (default pair when unknown)
2. Derive the display domain from the source URL
3. Truncate the title on a word boundary and wrap it into at most two lines
4. Describe the image as a ThumbnailScene (serializable to escaped SVG)
5. Rasterize the scene with Pillow and encode it through the codec layer
"""

import html
import math
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlsplit

import structlog
from PIL import Image, ImageColor, ImageDraw, ImageFont

from snapthumb.core.config import DEFAULT_CATEGORY_COLORS, Settings
from snapthumb.services.imaging.codec import encode_image

logger = structlog.get_logger(__name__)

ELLIPSIS = "..."
UNTITLED = "Untitled"
UNKNOWN_DOMAIN = "Unknown"
LOADING_COLORS = ("#667EEA", "#4C51BF")
MINIMAL_COLOR = "#808080"
MINIMAL_TEXT = "No preview available"
LOADING_TEXT = "Generating preview..."
MAX_BADGE_LENGTH = 24
MAX_TITLE_LINES = 2
BADGE_FONT_SIZE = 14
BADGE_MARGIN = 16
BADGE_PADDING = 12
BADGE_HEIGHT = 28
STATUS_FONT_SIZE = 16
CAPTION_FONT_SIZE = 14

# Characters that are not allowed anywhere in an XML 1.0 document.
_XML_INVALID = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")
_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: Optional[str]) -> str:
    if not text:
        return ""
    return _WHITESPACE.sub(" ", str(text)).strip()


def truncate_title(title: Optional[str], max_length: int = 50) -> str:
    """Shorten a title to max_length characters, cutting on a word boundary.

    Titles that fit are returned unchanged (after whitespace collapsing).
    Longer titles keep as many whole words as fit alongside a trailing
    ellipsis. A first word longer than the limit is the only case that is cut
    mid-word, since there is no boundary to cut on.

    Examples:
        >>> truncate_title("Short title")
        'Short title'
        >>> truncate_title("alpha beta gamma", max_length=14)
        'alpha beta...'
    """
    text = collapse_whitespace(title)
    if not text:
        return UNTITLED
    if len(text) <= max_length:
        return text

    budget = max(max_length - len(ELLIPSIS), 1)
    head = text[: budget + 1]
    boundary = head.rfind(" ")
    if boundary > 0:
        kept = head[:boundary].rstrip(" ,.;:-")
    else:
        kept = text[:budget]
    return f"{kept or text[:budget]}{ELLIPSIS}"


def extract_domain(url: Optional[str]) -> str:
    """Return the URL's hostname without a leading 'www.', or 'Unknown'."""
    if not url:
        return UNKNOWN_DOMAIN
    candidate = str(url).strip()
    if "://" not in candidate:
        candidate = f"http://{candidate}"
    try:
        hostname = urlsplit(candidate).hostname
    except ValueError:
        return UNKNOWN_DOMAIN
    if not hostname:
        return UNKNOWN_DOMAIN
    return hostname[4:] if hostname.startswith("www.") else hostname


def escape_markup(text: Optional[str]) -> str:
    """Escape text for safe embedding in SVG/XML markup."""
    if not text:
        return ""
    return html.escape(_XML_INVALID.sub("", str(text)), quote=True)


def pick_colors(
    category: Optional[str],
    table: Optional[dict[str, tuple[str, str]]] = None,
) -> tuple[str, str]:
    """Look up the gradient colour pair for a category."""
    colors = table or DEFAULT_CATEGORY_COLORS
    key = collapse_whitespace(category)
    if key in colors:
        return colors[key]
    return colors.get("default", DEFAULT_CATEGORY_COLORS["default"])


def measure_text(text: str, font: ImageFont.FreeTypeFont | ImageFont.ImageFont) -> float:
    return ImageDraw.Draw(Image.new("RGB", (1, 1))).textlength(text, font=font)


def baseline(middle: int, font_size: int) -> int:
    """Baseline y for text whose visual middle should sit at `middle`."""
    return middle + int(font_size * 0.35)


@dataclass(frozen=True)
class SceneLayout:
    """Pixel geometry shared by the SVG and raster renderings.

    All text y coordinates are baselines; horizontally centred text uses center_x.
    """

    center_x: int
    badge_box: Optional[tuple[int, int, int, int]]
    badge_text: tuple[int, int]
    title_baselines: tuple[int, ...]
    status_baseline: int
    caption_baseline: int


@dataclass
class ThumbnailScene:
    """Vector description of a synthesized thumbnail."""

    width: int
    height: int
    colors: tuple[str, str]
    title_lines: list[str] = field(default_factory=list)
    badge: str = ""
    caption: str = ""
    status: str = ""
    title_size: int = 28
    font_path: Optional[str] = None

    def layout(self) -> SceneLayout:
        w, h = self.width, self.height

        badge_box = None
        if self.badge:
            text_width = measure_text(self.badge, load_font(BADGE_FONT_SIZE, self.font_path))
            badge_width = min(
                math.ceil(text_width) + 2 * BADGE_PADDING, max(w - 2 * BADGE_MARGIN, 1)
            )
            badge_box = (
                BADGE_MARGIN,
                BADGE_MARGIN,
                BADGE_MARGIN + badge_width,
                BADGE_MARGIN + BADGE_HEIGHT,
            )

        line_height = int(self.title_size * 1.25)
        first_middle = h // 2 - (len(self.title_lines) - 1) * line_height // 2
        return SceneLayout(
            center_x=w // 2,
            badge_box=badge_box,
            badge_text=(
                BADGE_MARGIN + BADGE_PADDING,
                baseline(BADGE_MARGIN + BADGE_HEIGHT // 2, BADGE_FONT_SIZE),
            ),
            title_baselines=tuple(
                baseline(first_middle + index * line_height, self.title_size)
                for index in range(len(self.title_lines))
            ),
            status_baseline=baseline(h - 64, STATUS_FONT_SIZE),
            caption_baseline=baseline(h - 24, CAPTION_FONT_SIZE),
        )

    def to_svg(self) -> str:
        """Serialize the scene as an SVG document with all text escaped."""
        w, h = self.width, self.height
        layout = self.layout()
        cx = layout.center_x
        start, end = (escape_markup(c) for c in self.colors)
        parts = [
            f'<svg width="{w}" height="{h}" viewBox="0 0 {w} {h}" '
            'xmlns="http://www.w3.org/2000/svg">',
            "<defs>",
            '<linearGradient id="bg" x1="0%" y1="0%" x2="0%" y2="100%">',
            f'<stop offset="0%" stop-color="{start}"/>',
            f'<stop offset="100%" stop-color="{end}"/>',
            "</linearGradient>",
            '<pattern id="dots" patternUnits="userSpaceOnUse" width="20" height="20">',
            '<circle cx="10" cy="10" r="2" fill="rgba(255,255,255,0.1)"/>',
            "</pattern>",
            "</defs>",
            f'<rect width="{w}" height="{h}" fill="url(#bg)"/>',
            f'<rect width="{w}" height="{h}" fill="url(#dots)"/>',
        ]
        if layout.badge_box:
            left, top, right, bottom = layout.badge_box
            x, y = layout.badge_text
            parts.append(
                f'<rect x="{left}" y="{top}" width="{right - left}" height="{bottom - top}" '
                'rx="6" fill="rgba(0,0,0,0.3)"/>'
            )
            parts.append(
                f'<text x="{x}" y="{y}" font-family="Arial, sans-serif" '
                f'font-size="{BADGE_FONT_SIZE}" fill="white">{escape_markup(self.badge)}</text>'
            )
        for line, y in zip(self.title_lines, layout.title_baselines):
            parts.append(
                f'<text x="{cx}" y="{y}" '
                f'font-family="Arial, sans-serif" font-size="{self.title_size}" '
                'font-weight="bold" fill="white" text-anchor="middle">'
                f"{escape_markup(line)}</text>"
            )
        if self.status:
            parts.append(
                f'<text x="{cx}" y="{layout.status_baseline}" font-family="Arial, sans-serif" '
                f'font-size="{STATUS_FONT_SIZE}" fill="rgba(255,255,255,0.7)" '
                f'text-anchor="middle">{escape_markup(self.status)}</text>'
            )
        if self.caption:
            parts.append(
                f'<text x="{cx}" y="{layout.caption_baseline}" font-family="Arial, sans-serif" '
                f'font-size="{CAPTION_FONT_SIZE}" fill="rgba(255,255,255,0.8)" '
                f'text-anchor="middle">{escape_markup(self.caption)}</text>'
            )
        parts.append("</svg>")
        return "\n".join(parts)

    def render(self) -> Image.Image:
        """Rasterize the scene with Pillow."""
        layout = self.layout()
        start = ImageColor.getrgb(self.colors[0])
        end = ImageColor.getrgb(self.colors[1])
        size = (self.width, self.height)

        mask = Image.linear_gradient("L").resize(size)
        image = Image.composite(Image.new("RGB", size, end), Image.new("RGB", size, start), mask)

        overlay = Image.new("RGBA", size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        for x in range(10, self.width, 20):
            for y in range(10, self.height, 20):
                draw.ellipse((x - 2, y - 2, x + 2, y + 2), fill=(255, 255, 255, 26))

        if layout.badge_box:
            draw.rounded_rectangle(layout.badge_box, radius=6, fill=(0, 0, 0, 77))
            draw.text(
                layout.badge_text,
                self.badge,
                font=load_font(BADGE_FONT_SIZE, self.font_path),
                fill=(255, 255, 255, 255),
                anchor="ls",
            )

        title_font = load_font(self.title_size, self.font_path, bold=True)
        for line, y in zip(self.title_lines, layout.title_baselines):
            draw.text(
                (layout.center_x, y),
                line,
                font=title_font,
                fill=(255, 255, 255, 255),
                anchor="ms",
            )

        if self.status:
            draw.text(
                (layout.center_x, layout.status_baseline),
                self.status,
                font=load_font(STATUS_FONT_SIZE, self.font_path),
                fill=(255, 255, 255, 179),
                anchor="ms",
            )
        if self.caption:
            draw.text(
                (layout.center_x, layout.caption_baseline),
                self.caption,
                font=load_font(CAPTION_FONT_SIZE, self.font_path),
                fill=(255, 255, 255, 204),
                anchor="ms",
            )

        return Image.alpha_composite(image.convert("RGBA"), overlay).convert("RGB")

def load_font(
    size: int, font_path: Optional[str] = None, bold: bool = False
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a TrueType font, falling back to Pillow's built-in font."""
    candidates = [font_path] if font_path else []
    candidates.append("DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf")
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def wrap_title(
    title: str,
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
    max_width: int,
    max_lines: int = MAX_TITLE_LINES,
) -> list[str]:
    """Greedy word wrap into at most max_lines lines no wider than max_width."""
    lines: list[str] = []
    current = ""
    for word in title.split(" "):
        candidate = f"{current} {word}".strip()
        if current and measure_text(candidate, font) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    if len(lines) > max_lines:
        lines = lines[: max_lines - 1] + [" ".join(lines[max_lines - 1 :])]
    return lines


class ThumbnailSynthesizer:
    """Builds branded, loading and minimal placeholder thumbnails."""

    TITLE_SIZES = (32, 28, 24, 20)

    def __init__(self, settings: Settings):
        self.width = settings.thumbnail_width
        self.height = settings.thumbnail_height
        self.quality = settings.thumbnail_quality
        self.colors = settings.category_colors
        self.max_title_length = settings.title_max_length
        self.font_path = settings.font_path

    def _title_layout(self, title: str) -> tuple[list[str], int]:
        max_width = int(self.width * 0.85)
        lines: list[str] = []
        for size in self.TITLE_SIZES:
            font = load_font(size, self.font_path, bold=True)
            lines = wrap_title(title, font, max_width)
            if all(measure_text(line, font) <= max_width for line in lines):
                return lines, size
        return lines, self.TITLE_SIZES[-1]

    def build_scene(
        self,
        title: str,
        category: str,
        url: str,
        status: str = "",
        colors: Optional[tuple[str, str]] = None,
    ) -> ThumbnailScene:
        display_title = truncate_title(title, self.max_title_length)
        lines, title_size = self._title_layout(display_title)
        badge = collapse_whitespace(category)
        if len(badge) > MAX_BADGE_LENGTH:
            badge = truncate_title(badge, MAX_BADGE_LENGTH)
        return ThumbnailScene(
            width=self.width,
            height=self.height,
            colors=colors or pick_colors(category, self.colors),
            title_lines=lines,
            badge=badge,
            caption=extract_domain(url) if url else "",
            status=status,
            title_size=title_size,
            font_path=self.font_path,
        )

    def render_branded(self, title: str, category: str, url: str) -> bytes:
        """Gradient background, category badge, centred title and domain caption.

        Raises:
            Exception: Any rendering or encoding error (callers wanting a
                guaranteed image use synthesize())
        """
        scene = self.build_scene(title, category, url)
        return encode_image(scene.render(), self.quality)

    def render_loading(self, title: str, category: str) -> bytes:
        """Placeholder shown while a capture is in progress."""
        scene = self.build_scene(title, category, "", status=LOADING_TEXT, colors=LOADING_COLORS)
        return encode_image(scene.render(), self.quality)

    def render_minimal(self, title: str = "") -> bytes:
        """Flat grey with minimal text. Never raises."""
        size = (self.width, self.height)
        try:
            image = Image.new("RGB", size, MINIMAL_COLOR)
            draw = ImageDraw.Draw(image)
            font = ImageFont.load_default()
            draw.text(
                (self.width // 2, self.height // 2),
                MINIMAL_TEXT,
                font=font,
                fill="white",
                anchor="mm",
            )
            return encode_image(image, self.quality)
        except Exception as e:
            logger.warning(
                "synthesis.minimal_text_failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )
        # Text-free flat colour: the last image that can always be produced
        return encode_image(Image.new("RGB", size, MINIMAL_COLOR), self.quality)

    def synthesize(self, title: str, category: str, url: str) -> bytes:
        """Total synthesis: branded thumbnail, or the minimal placeholder on any error."""
        try:
            return self.render_branded(title, category, url)
        except Exception as e:
            logger.warning(
                "synthesis.branded_failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return self.render_minimal(title)
