"""Image codec: decode, cover-resize and JPEG-encode thumbnails.

Pure functions with no network or process dependencies. Every producer
(captured screenshots, synthesized placeholders) goes through this layer so
all artifacts share one canonical format.
"""

from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from snapthumb.services.exceptions import EncodeError

DEFAULT_QUALITY = 85
OUTPUT_FORMAT = "JPEG"
OUTPUT_EXTENSION = "jpg"

# Horizontally centred, anchored to the top edge (keeps above-the-fold content).
TOP_ANCHOR = (0.5, 0.0)


def _decode(raw_bytes: bytes) -> Image.Image:
    if not raw_bytes:
        raise EncodeError("Cannot decode empty image data")
    try:
        image = Image.open(BytesIO(raw_bytes))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise EncodeError(f"Cannot decode image data: {e}") from e
    return ImageOps.exif_transpose(image)


def _to_rgb(image: Image.Image) -> Image.Image:
    """Flatten transparency onto white; JPEG has no alpha channel."""
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def cover(image: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to fill width x height, cropping overflow from the bottom and sides."""
    if width <= 0 or height <= 0:
        raise EncodeError(f"Invalid target size {width}x{height}")
    return ImageOps.fit(
        image,
        (width, height),
        method=Image.Resampling.LANCZOS,
        centering=TOP_ANCHOR,
    )


def encode_image(image: Image.Image, quality: int = DEFAULT_QUALITY) -> bytes:
    """Encode an in-memory image into the canonical output format.

    Raises:
        EncodeError: If Pillow cannot encode the image
    """
    buffer = BytesIO()
    try:
        _to_rgb(image).save(
            buffer,
            format=OUTPUT_FORMAT,
            quality=quality,
            optimize=True,
            progressive=True,
        )
    except (OSError, ValueError) as e:
        raise EncodeError(f"Cannot encode image: {e}") from e
    return buffer.getvalue()


def normalize(
    raw_bytes: bytes,
    width: int,
    height: int,
    quality: int = DEFAULT_QUALITY,
) -> bytes:
    """Resize raw image bytes to the canonical thumbnail format.

    Args:
        raw_bytes: Any Pillow-readable raster (PNG screenshot, JPEG, ...)
        width: Target width in pixels
        height: Target height in pixels
        quality: JPEG quality (1-95)

    Returns:
        JPEG bytes of exactly width x height

    Raises:
        EncodeError: If the input cannot be decoded or the output cannot be encoded
    """
    image = _decode(raw_bytes)
    resized = cover(_to_rgb(image), width, height)
    return encode_image(resized, quality)


def image_size(data: bytes) -> tuple[int, int]:
    """Return (width, height) of encoded image data.

    Raises:
        EncodeError: If the data is not a decodable image
    """
    return _decode(data).size


def is_valid_image(data: bytes) -> bool:
    try:
        _decode(data)
    except EncodeError:
        return False
    return True
