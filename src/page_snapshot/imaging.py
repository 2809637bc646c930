"""Screenshot post-processing: watermarking, background trim, resize and compression."""

from __future__ import annotations

import hashlib
import re
from io import BytesIO

from PIL import Image, ImageChops, ImageColor

from .watermark import add_watermark

HEX_COLOR_RE = re.compile(r"^([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
OUTPUT_WIDTH = 1080
PALETTE_COLORS = 256
TRIM_THRESHOLD = 10


def is_valid_hex_color(value: object) -> bool:
    """True for ``abc`` / ``aabbcc`` style colours (no leading ``#``)."""

    return isinstance(value, str) and bool(HEX_COLOR_RE.match(value))


def trim_background(img: Image.Image, color: str, *, threshold: int = TRIM_THRESHOLD) -> Image.Image:
    """Crop away the border whose pixels stay within ``threshold`` of ``color``."""

    rgb = img.convert("RGB")
    bg = Image.new("RGB", rgb.size, ImageColor.getrgb("#" + color))
    diff = ImageChops.difference(rgb, bg)
    r, g, b = diff.split()
    mask = ImageChops.lighter(ImageChops.lighter(r, g), b)
    bbox = mask.point(lambda v: 255 if v > threshold else 0).getbbox()
    return img.crop(bbox) if bbox else img


def _resize_to_width(img: Image.Image, width: int) -> Image.Image:
    if img.width == width:
        return img
    height = max(1, round(img.height * width / img.width))
    return img.resize((width, height), resample=Image.Resampling.LANCZOS)


def process_image(image: bytes, trim_color: str | None, watermark: str | None) -> bytes:
    """Watermark the raw screenshot, then trim/resize/compress when a trim colour is set."""

    result = image
    if watermark:
        result = add_watermark(result, watermark)

    if trim_color:
        with Image.open(BytesIO(result)) as im:
            im = trim_background(im.convert("RGBA"), trim_color)
            im = _resize_to_width(im, OUTPUT_WIDTH)
            im = im.convert("RGB").quantize(colors=PALETTE_COLORS)
            out = BytesIO()
            im.save(out, format="PNG", optimize=True)
            result = out.getvalue()

    return result


def digest_image(png_bytes: bytes) -> tuple[str, int, int]:
    """Return the sha256 hex digest and pixel dimensions of an encoded image."""

    with Image.open(BytesIO(png_bytes)) as im:
        width, height = im.size
    return hashlib.sha256(png_bytes).hexdigest(), width, height


__all__ = [
    "HEX_COLOR_RE",
    "OUTPUT_WIDTH",
    "digest_image",
    "is_valid_hex_color",
    "process_image",
    "trim_background",
]
