"""Blind watermarking by least-significant-bit substitution.

The payload is ``WATERMARK_MAGIC + utf8(text) + b"\\x00"``.  Each payload bit,
most significant first, replaces the lowest bit of the blue channel of one
pixel, walking the image in raster order from the top-left corner.  A payload
longer than the image has pixels is cut short without complaint.

Extraction reads at most ``MAX_BYTES`` bytes worth of pixels, looks for the
magic marker anywhere in that window and returns the text that follows it.
"""

from __future__ import annotations

from io import BytesIO

from PIL import Image

from .logging import jlog

WATERMARK_MAGIC = b"WMSK"
MAX_BYTES = 1000
BLUE_CHANNEL = 2
DEFAULT_CHANNELS = 4  # RGBA


def build_payload(text: str) -> bytes:
    """Return the marker, the UTF-8 text and the zero terminator."""

    return WATERMARK_MAGIC + text.encode("utf-8") + b"\x00"


def watermark_capacity(pixel_count: int) -> int:
    """Number of UTF-8 text bytes an image with ``pixel_count`` pixels can hold."""

    return max(0, pixel_count // 8 - len(WATERMARK_MAGIC) - 1)


def _payload_bits(payload: bytes):
    for byte in payload:
        for shift in range(7, -1, -1):
            yield (byte >> shift) & 1


def embed_payload(pixels: bytearray, text: str, *, channels: int = DEFAULT_CHANNELS) -> bytearray:
    """Write ``text`` into ``pixels`` in place and return the same buffer."""

    if not text:
        return pixels
    offsets = range(BLUE_CHANNEL, len(pixels), channels)
    # zip() stops at the last addressable pixel; remaining bits are dropped.
    for offset, bit in zip(offsets, _payload_bits(build_payload(text))):
        pixels[offset] = (pixels[offset] & 0xFE) | bit
    return pixels


def _read_bytes(pixels: bytes | bytearray, channels: int) -> bytes:
    stop = BLUE_CHANNEL + MAX_BYTES * 8 * channels
    blues = pixels[BLUE_CHANNEL:stop:channels]
    out = bytearray()
    for start in range(0, len(blues) - 7, 8):
        value = 0
        for sample in blues[start : start + 8]:
            value = (value << 1) | (sample & 1)
        out.append(value)
    return bytes(out)


def extract_payload(pixels: bytes | bytearray, *, channels: int = DEFAULT_CHANNELS) -> str | None:
    """Return the embedded text, or ``None`` when no marker is present."""

    decoded = _read_bytes(pixels, channels)
    index = decoded.find(WATERMARK_MAGIC)
    if index == -1:
        return None
    body = decoded[index + len(WATERMARK_MAGIC) :]
    end = body.find(b"\x00")
    if end >= 0:
        body = body[:end]
    return body.decode("utf-8", errors="replace")


def add_watermark(image: bytes, text: str | None) -> bytes:
    """Embed ``text`` into an encoded image and return PNG bytes."""

    if not text:
        return image
    with Image.open(BytesIO(image)) as im:
        rgba = im.convert("RGBA")
    pixels = embed_payload(bytearray(rgba.tobytes()), text, channels=DEFAULT_CHANNELS)
    marked = Image.frombytes("RGBA", rgba.size, bytes(pixels))
    out = BytesIO()
    marked.save(out, format="PNG")
    return out.getvalue()


def extract_watermark(image: bytes) -> str | None:
    """Recover the watermark text from an encoded image; ``None`` if absent or unreadable."""

    try:
        with Image.open(BytesIO(image)) as im:
            pixels = im.convert("RGBA").tobytes()
        return extract_payload(pixels, channels=DEFAULT_CHANNELS)
    except Exception as exc:
        jlog("error", event="watermark_extract_error", error=str(exc))
        return None


__all__ = [
    "MAX_BYTES",
    "WATERMARK_MAGIC",
    "add_watermark",
    "build_payload",
    "embed_payload",
    "extract_payload",
    "extract_watermark",
    "watermark_capacity",
]
