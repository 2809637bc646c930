from io import BytesIO

from page_snapshot.imaging import OUTPUT_WIDTH, digest_image, is_valid_hex_color, process_image, trim_background
from page_snapshot.watermark import extract_watermark
from PIL import Image


def _png_bytes(width: int = 40, height: int = 20, border: int = 5, bg=(255, 255, 255)) -> bytes:
    img = Image.new("RGB", (width, height), bg)
    for x in range(border, width - border):
        for y in range(border, height - border):
            img.putpixel((x, y), (200, 0, 0))
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _size(png: bytes) -> tuple[int, int]:
    with Image.open(BytesIO(png)) as im:
        return im.size


def test_hex_color_validation():
    assert is_valid_hex_color("fff")
    assert is_valid_hex_color("A0b1C2")
    assert not is_valid_hex_color("zz")
    assert not is_valid_hex_color("#ffffff")
    assert not is_valid_hex_color("ffff")
    assert not is_valid_hex_color(None)


def test_trim_background_crops_matching_border():
    with Image.open(BytesIO(_png_bytes(border=5))) as im:
        trimmed = trim_background(im, "fff")
    assert trimmed.size == (30, 10)


def test_trim_background_tolerates_near_matches():
    with Image.open(BytesIO(_png_bytes(border=4, bg=(250, 252, 255)))) as im:
        trimmed = trim_background(im, "ffffff")
    assert trimmed.size == (32, 12)


def test_trim_background_leaves_uniform_image_untouched():
    img = Image.new("RGB", (12, 7), (255, 255, 255))
    assert trim_background(img, "ffffff").size == (12, 7)


def test_process_image_without_trim_or_watermark_is_passthrough():
    original = _png_bytes()
    assert process_image(original, "", None) == original


def test_process_image_trims_and_resizes_to_output_width():
    out = process_image(_png_bytes(border=5), "ffffff", None)
    assert _size(out) == (OUTPUT_WIDTH, OUTPUT_WIDTH // 3)
    with Image.open(BytesIO(out)) as im:
        assert im.mode == "P"


def test_process_image_watermarks_before_anything_else():
    out = process_image(_png_bytes(width=100, height=100), "", "run-42")
    assert extract_watermark(out) == "run-42"


def test_digest_image_reports_hash_and_size():
    png = _png_bytes()
    sha, width, height = digest_image(png)
    assert len(sha) == 64
    assert (width, height) == (40, 20)
