import io

import fitz
import pytest
from PIL import Image

from conftest import make_image
from incident_scan.errors import InvalidInput, UnsupportedImageFormat
from incident_scan.services.image_normalizer import (
    decode_data_uri,
    normalize_image,
    render_pdf_pages,
    scaled_size,
)


def test_scaled_size_caps_longer_edge():
    assert scaled_size(3000, 4000, 2048) == (1536, 2048)
    assert scaled_size(4000, 3000, 2048) == (2048, 1536)


def test_scaled_size_never_upscales():
    assert scaled_size(800, 600, 2048) == (800, 600)
    assert scaled_size(2048, 100, 2048) == (2048, 100)


def test_large_photo_is_downscaled_to_jpeg():
    result = normalize_image(make_image(3000, 4000), max_edge=2048, quality=70)

    assert result.media_type == "image/jpeg"
    assert result.height == 2048
    assert abs(result.width - 1536) <= 1
    with Image.open(io.BytesIO(result.data)) as img:
        assert img.format == "JPEG"
        assert img.size == (result.width, result.height)


def test_small_png_with_alpha_becomes_rgb_jpeg():
    result = normalize_image(make_image(640, 480, fmt="PNG", mode="RGBA"))

    assert (result.width, result.height) == (640, 480)
    with Image.open(io.BytesIO(result.data)) as img:
        assert img.mode == "RGB"


def test_undecodable_bytes_raise_unsupported_format():
    with pytest.raises(UnsupportedImageFormat):
        normalize_image(b"definitely not an image")


def test_data_uri_round_trip():
    jpeg = make_image(10, 10)
    normalized = normalize_image(jpeg)

    assert decode_data_uri(normalized.data_uri) == normalized.data
    assert normalized.data_uri.startswith("data:image/jpeg;base64,")


@pytest.mark.parametrize(
    "uri",
    [
        "not a data uri",
        "data:image/jpeg,plain-text-payload",
        "data:image/jpeg;base64,@@@not-base64@@@",
    ],
)
def test_bad_data_uri_is_invalid_input(uri):
    with pytest.raises(InvalidInput):
        decode_data_uri(uri)


def test_pdf_pages_are_rendered_one_image_each():
    doc = fitz.open()
    for _ in range(2):
        page = doc.new_page(width=200, height=300)
        page.insert_text((20, 40), "Parte de incendio")
    pdf = doc.tobytes()
    doc.close()

    pages = render_pdf_pages(pdf, zoom=2.0)

    assert len(pages) == 2
    with Image.open(io.BytesIO(pages[0])) as img:
        assert img.size == (400, 600)


def test_corrupt_pdf_raises_unsupported_format():
    with pytest.raises(UnsupportedImageFormat):
        render_pdf_pages(b"this is not a pdf document")
