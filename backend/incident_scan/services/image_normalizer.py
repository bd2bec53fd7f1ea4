"""Image normalization: camera photos and scans to bounded JPEG payloads.

Photos of paper forms come straight off phone cameras (12+ MP, rotated via
EXIF, sometimes HEIC-sized). Each one is decoded with Pillow, turned upright,
scaled so its longer edge fits ``max_edge`` and re-encoded as JPEG, which keeps
handwriting legible for the vision model while bounding request size.
"""

from __future__ import annotations

import base64
import binascii
import io
from dataclasses import dataclass

import fitz  # PyMuPDF
from loguru import logger
from PIL import Image, ImageOps, UnidentifiedImageError

from incident_scan.errors import InvalidInput, UnsupportedImageFormat

JPEG_MEDIA_TYPE = "image/jpeg"


@dataclass(frozen=True)
class NormalizedImage:
    """A re-encoded image ready to be attached to an extraction request."""

    media_type: str
    data: bytes
    width: int
    height: int

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode()

    @property
    def data_uri(self) -> str:
        return f"data:{self.media_type};base64,{self.base64}"


def scaled_size(width: int, height: int, max_edge: int) -> tuple[int, int]:
    """Return (width, height) with the longer edge capped at ``max_edge``.

    Never upscales. The shorter edge is rounded to the nearest pixel.
    """
    longer = max(width, height)
    if longer <= max_edge:
        return width, height
    scale = max_edge / longer
    if width >= height:
        return max_edge, max(1, round(height * scale))
    return max(1, round(width * scale)), max_edge


def normalize_image(raw: bytes, *, max_edge: int = 2048, quality: int = 70) -> NormalizedImage:
    """Decode, orient, downscale and re-encode one image as JPEG.

    Raises:
        UnsupportedImageFormat: Pillow could not decode the bytes.
    """
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            source_format = img.format
            upright = ImageOps.exif_transpose(img)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning("Image decode failed ({} bytes): {}", len(raw), e)
        raise UnsupportedImageFormat() from e

    if upright.mode != "RGB":
        upright = upright.convert("RGB")

    target = scaled_size(upright.width, upright.height, max_edge)
    if target != upright.size:
        upright = upright.resize(target, Image.Resampling.LANCZOS)

    buf = io.BytesIO()
    upright.save(buf, format="JPEG", quality=quality, optimize=True)
    data = buf.getvalue()

    logger.debug(
        "Normalized {} image — {}x{} px, {} → {} bytes",
        source_format,
        upright.width,
        upright.height,
        len(raw),
        len(data),
    )
    return NormalizedImage(
        media_type=JPEG_MEDIA_TYPE,
        data=data,
        width=upright.width,
        height=upright.height,
    )


def decode_data_uri(uri: str) -> bytes:
    """Return the bytes of a ``data:<type>;base64,<payload>`` URI.

    Raises:
        InvalidInput: the string is not a base64 data URI.
    """
    if not isinstance(uri, str) or not uri.startswith("data:"):
        raise InvalidInput("Images must be sent as base64 data URIs.")

    header, sep, payload = uri.partition(",")
    if not sep or not header.endswith(";base64"):
        raise InvalidInput("Images must be sent as base64 data URIs.")

    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput("An image could not be decoded.") from e


def render_pdf_pages(pdf_bytes: bytes, *, zoom: float = 2.0) -> list[bytes]:
    """Rasterize every page of a scanned PDF form to PNG bytes.

    Renders at ``zoom``× resolution for better readability by the vision model.

    Raises:
        UnsupportedImageFormat: PyMuPDF could not open the document.
    """
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except (RuntimeError, ValueError) as e:  # FileDataError is a RuntimeError
        logger.warning("PDF decode failed ({} bytes): {}", len(pdf_bytes), e)
        raise UnsupportedImageFormat("The PDF file could not be read.") from e

    if doc.page_count == 0:
        doc.close()
        raise UnsupportedImageFormat("The PDF file has no pages.")

    pages: list[bytes] = []
    try:
        for page_num, page in enumerate(doc):
            pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
            pages.append(pix.tobytes("png"))
            logger.debug(
                "Rendered page {}/{} — {}x{} px",
                page_num + 1,
                len(doc),
                pix.width,
                pix.height,
            )
    finally:
        doc.close()

    logger.info("Converted PDF to {} page image(s)", len(pages))
    return pages
