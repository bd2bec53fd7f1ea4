from fastapi import APIRouter, Depends, File, Form, UploadFile
from loguru import logger

from incident_scan.config import Settings
from incident_scan.dependencies import (
    client_identity,
    get_extraction_service,
    get_rate_limiter,
    get_settings,
)
from incident_scan.errors import InvalidInput
from incident_scan.models.extraction import ExtractionOutcome
from incident_scan.models.incident import InlineExtractionRequest
from incident_scan.services.extraction import ExtractionService
from incident_scan.services.image_normalizer import (
    NormalizedImage,
    decode_data_uri,
    normalize_image,
    render_pdf_pages,
)
from incident_scan.services.rate_limit import FixedWindowRateLimiter

router = APIRouter(prefix="/api", tags=["extraction"])


def _is_pdf(file: UploadFile) -> bool:
    if file.content_type == "application/pdf":
        return True
    return bool(file.filename and file.filename.lower().endswith(".pdf"))


def _check_size(raw: bytes, settings: Settings, label: str) -> None:
    if len(raw) == 0:
        raise InvalidInput(f"{label} is empty.")
    if len(raw) > settings.max_image_bytes:
        raise InvalidInput(
            f"{label} is too large. The maximum is {settings.max_image_bytes // (1024 * 1024)} MB."
        )


def _normalize_all(raw_images: list[bytes], settings: Settings) -> list[NormalizedImage]:
    if not raw_images:
        raise InvalidInput("At least one image of the form is required.")
    if len(raw_images) > settings.max_images_per_request:
        raise InvalidInput(f"At most {settings.max_images_per_request} images can be sent per form.")

    return [
        normalize_image(raw, max_edge=settings.image_max_edge, quality=settings.image_jpeg_quality)
        for raw in raw_images
    ]


@router.post("/extract", response_model=ExtractionOutcome)
async def extract_form(
    files: list[UploadFile] = File(...),
    spec_version: str | None = Form(default=None),
    identity: str = Depends(client_identity),
    settings: Settings = Depends(get_settings),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
    service: ExtractionService = Depends(get_extraction_service),
):
    """Upload photos (or a scanned PDF) of one incident form and extract its fields."""
    limiter.hit(identity)

    raw_images: list[bytes] = []
    for file in files:
        raw = await file.read()
        label = file.filename or "Uploaded file"
        _check_size(raw, settings, label)
        if _is_pdf(file):
            raw_images.extend(render_pdf_pages(raw, zoom=settings.pdf_render_zoom))
        else:
            raw_images.append(raw)

    logger.info("Received {} file(s), {} image(s) from {}", len(files), len(raw_images), identity)
    images = _normalize_all(raw_images, settings)
    return await service.extract(images, spec_version or settings.field_spec_version)


@router.post("/extract/inline", response_model=ExtractionOutcome)
async def extract_inline(
    req: InlineExtractionRequest,
    identity: str = Depends(client_identity),
    settings: Settings = Depends(get_settings),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
    service: ExtractionService = Depends(get_extraction_service),
):
    """Same as ``/extract`` for images captured in the browser as data URIs."""
    limiter.hit(identity)

    if len(req.images) > settings.max_images_per_request:
        raise InvalidInput(f"At most {settings.max_images_per_request} images can be sent per form.")

    raw_images: list[bytes] = []
    for n, uri in enumerate(req.images, 1):
        raw = decode_data_uri(uri)
        _check_size(raw, settings, f"Image {n}")
        raw_images.append(raw)

    logger.info("Received {} inline image(s) from {}", len(raw_images), identity)
    images = _normalize_all(raw_images, settings)
    return await service.extract(images, req.spec_version or settings.field_spec_version)
