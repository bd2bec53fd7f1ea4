"""Request-scoped access to the process-wide collaborators kept on ``app.state``."""

from __future__ import annotations

from fastapi import Request

from incident_scan.config import Settings
from incident_scan.services.extraction import ExtractionService, build_extraction_service
from incident_scan.services.rate_limit import FixedWindowRateLimiter


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_extraction_service(request: Request) -> ExtractionService:
    """Return the shared extraction service, building it on first use.

    A missing API key surfaces here as ``ConfigurationError`` on each call
    rather than preventing the process from starting.
    """
    service = getattr(request.app.state, "extraction_service", None)
    if service is None:
        service = build_extraction_service(request.app.state.settings)
        request.app.state.extraction_service = service
    return service


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.rate_limiter


def client_identity(request: Request) -> str:
    """Caller identity for rate limiting: the remote host.

    ``X-Client-Id`` is a caller-supplied header, so it is only honoured when
    ``rate_limit_trust_client_id`` says a trusted proxy sets it.
    """
    host = request.client.host if request.client else "anonymous"
    if not request.app.state.settings.rate_limit_trust_client_id:
        return host
    client_id = request.headers.get("x-client-id", "").strip()
    return client_id[:128] if client_id else host
