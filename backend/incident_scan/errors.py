"""Failure taxonomy shared by the extraction pipeline and the incident store.

Every class carries a stable ``code`` label, the HTTP status it maps to and a
short message that is safe to show to an end user. Upstream error bodies are
logged where they are caught and never copied into these messages.
"""

from __future__ import annotations


class IntakeError(Exception):
    """Base class for every failure surfaced to API clients."""

    code: str = "unexpected"
    status_code: int = 500
    user_message: str = "Unexpected server error."

    def __init__(self, message: str | None = None):
        self.message = message or self.user_message
        super().__init__(self.message)

    def to_body(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code}


class InvalidInput(IntakeError):
    code = "invalid_input"
    status_code = 400
    user_message = "The uploaded images are missing, too large or malformed."


class UnsupportedImageFormat(InvalidInput):
    code = "unsupported_image_format"
    user_message = "One of the files is not an image format we can read."


class AuthenticationFailure(IntakeError):
    code = "authentication_failure"
    status_code = 401
    user_message = "The extraction service rejected our credentials. Contact an administrator."


class QuotaExceeded(IntakeError):
    code = "quota_exceeded"
    status_code = 429
    user_message = "The extraction service is busy. Please wait a minute and try again."


class RateLimited(IntakeError):
    code = "rate_limited"
    status_code = 429
    user_message = "Too many extraction requests. Please wait a minute and try again."


class UpstreamUnavailable(IntakeError):
    code = "upstream_unavailable"
    status_code = 503
    user_message = "The extraction service did not respond in time. Please try again."


class ConfigurationError(IntakeError):
    code = "configuration_error"
    status_code = 500
    user_message = "The extraction service is not configured on this server."


class PersistenceFailure(IntakeError):
    code = "persistence_failure"
    status_code = 500
    user_message = "The report could not be saved. Please try again."


class NotFound(IntakeError):
    code = "not_found"
    status_code = 404
    user_message = "The requested incident report does not exist."


class InvalidTransition(IntakeError):
    code = "invalid_transition"
    status_code = 409
    user_message = "This change is not allowed for the report in its current state."
