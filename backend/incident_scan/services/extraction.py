"""Claude AI extraction service: form photos to structured JSON.

Sends every normalized page of one paper form to Claude's vision API in a
single message together with the versioned field specification, and parses
the JSON answer. One call per extraction: no retries, no per-image calls, no
verification pass. Upstream failures are mapped onto the error taxonomy so
that raw provider messages never reach API clients.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

import anthropic
from loguru import logger

from incident_scan.config import Settings
from incident_scan.errors import (
    AuthenticationFailure,
    ConfigurationError,
    IntakeError,
    InvalidInput,
    QuotaExceeded,
    UpstreamUnavailable,
)
from incident_scan.models.extraction import ExtractionParseFailure, ExtractionSuccess
from incident_scan.prompts.extraction_prompt import FIELD_SPECS
from incident_scan.services.image_normalizer import NormalizedImage


# Opening fence at the start of a line, closing fence on its own line. JSON
# strings cannot hold a raw newline, so backticks inside values never match.
_FENCE_BLOCK = re.compile(r"(?:.*?\n)?```(?:json)?[ \t]*\n(.*?)\n[ \t]*```.*", re.DOTALL)
_FENCE_INLINE = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


def strip_code_fences(raw_text: str) -> str:
    """Remove a markdown code fence wrapped around a JSON answer, if any.

    Only an outer fence is removed; backticks inside the JSON are left alone.
    """
    text = raw_text.strip()

    match = _FENCE_BLOCK.fullmatch(text) or _FENCE_INLINE.search(text)
    if match:
        return match.group(1).strip()
    return text


def parse_json_response(raw_text: str) -> dict[str, Any]:
    """Extract the JSON object from Claude's response, handling code fences.

    A bare JSON answer is parsed as is; fences are only stripped when that fails.

    Raises:
        ValueError: the unwrapped text is not a JSON object
            (``json.JSONDecodeError`` is a ``ValueError``).
    """
    try:
        data = json.loads(raw_text)
    except ValueError:
        data = json.loads(strip_code_fences(raw_text))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def is_blank(value: Any) -> bool:
    """True when ``value`` holds no written data at any depth."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, dict):
        return all(is_blank(v) for v in value.values())
    if isinstance(value, list):
        return all(is_blank(v) for v in value)
    return False


def map_upstream_error(exc: Exception) -> IntakeError:
    """Translate an Anthropic SDK exception into the error taxonomy."""
    if isinstance(exc, anthropic.APIStatusError):
        status = exc.status_code
        if status in (401, 403):
            return AuthenticationFailure()
        if status == 429:
            return QuotaExceeded()
        if status in (400, 413, 422):
            return InvalidInput()
        return UpstreamUnavailable()
    # APIConnectionError and APITimeoutError land here
    return UpstreamUnavailable()


class ExtractionService:
    """Runs one extraction request against Claude.

    The Anthropic client is injected so that one instance can be shared for
    the lifetime of the process (and replaced by a stub in tests).
    """

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        max_tokens: int = 4096,
        timeout_seconds: float = 90.0,
        max_images: int = 5,
    ) -> None:
        self._client = client
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.max_images = max_images

    def _build_content(self, images: list[NormalizedImage], prompt: str) -> list[dict]:
        content: list[dict] = []
        for image in images:
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": image.media_type,
                    "data": image.base64,
                },
            })

        content.append({
            "type": "text",
            "text": prompt,
        })
        return content

    async def _call_model(self, content: list[dict]) -> Any:
        try:
            return await asyncio.wait_for(
                self._client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=[{"role": "user", "content": content}],
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error("Claude API request timed out after {}s", self.timeout_seconds)
            raise UpstreamUnavailable() from e
        except anthropic.APIError as e:
            logger.error("Claude API error: {}", e)
            raise map_upstream_error(e) from e

    async def extract(
        self,
        images: list[NormalizedImage],
        spec_version: str,
    ) -> ExtractionSuccess | ExtractionParseFailure:
        """Extract the fields of ``spec_version`` from the photos of one form.

        1. Validates the image count and spec version (before any upstream cost)
        2. Sends all images + the field specification in a single message
        3. Strips code fences and parses the JSON answer

        Returns an ``ExtractionParseFailure`` instead of raising when the answer
        is not a JSON object.
        """
        if not images:
            raise InvalidInput("At least one image of the form is required.")
        if len(images) > self.max_images:
            raise InvalidInput(f"At most {self.max_images} images can be sent per form.")
        prompt = FIELD_SPECS.get(spec_version)
        if prompt is None:
            raise InvalidInput(f"Unknown field specification version: {spec_version}.")

        logger.info(
            "Sending {} image(s) to Claude (model: {}, spec: {})",
            len(images),
            self.model,
            spec_version,
        )
        response = await self._call_model(self._build_content(images, prompt))

        raw_text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        logger.debug("Claude response length: {} chars", len(raw_text))
        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                "Token usage — input: {}, output: {}",
                usage.input_tokens,
                usage.output_tokens,
            )

        try:
            data = parse_json_response(raw_text)
        except ValueError as e:
            logger.warning("Failed to parse Claude response as JSON: {}", e)
            logger.debug("Raw response:\n{}", raw_text[:2000])
            note = None
            if getattr(response, "stop_reason", None) == "max_tokens":
                note = "The form has more content than fits in one answer. Try fewer pages per extraction."
            failure = ExtractionParseFailure(schema_version=spec_version, image_count=len(images))
            return failure.model_copy(update={"note": note}) if note else failure

        empty = is_blank(data)
        logger.info(
            "Extraction complete — {} top-level field(s), empty={}",
            len(data),
            empty,
        )
        return ExtractionSuccess(
            schema_version=spec_version,
            fields=data,
            image_count=len(images),
            is_empty=empty,
            note="No handwritten data was found on the form." if empty else None,
        )


def build_extraction_service(settings: Settings) -> ExtractionService:
    """Construct the process-wide extraction service from settings.

    Raises:
        ConfigurationError: no Anthropic API key is configured.
    """
    if not settings.anthropic_api_key:
        logger.error("ANTHROPIC_API_KEY is not configured")
        raise ConfigurationError()

    client = anthropic.AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        max_retries=0,
        timeout=settings.extraction_timeout_seconds,
    )
    return ExtractionService(
        client,
        model=settings.anthropic_model,
        max_tokens=settings.extraction_max_tokens,
        timeout_seconds=settings.extraction_timeout_seconds,
        max_images=settings.max_images_per_request,
    )
