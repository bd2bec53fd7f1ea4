import json

import anthropic
import httpx
import pytest

from conftest import FakeAnthropic, FakeMessages, make_image
from incident_scan.config import Settings
from incident_scan.errors import (
    AuthenticationFailure,
    ConfigurationError,
    InvalidInput,
    QuotaExceeded,
    UpstreamUnavailable,
)
from incident_scan.models.extraction import ExtractionParseFailure, ExtractionSuccess
from incident_scan.services.extraction import (
    ExtractionService,
    build_extraction_service,
    is_blank,
    map_upstream_error,
    parse_json_response,
    strip_code_fences,
)
from incident_scan.services.image_normalizer import normalize_image

MESSAGES_URL = "https://api.anthropic.com/v1/messages"


def _status_error(cls, status: int, message: str = "upstream said no"):
    response = httpx.Response(status, request=httpx.Request("POST", MESSAGES_URL))
    return cls(message, response=response, body=None)


def _service(messages: FakeMessages, **kwargs) -> ExtractionService:
    return ExtractionService(FakeAnthropic(messages), model="test-model", **kwargs)


@pytest.fixture(scope="module")
def page():
    return normalize_image(make_image(400, 600))


FORM = {"act_number": "1234", "date": "05/03/2024", "vehicles": []}


# -- response parsing ---------------------------------------------------------


@pytest.mark.parametrize(
    "wrapped",
    [
        json.dumps(FORM),
        f"```json\n{json.dumps(FORM)}\n```",
        f"```\n{json.dumps(FORM)}\n```",
        f"Here is the data:\n```json\n{json.dumps(FORM, indent=2)}\n```\nDone.",
    ],
)
def test_fenced_and_bare_answers_parse_the_same(wrapped):
    assert parse_json_response(wrapped) == FORM


BACKTICK_FORM = {"act_number": "88", "observations": "marca ``` en el margen", "vehicles": []}


@pytest.mark.parametrize(
    "wrapped",
    [
        json.dumps(BACKTICK_FORM),
        f"```json\n{json.dumps(BACKTICK_FORM)}\n```",
        f"```\n{json.dumps(BACKTICK_FORM, indent=2)}\n```",
        f"Resultado:\n```json\n{json.dumps(BACKTICK_FORM)}\n```\n",
        f"```json {json.dumps(BACKTICK_FORM)} ```",
    ],
)
def test_backticks_inside_values_survive_fence_stripping(wrapped):
    assert parse_json_response(wrapped) == BACKTICK_FORM


async def test_answer_with_backticks_is_not_a_parse_failure(page):
    messages = FakeMessages(text=f"```json\n{json.dumps(BACKTICK_FORM)}\n```")
    result = await _service(messages).extract([page], "v2")

    assert isinstance(result, ExtractionSuccess)
    assert result.fields == BACKTICK_FORM


def test_strip_code_fences_leaves_bare_text_alone():
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


@pytest.mark.parametrize("text", ["I cannot read this form.", "[1, 2, 3]", '"just a string"', ""])
def test_parse_json_response_rejects_non_objects(text):
    with pytest.raises(ValueError):
        parse_json_response(text)


def test_is_blank():
    assert is_blank({"a": None, "b": "  ", "c": [], "d": {"e": None}, "f": [{"g": None}]})
    assert not is_blank({"a": None, "b": "x"})
    assert not is_blank({"count": 0})


# -- upstream error mapping ---------------------------------------------------


@pytest.mark.parametrize(
    "exc, expected",
    [
        (_status_error(anthropic.AuthenticationError, 401), AuthenticationFailure),
        (_status_error(anthropic.PermissionDeniedError, 403), AuthenticationFailure),
        (_status_error(anthropic.RateLimitError, 429), QuotaExceeded),
        (_status_error(anthropic.BadRequestError, 400), InvalidInput),
        (_status_error(anthropic.InternalServerError, 500), UpstreamUnavailable),
        (_status_error(anthropic.APIStatusError, 529), UpstreamUnavailable),
        (anthropic.APIConnectionError(request=httpx.Request("POST", MESSAGES_URL)), UpstreamUnavailable),
    ],
)
def test_map_upstream_error(exc, expected):
    mapped = map_upstream_error(exc)

    assert type(mapped) is expected
    assert "upstream said no" not in mapped.message


# -- ExtractionService.extract ------------------------------------------------


async def test_extract_sends_all_pages_in_one_call(page):
    messages = FakeMessages(text=f"```json\n{json.dumps(FORM)}\n```")
    result = await _service(messages).extract([page, page, page], "v2")

    assert isinstance(result, ExtractionSuccess)
    assert result.fields == FORM
    assert result.image_count == 3
    assert result.is_empty is False

    assert len(messages.calls) == 1
    content = messages.calls[0]["messages"][0]["content"]
    assert [block["type"] for block in content] == ["image", "image", "image", "text"]
    assert content[0]["source"]["media_type"] == "image/jpeg"
    assert "schema" in content[-1]["text"]


async def test_extract_uses_requested_field_spec(page):
    messages = FakeMessages(text="{}")
    await _service(messages).extract([page], "v1")
    v1_prompt = messages.calls[0]["messages"][0]["content"][-1]["text"]

    await _service(messages).extract([page], "v2")
    v2_prompt = messages.calls[1]["messages"][0]["content"][-1]["text"]

    assert v1_prompt != v2_prompt
    assert "attended_by_132" in v1_prompt
    assert "insurance" in v2_prompt


async def test_unparseable_answer_is_a_parse_failure_not_an_error(page):
    result = await _service(FakeMessages(text="Sorry, the photo is too blurry.")).extract([page], "v2")

    assert isinstance(result, ExtractionParseFailure)
    assert result.outcome == "parse_failure"
    assert result.fields == {}
    assert result.is_empty is True


async def test_truncated_answer_gets_a_specific_note(page):
    messages = FakeMessages(text='{"act_number": "12', stop_reason="max_tokens")
    result = await _service(messages).extract([page], "v2")

    assert isinstance(result, ExtractionParseFailure)
    assert "fewer pages" in result.note


async def test_all_null_answer_is_an_empty_success(page):
    messages = FakeMessages(text=json.dumps({"act_number": None, "vehicles": [], "insurance": {"company": None}}))
    result = await _service(messages).extract([page], "v2")

    assert isinstance(result, ExtractionSuccess)
    assert result.is_empty is True
    assert result.note


@pytest.mark.parametrize("count", [0, 6])
async def test_image_count_checked_before_upstream_call(page, count):
    messages = FakeMessages()
    with pytest.raises(InvalidInput):
        await _service(messages, max_images=5).extract([page] * count, "v2")
    assert messages.calls == []


async def test_unknown_spec_version_is_invalid_input(page):
    messages = FakeMessages()
    with pytest.raises(InvalidInput):
        await _service(messages).extract([page], "v7")
    assert messages.calls == []


async def test_upstream_quota_maps_to_quota_exceeded(page):
    messages = FakeMessages(error=_status_error(anthropic.RateLimitError, 429))
    with pytest.raises(QuotaExceeded):
        await _service(messages).extract([page], "v2")


async def test_upstream_credentials_map_to_authentication_failure(page):
    messages = FakeMessages(error=_status_error(anthropic.AuthenticationError, 401))
    with pytest.raises(AuthenticationFailure):
        await _service(messages).extract([page], "v2")


async def test_slow_upstream_times_out(page):
    messages = FakeMessages(text="{}", delay=1.0)
    with pytest.raises(UpstreamUnavailable):
        await _service(messages, timeout_seconds=0.05).extract([page], "v2")


def test_missing_api_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        build_extraction_service(Settings(_env_file=None, anthropic_api_key=""))


def test_service_built_from_settings():
    service = build_extraction_service(
        Settings(_env_file=None, anthropic_api_key="sk-test", anthropic_model="claude-x", max_images_per_request=3)
    )

    assert service.model == "claude-x"
    assert service.max_images == 3
