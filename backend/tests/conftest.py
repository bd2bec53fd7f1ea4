from __future__ import annotations

import asyncio
import io
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from incident_scan.config import Settings
from incident_scan.db.session import build_engine, build_session_factory, create_tables
from incident_scan.main import create_app
from incident_scan.services.extraction import ExtractionService


def make_image(width: int, height: int, fmt: str = "JPEG", mode: str = "RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), color="white" if mode == "RGB" else None).save(buf, format=fmt)
    return buf.getvalue()


class FakeMessages:
    """Stands in for ``AsyncAnthropic().messages``."""

    def __init__(self, text: str = "{}", error: Exception | None = None, delay: float = 0.0,
                 stop_reason: str = "end_turn"):
        self.text = text
        self.error = error
        self.delay = delay
        self.stop_reason = stop_reason
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text=self.text)],
            usage=SimpleNamespace(input_tokens=1200, output_tokens=300),
            stop_reason=self.stop_reason,
        )


class FakeAnthropic:
    def __init__(self, messages: FakeMessages):
        self.messages = messages


@pytest.fixture()
def fake_messages() -> FakeMessages:
    return FakeMessages()


@pytest.fixture()
def extraction_service(fake_messages) -> ExtractionService:
    return ExtractionService(FakeAnthropic(fake_messages), model="test-model", timeout_seconds=5)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        anthropic_api_key="test-key",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        rate_limit_requests=50,
    )


@pytest.fixture()
def client(settings, extraction_service):
    app = create_app(settings)
    app.state.extraction_service = extraction_service
    with TestClient(app) as c:
        yield c


@pytest.fixture()
async def session(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await create_tables(engine)
    factory = build_session_factory(engine)
    async with factory() as s:
        yield s
    await engine.dispose()
