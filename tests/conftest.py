"""Shared fixtures: temporary storage, in-memory ledger, fake provider."""
from __future__ import annotations

import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

os.environ.setdefault("SPEECHMAGIC_NO_COLOR", "1")

from speechmagic.core.config import Settings  # noqa: E402
from speechmagic.services.generation_service import GenerationService, reset_service  # noqa: E402
from speechmagic.tts.provider import SynthesisClient  # noqa: E402

# A few bytes that look like an MP3 with an ID3 header
FAKE_MP3 = b"ID3\x04\x00\x00\x00\x00\x00\x00" + b"\xff\xfb\x90\x00" * 16

TOKENS = {"token-alice": "alice", "token-bob": "bob"}


def make_settings(tmp_path, **sections) -> Settings:
    raw = {
        "provider": {"api_key": "", "model": "tts-1-hd", "default_voice": "nova"},
        "storage": {"base_dir": str(tmp_path / "audio")},
        "ledger": {"url": "sqlite://"},
        "auth": {"tokens": dict(TOKENS)},
    }
    for name, values in sections.items():
        raw.setdefault(name, {}).update(values)
    return Settings(raw=raw)


def make_fake_openai(content: bytes = FAKE_MP3) -> MagicMock:
    """Object shaped like AsyncOpenAI for audio.speech.create()."""
    client = MagicMock()
    client.audio.speech.create = AsyncMock(return_value=SimpleNamespace(content=content))
    return client


def make_service(settings: Settings, fake_openai=None) -> GenerationService:
    config = settings.get_service_config()
    client = SynthesisClient(config.provider, client=fake_openai or make_fake_openai())
    return GenerationService(settings, client=client)


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    """Keep the process environment and singletons out of each test."""
    for name in ("OPENAI_API_KEY", "SPEECHMAGIC_STORAGE_DIR", "SPEECHMAGIC_DATABASE_URL",
                 "RATE_LIMIT_WINDOW_HOURS", "RATE_LIMIT_REQUESTS", "SPEECHMAGIC_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    yield
    from speechmagic.api.dependencies import set_identity_resolver
    set_identity_resolver(None)
    reset_service()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def fake_openai() -> MagicMock:
    return make_fake_openai()


@pytest.fixture
def service(settings, fake_openai):
    svc = make_service(settings, fake_openai)
    yield svc
    svc.ledger.dispose()


@pytest.fixture
def api_client(service):
    """TestClient wired to the fixture service through dependency_overrides."""
    from fastapi.testclient import TestClient

    from speechmagic.api.dependencies import get_generation_service
    from speechmagic.main import create_app

    app = create_app()
    app.dependency_overrides[get_generation_service] = lambda: service
    with TestClient(app) as client:
        yield client


@pytest.fixture
def alice() -> dict:
    return {"Authorization": "Bearer token-alice"}


@pytest.fixture
def bob() -> dict:
    return {"Authorization": "Bearer token-bob"}
