from __future__ import annotations

import asyncio

from shot_coach.config.settings import SessionConfig
from shot_coach.session.fallback_client import FallbackClient
from shot_coach.session.models import ShotOutcome
from shot_coach.session.parsing import GENERIC_TIP


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    def generate_content(self, contents, request_options=None):
        self.calls.append((contents, request_options))
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text)


def test_fallback_parses_model_reply():
    model = FakeModel('```json\n{"outcome": "make", "tip": "Great arc"}\n```')
    client = FallbackClient(SessionConfig(request_timeout_s=12.0), model=model)
    result = asyncio.run(client.analyze(b"jpeg", last_tip="Elbow in"))

    assert result.outcome is ShotOutcome.MAKE
    assert result.tip == "Great arc"
    assert result.source == "fallback"

    contents, options = model.calls[0]
    prompt, image = contents
    assert "Don't repeat this previous tip: 'Elbow in'" in prompt
    assert image == {"mime_type": "image/jpeg", "data": b"jpeg"}
    assert options == {"timeout": 12.0}


def test_fallback_errors_become_a_default_miss():
    client = FallbackClient(SessionConfig(), model=FakeModel(error=TimeoutError("deadline")))
    result = asyncio.run(client.analyze(b"jpeg"))
    assert result.outcome is ShotOutcome.MISS
    assert result.tip == GENERIC_TIP
    assert result.source == "fallback"


def test_fallback_without_key_is_unavailable():
    client = FallbackClient(SessionConfig(api_key="YOUR_GEMINI_API_KEY_HERE"))
    assert not client.available
    result = asyncio.run(client.analyze(b"jpeg"))
    assert result.outcome is ShotOutcome.MISS
