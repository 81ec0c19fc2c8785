"""Shared test fixtures for aipipe."""

from __future__ import annotations

import json

import pytest
from loguru import logger

from aipipe.core.config import ConfigContext
from aipipe.core.llm.types import Response, StreamEnd, TextDelta, Usage
from aipipe.core.orchestrator import Orchestrator

TEST_ENV = {
    "OPENAI_API_KEY": "sk-test-openai-0000",
    "ANTHROPIC_API_KEY": "sk-ant-test-0000",
}


class FakeBackend:
    """In-memory Backend: records requests, replays scripted failures, then answers."""

    def __init__(self, text="Hello from the fake model", usage=None, errors=(), chunks=None):
        self.text = text
        self.usage = usage or Usage(input_tokens=10, output_tokens=5)
        self.errors = list(errors)
        self.chunks = chunks
        self.requests = []
        self.calls = 0
        self.api_keys = []

    def _maybe_fail(self):
        self.calls += 1
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error

    def generate(self, request):
        self.requests.append(request)
        self._maybe_fail()
        return Response(text=self.text, usage=self.usage, finish_reason="stop")

    def stream(self, request):
        self.requests.append(request)
        self._maybe_fail()
        chunks = self.chunks if self.chunks is not None else [self.text]
        return iter([*(TextDelta(c) for c in chunks), StreamEnd(usage=self.usage, finish_reason="stop")])


@pytest.fixture(autouse=True)
def _reset_loguru():
    """The CLI reconfigures loguru per invocation; drop its sinks after every test."""
    yield
    logger.remove()


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def config_dir(tmp_path):
    path = tmp_path / "aipipe-config"
    path.mkdir()
    return path


@pytest.fixture
def context(config_dir):
    return ConfigContext(config_dir)


@pytest.fixture
def write_settings(context):
    def _write(data):
        context.settings_path.write_text(json.dumps(data))

    return _write


@pytest.fixture
def test_env():
    return dict(TEST_ENV)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def make_backend():
    return FakeBackend


@pytest.fixture
def orchestrator(context, fake_backend):
    def _factory(api_key):
        fake_backend.api_keys.append(api_key)
        return fake_backend

    return Orchestrator(context, env=dict(TEST_ENV), backend_factory=_factory, sleep=lambda _s: None)
