"""
Test suite for the Ollama language model client.

The HTTP layer is replaced with a fake response so tests cover payload
building, stream parsing and connection cleanup.
"""

import json
from typing import List

import pytest

from core.domain import GenerationOptions
from core.exceptions import LanguageModelError
from services import llm_service
from services.llm_service import OllamaLanguageModel


class FakeResponse:
    """Minimal stand-in for a streaming requests.Response."""

    def __init__(self, events: List[dict] = None, body: dict = None):
        self.events = events or []
        self.body = body or {}
        self.closed = False

    def raise_for_status(self):
        return None

    def json(self):
        return self.body

    def iter_lines(self):
        for event in self.events:
            yield json.dumps(event).encode("utf-8")

    def close(self):
        self.closed = True


@pytest.fixture
def posted(monkeypatch):
    """Capture POSTs and answer them with the response stored in the dict."""
    calls = {"payloads": [], "response": FakeResponse()}

    def fake_post(url, json=None, timeout=None, stream=False):
        calls["payloads"].append(json)
        return calls["response"]

    monkeypatch.setattr(llm_service.requests, "post", fake_post)
    return calls


@pytest.fixture
def model() -> OllamaLanguageModel:
    """Client pointed at a local Ollama."""
    return OllamaLanguageModel("http://localhost:11434/", "qwen2.5:7b", timeout=5)


class TestGenerate:
    """Test suite for OllamaLanguageModel.generate."""

    @pytest.mark.asyncio
    async def test_should_send_options_and_strip_reply(self, model, posted):
        # Arrange
        posted["response"] = FakeResponse(body={"response": "  {\"type\": \"specific\"}  "})

        # Act
        text = await model.generate("classify", GenerationOptions(temperature=0.1, max_tokens=50, json_output=True))

        # Assert
        assert text == '{"type": "specific"}'
        payload = posted["payloads"][0]
        assert payload["format"] == "json"
        assert payload["options"] == {"temperature": 0.1, "num_predict": 50}
        assert payload["stream"] is False

    @pytest.mark.asyncio
    async def test_empty_reply_should_raise(self, model, posted):
        posted["response"] = FakeResponse(body={"response": ""})

        with pytest.raises(LanguageModelError):
            await model.generate("hello")


class TestStream:
    """Test suite for OllamaLanguageModel.stream."""

    @pytest.mark.asyncio
    async def test_should_yield_pieces_and_close_on_done(self, model, posted):
        posted["response"] = FakeResponse(events=[
            {"response": "Use "}, {"response": "caching."}, {"response": "", "done": True}, {"response": "late"},
        ])

        pieces = [piece async for piece in model.stream("explain caching")]

        assert pieces == ["Use ", "caching."]
        assert posted["response"].closed is True

    @pytest.mark.asyncio
    async def test_consumer_stopping_early_should_close_connection(self, model, posted):
        # Arrange
        posted["response"] = FakeResponse(events=[{"response": "one "}, {"response": "two "}, {"response": "three"}])
        stream = model.stream("count")

        # Act
        first = await stream.__anext__()
        await stream.aclose()

        # Assert
        assert first == "one "
        assert posted["response"].closed is True

    @pytest.mark.asyncio
    async def test_error_event_should_raise_and_close(self, model, posted):
        posted["response"] = FakeResponse(events=[{"response": "partial "}, {"error": "model not found"}])

        with pytest.raises(LanguageModelError):
            async for _ in model.stream("explain caching"):
                pass

        assert posted["response"].closed is True
