"""Tests for the provider backends and the shared completion service."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from sherpa.cancellation import CancellationToken
from sherpa.config import Config, static_config_source
from sherpa.errors import OperationCancelled, ProviderError, ProviderNotConfiguredError
from sherpa.llm import (
    ANTHROPIC_URL,
    AIService,
    AnthropicBackend,
    GeminiBackend,
    OpenAIBackend,
    _build_vision_content,
    _guess_mime,
)

PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAE="


class FakeBackend:
    instances: list = []

    def __init__(self, config):
        self.config = config
        self.calls = []
        FakeBackend.instances.append(self)

    async def complete(self, system, prompt, model, images=()):
        self.calls.append((system, prompt, model, tuple(images)))
        return f"reply from {model}"


@pytest.fixture(autouse=True)
def _reset_fake():
    FakeBackend.instances = []


class TestAIService:
    def test_missing_key(self):
        ai = AIService(static_config_source(Config()))
        assert not ai.has_valid_client()
        with pytest.raises(ProviderNotConfiguredError, match="openai"):
            asyncio.run(ai.complete("hi"))

    def test_models_per_call_kind(self):
        config = Config(api_key="k", solution_model="solver", extraction_model="reader")
        ai = AIService(static_config_source(config))
        with patch.dict("sherpa.llm.BACKENDS", {"openai": FakeBackend}):
            assert asyncio.run(ai.complete("p", system_prompt="s")) == "reply from solver"
            assert asyncio.run(ai.complete_vision("p", [PNG_B64])) == "reply from reader"
        backend = FakeBackend.instances[0]
        assert backend.calls[0] == ("s", "p", "solver", ())
        assert backend.calls[1][3] == (PNG_B64,)

    def test_backend_follows_config_changes(self):
        current = [Config(api_key="one")]
        ai = AIService(lambda: current[0])
        with patch.dict("sherpa.llm.BACKENDS", {"openai": FakeBackend, "gemini": FakeBackend}):
            asyncio.run(ai.complete("p"))
            asyncio.run(ai.complete("p"))
            assert len(FakeBackend.instances) == 1

            current[0] = Config(api_provider="gemini", api_key="two")
            asyncio.run(ai.complete("p"))
        assert len(FakeBackend.instances) == 2
        assert FakeBackend.instances[1].config.api_provider == "gemini"
        assert FakeBackend.instances[0].config.api_key == "one"

    def test_cancelled_token_skips_the_call(self):
        ai = AIService(static_config_source(Config(api_key="k")))
        token = CancellationToken("extraction")
        token.cancel()
        with patch.dict("sherpa.llm.BACKENDS", {"openai": FakeBackend}):
            with pytest.raises(OperationCancelled):
                asyncio.run(ai.complete("p", token=token))
        assert FakeBackend.instances == []


    def test_backend_http_failure_becomes_provider_error(self):
        ai = AIService(static_config_source(Config(api_provider="anthropic", api_key="k")))
        transport = httpx.MockTransport(lambda request: httpx.Response(529, json={"error": "overloaded"}))
        with patch("sherpa.llm.httpx.AsyncHTTPTransport", return_value=transport):
            with pytest.raises(ProviderError, match="anthropic request failed") as exc:
                asyncio.run(ai.complete("p"))
        assert isinstance(exc.value.__cause__, httpx.HTTPStatusError)


class TestMime:
    def test_guess(self):
        assert _guess_mime("/9j/4AAQ") == "image/jpeg"
        assert _guess_mime("R0lGODlh") == "image/gif"
        assert _guess_mime("UklGRh4A") == "image/webp"
        assert _guess_mime(PNG_B64) == "image/png"

    def test_vision_content(self):
        parts = _build_vision_content("read this", [PNG_B64])
        assert parts[0] == {"type": "text", "text": "read this"}
        assert parts[1]["image_url"]["url"].startswith("data:image/png;base64,")


class TestOpenAIBackend:
    def test_complete(self):
        response = MagicMock()
        response.choices[0].message.content = "answer"
        with patch("sherpa.llm.AsyncOpenAI") as client_cls:
            client = client_cls.return_value
            client.chat.completions.create = AsyncMock(return_value=response)
            backend = OpenAIBackend(Config(api_key="k", max_retries=4))
            result = asyncio.run(backend.complete("sys", "prompt", "gpt-4o", [PNG_B64]))

        assert result == "answer"
        assert client_cls.call_args.kwargs["max_retries"] == 4
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["messages"][1]["content"][1]["type"] == "image_url"

    def test_none_content(self):
        response = MagicMock()
        response.choices[0].message.content = None
        with patch("sherpa.llm.AsyncOpenAI") as client_cls:
            client_cls.return_value.chat.completions.create = AsyncMock(return_value=response)
            backend = OpenAIBackend(Config(api_key="k"))
            assert asyncio.run(backend.complete("", "prompt", "gpt-4o")) == ""


class TestAnthropicBackend:
    def test_payload(self):
        backend = AnthropicBackend(Config(api_provider="anthropic", api_key="k", max_tokens=123))
        payload = backend._payload("sys", "prompt", "claude", [PNG_B64])
        content = payload["messages"][0]["content"]
        assert content[0]["type"] == "image"
        assert content[0]["source"]["media_type"] == "image/png"
        assert content[-1] == {"type": "text", "text": "prompt"}
        assert payload["system"] == "sys"
        assert payload["max_tokens"] == 123

    def test_complete_joins_text_blocks(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers["x-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "content": [
                    {"type": "text", "text": "Hello "},
                    {"type": "tool_use", "id": "x"},
                    {"type": "text", "text": "there"},
                ]
            })

        backend = AnthropicBackend(Config(api_provider="anthropic", api_key="secret"))
        with patch("sherpa.llm.httpx.AsyncHTTPTransport", return_value=httpx.MockTransport(handler)):
            result = asyncio.run(backend.complete("", "prompt", "claude"))

        assert result == "Hello there"
        assert seen["url"] == ANTHROPIC_URL
        assert seen["key"] == "secret"
        assert "system" not in seen["body"]

    def test_http_error_raises(self):
        backend = AnthropicBackend(Config(api_provider="anthropic", api_key="secret"))
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "bad key"}))
        with patch("sherpa.llm.httpx.AsyncHTTPTransport", return_value=transport):
            with pytest.raises(httpx.HTTPStatusError):
                asyncio.run(backend.complete("", "prompt", "claude"))


class TestGeminiBackend:
    def test_complete(self):
        with patch("sherpa.llm.genai.Client") as client_cls:
            generate = AsyncMock(return_value=MagicMock(text="gemini says hi"))
            client_cls.return_value.aio.models.generate_content = generate
            backend = GeminiBackend(Config(api_provider="gemini", api_key="k", temperature=0.5))
            result = asyncio.run(backend.complete("sys", "prompt", "gemini-2.0-flash", [PNG_B64]))

        assert result == "gemini says hi"
        kwargs = generate.await_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert kwargs["contents"][-1] == "prompt"
        assert len(kwargs["contents"]) == 2
        assert kwargs["config"].system_instruction == "sys"
        assert kwargs["config"].temperature == 0.5
