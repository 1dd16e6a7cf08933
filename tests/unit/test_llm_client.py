"""
Unit Tests for the Completion Service Client

Tests JSON extraction from model replies and the mapping of openai SDK
failures onto RateLimited / QuotaExceeded / UpstreamUnavailable / UpstreamError.
"""

import httpx
import openai
import pytest
import sys
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "adaptive_bloom_tutor", "src"))

from adaptive_bloom_tutor.config import LLMSettings
from adaptive_bloom_tutor.errors import (
    MalformedResponse,
    QuotaExceeded,
    RateLimited,
    UpstreamError,
    UpstreamUnavailable,
)
from adaptive_bloom_tutor.llm_client import LLMClient, extract_json_object, translate_upstream_error

REQUEST = httpx.Request("POST", "https://gateway.test/v1/chat/completions")


def status_error(cls, status, body=None):
    return cls("upstream said no", response=httpx.Response(status, request=REQUEST), body=body)


def client_raising(error):
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace()))
    client.chat.completions.create = AsyncMock(side_effect=error)
    return client


def stream_chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class TestExtractJsonObject:
    """Test suite for extract_json_object."""

    def test_bare_object(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_fenced_object(self):
        assert extract_json_object('```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}

    def test_object_inside_prose(self):
        text = 'Here are your results:\n{"strategies": ["Review daily"]}\nGood luck!'
        assert extract_json_object(text) == {"strategies": ["Review daily"]}

    def test_skips_braces_that_are_not_json(self):
        text = 'Use {curly} braces sparingly. {"ok": true} and {"second": 1}'
        assert extract_json_object(text) == {"ok": True}

    def test_nested_braces_in_strings(self):
        assert extract_json_object('{"code": "if (x) { y(); }"}') == {"code": "if (x) { y(); }"}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", '{"unterminated": '])
    def test_no_object(self, text):
        with pytest.raises(MalformedResponse):
            extract_json_object(text)


class TestTranslateUpstreamError:
    """Test suite for the upstream failure taxonomy."""

    def test_rate_limit(self):
        assert isinstance(translate_upstream_error(status_error(openai.RateLimitError, 429)), RateLimited)

    def test_payment_required(self):
        assert isinstance(translate_upstream_error(status_error(openai.APIStatusError, 402)), QuotaExceeded)

    def test_insufficient_quota_code(self):
        error = status_error(openai.RateLimitError, 429, body={"code": "insufficient_quota", "message": "quota"})
        assert isinstance(translate_upstream_error(error), QuotaExceeded)

    def test_connection_failure(self):
        error = openai.APIConnectionError(request=REQUEST)
        assert isinstance(translate_upstream_error(error), UpstreamUnavailable)

    def test_timeout(self):
        error = openai.APITimeoutError(request=REQUEST)
        assert isinstance(translate_upstream_error(error), UpstreamUnavailable)

    def test_other_status(self):
        translated = translate_upstream_error(status_error(openai.InternalServerError, 500))
        assert isinstance(translated, UpstreamError)
        assert "500" in translated.message


class TestLLMClient:
    """Test suite for LLMClient against a mocked AsyncOpenAI."""

    @pytest.fixture
    def settings(self):
        return LLMSettings(api_key="test-key", base_url=None)

    @pytest.mark.asyncio
    async def test_complete_raises_translated_error(self, settings):
        llm = LLMClient(settings, client=client_raising(status_error(openai.RateLimitError, 429)))
        with pytest.raises(RateLimited):
            await llm.complete("system", "user")

    @pytest.mark.asyncio
    async def test_complete_without_choices(self, settings):
        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace()))
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        with pytest.raises(MalformedResponse):
            await LLMClient(settings, client=client).complete("system", "user")

    @pytest.mark.asyncio
    async def test_stream_yields_deltas_in_order(self, settings):
        async def chunks():
            for text in ["Hel", None, "lo", "!"]:
                yield stream_chunk(text)

        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace()))
        client.chat.completions.create = AsyncMock(return_value=chunks())
        llm = LLMClient(settings, client=client)

        deltas = [d async for d in llm.stream([{"role": "user", "content": "hi"}])]

        assert deltas == ["Hel", "lo", "!"]
        assert client.chat.completions.create.call_args.kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_translates_errors(self, settings):
        llm = LLMClient(settings, client=client_raising(status_error(openai.APIStatusError, 402)))
        with pytest.raises(QuotaExceeded):
            async for _ in llm.stream([{"role": "user", "content": "hi"}]):
                pass


class TestLLMSettings:
    """Test suite for environment configuration."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("LLM_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.2")

        settings = LLMSettings.from_env()
        assert settings.api_key == "sk-test"
        assert settings.model == "gpt-4o-mini"
        assert settings.temperature == 0.2

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("LOVABLE_API_KEY", raising=False)
        with pytest.raises(ValueError):
            LLMSettings.from_env()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
