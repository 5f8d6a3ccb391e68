"""
Tests for the server-side OpenAI relay service.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APIStatusError

from voicequiz.core.resilience import openai_breaker
from voicequiz.services.openai_relay_service import (
    OpenAIRelayService,
    RelayNotConfiguredError,
    UpstreamError,
    build_describe_prompt,
    build_guess_prompt,
)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


@pytest.fixture(autouse=True)
def closed_breaker():
    openai_breaker.close()
    yield
    openai_breaker.close()


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_openai_client(result=None, side_effect=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=result, side_effect=side_effect)
    return client


class TestPrompts:
    def test_describe_prompt_lists_taboo_and_hints(self):
        prompt = build_describe_prompt("apple", ["fruit", "red"], ["It grows on trees.", "Keeps doctors away."])
        assert 'Describe the word "apple"' in prompt
        assert "NEVER use these taboo words: fruit, red" in prompt
        assert "Previous hints you gave:\n1. It grows on trees.\n2. Keeps doctors away." in prompt

    def test_describe_prompt_without_hints(self):
        assert "Previous hints" not in build_describe_prompt("apple", ["fruit"])

    def test_guess_prompt(self):
        prompt = build_guess_prompt("it is yellow and curved", "Food", ["lemon", "corn"])
        assert 'from the "Food" category' in prompt
        assert '"it is yellow and curved"' in prompt
        assert "lemon, corn" in prompt


class TestCompletions:
    @pytest.mark.asyncio
    async def test_describe_strips_text(self):
        client = make_openai_client(completion("  You bite into it.  "))
        service = OpenAIRelayService(api_key="sk-test", openai_client=client)

        text = await service.describe("apple", ["fruit"], [])

        assert text == "You bite into it."
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_completion_tokens"] == 100
        assert "max_tokens" not in kwargs
        assert kwargs["messages"][0]["role"] == "user"

    @pytest.mark.asyncio
    async def test_guess_allows_empty(self):
        service = OpenAIRelayService(api_key="sk-test", openai_client=make_openai_client(completion(None)))
        assert await service.guess("it is", "Food") == ""

    @pytest.mark.asyncio
    async def test_status_error_forwarded(self):
        response = httpx.Response(429, text="slow down", request=httpx.Request("POST", OPENAI_URL))
        error = APIStatusError("rate limited", response=response, body=None)
        service = OpenAIRelayService(api_key="sk-test", openai_client=make_openai_client(side_effect=error))

        with pytest.raises(UpstreamError) as exc_info:
            await service.describe("apple", ["fruit"])
        assert exc_info.value.status_code == 429
        assert exc_info.value.details == "slow down"

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr("voicequiz.services.openai_relay_service.settings.OPENAI_API_KEY", None)
        service = OpenAIRelayService(api_key=None)
        assert not service.is_enabled()
        with pytest.raises(RelayNotConfiguredError):
            await service.guess("it is", "Food")


class TestClientSecret:
    @pytest.mark.asyncio
    async def test_mode_a_session_config(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"value": "ek_abc", "expires_at": 1700000600})

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = OpenAIRelayService(api_key="sk-test", http_client=http_client)

        secret = await service.create_client_secret("modeA", current_word="apple", taboo=["fruit", "red"])

        assert secret == {"value": "ek_abc", "expiresAt": 1700000600}
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["expires_after"] == {"anchor": "created_at", "seconds": 600}
        session = seen["body"]["session"]
        assert session["type"] == "realtime"
        assert session["audio"]["input"]["transcription"]["model"] == "whisper-1"
        assert '"apple"' in session["instructions"]
        assert "fruit, red" in session["instructions"]

    @pytest.mark.asyncio
    async def test_nested_client_secret_shape(self):
        def handler(request):
            return httpx.Response(200, json={"client_secret": {"value": "ek_nested", "expires_at": 55}})

        service = OpenAIRelayService(
            api_key="sk-test",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        secret = await service.create_client_secret("modeB")
        assert secret == {"value": "ek_nested", "expiresAt": 55}

    @pytest.mark.asyncio
    async def test_upstream_rejection(self):
        def handler(request):
            return httpx.Response(401, text="bad key")

        service = OpenAIRelayService(
            api_key="sk-test",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        with pytest.raises(UpstreamError) as exc_info:
            await service.create_client_secret("modeB")
        assert exc_info.value.status_code == 401
        assert exc_info.value.details == "bad key"

    @pytest.mark.asyncio
    async def test_repeated_server_errors_open_breaker(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="upstream down")

        service = OpenAIRelayService(
            api_key="sk-test",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        for _ in range(openai_breaker.fail_max):
            with pytest.raises(UpstreamError) as exc_info:
                await service.create_client_secret("modeB")
            assert exc_info.value.status_code == 500

        with pytest.raises(UpstreamError) as exc_info:
            await service.create_client_secret("modeB")

        assert exc_info.value.status_code == 503
        assert len(calls) == openai_breaker.fail_max
