"""Unit tests for OpenRouterClient retries and error mapping."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import (
    APIConnectionError,
    APITimeoutError,
    BadRequestError,
    InternalServerError,
    RateLimitError,
)

from citeguard.core.circuit_breaker import CircuitBreaker
from citeguard.core.config import LLMConfig
from citeguard.services.llm.openrouter_client import OpenRouterClient, is_retryable_error
from citeguard.services.llm.schemas import ChatMessage, LLMClientError

URL = "https://openrouter.ai/api/v1/chat/completions"
CONFIG = LLMConfig(
    provider="openrouter",
    model="anthropic/claude-haiku-4.5",
    temperature=0.0,
    max_tokens=1024,
    timeout=60,
)


def status_error(cls, status_code: int):
    request = httpx.Request("POST", URL)
    return cls("error", response=httpx.Response(status_code, request=request), body=None)


def completion(content: str = "SCORE: 9\nREASONING: Real.") -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=800, completion_tokens=60, total_tokens=860),
        model="anthropic/claude-haiku-4.5",
    )


@pytest.fixture
def breaker(monkeypatch: pytest.MonkeyPatch) -> CircuitBreaker:
    breaker = CircuitBreaker(failure_threshold=10, timeout=60.0)
    monkeypatch.setattr(breaker, "_sleep", AsyncMock())
    return breaker


@pytest.fixture
def client(breaker: CircuitBreaker) -> OpenRouterClient:
    with patch("citeguard.services.llm.openrouter_client.AsyncOpenAI", return_value=MagicMock()):
        client = OpenRouterClient(CONFIG, api_key="test-key", max_retries=2, breaker=breaker)
    client.client.chat.completions.create = AsyncMock()
    return client


@pytest.mark.unit
def test_missing_api_key(monkeypatch: pytest.MonkeyPatch):
    """Test the client refuses to start without credentials."""
    from citeguard.core import config as cfg

    monkeypatch.setattr(cfg.settings, "OPENROUTER_API_KEY", None)

    with pytest.raises(LLMClientError, match="API key is required"):
        OpenRouterClient(CONFIG)


@pytest.mark.unit
@pytest.mark.parametrize(
    "error, expected",
    [
        (status_error(RateLimitError, 429), True),
        (status_error(InternalServerError, 502), True),
        (APITimeoutError(request=httpx.Request("POST", URL)), True),
        (APIConnectionError(request=httpx.Request("POST", URL)), True),
        (status_error(BadRequestError, 400), False),
        (ValueError("not an API error"), False),
    ],
)
def test_is_retryable_error(error, expected):
    """Test only transient errors are retried."""
    assert is_retryable_error(error) is expected


@pytest.mark.unit
@pytest.mark.asyncio
async def test_chat_success(client: OpenRouterClient):
    """Test a completion is mapped into ChatResult."""
    client.client.chat.completions.create.return_value = completion()

    result = await client.chat([ChatMessage(role="user", content="hi")])

    assert result.content == "SCORE: 9\nREASONING: Real."
    assert result.usage.total_tokens == 860
    kwargs = client.client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "anthropic/claude-haiku-4.5"
    assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
    assert kwargs["stream"] is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rate_limit_is_retried(client: OpenRouterClient, breaker: CircuitBreaker):
    """Test a 429 is retried and the next answer is returned."""
    client.client.chat.completions.create.side_effect = [
        status_error(RateLimitError, 429),
        completion("SCORE: 7"),
    ]

    result = await client.chat([ChatMessage(role="user", content="hi")])

    assert result.content == "SCORE: 7"
    assert client.client.chat.completions.create.await_count == 2
    assert breaker._sleep.await_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_bad_request_not_retried(client: OpenRouterClient):
    """Test a 400 fails immediately as LLMClientError."""
    client.client.chat.completions.create.side_effect = status_error(BadRequestError, 400)

    with pytest.raises(LLMClientError, match="LLM request failed"):
        await client.chat([ChatMessage(role="user", content="hi")])

    assert client.client.chat.completions.create.await_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_open_circuit_maps_to_client_error(client: OpenRouterClient):
    """Test an open circuit surfaces as LLMClientError without calling the API."""
    client.breaker.failure_threshold = 1
    client.client.chat.completions.create.side_effect = status_error(BadRequestError, 400)
    with pytest.raises(LLMClientError):
        await client.chat([ChatMessage(role="user", content="hi")])

    with pytest.raises(LLMClientError, match="open"):
        await client.chat([ChatMessage(role="user", content="hi")])

    assert client.client.chat.completions.create.await_count == 1
