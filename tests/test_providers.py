"""Tests for providers and the bounded retry. litellm is mocked; no network."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import litellm
import pytest

from safety_orchestrator.config import ProviderConfig
from safety_orchestrator.errors import (
    ConfigurationError,
    ProviderAuthError,
    ProviderFatalError,
    ProviderRateLimitError,
    ProviderTransientError,
)
from safety_orchestrator.providers import (
    ChatProvider,
    LiteLLMProvider,
    RetryPolicy,
    acall_with_retry,
    litellm_model_id,
    make_provider,
    message_to_dict,
)

NO_DELAY = RetryPolicy(delay_s=0)


def _make_response(content: str | None = "ok", tool_calls: list[Any] | None = None) -> MagicMock:
    message = MagicMock()
    message.content = content
    message.tool_calls = tool_calls
    response = MagicMock()
    response.choices = [MagicMock(message=message)]
    return response


def _make_tool_call(call_id: str, name: str, arguments: str) -> MagicMock:
    tc = MagicMock()
    tc.id = call_id
    tc.type = "function"
    tc.function.name = name
    tc.function.arguments = arguments
    return tc


def _rate_limit_error() -> Exception:
    return litellm.RateLimitError(message="429 slow down", model="gpt-4o-mini", llm_provider="openai")


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestAcallWithRetry:
    async def test_retries_transient_once(self) -> None:
        fn = AsyncMock(side_effect=[ProviderTransientError("503"), "ok"])
        assert await acall_with_retry(fn, NO_DELAY) == "ok"
        assert fn.await_count == 2

    async def test_second_transient_failure_propagates(self) -> None:
        fn = AsyncMock(side_effect=[ProviderRateLimitError("429"), ProviderRateLimitError("429"), "ok"])
        with pytest.raises(ProviderRateLimitError):
            await acall_with_retry(fn, NO_DELAY)
        assert fn.await_count == 2

    async def test_fatal_not_retried(self) -> None:
        fn = AsyncMock(side_effect=ProviderAuthError("401"))
        with pytest.raises(ProviderAuthError):
            await acall_with_retry(fn, NO_DELAY)
        assert fn.await_count == 1

    async def test_waits_fixed_delay(self) -> None:
        fn = AsyncMock(side_effect=[ProviderTransientError("503"), "ok"])
        with patch("safety_orchestrator.providers.asyncio.sleep", new=AsyncMock()) as sleep:
            await acall_with_retry(fn, RetryPolicy())
        sleep.assert_awaited_once_with(2.0)


# ---------------------------------------------------------------------------
# LiteLLM provider
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestLiteLLMProvider:
    async def test_rate_limit_then_success_calls_twice(self) -> None:
        provider = LiteLLMProvider(ProviderConfig(), retry=NO_DELAY)
        with patch(
            "safety_orchestrator.providers.litellm.acompletion",
            new=AsyncMock(side_effect=[_rate_limit_error(), _make_response("Report created.")]),
        ) as acompletion:
            message = await provider.chat([{"role": "user", "content": "hi"}])
        assert message == {"role": "assistant", "content": "Report created."}
        assert acompletion.await_count == 2

    async def test_fatal_error_raises_immediately(self) -> None:
        provider = LiteLLMProvider(ProviderConfig(), retry=NO_DELAY)
        with patch(
            "safety_orchestrator.providers.litellm.acompletion",
            new=AsyncMock(side_effect=ValueError("invalid request")),
        ) as acompletion:
            with pytest.raises(ProviderFatalError) as exc_info:
                await provider.chat([{"role": "user", "content": "hi"}])
        assert acompletion.await_count == 1
        assert isinstance(exc_info.value.original, ValueError)

    async def test_request_shape(self) -> None:
        config = ProviderConfig(provider="anthropic", model="claude-sonnet-4-5", api_key="k", max_tokens=123)
        provider = LiteLLMProvider(config, retry=NO_DELAY)
        tools = [{"type": "function", "function": {"name": "t", "parameters": {}}}]
        with patch(
            "safety_orchestrator.providers.litellm.acompletion",
            new=AsyncMock(return_value=_make_response()),
        ) as acompletion:
            await provider.chat([{"role": "user", "content": "hi"}], tools=tools)
        kwargs = acompletion.await_args.kwargs
        assert kwargs["model"] == "anthropic/claude-sonnet-4-5"
        assert kwargs["tools"] == tools
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["max_tokens"] == 123
        assert kwargs["temperature"] == 0.2
        assert kwargs["api_key"] == "k"
        assert kwargs["timeout"] == 60.0

    async def test_no_tools_omits_tool_choice(self) -> None:
        provider = LiteLLMProvider(ProviderConfig(), retry=NO_DELAY)
        with patch(
            "safety_orchestrator.providers.litellm.acompletion",
            new=AsyncMock(return_value=_make_response()),
        ) as acompletion:
            text = await provider.ask("hello")
        assert text == "ok"
        assert "tools" not in acompletion.await_args.kwargs
        assert "tool_choice" not in acompletion.await_args.kwargs

    async def test_tool_calls_normalized(self) -> None:
        provider = LiteLLMProvider(ProviderConfig(), retry=NO_DELAY)
        response = _make_response(None, [_make_tool_call("c1", "create_report", '{"site": "A"}')])
        with patch(
            "safety_orchestrator.providers.litellm.acompletion",
            new=AsyncMock(return_value=response),
        ):
            message = await provider.chat([{"role": "user", "content": "hi"}])
        assert message["tool_calls"] == [
            {
                "id": "c1",
                "type": "function",
                "function": {"name": "create_report", "arguments": '{"site": "A"}'},
            }
        ]


class TestModelIds:
    @pytest.mark.parametrize(
        "provider,model,expected",
        [
            ("openai", "gpt-4o-mini", "gpt-4o-mini"),
            ("anthropic", "claude-sonnet-4-5", "anthropic/claude-sonnet-4-5"),
            ("google", "gemini-2.5-flash", "gemini/gemini-2.5-flash"),
            ("openai", "openrouter/some-model", "openrouter/some-model"),
        ],
    )
    def test_litellm_model_id(self, provider: str, model: str, expected: str) -> None:
        assert litellm_model_id(provider, model) == expected

    def test_unknown_provider(self) -> None:
        with pytest.raises(ConfigurationError):
            make_provider(ProviderConfig(provider="mystery"))

    def test_make_provider(self) -> None:
        provider = make_provider(ProviderConfig())
        assert isinstance(provider, LiteLLMProvider)
        assert provider.retry == RetryPolicy()

    def test_message_without_tool_calls(self) -> None:
        message = MagicMock(content="hi", tool_calls=None)
        assert message_to_dict(message) == {"role": "assistant", "content": "hi"}


@pytest.mark.asyncio
class TestCustomProvider:
    async def test_subclass_gets_retry(self) -> None:
        class Flaky(ChatProvider):
            calls = 0

            async def _complete(self, request: dict[str, Any]) -> dict[str, Any]:
                Flaky.calls += 1
                if Flaky.calls == 1:
                    raise ProviderRateLimitError("429", status=429)
                return {"role": "assistant", "content": "second time"}

        provider = Flaky(ProviderConfig(), retry=NO_DELAY)
        assert await provider.ask("hello") == "second time"
        assert Flaky.calls == 2
