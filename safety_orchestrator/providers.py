"""LLM providers behind one ``chat(messages, tools) -> assistant message`` interface.

Every vendor goes through litellm; only the model id differs:

    provider = make_provider(ProviderConfig(provider="anthropic", model="claude-sonnet-4-5"))
    message = await provider.chat(messages, tools=function_schemas)
    text = await provider.ask("Summarize the inspection findings.")

Transient vendor failures (rate limit, 5xx, timeouts) are retried exactly once
after a fixed delay. Anything else raises immediately.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import litellm

from safety_orchestrator.config import ProviderConfig
from safety_orchestrator.errors import ConfigurationError, ProviderTransientError, wrap_error
from safety_orchestrator.models import Message

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Silence litellm's noisy default logging
litellm.suppress_debug_info = True


# ---------------------------------------------------------------------------
# Bounded retry
# ---------------------------------------------------------------------------


def fixed_backoff(attempt: int, base_delay: float) -> float:
    """Same delay before every retry."""
    return base_delay


@dataclass(frozen=True)
class RetryPolicy:
    """How many times, and after how long, a transient failure is retried.

    Attributes:
        max_retries: Retries after the first attempt. The default is a single retry.
        delay_s: Delay passed to ``backoff``.
        backoff: ``(attempt, delay_s) -> seconds``. Defaults to :func:`fixed_backoff`.
    """

    max_retries: int = 1
    delay_s: float = 2.0
    backoff: Callable[[int, float], float] = fixed_backoff


def is_transient(error: BaseException) -> bool:
    return isinstance(error, ProviderTransientError)


async def acall_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    should_retry: Callable[[BaseException], bool] = is_transient,
    log: logging.Logger | None = None,
    label: str = "call",
) -> T:
    """Await ``fn()`` and retry it at most ``policy.max_retries`` times."""
    log = log or logger
    for attempt in range(policy.max_retries + 1):
        try:
            return await fn()
        except Exception as e:
            if not should_retry(e) or attempt >= policy.max_retries:
                raise
            delay = policy.backoff(attempt, policy.delay_s)
            log.warning(
                "%s attempt %d/%d failed (retrying in %.1fs): %s",
                label,
                attempt + 1,
                policy.max_retries + 1,
                delay,
                e,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class ChatProvider(ABC):
    """Vendor-neutral chat interface. Subclasses implement ``_complete``."""

    def __init__(
        self,
        config: ProviderConfig,
        *,
        retry: RetryPolicy | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.retry = retry or RetryPolicy()
        self._log = logger if logger is not None else logging.getLogger(__name__)

    @property
    def model_id(self) -> str:
        return self.config.model

    def build_request(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        **options: Any,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.model_id,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            **options,
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"
        return request

    @abstractmethod
    async def _complete(self, request: dict[str, Any]) -> Message:
        """Send one request; return the assistant message as an OpenAI-format dict.

        Must raise ProviderError subclasses so the retry policy can classify them.
        """

    async def chat(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        **options: Any,
    ) -> Message:
        request = self.build_request(messages, tools, **options)
        self._log.debug(
            "LLM call start: model=%s messages=%d tools=%s",
            self.model_id, len(messages), bool(tools),
        )
        t0 = time.monotonic()
        message = await acall_with_retry(
            lambda: self._complete(request),
            self.retry,
            log=self._log,
            label=f"{self.config.provider} chat",
        )
        duration_ms = int((time.monotonic() - t0) * 1000)
        tool_call_count = len(message.get("tool_calls") or [])
        self._log.info(
            "LLM call: model=%s messages=%d tools=%s tool_calls=%d duration=%dms",
            self.model_id,
            len(messages),
            bool(tools),
            tool_call_count,
            duration_ms,
            extra={
                "data": {
                    "provider": self.config.provider,
                    "model": self.model_id,
                    "messages": len(messages),
                    "tools": bool(tools),
                    "toolCalls": tool_call_count,
                    "durationMs": duration_ms,
                }
            },
        )
        return message

    async def ask(self, prompt: str, **options: Any) -> str:
        """Single user message, no tools; returns the text content only."""
        message = await self.chat([{"role": "user", "content": prompt}], **options)
        return message.get("content") or ""


_MODEL_PREFIXES: dict[str, str] = {
    "openai": "",
    "anthropic": "anthropic/",
    "google": "gemini/",
    "gemini": "gemini/",
}

SUPPORTED_PROVIDERS: frozenset[str] = frozenset(_MODEL_PREFIXES)


def litellm_model_id(provider: str, model: str) -> str:
    """Map (provider, model) to a litellm model string. Prefixed models pass through."""
    if "/" in model:
        return model
    prefix = _MODEL_PREFIXES.get(provider)
    if prefix is None:
        raise ConfigurationError(f"Unsupported provider: {provider!r}")
    return prefix + model


def message_to_dict(message: Any) -> Message:
    """Normalize a litellm response message into a plain assistant dict."""
    out: Message = {"role": "assistant", "content": getattr(message, "content", None)}
    tool_calls = getattr(message, "tool_calls", None)
    if tool_calls:
        out["tool_calls"] = [
            {
                "id": tc.id,
                "type": getattr(tc, "type", None) or "function",
                "function": {
                    "name": tc.function.name,
                    "arguments": tc.function.arguments,
                },
            }
            for tc in tool_calls
        ]
    return out


class LiteLLMProvider(ChatProvider):
    """Any litellm-supported vendor (OpenAI, Anthropic, Gemini, ...)."""

    @property
    def model_id(self) -> str:
        return litellm_model_id(self.config.provider, self.config.model)

    async def _complete(self, request: dict[str, Any]) -> Message:
        call_kwargs = dict(request)
        call_kwargs["timeout"] = self.config.timeout_s
        if self.config.api_key:
            call_kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            call_kwargs["api_base"] = self.config.api_base
        try:
            response = await litellm.acompletion(**call_kwargs)
        except Exception as exc:
            error = wrap_error(exc)
            self._log.error("LLM call failed (%s): %s", type(error).__name__, exc)
            if error is exc:
                raise
            raise error from exc
        return message_to_dict(response.choices[0].message)


def make_provider(
    config: ProviderConfig,
    *,
    retry: RetryPolicy | None = None,
    logger: logging.Logger | None = None,
) -> ChatProvider:
    """Build the provider named in ``config``."""
    if config.provider not in SUPPORTED_PROVIDERS:
        raise ConfigurationError(
            f"Unsupported provider: {config.provider!r} "
            f"(expected one of {', '.join(sorted(SUPPORTED_PROVIDERS))})"
        )
    provider = LiteLLMProvider(config, retry=retry, logger=logger)
    provider._log.info("Provider ready: %s (%s)", config.provider, provider.model_id)
    return provider
