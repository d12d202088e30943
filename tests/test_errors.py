"""Tests for the error taxonomy and provider-error classification."""

from __future__ import annotations

import litellm
import pytest

from safety_orchestrator.errors import (
    MCPConnectionError,
    OrchestratorError,
    ProviderAuthError,
    ProviderError,
    ProviderFatalError,
    ProviderRateLimitError,
    ProviderTransientError,
    ToolArgumentError,
    ToolInvocationError,
    classify_error,
    wrap_error,
)


class _StatusError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class TestHierarchy:
    def test_rate_limit_is_transient(self) -> None:
        assert issubclass(ProviderRateLimitError, ProviderTransientError)
        assert issubclass(ProviderTransientError, ProviderError)

    def test_auth_is_fatal(self) -> None:
        assert issubclass(ProviderAuthError, ProviderFatalError)

    def test_connection_error_is_builtin_connection_error(self) -> None:
        err = MCPConnectionError("server gone")
        assert isinstance(err, ConnectionError)
        assert isinstance(err, OrchestratorError)

    def test_tool_invocation_error_from_string(self) -> None:
        err = ToolInvocationError("fill_report", "bad date")
        assert str(err) == "fill_report: bad date"
        assert err.detail == "bad date"
        assert err.original is None

    def test_tool_invocation_error_from_exception(self) -> None:
        cause = KeyError("site")
        err = ToolArgumentError("create_report", cause)
        assert isinstance(err, ToolInvocationError)
        assert err.original is cause
        assert err.tool_name == "create_report"


class TestClassifyError:
    def test_litellm_rate_limit(self) -> None:
        exc = litellm.RateLimitError(message="slow down", model="gpt-4o-mini", llm_provider="openai")
        assert classify_error(exc) is ProviderRateLimitError

    @pytest.mark.parametrize(
        "status,expected",
        [
            (429, ProviderRateLimitError),
            (500, ProviderTransientError),
            (503, ProviderTransientError),
            (401, ProviderAuthError),
            (403, ProviderAuthError),
            (400, ProviderFatalError),
        ],
    )
    def test_status_codes(self, status: int, expected: type) -> None:
        assert classify_error(_StatusError("boom", status)) is expected

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Rate limit exceeded", ProviderRateLimitError),
            ("401 Unauthorized", ProviderAuthError),
            ("Request timed out", ProviderTransientError),
            ("upstream returned 503", ProviderTransientError),
            ("invalid request: messages missing", ProviderFatalError),
        ],
    )
    def test_message_patterns(self, message: str, expected: type) -> None:
        assert classify_error(RuntimeError(message)) is expected

    def test_builtin_timeout(self) -> None:
        assert classify_error(TimeoutError()) is ProviderTransientError


class TestWrapError:
    def test_provider_error_unchanged(self) -> None:
        err = ProviderFatalError("nope")
        assert wrap_error(err) is err

    def test_wraps_with_status(self) -> None:
        original = _StatusError("too many", 429)
        wrapped = wrap_error(original)
        assert isinstance(wrapped, ProviderRateLimitError)
        assert wrapped.status == 429
        assert wrapped.original is original

    def test_default_status_when_missing(self) -> None:
        assert wrap_error(RuntimeError("rate limit hit")).status == 429
        assert wrap_error(RuntimeError("server error")).status == 503
        assert wrap_error(RuntimeError("unauthorized")).status == 401
        assert wrap_error(RuntimeError("bad input")).status is None
