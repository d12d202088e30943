"""Structured error types for safety_orchestrator.

Run-level failures (provider, channel connection) propagate to the caller.
Tool-level failures are captured per call by the loop and never escape it:

    from safety_orchestrator.errors import ProviderRateLimitError, ProviderTransientError

    try:
        result = await run_loop(provider=provider, registry=registry, ...)
    except ProviderRateLimitError:
        # Already retried once by the provider; back off before trying again
        ...
    except ProviderTransientError:
        # Vendor-side 5xx/timeout
        ...
"""

from __future__ import annotations

from typing import Any

import litellm


class OrchestratorError(Exception):
    """Base for all safety_orchestrator errors."""

    def __init__(self, message: str, original: BaseException | None = None) -> None:
        super().__init__(message)
        self.original = original


class ConfigurationError(OrchestratorError):
    """Invalid runtime configuration (bad provider name, out-of-range temperature, ...)."""


class MCPConnectionError(OrchestratorError, ConnectionError):
    """Tool-execution channel unavailable. Fatal to the run; never retried."""


class ToolCatalogError(OrchestratorError):
    """The tool catalog is unusable (e.g. two tools share a name)."""


class ToolInvocationError(OrchestratorError):
    """A single tool call failed. Captured per call by the loop."""

    def __init__(
        self,
        tool_name: str,
        cause: BaseException | str,
    ) -> None:
        if isinstance(cause, BaseException):
            detail = str(cause) or type(cause).__name__
            original: BaseException | None = cause
        else:
            detail = cause
            original = None
        super().__init__(f"{tool_name}: {detail}", original=original)
        self.tool_name = tool_name
        self.cause = cause
        self.detail = detail


class ToolArgumentError(ToolInvocationError):
    """Tool-call arguments were malformed or failed schema validation."""


class ProviderError(OrchestratorError):
    """Failure reported by the LLM vendor."""

    def __init__(
        self,
        message: str,
        original: BaseException | None = None,
        *,
        status: int | None = None,
    ) -> None:
        super().__init__(message, original=original)
        self.status = status


class ProviderTransientError(ProviderError):
    """Rate limit or server-side failure. Retried once."""


class ProviderRateLimitError(ProviderTransientError):
    """Transient rate limit (429)."""


class ProviderFatalError(ProviderError):
    """Authentication/validation failure. Not retried."""


class ProviderAuthError(ProviderFatalError):
    """Authentication failed (401/403)."""


def _litellm_error_types(names: tuple[str, ...]) -> tuple[type[BaseException], ...]:
    """Resolve litellm exception classes that exist in the installed version."""
    out: list[type[BaseException]] = []
    for name in names:
        candidate = getattr(litellm, name, None)
        if isinstance(candidate, type) and issubclass(candidate, BaseException):
            out.append(candidate)
    return tuple(out)


_RATE_LIMIT_TYPES = _litellm_error_types(("RateLimitError",))
_TRANSIENT_TYPES = _litellm_error_types(
    (
        "InternalServerError",
        "ServiceUnavailableError",
        "APIConnectionError",
        "BadGatewayError",
        "Timeout",
    )
)
_AUTH_TYPES = _litellm_error_types(("AuthenticationError", "PermissionDeniedError"))


def _status_of(error: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value: Any = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(error: BaseException) -> type[ProviderError]:
    """Classify any exception raised by a vendor call into a ProviderError subtype.

    litellm exception types win, then HTTP status codes, then message patterns.
    """
    if _AUTH_TYPES and isinstance(error, _AUTH_TYPES):
        return ProviderAuthError
    if _RATE_LIMIT_TYPES and isinstance(error, _RATE_LIMIT_TYPES):
        return ProviderRateLimitError
    if _TRANSIENT_TYPES and isinstance(error, _TRANSIENT_TYPES):
        return ProviderTransientError

    status = _status_of(error)
    if status is not None:
        if status == 429:
            return ProviderRateLimitError
        if status >= 500:
            return ProviderTransientError
        if status in (401, 403):
            return ProviderAuthError
        return ProviderFatalError

    error_str = str(error).lower()
    if "rate" in error_str and "limit" in error_str:
        return ProviderRateLimitError
    if "401" in error_str or "unauthorized" in error_str or "authentication" in error_str:
        return ProviderAuthError
    if isinstance(error, TimeoutError) or any(
        p in error_str for p in ("timeout", "timed out", "502", "503", "server error")
    ):
        return ProviderTransientError
    return ProviderFatalError


def _default_status(cls: type[ProviderError]) -> int | None:
    if issubclass(cls, ProviderRateLimitError):
        return 429
    if issubclass(cls, ProviderTransientError):
        return 503
    if issubclass(cls, ProviderAuthError):
        return 401
    return None


def wrap_error(error: BaseException) -> ProviderError:
    """Wrap an exception in the appropriate ProviderError subclass.

    If the error is already a ProviderError, returns it unchanged.
    """
    if isinstance(error, ProviderError):
        return error
    cls = classify_error(error)
    status = _status_of(error)
    if status is None:
        status = _default_status(cls)
    return cls(str(error) or type(error).__name__, original=error, status=status)
