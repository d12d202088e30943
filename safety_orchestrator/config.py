"""Typed runtime configuration for safety_orchestrator.

Resolved once at process start (``OrchestratorConfig.from_env()``) and passed
explicitly through constructors. Nothing in the package reads the environment
at import time.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

from safety_orchestrator.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 4000
DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_PARALLELISM = 3
DEFAULT_MAX_ITERATIONS = 5
DEFAULT_MCP_COMMAND = "node"
DEFAULT_MCP_ARGS: tuple[str, ...] = ("server/mcp_server.js",)
DEFAULT_MCP_INIT_TIMEOUT_MS = 30_000
DEFAULT_MCP_TOOL_TIMEOUT_MS = 60_000
DEFAULT_HTTP_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 5057


def _default_mcp_env() -> dict[str, str]:
    # Report tools stamp local (KST) dates.
    return {"TZ": "Asia/Seoul"}


@dataclass(frozen=True)
class ProviderConfig:
    """LLM provider settings. Immutable once built."""

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout_s: float = DEFAULT_TIMEOUT_MS / 1000
    api_key: str | None = field(default=None, repr=False)
    api_base: str | None = None

    def __post_init__(self) -> None:
        if not self.provider:
            raise ConfigurationError("provider name must not be empty")
        if not self.model:
            raise ConfigurationError("model name must not be empty")
        if not 0.0 <= self.temperature <= 2.0:
            raise ConfigurationError(
                f"temperature must be within [0, 2], got {self.temperature}"
            )
        if self.max_tokens <= 0:
            raise ConfigurationError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.timeout_s <= 0:
            raise ConfigurationError(f"timeout_s must be positive, got {self.timeout_s}")


@dataclass(frozen=True)
class MCPServerConfig:
    """How to spawn the stdio MCP tool server."""

    command: str = DEFAULT_MCP_COMMAND
    args: tuple[str, ...] = DEFAULT_MCP_ARGS
    env: Mapping[str, str] = field(default_factory=_default_mcp_env)
    cwd: str | None = None
    init_timeout_s: float = DEFAULT_MCP_INIT_TIMEOUT_MS / 1000
    tool_timeout_s: float | None = DEFAULT_MCP_TOOL_TIMEOUT_MS / 1000


@dataclass(frozen=True)
class OrchestratorConfig:
    """Everything a front end needs to assemble a run."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    mcp: MCPServerConfig = field(default_factory=MCPServerConfig)
    parallelism: int = DEFAULT_PARALLELISM
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT
    log_dir: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.parallelism < 1:
            raise ConfigurationError(f"parallelism must be >= 1, got {self.parallelism}")
        if self.max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be >= 1, got {self.max_iterations}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OrchestratorConfig":
        """Build typed config from environment variables."""
        env = os.environ if environ is None else environ

        provider = ProviderConfig(
            provider=env.get("LLM_PROVIDER", DEFAULT_PROVIDER).strip().lower() or DEFAULT_PROVIDER,
            model=env.get("LLM_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL,
            temperature=_float(env, "LLM_TEMPERATURE", DEFAULT_TEMPERATURE),
            max_tokens=_int(env, "LLM_MAX_TOKENS", DEFAULT_MAX_TOKENS),
            timeout_s=_int(env, "REQUEST_TIMEOUT_MS", DEFAULT_TIMEOUT_MS) / 1000,
            api_key=env.get("LLM_API_KEY") or None,
            api_base=env.get("LLM_API_BASE") or None,
        )

        mcp_args_raw = env.get("MCP_ARGS")
        mcp = MCPServerConfig(
            command=env.get("MCP_COMMAND", DEFAULT_MCP_COMMAND),
            args=tuple(mcp_args_raw.split()) if mcp_args_raw else DEFAULT_MCP_ARGS,
            cwd=env.get("MCP_CWD") or None,
            init_timeout_s=_int(env, "MCP_INIT_TIMEOUT_MS", DEFAULT_MCP_INIT_TIMEOUT_MS) / 1000,
            tool_timeout_s=_int(env, "MCP_TOOL_TIMEOUT_MS", DEFAULT_MCP_TOOL_TIMEOUT_MS) / 1000,
        )

        return cls(
            provider=provider,
            mcp=mcp,
            parallelism=_int(env, "PARALLEL_LIMIT", DEFAULT_PARALLELISM),
            max_iterations=_int(env, "MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS),
            http_host=env.get("HTTP_HOST", DEFAULT_HTTP_HOST),
            http_port=_int(env, "HTTP_PORT", DEFAULT_HTTP_PORT),
            log_dir=env.get("LOG_DIR") or None,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; expected an integer. Defaulting to %d.", name, raw, default)
        return default


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; expected a number. Defaulting to %s.", name, raw, default)
        return default
