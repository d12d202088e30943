"""Tests for typed configuration loading."""

from __future__ import annotations

import pytest

from safety_orchestrator.config import (
    MCPServerConfig,
    OrchestratorConfig,
    ProviderConfig,
)
from safety_orchestrator.errors import ConfigurationError


class TestFromEnv:
    def test_defaults(self) -> None:
        config = OrchestratorConfig.from_env({})
        assert config.provider.provider == "openai"
        assert config.provider.model == "gpt-4o-mini"
        assert config.provider.temperature == 0.2
        assert config.provider.max_tokens == 4000
        assert config.provider.timeout_s == 60.0
        assert config.parallelism == 3
        assert config.max_iterations == 5
        assert config.mcp.command == "node"
        assert config.mcp.args == ("server/mcp_server.js",)
        assert config.mcp.env == {"TZ": "Asia/Seoul"}
        assert config.http_port == 5057
        assert config.log_dir is None

    def test_overrides(self) -> None:
        config = OrchestratorConfig.from_env(
            {
                "LLM_PROVIDER": "Anthropic",
                "LLM_MODEL": "claude-sonnet-4-5",
                "LLM_TEMPERATURE": "0.7",
                "LLM_MAX_TOKENS": "2048",
                "REQUEST_TIMEOUT_MS": "15000",
                "PARALLEL_LIMIT": "5",
                "MAX_ITERATIONS": "8",
                "MCP_COMMAND": "python",
                "MCP_ARGS": "-m report_tools --stdio",
                "MCP_TOOL_TIMEOUT_MS": "2500",
                "HTTP_PORT": "8080",
                "LOG_DIR": "/tmp/logs",
                "LOG_LEVEL": "debug",
                "LLM_API_KEY": "sk-secret",
            }
        )
        assert config.provider.provider == "anthropic"
        assert config.provider.model == "claude-sonnet-4-5"
        assert config.provider.temperature == 0.7
        assert config.provider.max_tokens == 2048
        assert config.provider.timeout_s == 15.0
        assert config.parallelism == 5
        assert config.max_iterations == 8
        assert config.mcp.command == "python"
        assert config.mcp.args == ("-m", "report_tools", "--stdio")
        assert config.mcp.tool_timeout_s == 2.5
        assert config.http_port == 8080
        assert config.log_dir == "/tmp/logs"
        assert config.log_level == "DEBUG"
        assert config.provider.api_key == "sk-secret"

    def test_api_key_hidden_from_repr(self) -> None:
        config = OrchestratorConfig.from_env({"LLM_API_KEY": "sk-secret"})
        assert "sk-secret" not in repr(config)

    def test_unparseable_numbers_fall_back(self) -> None:
        config = OrchestratorConfig.from_env({"PARALLEL_LIMIT": "many", "LLM_TEMPERATURE": "warm"})
        assert config.parallelism == 3
        assert config.provider.temperature == 0.2

    def test_non_positive_limits_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            OrchestratorConfig.from_env({"PARALLEL_LIMIT": "0"})
        with pytest.raises(ConfigurationError):
            OrchestratorConfig.from_env({"MAX_ITERATIONS": "-1"})


class TestValidation:
    def test_temperature_range(self) -> None:
        with pytest.raises(ConfigurationError):
            ProviderConfig(temperature=3.0)

    def test_max_tokens_positive(self) -> None:
        with pytest.raises(ConfigurationError):
            ProviderConfig(max_tokens=0)

    def test_frozen(self) -> None:
        config = MCPServerConfig()
        with pytest.raises(AttributeError):
            config.command = "python"  # type: ignore[misc]
