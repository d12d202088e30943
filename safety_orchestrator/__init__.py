"""Tool-orchestration loop for construction-safety reports.

An LLM proposes tool calls, an MCP tool server executes them (bounded
concurrency, per-call failures captured), and the results feed back until
the model answers or the iteration budget runs out.

Usage:
    from safety_orchestrator import OrchestratorConfig, ReportAssistant

    config = OrchestratorConfig.from_env()
    async with ReportAssistant(config) as assistant:
        result = await assistant.generate("Create a safety inspection report for Site A")
        print(result.iterations, result.content)

    # Lower level: any provider, any registry
    from safety_orchestrator import LocalToolRegistry, make_provider, run_loop

    result = await run_loop(
        provider=make_provider(config.provider),
        registry=registry,
        messages=[{"role": "user", "content": "..."}],
        parallelism=3,
        max_iterations=5,
    )

Front ends:
    python -m safety_orchestrator "..."          # CLI
    python -m safety_orchestrator.server         # HTTP (FastAPI + uvicorn)
"""

__version__ = "0.1.0"

from safety_orchestrator.assistant import ReportAssistant, build_conversation
from safety_orchestrator.config import (
    MCPServerConfig,
    OrchestratorConfig,
    ProviderConfig,
)
from safety_orchestrator.errors import (
    ConfigurationError,
    MCPConnectionError,
    OrchestratorError,
    ProviderAuthError,
    ProviderError,
    ProviderFatalError,
    ProviderRateLimitError,
    ProviderTransientError,
    ToolArgumentError,
    ToolCatalogError,
    ToolInvocationError,
    classify_error,
    wrap_error,
)
from safety_orchestrator.loop import execute_tool_calls, run_loop, run_simple
from safety_orchestrator.models import (
    LoopResult,
    Message,
    ToolCallRequest,
    ToolDescriptor,
    ToolExecutionResult,
)
from safety_orchestrator.providers import (
    ChatProvider,
    LiteLLMProvider,
    RetryPolicy,
    make_provider,
)
from safety_orchestrator.registry import LocalToolRegistry, MCPToolRegistry, ToolRegistry
from safety_orchestrator.schema_bridge import (
    sanitize_tool_output,
    to_parameters,
    tool_to_function_schema,
    tools_to_function_schemas,
)

__all__ = [
    "__version__",
    "ChatProvider",
    "ConfigurationError",
    "LiteLLMProvider",
    "LocalToolRegistry",
    "LoopResult",
    "MCPConnectionError",
    "MCPServerConfig",
    "MCPToolRegistry",
    "Message",
    "OrchestratorConfig",
    "OrchestratorError",
    "ProviderAuthError",
    "ProviderConfig",
    "ProviderError",
    "ProviderFatalError",
    "ProviderRateLimitError",
    "ProviderTransientError",
    "ReportAssistant",
    "RetryPolicy",
    "ToolArgumentError",
    "ToolCallRequest",
    "ToolCatalogError",
    "ToolDescriptor",
    "ToolExecutionResult",
    "ToolInvocationError",
    "ToolRegistry",
    "build_conversation",
    "classify_error",
    "execute_tool_calls",
    "make_provider",
    "run_loop",
    "run_simple",
    "sanitize_tool_output",
    "to_parameters",
    "tool_to_function_schema",
    "tools_to_function_schemas",
    "wrap_error",
]
