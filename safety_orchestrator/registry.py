"""Tool registries: the channel through which the loop lists and invokes tools.

Two implementations share one contract (``ToolRegistry``):

- ``MCPToolRegistry`` spawns an MCP server subprocess over stdio and talks to
  it through an ``mcp.ClientSession``.
- ``LocalToolRegistry`` dispatches to plain Python callables in-process
  (no subprocess), for embedding and tests.

Usage::

    async with MCPToolRegistry(config.mcp) as registry:
        tools = await registry.list_tools()
        payload = await registry.call_tool("get_template_fields", {})
"""

from __future__ import annotations

import asyncio
import inspect
import json as _json
import logging
from contextlib import AsyncExitStack
from typing import Any, Callable, Protocol, runtime_checkable

from safety_orchestrator.config import MCPServerConfig
from safety_orchestrator.errors import MCPConnectionError, ToolCatalogError, ToolInvocationError
from safety_orchestrator.models import ToolDescriptor


@runtime_checkable
class ToolRegistry(Protocol):
    """What the orchestration loop needs from a tool channel."""

    async def list_tools(self) -> list[ToolDescriptor]: ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any: ...


def ensure_unique_names(descriptors: list[ToolDescriptor]) -> None:
    """Raise ToolCatalogError if two descriptors share a name."""
    seen: set[str] = set()
    for descriptor in descriptors:
        if descriptor.name in seen:
            raise ToolCatalogError(f"Duplicate tool name in catalog: {descriptor.name!r}")
        seen.add(descriptor.name)


# ---------------------------------------------------------------------------
# MCP over stdio
# ---------------------------------------------------------------------------


def _import_mcp() -> tuple[Any, ...]:
    """Import mcp client components.

    Returns:
        (stdio_client, StdioServerParameters, ClientSession)
    """
    try:
        from mcp import ClientSession
        from mcp.client.stdio import StdioServerParameters, stdio_client
    except ImportError:
        raise ImportError(
            "mcp package is required for the MCP tool registry. "
            "Install with: pip install safety-orchestrator"
        ) from None
    return stdio_client, StdioServerParameters, ClientSession


def _payload_from_result(result: Any) -> Any:
    """Extract a structured payload from an MCP CallToolResult."""
    structured = getattr(result, "structuredContent", None)
    if structured is not None:
        return structured

    parts: list[str] = []
    for item in getattr(result, "content", None) or []:
        text = getattr(item, "text", None)
        parts.append(text if isinstance(text, str) else str(item))
    text = "\n".join(parts)
    try:
        return _json.loads(text)
    except ValueError:
        return text


class MCPToolRegistry:
    """One stdio MCP server connection, owned for the duration of a run."""

    def __init__(
        self,
        server: MCPServerConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.server = server
        self._log = logger if logger is not None else logging.getLogger(__name__)
        self._stack: AsyncExitStack | None = None
        self._session: Any = None
        self._known_tools: set[str] | None = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Spawn the server and initialize the session.

        Raises:
            MCPConnectionError: the server could not be started or did not
                initialize within ``init_timeout_s``.
        """
        if self._session is not None:
            self._log.debug("MCP registry already connected")
            return

        stdio_client, StdioServerParameters, ClientSession = _import_mcp()
        params = StdioServerParameters(
            command=self.server.command,
            args=list(self.server.args),
            env=dict(self.server.env) if self.server.env else None,
            cwd=self.server.cwd,
        )

        stack = AsyncExitStack()
        await stack.__aenter__()
        try:
            read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await asyncio.wait_for(session.initialize(), timeout=self.server.init_timeout_s)
        except Exception as exc:
            await stack.aclose()
            self._log.error(
                "MCP connection failed (%s %s): %s",
                self.server.command, " ".join(self.server.args), exc,
            )
            raise MCPConnectionError(
                f"Could not connect to MCP server {self.server.command!r}: {exc}",
                original=exc,
            ) from exc

        self._stack = stack
        self._session = session
        self._log.info("MCP client connected (%s %s)", self.server.command, " ".join(self.server.args))

    async def close(self) -> None:
        if self._stack is not None:
            stack, self._stack = self._stack, None
            self._session = None
            self._known_tools = None
            await stack.aclose()

    async def __aenter__(self) -> "MCPToolRegistry":
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def _require_session(self) -> Any:
        if self._session is None:
            raise MCPConnectionError("MCP registry is not connected; call connect() first")
        return self._session

    async def list_tools(self) -> list[ToolDescriptor]:
        session = self._require_session()
        try:
            result = await session.list_tools()
        except Exception as exc:
            raise MCPConnectionError(f"Listing tools failed: {exc}", original=exc) from exc

        descriptors = [ToolDescriptor.from_mcp(tool) for tool in result.tools]
        ensure_unique_names(descriptors)
        self._known_tools = {d.name for d in descriptors}
        self._log.info("Available tools: %d", len(descriptors))
        return descriptors

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        session = self._require_session()
        if self._known_tools is not None and name not in self._known_tools:
            raise ToolInvocationError(name, f"Unknown tool: {name}")

        self._log.debug("Calling tool %s", name)
        try:
            result = await asyncio.wait_for(
                session.call_tool(name, arguments),
                timeout=self.server.tool_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise ToolInvocationError(
                name, f"timed out after {self.server.tool_timeout_s}s"
            ) from exc
        except Exception as exc:
            self._log.error("Tool call failed (%s): %s", name, exc)
            raise ToolInvocationError(name, exc) from exc

        payload = _payload_from_result(result)
        if getattr(result, "isError", False):
            raise ToolInvocationError(
                name, payload if isinstance(payload, str) else _json.dumps(payload, default=str)
            )
        return payload


# ---------------------------------------------------------------------------
# In-process tools
# ---------------------------------------------------------------------------


ToolHandler = Callable[..., Any]


class LocalToolRegistry:
    """Registry backed by Python callables. Handlers receive arguments as kwargs.

    Usage::

        registry = LocalToolRegistry()

        @registry.tool(input_schema={"type": "object", "properties": {"site": {"type": "string"}}})
        async def create_report(site: str) -> dict:
            '''Create a draft safety report.'''
            ...
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._log = logger if logger is not None else logging.getLogger(__name__)
        self._descriptors: dict[str, ToolDescriptor] = {}
        self._handlers: dict[str, ToolHandler] = {}

    def add(
        self,
        name: str,
        handler: ToolHandler,
        *,
        description: str = "",
        input_schema: dict[str, Any] | None = None,
    ) -> None:
        if name in self._handlers:
            raise ToolCatalogError(f"Duplicate tool name in catalog: {name!r}")
        if not description and handler.__doc__:
            description = handler.__doc__.strip().split("\n")[0].strip()
        self._descriptors[name] = ToolDescriptor(
            name=name,
            description=description,
            input_schema=input_schema,
        )
        self._handlers[name] = handler

    def tool(
        self,
        name: str | None = None,
        *,
        description: str = "",
        input_schema: dict[str, Any] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of :meth:`add`."""

        def decorator(fn: ToolHandler) -> ToolHandler:
            self.add(name or fn.__name__, fn, description=description, input_schema=input_schema)
            return fn

        return decorator

    async def list_tools(self) -> list[ToolDescriptor]:
        return list(self._descriptors.values())

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        handler = self._handlers.get(name)
        if handler is None:
            raise ToolInvocationError(name, f"Unknown tool: {name}")
        try:
            result = handler(**arguments)
            if inspect.isawaitable(result):
                result = await result
        except ToolInvocationError:
            raise
        except Exception as exc:
            raise ToolInvocationError(name, f"{type(exc).__name__}: {exc}") from exc
        return result
