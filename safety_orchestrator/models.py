"""Value types shared by the registry, schema bridge and orchestration loop.

Messages themselves stay plain OpenAI-format dicts
(``{"role": ..., "content": ..., "tool_calls": [...]}``) so they can be handed
to litellm unchanged.
"""

from __future__ import annotations

import json as _json
from dataclasses import dataclass, field
from typing import Any

Message = dict[str, Any]


@dataclass(frozen=True)
class ToolDescriptor:
    """One entry in the tool catalog: name, description, input schema."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] | str | None = None

    @classmethod
    def from_mcp(cls, tool: Any) -> "ToolDescriptor":
        """Build from an MCP ``Tool`` object (or anything with the same attributes)."""
        return cls(
            name=tool.name,
            description=getattr(tool, "description", None) or "",
            input_schema=getattr(tool, "inputSchema", None),
        )


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool call transcribed from an assistant turn."""

    id: str
    tool_name: str
    raw_arguments: str

    @classmethod
    def from_openai(cls, tool_call: dict[str, Any]) -> "ToolCallRequest":
        fn = tool_call.get("function") or {}
        raw = fn.get("arguments")
        if raw is None:
            raw = ""
        elif not isinstance(raw, str):
            # Some providers hand back already-decoded arguments.
            raw = _json.dumps(raw, ensure_ascii=False)
        return cls(
            id=str(tool_call.get("id") or ""),
            tool_name=str(fn.get("name") or ""),
            raw_arguments=raw,
        )


def render_payload(payload: Any) -> str:
    """JSON text of a tool payload. Raises TypeError/ValueError if it cannot be encoded."""
    return _json.dumps(payload, ensure_ascii=False, default=str)


@dataclass
class ToolExecutionResult:
    """Outcome of exactly one ToolCallRequest.

    ``content`` is the already-encoded payload when the loop produced it;
    otherwise the payload is encoded on demand.
    """

    call_id: str
    tool_name: str
    payload: Any = None
    error: str | None = None
    duration_ms: float = 0.0
    content: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_message(self) -> Message:
        """Render as the ``tool`` message answering the originating call."""
        if self.error is not None:
            content = f"Error: {self.error}"
        elif self.content is not None:
            content = self.content
        else:
            content = render_payload(self.payload)
        return {
            "role": "tool",
            "tool_call_id": self.call_id,
            "name": self.tool_name,
            "content": content,
        }


@dataclass
class LoopResult:
    """What ``run_loop`` hands back to a front end.

    Attributes:
        message: Last message of the conversation. An assistant message when the
            model finished; a ``tool`` message when the iteration budget ran out.
        history: The full conversation, including the caller's initial messages.
        iterations: Provider turns taken.
        tools: The function schemas that were offered to the model.
        tool_results: Every tool execution, in call order across all turns.
    """

    message: Message
    history: list[Message]
    iterations: int
    tools: list[dict[str, Any]]
    tool_results: list[ToolExecutionResult] = field(default_factory=list)

    @property
    def budget_exhausted(self) -> bool:
        return self.message.get("role") != "assistant"

    @property
    def content(self) -> str | None:
        """Final assistant text, or None when the budget ran out."""
        if self.budget_exhausted:
            return None
        return self.message.get("content")
