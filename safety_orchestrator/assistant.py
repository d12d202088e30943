"""Report assistant: what the HTTP and CLI front ends share.

Turns a free-text request into a conversation (choosing the system prompt),
owns one registry connection plus one provider, and runs the loop::

    async with ReportAssistant(OrchestratorConfig.from_env()) as assistant:
        result = await assistant.generate("Create a safety inspection report for Site A")
        print(result.iterations, result.content)
"""

from __future__ import annotations

import logging
from typing import Any

from safety_orchestrator import prompts
from safety_orchestrator.config import OrchestratorConfig
from safety_orchestrator.loop import run_loop
from safety_orchestrator.models import LoopResult, Message, ToolDescriptor
from safety_orchestrator.providers import ChatProvider, make_provider
from safety_orchestrator.registry import MCPToolRegistry, ToolRegistry

FILL_REPORT_TRIGGERS: tuple[str, ...] = ("fill_report", "보고서 생성", "generate report")

FILL_REPORT_INSTRUCTION = (
    "Important: when using the fill_report tool, first check the template structure with "
    "get_template_fields, validate the data with validate_report_data, and pass complete "
    "site, org and visit objects."
)

FILL_REPORT_REQUIRED_FIELDS: tuple[str, ...] = (
    "site.name",
    "site.address",
    "org.name",
    "org.inspector",
    "visit.date",
    "visit.round",
    "visit.round_total",
)

DATE_FORMAT_HINT = 'visit.date must use the "YY.MM.DD(요일)" format, e.g. "25.08.22(목)"'
STRUCTURE_HINT = (
    "Check the template structure with get_template_fields and validate with "
    "validate_report_data before calling fill_report again"
)


def wants_fill_report(prompt: str) -> bool:
    lowered = prompt.lower()
    return any(trigger in lowered for trigger in FILL_REPORT_TRIGGERS)


def select_system_prompt(prompt: str, task_type: str | None = None) -> str:
    """Fill-report requests win; then an explicit known task type; then keyword detection."""
    if wants_fill_report(prompt):
        return prompts.fill_report_prompt()
    if task_type and prompts.is_known_task_type(task_type):
        return prompts.get_prompt_for_task(task_type).system
    return prompts.get_prompt_for_task(prompts.detect_task_type(prompt)).system


def build_conversation(prompt: str, task_type: str | None = None) -> list[Message]:
    """Initial messages for one request: system prompt, then the (possibly amended) user prompt."""
    user = prompt.strip()
    if wants_fill_report(user):
        user = f"{user}\n\n{FILL_REPORT_INSTRUCTION}"
    return [
        {"role": "system", "content": select_system_prompt(prompt, task_type)},
        {"role": "user", "content": user},
    ]


def fill_report_hint(tool_name: str, error: str) -> str | None:
    """Remediation text for a failed fill_report call."""
    if tool_name != "fill_report":
        return None
    lowered = error.lower()
    if "date" in lowered or "날짜" in error:
        return DATE_FORMAT_HINT
    return STRUCTURE_HINT


class ReportAssistant:
    """One registry connection and one provider, reused across prompts.

    Both collaborators can be injected; by default they are built from
    ``config`` (stdio MCP server, litellm provider).
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        *,
        provider: ChatProvider | None = None,
        registry: ToolRegistry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._log = logger if logger is not None else logging.getLogger(__name__)
        self._provider = provider
        self._registry = registry
        self._owns_registry = registry is None

    @property
    def provider(self) -> ChatProvider:
        if self._provider is None:
            self._provider = make_provider(self.config.provider, logger=self._log)
        return self._provider

    @property
    def registry(self) -> ToolRegistry:
        if self._registry is None:
            raise RuntimeError("ReportAssistant is not open; use 'async with'")
        return self._registry

    async def __aenter__(self) -> "ReportAssistant":
        # Provider first: a bad provider name should fail before a subprocess is spawned.
        _ = self.provider
        if self._registry is None:
            registry = MCPToolRegistry(self.config.mcp, logger=self._log)
            await registry.connect()
            self._registry = registry
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._owns_registry and isinstance(self._registry, MCPToolRegistry):
            await self._registry.close()
            self._registry = None

    async def list_tools(self) -> list[ToolDescriptor]:
        return await self.registry.list_tools()

    async def generate(
        self,
        prompt: str,
        *,
        task_type: str | None = None,
        max_iterations: int | None = None,
    ) -> LoopResult:
        messages = build_conversation(prompt, task_type)
        if wants_fill_report(prompt):
            self._log.info("fill_report request detected; using the fill-report system prompt")
        return await run_loop(
            provider=self.provider,
            registry=self.registry,
            messages=messages,
            parallelism=self.config.parallelism,
            max_iterations=max_iterations or self.config.max_iterations,
            tool_timeout_s=self.config.mcp.tool_timeout_s,
            error_hint=fill_report_hint,
            logger=self._log,
        )
