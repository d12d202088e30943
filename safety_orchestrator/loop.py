"""The orchestration loop: model proposes tool calls, tools run, results feed back.

    result = await run_loop(
        provider=provider,
        registry=registry,
        messages=[{"role": "system", "content": ...}, {"role": "user", "content": ...}],
        parallelism=3,
        max_iterations=5,
    )

States per iteration::

    AwaitingProviderTurn --(no tool calls)--> Done
    AwaitingProviderTurn --(tool calls)--> ExecutingTools --> AwaitingProviderTurn
    AwaitingProviderTurn --(iteration budget spent)--> Done(partial)

The budget-exhausted case is a normal return: ``result.message`` is then a
``tool`` message and ``result.budget_exhausted`` is True.

Tool calls of one assistant turn run concurrently, bounded by a semaphore, and
their results are appended in call order. A failing call becomes an error
``tool`` message; it never cancels its siblings or aborts the run. Provider and
registry-connection failures do propagate.
"""

from __future__ import annotations

import asyncio
import json as _json
import logging
import time
from typing import Any, Callable, Optional

from safety_orchestrator.errors import ToolArgumentError, ToolInvocationError
from safety_orchestrator.models import (
    LoopResult,
    Message,
    ToolCallRequest,
    ToolDescriptor,
    ToolExecutionResult,
    render_payload,
)
from safety_orchestrator.providers import ChatProvider
from safety_orchestrator.registry import ToolRegistry, ensure_unique_names
from safety_orchestrator.schema_bridge import (
    sanitize_tool_output,
    tools_to_function_schemas,
    validate_tool_arguments,
)

ErrorHint = Callable[[str, str], Optional[str]]
"""``(tool_name, error_text) -> extra guidance`` appended to a failed call's message."""


def parse_arguments(request: ToolCallRequest) -> dict[str, Any]:
    """Decode a call's raw JSON arguments. Empty means no arguments."""
    raw = request.raw_arguments.strip()
    if not raw:
        return {}
    try:
        arguments = _json.loads(raw)
    except ValueError as exc:
        raise ToolArgumentError(request.tool_name, f"invalid JSON arguments: {exc}") from exc
    if not isinstance(arguments, dict):
        raise ToolArgumentError(
            request.tool_name,
            f"arguments must be a JSON object, got {type(arguments).__name__}",
        )
    return arguments


async def _execute_one(
    request: ToolCallRequest,
    registry: ToolRegistry,
    catalog: dict[str, ToolDescriptor],
    *,
    semaphore: asyncio.Semaphore,
    timeout_s: float | None,
    validate: bool,
    error_hint: ErrorHint | None,
    log: logging.Logger,
) -> ToolExecutionResult:
    async with semaphore:
        t0 = time.monotonic()
        arguments: dict[str, Any] | None = None
        try:
            arguments = parse_arguments(request)
            descriptor = catalog.get(request.tool_name)
            if descriptor is None:
                raise ToolInvocationError(request.tool_name, f"Unknown tool: {request.tool_name}")
            if validate:
                validate_tool_arguments(descriptor, arguments)
            payload = await asyncio.wait_for(
                registry.call_tool(request.tool_name, arguments),
                timeout=timeout_s,
            )
            payload = sanitize_tool_output(payload)
            try:
                content = render_payload(payload)
            except (TypeError, ValueError) as exc:
                raise ToolInvocationError(
                    request.tool_name, f"result is not JSON-encodable: {exc}"
                ) from exc
        except Exception as exc:
            duration_ms = round((time.monotonic() - t0) * 1000, 1)
            if isinstance(exc, ToolInvocationError):
                error = exc.detail
            elif isinstance(exc, asyncio.TimeoutError):
                error = f"timed out after {timeout_s}s"
            else:
                error = f"{type(exc).__name__}: {exc}"
            if error_hint is not None:
                hint = error_hint(request.tool_name, error)
                if hint:
                    error = f"{error}. {hint}"
            log.warning(
                "Tool call failed: %s (%s) in %.0fms: %s",
                request.tool_name, request.id, duration_ms, error,
                extra={"data": _tool_log_data(request, arguments, duration_ms, error=error)},
            )
            return ToolExecutionResult(
                call_id=request.id,
                tool_name=request.tool_name,
                error=error,
                duration_ms=duration_ms,
            )

        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        log.info(
            "Tool call: %s (%s) ok in %.0fms", request.tool_name, request.id, duration_ms,
            extra={"data": _tool_log_data(request, arguments, duration_ms)},
        )
        return ToolExecutionResult(
            call_id=request.id,
            tool_name=request.tool_name,
            payload=payload,
            duration_ms=duration_ms,
            content=content,
        )


def _tool_log_data(
    request: ToolCallRequest,
    arguments: dict[str, Any] | None,
    duration_ms: float,
    *,
    error: str | None = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "tool": request.tool_name,
        "callId": request.id,
        "arguments": arguments,
        "success": error is None,
        "durationMs": duration_ms,
    }
    if error is not None:
        data["error"] = error
    return data


async def execute_tool_calls(
    requests: list[ToolCallRequest],
    registry: ToolRegistry,
    catalog: dict[str, ToolDescriptor],
    *,
    semaphore: asyncio.Semaphore,
    timeout_s: float | None = None,
    validate: bool = True,
    error_hint: ErrorHint | None = None,
    logger: logging.Logger | None = None,
) -> list[ToolExecutionResult]:
    """Run one turn's tool calls concurrently; results come back in request order."""
    log = logger if logger is not None else logging.getLogger(__name__)
    return list(
        await asyncio.gather(
            *(
                _execute_one(
                    request,
                    registry,
                    catalog,
                    semaphore=semaphore,
                    timeout_s=timeout_s,
                    validate=validate,
                    error_hint=error_hint,
                    log=log,
                )
                for request in requests
            )
        )
    )


async def run_loop(
    *,
    provider: ChatProvider,
    registry: ToolRegistry,
    messages: list[Message],
    parallelism: int,
    max_iterations: int,
    tool_timeout_s: float | None = None,
    validate_arguments: bool = True,
    error_hint: ErrorHint | None = None,
    logger: logging.Logger | None = None,
) -> LoopResult:
    """Drive the tool-calling conversation until the model answers or the budget runs out.

    Args:
        provider: Chat provider; its own retry policy covers transient failures.
        registry: Connected tool registry. Listed once; the catalog is fixed for the run.
        messages: Initial conversation (optional system message, then user). Not mutated.
        parallelism: Max tool calls in flight at once.
        max_iterations: Max provider turns.
        tool_timeout_s: Per-call timeout enforced by the loop (None = registry's own).
        validate_arguments: Check arguments against each tool's input schema before dispatch.
        error_hint: Optional remediation text for failed calls.
        logger: Defaults to this module's logger.

    Raises:
        ValueError: parallelism or max_iterations below 1.
        ProviderError: provider failure (after its retry).
        MCPConnectionError / ToolCatalogError: the catalog could not be listed.
    """
    if parallelism < 1:
        raise ValueError(f"parallelism must be >= 1, got {parallelism}")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
    log = logger if logger is not None else logging.getLogger(__name__)

    history: list[Message] = list(messages)
    log.info(
        "Orchestrator loop start: messages=%d parallelism=%d max_iterations=%d",
        len(history), parallelism, max_iterations,
    )

    descriptors = await registry.list_tools()
    ensure_unique_names(descriptors)
    catalog = {d.name: d for d in descriptors}
    function_schemas = tools_to_function_schemas(descriptors)
    log.info("Converted %d MCP tools to function schemas", len(function_schemas))

    semaphore = asyncio.Semaphore(parallelism)
    tool_results: list[ToolExecutionResult] = []
    iteration = 0
    finished = False

    while iteration < max_iterations:
        iteration += 1
        log.info("Loop iteration %d/%d", iteration, max_iterations)

        assistant = await provider.chat(history, tools=function_schemas)
        requests = [ToolCallRequest.from_openai(tc) for tc in assistant.get("tool_calls") or []]

        if not requests:
            history.append(assistant)
            finished = True
            log.info("No tool calls; loop done")
            break

        results = await execute_tool_calls(
            requests,
            registry,
            catalog,
            semaphore=semaphore,
            timeout_s=tool_timeout_s,
            validate=validate_arguments,
            error_hint=error_hint,
            logger=log,
        )
        history.append(assistant)
        history.extend(result.to_message() for result in results)
        tool_results.extend(results)

        failures = [r for r in results if not r.ok]
        log.info(
            "Tool calls done: %d (ok=%d, errors=%d)",
            len(results), len(results) - len(failures), len(failures),
        )

    if not finished:
        log.warning("Iteration budget exhausted after %d iterations", iteration)

    log.info("Orchestrator loop done: iterations=%d messages=%d", iteration, len(history))
    return LoopResult(
        message=history[-1],
        history=history,
        iterations=iteration,
        tools=function_schemas,
        tool_results=tool_results,
    )


async def run_simple(
    provider: ChatProvider,
    registry: ToolRegistry,
    prompt: str,
    *,
    system_prompt: str | None = None,
    parallelism: int,
    max_iterations: int,
    **kwargs: Any,
) -> str | None:
    """One prompt in, final assistant text out (None if the budget ran out)."""
    messages: list[Message] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    result = await run_loop(
        provider=provider,
        registry=registry,
        messages=messages,
        parallelism=parallelism,
        max_iterations=max_iterations,
        **kwargs,
    )
    return result.content
