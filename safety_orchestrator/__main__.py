"""Command-line front end for the safety-report orchestrator.

Usage:
    python -m safety_orchestrator "Create a safety inspection report for Site A"
    python -m safety_orchestrator --task-type INCIDENT_ANALYSIS "Analyze the fire at Site B"
    python -m safety_orchestrator --max-iterations 3 "..."
    python -m safety_orchestrator --list-tools
    python -m safety_orchestrator                     # interactive; 'quit' or 'exit' to leave

Configuration comes from the environment (LLM_PROVIDER, LLM_MODEL, MCP_COMMAND, ...).
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time

from safety_orchestrator.assistant import (
    FILL_REPORT_REQUIRED_FIELDS,
    ReportAssistant,
    wants_fill_report,
)
from safety_orchestrator.config import OrchestratorConfig
from safety_orchestrator.errors import ProviderError
from safety_orchestrator.logging_utils import configure_logging
from safety_orchestrator.models import LoopResult

EXIT_WORDS = frozenset({"quit", "exit"})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m safety_orchestrator",
        description="Generate construction-safety reports with an LLM and MCP tools",
    )
    parser.add_argument("prompt", nargs="*", help="Request text; omit for interactive mode")
    parser.add_argument("--task-type", help="SAFETY_REPORT, INCIDENT_ANALYSIS, SAFETY_INSPECTION or COMPLIANCE_REPORT")
    parser.add_argument("--max-iterations", type=int, help="Override MAX_ITERATIONS for this run")
    parser.add_argument("--list-tools", action="store_true", help="List the tool server's tools and exit")
    parser.add_argument("--log-level", help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...)")
    return parser


def error_hints(error: BaseException) -> list[str]:
    """Remediation hints for a failed run."""
    hints: list[str] = []
    status = error.status if isinstance(error, ProviderError) else None
    message = str(error)
    lowered = message.lower()
    if status == 429:
        hints.append("Rate limited by the model provider: wait a moment and try again.")
    elif status is not None and status >= 500:
        hints.append("The model provider is having server trouble: try again shortly.")
    if "visit" in lowered:
        hints.append("The visit object needs date, round and round_total.")
    if "date" in lowered or "날짜" in message:
        hints.append('visit.date must use the "YY.MM.DD(요일)" format, e.g. "25.08.22(목)".')
    return hints


def print_result(result: LoopResult, prompt: str, elapsed_s: float) -> None:
    print(f"\nDuration: {elapsed_s:.1f}s | iterations: {result.iterations} | tools: {len(result.tools)}")
    print("-" * 60)
    if result.budget_exhausted:
        print("Iteration budget exhausted before the model produced a final answer.")
    else:
        print(result.content or "")
    if wants_fill_report(prompt):
        print("\nTips:")
        print("  - check the template with get_template_fields first")
        print("  - validate the data with validate_report_data before fill_report")
        print(f"  - required fields: {', '.join(FILL_REPORT_REQUIRED_FIELDS)}")


def print_error(error: BaseException) -> None:
    print(f"\nError: {error}", file=sys.stderr)
    for hint in error_hints(error):
        print(f"  hint: {hint}", file=sys.stderr)


async def _run_one(assistant: ReportAssistant, prompt: str, args: argparse.Namespace) -> bool:
    t0 = time.monotonic()
    try:
        result = await assistant.generate(
            prompt,
            task_type=args.task_type,
            max_iterations=args.max_iterations,
        )
    except Exception as exc:
        print_error(exc)
        return False
    print_result(result, prompt, time.monotonic() - t0)
    return True


async def _interactive(assistant: ReportAssistant, args: argparse.Namespace) -> bool:
    print("Safety report assistant. Type 'quit' or 'exit' to leave.")
    ok = True
    while True:
        try:
            line = await asyncio.to_thread(input, "\n> ")
        except EOFError:
            break
        prompt = line.strip()
        if not prompt:
            continue
        if prompt.lower() in EXIT_WORDS:
            break
        ok = await _run_one(assistant, prompt, args) and ok
    return ok


async def _main(args: argparse.Namespace, config: OrchestratorConfig) -> int:
    async with ReportAssistant(config) as assistant:
        if args.list_tools:
            tools = await assistant.list_tools()
            print(f"{len(tools)} tools:")
            for tool in tools:
                print(f"  {tool.name:<28} {tool.description}")
            return 0
        if args.prompt:
            ok = await _run_one(assistant, " ".join(args.prompt), args)
        else:
            ok = await _interactive(assistant, args)
    return 0 if ok else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.max_iterations is not None and args.max_iterations < 1:
        print("--max-iterations must be >= 1", file=sys.stderr)
        return 2
    try:
        config = OrchestratorConfig.from_env()
        configure_logging(args.log_level or config.log_level, config.log_dir)
        return asyncio.run(_main(args, config))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        print_error(exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
