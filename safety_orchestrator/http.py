"""FastAPI application exposing the safety-report assistant over HTTP."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from safety_orchestrator import __version__
from safety_orchestrator.assistant import (
    DATE_FORMAT_HINT,
    FILL_REPORT_REQUIRED_FIELDS,
    ReportAssistant,
    wants_fill_report,
)
from safety_orchestrator.config import OrchestratorConfig
from safety_orchestrator.errors import (
    ConfigurationError,
    MCPConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTransientError,
    ToolCatalogError,
)

logger = logging.getLogger(__name__)

AssistantFactory = Callable[[], ReportAssistant]

GENERATE_PATH = "/v1/assistants/safety-report/generate"

EXAMPLE_REQUEST: dict[str, Any] = {
    "prompt": "Create a safety inspection report for the Gangnam-gu construction site",
    "taskType": "SAFETY_INSPECTION",
    "options": {"maxIterations": 5},
}

FILL_REPORT_TIPS: dict[str, Any] = {
    "steps": [
        "Check the template structure with get_template_fields first",
        "Validate the data with validate_report_data before fill_report",
    ],
    "requiredFields": list(FILL_REPORT_REQUIRED_FIELDS),
    "dateFormat": DATE_FORMAT_HINT,
}

STATUS_BY_ERROR_TYPE: dict[str, int] = {
    "rate_limit": 429,
    "server_error": 503,
    "connection_error": 503,
    "validation": 400,
    "fill_report_error": 400,
    "provider_error": 502,
    "unknown": 500,
}

SUGGESTIONS: dict[str, str] = {
    "rate_limit": "The model provider is rate limiting requests. Wait a moment and retry.",
    "server_error": "The model provider is temporarily unavailable. Retry shortly.",
    "connection_error": "The tool server could not be reached. Check MCP_COMMAND and MCP_ARGS.",
    "validation": "Check the request body against the example.",
    "fill_report_error": (
        "Check the template structure with get_template_fields and validate the data "
        "with validate_report_data."
    ),
    "provider_error": "Check the provider configuration (LLM_PROVIDER, LLM_MODEL, API key).",
    "unknown": "Check the server logs for details.",
}


class GenerateOptions(BaseModel):
    maxIterations: Optional[int] = Field(default=None, ge=1)


class GenerateRequest(BaseModel):
    prompt: Optional[str] = None
    taskType: Optional[str] = None
    options: GenerateOptions = Field(default_factory=GenerateOptions)


def classify_failure(exc: BaseException) -> str:
    """Map an exception raised while generating to a response ``errorType``."""
    if isinstance(exc, ProviderRateLimitError):
        return "rate_limit"
    if isinstance(exc, ProviderTransientError):
        return "server_error"
    if isinstance(exc, (MCPConnectionError, ToolCatalogError)):
        return "connection_error"
    if isinstance(exc, (ConfigurationError, ValueError)):
        return "validation"
    if isinstance(exc, ProviderError):
        return "provider_error"
    message = str(exc)
    if "fill_report" in message or "visit" in message:
        return "fill_report_error"
    return "unknown"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed(t0: float) -> str:
    return f"{int((time.monotonic() - t0) * 1000)}ms"


def create_app(
    config: OrchestratorConfig | None = None,
    assistant_factory: AssistantFactory | None = None,
) -> FastAPI:
    app = FastAPI(title="Safety Report Orchestrator", version=__version__)
    _config = config or OrchestratorConfig.from_env()

    def make_assistant() -> ReportAssistant:
        if assistant_factory is not None:
            return assistant_factory()
        return ReportAssistant(_config)

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        t0 = time.monotonic()
        response = await call_next(request)
        logger.info(
            "%s %s - %d - %s",
            request.method, request.url.path, response.status_code, _elapsed(t0),
        )
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={
                    "success": False,
                    "error": {"message": "Not found", "path": request.url.path},
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": {"message": str(exc.detail), "path": request.url.path}},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request body",
                "errorType": "validation",
                "details": [err.get("msg") for err in exc.errors()],
                "example": EXAMPLE_REQUEST,
            },
        )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__, "timestamp": _timestamp()}

    @app.get("/v1/config")
    async def show_config() -> dict[str, Any]:
        return {
            "provider": _config.provider.provider,
            "model": _config.provider.model,
            "temperature": _config.provider.temperature,
            "maxTokens": _config.provider.max_tokens,
            "parallelism": _config.parallelism,
            "maxIterations": _config.max_iterations,
            "mcp": {"command": _config.mcp.command, "args": list(_config.mcp.args)},
        }

    @app.get("/v1/tools")
    async def list_tools() -> JSONResponse:
        t0 = time.monotonic()
        try:
            async with make_assistant() as assistant:
                tools = await assistant.list_tools()
        except Exception as exc:
            return _failure(exc, t0)
        return JSONResponse(
            content={
                "success": True,
                "count": len(tools),
                "tools": [{"name": t.name, "description": t.description} for t in tools],
            }
        )

    @app.post(GENERATE_PATH)
    async def generate(body: GenerateRequest) -> JSONResponse:
        t0 = time.monotonic()
        prompt = (body.prompt or "").strip()
        if not prompt:
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "error": "prompt is required",
                    "errorType": "validation",
                    "example": EXAMPLE_REQUEST,
                },
            )

        logger.info("Generate request: taskType=%s prompt_chars=%d", body.taskType, len(prompt))
        try:
            async with make_assistant() as assistant:
                result = await assistant.generate(
                    prompt,
                    task_type=body.taskType,
                    max_iterations=body.options.maxIterations,
                )
        except Exception as exc:
            return _failure(exc, t0)

        content: dict[str, Any] = {
            "success": True,
            "duration": _elapsed(t0),
            "iterations": result.iterations,
            "toolCount": len(result.tools),
            "content": result.content,
            "budgetExhausted": result.budget_exhausted,
            "timestamp": _timestamp(),
        }
        if wants_fill_report(prompt):
            content["tips"] = FILL_REPORT_TIPS
        return JSONResponse(content=content)

    return app


def _failure(exc: BaseException, t0: float) -> JSONResponse:
    error_type = classify_failure(exc)
    logger.error("Request failed (%s): %s", error_type, exc, exc_info=error_type == "unknown")
    return JSONResponse(
        status_code=STATUS_BY_ERROR_TYPE[error_type],
        content={
            "success": False,
            "error": str(exc),
            "errorType": error_type,
            "duration": _elapsed(t0),
            "timestamp": _timestamp(),
            "suggestion": SUGGESTIONS[error_type],
        },
    )
