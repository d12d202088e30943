"""Translation between MCP tool schemas and OpenAI function-calling schemas.

MCP:    {"name": "foo", "description": "...", "inputSchema": {...}}
OpenAI: {"type": "function", "function": {"name": "foo", "description": "...", "parameters": {...}}}

Also sanitizes tool outputs before they reach the model, the logs, or a human,
and validates tool-call arguments against the declared input schema.
"""

from __future__ import annotations

import copy
import json as _json
import logging
import re
from typing import Any, Iterable

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from safety_orchestrator.errors import ToolArgumentError
from safety_orchestrator.models import ToolDescriptor

logger = logging.getLogger(__name__)

REDACTION_MARKER = "***"

# Field descriptions the report tools need spelled out for the model.
VISIT_FIELD_HINTS: dict[str, str] = {
    "date": "Visit date (required, format YY.MM.DD(요일), e.g. 25.08.22(목))",
    "round": "Visit round (required, integer)",
    "round_total": "Total number of visit rounds (required, integer)",
}

_PHONE_RE = re.compile(r"(\d{2,3})([-.\s]?)\d{3,4}([-.\s]?)(\d{4})")


def empty_parameters() -> dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


# ---------------------------------------------------------------------------
# Schema conversion
# ---------------------------------------------------------------------------


def _as_descriptor(tool: Any) -> ToolDescriptor:
    if isinstance(tool, ToolDescriptor):
        return tool
    if isinstance(tool, dict):
        return ToolDescriptor(
            name=str(tool.get("name", "")),
            description=tool.get("description") or "",
            input_schema=tool.get("inputSchema", tool.get("input_schema")),
        )
    return ToolDescriptor.from_mcp(tool)


def _apply_visit_hints(properties: dict[str, Any]) -> None:
    visit = properties.get("visit")
    if not isinstance(visit, dict):
        return
    nested = visit.get("properties")
    if not isinstance(nested, dict):
        return
    for key, hint in VISIT_FIELD_HINTS.items():
        field_schema = nested.get(key)
        if isinstance(field_schema, dict):
            field_schema["description"] = hint


def to_parameters(input_schema: dict[str, Any] | str | None) -> dict[str, Any]:
    """Convert a declared input schema into function-call ``parameters``.

    Never raises: anything unparseable or non-object degrades to the empty
    object schema. The caller's schema is never mutated.
    """
    schema: Any = input_schema
    if isinstance(schema, str):
        try:
            schema = _json.loads(schema)
        except ValueError:
            logger.warning("Unparseable input schema string; using empty object schema")
            return empty_parameters()
    if not isinstance(schema, dict):
        return empty_parameters()

    schema_type = schema.get("type", "object" if "properties" in schema else None)
    if schema_type != "object":
        return empty_parameters()

    parameters = copy.deepcopy(schema)
    parameters["type"] = "object"
    properties = parameters.get("properties")
    if not isinstance(properties, dict):
        properties = {}
    parameters["properties"] = properties
    required = parameters.get("required")
    parameters["required"] = [r for r in required if isinstance(r, str)] if isinstance(required, list) else []
    _apply_visit_hints(properties)
    return parameters


def tool_to_function_schema(tool: Any) -> dict[str, Any]:
    """Convert one tool (ToolDescriptor, MCP Tool, or dict) to OpenAI format."""
    descriptor = _as_descriptor(tool)
    return {
        "type": "function",
        "function": {
            "name": descriptor.name,
            "description": descriptor.description or f"Tool: {descriptor.name}",
            "parameters": to_parameters(descriptor.input_schema),
        },
    }


def tools_to_function_schemas(tools: Iterable[Any]) -> list[dict[str, Any]]:
    """Convert a tool catalog. One schema per tool, same order, names verbatim."""
    return [tool_to_function_schema(tool) for tool in tools]


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


def validate_tool_arguments(descriptor: ToolDescriptor, arguments: dict[str, Any]) -> None:
    """Check arguments against the tool's declared schema.

    Missing required fields and type mismatches raise ToolArgumentError.
    Unknown extra fields are tolerated.
    """
    schema = to_parameters(descriptor.input_schema)
    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as exc:
        logger.warning(
            "Tool %s declares an invalid input schema; skipping validation: %s",
            descriptor.name, exc.message,
        )
        return

    validator = Draft202012Validator(schema)
    problems: list[str] = []
    for error in sorted(validator.iter_errors(arguments), key=lambda e: [str(p) for p in e.absolute_path]):
        if error.validator == "additionalProperties":
            continue
        location = "/".join(str(p) for p in error.absolute_path)
        problems.append(f"{location}: {error.message}" if location else error.message)

    if problems:
        raise ToolArgumentError(
            descriptor.name,
            "invalid arguments: " + "; ".join(problems),
        )


# ---------------------------------------------------------------------------
# Output sanitization
# ---------------------------------------------------------------------------


def mask_phone(value: str) -> str:
    return _PHONE_RE.sub(r"\1\2****\3\4", value, count=1)


def mask_address(value: str) -> str:
    parts = value.split(" ")
    if len(parts) > 2:
        parts[2] = REDACTION_MARKER
        return " ".join(parts)
    return value


def mask_email(value: str) -> str:
    local, at, domain = value.partition("@")
    if not at or len(local) <= 2:
        return value
    return f"{local[:2]}{REDACTION_MARKER}@{domain}"


_FIELD_MASKS = {
    "phone": mask_phone,
    "address": mask_address,
    "email": mask_email,
}


def sanitize_tool_output(output: Any) -> Any:
    """Mask phone/address/email fields of a tool result.

    Strings and non-dict values pass through unchanged. Dicts are shallow
    copied and only their top-level known fields are touched.
    """
    if not isinstance(output, dict):
        return output

    sanitized = dict(output)
    for key, mask in _FIELD_MASKS.items():
        value = sanitized.get(key)
        if isinstance(value, str):
            sanitized[key] = mask(value)
    return sanitized
