"""System prompts and user-prompt templates per report task type.

Pure lookups: no I/O, no state. User templates are Jinja2 strings rendered
with ``StrictUndefined`` so a missing required parameter fails loudly::

    task = get_prompt_for_task("SAFETY_INSPECTION")
    user = task.render_user(location="Gangnam-gu", facility="tower crane")

Unknown task types fall back to ``DEFAULT_TASK_TYPE``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateNotFound


class _InlineLoader(BaseLoader):
    """Jinja2 loader for inline strings (no filesystem templates)."""

    def get_source(self, environment: Environment, template: str) -> tuple[str, str | None, None]:
        raise TemplateNotFound(template)


_env = Environment(loader=_InlineLoader(), undefined=StrictUndefined, autoescape=False)

DEFAULT_TASK_TYPE = "SAFETY_REPORT"

_FILL_REPORT_RULES = (
    "**Important**: when calling the fill_report tool, the data must follow this structure:\n"
    "- site object: name, address required\n"
    "- org object: name, inspector required\n"
    "- visit object: date, round, round_total required"
)

SYSTEM_PROMPTS: dict[str, str] = {
    "SAFETY_REPORT": (
        "You are an expert in industrial safety reports. Follow these guidelines:\n\n"
        "1. **Safety first**: put safety first in every task.\n"
        "2. **Legal compliance**: always cite the relevant laws and state the obligations.\n"
        "3. **Concrete and clear**: avoid vague wording; give specific figures and standards.\n"
        "4. **Structured**: organize the report logically and systematically.\n"
        "5. **Practical proposals**: propose realistic, actionable improvements.\n\n"
        f"{_FILL_REPORT_RULES}\n\n"
        "Use the available tools as appropriate to complete the request."
    ),
    "INCIDENT_ANALYSIS": (
        "You are an expert in industrial accident analysis. Follow these principles:\n\n"
        "1. **Root cause analysis**: separate direct causes from root causes.\n"
        "2. **Recurrence prevention**: give concrete measures so similar accidents do not recur.\n"
        "3. **Legal review**: check the relevant laws and standards for obligations.\n"
        "4. **Systematic improvement**: include organizational and managerial improvements.\n\n"
        "**Important**: follow the required data structure when using the fill_report tool."
    ),
    "SAFETY_INSPECTION": (
        "You are a safety inspection expert. Inspect against these criteria:\n\n"
        "1. **Comprehensive inspection**: facilities, equipment, work environment and work methods.\n"
        "2. **Risk assessment**: rate the severity and likelihood of each hazard found.\n"
        "3. **Prioritization**: order the improvements by risk.\n"
        "4. **Concrete improvements**: give an actionable fix for every problem.\n\n"
        "**Important**: follow the required data structure when using the fill_report tool."
    ),
    "COMPLIANCE_REPORT": (
        "You are an expert reviewer of safety-regulation compliance. Check the following:\n\n"
        "1. **Legal compliance**: every requirement of the relevant laws.\n"
        "2. **Regulatory consistency**: whether internal rules match the law.\n"
        "3. **Implementation status**: how the rules are actually carried out.\n"
        "4. **Improvement plan**: a concrete plan for every non-compliance.\n\n"
        "**Important**: follow the required data structure when using the fill_report tool."
    ),
}

USER_PROMPT_TEMPLATES: dict[str, str] = {
    "SAFETY_REPORT": (
        "Write a {{ report_type | default('safety') }} safety report for {{ location }}. "
        "{{ details | default('') }} "
        "Cite the relevant laws and include concrete safety management measures."
    ),
    "INCIDENT_ANALYSIS": (
        "Write a detailed analysis report on the {{ incident }} incident at {{ location }}. "
        "Date of occurrence: {{ date }}. "
        "Include a root cause analysis and recurrence prevention measures."
    ),
    "SAFETY_INSPECTION": (
        "Carry out a safety inspection of {{ facility }} at {{ location }} and write a report. "
        "{% if focus is defined and focus %}Focus on {{ focus }}. {% endif %}"
        "Present the problems found and concrete improvements."
    ),
    "COMPLIANCE_REPORT": (
        "Write an audit report on safety-regulation compliance at {{ location }}. "
        "{% if regulations is defined and regulations %}Regulations in scope: {{ regulations }}. {% endif %}"
        "Check the compliance status of the relevant laws and set out an improvement plan "
        "for every non-compliance."
    ),
}

TASK_ALIASES: dict[str, str] = {
    "INCIDENT_REPORT": "INCIDENT_ANALYSIS",
    "COMPLIANCE_AUDIT": "COMPLIANCE_REPORT",
}

TOOL_USAGE_GUIDES: dict[str, str] = {
    "LAW_SEARCH": (
        "When searching laws, proceed in this order:\n"
        "1. fetch_law to find the relevant laws\n"
        "2. get_law_content to read the details\n"
        "3. search_law_simple to find specific articles"
    ),
    "REPORT_GENERATION": (
        "To generate a report, follow these steps:\n"
        "1. get_template_fields to check the template structure\n"
        "2. validate_report_data to validate the data\n"
        "3. fill_report to generate the report\n"
        "4. download_pdf to download the PDF"
    ),
    "WEB_RESEARCH": (
        "When collecting information from the web:\n"
        "1. get_web_sources to find trustworthy sources\n"
        "2. web_snapshot to collect the relevant information\n"
        "3. check the reliability and freshness of what was collected"
    ),
    "IMAGE_PROCESSING": (
        "When processing images:\n"
        "1. upload_image to upload the image\n"
        "2. check image quality and resolution\n"
        "3. insert it into the report at a suitable size"
    ),
}

NO_GUIDE = "No usage guide is available for this tool category."

# Checked in order; first hit wins.
_TASK_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("SAFETY_INSPECTION", ("안전점검", "점검", "inspection", "inspect")),
    ("INCIDENT_ANALYSIS", ("사고", "재해", "화재", "incident", "accident", "fire")),
    ("COMPLIANCE_REPORT", ("준수", "감사", "규정", "compliance", "audit", "regulation")),
)


@dataclass(frozen=True)
class TaskPrompt:
    """System prompt plus user template for one task type."""

    task_type: str
    system: str
    user_template: str

    def render_user(self, **params: Any) -> str:
        return " ".join(_env.from_string(self.user_template).render(**params).split())


def normalize_task_type(task_type: str | None) -> str:
    """Canonical task type; unknown or empty values map to the default."""
    key = (task_type or "").strip().upper()
    key = TASK_ALIASES.get(key, key)
    return key if key in SYSTEM_PROMPTS else DEFAULT_TASK_TYPE


def is_known_task_type(task_type: str | None) -> bool:
    key = (task_type or "").strip().upper()
    return TASK_ALIASES.get(key, key) in SYSTEM_PROMPTS


def get_prompt_for_task(task_type: str | None) -> TaskPrompt:
    key = normalize_task_type(task_type)
    return TaskPrompt(
        task_type=key,
        system=SYSTEM_PROMPTS[key],
        user_template=USER_PROMPT_TEMPLATES[key],
    )


def render_user_prompt(task_type: str | None, **params: Any) -> str:
    return get_prompt_for_task(task_type).render_user(**params)


def detect_task_type(text: str) -> str:
    """Guess a task type from free text (Korean or English keywords)."""
    lowered = text.lower()
    for task_type, keywords in _TASK_KEYWORDS:
        if any(k in lowered for k in keywords):
            return task_type
    return DEFAULT_TASK_TYPE


def get_tool_usage_guide(category: str) -> str:
    return TOOL_USAGE_GUIDES.get(category.strip().upper(), NO_GUIDE)


def fill_report_prompt() -> str:
    """System prompt for conversations that should end in a fill_report call."""
    return (
        "Generate an industrial safety report with the fill_report tool.\n\n"
        "**Important**:\n"
        "1. First check the template structure with get_template_fields\n"
        "2. Identify the required fields and prepare complete data\n"
        "3. Validate the data with validate_report_data\n"
        "4. Then call fill_report\n\n"
        "**Date format**:\n"
        '- visit.date must use the "YY.MM.DD(요일)" format\n'
        '- Examples: "25.08.22(목)", "24.12.19(목)"\n'
        "- Any other format is rejected\n\n"
        f"{_FILL_REPORT_RULES}"
    )
