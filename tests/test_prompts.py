"""Tests for task-type prompts and Jinja2 user templates."""

from __future__ import annotations

import pytest
from jinja2 import UndefinedError

from safety_orchestrator import prompts
from safety_orchestrator.prompts import (
    DEFAULT_TASK_TYPE,
    NO_GUIDE,
    SYSTEM_PROMPTS,
    USER_PROMPT_TEMPLATES,
    detect_task_type,
    fill_report_prompt,
    get_prompt_for_task,
    get_tool_usage_guide,
    is_known_task_type,
    normalize_task_type,
    render_user_prompt,
)


class TestTaskTypes:
    def test_every_system_prompt_has_a_template(self) -> None:
        assert set(SYSTEM_PROMPTS) == set(USER_PROMPT_TEMPLATES)

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("SAFETY_INSPECTION", "SAFETY_INSPECTION"),
            ("safety_inspection", "SAFETY_INSPECTION"),
            ("INCIDENT_REPORT", "INCIDENT_ANALYSIS"),
            ("COMPLIANCE_AUDIT", "COMPLIANCE_REPORT"),
            ("nonsense", DEFAULT_TASK_TYPE),
            (None, DEFAULT_TASK_TYPE),
            ("", DEFAULT_TASK_TYPE),
        ],
    )
    def test_normalize(self, raw: str | None, expected: str) -> None:
        assert normalize_task_type(raw) == expected

    def test_is_known(self) -> None:
        assert is_known_task_type("incident_report")
        assert not is_known_task_type("weather_report")
        assert not is_known_task_type(None)

    def test_unknown_falls_back_to_default_prompt(self) -> None:
        task = get_prompt_for_task("weather_report")
        assert task.task_type == DEFAULT_TASK_TYPE
        assert task.system == SYSTEM_PROMPTS[DEFAULT_TASK_TYPE]


class TestRenderUserPrompt:
    def test_safety_report_defaults(self) -> None:
        text = render_user_prompt("SAFETY_REPORT", location="Gangnam-gu")
        assert text.startswith("Write a safety safety report for Gangnam-gu.")
        assert "  " not in text

    def test_incident(self) -> None:
        text = render_user_prompt("INCIDENT_ANALYSIS", incident="fall", location="Site B", date="25.08.22(목)")
        assert "fall incident at Site B" in text
        assert "25.08.22(목)" in text

    def test_optional_focus(self) -> None:
        with_focus = render_user_prompt("SAFETY_INSPECTION", facility="tower crane", location="Site A", focus="rigging")
        without = render_user_prompt("SAFETY_INSPECTION", facility="tower crane", location="Site A")
        assert "Focus on rigging." in with_focus
        assert "Focus on" not in without

    def test_missing_required_parameter_raises(self) -> None:
        with pytest.raises(UndefinedError):
            render_user_prompt("INCIDENT_ANALYSIS", incident="fall")


class TestDetectTaskType:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("현장 안전점검 보고서를 작성해 주세요", "SAFETY_INSPECTION"),
            ("Inspect the scaffolding on floor 3", "SAFETY_INSPECTION"),
            ("화재 사고 분석", "INCIDENT_ANALYSIS"),
            ("Analyze yesterday's accident", "INCIDENT_ANALYSIS"),
            ("Audit regulation compliance at HQ", "COMPLIANCE_REPORT"),
            ("Write a report for Site A", DEFAULT_TASK_TYPE),
        ],
    )
    def test_keywords(self, text: str, expected: str) -> None:
        assert detect_task_type(text) == expected


class TestGuides:
    def test_known_category(self) -> None:
        assert "fill_report" in get_tool_usage_guide("report_generation")

    def test_unknown_category(self) -> None:
        assert get_tool_usage_guide("TELEPATHY") == NO_GUIDE

    def test_fill_report_prompt_mentions_date_format(self) -> None:
        text = fill_report_prompt()
        assert "YY.MM.DD(요일)" in text
        assert "get_template_fields" in text
        assert prompts._FILL_REPORT_RULES in text
