"""Tests for agents.planner - LLM calls are mocked."""

import json
from unittest.mock import patch

from agents.planner import (
    PLACEHOLDER_FILE,
    PlannerAgent,
    build_planning_prompt,
    fallback_plan,
    parse_plan,
)
from core.errors import CompletionUnavailable
from core.state import Malformed, Task, TaskKind


def _task(content="Add login page\n\nUpdate `src/app.py` and ./docs/auth.md"):
    return Task(kind=TaskKind.NEW_IMPLEMENTATION, content=content, issue_number=42)


def test_fallback_plan_extracts_files():
    plan = fallback_plan(_task())
    assert plan.from_fallback
    assert plan.complexity == "medium"
    assert plan.target_files == ["src/app.py", "docs/auth.md"]
    assert plan.summary.startswith("Manual planning required: Add login page")


def test_fallback_plan_skips_unsafe_tokens():
    plan = fallback_plan(_task("Read ../../etc/passwd.txt and fix main.py"))
    assert plan.target_files == ["main.py"]


def test_fallback_plan_placeholder_when_no_files():
    plan = fallback_plan(_task("Make it faster"))
    assert plan.target_files == [PLACEHOLDER_FILE]


def test_fallback_plan_truncates_summary():
    plan = fallback_plan(_task("x" * 300))
    assert plan.summary.endswith("...")
    assert len(plan.summary) < 140


def test_parse_plan_valid():
    plan = parse_plan({
        "summary": "Add login", "files": ["a.py"], "approach": "Do it",
        "estimatedComplexity": "LOW",
    })
    assert plan.complexity == "low"
    assert plan.target_files == ["a.py"]
    assert not plan.from_fallback


def test_parse_plan_alternate_keys():
    plan = parse_plan({
        "summary": "s", "targetFiles": [], "approach": "a", "complexity": "high",
    })
    assert plan.target_files == [PLACEHOLDER_FILE]


def test_parse_plan_malformed():
    assert isinstance(parse_plan(None), Malformed)
    assert isinstance(parse_plan({"summary": "s"}), Malformed)
    assert isinstance(parse_plan({
        "summary": "s", "files": ["a"], "approach": "a", "complexity": "extreme",
    }), Malformed)
    assert isinstance(parse_plan({
        "summary": "s", "files": "a.py", "approach": "a", "complexity": "low",
    }), Malformed)


def test_revision_prompt_includes_feedback():
    task = Task(kind=TaskKind.FEEDBACK_REVISION, content="PR body",
                feedback="**a.py:3** - rename", change_request_number=5)
    prompt = build_planning_prompt(task)
    assert "Review Feedback to Address" in prompt
    assert "**a.py:3** - rename" in prompt


@patch("agents.planner.call_llm")
def test_planner_uses_model_plan(mock_llm):
    mock_llm.return_value = "```json\n" + json.dumps({
        "summary": "Add login", "files": ["src/login.py"], "approach": "Flask view",
        "estimatedComplexity": "medium",
    }) + "\n```"
    plan = PlannerAgent().run(_task(), "# Repository: o/r")
    assert plan.summary == "Add login"
    assert plan.target_files == ["src/login.py"]
    system_prompt = mock_llm.call_args[0][0]
    assert "# Repository: o/r" in system_prompt
    assert "{context}" not in system_prompt


@patch("agents.planner.call_llm")
def test_planner_falls_back_when_unavailable(mock_llm):
    mock_llm.side_effect = CompletionUnavailable("no key")
    plan = PlannerAgent().run(_task())
    assert plan.from_fallback


@patch("agents.planner.call_llm")
def test_planner_falls_back_on_garbage(mock_llm):
    mock_llm.return_value = "I think you should add a login page."
    plan = PlannerAgent().run(_task())
    assert plan.from_fallback
