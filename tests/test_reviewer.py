"""Tests for agents.reviewer - the self-review gate."""

import json
from unittest.mock import patch

from agents.reviewer import GENERIC_ISSUE, ReviewerAgent, fallback_review, parse_verdict
from core.errors import CompletionUnavailable
from core.state import FileEdit, Malformed

GOOD_CONTENT = "def add(a, b):\n    return a + b\n\n\ndef sub(a, b):\n    return a - b\n"


def test_fallback_passes_clean_files():
    verdict = fallback_review([FileEdit("calc.py", "create", GOOD_CONTENT)])
    assert verdict.passed
    assert verdict.issues == []
    assert verdict.source == "fallback"


def test_fallback_blocks_minimal_created_file():
    verdict = fallback_review([FileEdit("empty.py", "create", "pass")])
    assert not verdict.passed
    assert "too minimal" in verdict.issues[0]


def test_fallback_ignores_short_modification():
    verdict = fallback_review([FileEdit("VERSION", "modify", "1.2.0")])
    assert verdict.passed


def test_fallback_blocks_hardcoded_secret():
    content = GOOD_CONTENT + 'password = "hunter2"\n'
    verdict = fallback_review([FileEdit("settings.py", "create", content)])
    assert not verdict.passed
    assert any("hardcoded password" in i and "settings.py" in i for i in verdict.issues)


def test_fallback_warning_is_suggestion():
    content = GOOD_CONTENT + "# TODO: handle overflow\n"
    verdict = fallback_review([FileEdit("calc.py", "create", content)])
    assert verdict.passed
    assert any("TODO" in s for s in verdict.suggestions)


def test_fallback_suggests_tests_for_larger_changes():
    files = [FileEdit(f"m{i}.py", "create", GOOD_CONTENT) for i in range(3)]
    verdict = fallback_review(files)
    assert any("No test files" in s for s in verdict.suggestions)


def test_fallback_skips_deletes():
    verdict = fallback_review([FileEdit("old.py", "delete")])
    assert verdict.passed


def test_parse_verdict_demotes_issues_when_passed():
    verdict = parse_verdict({"passed": True, "issues": ["nit"], "suggestions": ["s"]})
    assert verdict.passed
    assert verdict.issues == []
    assert verdict.suggestions == ["nit", "s"]


def test_parse_verdict_failed_without_issues_gets_generic():
    verdict = parse_verdict({"passed": False})
    assert verdict.issues == [GENERIC_ISSUE]


def test_parse_verdict_malformed():
    assert isinstance(parse_verdict({"passed": "yes"}), Malformed)
    assert isinstance(parse_verdict({"passed": True, "issues": "x"}), Malformed)
    assert isinstance(parse_verdict(None), Malformed)


def test_reviewer_empty_files():
    verdict = ReviewerAgent().run([])
    assert not verdict.passed
    assert verdict.issues == ["No files were generated"]


@patch("agents.reviewer.call_llm")
def test_reviewer_model_verdict(mock_llm):
    mock_llm.return_value = json.dumps({"passed": False, "issues": ["Missing import"], "suggestions": []})
    verdict = ReviewerAgent().run([FileEdit("a.py", "create", GOOD_CONTENT)], "summary")
    assert not verdict.passed
    assert verdict.issues == ["Missing import"]
    assert verdict.source == "model"
    assert "CREATE: a.py" in mock_llm.call_args[0][1]


@patch("agents.reviewer.call_llm")
def test_reviewer_falls_back_when_unavailable(mock_llm):
    mock_llm.side_effect = CompletionUnavailable("down")
    verdict = ReviewerAgent().run([FileEdit("a.py", "create", "x")])
    assert verdict.source == "fallback"
    assert not verdict.passed


@patch("agents.reviewer.call_llm")
def test_reviewer_falls_back_on_malformed(mock_llm):
    mock_llm.return_value = "looks good to me"
    verdict = ReviewerAgent().run([FileEdit("a.py", "create", GOOD_CONTENT)])
    assert verdict.source == "fallback"
    assert verdict.passed
