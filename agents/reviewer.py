"""Reviewer agent: the self-review gate in front of every commit."""

import logging
import os

from utils.llm import call_llm, parse_agent_response
from config.defaults import DEFAULTS
from config.rules import REVIEW_PATTERNS, TEST_PATH_PATTERN
from core.errors import CompletionUnavailable
from core.state import Malformed, ReviewVerdict

logger = logging.getLogger(__name__)

_PROMPT_FILE = os.path.join(os.path.dirname(__file__), "prompts", "reviewer.txt")

GENERIC_ISSUE = "Review failed without listing specific issues; re-check the change set for blocking problems"


def _load_prompt():
    with open(_PROMPT_FILE) as f:
        return f.read()


def has_tests(files):
    return any(TEST_PATH_PATTERN.search(f.path) for f in files)


def fallback_review(files):
    """Deterministic pattern scan with the same blocking/non-blocking split as the model review.

    Conservative: anything matching an "error" rule blocks, and so does a
    newly created file too short to implement anything.
    """
    issues = []
    suggestions = []
    min_lines = DEFAULTS["min_created_file_lines"]

    for f in files:
        if f.operation == "delete":
            continue
        content = f.content or ""

        if f.operation == "create":
            line_count = len(content.strip().split("\n")) if content.strip() else 0
            if line_count < min_lines:
                issues.append(
                    f"File {f.path} appears too minimal ({line_count} lines) - likely incomplete"
                )
        if not content:
            continue

        for pattern, severity, message, _suggestion in REVIEW_PATTERNS:
            if not pattern.search(content):
                continue
            msg = message.replace("{file}", f.path)
            target = issues if severity == "error" else suggestions
            if msg not in target:
                target.append(msg)

    if not has_tests(files) and len(files) > 2:
        suggestions.append("No test files detected - consider adding tests for new functionality")

    return ReviewVerdict(passed=not issues, issues=issues, suggestions=suggestions, source="fallback")


def parse_verdict(data):
    """Validate a decoded review payload. Returns a ReviewVerdict or Malformed."""
    if not isinstance(data, dict):
        return Malformed("review response is not a JSON object")
    passed = data.get("passed")
    if not isinstance(passed, bool):
        return Malformed("passed is not a boolean")

    issues = data.get("issues") or []
    suggestions = data.get("suggestions") or []
    if not isinstance(issues, list) or not isinstance(suggestions, list):
        return Malformed("issues/suggestions are not lists")
    issues = [str(i) for i in issues if str(i).strip()]
    suggestions = [str(s) for s in suggestions if str(s).strip()]

    if passed and issues:
        # The model judged these non-blocking.
        suggestions = issues + suggestions
        issues = []
    if not passed and not issues:
        issues = [GENERIC_ISSUE]
    return ReviewVerdict(passed=passed, issues=issues, suggestions=suggestions)


def build_review_prompt(files, summary):
    parts = [
        "## Code Changes to Review\n",
        f"**Summary:** {summary}\n",
        f"**Files Changed:** {len(files)}",
        f"**Tests Added:** {'Yes' if has_tests(files) else 'No'}\n",
        "## File Changes\n",
    ]
    for f in files:
        parts.append(f"### {f.operation.upper()}: {f.path}\n")
        if f.operation == "delete":
            parts.append("*File will be deleted*\n")
        else:
            parts.append(f"```\n{f.content or '(empty file)'}\n```\n")
    parts.append(
        "## Review Task\n\n"
        "Set \"passed\" to false only for blocking problems. "
        "Everything else belongs in \"suggestions\".\n\n"
        "Respond with valid JSON only."
    )
    return "\n".join(parts)


class ReviewerAgent:
    """Classifies a candidate change set as blocked (issues) or clean (suggestions only)."""

    name = "reviewer"

    def run(self, files, summary="", context_section="", model=None):
        if not files:
            return ReviewVerdict(passed=False, issues=["No files were generated"], source="fallback")

        prompt = _load_prompt().replace("{context}", context_section)
        try:
            response = call_llm(prompt, build_review_prompt(files, summary), model=model)
        except CompletionUnavailable as e:
            logger.warning("Review unavailable, using pattern-based review: %s", e)
            verdict = fallback_review(files)
        else:
            verdict = parse_verdict(parse_agent_response(response))
            if isinstance(verdict, Malformed):
                logger.warning("Unusable review (%s), using pattern-based review", verdict.reason)
                verdict = fallback_review(files)

        logger.info("Self-review (%s): %s", verdict.source, "PASSED" if verdict.passed else "FAILED")
        for issue in verdict.issues:
            logger.info("  issue: %s", issue)
        for suggestion in verdict.suggestions:
            logger.info("  suggestion: %s", suggestion)
        return verdict
