"""Planner agent: turns a task into a summary, target files, approach and complexity."""

import logging
import os
import re

from utils.llm import call_llm, parse_agent_response
from core.errors import CompletionUnavailable
from core.state import COMPLEXITY_LEVELS, Malformed, Plan
from core.validation import validate_path

logger = logging.getLogger(__name__)

_PROMPT_FILE = os.path.join(os.path.dirname(__file__), "prompts", "planner.txt")

PLACEHOLDER_FILE = "(files to be determined during implementation)"

_FILE_TOKEN = re.compile(
    r"(?:^|[\s`'\"(])([a-zA-Z0-9_\-/.]*[a-zA-Z0-9_\-]\."
    r"(?:py|ts|tsx|js|jsx|json|md|yml|yaml|toml|cfg|ini|txt|html|css|go|rs|java|rb|sh))\b"
)


def _load_prompt():
    with open(_PROMPT_FILE) as f:
        return f.read()


def fallback_plan(task):
    """Deterministic plan built from file-looking tokens in the task text."""
    text = task.content
    if task.feedback:
        text += "\n" + task.feedback
    files = []
    for match in _FILE_TOKEN.finditer(text):
        path = match.group(1)
        if path.startswith("./"):
            path = path[2:]
        if validate_path(path)[0] and path not in files:
            files.append(path)

    head = task.content.strip()
    summary = head[:100] + ("..." if len(head) > 100 else "")
    return Plan(
        summary=f"Manual planning required: {summary}",
        target_files=files or [PLACEHOLDER_FILE],
        approach="This task requires manual analysis. AI planning was unavailable.",
        complexity="medium",
        from_fallback=True,
    )


def parse_plan(data):
    """Validate a decoded planner payload. Returns a Plan or Malformed."""
    if not isinstance(data, dict):
        return Malformed("planner response is not a JSON object")

    summary = data.get("summary")
    files = data.get("files", data.get("targetFiles"))
    approach = data.get("approach")
    complexity = data.get("estimatedComplexity", data.get("complexity"))

    if not isinstance(summary, str) or not summary.strip():
        return Malformed("missing summary")
    if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
        return Malformed("files is not a list of paths")
    if not isinstance(approach, str) or not approach.strip():
        return Malformed("missing approach")
    if not isinstance(complexity, str) or complexity.lower() not in COMPLEXITY_LEVELS:
        return Malformed(f"invalid complexity {complexity!r}")

    files = [f.strip() for f in files if f.strip()]
    return Plan(
        summary=summary.strip(),
        target_files=files or [PLACEHOLDER_FILE],
        approach=approach.strip(),
        complexity=complexity.lower(),
    )


def build_planning_prompt(task):
    if task.is_revision:
        return (
            "## Task Type\n"
            "Feedback revision: address review comments on an existing change request\n\n"
            f"## Original Change Request\n{task.content}\n\n"
            f"## Review Feedback to Address\n{task.feedback or '(No specific feedback provided)'}\n\n"
            "## Your Task\n"
            "Plan how to address ALL of the feedback. Inline comments (marked path:line) "
            "point at the exact locations that need changes.\n\n"
            "Respond with valid JSON only."
        )
    return (
        "## Task Type\n"
        "New implementation: a feature or bug fix from an issue\n\n"
        f"## Issue Content\n{task.content}\n\n"
        "## Your Task\n"
        "Plan the implementation: what is requested, which files change, the steps, "
        "edge cases and tests.\n\n"
        "Respond with valid JSON only."
    )


class PlannerAgent:
    """Produces a Plan from a Task. Never raises: any failure yields the fallback plan."""

    name = "planner"

    def run(self, task, context_section="", model=None):
        prompt = _load_prompt().replace("{context}", context_section)

        try:
            response = call_llm(prompt, build_planning_prompt(task), model=model)
        except CompletionUnavailable as e:
            logger.warning("Planning unavailable, using fallback plan: %s", e)
            return fallback_plan(task)

        result = parse_plan(parse_agent_response(response))
        if isinstance(result, Malformed):
            logger.warning("Unusable plan (%s), using fallback plan", result.reason)
            logger.debug("Raw planner response: %s", response)
            return fallback_plan(task)

        logger.info("Plan: %s", result.summary)
        logger.info("Files: %s (complexity %s)", ", ".join(result.target_files), result.complexity)
        return result
