"""Generator agent: the bounded generate -> review loop that produces the final change set."""

import hashlib
import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from utils.llm import call_llm, parse_agent_response
from agents.planner import PLACEHOLDER_FILE
from agents.reviewer import ReviewerAgent, has_tests
from config.defaults import DEFAULTS
from core.errors import CompletionUnavailable, SafetyLimitReached
from core.state import OPERATIONS, ChangeSet, FileEdit, FinalChangeSet, Malformed
from core.validation import validate_path

logger = logging.getLogger(__name__)

_PROMPT_FILE = os.path.join(os.path.dirname(__file__), "prompts", "generator.txt")


def _load_prompt():
    with open(_PROMPT_FILE) as f:
        return f.read()


class LoopState(Enum):
    GENERATING = "generating"
    AWAITING_REVIEW = "awaiting-review"
    DONE = "done"
    SAFETY_LIMIT = "safety-limit"


@dataclass
class GenerationDelta:
    """One iteration's worth of parsed model output."""

    edits: list = field(default_factory=list)
    complete: bool = False
    reasoning: str = ""
    next_steps: list = field(default_factory=list)


def parse_delta(data):
    """Validate a decoded generation payload. Returns a GenerationDelta or Malformed.

    Individual entries missing a path or carrying an unknown operation are
    skipped; only a missing ``files`` list makes the whole payload malformed.
    Path safety is checked later, at merge time.
    """
    if not isinstance(data, dict):
        return Malformed("response is not a JSON object")
    files = data.get("files")
    if not isinstance(files, list):
        return Malformed("missing files array")

    edits = []
    for entry in files:
        if not isinstance(entry, dict):
            logger.warning("Skipping invalid file entry: %r", entry)
            continue
        path = entry.get("path")
        operation = entry.get("operation")
        content = entry.get("content") or ""
        if not isinstance(path, str) or operation not in OPERATIONS or not isinstance(content, str):
            logger.warning("Skipping invalid file entry: path=%r operation=%r", path, operation)
            continue
        edits.append(FileEdit(path=path, operation=operation, content="" if operation == "delete" else content))

    next_steps = data.get("nextSteps") or []
    return GenerationDelta(
        edits=edits,
        complete=data.get("isComplete") is True,
        reasoning=str(data.get("reasoning") or ""),
        next_steps=[str(s) for s in next_steps] if isinstance(next_steps, list) else [],
    )


def generate_changes_summary(files, plan_summary, iterations, complete):
    created = sum(1 for f in files if f.operation == "create")
    modified = sum(1 for f in files if f.operation == "modify")
    deleted = sum(1 for f in files if f.operation == "delete")

    summary = (
        f"{plan_summary}\n\n"
        "## Changes Summary\n"
        f"- {created} file(s) created\n"
        f"- {modified} file(s) modified\n"
        f"- {deleted} file(s) deleted\n"
        f"- {iterations} iteration(s) used\n"
        f"- Status: {'Complete' if complete else 'Partial implementation'}\n\n"
    )
    if files:
        summary += "## Modified Files\n"
        for f in files:
            summary += f"- `{f.path}` ({f.operation})\n"
    return summary


def planned_files_addressed(plan, changes):
    planned = [p for p in plan.target_files if p != PLACEHOLDER_FILE]
    if not planned or not len(changes):
        return False
    changed = changes.paths()
    return all(any(p in c or c in p for c in changed) for p in planned)


class GeneratorAgent:
    """Runs the generation state machine for one plan.

    GENERATING -> AWAITING_REVIEW when the model claims completion (or every
    planned file has an edit after the first iteration); AWAITING_REVIEW ->
    DONE on a passing review, otherwise back to GENERATING with the review
    issues as must-fix items. Reaching the iteration ceiling, a stalled
    model, or an unavailable completion capability ends in SAFETY_LIMIT with
    one advisory review and a partial result.
    """

    name = "generator"

    def __init__(self, reviewer=None):
        self.reviewer = reviewer or ReviewerAgent()

    def run(self, plan, context_section="", model=None, max_iterations=None, file_reader=None):
        ceiling = min(max_iterations or DEFAULTS["max_iterations"], DEFAULTS["hard_max_iterations"])
        system_prompt = _load_prompt().replace("{context}", context_section)
        existing = self._existing_files(plan, file_reader)

        changes = ChangeSet()
        state = LoopState.GENERATING
        iteration = 0
        must_fix = []
        notes = []
        reasoning = ""
        seen = set()
        verdict = None
        reviewed_at = None

        while state in (LoopState.GENERATING, LoopState.AWAITING_REVIEW):
            if state == LoopState.AWAITING_REVIEW:
                verdict = self.reviewer.run(changes.edits(), plan.summary, context_section, model)
                reviewed_at = changes.revision
                if verdict.passed:
                    state = LoopState.DONE
                else:
                    must_fix = list(verdict.issues)
                    state = LoopState.GENERATING
                continue

            if iteration >= ceiling:
                logger.warning("Reached maximum iterations (%d)", ceiling)
                state = LoopState.SAFETY_LIMIT
                break

            iteration += 1
            logger.info("--- Iteration %d/%d ---", iteration, ceiling)
            user_message = build_generation_prompt(
                plan, changes, iteration, reasoning, must_fix, notes, existing,
            )
            notes = []

            try:
                response = call_llm(system_prompt, user_message, model=model)
                self._check_stall(response, seen)
            except CompletionUnavailable as e:
                logger.warning("Iteration %d: completion unavailable: %s", iteration, e)
                state = LoopState.SAFETY_LIMIT
                break
            except SafetyLimitReached as e:
                logger.warning("Iteration %d: %s", iteration, e)
                state = LoopState.SAFETY_LIMIT
                break

            delta = parse_delta(parse_agent_response(response))
            if isinstance(delta, Malformed):
                logger.warning("Iteration %d: malformed response (%s)", iteration, delta.reason)
                logger.debug("Raw response: %s", response)
                notes = [f"Your previous response could not be used: {delta.reason}. "
                         "Respond with a single JSON object matching the schema."]
                continue

            if delta.reasoning:
                reasoning = delta.reasoning
                logger.info("Reasoning: %s", delta.reasoning)
            new_count = self._merge(delta.edits, changes)
            logger.info("Iteration %d: %d new file(s), %d total", iteration, new_count, len(changes))

            if delta.complete:
                logger.info("Model reports the task complete")
                state = LoopState.AWAITING_REVIEW
            elif iteration > 1 and planned_files_addressed(plan, changes):
                logger.info("All planned files have been addressed")
                state = LoopState.AWAITING_REVIEW
            else:
                for i, step in enumerate(delta.next_steps, 1):
                    logger.info("  next %d. %s", i, step)

        complete = state == LoopState.DONE
        files = changes.edits()
        if not complete and files and reviewed_at != changes.revision:
            verdict = self.reviewer.run(files, plan.summary, context_section, model)
        if not complete and verdict is not None and not verdict.passed:
            logger.warning("Advisory review found %d issue(s); committing partial result", len(verdict.issues))

        tests_added = has_tests(files)
        logger.info(
            "Generation finished: %d file(s), tests %s, %d/%d iteration(s), %s",
            len(files), "added" if tests_added else "not added", iteration, ceiling,
            "complete" if complete else "partial",
        )
        return FinalChangeSet(
            files=files,
            summary=generate_changes_summary(files, plan.summary, iteration, complete),
            tests_added=tests_added,
            complete=complete,
            iterations_used=iteration,
            verdict=verdict,
        )

    def _merge(self, edits, changes):
        new_count = 0
        for edit in edits:
            ok, reason = validate_path(edit.path)
            if not ok:
                logger.warning("SECURITY: Rejecting unsafe file path %r: %s", edit.path, reason)
                continue
            if changes.merge(edit):
                new_count += 1
                logger.info("  %s: %s", edit.operation, edit.path)
            else:
                logger.info("  updated %s: %s", edit.operation, edit.path)
        return new_count

    def _check_stall(self, response, seen):
        digest = hashlib.sha256(response.encode("utf-8")).hexdigest()[:16]
        if digest in seen:
            raise SafetyLimitReached("model repeated an earlier response; treating as no progress")
        seen.add(digest)

    def _existing_files(self, plan, file_reader):
        """Current contents of planned files, within the prompt budget."""
        if file_reader is None:
            return {}
        budget = DEFAULTS["prompt_file_budget"]
        existing = {}
        for path in plan.target_files:
            if path == PLACEHOLDER_FILE or not validate_path(path)[0]:
                continue
            content = file_reader(path)
            if content is None:
                continue
            if len(content) > budget:
                logger.info("Skipping %s in prompt: over the remaining budget", path)
                continue
            existing[path] = content
            budget -= len(content)
        return existing


def build_generation_prompt(plan, changes, iteration, reasoning, must_fix, notes, existing):
    parts = [
        "## Implementation Plan\n",
        f"**Summary:** {plan.summary}\n",
        f"**Approach:**\n{plan.approach}\n",
        f"**Files to modify:** {', '.join(plan.target_files)}\n",
        f"**Estimated complexity:** {plan.complexity}\n",
    ]

    if existing:
        parts.append("## Current File Contents\n")
        for path, content in existing.items():
            parts.append(f"### {path}\n```\n{content}\n```\n")

    if iteration == 1 or not len(changes):
        parts.append(
            "## Your Task\n\n"
            f"This is iteration {iteration}. Begin implementing the plan above, "
            "starting with the most important files.\n"
        )
    else:
        parts.append("## Current Progress\n")
        parts.append(f"This is iteration {iteration}. You have already changed {len(changes)} file(s):\n")
        for edit in changes:
            parts.append(f"- {edit.operation}: {edit.path}")
        if reasoning:
            parts.append(f"\n**Previous reasoning:** {reasoning}\n")
        parts.append(
            "\n## Your Task\n\n"
            "Continue implementing the plan. Set \"isComplete\" to true only when everything is done; "
            "otherwise return the next changes and list the remaining steps.\n"
        )

    if must_fix:
        parts.append("## Must fix (from the failed review)\n")
        parts.extend(f"- {issue}" for issue in must_fix)
        parts.append("")

    for note in notes:
        parts.append(f"**Note:** {note}\n")

    parts.append("Respond with valid JSON only.")
    return "\n".join(parts)
