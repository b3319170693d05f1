"""Turn a triggering event into a canonical Task."""

import logging

from config.defaults import DEFAULTS
from core.errors import GitHubError
from core.circuit_breaker import parse_dispatch_depth
from core.state import InvocationContext, Task, TaskKind
from core.validation import resolve_branch, validate_branch

logger = logging.getLogger(__name__)

INLINE_HEADER = "\n\n### Inline Review Comments\n\n"


def _identity(text, source):
    return text


def _label_names(item):
    return {label.get("name") for label in (item or {}).get("labels") or [] if isinstance(label, dict)}


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def format_inline_comments(comments, review_id):
    """Render the inline comments belonging to one review as ``**path:line** - body``."""
    rendered = []
    for c in comments:
        if c.get("pull_request_review_id") != review_id:
            continue
        line = c.get("line") or c.get("original_line")
        entry = f"**{c.get('path')}:{line}** - {c.get('body') or ''}"
        if entry.strip():
            rendered.append(entry)
    return rendered


def combine_feedback(review_body, inline):
    feedback = review_body or ""
    if inline:
        feedback += INLINE_HEADER + "\n\n".join(inline)
    return feedback


class TaskNormalizer:
    """Derives one immutable Task per invocation.

    Sources are tried in order: explicit issue number, explicit change
    request number (including review-step handoffs), an ``issues`` event
    carrying the ready label, then a changes-requested review on an
    agent-coded change request.

    ``sanitize(text, source)`` is applied to all untrusted text; it defaults
    to the identity.
    """

    def __init__(self, client, sanitize=None):
        self.client = client
        self.sanitize = sanitize or _identity
        self.labels = DEFAULTS["labels"]

    def from_context(self, context):
        task = None
        if context.issue_number:
            task = self._from_issue_number(context.issue_number)
        if task is None:
            pr_number = context.pr_number or self._handoff_pr_number(context)
            if pr_number:
                task = self._from_pr_number(pr_number)
        if task is None and context.event_name == "issues":
            task = self._from_issue_event(context.payload)
        if task is None and context.event_name == "pull_request_review":
            task = self._from_review_event(context.payload)
        return task

    def _handoff_pr_number(self, context):
        if context.event_name not in ("repository_dispatch", "workflow_dispatch"):
            return None
        client_payload = context.payload.get("client_payload") or {}
        inputs = context.payload.get("inputs") or {}
        return _as_int(
            client_payload.get("pr_number") or inputs.get("pr-number") or inputs.get("pr_number")
        )

    def _from_issue_number(self, number):
        try:
            issue = self.client.get_issue(number)
        except GitHubError as e:
            logger.warning("Failed to fetch issue #%s: %s", number, e)
            return None
        return Task(
            kind=TaskKind.NEW_IMPLEMENTATION,
            content=self.sanitize(f"{issue.get('title', '')}\n\n{issue.get('body') or ''}", "issue-content"),
            issue_number=issue["number"],
        )

    def _from_pr_number(self, number):
        try:
            pr = self.client.get_pull(number)
            reviews = self.client.list_reviews(number)
        except GitHubError as e:
            logger.warning("Failed to fetch PR #%s: %s", number, e)
            return None

        latest = next(
            (r for r in reversed(reviews) if r.get("state") == "CHANGES_REQUESTED"), None,
        )
        inline = []
        if latest:
            inline = self._inline_comments(number, latest.get("id"))
        feedback = combine_feedback(latest.get("body") if latest else "", inline)
        return self._feedback_task(pr, feedback)

    def _from_issue_event(self, payload):
        issue = payload.get("issue")
        if not issue or self.labels["ready"] not in _label_names(issue):
            return None
        return Task(
            kind=TaskKind.NEW_IMPLEMENTATION,
            content=self.sanitize(f"{issue.get('title', '')}\n\n{issue.get('body') or ''}", "issue-content"),
            issue_number=issue["number"],
        )

    def _from_review_event(self, payload):
        review = payload.get("review")
        pr = payload.get("pull_request")
        if not review or not pr:
            return None
        if self.labels["coded"] not in _label_names(pr):
            return None
        if (review.get("state") or "").lower() != "changes_requested":
            return None
        inline = self._inline_comments(pr["number"], review.get("id"))
        return self._feedback_task(pr, combine_feedback(review.get("body"), inline))

    def _inline_comments(self, number, review_id):
        try:
            comments = self.client.list_review_comments(number)
        except GitHubError as e:
            logger.warning("Failed to fetch review comments for #%s: %s", number, e)
            return []
        return format_inline_comments(comments, review_id)

    def _feedback_task(self, pr, feedback):
        head_ref = (pr.get("head") or {}).get("ref", "")
        ok, _ = validate_branch(head_ref)
        if not ok:
            logger.warning("Invalid branch name from PR: %r", head_ref)
        return Task(
            kind=TaskKind.FEEDBACK_REVISION,
            content=self.sanitize(f"{pr.get('title', '')}\n\n{pr.get('body') or ''}", "pr-content"),
            feedback=self.sanitize(feedback, "review-feedback"),
            target_branch=resolve_branch(head_ref, pr["number"]),
            change_request_number=pr["number"],
        )


def invocation_context(event_name, actor, repository, payload=None,
                       issue_number=None, pr_number=None):
    """Build the explicit invocation context the circuit breaker and normalizer read."""
    payload = payload or {}
    owner, _, repo = (repository or "/").partition("/")
    client_payload = payload.get("client_payload") or payload.get("inputs") or {}
    return InvocationContext(
        event_name=event_name or "",
        actor=actor or "",
        owner=owner,
        repo=repo,
        payload=payload,
        issue_number=_as_int(issue_number),
        pr_number=_as_int(pr_number),
        dispatch_depth=parse_dispatch_depth(client_payload),
        iteration_count=_as_int(client_payload.get("iteration_count")) or 0,
    )
