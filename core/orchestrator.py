"""Main pipeline orchestrator: guard -> task -> plan -> generate -> commit -> reconcile."""

import logging

from core import circuit_breaker
from core.errors import (
    AgentError,
    FeedbackLimitReached,
    GitHubError,
    NoChangesToCommit,
    PushFailed,
    ReconciliationFailed,
    TaskUnavailable,
)
from core.state import PipelineResult
from core.validation import resolve_branch
from config.defaults import DEFAULTS
from manager.tasks import TaskNormalizer
from agents.planner import PlannerAgent
from agents.generator import GeneratorAgent
from agents.reviewer import ReviewerAgent
from agents.committer import CommitAgent
from agents.reconciler import ReconcilerAgent
from utils.context_loader import format_context_for_prompt, load_repository_context
from utils.github import GitHubClient

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs one pipeline invocation end to end.

    Every step depends on the previous one, so the run is strictly
    sequential. The only cancellation point is the circuit breaker at entry.
    Fatal failures leave a comment on the originating issue or change request
    (unless this is a dry run) and come back as a ``failure`` result.
    """

    def __init__(self, config, client_factory=None, sanitize=None,
                 planner=None, generator=None, reviewer=None, runner=None):
        self.config = config
        self.client_factory = client_factory or self._make_client
        self.sanitize = sanitize
        self.planner = planner or PlannerAgent()
        self.reviewer = reviewer or ReviewerAgent()
        self.generator = generator or GeneratorAgent(self.reviewer)
        self.runner = runner

    def _make_client(self, token, owner, repo, label):
        return GitHubClient(token, owner, repo, api_url=self.config.api_url, label=label)

    def run(self, context):
        allowed, reason = circuit_breaker.check(context, self.config)
        if not allowed:
            logger.info("Skipping run: %s", reason)
            return PipelineResult(status="skipped", message=reason)

        primary = self.client_factory(self.config.github_token, context.owner, context.repo, "primary")
        secondary = None
        if self.config.secondary_token:
            secondary = self.client_factory(
                self.config.secondary_token, context.owner, context.repo, "secondary",
            )
        try:
            return self._run(context, primary, secondary)
        finally:
            for client in (primary, secondary):
                if client is not None:
                    client.close()

    def plan_only(self, context):
        """Derive the task and plan it, without generating or writing anything."""
        primary = self.client_factory(self.config.github_token, context.owner, context.repo, "primary")
        try:
            task = TaskNormalizer(primary, self.sanitize).from_context(context)
            if task is None:
                raise TaskUnavailable("Unable to determine coding task from context")
            section = format_context_for_prompt(load_repository_context(primary))
            return self.planner.run(task, section, self.config.model)
        finally:
            primary.close()

    def _run(self, context, primary, secondary):
        dry_run = self.config.dry_run
        task = TaskNormalizer(primary, self.sanitize).from_context(context)
        if task is None:
            logger.error("Unable to determine coding task from context")
            return PipelineResult(status="failure", message="Unable to determine coding task from context")

        text = task.content + "\n" + (task.feedback or "")
        allowed, reason = circuit_breaker.check(context, self.config, content=text)
        if not allowed:
            logger.info("Skipping run: %s", reason)
            return PipelineResult(status="skipped", message=reason)

        branch = resolve_branch(task.target_branch, task.number)
        reconciler = ReconcilerAgent(primary, self.config)
        reaction_id = None
        try:
            reconciler.guard(task, branch, notify=not dry_run)
            if not task.is_revision and not dry_run:
                reaction_id = self._pickup(primary, task)

            logger.info("Loading repository context...")
            section = format_context_for_prompt(load_repository_context(primary))

            logger.info("Phase 1: planning")
            plan = self.planner.run(task, section, self.config.model)

            logger.info("Phase 2: generating")
            final = self.generator.run(
                plan, section, self.config.model, self.config.max_iterations,
                file_reader=self._file_reader(primary, task),
            )
            if not final.files:
                raise NoChangesToCommit("No file changes were generated")

            if dry_run:
                logger.info("[DRY RUN] Would commit %d file(s) to %s", len(final.files), branch)
                return PipelineResult(
                    status="dry-run", branch_name=branch, summary=final.summary,
                    message="dry run: no remote writes", plan=plan,
                )

            logger.info("Phase 3: committing")
            commit = CommitAgent(self.config, [primary, secondary], runner=self.runner).run(final, task)
            if not commit.pushed:
                raise PushFailed(f"Failed to push changes to `{commit.branch_name}`: {commit.error}")

            logger.info("Phase 4: reconciling the pull request")
            pr = reconciler.run(commit, task, final)
            if pr.status == "failed":
                raise ReconciliationFailed(f"Failed to create or update the pull request: {pr.error}")

            self._complete(primary, context, task, pr, reaction_id)
            return PipelineResult(
                status="success", branch_name=commit.branch_name,
                change_request_number=pr.number, change_request_url=pr.url,
                summary=final.summary, plan=plan,
            )
        except FeedbackLimitReached as e:
            # the reconciler already left the notice (or a human has not cleared it yet)
            logger.error("Circuit breaker: %s", e)
            return PipelineResult(status="failure", branch_name=branch, message=str(e))
        except AgentError as e:
            return self._fail(primary, task, branch, e)

    def _fail(self, client, task, branch, error):
        logger.error("Run failed: %s", error)
        target = task.issue_number or task.change_request_number
        if target and not self.config.dry_run:
            body = (
                "❌ The coding agent could not complete this task.\n\n"
                f"**Reason:** {error}\n\n"
                "No pull request was changed. Fix the cause and re-apply the "
                f"`{DEFAULTS['labels']['ready']}` label to retry."
            )
            try:
                client.create_comment(target, body)
            except GitHubError as e:
                logger.error("Could not post failure comment on #%s: %s", target, e)
        return PipelineResult(status="failure", branch_name=branch, message=str(error))

    def _file_reader(self, client, task):
        ref = task.target_branch if task.is_revision else None

        def read(path):
            try:
                return client.get_file(path, ref=ref)
            except GitHubError as e:
                logger.debug("Could not read %s: %s", path, e)
                return None

        return read

    def _pickup(self, client, task):
        """Label swap, reaction and comment when a new issue is picked up. Best effort."""
        labels = DEFAULTS["labels"]
        number = task.issue_number
        logger.info("Picking up issue #%s", number)
        reaction_id = None
        try:
            client.remove_label(number, labels["ready"])
            client.add_labels(number, [labels["assigned"]])
            reaction_id = client.add_reaction(number, "eyes")
            client.create_comment(
                number,
                "🤖 Coding agent has picked up this issue and is working on it...\n\n"
                "I will analyze the requirements, implement the changes, and create a pull request.",
            )
        except GitHubError as e:
            logger.warning("Pickup bookkeeping on #%s failed: %s", number, e)
        return reaction_id

    def _complete(self, client, context, task, pr, reaction_id):
        """Success bookkeeping and the optional hand-off to a review step. Best effort."""
        labels = DEFAULTS["labels"]
        if not task.is_revision and task.issue_number:
            number = task.issue_number
            try:
                client.remove_label(number, labels["assigned"])
                client.add_labels(number, [labels["coded"]])
                if reaction_id:
                    client.remove_reaction(number, reaction_id)
                client.add_reaction(number, "rocket")
                client.create_comment(
                    number, f"✅ Implementation is ready for review in #{pr.number}.\n\n{pr.url}",
                )
            except GitHubError as e:
                logger.warning("Completion bookkeeping on #%s failed: %s", number, e)

        if self.config.review_event:
            payload = circuit_breaker.dispatch_payload(
                context, {"pr_number": pr.number, "source": "coding-agent"},
            )
            try:
                client.dispatch_event(self.config.review_event, payload)
            except GitHubError as e:
                logger.warning("Review hand-off dispatch failed: %s", e)
