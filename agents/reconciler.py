"""Reconciler agent: finds, reopens or creates the change request for a pushed branch."""

import logging

from config.defaults import DEFAULTS
from core.errors import FeedbackLimitReached, GitHubError, NotFound
from core.state import ChangeRequestResult

logger = logging.getLogger(__name__)

TITLE_LIMIT = 72


def build_pr_title(task):
    if task.is_revision:
        return "Update: Address review feedback"
    first_line = task.content.split("\n", 1)[0].strip() or "Implement requested changes"
    if len(first_line) > TITLE_LIMIT:
        return first_line[:TITLE_LIMIT - 3] + "..."
    return first_line


def build_pr_body(task, final):
    body = f"## Summary\n\n{final.summary}\n\n## Changes Made\n\n"
    for operation, heading in (("create", "Created"), ("modify", "Modified"), ("delete", "Deleted")):
        files = final.by_operation(operation)
        if files:
            body += f"### {heading} Files\n"
            body += "".join(f"- `{f.path}`\n" for f in files)
            body += "\n"

    body += "## Testing\n\n"
    if final.tests_added:
        body += "✅ Tests have been added for the new functionality.\n\n"
    else:
        body += "⚠️ No tests were added. Please verify manually or add tests as needed.\n\n"
    if not final.complete:
        body += "⚠️ Generation stopped at its safety limit; this is a partial implementation.\n\n"

    body += "---\n🤖 This PR was automatically generated by the Coding Agent.\n"
    if not task.is_revision and task.issue_number:
        body += f"\nFixes #{task.issue_number}"
    return body


def build_update_comment(final, iteration):
    comment = (
        f"## {DEFAULTS['update_marker']} (Iteration {iteration})\n\n"
        "I've addressed the review feedback with the following changes:\n\n"
        f"{final.summary}\n\n"
        "### Files Updated\n"
    )
    comment += "".join(f"- {f.operation}: `{f.path}`\n" for f in final.files)
    comment += "\nPlease review the updated changes.\n"
    return comment


def build_halt_notice(ceiling, passes):
    halted = DEFAULTS["labels"]["halted"]
    return (
        f"## {DEFAULTS['halt_marker']}\n\n"
        f"⚠️ Maximum feedback iterations ({ceiling}) reached for this PR.\n\n"
        f"The coding agent has completed {passes} automated pass(es) on this change. "
        "It will not revise it again, to avoid an endless review/revise loop.\n\n"
        "If you still need changes, please either:\n"
        "1. Make the changes manually, or\n"
        f"2. Remove the `{halted}` label to grant the agent another round of passes."
    )


class ReconcilerAgent:
    """Owns the change request side of a run, including the feedback ceiling."""

    name = "reconciler"

    def __init__(self, client, config):
        self.client = client
        self.config = config
        self.labels = DEFAULTS["labels"]

    def feedback_status(self, pr_number):
        """Recompute the feedback counter from comment history.

        Returns:
            (updates, halted): bot update markers posted since the latest
            halt notice, and whether the halted label is currently present.
        """
        try:
            comments = self.client.list_issue_comments(pr_number)
            pr = self.client.get_issue(pr_number)
        except GitHubError as e:
            logger.warning("Failed to check feedback iterations on #%s: %s", pr_number, e)
            return 0, False

        updates = 0
        for c in comments:
            if (c.get("user") or {}).get("login") != self.config.bot_login:
                continue
            body = c.get("body") or ""
            if DEFAULTS["halt_marker"] in body:
                updates = 0
            elif DEFAULTS["update_marker"] in body:
                updates += 1

        labels = {label.get("name") for label in pr.get("labels") or []}
        return updates, self.labels["halted"] in labels

    def check_ceiling(self, pr_number, notify=True):
        """Refuse another revision once the ceiling is reached.

        Completed passes count the initial implementation, so a change
        request with N update markers has had N + 1 passes.

        Returns:
            The iteration number the next update comment should carry.

        Raises:
            FeedbackLimitReached: after adding the halted label and posting the
            notice, or silently if the label shows the notice was already posted
            or *notify* is False.
        """
        ceiling = self.config.max_feedback_iterations
        updates, halted = self.feedback_status(pr_number)
        passes = updates + 1

        if halted:
            raise FeedbackLimitReached(
                f"#{pr_number} carries the {self.labels['halted']} label; remove it to resume"
            )
        if passes >= ceiling:
            logger.warning("Feedback ceiling reached on #%s (%d/%d passes)", pr_number, passes, ceiling)
            if notify:
                try:
                    self.client.add_labels(pr_number, [self.labels["halted"]])
                except GitHubError as e:
                    logger.warning("Failed to add %s label: %s", self.labels["halted"], e)
                self.client.create_comment(pr_number, build_halt_notice(ceiling, passes))
            raise FeedbackLimitReached(
                f"Maximum feedback iterations ({ceiling}) reached on #{pr_number}"
            )

        logger.info("Feedback iteration %d/%d on #%s", passes + 1, ceiling, pr_number)
        return updates + 1

    def guard(self, task, branch, notify=True):
        """Apply the feedback ceiling to whatever change request *branch* already has.

        Runs before anything is generated or pushed, for every task kind: a
        re-run on an issue whose PR is halted must not land edits on its branch.

        Returns:
            The change request number that was checked, or None when there is none.
        """
        try:
            pr, _ = self._find(task, branch)
        except GitHubError as e:
            logger.warning("Could not look up an existing PR for %s: %s", branch, e)
            pr = None
        number = pr["number"] if pr is not None else task.change_request_number
        if not number:
            return None
        self.check_ceiling(number, notify=notify)
        return number

    def run(self, commit_result, task, final):
        branch = commit_result.branch_name
        if not commit_result.pushed:
            logger.error("Cannot manage PR - commit was not pushed")
            return ChangeRequestResult(0, "", "failed", error="commit was not pushed")

        try:
            trunk = self.client.default_branch()
            pr, closed = self._find(task, branch)
            if pr is not None:
                iteration = self.check_ceiling(pr["number"])
                if closed:
                    pr = self._reopen(pr)
                self.client.create_comment(pr["number"], build_update_comment(final, iteration))
                logger.info("Added update comment to PR #%s", pr["number"])
                return ChangeRequestResult(pr["number"], pr.get("html_url", ""), "updated")

            pr = self.client.create_pull(build_pr_title(task), build_pr_body(task, final), branch, trunk)
            logger.info("PR created: #%s", pr["number"])
            try:
                self.client.add_labels(pr["number"], [self.labels["coded"]])
            except GitHubError as e:
                logger.warning("Failed to add %s label: %s", self.labels["coded"], e)
            return ChangeRequestResult(pr["number"], pr.get("html_url", ""), "created")
        except GitHubError as e:
            logger.error("Failed to manage PR: %s", e)
            return ChangeRequestResult(0, "", "failed", error=str(e))

    def _find(self, task, branch):
        """Change request for *branch* as (pr, closed); closed ones are unmerged and need reopening."""
        if task.change_request_number:
            try:
                pr = self.client.get_pull(task.change_request_number)
            except NotFound:
                pr = None
            if pr and (pr.get("head") or {}).get("ref") == branch and not pr.get("merged"):
                return pr, pr.get("state") != "open"

        open_prs = self.client.list_pulls(head=branch, state="open")
        if open_prs:
            logger.info("Found existing PR #%s", open_prs[0]["number"])
            return open_prs[0], False

        for pr in self.client.list_pulls(head=branch, state="closed"):
            if not pr.get("merged_at"):
                return pr, True
        return None, False

    def _reopen(self, pr):
        logger.info("Reopening closed PR #%s", pr["number"])
        return self.client.update_pull(pr["number"], state="open")
