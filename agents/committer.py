"""Commit agent: lands a final change set as one atomic commit on the task branch.

Transport ladder, in order:
    1. git data API with each configured credential (primary, secondary).
       Only PermissionDenied moves to the next credential; any other
       failure stops the ladder with pushed=False.
    2. Native git push from the checked-out working copy, trying the
       checkout's own credential, then the primary, then the secondary.
"""

import logging
import os
from urllib.parse import urlparse

from core.errors import GitHubError, MergeConflict, PermissionDenied, ValidationRejected
from core.sandbox import redact, run_in_sandbox
from core.state import CommitResult
from core.validation import resolve_branch, validate_path

logger = logging.getLogger(__name__)

_PRIVATE_TRUNK_REF = "refs/coding-agent/trunk"
_PRIVATE_BRANCH_REF = "refs/coding-agent/branch"


class _GitStepFailed(Exception):
    pass


def build_commit_message(task, summary):
    return f"Implement changes for issue #{task.number}\n\n{summary}\n\n🤖 Generated by Coding Agent"


class CommitAgent:
    """Turns a FinalChangeSet into a CommitResult."""

    name = "committer"

    def __init__(self, config, clients, runner=None):
        self.config = config
        self.clients = [c for c in clients if c is not None]
        self.runner = runner or run_in_sandbox

    def run(self, final, task):
        branch = resolve_branch(task.target_branch, task.number)
        message = build_commit_message(task, final.summary)
        logger.info("Committing %d file(s) to %s", len(final.files), branch)

        if not final.files:
            return CommitResult(branch, "", False, error="empty change set")

        for client in self.clients:
            try:
                sha = self._commit_via_api(client, final, branch, message)
            except PermissionDenied as e:
                logger.warning("API commit refused for %s credential: %s", client.label, e)
                continue
            except GitHubError as e:
                logger.error("API commit failed with %s credential: %s", client.label, e)
                return CommitResult(branch, "", False, method=f"api:{client.label}", error=str(e))
            logger.info("Committed %s to %s via API (%s credential)", sha[:7], branch, client.label)
            return CommitResult(branch, sha, True, method=f"api:{client.label}")

        logger.warning("Every API credential was refused; falling back to native push")
        return self._commit_native(final, branch, message)

    # -- structured API -----------------------------------------------------

    def _commit_via_api(self, client, final, branch, message):
        trunk = client.default_branch()
        trunk_sha = client.get_ref(trunk)
        branch_sha = client.get_ref(branch)
        exists = branch_sha is not None
        force = False
        base_sha = branch_sha if exists else trunk_sha

        if exists:
            comparison = client.compare(trunk, branch)
            behind = comparison.get("behind_by", 0)
            if behind:
                logger.info("%s is %d commit(s) behind %s; merging", branch, behind, trunk)
                try:
                    merged = client.merge(branch, trunk, f"Merge {trunk} into {branch}")
                except MergeConflict:
                    logger.warning(
                        "Merging %s into %s conflicts; rebasing the new commit onto %s (%s)",
                        trunk, branch, trunk, trunk_sha[:7],
                    )
                    base_sha = trunk_sha
                    force = True
                else:
                    if merged:
                        base_sha = merged

        base_tree = client.get_commit(base_sha)["tree"]["sha"]
        existing = None
        if any(f.operation == "delete" for f in final.files):
            existing = client.list_tree_paths(base_tree)
        entries = []
        for f in final.files:
            if f.operation == "delete":
                if existing is not None and f.path not in existing:
                    logger.info("Skipping delete of %s: not present on %s", f.path, branch)
                    continue
                entries.append({"path": f.path, "mode": "100644", "type": "blob", "sha": None})
            else:
                entries.append({
                    "path": f.path, "mode": "100644", "type": "blob",
                    "sha": client.create_blob(f.content),
                })

        tree_sha = client.create_tree(base_tree, entries)
        commit_sha = client.create_commit(message, tree_sha, [base_sha])
        if exists:
            client.update_ref(branch, commit_sha, force=force)
        else:
            client.create_ref(branch, commit_sha)
        return commit_sha

    # -- native push --------------------------------------------------------

    def _credentials(self):
        creds = [("checkout", None)]
        if self.config.github_token:
            creds.append(("primary", self.config.github_token))
        if self.config.secondary_token:
            creds.append(("secondary", self.config.secondary_token))
        return creds

    def _remote(self, token):
        if token is None:
            return "origin"
        host = urlparse(self.config.server_url).netloc or "github.com"
        owner, repo = self.clients[0].owner, self.clients[0].repo
        return f"https://x-access-token:{token}@{host}/{owner}/{repo}.git"

    def _trunk_name(self):
        for client in self.clients:
            try:
                return client.default_branch()
            except GitHubError as e:
                logger.debug("Could not read default branch with %s credential: %s", client.label, e)
        return "main"

    def _git(self, *args):
        stdout, stderr, rc = self.runner(["git", *args], cwd=self.config.workspace)
        if rc != 0:
            verb = next((a for a in args if not a.startswith("-") and "=" not in a), "")
            raise _GitStepFailed(redact(f"git {verb} failed: {stderr.strip() or stdout.strip()}"))
        return stdout.strip()

    def _commit_native(self, final, branch, message):
        workspace = self.config.workspace
        if not workspace or not os.path.isdir(os.path.join(workspace, ".git")):
            logger.error("Native push unavailable: no git working copy at %r", workspace)
            return CommitResult(branch, "", False, method="native", error="no working copy")

        trunk = self._trunk_name()
        last_error = ""
        for label, token in self._credentials():
            try:
                sha = self._push_with(self._remote(token), final, branch, trunk, message)
            except _GitStepFailed as e:
                last_error = str(e)
                logger.warning("Native push with %s credential failed: %s", label, last_error)
                continue
            except ValidationRejected as e:
                last_error = redact(str(e))
                logger.error("Native push aborted: %s", last_error)
                break
            logger.info("Pushed %s to %s natively (%s credential)", sha[:7], branch, label)
            return CommitResult(branch, sha, True, method=f"native:{label}")

        return CommitResult(branch, "", False, method="native", error=last_error)

    def _push_with(self, remote, final, branch, trunk, message):
        self._git("fetch", "--no-tags", remote, f"+refs/heads/{trunk}:{_PRIVATE_TRUNK_REF}")
        force = False
        try:
            self._git("fetch", "--no-tags", remote, f"+refs/heads/{branch}:{_PRIVATE_BRANCH_REF}")
            branch_exists = True
        except _GitStepFailed:
            branch_exists = False

        identity = [
            "-c", f"user.name={self.config.git_author_name}",
            "-c", f"user.email={self.config.git_author_email}",
        ]
        if branch_exists:
            self._git("checkout", "--force", "-B", branch, _PRIVATE_BRANCH_REF)
            try:
                self._git(*identity, "merge", "--no-edit", _PRIVATE_TRUNK_REF)
            except _GitStepFailed:
                logger.warning("Local merge of %s into %s conflicts; rebasing onto %s", trunk, branch, trunk)
                self.runner(["git", "merge", "--abort"], cwd=self.config.workspace)
                self._git("checkout", "--force", "-B", branch, _PRIVATE_TRUNK_REF)
                force = True
        else:
            self._git("checkout", "--force", "-B", branch, _PRIVATE_TRUNK_REF)

        self._apply(final.files)
        written = [f.path for f in final.files if f.operation != "delete"]
        deleted = [f.path for f in final.files if f.operation == "delete"]
        if written:
            self._git("add", "-A", "--", *written)
        if deleted:
            # paths that were never tracked are not an error
            self._git("rm", "--cached", "--ignore-unmatch", "-q", "--", *deleted)
        self._git(*identity, "commit", "--allow-empty", "-m", message)

        push = ["push"]
        if force:
            push.append("--force")
        self._git(*push, remote, f"HEAD:refs/heads/{branch}")
        return self._git("rev-parse", "HEAD")

    def _apply(self, files):
        root = os.path.realpath(self.config.workspace)
        for f in files:
            ok, reason = validate_path(f.path)
            target = os.path.realpath(os.path.join(root, f.path))
            if not ok or not target.startswith(root + os.sep):
                raise ValidationRejected(f"refusing to write outside the working copy: {f.path!r} ({reason})")
            if f.operation == "delete":
                if os.path.exists(target):
                    os.remove(target)
                continue
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "w", encoding="utf-8") as fh:
                fh.write(f.content)

