"""GitHub REST client for the operations the pipeline needs.

Every failure is mapped onto the pipeline's error taxonomy so callers can
branch on the class of problem (permission, conflict, missing object) rather
than on raw status codes.
"""

import base64
import logging

import httpx

from config.defaults import DEFAULTS
from core.errors import GitHubError, MergeConflict, NotFound, PermissionDenied

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"

# Message fragments GitHub uses when a credential lacks a permission or scope.
# Some of these arrive as 404 or 422 rather than 403.
_PERMISSION_HINTS = (
    "resource not accessible",
    "permission",
    "workflow",
    "must have push access",
    "write access",
    "not authorized",
)


def _is_permission_message(message):
    lowered = (message or "").lower()
    return any(hint in lowered for hint in _PERMISSION_HINTS)


def _is_rate_limited(response, message):
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in (message or "").lower()


class GitHubClient:
    """Thin wrapper over the GitHub REST API for one repository and one credential."""

    def __init__(self, token, owner, repo, api_url=None, timeout=None,
                 transport=None, label="primary"):
        self.owner = owner
        self.repo = repo
        self.label = label
        self._http = httpx.Client(
            base_url=(api_url or DEFAULTS["api_url"]).rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "coding-agent",
            },
            timeout=timeout or DEFAULTS["http_timeout"],
            transport=transport,
        )

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @property
    def _repo_path(self):
        return f"/repos/{self.owner}/{self.repo}"

    # -- transport ----------------------------------------------------------

    def _send(self, method, path, **kwargs):
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise GitHubError(f"{method} {path} timed out: {e}") from e
        except httpx.TransportError as e:
            raise GitHubError(f"{method} {path} failed: {e}") from e
        if response.status_code >= 400:
            self._raise_for(method, path, response)
        return response

    def _request(self, method, path, **kwargs):
        response = self._send(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _raise_for(self, method, path, response):
        status = response.status_code
        try:
            message = response.json().get("message", "")
        except ValueError:
            message = response.text[:200]
        detail = f"{method} {path} -> {status}: {message}"

        if status == 403 and not _is_rate_limited(response, message):
            raise PermissionDenied(detail, status)
        if status in (404, 422) and _is_permission_message(message):
            raise PermissionDenied(detail, status)
        if status == 404:
            raise NotFound(detail, status)
        raise GitHubError(detail, status)

    def _paginate(self, path, params=None):
        """Yield items across every page, following ``Link: rel="next"``."""
        params = dict(params or {})
        params.setdefault("per_page", 100)
        url = path
        while url:
            response = self._send("GET", url, params=params)
            yield from response.json()
            url = response.links.get("next", {}).get("url")
            params = None  # the next link already carries the query

    # -- repository ---------------------------------------------------------

    def get_repo(self):
        return self._request("GET", self._repo_path)

    def default_branch(self):
        return self.get_repo()["default_branch"]

    def get_file(self, path, ref=None):
        """Decoded text of a file, or None if it does not exist or is not a file."""
        params = {"ref": ref} if ref else None
        try:
            data = self._request("GET", f"{self._repo_path}/contents/{path}", params=params)
        except NotFound:
            return None
        if not isinstance(data, dict) or data.get("type") != "file":
            return None
        if data.get("encoding") != "base64":
            return data.get("content") or ""
        return base64.b64decode(data.get("content", "")).decode("utf-8", errors="replace")

    def dispatch_event(self, event_type, client_payload):
        self._request(
            "POST", f"{self._repo_path}/dispatches",
            json={"event_type": event_type, "client_payload": client_payload},
        )

    # -- issues, comments, labels, reactions --------------------------------

    def get_issue(self, number):
        return self._request("GET", f"{self._repo_path}/issues/{number}")

    def list_issue_comments(self, number):
        return list(self._paginate(f"{self._repo_path}/issues/{number}/comments"))

    def create_comment(self, number, body):
        return self._request(
            "POST", f"{self._repo_path}/issues/{number}/comments", json={"body": body},
        )

    def add_labels(self, number, labels):
        return self._request(
            "POST", f"{self._repo_path}/issues/{number}/labels", json={"labels": list(labels)},
        )

    def remove_label(self, number, label):
        """Remove a label; a label that is not present is not an error."""
        try:
            self._request("DELETE", f"{self._repo_path}/issues/{number}/labels/{label}")
        except NotFound:
            logger.debug("Label %s not present on #%s", label, number)

    def add_reaction(self, number, content):
        data = self._request(
            "POST", f"{self._repo_path}/issues/{number}/reactions", json={"content": content},
        )
        return data["id"] if data else None

    def remove_reaction(self, number, reaction_id):
        try:
            self._request("DELETE", f"{self._repo_path}/issues/{number}/reactions/{reaction_id}")
        except NotFound:
            logger.debug("Reaction %s already gone from #%s", reaction_id, number)

    # -- pull requests ------------------------------------------------------

    def get_pull(self, number):
        return self._request("GET", f"{self._repo_path}/pulls/{number}")

    def list_reviews(self, number):
        return list(self._paginate(f"{self._repo_path}/pulls/{number}/reviews"))

    def list_review_comments(self, number):
        return list(self._paginate(f"{self._repo_path}/pulls/{number}/comments"))

    def list_pulls(self, head=None, state="open"):
        params = {"state": state}
        if head:
            params["head"] = f"{self.owner}:{head}"
        return list(self._paginate(f"{self._repo_path}/pulls", params))

    def create_pull(self, title, body, head, base):
        return self._request(
            "POST", f"{self._repo_path}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
        )

    def update_pull(self, number, **fields):
        return self._request("PATCH", f"{self._repo_path}/pulls/{number}", json=fields)

    # -- git data -----------------------------------------------------------

    def get_ref(self, branch):
        """Commit sha the branch points at, or None if the branch does not exist."""
        try:
            data = self._request("GET", f"{self._repo_path}/git/ref/heads/{branch}")
        except NotFound:
            return None
        return data["object"]["sha"]

    def create_ref(self, branch, sha):
        return self._request(
            "POST", f"{self._repo_path}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )

    def update_ref(self, branch, sha, force=False):
        return self._request(
            "PATCH", f"{self._repo_path}/git/refs/heads/{branch}",
            json={"sha": sha, "force": force},
        )

    def compare(self, base, head):
        return self._request("GET", f"{self._repo_path}/compare/{base}...{head}")

    def merge(self, base, head, message):
        """Merge *head* into *base* server-side.

        Returns:
            The merge commit sha, or None if *base* already contains *head*.

        Raises:
            MergeConflict: the merge needs manual resolution.
        """
        try:
            data = self._request(
                "POST", f"{self._repo_path}/merges",
                json={"base": base, "head": head, "commit_message": message},
            )
        except GitHubError as e:
            if e.status == 409:
                raise MergeConflict(str(e), 409) from e
            raise
        return data["sha"] if data else None

    def get_commit(self, sha):
        return self._request("GET", f"{self._repo_path}/git/commits/{sha}")

    def create_blob(self, content):
        data = self._request(
            "POST", f"{self._repo_path}/git/blobs",
            json={"content": content, "encoding": "utf-8"},
        )
        return data["sha"]

    def list_tree_paths(self, tree_sha):
        """Blob paths under *tree_sha*, or None when GitHub truncated the listing."""
        data = self._request(
            "GET", f"{self._repo_path}/git/trees/{tree_sha}", params={"recursive": "1"},
        )
        if data.get("truncated"):
            return None
        return {e["path"] for e in data.get("tree", []) if e.get("type") == "blob"}

    def create_tree(self, base_tree, entries):
        """Create a tree on top of *base_tree*.

        Entries with ``sha: None`` delete the path from the base tree.
        """
        data = self._request(
            "POST", f"{self._repo_path}/git/trees",
            json={"base_tree": base_tree, "tree": entries},
        )
        return data["sha"]

    def create_commit(self, message, tree, parents, author=None):
        payload = {"message": message, "tree": tree, "parents": parents}
        if author:
            payload["author"] = author
        data = self._request("POST", f"{self._repo_path}/git/commits", json=payload)
        return data["sha"]
