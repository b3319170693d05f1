"""Pipeline records shared across all stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TaskKind(str, Enum):
    NEW_IMPLEMENTATION = "new-implementation"
    FEEDBACK_REVISION = "feedback-revision"


COMPLEXITY_LEVELS = ("low", "medium", "high")
OPERATIONS = ("create", "modify", "delete")


@dataclass(frozen=True)
class Task:
    kind: TaskKind
    content: str
    feedback: str | None = None
    target_branch: str | None = None        # FeedbackRevision only, already sanitized
    issue_number: int | None = None
    change_request_number: int | None = None

    @property
    def number(self) -> int:
        """Identifier the deterministic branch name is derived from."""
        return self.issue_number or self.change_request_number or 0

    @property
    def is_revision(self) -> bool:
        return self.kind == TaskKind.FEEDBACK_REVISION


@dataclass
class Plan:
    summary: str
    target_files: list[str]
    approach: str
    complexity: str                         # low | medium | high
    from_fallback: bool = False


@dataclass(frozen=True)
class FileEdit:
    path: str
    operation: str                          # create | modify | delete
    content: str = ""


@dataclass
class Malformed:
    """A completion payload that could not be read as the expected shape."""

    reason: str


class ChangeSet:
    """Per-path edits accumulated across generation iterations.

    Content and operation are last-writer-wins per path; a path keeps the
    position it was first added at. ``revision`` counts accepted merges.
    """

    def __init__(self):
        self._edits: dict[str, FileEdit] = {}
        self.revision = 0

    def merge(self, edit: FileEdit) -> bool:
        """Store *edit*, replacing any earlier edit for its path. Returns True if the path is new."""
        is_new = edit.path not in self._edits
        self._edits[edit.path] = edit
        self.revision += 1
        return is_new

    def edits(self) -> list[FileEdit]:
        return list(self._edits.values())

    def paths(self) -> list[str]:
        return list(self._edits.keys())

    def get(self, path: str) -> FileEdit | None:
        return self._edits.get(path)

    def __contains__(self, path) -> bool:
        return path in self._edits

    def __len__(self) -> int:
        return len(self._edits)

    def __iter__(self):
        return iter(self._edits.values())


@dataclass
class ReviewVerdict:
    passed: bool
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    source: str = "model"                   # model | fallback


@dataclass
class FinalChangeSet:
    files: list[FileEdit]
    summary: str
    tests_added: bool
    complete: bool                          # False when the safety ceiling was hit
    iterations_used: int = 0
    verdict: ReviewVerdict | None = None

    def by_operation(self, operation: str) -> list[FileEdit]:
        return [f for f in self.files if f.operation == operation]


@dataclass
class CommitResult:
    branch_name: str
    commit_id: str
    pushed: bool
    method: str = ""                        # e.g. "api:primary", "native:checkout"
    error: str = ""


@dataclass
class ChangeRequestResult:
    number: int
    url: str
    status: str                             # created | updated | failed
    error: str = ""


@dataclass
class InvocationContext:
    """Everything the pipeline needs to know about who triggered it and how."""

    event_name: str
    actor: str
    owner: str
    repo: str
    payload: dict = field(default_factory=dict)
    issue_number: int | None = None         # explicit input
    pr_number: int | None = None            # explicit input
    dispatch_depth: int = 0
    iteration_count: int = 0

    @property
    def handoff_source(self) -> str:
        client_payload = self.payload.get("client_payload") or {}
        inputs = self.payload.get("inputs") or {}
        source = client_payload.get("source") or inputs.get("source") or ""
        return str(source)


@dataclass
class PipelineResult:
    status: str                             # success | dry-run | failure | skipped
    branch_name: str = ""
    change_request_number: int | None = None
    change_request_url: str = ""
    summary: str = ""
    message: str = ""
    plan: Plan | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failure"
