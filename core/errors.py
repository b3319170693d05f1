"""Error taxonomy shared across the pipeline."""


class AgentError(Exception):
    """Base class for pipeline errors with a human-readable message."""


class ValidationRejected(AgentError):
    """An unsafe path or branch name was rejected."""


class CompletionUnavailable(AgentError):
    """The completion capability could not produce a response."""


class GitHubError(AgentError):
    """A hosting-platform request failed.

    ``status`` is the HTTP status code, or None for transport failures and
    timeouts.
    """

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class NotFound(GitHubError):
    pass


class PermissionDenied(GitHubError):
    """The credential lacks permission for the attempted operation."""


class MergeConflict(GitHubError):
    """A server-side merge could not be completed automatically."""


class TaskUnavailable(AgentError):
    """No task could be derived from the invocation."""


class NoChangesToCommit(AgentError):
    pass


class PushFailed(AgentError):
    pass


class ReconciliationFailed(AgentError):
    pass


class FeedbackLimitReached(AgentError):
    """The change request has used up its automated revision passes."""


class SafetyLimitReached(AgentError):
    """Generation stopped at the iteration ceiling or on a stalled model.

    Terminal but successful: the partial change set is still committed.
    """
