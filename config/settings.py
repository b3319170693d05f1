"""Runtime configuration assembled from GitHub Actions inputs and the environment."""

import os
from dataclasses import dataclass, field

from config.defaults import DEFAULTS


def action_input(name, default=""):
    """Read a GitHub Actions input (``INPUT_<NAME>``, hyphens preserved)."""
    value = os.environ.get(f"INPUT_{name.upper()}", "")
    return value.strip() if value.strip() else default


def _flag(value):
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class AgentConfig:
    """Settings for one pipeline invocation.

    ``github_token`` is the primary credential; ``secondary_token`` is tried
    when the primary is refused for lack of permission. The native push path
    additionally uses whatever credential the checkout left on ``origin``.
    """

    github_token: str = ""
    secondary_token: str = ""
    model: str = DEFAULTS["model"]
    max_iterations: int = DEFAULTS["max_iterations"]
    max_feedback_iterations: int = DEFAULTS["max_feedback_iterations"]
    max_dispatch_depth: int = DEFAULTS["max_dispatch_depth"]
    max_invocation_iterations: int = DEFAULTS["max_invocation_iterations"]
    dry_run: bool = False
    workspace: str = ""
    api_url: str = DEFAULTS["api_url"]
    server_url: str = DEFAULTS["server_url"]
    bot_login: str = DEFAULTS["bot_login"]
    git_author_name: str = DEFAULTS["git_author_name"]
    git_author_email: str = DEFAULTS["git_author_email"]
    handoff_sources: list[str] = field(default_factory=lambda: list(DEFAULTS["handoff_sources"]))
    review_event: str = ""                  # repository_dispatch event fired after success

    def __post_init__(self):
        hard_max = DEFAULTS["hard_max_iterations"]
        if self.max_iterations < 1:
            self.max_iterations = 1
        self.max_iterations = min(self.max_iterations, hard_max)

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load config from action inputs, falling back to plain environment variables.

        Inputs / variables:
            github-token / GITHUB_TOKEN: primary credential
            agent-token / AGENT_GITHUB_TOKEN: secondary credential
            model / AGENT_MODEL
            max-iterations / AGENT_MAX_ITERATIONS (clamped to the hard ceiling)
            max-feedback-iterations / AGENT_MAX_FEEDBACK_ITERATIONS
            dry-run / AGENT_DRY_RUN
            review-event / AGENT_REVIEW_EVENT: dispatch fired once a PR is ready
        """
        env = os.environ
        return cls(
            github_token=action_input("github-token", env.get("GITHUB_TOKEN", "")),
            secondary_token=action_input("agent-token", env.get("AGENT_GITHUB_TOKEN", "")),
            model=action_input("model", env.get("AGENT_MODEL", DEFAULTS["model"])),
            max_iterations=_int(
                action_input("max-iterations", env.get("AGENT_MAX_ITERATIONS", "")),
                DEFAULTS["max_iterations"],
            ),
            max_feedback_iterations=_int(
                action_input("max-feedback-iterations", env.get("AGENT_MAX_FEEDBACK_ITERATIONS", "")),
                DEFAULTS["max_feedback_iterations"],
            ),
            dry_run=_flag(action_input("dry-run", env.get("AGENT_DRY_RUN", "false"))),
            workspace=env.get("GITHUB_WORKSPACE", ""),
            api_url=env.get("GITHUB_API_URL", DEFAULTS["api_url"]),
            server_url=env.get("GITHUB_SERVER_URL", DEFAULTS["server_url"]),
            bot_login=env.get("AGENT_BOT_LOGIN", DEFAULTS["bot_login"]),
            review_event=action_input("review-event", env.get("AGENT_REVIEW_EVENT", "")),
        )
