"""Default pipeline settings."""

DEFAULTS = {
    "max_iterations": 5,
    "hard_max_iterations": 8,   # absolute ceiling, cannot be overridden
    "max_feedback_iterations": 3,
    "max_dispatch_depth": 3,
    "max_invocation_iterations": 5,
    "model": "claude-sonnet-4-5-20250929",
    "max_tokens": 32768,
    "completion_timeout": 600,  # seconds, per completion call
    "http_timeout": 30,         # seconds, per hosting-platform call
    "git_timeout": 120,
    "allowed_commands": ["git"],
    "api_url": "https://api.github.com",
    "server_url": "https://github.com",
    "bot_login": "github-actions[bot]",
    "git_author_name": "Coding Agent",
    "git_author_email": "coding-agent@users.noreply.github.com",
    "branch_prefix": "agent/issue-",
    "min_created_file_lines": 3,
    "prompt_file_budget": 24000,   # characters of file content per generation prompt
    "context_max_file_size": 50000,
    "context_max_total_size": 100000,
    "handoff_sources": ["review-agent"],
    "labels": {
        "ready": "ready-for-agent",
        "assigned": "assigned-to-agent",
        "coded": "agent-coded",
        "halted": "agent-halted",
    },
    "update_marker": "🤖 Updates Applied",
    "halt_marker": "🛑 Feedback Limit Reached",
}
