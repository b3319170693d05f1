"""Entry guards that stop the pipeline from feeding on its own activity.

All checks are stateless and read only the invocation context handed in,
never the process environment. A rejection is a successful no-op, not an
error: callers report it as ``skipped``.
"""

import logging

from config.rules import BOT_PATTERNS, STOP_COMMAND_PATTERN

logger = logging.getLogger(__name__)

HANDOFF_EVENTS = ("workflow_dispatch", "repository_dispatch")


def is_bot(actor):
    """True if *actor* looks like an automation identity."""
    if not actor:
        return False
    return any(p.search(actor) for p in BOT_PATTERNS)


def has_stop_command(text):
    """True if *text* carries a human stop directive such as ``/stop``."""
    if not text:
        return False
    return STOP_COMMAND_PATTERN.search(text) is not None


def parse_dispatch_depth(payload):
    """Read ``dispatch_depth`` from a dispatch payload; 0 if absent or invalid."""
    if not isinstance(payload, dict):
        return 0
    depth = payload.get("dispatch_depth")
    if isinstance(depth, bool):
        return 0
    if isinstance(depth, (int, float)) and depth >= 0:
        return int(depth)
    if isinstance(depth, str):
        try:
            parsed = int(depth.strip())
        except ValueError:
            return 0
        return parsed if parsed >= 0 else 0
    return 0


def is_review_handoff(context, config):
    """The one automation-to-automation path allowed in: a review step dispatching back."""
    return (
        context.event_name in HANDOFF_EVENTS
        and context.handoff_source in config.handoff_sources
    )


def check(context, config, content=None):
    """Decide whether this invocation may proceed.

    Args:
        context: InvocationContext for the current run.
        config: AgentConfig carrying the depth and iteration limits.
        content: Task text to scan for stop directives, once it is known.

    Returns:
        (allowed, reason) where reason explains a rejection.
    """
    if is_bot(context.actor) and not is_review_handoff(context, config):
        return False, f"actor {context.actor!r} is an automation identity"

    if context.dispatch_depth >= config.max_dispatch_depth:
        return False, (
            f"dispatch depth {context.dispatch_depth} reached the limit "
            f"of {config.max_dispatch_depth}"
        )

    if context.iteration_count >= config.max_invocation_iterations:
        return False, (
            f"iteration count {context.iteration_count} reached the limit "
            f"of {config.max_invocation_iterations}"
        )

    if content is not None and has_stop_command(content):
        return False, "stop directive found in task content"

    return True, ""


def dispatch_payload(context, extra=None):
    """Payload for handing work onward, one dispatch level deeper."""
    payload = dict(extra or {})
    payload["dispatch_depth"] = context.dispatch_depth + 1
    payload["iteration_count"] = context.iteration_count
    return payload
