"""Claude API client and tolerant JSON payload extraction."""

import json
import logging
import os
import re
import time

import anthropic

from config.defaults import DEFAULTS
from core.errors import CompletionUnavailable

logger = logging.getLogger(__name__)

MODEL = DEFAULTS["model"]
MAX_TOKENS = DEFAULTS["max_tokens"]

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")


def get_client(timeout=None):
    """Return an Anthropic client. Raises CompletionUnavailable if no API key is set."""
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise CompletionUnavailable(
            "ANTHROPIC_API_KEY environment variable is not set. "
            "Get a key at https://console.anthropic.com/ and run:\n"
            "  export ANTHROPIC_API_KEY='your-key-here'"
        )
    return anthropic.Anthropic(
        api_key=api_key,
        timeout=timeout or DEFAULTS["completion_timeout"],
        max_retries=0,
    )


def call_llm(system_prompt, user_message, model=None, timeout=None):
    """Call Claude once (plus one retry on API errors) and return the text.

    Args:
        system_prompt: System prompt string.
        user_message: User message string.
        model: Model id, defaults to DEFAULTS["model"].
        timeout: Per-call ceiling in seconds.

    Raises:
        CompletionUnavailable: no key, API failure after retry, timeout,
            or an empty response.
    """
    client = get_client(timeout)

    last_error = None
    for attempt in range(2):
        try:
            # Use streaming to avoid SDK timeout for large max_tokens
            text = ""
            with client.messages.stream(
                model=model or MODEL,
                max_tokens=MAX_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            ) as stream:
                for chunk in stream.text_stream:
                    text += chunk
                response_msg = stream.get_final_message()

            if response_msg.stop_reason == "max_tokens":
                logger.warning("Completion hit the token limit; payload may be truncated")

            if not text.strip():
                raise CompletionUnavailable("Completion returned an empty response")
            return text

        except anthropic.APIError as e:
            last_error = e
            logger.warning("Completion call failed (attempt %d): %s", attempt + 1, e)
            if attempt == 0:
                time.sleep(2)
                continue

    raise CompletionUnavailable(f"Completion failed after retry: {last_error}") from last_error


def parse_agent_response(text):
    """Extract a JSON object from model output.

    Tries, in order: the first fenced code block, the outermost ``{...}``
    span, then the whole text.

    Returns:
        The decoded dict, or None if no strategy yields a JSON object.
    """
    if not isinstance(text, str) or not text.strip():
        return None

    candidates = []
    fenced = _FENCED_BLOCK.search(text)
    if fenced and fenced.group(1).strip():
        candidates.append(fenced.group(1).strip())
    span = _OBJECT_SPAN.search(text)
    if span:
        candidates.append(span.group(0))
    candidates.append(text.strip())

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(data, dict):
            return data
    return None
