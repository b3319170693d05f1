"""Load project documents (vision, README, ...) to ground prompts in the repository."""

import logging

from config.defaults import DEFAULTS
from core.errors import GitHubError

logger = logging.getLogger(__name__)

# (file name, section heading), in the order they are loaded
CONTEXT_FILES = [
    ("VISION.md", "Project Vision"),
    ("README.md", "README (Project Overview)"),
    ("CONTRIBUTING.md", "Contributing Guidelines"),
    ("ARCHITECTURE.md", "Architecture"),
    ("ROADMAP.md", "Roadmap"),
]

TRUNCATION_MARKER = "\n\n[...content truncated for context limits...]"


def truncate_content(content, limit):
    """Cut *content* to *limit* characters, at a line boundary when one is near the end."""
    if len(content) <= limit:
        return content
    truncated = content[:limit]
    last_newline = truncated.rfind("\n")
    if last_newline > limit * 0.8:
        truncated = truncated[:last_newline]
    return truncated + TRUNCATION_MARKER


def load_repository_context(client, ref=None, max_file_size=None, max_total_size=None):
    """Fetch the context documents that exist in the repository.

    Returns:
        dict with ``owner``, ``name`` and a ``documents`` list of
        (heading, content) pairs. Missing files are skipped silently; other
        read failures are logged and skipped.
    """
    max_file = max_file_size or DEFAULTS["context_max_file_size"]
    max_total = max_total_size or DEFAULTS["context_max_total_size"]

    context = {"owner": client.owner, "name": client.repo, "documents": []}
    total = 0
    for filename, heading in CONTEXT_FILES:
        if total >= max_total:
            logger.warning("Context size limit reached, skipping %s", filename)
            break
        try:
            content = client.get_file(filename, ref=ref)
        except GitHubError as e:
            logger.error("Error loading %s: %s", filename, e)
            continue
        if not content:
            continue
        content = truncate_content(content, min(max_file, max_total - total))
        context["documents"].append((heading, content))
        total += len(content)

    logger.info("Loaded context for %s/%s: %d chars", client.owner, client.repo, total)
    return context


def format_context_for_prompt(context):
    """Render loaded documents as a markdown section for a system prompt."""
    sections = [f"# Repository: {context['owner']}/{context['name']}"]
    for heading, content in context.get("documents", []):
        sections.append(f"## {heading}\n{content}")
    if len(sections) == 1:
        sections.append(
            "\n*No vision or context documents found in repository. "
            "Using generic open source project guidelines.*"
        )
    return "\n\n".join(sections)
