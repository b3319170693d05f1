"""Path and branch-name safety checks.

Every function here is pure and total: any input (including non-strings)
yields a verdict, nothing raises.
"""

import re

from config.defaults import DEFAULTS

# (pattern, reason) pairs; the first match rejects the path.
_UNSAFE_PATH_PATTERNS = [
    (re.compile(r"\.\."), "path traversal sequence '..'"),
    (re.compile(r"^[/\\]"), "absolute path"),
    (re.compile(r"^[a-zA-Z]:"), "drive letter prefix"),
    (re.compile(r'[<>:"|?*]'), "reserved character"),
    (re.compile(r"\x00"), "null byte"),
]

_BRANCH_DISALLOWED = re.compile(r"[^a-zA-Z0-9._/-]")
_BRANCH_VALID = re.compile(r"^[a-zA-Z0-9._/-]+$")


def validate_path(path):
    """Check a repository-relative file path.

    Returns:
        (True, "") if the path is safe, else (False, reason).
    """
    if not isinstance(path, str):
        return False, "path is not a string"
    if not path.strip():
        return False, "empty path"
    for pattern, reason in _UNSAFE_PATH_PATTERNS:
        if pattern.search(path):
            return False, reason
    return True, ""


def validate_branch(name):
    """Sanitize a branch name.

    Disallowed characters become '-', then the result is re-validated.
    git ref rules that the character class alone does not cover (``..``,
    leading '-' or '/', trailing '/' or '.lock') also reject.

    Returns:
        (True, sanitized) or (False, reason).
    """
    if not isinstance(name, str) or not name.strip():
        return False, "empty branch name"

    sanitized = _BRANCH_DISALLOWED.sub("-", name.strip())
    if not _BRANCH_VALID.match(sanitized):
        return False, "branch name has no valid characters"
    if ".." in sanitized or "//" in sanitized:
        return False, "branch name contains '..' or '//'"
    if sanitized.startswith(("-", "/")) or sanitized.endswith(("/", ".", ".lock")):
        return False, "branch name has an invalid prefix or suffix"
    return True, sanitized


def default_branch_name(number):
    """Deterministic branch for a task identifier, e.g. ``agent/issue-42``."""
    return f"{DEFAULTS['branch_prefix']}{number}"


def resolve_branch(candidate, number):
    """Sanitized *candidate*, or the deterministic default if it cannot be made safe."""
    if candidate:
        ok, result = validate_branch(candidate)
        if ok:
            return result
    return default_branch_name(number)
