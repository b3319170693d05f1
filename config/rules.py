"""Review, actor and stop-command rule patterns."""

import re

# Patterns the fallback review gate scans generated content with. Each entry:
# (pattern_regex, severity, message, suggestion)
# "error" findings block the commit and are threaded back to the generator;
# "warning" findings are reported as suggestions only.
# "{file}" in a message is replaced with the offending path.
REVIEW_PATTERNS = [
    # --- Hardcoded secrets ---
    (
        re.compile(r"""password\s*[:=]\s*["'][^"']+["']""", re.IGNORECASE),
        "error",
        "Potential hardcoded password detected in {file}",
        "Read credentials from the environment or a secret store",
    ),
    (
        re.compile(r"""api[_-]?key\s*[:=]\s*["'][^"']+["']""", re.IGNORECASE),
        "error",
        "Potential hardcoded API key detected in {file}",
        "Read the key from the environment or a secret store",
    ),
    (
        re.compile(r"""secret\s*[:=]\s*["'][^"']+["']""", re.IGNORECASE),
        "error",
        "Potential hardcoded secret detected in {file}",
        "Read the secret from the environment or a secret store",
    ),
    (
        re.compile(r"""token\s*[:=]\s*["'][^"']+["']""", re.IGNORECASE),
        "error",
        "Potential hardcoded token detected in {file}",
        "Read the token from the environment or a secret store",
    ),
    (
        re.compile(r"""-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"""),
        "error",
        "Private key material embedded in {file}",
        "Never commit private keys; load them from a secret store at runtime",
    ),
    (
        re.compile(r"""\bAKIA[0-9A-Z]{16}\b"""),
        "error",
        "AWS access key id embedded in {file}",
        "Remove the key and rotate it",
    ),
    (
        re.compile(r"""\bgh[pousr]_[A-Za-z0-9]{36,}\b"""),
        "error",
        "GitHub token embedded in {file}",
        "Remove the token and revoke it",
    ),

    # --- Dynamic code execution ---
    (
        re.compile(r"""(?<![\w.])eval\s*\("""),
        "error",
        "Use of eval() detected in {file} - potential code injection risk",
        "Replace eval() with a safe parser (JSON.parse, ast.literal_eval, ...)",
    ),
    (
        re.compile(r"""\bnew\s+Function\s*\("""),
        "error",
        "Use of Function constructor detected in {file} - potential code injection risk",
        "Call an explicit function instead of compiling code from strings",
    ),
    (
        re.compile(r"""(?<![\w.])exec\s*\(\s*(?:compile\s*\(|["'f])"""),
        "error",
        "Use of exec() detected in {file} - potential code injection risk",
        "Avoid exec(); use explicit function calls instead",
    ),

    # --- Unsafe file/command operations ---
    (
        re.compile(r"""\bos\.system\s*\("""),
        "error",
        "os.system() used in {file} - vulnerable to shell injection",
        "Use subprocess.run() with a list of arguments",
    ),
    (
        re.compile(r"""\bshell\s*=\s*True\b"""),
        "error",
        "shell=True used in {file} - vulnerable to command injection",
        "Pass arguments as a list with shell=False",
    ),
    (
        re.compile(r"""\bchild_process\b.*\bexec(?:Sync)?\s*\(\s*`"""),
        "error",
        "Shell command built from a template string in {file} - command injection risk",
        "Use execFile/spawn with an argument array",
    ),
    (
        re.compile(r"""\brm\s+-rf\s+/(?:\s|$|\*)"""),
        "error",
        "Recursive delete of the filesystem root in {file}",
        "Scope destructive operations to an explicit, validated directory",
    ),

    # --- Placeholder / incomplete stand-ins ---
    (
        re.compile(r"""throw\s+new\s+Error\(\s*['"`]TODO""", re.IGNORECASE),
        "error",
        "Placeholder error thrown in {file} - incomplete implementation",
        "Implement the missing logic",
    ),
    (
        re.compile(r"""/\*\s*PLACEHOLDER\s*\*/""", re.IGNORECASE),
        "error",
        "Placeholder code detected in {file} - incomplete implementation",
        "Implement the missing logic",
    ),
    (
        re.compile(r"""\braise\s+NotImplementedError\b"""),
        "error",
        "NotImplementedError stand-in in {file} - incomplete implementation",
        "Implement the missing logic",
    ),
    (
        re.compile(r"""^\s*(?://|#)\s*\.\.\.\s*(?:rest|existing|remaining)\b""", re.IGNORECASE | re.MULTILINE),
        "error",
        "Elided content marker in {file} - file contents are incomplete",
        "Provide the complete file contents, not a partial excerpt",
    ),

    # --- Non-blocking quality notes ---
    (
        re.compile(r"""\bconsole\.(log|error|warn|debug|info)\("""),
        "warning",
        "console.log detected in {file} - should be removed for production",
        "Use the project's logger or remove the statement",
    ),
    (
        re.compile(r"""\b(TODO|FIXME|HACK|XXX)\b"""),
        "warning",
        "TODO/FIXME comment detected in {file} - implementation may be incomplete",
        "Resolve the note or open a follow-up issue",
    ),
    (
        re.compile(r"""\binnerHTML\s*="""),
        "warning",
        "Use of innerHTML detected in {file} - potential XSS vulnerability",
        "Use textContent or sanitize the markup",
    ),
    (
        re.compile(r"""dangerouslySetInnerHTML"""),
        "warning",
        "Use of dangerouslySetInnerHTML detected in {file} - ensure proper sanitization",
        "Sanitize the markup before rendering it",
    ),
    (
        re.compile(r"""\bdebug\s*=\s*True\b""", re.IGNORECASE),
        "warning",
        "Debug mode enabled in {file}",
        "Drive debug mode from configuration",
    ),
]

# Actors that are automation identities. Events they trigger are ignored
# unless they are an explicit review handoff.
BOT_PATTERNS = [
    re.compile(r"\[bot\]$", re.IGNORECASE),
    re.compile(r"^github-actions(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^dependabot(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^renovate(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^copilot-swe-agent$", re.IGNORECASE),
    re.compile(r"^codecov(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^greenkeeper(\[bot\])?$", re.IGNORECASE),
    re.compile(r"^snyk-bot$", re.IGNORECASE),
]

# Human directives that stop the agent from acting on a task.
STOP_COMMANDS = ["stop", "override", "human", "halt", "cancel"]

STOP_COMMAND_PATTERN = re.compile(
    r"(?<![\w/])/(?:" + "|".join(STOP_COMMANDS) + r")\b",
    re.IGNORECASE,
)

# Paths whose names mark them as tests.
TEST_PATH_PATTERN = re.compile(r"test|spec|__tests__", re.IGNORECASE)
