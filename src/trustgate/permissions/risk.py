"""Advisory risk classification for pending operations.

The classifier looks at the command text, the touched paths and the
operation label. Its verdict only influences how loudly a request is
presented; the policy table's static risk level is what gates.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Iterable

from trustgate.permissions.policy import RiskLevel

# Commands that destroy data when combined with a recursive/force flag
DESTRUCTIVE_COMMANDS = frozenset(
    {"rm", "rmdir", "del", "rd", "erase", "shred", "chmod", "chown", "chgrp", "git", "mv"}
)

# Flags that make a destructive command recursive or non-interactive
LONG_FORCE_FLAGS = frozenset({"--recursive", "--force", "--hard", "--no-preserve-root"})
SHORT_FORCE_LETTERS = frozenset("rRf")
WINDOWS_FORCE_FLAGS = frozenset({"/s", "/q", "/f"})

PRIVILEGE_COMMANDS = frozenset({"sudo", "su", "runas", "doas"})

# Commands worth a second look even without flags
RISKY_COMMANDS = frozenset(
    {
        "rm",
        "del",
        "delete",
        "rmdir",
        "rd",
        "mv",
        "move",
        "cp",
        "copy",
        "xcopy",
        "curl",
        "wget",
        "invoke-webrequest",
        "chmod",
        "chown",
        "attrib",
        "dd",
        "mkfs",
    }
)
RISKY_SUBCOMMANDS = frozenset(
    {
        ("git", "reset"),
        ("git", "clean"),
        ("git", "rebase"),
        ("git", "push"),
        ("npm", "install"),
        ("npm", "uninstall"),
        ("pip", "install"),
        ("pip", "uninstall"),
        ("docker", "run"),
        ("docker", "exec"),
    }
)

SENSITIVE_PATH_PATTERNS = [
    re.compile(r"^/etc/"),
    re.compile(r"^/usr/bin/"),
    re.compile(r"^/usr/local/bin/"),
    re.compile(r"^/boot/"),
    re.compile(r"^C:\\Windows\\", re.IGNORECASE),
    re.compile(r"^C:\\Program Files", re.IGNORECASE),
    re.compile(r"\.env$"),
    re.compile(r"\.key$"),
    re.compile(r"\.pem$"),
    re.compile(r"\.p12$"),
    re.compile(r"id_rsa"),
    re.compile(r"secrets", re.IGNORECASE),
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"credentials", re.IGNORECASE),
]

DESTRUCTIVE_LABEL_WORDS = ("delete", "remove", "destroy")

_SEGMENT_SPLIT = re.compile(r"&&|\|\||[;|&\n]")


def _tokenize(segment: str) -> list[str]:
    try:
        return shlex.split(segment)
    except ValueError:
        return segment.split()


def _is_force_flag(token: str) -> bool:
    lowered = token.lower()
    if lowered in LONG_FORCE_FLAGS or lowered in WINDOWS_FORCE_FLAGS:
        return True
    if token.startswith("-") and not token.startswith("--") and len(token) > 1:
        return any(letter in SHORT_FORCE_LETTERS for letter in token[1:])
    return False


def _command_name(token: str) -> str:
    # /bin/rm -> rm, RM.EXE -> rm
    name = token.rsplit("/", 1)[-1].rsplit("\\", 1)[-1].lower()
    return name[:-4] if name.endswith(".exe") else name


def classify_command(command: str) -> RiskLevel:
    """Classify shell command text."""
    risk = RiskLevel.LOW
    for segment in _SEGMENT_SPLIT.split(command):
        tokens = _tokenize(segment.strip())
        if not tokens:
            continue

        name = _command_name(tokens[0])
        args = tokens[1:]
        if name in PRIVILEGE_COMMANDS:
            return RiskLevel.HIGH
        if name in DESTRUCTIVE_COMMANDS and any(_is_force_flag(arg) for arg in args):
            return RiskLevel.HIGH

        subcommand = args[0].lower() if args else ""
        if name in RISKY_COMMANDS or (name, subcommand) in RISKY_SUBCOMMANDS:
            risk = RiskLevel.MEDIUM
    return risk


def is_sensitive_path(path: str) -> bool:
    return any(pattern.search(path) for pattern in SENSITIVE_PATH_PATTERNS)


def classify_risk(
    command: str | None = None,
    files: Iterable[str] = (),
    operation: str | None = None,
) -> RiskLevel:
    """Classify an operation from its command, paths and label.

    - destructive command with a recursive/force flag, or privilege
      escalation: high
    - any sensitive path (system directories, secret-like files): high
    - label mentioning delete/remove/destroy: at least medium

    Example:
        classify_risk(command="rm -rf ./build")            # HIGH
        classify_risk(command="git status")                # LOW
        classify_risk(operation="Delete temp cache")       # MEDIUM
    """
    risk = RiskLevel.LOW

    if command:
        risk = RiskLevel.highest(risk, classify_command(command))

    if any(is_sensitive_path(path) for path in files):
        risk = RiskLevel.HIGH

    if operation:
        label = operation.lower()
        if any(word in label for word in DESTRUCTIVE_LABEL_WORDS):
            risk = RiskLevel.highest(risk, RiskLevel.MEDIUM)

    return risk
