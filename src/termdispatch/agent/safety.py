"""Stateless command classifier: domain category, complexity, priority and safety.

Everything here is a pure function over the static tables below. Both mode
handlers consult it to validate (and, where needed, override) the safety and
priority a model claims for a command.
"""

from __future__ import annotations

import re

from termdispatch.agent.models import (
    CommandCategory,
    SafetyLevel,
    SuggestionPriority,
    max_safety,
)

CategoryPattern = str | re.Pattern[str]

_SUB_COMMAND_SPLIT = re.compile(r"[|;]")
_SUDO_PREFIX = re.compile(r"^sudo\s+(?:-\S+\s+)*")

CATEGORY_PATTERNS: tuple[tuple[CommandCategory, tuple[CategoryPattern, ...]], ...] = (
    (
        "filesystem",
        (
            "ls", "cd", "pwd", "mkdir", "rmdir", "rm", "cp", "mv", "touch",
            "chmod", "chown", "ln", "stat", "df", "du", "tree",
            re.compile(r"^find\b.*\s-type\s+[fd]\b"),
        ),
    ),
    (
        "search",
        (
            "git grep", "grep", "egrep", "fgrep", "rg", "find", "fd", "locate",
            "which", "whereis", "ack", "ag",
        ),
    ),
    (
        "network",
        (
            "python -m http.server", "curl", "wget", "ping", "traceroute", "netstat",
            "ss", "ifconfig", "ip", "ssh", "scp", "rsync", "nc", "telnet",
            "nslookup", "dig", "host",
        ),
    ),
    (
        "process",
        ("ps", "kill", "pkill", "killall", "top", "htop", "pgrep", "jobs", "bg", "fg", "nice", "nohup"),
    ),
    (
        "packages",
        (
            "python -m pip", "apt", "apt-get", "yum", "dnf", "brew", "npm", "yarn",
            "pnpm", "pip", "pipx", "gem", "cargo", "pacman", "snap", "flatpak",
        ),
    ),
    ("version_control", ("git", "svn", "hg")),
    (
        "text_processing",
        ("awk", "sed", "cut", "sort", "uniq", "tr", "wc", "head", "tail", "jq", "diff", "cat", "less"),
    ),
    (
        "system_config",
        ("uname", "hostname", "sysctl", "systemctl", "service", "dmesg", "journalctl", "crontab", "launchctl"),
    ),
    ("archives", ("tar", "zip", "unzip", "gzip", "gunzip", "bzip2", "xz", "7z", "rar", "unrar")),
    (
        "shell_scripting",
        (
            "if", "for", "while", "until", "case", "function", "source", "export",
            "alias", "echo", "printf", "eval", "exec", "set", "./",
        ),
    ),
    ("containers", ("docker compose", "docker", "podman", "kubectl", "k8s", "helm", "minikube")),
    ("database", ("drop table", "select * from", "mysql", "psql", "sqlite", "mongo", "mongosh", "redis-cli")),
)

COMPLEXITY_OPERATORS = ("|", ";", "&&", "||", ">", ">>", "<", "2>", "&")
COMPLEXITY_SPECIAL_CHARS = frozenset("{}[]()$*?^!`\"'\\")
_SHORT_FLAG = re.compile(r"\s-[a-zA-Z]+")
_LONG_OPTION = re.compile(r"\s--[a-zA-Z0-9-]+")
_ANY_FLAG = re.compile(r"\s-{1,2}[a-zA-Z0-9]+")

COMPLEX_OPERATORS = ("|", ">", "<", "&&", "||", ";")
COMPLEX_TOOLS = frozenset({"find", "grep", "sed", "awk", "xargs", "curl", "docker", "kubectl"})
COMPLEX_FLAG_THRESHOLD = 3


def _command_word(name: str) -> str:
    """Regex for ``name`` in command position (start, after an operator, sudo or xargs)."""
    return (
        r"(?:^|[;&|`(]|\$\()\s*"
        r"(?:sudo\s+(?:-\S+\s+)*)?"
        r"(?:xargs\s+(?:-\S+\s+)*)?"
        rf"(?:{name})(?![\w.-])"
    )


_DESTRUCTIVE_PATTERNS = [
    re.compile(pattern)
    for pattern in (
        _command_word("rm") + r"[^;&|]*\s(?:-[a-z]*r[a-z]*|--recursive)(?![\w-])",
        _command_word("rmdir|deltree|shred|wipefs"),
        _command_word("dd") + r"\s",
        _command_word(r"mkfs(?:\.\w+)?"),
        _command_word("format"),
        _command_word("shutdown|reboot|halt|poweroff"),
        _command_word("truncate"),
        r">\s*/dev/(?!null\b|stdout\b|stderr\b|tty\b)",
        r">\s*/(?:etc|usr|system|boot|bin|sbin)\b",
        r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
        r"\bfind\b[^;&|]*\s-delete\b",
        r"\bgit\s+reset\b[^;&|]*--hard\b",
        r"\bgit\s+push\b[^;&|]*(?:\s-f\b|--force\b)",
        r"\bgit\s+clean\b[^;&|]*\s-[a-z]*f",
        r"\bdrop\s+(?:table|database|schema)\b",
    )
]

_MODERATE_PATTERNS = [
    re.compile(pattern)
    for pattern in (
        r"(?:^|[;&|]\s*)sudo\b",
        _command_word("chown|chmod|chgrp|passwd|kill|pkill|killall|mv|rm"),
        _command_word("cp") + r"[^;&|]*\s-[a-z]*f",
        r"\bgit\s+(?:push|reset|rebase)\b",
        r"\bsystemctl\s+(?:stop|restart|disable|mask)\b",
    )
]

_FORBIDDEN_PATTERNS = [
    re.compile(pattern)
    for pattern in (
        r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
        _command_word("rm") + r"\s+(?:-\S+\s+)*/\*?(?:\s|$)",
        _command_word(r"mkfs(?:\.\w+)?") + r"\s+[^;&|]*/dev/",
        _command_word("dd") + r"\s[^;&|]*\bof=/dev/(?:sd|hd|nvme|disk|mmcblk)",
        r">\s*/dev/(?:sd|hd|nvme|disk)",
    )
]


def normalize_command(command: str) -> str:
    return command.strip().lower()


def _split_sub_commands(normalized: str) -> list[str]:
    return [part.strip() for part in _SUB_COMMAND_SPLIT.split(normalized) if part.strip()]


def _leading_word(sub_command: str) -> str:
    stripped = _SUDO_PREFIX.sub("", sub_command)
    if not stripped:
        return ""
    word = stripped.split()[0]
    if "/" in word and not word.startswith("./"):
        word = word.rsplit("/", 1)[-1]
    return word


def _matches_word(word: str, pattern: str) -> bool:
    if pattern.endswith("/"):
        return word.startswith(pattern)
    if word == pattern:
        return True
    suffix = word[len(pattern):] if word.startswith(pattern) else ""
    return bool(suffix) and suffix.isdigit()


def _matches_any(normalized: str, patterns: tuple[CategoryPattern, ...]) -> bool:
    sub_commands = _split_sub_commands(normalized)
    for pattern in patterns:
        if isinstance(pattern, re.Pattern):
            if any(pattern.search(_SUDO_PREFIX.sub("", part)) for part in sub_commands):
                return True
            continue
        if " " in pattern:
            if pattern in normalized:
                return True
            continue
        for part in sub_commands:
            if _matches_word(_leading_word(part), pattern):
                return True
    return False


def detect_category(command: str) -> CommandCategory | None:
    """Return the first matching domain category, ``"other"`` as a catch-all.

    Only empty input yields ``None``.
    """
    normalized = normalize_command(command)
    if not normalized:
        return None
    for category, patterns in CATEGORY_PATTERNS:
        if _matches_any(normalized, patterns):
            return category
    return "other"


def analyze_complexity(command: str) -> float:
    """Score a command between 0.0 (simple) and 1.0 (complex)."""
    normalized = command.strip()
    complexity = min(len(normalized) / 100.0, 0.3)

    for operator in COMPLEXITY_OPERATORS:
        complexity += normalized.count(operator) * 0.05

    special_count = sum(1 for char in normalized if char in COMPLEXITY_SPECIAL_CHARS)
    complexity += special_count * 0.02

    sub_command_count = len(_SUB_COMMAND_SPLIT.split(normalized))
    complexity += (sub_command_count - 1) * 0.1

    complexity += len(_SHORT_FLAG.findall(normalized)) * 0.03
    complexity += len(_LONG_OPTION.findall(normalized)) * 0.05

    return min(max(complexity, 0.0), 1.0)


def determine_priority(
    command: str, category: CommandCategory | None = None
) -> SuggestionPriority:
    """Pick a suggestion priority from category, destructive markers and complexity."""
    normalized = normalize_command(command)
    pattern = category if category is not None else detect_category(command)
    complexity = analyze_complexity(command)

    if pattern in ("process", "system_config"):
        return "immediate"
    if pattern == "filesystem" and "rm " in normalized:
        return "critical"
    if pattern == "version_control" and (
        "git reset" in normalized or "git push -f" in normalized
    ):
        return "critical"
    if pattern is None:
        return "normal"

    if complexity > 0.7:
        return "immediate"
    if complexity > 0.3:
        return "normal"
    return "background"


def is_complex_command(command: str) -> bool:
    """Return true when a command uses shell operators, a complex tool or many flags."""
    stripped = command.strip()
    if any(operator in stripped for operator in COMPLEX_OPERATORS):
        return True
    first_word = stripped.split()[0].lower() if stripped else ""
    if first_word in COMPLEX_TOOLS:
        return True
    return len(_ANY_FLAG.findall(stripped)) >= COMPLEX_FLAG_THRESHOLD


def detect_safety_level(command: str) -> SafetyLevel:
    normalized = normalize_command(command)
    if not normalized:
        return "safe"
    if any(pattern.search(normalized) for pattern in _DESTRUCTIVE_PATTERNS):
        return "destructive"
    if any(pattern.search(normalized) for pattern in _MODERATE_PATTERNS):
        return "moderate"
    return "safe"


def is_forbidden(command: str) -> bool:
    """Return true for commands that are never run (fork bombs, wiping root or disks)."""
    normalized = normalize_command(command)
    return any(pattern.search(normalized) for pattern in _FORBIDDEN_PATTERNS)


def requires_confirmation(command: str) -> bool:
    return detect_safety_level(command) != "safe"


def reconcile_safety(declared: SafetyLevel, command: str) -> SafetyLevel:
    """Combine a model-declared level with the classifier; the result never drops below either."""
    return max_safety(declared, detect_safety_level(command))


def enforce_confirmation(level: SafetyLevel, requires: bool) -> bool:
    """Destructive always requires confirmation, whatever was requested."""
    if level == "destructive":
        return True
    return requires
