"""Shell execution contract and the guardrails every adapter applies."""

from __future__ import annotations

import abc
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from termdispatch.agent.models import CommandResult
from termdispatch.agent.safety import detect_safety_level, is_forbidden

LOGGER = logging.getLogger(__name__)

PolicyHook = Callable[[str, str], bool]

FORBIDDEN_REASON = "command blocked by forbidden-command policy"
DENYLIST_REASON = "command blocked by denylist policy"
ALLOWLIST_REASON = "command rejected by allowlist policy"
CONFIRMATION_REASON = "destructive command requires explicit confirmation"

_SECRET_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"(--?(?:password|token|secret|api[-_]?key)\s+)([^\s]+)",
        r"((?:password|token|secret|api[-_]?key)\s*=\s*)([^\s]+)",
    )
]


@dataclass(slots=True)
class ShellResult:
    """Captured outcome of one command; blocked commands never reach the shell."""

    command: str
    shell: str
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    duration_seconds: float = 0.0
    executed: bool = True
    blocked: bool = False
    block_reason: str | None = None

    @property
    def combined_output(self) -> str:
        parts = [part.rstrip("\n") for part in (self.stdout, self.stderr) if part.strip()]
        return "\n".join(parts)

    def to_command_result(self) -> CommandResult:
        return CommandResult(
            command=self.command,
            output=self.combined_output,
            exit_code=self.returncode,
            duration=self.duration_seconds,
        )


class ShellAdapter(abc.ABC):
    """Runs commands for the session loop behind the safety guardrails."""

    def __init__(
        self,
        *,
        allowlist_hook: PolicyHook | None = None,
        denylist_hook: PolicyHook | None = None,
        confirmation_mode: bool = True,
    ) -> None:
        self.allowlist_hook = allowlist_hook
        self.denylist_hook = denylist_hook
        self.confirmation_mode = confirmation_mode

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Adapter name recorded in session logs."""

    @abc.abstractmethod
    def execute(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
        confirmed: bool = False,
    ) -> ShellResult:
        """Run ``command`` unless a guardrail blocks it."""

    def enforce_guardrails(self, command: str, *, confirmed: bool) -> str | None:
        """Return why ``command`` may not run, or None."""
        if is_forbidden(command):
            return FORBIDDEN_REASON
        if self.denylist_hook and self.denylist_hook(command, self.name):
            return DENYLIST_REASON
        if self.allowlist_hook and not self.allowlist_hook(command, self.name):
            return ALLOWLIST_REASON
        if self.confirmation_mode and not confirmed and self.is_destructive_command(command):
            return CONFIRMATION_REASON
        return None

    def is_destructive_command(self, command: str) -> bool:
        return detect_safety_level(command) == "destructive"

    def blocked_result(self, command: str, reason: str) -> ShellResult:
        result = ShellResult(
            command=command,
            shell=self.name,
            returncode=126,
            stdout="",
            stderr=reason,
            executed=False,
            blocked=True,
            block_reason=reason,
        )
        LOGGER.warning(
            "command_blocked",
            extra={"shell": self.name, "command": mask_secrets(command), "reason": reason},
        )
        return result

    def log_outcome(self, result: ShellResult) -> None:
        LOGGER.info(
            "command_finished",
            extra={
                "shell": result.shell,
                "command": mask_secrets(result.command),
                "returncode": result.returncode,
                "timed_out": result.timed_out,
                "duration_seconds": round(result.duration_seconds, 4),
                "output_length": len(result.stdout) + len(result.stderr),
            },
        )


def mask_secrets(command: str) -> str:
    for pattern in _SECRET_PATTERNS:
        command = pattern.sub(r"\1***", command)
    return command
