"""Bash shell adapter implementation."""

from __future__ import annotations

import locale
import shutil
import subprocess
import time

from .base import PolicyHook, ShellAdapter, ShellResult

TIMEOUT_EXIT_CODE = 124


class BashAdapter(ShellAdapter):
    """Adapter for command execution via ``bash``/``sh``."""

    def __init__(
        self,
        executable: str | None = None,
        *,
        allowlist_hook: PolicyHook | None = None,
        denylist_hook: PolicyHook | None = None,
        confirmation_mode: bool = True,
        fallback_to_sh: bool = True,
    ) -> None:
        super().__init__(
            allowlist_hook=allowlist_hook,
            denylist_hook=denylist_hook,
            confirmation_mode=confirmation_mode,
        )
        self.executable = executable or _default_executable(fallback_to_sh=fallback_to_sh)

    @property
    def name(self) -> str:
        return "bash"

    def execute(
        self,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
        confirmed: bool = False,
    ) -> ShellResult:
        blocked_reason = self.enforce_guardrails(command, confirmed=confirmed)
        if blocked_reason:
            return self.blocked_result(command, blocked_reason)

        started = time.monotonic()
        try:
            process = subprocess.run(
                [self.executable, "-lc", command],
                capture_output=True,
                cwd=cwd,
                timeout=timeout,
                check=False,
            )
            returncode, stdout, stderr = process.returncode, process.stdout, process.stderr
            timed_out = False
        except subprocess.TimeoutExpired as exc:
            returncode, stdout, stderr = TIMEOUT_EXIT_CODE, exc.stdout, exc.stderr
            timed_out = True

        result = ShellResult(
            command=command,
            shell=self.name,
            returncode=returncode,
            stdout=_normalize_output(stdout),
            stderr=_normalize_output(stderr),
            timed_out=timed_out,
            duration_seconds=time.monotonic() - started,
        )
        self.log_outcome(result)
        return result


def _default_executable(*, fallback_to_sh: bool) -> str:
    if shutil.which("bash"):
        return "bash"
    if fallback_to_sh and shutil.which("sh"):
        return "sh"
    return "bash"


def _normalize_output(payload: bytes | str | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload

    for encoding in ("utf-8", "utf-8-sig", locale.getpreferredencoding(False)):
        try:
            return payload.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return payload.decode("utf-8", errors="replace")
