"""Shell adapter implementations."""

from .base import ShellAdapter, ShellResult
from .bash_adapter import BashAdapter


def create_shell_adapter(shell_name: str, *, confirmation_mode: bool = True) -> ShellAdapter:
    normalized = shell_name.strip().lower()
    if normalized in {"bash", "sh", "shell"}:
        return BashAdapter(
            executable="sh" if normalized == "sh" else None,
            confirmation_mode=confirmation_mode,
        )
    msg = f"Unsupported shell adapter: {shell_name}"
    raise ValueError(msg)


__all__ = [
    "BashAdapter",
    "ShellAdapter",
    "ShellResult",
    "create_shell_adapter",
]
