"""Bounded rolling log used to build follow-up prompts."""

from __future__ import annotations

from collections import deque

DEFAULT_MAX_ENTRIES = 40
DEFAULT_OUTPUT_LIMIT = 2000


def truncate_output(output: str, limit: int = DEFAULT_OUTPUT_LIMIT) -> str:
    """Keep the head and tail of long command output."""
    if limit <= 0 or len(output) <= limit:
        return output
    head_size = limit // 2
    tail_size = limit - head_size
    dropped = len(output) - head_size - tail_size
    return (
        f"{output[:head_size]}\n"
        f"... [{dropped} characters truncated] ...\n"
        f"{output[-tail_size:]}"
    )


class TaskContext:
    """Ordered log of request, step commands and truncated outputs.

    Once ``max_entries`` is reached the oldest entries are evicted.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self.max_entries = max_entries
        self._entries: deque[str] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: str) -> None:
        self._entries.append(entry)

    def entries(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def render(self, max_chars: int) -> str:
        """Join the newest entries that fit in ``max_chars``, oldest first."""
        if max_chars <= 0 or not self._entries:
            return ""

        selected: list[str] = []
        used = 0
        for entry in reversed(self._entries):
            cost = len(entry) + (1 if selected else 0)
            if used + cost > max_chars:
                break
            selected.insert(0, entry)
            used += cost
        return "\n".join(selected)
