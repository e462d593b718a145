"""Data models shared by the mode handlers, parsers and classifier."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

ActionKind = Literal[
    "execute_command",
    "generate_code",
    "modify_file",
    "install_package",
    "plan_task",
]
SafetyLevel = Literal["safe", "moderate", "destructive"]
SuggestionPriority = Literal["background", "normal", "immediate", "critical"]
CommandCategory = Literal[
    "filesystem",
    "search",
    "network",
    "process",
    "packages",
    "version_control",
    "text_processing",
    "system_config",
    "archives",
    "shell_scripting",
    "containers",
    "database",
    "other",
]
MessageRole = Literal["system", "user", "assistant"]
TurnStatus = Literal["planned", "executed", "declined", "blocked", "written", "skipped", "failed"]

SAFETY_ORDER: tuple[SafetyLevel, ...] = ("safe", "moderate", "destructive")
VALID_SAFETY_LEVELS: set[SafetyLevel] = set(SAFETY_ORDER)
COMMAND_ACTION_KINDS: set[ActionKind] = {"execute_command", "install_package"}


def safety_rank(level: SafetyLevel) -> int:
    return SAFETY_ORDER.index(level)


def max_safety(first: SafetyLevel, second: SafetyLevel) -> SafetyLevel:
    """Return the riskier of two safety levels."""
    return first if safety_rank(first) >= safety_rank(second) else second


@dataclass(frozen=True, slots=True)
class Action:
    """A typed unit of work produced by planning."""

    kind: ActionKind
    content: str
    requires_confirmation: bool = True
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Suggestion:
    """A non-binding command shown to the user in Auto mode."""

    command: str
    explanation: str
    safety_level: SafetyLevel = "safe"
    requires_confirmation: bool = False


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one executed step, reported back by the caller."""

    command: str
    output: str
    exit_code: int
    duration: float = 0.0


@dataclass(slots=True)
class HandlerState:
    """State a handler exposes to its owning session."""

    is_active: bool = True
    context: list[str] = field(default_factory=list)
    pending_actions: list[Action] = field(default_factory=list)


@dataclass(slots=True)
class ModeResponse:
    """What a handler hands back after input or a command result."""

    suggestions: list[Suggestion] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)
    context: str | None = None
    priority: SuggestionPriority | None = None

    @property
    def is_empty(self) -> bool:
        return not self.suggestions and not self.actions and self.context is None


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: MessageRole
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class CompletionChunk:
    """One streamed piece of a completion; concatenation yields the reply."""

    content: str
    done: bool = False


@dataclass(slots=True)
class SessionTurn:
    """One step of a session as shown to the user and written to the log."""

    input: str
    command: str
    output: str
    exit_code: int | None = None
    context: str | None = None
    action_kind: ActionKind | None = None
    status: TurnStatus = "executed"
    suggestions: list[Suggestion] = field(default_factory=list)
    priority: SuggestionPriority | None = None
    task_complete: bool = False
    task_failed: bool = False
