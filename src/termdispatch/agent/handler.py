"""Contract shared by the mode handlers and the confirmation strategy."""

from __future__ import annotations

import abc
from collections.abc import Callable

from termdispatch.agent.models import Action, ChatMessage, CommandResult, HandlerState, ModeResponse
from termdispatch.llm.client import CompletionClient, CompletionUnavailableError

ConfirmCallback = Callable[[Action], bool]


class ModeHandler(abc.ABC):
    """One instance per session; only the owning session calls it."""

    def __init__(self, *, model: str, client: CompletionClient | None = None) -> None:
        self.model = model
        self.client = client

    @abc.abstractmethod
    def get_state(self) -> HandlerState:
        """Snapshot of the handler state."""

    @abc.abstractmethod
    def process_input(self, text: str) -> ModeResponse:
        """Consume user input."""

    @abc.abstractmethod
    def handle_command_result(self, result: CommandResult) -> ModeResponse:
        """Consume the outcome of a step the caller executed."""

    @abc.abstractmethod
    def reset(self) -> None:
        """Drop all task state."""

    def collect_completion(self, messages: list[ChatMessage], *, temperature: float) -> str:
        """Drain the completion stream into one string; parsing starts only afterwards."""
        if self.client is None:
            msg = f"No completion client configured for model {self.model}"
            raise CompletionUnavailableError(msg)
        chunks = self.client.generate_completion(
            self.model,
            messages,
            temperature=temperature,
            stream=True,
        )
        return "".join(chunk.content for chunk in chunks)


class ConfirmationGate(abc.ABC):
    """Decides whether an action flagged ``requires_confirmation`` may run."""

    @abc.abstractmethod
    def confirm(self, action: Action) -> bool:
        """Return true to allow the action."""


class CallbackConfirmationGate(ConfirmationGate):
    """Delegates the decision to a synchronous caller-supplied callback."""

    def __init__(self, callback: ConfirmCallback) -> None:
        self.callback = callback

    def confirm(self, action: Action) -> bool:
        return bool(self.callback(action))


class DenyConfirmationGate(ConfirmationGate):
    """Never confirms; used when no interactive channel exists."""

    def confirm(self, action: Action) -> bool:
        return False
