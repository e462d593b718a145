"""Auto mode: watch commands and their results, offer suggestions when useful."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from termdispatch.agent.context import DEFAULT_OUTPUT_LIMIT, truncate_output
from termdispatch.agent.handler import ModeHandler
from termdispatch.agent.models import (
    ChatMessage,
    CommandCategory,
    CommandResult,
    HandlerState,
    ModeResponse,
    SuggestionPriority,
)
from termdispatch.agent.prompts import (
    DEFAULT_SUGGESTION_TEMPERATURE,
    ERROR_ASSIST_TEMPERATURE,
    IMMEDIATE_SUGGESTION_TEMPERATURE,
    PROACTIVE_TEMPERATURE,
    error_messages,
    proactive_messages,
    suggestion_messages,
)
from termdispatch.agent.safety import detect_category, determine_priority, is_complex_command
from termdispatch.agent.suggestions import (
    extract_response_context,
    has_no_suggestions,
    parse_suggestions,
    preprocess_response,
)
from termdispatch.llm.client import CompletionClient

CONTEXT_BUFFER_SIZE = 50
DEFAULT_SUGGESTION_COOLDOWN = 5.0
PROACTIVE_MIN_ENTRIES = 3
PROACTIVE_WINDOW = 5
HISTORY_PROMPT_ENTRIES = 20

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ContextEntry:
    content: str
    is_command: bool
    exit_code: int | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def render(self) -> str:
        kind = "Command" if self.is_command else "Output"
        if self.exit_code is None:
            status = ""
        elif self.exit_code == 0:
            status = " (success)"
        else:
            status = f" (failed with exit code {self.exit_code})"
        return f"[{self.timestamp:%H:%M:%S}] {kind}: {self.content}{status}"


class AutoModeHandler(ModeHandler):
    """Suggests commands for complex input, failures and recurring patterns.

    Completion errors propagate; the owning session decides to stay quiet.
    """

    def __init__(
        self,
        *,
        model: str,
        client: CompletionClient | None = None,
        suggestion_cooldown: float = DEFAULT_SUGGESTION_COOLDOWN,
        output_char_limit: int = DEFAULT_OUTPUT_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(model=model, client=client)
        self.suggestion_cooldown = suggestion_cooldown
        self.output_char_limit = output_char_limit
        self.clock = clock
        self._entries: deque[ContextEntry] = deque(maxlen=CONTEXT_BUFFER_SIZE)
        self._last_suggestion_at: float | None = None

    def get_state(self) -> HandlerState:
        return HandlerState(
            is_active=True,
            context=[entry.render() for entry in self._entries],
        )

    def reset(self) -> None:
        self._entries.clear()
        self._last_suggestion_at = None

    def process_input(self, text: str) -> ModeResponse:
        command = text.strip()
        if not command:
            return ModeResponse()
        self._entries.append(ContextEntry(content=command, is_command=True))

        category = detect_category(command)
        priority = determine_priority(command, category)
        if not self._should_suggest(command, category, priority):
            LOGGER.debug("auto_input_recorded", extra={"category": category, "priority": priority})
            return ModeResponse()

        temperature = (
            IMMEDIATE_SUGGESTION_TEMPERATURE
            if priority in ("immediate", "critical")
            else DEFAULT_SUGGESTION_TEMPERATURE
        )
        return self._request_suggestions(
            suggestion_messages(
                command=command,
                category=category,
                recent_context=self._recent_context(),
            ),
            temperature=temperature,
            priority="critical" if priority == "critical" else "immediate",
        )

    def handle_command_result(self, result: CommandResult) -> ModeResponse:
        output = truncate_output(result.output.strip(), self.output_char_limit)
        self._entries.append(
            ContextEntry(
                content=output or "(no output)",
                is_command=False,
                exit_code=result.exit_code,
            )
        )

        if result.exit_code != 0:
            return self._request_suggestions(
                error_messages(
                    command=result.command,
                    exit_code=result.exit_code,
                    output=output,
                    recent_commands=self._recent_commands(),
                ),
                temperature=ERROR_ASSIST_TEMPERATURE,
                priority="immediate",
            )

        if not self._proactive_gate_open():
            return ModeResponse()
        return self._request_suggestions(
            proactive_messages(history=self._recent_context()),
            temperature=PROACTIVE_TEMPERATURE,
            priority="background",
        )

    @staticmethod
    def _should_suggest(
        command: str,
        category: CommandCategory | None,
        priority: SuggestionPriority,
    ) -> bool:
        if is_complex_command(command):
            return True
        return category not in (None, "other") and priority != "background"

    def _proactive_gate_open(self) -> bool:
        if self._last_suggestion_at is not None:
            if self.clock() - self._last_suggestion_at < self.suggestion_cooldown:
                return False
        if len(self._entries) < PROACTIVE_MIN_ENTRIES:
            return False

        recent = list(self._entries)[-PROACTIVE_WINDOW:]
        commands = [entry.content for entry in recent if entry.is_command]
        repeated = len(commands) != len(set(commands))
        failed = any(entry.exit_code not in (None, 0) for entry in recent)
        return repeated or failed

    def _recent_context(self) -> str:
        entries = list(self._entries)[-HISTORY_PROMPT_ENTRIES:]
        return "\n".join(entry.render() for entry in entries)

    def _recent_commands(self) -> str:
        commands = [entry.content for entry in self._entries if entry.is_command]
        return "\n".join(commands[-PROACTIVE_WINDOW:])

    def _request_suggestions(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float,
        priority: SuggestionPriority,
    ) -> ModeResponse:
        self._last_suggestion_at = self.clock()
        response = self.collect_completion(messages, temperature=temperature)
        if has_no_suggestions(response):
            LOGGER.debug("auto_no_suggestions", extra={"priority": priority})
            return ModeResponse()

        suggestions = parse_suggestions(preprocess_response(response))
        context = extract_response_context(response)
        LOGGER.info(
            "auto_suggestions_ready",
            extra={"count": len(suggestions), "priority": priority},
        )
        if not suggestions and context is None:
            return ModeResponse()
        return ModeResponse(suggestions=suggestions, context=context, priority=priority)
