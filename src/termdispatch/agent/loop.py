"""Session drivers: run Dispatch plans end to end, feed Auto mode from a prompt."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from termdispatch.agent.auto import AutoModeHandler
from termdispatch.agent.dispatch import DispatchModeHandler
from termdispatch.agent.handler import ConfirmationGate, DenyConfirmationGate
from termdispatch.agent.models import (
    COMMAND_ACTION_KINDS,
    Action,
    CommandResult,
    ModeResponse,
    SessionTurn,
    TurnStatus,
)
from termdispatch.llm.client import CompletionError
from termdispatch.shell import ShellAdapter

DECLINED_EXIT_CODE = 130
DECLINED_OUTPUT = "User declined action execution."
LOG_VERSION = 1

LOGGER = logging.getLogger(__name__)


def _append_log(log_dir: Path | None, entry: dict[str, object]) -> None:
    if log_dir is None:
        return
    log_dir.mkdir(parents=True, exist_ok=True)
    day_file = log_dir / f"session-{datetime.now(timezone.utc).date().isoformat()}.log"
    record = {
        "log_version": LOG_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **entry,
    }
    with day_file.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record) + "\n")


def _serialize_turn(turn: SessionTurn) -> dict[str, object]:
    return {
        "input": turn.input,
        "command": turn.command,
        "output": turn.output,
        "exit_code": turn.exit_code,
        "context": turn.context,
        "action_kind": turn.action_kind,
        "status": turn.status,
        "suggestions": [suggestion.command for suggestion in turn.suggestions],
        "priority": turn.priority,
        "task_complete": turn.task_complete,
        "task_failed": turn.task_failed,
    }


class DispatchLoop:
    """Plans a goal and executes the resulting actions one step at a time."""

    def __init__(
        self,
        *,
        handler: DispatchModeHandler,
        shell: ShellAdapter,
        log_dir: str | Path | None = None,
        confirmation_gate: ConfirmationGate | None = None,
        max_steps: int = 20,
        working_directory: str | None = None,
        command_timeout: float | None = None,
    ) -> None:
        self.handler = handler
        self.shell = shell
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.confirmation_gate = confirmation_gate or DenyConfirmationGate()
        self.max_steps = max_steps
        self.working_directory = working_directory
        self.command_timeout = command_timeout

    def run(self, goal: str) -> list[SessionTurn]:
        turns: list[SessionTurn] = []
        try:
            response = self.handler.process_input(goal)
        except CompletionError as exc:
            turn = SessionTurn(
                input=goal,
                command="",
                output="",
                context=f"Task failed: {exc}",
                status="failed",
                task_failed=True,
            )
            turns.append(turn)
            self._record(turn, goal=goal, step_index=0)
            return turns

        planning_turn = SessionTurn(
            input=goal,
            command="",
            output="",
            context=response.context,
            status="planned",
            task_failed=not response.actions,
        )
        turns.append(planning_turn)
        self._record(planning_turn, goal=goal, step_index=0)

        for step_index in range(1, self.max_steps + 1):
            if not response.actions:
                break
            action = response.actions[0]
            result, status = self._perform(action)
            response = self.handler.handle_command_result(result)

            finished = not response.actions
            completed = finished and self.handler.phase == "completed"
            turn = SessionTurn(
                input=goal,
                command=action.content,
                output=result.output,
                exit_code=result.exit_code,
                context=response.context,
                action_kind=action.kind,
                status=status,
                task_complete=completed,
                task_failed=finished and not completed,
            )
            turns.append(turn)
            self._record(turn, goal=goal, step_index=step_index, duration=result.duration)

        if response.actions:
            LOGGER.warning("step_budget_exhausted", extra={"max_steps": self.max_steps})
            self.handler.reset()
            turn = SessionTurn(
                input=goal,
                command="",
                output="",
                context=(
                    "Step budget exhausted before the task finished. "
                    f"Reached step {self.max_steps}/{self.max_steps}."
                ),
                status="failed",
                task_failed=True,
            )
            turns.append(turn)
            self._record(turn, goal=goal, step_index=self.max_steps)

        return turns

    def _perform(self, action: Action) -> tuple[CommandResult, TurnStatus]:
        if action.requires_confirmation and not self.confirmation_gate.confirm(action):
            LOGGER.info("action_declined", extra={"action_kind": action.kind})
            return (
                CommandResult(
                    command=action.content,
                    output=DECLINED_OUTPUT,
                    exit_code=DECLINED_EXIT_CODE,
                ),
                "declined",
            )

        if action.kind == "modify_file":
            return self._write_file(action)

        if action.kind in COMMAND_ACTION_KINDS:
            shell_result = self.shell.execute(
                action.content,
                cwd=self.working_directory,
                timeout=self.command_timeout,
                confirmed=action.requires_confirmation,
            )
            status: TurnStatus = "blocked" if shell_result.blocked else "executed"
            return shell_result.to_command_result(), status

        LOGGER.info("action_not_executable", extra={"action_kind": action.kind})
        return CommandResult(command=action.content, output=action.content, exit_code=0), "skipped"

    def _write_file(self, action: Action) -> tuple[CommandResult, TurnStatus]:
        path = action.metadata.get("path", "").strip()
        if not path:
            return (
                CommandResult(
                    command=action.content,
                    output="modify_file action has no target path",
                    exit_code=1,
                ),
                "failed",
            )

        target = Path(path).expanduser()
        if not target.is_absolute() and self.working_directory:
            target = Path(self.working_directory) / target
        label = f"write {target}"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(action.content, encoding="utf-8")
        except OSError as exc:
            LOGGER.error("file_write_failed", extra={"path": str(target), "error": str(exc)})
            return CommandResult(command=label, output=str(exc), exit_code=1), "failed"

        LOGGER.info("file_written", extra={"path": str(target), "chars": len(action.content)})
        return (
            CommandResult(
                command=label,
                output=f"Wrote {len(action.content)} characters to {target}",
                exit_code=0,
            ),
            "written",
        )

    def _record(
        self,
        turn: SessionTurn,
        *,
        goal: str,
        step_index: int,
        duration: float | None = None,
    ) -> None:
        _append_log(
            self.log_dir,
            {
                "mode": "dispatch",
                "goal": goal,
                "model": self.handler.model,
                "shell": self.shell.name,
                "working_directory": self.working_directory,
                "step_index": step_index,
                "duration": duration,
                **_serialize_turn(turn),
            },
        )


class AutoSession:
    """Runs the user's commands and collects Auto mode suggestions around them.

    Suggestion failures never interrupt the user; they yield no suggestions.
    """

    def __init__(
        self,
        *,
        handler: AutoModeHandler,
        shell: ShellAdapter,
        log_dir: str | Path | None = None,
        confirmation_gate: ConfirmationGate | None = None,
        working_directory: str | None = None,
        command_timeout: float | None = None,
    ) -> None:
        self.handler = handler
        self.shell = shell
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.confirmation_gate = confirmation_gate or DenyConfirmationGate()
        self.working_directory = working_directory
        self.command_timeout = command_timeout

    def submit(self, command: str) -> SessionTurn:
        input_response = self._quietly(self.handler.process_input, command)

        status: TurnStatus = "executed"
        if self.shell.is_destructive_command(command) and not self.confirmation_gate.confirm(
            Action(kind="execute_command", content=command, metadata={"safety_level": "destructive"})
        ):
            status = "declined"
            result = CommandResult(
                command=command,
                output=DECLINED_OUTPUT,
                exit_code=DECLINED_EXIT_CODE,
            )
        else:
            shell_result = self.shell.execute(
                command,
                cwd=self.working_directory,
                timeout=self.command_timeout,
                confirmed=True,
            )
            if shell_result.blocked:
                status = "blocked"
            result = shell_result.to_command_result()

        result_response = self._quietly(self.handler.handle_command_result, result)
        suggestions = [*input_response.suggestions, *result_response.suggestions]
        turn = SessionTurn(
            input=command,
            command=command,
            output=result.output,
            exit_code=result.exit_code,
            context=result_response.context or input_response.context,
            action_kind="execute_command",
            status=status,
            suggestions=suggestions,
            priority=result_response.priority or input_response.priority,
        )
        _append_log(
            self.log_dir,
            {
                "mode": "auto",
                "model": self.handler.model,
                "shell": self.shell.name,
                "working_directory": self.working_directory,
                "duration": result.duration,
                **_serialize_turn(turn),
            },
        )
        return turn

    @staticmethod
    def _quietly(call: Callable[..., ModeResponse], argument: object) -> ModeResponse:
        try:
            return call(argument)
        except CompletionError as exc:
            LOGGER.warning("auto_suggestions_unavailable", extra={"error": str(exc)})
            return ModeResponse()
