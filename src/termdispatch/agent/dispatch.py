"""Dispatch mode: plan a task, hand out one step at a time, recover from failures."""

from __future__ import annotations

import logging
import shlex
from typing import Literal

from termdispatch.agent.context import (
    DEFAULT_MAX_ENTRIES,
    DEFAULT_OUTPUT_LIMIT,
    TaskContext,
    truncate_output,
)
from termdispatch.agent.handler import ModeHandler
from termdispatch.agent.models import Action, CommandResult, HandlerState, ModeResponse
from termdispatch.agent.plan_parser import actions_from_commands, parse_plan, parse_recovery_plan
from termdispatch.agent.prompts import (
    PLANNING_TEMPERATURE,
    RECOVERY_TEMPERATURE,
    SUMMARY_TEMPERATURE,
    planning_messages,
    recovery_messages,
    summary_messages,
)
from termdispatch.llm.client import CompletionClient, CompletionError

DispatchPhase = Literal["idle", "planning", "executing", "recovering", "completed"]

DEFAULT_CONTEXT_CHAR_BUDGET = 6000
NO_TASK_MESSAGE = "No task in progress"
TASK_FAILED_MESSAGE = "Task failed: Unable to recover from error"
SUPERSEDED_MESSAGE = "Superseded by a newer task"
RECOVERY_ERROR_TYPE = "recovery_error"

LOGGER = logging.getLogger(__name__)


def _steps(count: int) -> str:
    return f"{count} step" if count == 1 else f"{count} steps"


class DispatchModeHandler(ModeHandler):
    """Turns a request into a plan and walks it as the caller reports results.

    A new ``process_input`` replaces whatever plan is in flight. Completion
    results that arrive after the plan they were requested for has been
    replaced or reset are dropped.
    """

    def __init__(
        self,
        *,
        model: str,
        client: CompletionClient | None = None,
        max_context_entries: int = DEFAULT_MAX_ENTRIES,
        output_char_limit: int = DEFAULT_OUTPUT_LIMIT,
        context_char_budget: int = DEFAULT_CONTEXT_CHAR_BUDGET,
    ) -> None:
        super().__init__(model=model, client=client)
        self.output_char_limit = output_char_limit
        self.context_char_budget = context_char_budget
        self.task_context = TaskContext(max_entries=max_context_entries)
        self._plan: list[Action] = []
        self._step = 0
        self._executed = 0
        self._phase: DispatchPhase = "idle"
        self._generation = 0

    @property
    def phase(self) -> DispatchPhase:
        return self._phase

    @property
    def current_step(self) -> int:
        return self._step

    @property
    def plan(self) -> list[Action]:
        return list(self._plan)

    def get_state(self) -> HandlerState:
        return HandlerState(
            is_active=True,
            context=self.task_context.entries(),
            pending_actions=list(self._plan),
        )

    def reset(self) -> None:
        self._generation += 1
        self._plan = []
        self._step = 0
        self._executed = 0
        self._phase = "idle"
        self.task_context.clear()

    def process_input(self, text: str) -> ModeResponse:
        task = text.strip()
        if self._plan:
            LOGGER.info("task_interrupted", extra={"abandoned_steps": len(self._plan)})
        self.reset()
        if not task:
            return ModeResponse(context="Nothing to plan")

        generation = self._generation
        self._phase = "planning"
        self.task_context.append(f"Original task: {task}")

        try:
            plan = self._plan_task(task)
        except CompletionError:
            LOGGER.exception("planning_failed", extra={"model": self.model})
            if generation == self._generation:
                self.reset()
            raise

        if generation != self._generation:
            LOGGER.info("plan_discarded", extra={"reason": "superseded"})
            return ModeResponse(context=SUPERSEDED_MESSAGE)

        context = f"Task planned with {_steps(len(plan))}"
        LOGGER.info("task_planned", extra={"steps": len(plan), "model": self.model})
        if not plan:
            self.reset()
            return ModeResponse(context=context)

        self._plan = plan
        self._phase = "executing"
        self.task_context.append(context)
        return ModeResponse(actions=[plan[0]], context=context)

    def handle_command_result(self, result: CommandResult) -> ModeResponse:
        output = truncate_output(result.output, self.output_char_limit)
        if not self._plan:
            self.task_context.append(f"Command: {result.command} (exit code {result.exit_code})")
            self.task_context.append(f"Output: {output}")
            return ModeResponse(context=NO_TASK_MESSAGE)

        step_number = self._step + 1
        self.task_context.append(
            f"Step {step_number} result: {result.command} (exit code {result.exit_code})"
        )
        self.task_context.append(f"Output: {output}")

        if result.exit_code != 0:
            LOGGER.warning(
                "step_failed",
                extra={"step": step_number, "exit_code": result.exit_code},
            )
            return self._recover(result, output)

        self._executed += 1
        self._step += 1
        if self._step >= len(self._plan):
            return self._complete()

        context = f"Proceeding with step {self._step + 1} of {len(self._plan)}"
        self.task_context.append(context)
        return ModeResponse(actions=[self._plan[self._step]], context=context)

    def _plan_task(self, task: str) -> list[Action]:
        if self.client is None:
            commands = [part.strip() for part in task.split("&&") if part.strip()]
            LOGGER.info("planning_without_model", extra={"commands": len(commands)})
            return actions_from_commands(commands, source="direct")

        response = self.collect_completion(
            planning_messages(task),
            temperature=PLANNING_TEMPERATURE,
        )
        return parse_plan(response)

    def _recover(self, result: CommandResult, output: str) -> ModeResponse:
        self._phase = "recovering"
        generation = self._generation
        try:
            response = self.collect_completion(
                recovery_messages(
                    command=result.command,
                    exit_code=result.exit_code,
                    output=output,
                    task_context=self.task_context.render(self.context_char_budget),
                ),
                temperature=RECOVERY_TEMPERATURE,
            )
            plan = parse_recovery_plan(response)
        except CompletionError as exc:
            LOGGER.warning("recovery_request_failed", extra={"error": str(exc)})
            plan = [self._recovery_error_action(str(exc))]

        if generation != self._generation:
            LOGGER.info("recovery_discarded", extra={"reason": "superseded"})
            return ModeResponse(context=SUPERSEDED_MESSAGE)

        if not plan:
            LOGGER.warning("task_abandoned", extra={"command": result.command})
            self.reset()
            return ModeResponse(context=TASK_FAILED_MESSAGE)

        self._plan = plan
        self._step = 0
        self._phase = "executing"
        context = f"Recovery plan created ({_steps(len(plan))})"
        self.task_context.append(context)
        LOGGER.info("recovery_planned", extra={"steps": len(plan)})
        return ModeResponse(actions=[plan[0]], context=context)

    @staticmethod
    def _recovery_error_action(message: str) -> Action:
        return Action(
            kind="execute_command",
            content=f"echo {shlex.quote(f'Recovery failed: {message}')}",
            requires_confirmation=False,
            metadata={
                "type": RECOVERY_ERROR_TYPE,
                "explanation": message,
                "safety_level": "safe",
                "source": "recovery",
            },
        )

    def _complete(self) -> ModeResponse:
        if any(action.metadata.get("type") == RECOVERY_ERROR_TYPE for action in self._plan):
            self.reset()
            return ModeResponse(context=TASK_FAILED_MESSAGE)

        generation = self._generation
        summary = self._summarize(self._executed)
        if generation != self._generation:
            return ModeResponse(context=summary)

        LOGGER.info("task_completed", extra={"steps_executed": self._executed})
        self.reset()
        self._phase = "completed"
        return ModeResponse(context=summary)

    def _summarize(self, executed: int) -> str:
        fallback = f"Task completed successfully ({executed} steps executed)"
        if self.client is None:
            return fallback
        try:
            summary = self.collect_completion(
                summary_messages(
                    task_context=self.task_context.render(self.context_char_budget),
                    steps_executed=executed,
                ),
                temperature=SUMMARY_TEMPERATURE,
            )
        except CompletionError as exc:
            LOGGER.warning("summary_request_failed", extra={"error": str(exc)})
            return fallback
        return summary.strip() or fallback
