"""Command-line interface for termdispatch."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import cast

from .agent.auto import AutoModeHandler
from .agent.dispatch import DispatchModeHandler
from .agent.handler import CallbackConfirmationGate
from .agent.loop import AutoSession, DispatchLoop
from .agent.models import Action, SessionTurn
from .config import AppConfig
from .llm.client import CompletionClient
from .shell import create_shell_adapter

LOGGER = logging.getLogger(__name__)
EXIT_WORDS = {"exit", "quit", "q"}


class CLIArgs(argparse.Namespace):
    goal: str | None
    mode: str | None
    model: str | None
    working_directory: str | None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termdispatch",
        description="Plan and run terminal tasks with a local language model",
    )
    parser.add_argument(
        "--mode",
        choices=("dispatch", "auto"),
        help="dispatch plans and runs a task; auto suggests around your own commands",
    )
    parser.add_argument("--model", help="Model name; overrides config/env values")
    parser.add_argument(
        "--cwd",
        dest="working_directory",
        help=(
            "Override the starting working directory for command execution. "
            "Takes precedence over config/env cwd values."
        ),
    )
    parser.add_argument("goal", nargs="?", help="Task to plan and run in dispatch mode")
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main() -> int:
    parser = build_parser()
    args = cast(CLIArgs, parser.parse_args())
    config = AppConfig.from_env()
    configure_logging(config.log_level)

    configured_working_directory = (
        args.working_directory if args.working_directory is not None else config.working_directory
    )
    working_directory: str | None = None
    if configured_working_directory is not None:
        resolved_working_directory = Path(configured_working_directory).expanduser().resolve()
        if not resolved_working_directory.exists() or not resolved_working_directory.is_dir():
            print(f"Invalid configured cwd directory: {configured_working_directory}")
            return 1
        working_directory = str(resolved_working_directory)

    model = args.model or config.model
    client = (
        CompletionClient(api_url=config.api_url, api_key=config.api_key, timeout=config.timeout)
        if model
        else None
    )
    if client is None:
        LOGGER.warning("completion_client_disabled", extra={"reason": "no model configured"})

    adapter = create_shell_adapter(config.shell, confirmation_mode=config.confirmation_mode)
    gate = CallbackConfirmationGate(_confirm_action)
    mode = args.mode or config.mode

    if mode == "auto":
        session = AutoSession(
            handler=AutoModeHandler(
                model=model or "",
                client=client,
                suggestion_cooldown=config.suggestion_cooldown,
                output_char_limit=config.output_char_limit,
            ),
            shell=adapter,
            log_dir=config.log_dir,
            confirmation_gate=gate,
            working_directory=working_directory,
        )
        return _run_auto(session)

    goal = args.goal or input("Task: ").strip()
    if not goal:
        print("No task provided.")
        return 1

    loop = DispatchLoop(
        handler=DispatchModeHandler(
            model=model or "",
            client=client,
            max_context_entries=config.max_context_entries,
            output_char_limit=config.output_char_limit,
        ),
        shell=adapter,
        log_dir=config.log_dir,
        confirmation_gate=gate,
        max_steps=config.max_steps,
        working_directory=working_directory,
    )

    current_goal = goal
    while True:
        turns = loop.run(current_goal)
        for idx, turn in enumerate(turns, start=1):
            print(_render_turn(turn, idx))

        try:
            next_goal = input("Next task (leave blank to exit): ").strip()
        except EOFError:
            break
        if not next_goal or next_goal.lower() in EXIT_WORDS:
            break
        current_goal = next_goal

    LOGGER.debug("shell_adapter_selected", extra={"shell": adapter.name})
    return 0


def _run_auto(session: AutoSession) -> int:
    print("Auto mode: type commands to run them, 'exit' to leave.")
    while True:
        try:
            command = input("$ ").strip()
        except EOFError:
            break
        if not command:
            continue
        if command.lower() in EXIT_WORDS:
            break
        print(_render_auto_turn(session.submit(command)))
    return 0


def _confirm_action(action: Action) -> bool:
    print("\n=== CONFIRMATION REQUIRED ===")
    print(f"Action: {action.kind}")
    print(f"Command: {action.content}")
    safety_level = action.metadata.get("safety_level")
    if safety_level:
        print(f"Safety level: {safety_level}")
    explanation = action.metadata.get("explanation")
    if explanation:
        print(f"Explanation: {explanation}")
    print("=============================")
    choice = input("Run this action? [y/N]: ").strip().lower()
    return choice in {"y", "yes"}


def _render_status(turn: SessionTurn) -> str:
    if turn.task_complete:
        return "completed"
    if turn.task_failed:
        return "failed"
    return turn.status


def _render_turn(turn: SessionTurn, idx: int) -> str:
    lines = [f"=== Turn {idx} ({_render_status(turn)}) ==="]

    if turn.command:
        lines.append("[command]")
        lines.append(turn.command)

    output = turn.output.rstrip()
    if output:
        lines.append("[output]")
        lines.append(output)

    if turn.context:
        lines.append("[status]")
        lines.append(turn.context)

    return "\n".join(lines)


def _render_auto_turn(turn: SessionTurn) -> str:
    lines: list[str] = []
    output = turn.output.rstrip()
    if output:
        lines.append(output)
    if turn.status in ("declined", "blocked"):
        lines.append(f"[{turn.status}] exit code {turn.exit_code}")

    if turn.context:
        lines.append("[analysis]")
        lines.append(turn.context)

    if turn.suggestions:
        header = "[suggestions]" if turn.priority is None else f"[suggestions: {turn.priority}]"
        lines.append(header)
        for suggestion in turn.suggestions:
            marker = " (confirm)" if suggestion.requires_confirmation else ""
            lines.append(f"  {suggestion.command}  # {suggestion.safety_level}{marker}")
            if suggestion.explanation:
                lines.append(f"    {suggestion.explanation}")

    return "\n".join(lines)


if __name__ == "__main__":
    raise SystemExit(main())
