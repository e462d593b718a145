from __future__ import annotations

from pathlib import Path

import pytest

from termdispatch import cli
from termdispatch.agent.models import Action, SessionTurn, Suggestion
from termdispatch.config import AppConfig


def _fake_config() -> AppConfig:
    return AppConfig(
        model="llama3",
        api_url="http://localhost:11434/api/chat",
        api_key=None,
        timeout=60.0,
        mode="dispatch",
        shell="bash",
        log_dir="logs",
        log_level="WARNING",
        max_steps=20,
        max_context_entries=40,
        output_char_limit=2000,
        suggestion_cooldown=5.0,
        confirmation_mode=True,
        working_directory=None,
    )


class FakeAdapter:
    name = "fake"


def _install_config(monkeypatch: pytest.MonkeyPatch, config: AppConfig) -> None:
    monkeypatch.setattr(
        cli,
        "AppConfig",
        type("FakeConfig", (), {"from_env": staticmethod(lambda: config)}),
    )
    monkeypatch.setattr(cli, "create_shell_adapter", lambda _name, **_kwargs: FakeAdapter())


def _feed_input(monkeypatch: pytest.MonkeyPatch, *answers: str) -> list[str]:
    prompts: list[str] = []
    remaining = list(answers)

    def fake_input(prompt: str = "") -> str:
        prompts.append(prompt)
        if not remaining:
            raise EOFError
        return remaining.pop(0)

    monkeypatch.setattr("builtins.input", fake_input)
    return prompts


class FakeLoop:
    captured: dict[str, object] = {}
    goals: list[str] = []

    def __init__(self, **kwargs: object) -> None:
        FakeLoop.captured = kwargs
        FakeLoop.goals = []

    def run(self, goal: str) -> list[SessionTurn]:
        FakeLoop.goals.append(goal)
        return [
            SessionTurn(input=goal, command="", output="", context="Task planned with 1 step", status="planned"),
            SessionTurn(
                input=goal,
                command="ls",
                output="a.txt\n",
                exit_code=0,
                context="Task completed successfully (1 steps executed)",
                task_complete=True,
            ),
        ]


def test_parser_defaults() -> None:
    args = cli.build_parser().parse_args([])
    assert args.goal is None
    assert args.mode is None
    assert args.model is None
    assert args.working_directory is None


def test_parser_accepts_mode_and_cwd() -> None:
    args = cli.build_parser().parse_args(["--mode", "auto", "--cwd", "./sandbox", "list files"])

    assert args.mode == "auto"
    assert args.working_directory == "./sandbox"
    assert args.goal == "list files"


def test_parser_rejects_unknown_mode() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--mode", "turbo"])


def test_main_rejects_invalid_cwd_from_config(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr("sys.argv", ["termdispatch", "list files"])
    config = _fake_config()
    config.working_directory = "./definitely-missing-dir"
    _install_config(monkeypatch, config)

    assert cli.main() == 1
    assert "Invalid configured cwd directory" in capsys.readouterr().out


def test_main_requires_a_task(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr("sys.argv", ["termdispatch"])
    _install_config(monkeypatch, _fake_config())
    _feed_input(monkeypatch, "")

    assert cli.main() == 1
    assert "No task provided." in capsys.readouterr().out


def test_main_runs_dispatch_loop_and_prints_turns(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr("sys.argv", ["termdispatch", "list files"])
    config = _fake_config()
    config.working_directory = str(tmp_path)
    _install_config(monkeypatch, config)
    monkeypatch.setattr(cli, "DispatchLoop", FakeLoop)
    _feed_input(monkeypatch, "")

    assert cli.main() == 0

    captured = FakeLoop.captured
    assert captured["working_directory"] == str(tmp_path.resolve())
    assert captured["max_steps"] == 20
    assert captured["handler"].client is not None
    assert captured["handler"].model == "llama3"
    out = capsys.readouterr().out
    assert "=== Turn 2 (completed) ===" in out
    assert "[command]\nls" in out
    assert "Task completed successfully" in out


def test_main_accepts_follow_up_tasks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.argv", ["termdispatch", "list files"])
    _install_config(monkeypatch, _fake_config())
    monkeypatch.setattr(cli, "DispatchLoop", FakeLoop)
    _feed_input(monkeypatch, "show disk usage", "")

    assert cli.main() == 0
    assert FakeLoop.goals == ["list files", "show disk usage"]


def test_main_without_model_disables_completion_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.argv", ["termdispatch", "list files"])
    config = _fake_config()
    config.model = None
    _install_config(monkeypatch, config)
    monkeypatch.setattr(cli, "DispatchLoop", FakeLoop)
    _feed_input(monkeypatch, "")

    assert cli.main() == 0
    assert FakeLoop.captured["handler"].client is None


def test_main_cwd_cli_override_takes_precedence(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    override_dir = tmp_path / "override"
    override_dir.mkdir()
    monkeypatch.setattr("sys.argv", ["termdispatch", "--cwd", str(override_dir), "list files"])
    config = _fake_config()
    config.working_directory = "./ignored-from-config"
    _install_config(monkeypatch, config)
    monkeypatch.setattr(cli, "DispatchLoop", FakeLoop)
    _feed_input(monkeypatch, "")

    assert cli.main() == 0
    assert FakeLoop.captured["working_directory"] == str(override_dir.resolve())


def test_main_auto_mode_prints_suggestions(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr("sys.argv", ["termdispatch", "--mode", "auto"])
    _install_config(monkeypatch, _fake_config())
    submitted: list[str] = []

    class FakeSession:
        def __init__(self, **kwargs: object) -> None:
            self.handler = kwargs["handler"]

        def submit(self, command: str) -> SessionTurn:
            submitted.append(command)
            return SessionTurn(
                input=command,
                command=command,
                output="match.txt\n",
                exit_code=0,
                suggestions=[
                    Suggestion(
                        command="rg pattern",
                        explanation="Faster recursive search",
                        safety_level="safe",
                    )
                ],
                priority="immediate",
            )

    monkeypatch.setattr(cli, "AutoSession", FakeSession)
    _feed_input(monkeypatch, "grep -r pattern .", "", "exit")

    assert cli.main() == 0
    assert submitted == ["grep -r pattern ."]
    out = capsys.readouterr().out
    assert "[suggestions: immediate]" in out
    assert "rg pattern  # safe" in out
    assert "Faster recursive search" in out


def test_auto_mode_stops_on_eof(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.argv", ["termdispatch", "--mode", "auto"])
    _install_config(monkeypatch, _fake_config())
    monkeypatch.setattr(cli, "AutoSession", lambda **_kwargs: object())
    _feed_input(monkeypatch)

    assert cli.main() == 0


def test_confirm_action_prompts_with_details(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    prompts = _feed_input(monkeypatch, "y")
    action = Action(
        kind="execute_command",
        content="rm -rf build",
        metadata={"safety_level": "destructive", "explanation": "Clean build output"},
    )

    assert cli._confirm_action(action) is True
    out = capsys.readouterr().out
    assert "Command: rm -rf build" in out
    assert "Safety level: destructive" in out
    assert prompts == ["Run this action? [y/N]: "]


def test_confirm_action_defaults_to_no(monkeypatch: pytest.MonkeyPatch) -> None:
    _feed_input(monkeypatch, "")

    assert cli._confirm_action(Action(kind="execute_command", content="rm -rf build")) is False
