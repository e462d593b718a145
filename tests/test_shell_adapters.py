from __future__ import annotations

import subprocess
from types import SimpleNamespace

import pytest

from termdispatch.shell import BashAdapter, ShellResult, create_shell_adapter


@pytest.mark.parametrize("factory_input", ["bash", "sh", "shell"])
def test_create_shell_adapter(factory_input: str) -> None:
    adapter = create_shell_adapter(factory_input)
    assert isinstance(adapter, BashAdapter)


def test_create_shell_adapter_uses_sh_executable() -> None:
    assert create_shell_adapter("sh").executable == "sh"


@pytest.mark.parametrize("factory_input", ["zsh", "cmd", "powershell"])
def test_create_shell_adapter_invalid(factory_input: str) -> None:
    with pytest.raises(ValueError, match="Unsupported shell adapter"):
        create_shell_adapter(factory_input)


def test_create_shell_adapter_threads_confirmation_mode() -> None:
    assert create_shell_adapter("bash", confirmation_mode=False).confirmation_mode is False


def test_bash_adapter_runs_command(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*args: object, **kwargs: object) -> SimpleNamespace:
        assert args[0] == ["bash", "-lc", "echo hi"]
        assert kwargs["cwd"] == "/repo"
        return SimpleNamespace(returncode=0, stdout=b"hi\n", stderr=b"")

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = BashAdapter(executable="bash").execute("echo hi", cwd="/repo")

    assert result.returncode == 0
    assert result.stdout == "hi\n"
    assert result.executed is True


def test_bash_adapter_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*args: object, **kwargs: object) -> SimpleNamespace:
        raise subprocess.TimeoutExpired(cmd=args[0], timeout=1, output=b"", stderr=b"late")

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = BashAdapter(executable="bash").execute("sleep 5", timeout=1)

    assert result.timed_out is True
    assert result.returncode == 124
    assert result.stderr == "late"


def test_bash_adapter_falls_back_to_sh(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_which(name: str) -> str | None:
        if name == "sh":
            return "/bin/sh"
        return None

    monkeypatch.setattr("termdispatch.shell.bash_adapter.shutil.which", fake_which)

    assert BashAdapter().executable == "sh"


def test_destructive_command_blocked_without_confirmation(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fake_run(*_args: object, **_kwargs: object) -> SimpleNamespace:
        raise AssertionError("blocked commands must not run")

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = BashAdapter(executable="bash").execute("rm -rf ./build")

    assert result.blocked is True
    assert result.executed is False
    assert result.returncode == 126
    assert "requires explicit confirmation" in result.stderr


def test_destructive_command_runs_when_confirmed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda *_a, **_k: SimpleNamespace(returncode=0, stdout=b"", stderr=b""),
    )

    result = BashAdapter(executable="bash").execute("rm -rf ./build", confirmed=True)

    assert result.blocked is False
    assert result.returncode == 0


def test_destructive_command_allowed_when_confirmation_mode_disabled(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda *_a, **_k: SimpleNamespace(returncode=0, stdout=b"", stderr=b""),
    )

    result = BashAdapter(executable="bash", confirmation_mode=False).execute("rm -rf ./tmp")

    assert result.executed is True
    assert result.blocked is False
    assert result.returncode == 0


@pytest.mark.parametrize("command", [":(){ :|:& };:", "rm -rf /", "sudo rm -rf /*"])
def test_forbidden_commands_blocked_even_when_confirmed(command: str) -> None:
    result = BashAdapter(executable="bash", confirmation_mode=False).execute(
        command, confirmed=True
    )

    assert result.blocked is True
    assert "forbidden" in (result.block_reason or "")


def test_allowlist_hook_rejects() -> None:
    adapter = BashAdapter(executable="bash", allowlist_hook=lambda _command, _shell: False)
    result = adapter.execute("ls", confirmed=True)

    assert result.executed is False
    assert result.blocked is True
    assert "allowlist" in result.stderr


def test_denylist_hook_receives_shell_name() -> None:
    seen: list[tuple[str, str]] = []

    def deny(command: str, shell: str) -> bool:
        seen.append((command, shell))
        return True

    result = BashAdapter(executable="bash", denylist_hook=deny).execute("ls")

    assert seen == [("ls", "bash")]
    assert "denylist" in result.stderr


def test_shell_result_converts_to_command_result() -> None:
    shell_result = ShellResult(
        command="make",
        shell="bash",
        returncode=2,
        stdout="building\n",
        stderr="make: *** [all] Error 1\n",
        duration_seconds=0.5,
    )

    result = shell_result.to_command_result()

    assert result.command == "make"
    assert result.exit_code == 2
    assert result.output == "building\nmake: *** [all] Error 1"
    assert result.duration == 0.5


def test_outcome_logging_masks_secrets(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level("INFO", logger="termdispatch.shell.base")
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda *_a, **_k: SimpleNamespace(returncode=0, stdout=b"done\n", stderr=b""),
    )

    BashAdapter(executable="bash").execute("deploy --token abc123")

    record = next(record for record in caplog.records if record.getMessage() == "command_finished")
    assert record.command == "deploy --token ***"
    assert record.output_length == 5


def test_blocked_command_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("WARNING", logger="termdispatch.shell.base")

    BashAdapter(executable="bash").execute("rm -rf ./build password=hunter2")

    record = next(record for record in caplog.records if record.getMessage() == "command_blocked")
    assert record.command == "rm -rf ./build password=***"
    assert "confirmation" in record.reason
