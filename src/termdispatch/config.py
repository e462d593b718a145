"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from termdispatch.agent.auto import DEFAULT_SUGGESTION_COOLDOWN
from termdispatch.agent.context import DEFAULT_MAX_ENTRIES, DEFAULT_OUTPUT_LIMIT
from termdispatch.llm.client import DEFAULT_API_URL

SessionMode = Literal["dispatch", "auto"]

ENV_PREFIX = "TERMDISPATCH_"
SHARED_CONFIG_FILE = "termdispatch.config.json"
LOCAL_CONFIG_FILE = "termdispatch.config.local.json"
DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_STEPS = 20
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _env(name: str) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}")


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from environment variables and config files."""

    model: str | None
    api_url: str
    api_key: str | None
    timeout: float
    mode: SessionMode
    shell: str
    log_dir: str
    log_level: str
    max_steps: int
    max_context_entries: int
    output_char_limit: int
    suggestion_cooldown: float
    confirmation_mode: bool
    working_directory: str | None

    @classmethod
    def from_env(cls) -> AppConfig:
        file_config = _load_preferred_file_config()
        ollama_from_file = file_config.get("ollama")
        ollama_config = ollama_from_file if isinstance(ollama_from_file, dict) else {}

        return cls(
            model=(
                _env("MODEL")
                or _to_optional_string(ollama_config.get("model"))
                or _to_optional_string(file_config.get("model"))
            ),
            api_url=(
                _env("API_URL")
                or _to_optional_string(ollama_config.get("api_url"))
                or DEFAULT_API_URL
            ),
            api_key=(
                _env("API_KEY")
                or _to_optional_string(ollama_config.get("api_key"))
                or _to_optional_string(file_config.get("api_key"))
            ),
            timeout=_to_positive_float(
                _env("TIMEOUT") or ollama_config.get("timeout"),
                default=DEFAULT_TIMEOUT,
            ),
            mode=_resolve_mode(_env("MODE") or _to_optional_string(file_config.get("mode"))),
            shell=_resolve_shell(_env("SHELL") or _to_optional_string(file_config.get("shell"))),
            log_dir=(
                _env("LOG_DIR")
                or _to_optional_string(file_config.get("log_dir"))
                or "logs"
            ),
            log_level=_resolve_log_level(
                _env("LOG_LEVEL") or _to_optional_string(file_config.get("log_level"))
            ),
            max_steps=_to_positive_int(
                _env("MAX_STEPS") or file_config.get("max_steps"),
                default=DEFAULT_MAX_STEPS,
            ),
            max_context_entries=_to_positive_int(
                _env("MAX_CONTEXT_ENTRIES") or file_config.get("max_context_entries"),
                default=DEFAULT_MAX_ENTRIES,
            ),
            output_char_limit=_to_positive_int(
                _env("OUTPUT_CHAR_LIMIT") or file_config.get("output_char_limit"),
                default=DEFAULT_OUTPUT_LIMIT,
            ),
            suggestion_cooldown=_to_positive_float(
                _env("SUGGESTION_COOLDOWN") or file_config.get("suggestion_cooldown"),
                default=DEFAULT_SUGGESTION_COOLDOWN,
            ),
            confirmation_mode=_to_bool(
                _env("CONFIRMATION_MODE"),
                default=bool(file_config.get("confirmation_mode", True)),
            ),
            working_directory=(
                _env("CWD")
                or _to_optional_string(file_config.get("cwd"))
            ),
        )


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _load_file_config(path_value: str) -> dict[str, object]:
    path = Path(path_value)
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = _env("CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    shared_config = _load_file_config(SHARED_CONFIG_FILE)
    local_override = _load_file_config(LOCAL_CONFIG_FILE)
    return _merge_dicts(shared_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _resolve_mode(value: str | None) -> SessionMode:
    if value is not None and value.strip().lower() == "auto":
        return "auto"
    return "dispatch"


def _resolve_shell(value: str | None) -> str:
    if value is None:
        return "bash"
    normalized = value.strip().lower()
    return "sh" if normalized == "sh" else "bash"


def _resolve_log_level(value: str | None) -> str:
    if value is None:
        return "WARNING"
    normalized = value.strip().upper()
    return normalized if normalized in _LOG_LEVELS else "WARNING"


def _to_positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default


def _to_positive_float(value: object, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default
