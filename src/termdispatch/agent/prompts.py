"""Prompt text for the mode handlers.

The markers (``PLAN:``, ``RECOVERY PLAN:``, ``END OF PLAN``, ``SUGGESTIONS:``,
``END SUGGESTIONS``, ``NO_SUGGESTIONS``, ``ERROR ANALYSIS:``) must match what
the parsers look for, so they are interpolated from the parser modules.
"""

from __future__ import annotations

from termdispatch.agent.models import ChatMessage, CommandCategory
from termdispatch.agent.plan_parser import (
    END_OF_PLAN_MARKER,
    PLAN_MARKER,
    RECOVERY_PLAN_MARKER,
)
from termdispatch.agent.suggestions import (
    END_SUGGESTIONS_MARKER,
    ERROR_ANALYSIS_MARKER,
    NO_SUGGESTIONS_MARKER,
    SUGGESTIONS_MARKER,
)

PLANNING_TEMPERATURE = 0.2
RECOVERY_TEMPERATURE = 0.3
SUMMARY_TEMPERATURE = 0.5
ERROR_ASSIST_TEMPERATURE = 0.4
PROACTIVE_TEMPERATURE = 0.4
IMMEDIATE_SUGGESTION_TEMPERATURE = 0.5
DEFAULT_SUGGESTION_TEMPERATURE = 0.7

PLANNING_SYSTEM_PROMPT = "\n".join(
    [
        "You are a terminal task dispatcher. Break the user's task into an ordered",
        "series of shell commands that can be run one at a time.",
        "Prefer safe, reversible and idempotent commands. Never combine unrelated",
        "work into one step.",
        "",
        "Respond with the plan in exactly this format:",
        "",
        PLAN_MARKER,
        "- Step 1: <command>",
        "  - Explanation: <what the command does>",
        "  - Safety Level: <safe|moderate|destructive>",
        "  - Requires Confirmation: <true|false>",
        "- Step 2: <command>",
        "  - Explanation: <what the command does>",
        "  - Safety Level: <safe|moderate|destructive>",
        "  - Requires Confirmation: <true|false>",
        END_OF_PLAN_MARKER,
        "",
        "Mark anything that deletes, overwrites or reconfigures as destructive.",
    ]
)

RECOVERY_SYSTEM_PROMPT = "\n".join(
    [
        "You are a terminal task dispatcher recovering from a failed step.",
        "Work out why the command failed and produce a replacement plan that",
        "completes the original task from the current state.",
        "",
        "Respond in exactly this format:",
        "",
        RECOVERY_PLAN_MARKER,
        "- Issue Analysis: <why the command failed>",
        "- Step 1: <command>",
        "  - Explanation: <what the command does>",
        "  - Safety Level: <safe|moderate|destructive>",
        "  - Requires Confirmation: <true|false>",
        "- Final Step: <command>",
        "  - Explanation: <what the command does>",
        "  - Safety Level: <safe|moderate|destructive>",
        "  - Requires Confirmation: <true|false>",
        END_OF_PLAN_MARKER,
        "",
        "If the task cannot be recovered, respond with an empty recovery plan.",
    ]
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a terminal task dispatcher. The task below has finished. Write a short,"
    " plain-language summary for the user of what was done and anything they should"
    " check. Do not propose further commands."
)

_SUGGESTION_FORMAT = "\n".join(
    [
        SUGGESTIONS_MARKER,
        "- Suggestion: <command>",
        "  Explanation: <brief explanation>",
        "  Safety: <safe/moderate/destructive>",
        "",
        "- Suggestion: <command>",
        "  Explanation: <brief explanation>",
        "  Safety: <safe/moderate/destructive>",
        "",
        END_SUGGESTIONS_MARKER,
    ]
)

SUGGESTION_BASE_PROMPT = "\n".join(
    [
        "You are an AI terminal assistant that provides helpful suggestions.",
        "Analyze the command and context to provide targeted assistance.",
        "",
        "Respond with actionable suggestions in this format:",
        "",
        _SUGGESTION_FORMAT,
        "",
        "Keep your suggestions relevant, practical, and specifically focused on the"
        " user's current task.",
        "Suggest only 2-3 of the most helpful commands.",
        f'If no suggestions are appropriate, respond with "{NO_SUGGESTIONS_MARKER}".',
    ]
)

DOMAIN_GUIDANCE: dict[CommandCategory, str] = {
    "filesystem": (
        "This command involves file operations. Focus on efficient file management"
        " alternatives and safety considerations, and mention backups before"
        " destructive operations."
    ),
    "search": (
        "This command involves searching for content. Suggest more powerful search"
        " techniques with grep, find or ripgrep, focusing on filtering and recursive"
        " search options."
    ),
    "network": (
        "This command performs network operations. Suggest improvements for security,"
        " efficiency or diagnosing network issues."
    ),
    "packages": (
        "This command involves package management. Focus on installing, updating and"
        " tracking dependencies, and on troubleshooting package problems."
    ),
    "version_control": (
        "This command uses version control. Suggest effective git workflows and ways"
        " to handle merge conflicts or branch management."
    ),
    "containers": (
        "This command involves containers such as Docker or Kubernetes. Suggest"
        " container management, debugging and security practices."
    ),
    "process": (
        "This command deals with process management. Suggest better ways to monitor,"
        " control or debug processes and their resource usage."
    ),
    "text_processing": (
        "This command involves text processing. Suggest text tools such as awk, sed or"
        " jq for transforming, extracting or formatting data."
    ),
    "system_config": (
        "This command involves system configuration. Suggest safe ways to inspect and"
        " manage system settings, with attention to security."
    ),
    "archives": (
        "This command deals with archives. Suggest better ways to compress, extract or"
        " inspect archives across formats."
    ),
    "shell_scripting": (
        "This command involves shell scripting. Suggest sturdier scripting practices"
        " or shell features that simplify the task."
    ),
    "database": (
        "This command involves database operations. Suggest improvements for querying,"
        " management or performance."
    ),
    "other": (
        "Analyze this command and suggest relevant improvements, alternatives, or best"
        " practices based on its purpose."
    ),
}

ERROR_ANALYSIS_SYSTEM_PROMPT = "\n".join(
    [
        "You are an AI terminal assistant specialized in fixing command errors.",
        "Analyze the failed command and its error output to suggest solutions.",
        "",
        "Respond with specific command suggestions in this format:",
        "",
        ERROR_ANALYSIS_MARKER,
        "<brief analysis of the error>",
        "",
        _SUGGESTION_FORMAT,
        "",
        "Focus on practical solutions that are most likely to resolve the issue.",
    ]
)

PROACTIVE_SYSTEM_PROMPT = "\n".join(
    [
        "You are an AI terminal assistant that proactively helps users.",
        "Analyze the command history and suggest ways to improve efficiency or solve"
        " recurring issues.",
        "",
        "Focus on these types of suggestions:",
        "1. More efficient alternatives to repeated commands",
        "2. Useful shortcut commands or aliases",
        "3. Solutions for recurring errors",
        "",
        "Respond with a small number of highly relevant suggestions in this format:",
        "",
        _SUGGESTION_FORMAT,
        "",
        "Consider the most recent commands more heavily than older ones.",
        f'If no suggestions are appropriate, respond with "{NO_SUGGESTIONS_MARKER}".',
    ]
)


def suggestion_system_prompt(category: CommandCategory | None) -> str:
    if category is None:
        return SUGGESTION_BASE_PROMPT
    return f"{SUGGESTION_BASE_PROMPT}\n\n{DOMAIN_GUIDANCE[category]}"


def planning_messages(task: str) -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content=PLANNING_SYSTEM_PROMPT),
        ChatMessage(role="user", content=f"Task:\n{task}"),
    ]


def recovery_messages(
    *, command: str, exit_code: int, output: str, task_context: str
) -> list[ChatMessage]:
    user_message = (
        f"Failed command: {command}\n"
        f"Exit code: {exit_code}\n"
        "Output:\n"
        f"{output}\n\n"
        "Task context (oldest to newest):\n"
        f"{task_context}"
    )
    return [
        ChatMessage(role="system", content=RECOVERY_SYSTEM_PROMPT),
        ChatMessage(role="user", content=user_message),
    ]


def summary_messages(*, task_context: str, steps_executed: int) -> list[ChatMessage]:
    user_message = (
        f"Steps executed: {steps_executed}\n\n"
        "Task context (oldest to newest):\n"
        f"{task_context}"
    )
    return [
        ChatMessage(role="system", content=SUMMARY_SYSTEM_PROMPT),
        ChatMessage(role="user", content=user_message),
    ]


def suggestion_messages(
    *, command: str, category: CommandCategory | None, recent_context: str
) -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content=suggestion_system_prompt(category)),
        ChatMessage(
            role="user",
            content=f"Command: {command}\n\nRecent Context:\n{recent_context}",
        ),
    ]


def error_messages(
    *, command: str, exit_code: int, output: str, recent_commands: str
) -> list[ChatMessage]:
    user_message = (
        f"Failed Command: {command}\n"
        f"Exit Code: {exit_code}\n"
        "Error Output:\n"
        f"{output}\n\n"
        "Recent Commands:\n"
        f"{recent_commands}"
    )
    return [
        ChatMessage(role="system", content=ERROR_ANALYSIS_SYSTEM_PROMPT),
        ChatMessage(role="user", content=user_message),
    ]


def proactive_messages(*, history: str) -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content=PROACTIVE_SYSTEM_PROMPT),
        ChatMessage(role="user", content=f"Command History:\n{history}"),
    ]
