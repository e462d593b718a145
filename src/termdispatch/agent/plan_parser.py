"""Turn model text into ordered actions.

Two line-oriented grammars are understood::

    PLAN:
    - Step 1: <command>
      - Explanation: <text>
      - Safety Level: <safe|moderate|destructive>
      - Requires Confirmation: <true|false>
    END OF PLAN

and the ``RECOVERY PLAN:`` variant, which may open with an ``- Issue Analysis:``
block and may label its last step ``Final Step``. Text that does not follow
either grammar goes through :func:`extract_commands`, which picks commands out
of back-tick spans, fenced code blocks and ``$``/``#`` prompt lines.
"""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass
from typing import cast

from termdispatch.agent.models import VALID_SAFETY_LEVELS, Action, SafetyLevel
from termdispatch.agent.safety import (
    detect_category,
    detect_safety_level,
    enforce_confirmation,
    reconcile_safety,
)

PLAN_MARKER = "PLAN:"
RECOVERY_PLAN_MARKER = "RECOVERY PLAN:"
END_OF_PLAN_MARKER = "END OF PLAN"

PLAN_DEFAULT_SAFETY: SafetyLevel = "safe"
RECOVERY_DEFAULT_SAFETY: SafetyLevel = "moderate"
FREE_TEXT_EXPLANATION = "Extracted from model response"

SHELL_FENCE_TAGS = frozenset({"", "bash", "sh", "shell", "zsh", "console", "command", "terminal"})

_STEP_LINE = re.compile(
    r"^(?:[-*]\s*)?(?:step\s*(?P<number>\d+)|(?P<final>final\s+step))\s*[:.)]\s*(?P<command>.*)$",
    re.IGNORECASE,
)
_FIELD_LINE = re.compile(
    r"^(?:[-*]\s*)?(?P<name>explanation|safety(?:\s+level)?|requires\s+confirmation"
    r"|issue\s+analysis)\s*:\s*(?P<value>.*)$",
    re.IGNORECASE,
)
_INLINE_SPAN = re.compile(r"(?<!`)`([^`\n]+)`(?!`)")
_SHELL_SYNTAX = re.compile(r"\s-|[|&;<>/$=~*.]")
_MARKER_DECORATION = "*#_` \t"
_TRUE_VALUES = {"true", "yes", "y", "required"}
_FALSE_VALUES = {"false", "no", "n", "not required"}

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _StepDraft:
    command: str
    final: bool = False
    explanation: str | None = None
    safety_level: SafetyLevel | None = None
    requires_confirmation: bool | None = None


def parse_plan(text: str) -> list[Action]:
    """Parse a ``PLAN:`` response, falling back to free-text extraction."""
    return _parse_tagged(
        text,
        marker=PLAN_MARKER,
        default_safety=PLAN_DEFAULT_SAFETY,
        allow_final_step=False,
        source="plan",
    )


def parse_recovery_plan(text: str) -> list[Action]:
    """Parse a ``RECOVERY PLAN:`` response, falling back to free-text extraction."""
    return _parse_tagged(
        text,
        marker=RECOVERY_PLAN_MARKER,
        default_safety=RECOVERY_DEFAULT_SAFETY,
        allow_final_step=True,
        source="recovery",
    )


def find_section(text: str, marker: str) -> list[str] | None:
    """Return the lines between ``marker`` and ``END OF PLAN``.

    ``None`` means the opening marker is absent. A missing end marker extends
    the section to the end of the text.
    """
    lines = text.splitlines()
    for index, line in enumerate(lines):
        label = _marker_text(line)
        if not label.startswith(marker):
            continue
        section: list[str] = []
        remainder = line.split(":", 1)[1].strip() if ":" in line else ""
        if remainder.strip(_MARKER_DECORATION):
            section.append(remainder)
        for candidate in lines[index + 1 :]:
            if _marker_text(candidate).startswith(END_OF_PLAN_MARKER):
                break
            section.append(candidate)
        return section
    return None


def _marker_text(line: str) -> str:
    return " ".join(line.strip().strip(_MARKER_DECORATION).upper().split())


def _parse_tagged(
    text: str,
    *,
    marker: str,
    default_safety: SafetyLevel,
    allow_final_step: bool,
    source: str,
) -> list[Action]:
    section = find_section(text, marker)
    if section is None:
        LOGGER.debug("plan_marker_missing", extra={"marker": marker})
        return actions_from_commands(extract_commands(text), source="free_text")

    analysis, drafts = _tokenize_steps(section, allow_final_step=allow_final_step)
    if not drafts:
        LOGGER.debug("plan_section_empty", extra={"marker": marker})
        return actions_from_commands(extract_commands(text), source="free_text")

    actions: list[Action] = []
    if analysis:
        actions.append(_issue_analysis_action(analysis, source=source))
    for index, draft in enumerate(drafts, start=1):
        actions.append(
            _draft_to_action(draft, index=index, default_safety=default_safety, source=source)
        )
    return actions


def _tokenize_steps(
    section: list[str], *, allow_final_step: bool
) -> tuple[str | None, list[_StepDraft]]:
    analysis_lines: list[str] = []
    collecting_analysis = False
    drafts: list[_StepDraft] = []

    for raw_line in section:
        line = raw_line.strip()
        if not line:
            continue

        step_match = _STEP_LINE.match(line)
        if step_match and (step_match.group("number") or allow_final_step):
            collecting_analysis = False
            command = _clean_command(step_match.group("command"))
            if command:
                drafts.append(
                    _StepDraft(command=command, final=bool(step_match.group("final")))
                )
            continue

        field_match = _FIELD_LINE.match(line)
        if field_match:
            name = " ".join(field_match.group("name").lower().split())
            value = field_match.group("value").strip()
            if name == "issue analysis":
                if not drafts:
                    collecting_analysis = True
                    if value:
                        analysis_lines.append(value)
                continue
            collecting_analysis = False
            if not drafts:
                continue
            current = drafts[-1]
            if name == "explanation":
                current.explanation = value or None
            elif name.startswith("safety"):
                current.safety_level = _parse_safety_level(value)
            else:
                current.requires_confirmation = _parse_bool(value)
            continue

        if collecting_analysis:
            analysis_lines.append(line.lstrip("-* ").strip())

    analysis = " ".join(part for part in analysis_lines if part)
    return (analysis or None), drafts


def _clean_command(value: str) -> str:
    command = value.strip()
    if len(command) >= 2 and command.startswith("`") and command.endswith("`"):
        command = command.strip("`").strip()
    return command


def _parse_safety_level(value: str) -> SafetyLevel | None:
    words = value.strip().lower().split()
    if not words:
        return None
    candidate = words[0].strip(".,;:*`'\"()[]")
    if candidate in VALID_SAFETY_LEVELS:
        return cast(SafetyLevel, candidate)
    return None


def _parse_bool(value: str) -> bool | None:
    normalized = " ".join(value.strip().lower().strip(".,;:*`'\"").split())
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return None


def _draft_to_action(
    draft: _StepDraft,
    *,
    index: int,
    default_safety: SafetyLevel,
    source: str,
) -> Action:
    declared = draft.safety_level or default_safety
    level = reconcile_safety(declared, draft.command)
    requires = (
        draft.requires_confirmation
        if draft.requires_confirmation is not None
        else level != "safe"
    )
    requires = requires or detect_safety_level(draft.command) != "safe"

    metadata = {
        "step": str(index),
        "safety_level": level,
        "category": detect_category(draft.command) or "other",
        "source": source,
    }
    if draft.explanation:
        metadata["explanation"] = draft.explanation
    if draft.final:
        metadata["final_step"] = "true"

    return Action(
        kind="execute_command",
        content=draft.command,
        requires_confirmation=enforce_confirmation(level, requires),
        metadata=metadata,
    )


def _issue_analysis_action(analysis: str, *, source: str) -> Action:
    return Action(
        kind="execute_command",
        content=f"echo {shlex.quote(f'Issue analysis: {analysis}')}",
        requires_confirmation=False,
        metadata={
            "type": "issue_analysis",
            "explanation": analysis,
            "safety_level": "safe",
            "source": source,
        },
    )


def extract_commands(text: str) -> list[str]:
    """Pick commands out of unstructured text, de-duplicated in priority order.

    Back-tick spans come first, then fenced shell blocks, then ``$ ``/``# `` lines.
    """
    inline: list[str] = []
    fenced: list[str] = []
    prompted: list[str] = []
    in_fence = False
    fence_is_shell = False

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line.startswith("```"):
            if in_fence:
                in_fence = False
            else:
                in_fence = True
                tag = line[3:].strip().lower()
                fence_is_shell = (tag.split()[0] if tag else "") in SHELL_FENCE_TAGS
            continue

        if in_fence:
            if fence_is_shell:
                command = _fenced_command(line)
                if command:
                    fenced.append(command)
            continue

        inline.extend(
            span.strip() for span in _INLINE_SPAN.findall(line) if _looks_like_command(span)
        )
        command = _prompted_command(line)
        if command:
            prompted.append(command)

    seen: set[str] = set()
    commands: list[str] = []
    for command in [*inline, *fenced, *prompted]:
        if command in seen:
            continue
        seen.add(command)
        commands.append(command)
    return commands


def _looks_like_command(span: str) -> bool:
    candidate = span.strip()
    if not candidate:
        return False
    return detect_category(candidate) != "other" or any(char.isspace() for char in candidate)


def _fenced_command(line: str) -> str | None:
    if not line or line.startswith("#"):
        return None
    if line.startswith("$ "):
        line = line[2:].strip()
    return line or None


def _prompted_command(line: str) -> str | None:
    if line.startswith("$ "):
        return line[2:].strip() or None
    if line.startswith("# ") and not line.startswith("##"):
        candidate = line[2:].strip()
        if not candidate or candidate[0].isupper():
            return None
        if detect_category(candidate) in (None, "other"):
            return None
        # plain words after "# " read as a heading, not a root prompt
        if " " in candidate and not _SHELL_SYNTAX.search(candidate):
            return None
        return candidate
    return None


def actions_from_commands(commands: list[str], *, source: str) -> list[Action]:
    """Wrap bare command strings as actions, classified rather than trusted."""
    actions: list[Action] = []
    for index, command in enumerate(commands, start=1):
        level = detect_safety_level(command)
        actions.append(
            Action(
                kind="execute_command",
                content=command,
                requires_confirmation=enforce_confirmation(level, level != "safe"),
                metadata={
                    "step": str(index),
                    "explanation": FREE_TEXT_EXPLANATION,
                    "safety_level": level,
                    "category": detect_category(command) or "other",
                    "source": source,
                },
            )
        )
    return actions
