"""Parse ``SUGGESTIONS: ... END SUGGESTIONS`` replies from the model."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import cast

from termdispatch.agent.models import VALID_SAFETY_LEVELS, SafetyLevel, Suggestion
from termdispatch.agent.plan_parser import extract_commands
from termdispatch.agent.safety import (
    detect_safety_level,
    enforce_confirmation,
    reconcile_safety,
)

SUGGESTIONS_MARKER = "SUGGESTIONS:"
END_SUGGESTIONS_MARKER = "END SUGGESTIONS"
NO_SUGGESTIONS_MARKER = "NO_SUGGESTIONS"
ERROR_ANALYSIS_MARKER = "ERROR ANALYSIS:"
FREE_TEXT_EXPLANATION = "Suggested command from response"

_SUGGESTION_FIELD = re.compile(
    r"^(?:[-*]\s*)?(?P<name>suggestion|explanation|safety(?:\s+level)?)\s*:\s*(?P<value>.*)$",
    re.IGNORECASE,
)
_BLANK_RUN = re.compile(r"\n\s*\n+")
_SUGGESTIONS_BLOCK = re.compile(
    r"SUGGESTIONS:.*?(?:END SUGGESTIONS|\Z)", re.IGNORECASE | re.DOTALL
)
_ERROR_ANALYSIS = re.compile(
    r"ERROR ANALYSIS:(?P<body>.*?)(?=^\s*[-*#]*\s*SUGGESTIONS:|\Z)",
    re.IGNORECASE | re.DOTALL | re.MULTILINE,
)


@dataclass(slots=True)
class _SuggestionDraft:
    command: str
    explanation: str = ""
    safety_level: SafetyLevel | None = None


def preprocess_response(response: str) -> str:
    """Collapse blank-line runs and trim surrounding whitespace."""
    return _BLANK_RUN.sub("\n", response).strip()


def has_no_suggestions(response: str) -> bool:
    return NO_SUGGESTIONS_MARKER in response.upper()


def _block_lines(response: str) -> list[str] | None:
    lines = response.splitlines()
    for index, line in enumerate(lines):
        label = " ".join(line.strip().strip("*#_ ").upper().split())
        if not label.startswith(SUGGESTIONS_MARKER):
            continue
        block: list[str] = []
        for candidate in lines[index + 1 :]:
            candidate_label = " ".join(candidate.strip().strip("*#_ ").upper().split())
            if candidate_label.startswith(END_SUGGESTIONS_MARKER):
                break
            block.append(candidate)
        return block
    return None


def parse_suggestions(response: str) -> list[Suggestion]:
    """Parse suggestion triples; free text is mined for commands when the block is absent.

    A declared safety level is advisory: the classifier may raise it and the
    confirmation requirement, never lower them.
    """
    block = _block_lines(response)
    if block is None:
        drafts = [
            _SuggestionDraft(command=command, explanation=FREE_TEXT_EXPLANATION)
            for command in extract_commands(response)
        ]
    else:
        drafts = _tokenize_block(block)

    suggestions: list[Suggestion] = []
    seen: set[str] = set()
    for draft in drafts:
        command = draft.command.strip()
        if not command or command in seen:
            continue
        seen.add(command)
        suggestions.append(_finalize(draft, command))
    return suggestions


def _tokenize_block(block: list[str]) -> list[_SuggestionDraft]:
    drafts: list[_SuggestionDraft] = []
    for raw_line in block:
        match = _SUGGESTION_FIELD.match(raw_line.strip())
        if not match:
            continue
        name = match.group("name").lower()
        value = match.group("value").strip()
        if name == "suggestion":
            drafts.append(_SuggestionDraft(command=_strip_ticks(value)))
            continue
        if not drafts:
            continue
        if name == "explanation":
            drafts[-1].explanation = value
        else:
            drafts[-1].safety_level = _parse_level(value)
    return drafts


def _strip_ticks(value: str) -> str:
    if len(value) >= 2 and value.startswith("`") and value.endswith("`"):
        return value.strip("`").strip()
    return value


def _parse_level(value: str) -> SafetyLevel | None:
    words = value.lower().split()
    candidate = words[0].strip(".,;:*`'\"()[]") if words else ""
    if candidate in VALID_SAFETY_LEVELS:
        return cast(SafetyLevel, candidate)
    return None


def _finalize(draft: _SuggestionDraft, command: str) -> Suggestion:
    declared: SafetyLevel = draft.safety_level or "safe"
    level = reconcile_safety(declared, command)
    requires = declared != "safe" or detect_safety_level(command) != "safe"
    return Suggestion(
        command=command,
        explanation=draft.explanation,
        safety_level=level,
        requires_confirmation=enforce_confirmation(level, requires),
    )


def extract_response_context(response: str) -> str | None:
    """Return the error analysis, or else any prose outside the suggestions block."""
    analysis = _ERROR_ANALYSIS.search(response)
    if analysis:
        body = analysis.group("body").strip()
        if body:
            return body

    remainder = _SUGGESTIONS_BLOCK.sub("", response).strip()
    if remainder and remainder != response.strip():
        return remainder
    return None
