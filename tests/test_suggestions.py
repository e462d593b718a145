from __future__ import annotations

from termdispatch.agent.suggestions import (
    FREE_TEXT_EXPLANATION,
    extract_response_context,
    has_no_suggestions,
    parse_suggestions,
    preprocess_response,
)

SUGGESTION_REPLY = """SUGGESTIONS:
- Suggestion: git status
  Explanation: Check the working tree
  Safety: safe

- Suggestion: `git reset --hard HEAD`
  Explanation: Discard local changes
  Safety: safe

- Suggestion: git status
  Explanation: Duplicate entry
  Safety: safe
END SUGGESTIONS"""


def test_parse_suggestions_reads_triples() -> None:
    suggestions = parse_suggestions(SUGGESTION_REPLY)

    assert [suggestion.command for suggestion in suggestions] == [
        "git status",
        "git reset --hard HEAD",
    ]
    assert suggestions[0].explanation == "Check the working tree"
    assert suggestions[0].safety_level == "safe"
    assert suggestions[0].requires_confirmation is False


def test_classifier_raises_declared_safety() -> None:
    reset = parse_suggestions(SUGGESTION_REPLY)[1]

    assert reset.safety_level == "destructive"
    assert reset.requires_confirmation is True


def test_declared_moderate_requires_confirmation() -> None:
    reply = "SUGGESTIONS:\n- Suggestion: ls\n  Explanation: list\n  Safety: Moderate\nEND SUGGESTIONS"

    (suggestion,) = parse_suggestions(reply)

    assert suggestion.safety_level == "moderate"
    assert suggestion.requires_confirmation is True


def test_unknown_safety_defaults_to_safe() -> None:
    reply = "SUGGESTIONS:\n- Suggestion: pwd\n  Safety: probably fine\nEND SUGGESTIONS"

    (suggestion,) = parse_suggestions(reply)

    assert suggestion.safety_level == "safe"
    assert suggestion.explanation == ""


def test_parse_suggestions_falls_back_to_free_text() -> None:
    suggestions = parse_suggestions("Try `grep -rn TODO src` to find them.")

    assert [suggestion.command for suggestion in suggestions] == ["grep -rn TODO src"]
    assert suggestions[0].explanation == FREE_TEXT_EXPLANATION


def test_parse_suggestions_empty_reply() -> None:
    assert parse_suggestions("Nothing to add.") == []


def test_no_suggestions_sentinel() -> None:
    assert has_no_suggestions("no_suggestions") is True
    assert has_no_suggestions(SUGGESTION_REPLY) is False


def test_preprocess_response_collapses_blank_runs() -> None:
    assert preprocess_response("\n\nSUGGESTIONS:\n\n\n- Suggestion: ls\n\n") == (
        "SUGGESTIONS:\n- Suggestion: ls"
    )


def test_extract_response_context_prefers_error_analysis() -> None:
    reply = """ERROR ANALYSIS:
The file build.sh is not executable.

SUGGESTIONS:
- Suggestion: chmod +x build.sh
  Explanation: Make the script executable
  Safety: moderate
END SUGGESTIONS"""

    assert extract_response_context(reply) == "The file build.sh is not executable."
    (suggestion,) = parse_suggestions(reply)
    assert suggestion.command == "chmod +x build.sh"


def test_extract_response_context_returns_surrounding_prose() -> None:
    reply = "You keep listing the same folder.\n" + SUGGESTION_REPLY

    assert extract_response_context(reply) == "You keep listing the same folder."
    assert extract_response_context(SUGGESTION_REPLY) is None
