from __future__ import annotations

from termdispatch.agent.plan_parser import (
    extract_commands,
    find_section,
    parse_plan,
    parse_recovery_plan,
)

THREE_STEP_PLAN = """Sure, here is the plan.

PLAN:
- Step 1: ls -la
  - Explanation: List the current directory
  - Safety Level: safe
  - Requires Confirmation: false
- Step 2: mkdir -p test/folder
  - Explanation: Create the target folder
  - Safety Level: safe
  - Requires Confirmation: false
- Step 3: echo done
  - Explanation: Report completion
  - Safety Level: safe
  - Requires Confirmation: false
END OF PLAN
"""


def test_parse_plan_returns_steps_in_order() -> None:
    actions = parse_plan(THREE_STEP_PLAN)

    assert [action.content for action in actions] == [
        "ls -la",
        "mkdir -p test/folder",
        "echo done",
    ]
    assert all(action.kind == "execute_command" for action in actions)
    assert [action.metadata["step"] for action in actions] == ["1", "2", "3"]
    assert actions[0].metadata["explanation"] == "List the current directory"
    assert actions[0].metadata["category"] == "filesystem"
    assert actions[0].requires_confirmation is False


def test_parse_plan_falls_back_to_fenced_block() -> None:
    text = "You can do this with:\n```bash\nls -la\nmkdir -p x\n```\nGood luck."

    actions = parse_plan(text)

    assert [action.content for action in actions] == ["ls -la", "mkdir -p x"]
    assert all(action.metadata["source"] == "free_text" for action in actions)


def test_parse_plan_returns_empty_for_prose() -> None:
    assert parse_plan("I am not sure what you mean.") == []


def test_destructive_step_forces_confirmation() -> None:
    text = """PLAN:
- Step 1: rm -rf build
  - Explanation: Clean the build output
  - Safety Level: safe
  - Requires Confirmation: false
END OF PLAN"""

    (action,) = parse_plan(text)

    assert action.metadata["safety_level"] == "destructive"
    assert action.requires_confirmation is True


def test_declared_level_is_kept_when_riskier_than_classifier() -> None:
    text = """PLAN:
- Step 1: ls
  - Safety Level: moderate
END OF PLAN"""

    (action,) = parse_plan(text)

    assert action.metadata["safety_level"] == "moderate"
    assert action.requires_confirmation is True


def test_parse_plan_without_end_marker_reads_to_end() -> None:
    actions = parse_plan("PLAN:\n- Step 1: ls\n- Step 2: `pwd`")

    assert [action.content for action in actions] == ["ls", "pwd"]


def test_markers_are_case_insensitive_and_decorated() -> None:
    text = "**plan:**\nstep 1: git status\n**end of plan**\nstep 2: ls"

    actions = parse_plan(text)

    assert [action.content for action in actions] == ["git status"]


def test_empty_plan_section_falls_back_to_free_text() -> None:
    actions = parse_plan("PLAN:\nEND OF PLAN\nTry `ls -la` instead.")

    assert [action.content for action in actions] == ["ls -la"]


def test_parse_plan_ignores_final_step_label() -> None:
    actions = parse_plan("PLAN:\n- Step 1: ls\n- Final Step: rm -rf build\nEND OF PLAN")

    assert [action.content for action in actions] == ["ls"]


def test_recovery_plan_with_issue_analysis_and_final_step() -> None:
    text = """RECOVERY PLAN:
- Issue Analysis: The build directory does not exist
- Step 1: mkdir -p build
  - Explanation: Create the directory
- Final Step: make
  - Explanation: Retry the build
  - Safety Level: safe
END OF PLAN"""

    actions = parse_recovery_plan(text)

    assert len(actions) == 3
    analysis, create, build = actions
    assert analysis.content == "echo 'Issue analysis: The build directory does not exist'"
    assert analysis.metadata["type"] == "issue_analysis"
    assert analysis.requires_confirmation is False
    assert create.content == "mkdir -p build"
    assert create.metadata["safety_level"] == "moderate"
    assert create.requires_confirmation is True
    assert build.content == "make"
    assert build.metadata["final_step"] == "true"
    assert build.metadata["step"] == "2"


def test_recovery_plan_without_steps_is_empty() -> None:
    assert parse_recovery_plan("RECOVERY PLAN:\nEND OF PLAN\nThis cannot be fixed.") == []


def test_find_section_missing_marker() -> None:
    assert find_section("no plan here", "PLAN:") is None


def test_extract_commands_orders_and_deduplicates() -> None:
    text = """Run `npm install` first, then `foo`.
```sh
npm install
npm test
```
```python
print("not a command")
```
$ git status
# ls -la
# Install the dependencies
"""

    assert extract_commands(text) == [
        "npm install",
        "npm test",
        "git status",
        "ls -la",
    ]


def test_extract_commands_strips_prompts_and_comments_in_fences() -> None:
    text = "```\n# create the folder\n$ mkdir -p out\n```"

    assert extract_commands(text) == ["mkdir -p out"]


def test_prose_headings_are_not_commands() -> None:
    text = """# Find the log files
They live under the application data directory.

# Set up the project
# find the config
Install the toolchain before building.
"""

    assert extract_commands(text) == []
    assert parse_plan(text) == []


def test_root_prompt_lines_with_shell_syntax_are_commands() -> None:
    text = "As root:\n# find /var/log -name '*.log'\n# systemctl status nginx\n"

    assert extract_commands(text) == ["find /var/log -name '*.log'"]
