"""Tests for prompt assembly."""

from __future__ import annotations

from hookpilot.models import NormalizedTask, OperationType
from hookpilot.prompt import build_prompt, ci_verification_directive


def _task(**overrides) -> NormalizedTask:
    values = dict(
        repo_full_name="testowner/test-repo",
        repo_owner="testowner",
        repo_name="test-repo",
        issue_number=42,
        command="Add new feature\n\nPlease implement this feature",
    )
    values.update(overrides)
    return NormalizedTask(**values)


class TestBuildPrompt:
    def test_contains_command_and_context(self):
        prompt = build_prompt(_task(), bot_username="TestBot")
        assert "You are TestBot" in prompt
        assert "Repository: testowner/test-repo" in prompt
        assert "Issue: #42" in prompt
        assert "Please implement this feature" in prompt

    def test_ci_loop_for_default_operation(self):
        prompt = build_prompt(_task(), bot_username="TestBot")
        assert "Post-PR CI Verification Loop" in prompt
        assert "gh pr checks --watch" in prompt
        assert "up to 3 times" in prompt
        assert "gh pr comment" in prompt

    def test_reviewer_step_present_when_configured(self):
        prompt = build_prompt(_task(), bot_username="TestBot", reviewer="testreviewer")
        assert "gh pr edit <PR_NUMBER> --add-reviewer testreviewer" in prompt

    def test_reviewer_step_absent_without_reviewer(self):
        prompt = build_prompt(_task(), bot_username="TestBot")
        assert "--add-reviewer" not in prompt
        assert "None" not in prompt

    def test_auto_tagging_has_no_ci_loop(self):
        task = _task(operation_type=OperationType.AUTO_TAGGING)
        prompt = build_prompt(task, bot_username="TestBot", reviewer="testreviewer")
        assert "Post-PR CI Verification Loop" not in prompt
        assert "--add-reviewer" not in prompt
        assert "gh issue edit 42 --add-label" in prompt
        assert "## Issue" in prompt

    def test_repo_instructions_appended(self):
        prompt = build_prompt(
            _task(), bot_username="TestBot", repo_instructions="Run `make test` first.\n"
        )
        assert "## Repository Instructions\n\nRun `make test` first." in prompt
        assert prompt.index("## Repository Instructions") < prompt.index(
            "Post-PR CI Verification Loop"
        )

    def test_blank_repo_instructions_omitted(self):
        prompt = build_prompt(_task(), bot_username="TestBot", repo_instructions="   \n")
        assert "Repository Instructions" not in prompt

    def test_pull_request_branch(self):
        task = _task(issue_number=15, is_pull_request=True, branch_name="feature-branch")
        prompt = build_prompt(task, bot_username="TestBot")
        assert "GitHub pull request" in prompt
        assert "Pull request: #15" in prompt
        assert "Branch: feature-branch" in prompt

    def test_no_unfilled_placeholders(self):
        prompt = build_prompt(_task(), bot_username="TestBot", reviewer="r")
        assert "{" not in prompt

    def test_deterministic(self):
        a = build_prompt(_task(), bot_username="TestBot", reviewer="r", repo_instructions="x")
        b = build_prompt(_task(), bot_username="TestBot", reviewer="r", repo_instructions="x")
        assert a == b


class TestCiDirective:
    def test_without_reviewer(self):
        text = ci_verification_directive(None)
        assert text.startswith("## Post-PR CI Verification Loop")
        assert "4." not in text

    def test_with_reviewer(self):
        text = ci_verification_directive("alice")
        assert text.splitlines()[-1].startswith("4. Request a human review")
