"""Prompt assembly for sandboxed agent runs.

The prompt is plain concatenated text. Optional sections are either
present in full or absent entirely; there is no template engine and no
placeholder is ever left behind.
"""

from __future__ import annotations

from hookpilot.models import NormalizedTask, OperationType

# Stated in the CI directive; the agent enforces it, not the bot.
CI_MAX_ATTEMPTS = 3


def _context_header(task: NormalizedTask, bot_username: str) -> str:
    kind = "pull request" if task.is_pull_request else "issue"
    lines = [
        f"You are {bot_username}, an AI coding assistant working on a GitHub {kind}.",
        "",
        f"Repository: {task.repo_full_name}",
        f"{kind.capitalize()}: #{task.issue_number}",
    ]
    if task.branch_name:
        lines.append(f"Branch: {task.branch_name}")
        lines.append("")
        lines.append(
            "Check out the branch above, commit your changes to it and push. "
            "Do not open a new pull request."
        )
    return "\n".join(lines)


def _auto_tagging_instructions(task: NormalizedTask) -> str:
    return (
        "## Task\n\n"
        f"Analyze issue #{task.issue_number} and apply appropriate labels "
        f"(priority, type, complexity, component) using "
        f"`gh issue edit {task.issue_number} --add-label <label>`. "
        "Only use labels that already exist in the repository. "
        "Do not comment on the issue and do not change any code."
    )


def ci_verification_directive(reviewer: str | None) -> str:
    """The post-PR CI loop appended to default-operation prompts."""
    steps = [
        "## Post-PR CI Verification Loop",
        "",
        "After you open or update a pull request:",
        "",
        "1. Run `gh pr checks --watch` and wait for every CI check to finish.",
        "2. If any check fails, read the failing logs, fix the problem, commit and push,",
        f"   then watch the checks again. Retry up to {CI_MAX_ATTEMPTS} times in total.",
        "3. Post a status comment with `gh pr comment <PR_NUMBER> --body <summary>` stating",
        "   whether CI passed, and if not, what is still failing after the last attempt.",
    ]
    if reviewer:
        steps.append(
            f"4. Request a human review with `gh pr edit <PR_NUMBER> --add-reviewer {reviewer}`."
        )
    return "\n".join(steps)


def build_prompt(
    task: NormalizedTask,
    *,
    bot_username: str,
    repo_instructions: str | None = None,
    reviewer: str | None = None,
) -> str:
    """Build the full prompt for one sandbox run.

    Sections, in order: context header, the command (or the auto-tagging
    task), repository instructions if any, and the CI verification loop
    for default operations only.
    """
    sections = [_context_header(task, bot_username)]

    if task.operation_type == OperationType.AUTO_TAGGING:
        sections.append(_auto_tagging_instructions(task))
        sections.append(f"## Issue\n\n{task.command}")
    else:
        sections.append(f"## Request\n\n{task.command}")

    if repo_instructions and repo_instructions.strip():
        sections.append(f"## Repository Instructions\n\n{repo_instructions.strip()}")

    if task.operation_type == OperationType.DEFAULT:
        sections.append(ci_verification_directive(reviewer))

    return "\n\n".join(sections) + "\n"
