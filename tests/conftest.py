"""Shared fixtures and webhook payload builders."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from hookpilot.auth import compute_signature
from hookpilot.config import BotConfig, ExecutionMode
from hookpilot.models import ExecutionResult, GitHubEvent
from hookpilot.sandbox.config import SandboxConfig

WEBHOOK_SECRET = "test-webhook-secret"

REPOSITORY = {
    "name": "test-repo",
    "full_name": "testowner/test-repo",
    "owner": {"login": "testowner"},
}


def make_config(**overrides) -> BotConfig:
    values = dict(
        bot_username="@TestBot",
        webhook_secret=WEBHOOK_SECRET,
        github_token="ghp_test_token",
        authorized_users="testuser,admin",
        execution_mode=ExecutionMode.TEST,
        sandbox=SandboxConfig(auth_host_dir="/test/auth/dir"),
    )
    values.update(overrides)
    return BotConfig(**values)


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(secret, body)


# ── Payload builders ─────────────────────────────────────────────────────────


def issue_assigned_payload(
    *,
    assignee: str = "TestBot",
    sender: str = "testuser",
    number: int = 42,
    title: str = "Add new feature",
    body: str | None = "Please implement this feature",
) -> dict:
    return {
        "action": "assigned",
        "issue": {"number": number, "title": title, "body": body},
        "assignee": {"login": assignee},
        "repository": REPOSITORY,
        "sender": {"login": sender},
    }


def issue_opened_payload(
    *, sender: str = "testuser", number: int = 7, title: str = "Crash on startup", body: str = ""
) -> dict:
    return {
        "action": "opened",
        "issue": {"number": number, "title": title, "body": body},
        "repository": REPOSITORY,
        "sender": {"login": sender},
    }


def review_payload(
    *,
    reviewer: str = "reviewer",
    pr_author: str = "TestBot",
    state: str = "changes_requested",
    body: str | None = "Please add error handling",
    number: int = 15,
    branch: str = "feature-branch",
) -> dict:
    return {
        "action": "submitted",
        "review": {"user": {"login": reviewer}, "state": state, "body": body},
        "pull_request": {
            "number": number,
            "user": {"login": pr_author},
            "head": {"ref": branch},
        },
        "repository": REPOSITORY,
        "sender": {"login": reviewer},
    }


def review_comment_payload(
    *,
    author: str = "reviewer",
    pr_author: str = "TestBot",
    body: str = "This variable name is unclear",
    number: int = 15,
    branch: str = "feature-branch",
    path: str | None = "src/app.py",
    line: int | None = 12,
    diff_hunk: str | None = "@@ -10,3 +10,4 @@\n+x = 1",
) -> dict:
    comment = {"user": {"login": author}, "body": body}
    if path:
        comment["path"] = path
    if line:
        comment["line"] = line
    if diff_hunk:
        comment["diff_hunk"] = diff_hunk
    return {
        "action": "created",
        "comment": comment,
        "pull_request": {
            "number": number,
            "user": {"login": pr_author},
            "head": {"ref": branch},
        },
        "repository": REPOSITORY,
        "sender": {"login": author},
    }


def make_event(event_type: str, payload: dict, delivery_id: str = "delivery-1") -> GitHubEvent:
    return GitHubEvent(
        delivery_id=delivery_id,
        event_type=event_type,
        action=payload.get("action"),
        payload=payload,
    )


def encode(payload: dict) -> bytes:
    return json.dumps(payload).encode()


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def config() -> BotConfig:
    return make_config()


@pytest.fixture
def executor():
    mock = AsyncMock()
    mock.process_command.return_value = ExecutionResult(stdout="Done! I implemented the feature.")
    return mock


@pytest.fixture
def reporter():
    mock = AsyncMock()
    mock.post_comment.return_value = {"id": 1}
    mock.create_issue.return_value = {"number": 100}
    mock.add_labels.return_value = []
    return mock
