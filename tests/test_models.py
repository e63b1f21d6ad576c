"""Tests for core data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from hookpilot.models import (
    GitHubEvent,
    NormalizedTask,
    OperationType,
    WebhookResponse,
)

from conftest import issue_assigned_payload, make_event, review_payload


class TestGitHubEvent:
    def test_full_type(self):
        event = make_event("issues", issue_assigned_payload())
        assert event.full_type == "issues.assigned"

    def test_full_type_without_action(self):
        event = GitHubEvent(delivery_id="d", event_type="push", payload={})
        assert event.full_type == "push"

    def test_accessors(self):
        event = make_event("issues", issue_assigned_payload(sender="admin"))
        assert event.sender == "admin"
        assert event.assignee == "TestBot"
        assert event.repo_full_name == "testowner/test-repo"
        assert event.repo_owner == "testowner"
        assert event.repo_name == "test-repo"
        assert event.issue["number"] == 42

    def test_repo_from_full_name_only(self):
        event = GitHubEvent(
            delivery_id="d",
            event_type="issues",
            payload={"repository": {"full_name": "acme/widgets"}},
        )
        assert event.repo_owner == "acme"
        assert event.repo_name == "widgets"

    def test_missing_fields_are_none(self):
        event = GitHubEvent(delivery_id="d", event_type="ping", payload={"zen": "hi"})
        assert event.sender is None
        assert event.repo_owner is None
        assert event.repo_name is None
        assert event.pull_request is None
        assert event.assignee is None

    def test_review_accessors(self):
        event = make_event("pull_request_review", review_payload())
        assert event.review["state"] == "changes_requested"
        assert event.pull_request["head"]["ref"] == "feature-branch"


class TestNormalizedTask:
    def test_issue_task(self):
        task = NormalizedTask(
            repo_full_name="testowner/test-repo",
            repo_owner="testowner",
            repo_name="test-repo",
            issue_number=42,
            command="Add new feature\n\n",
        )
        assert not task.is_pull_request
        assert task.branch_name is None
        assert task.operation_type == OperationType.DEFAULT

    def test_branch_requires_pull_request(self):
        with pytest.raises(ValidationError, match="branch_name"):
            NormalizedTask(
                repo_full_name="o/r",
                repo_owner="o",
                repo_name="r",
                issue_number=1,
                command="x",
                branch_name="feature",
            )

    def test_pull_request_task(self):
        task = NormalizedTask(
            repo_full_name="o/r",
            repo_owner="o",
            repo_name="r",
            issue_number=15,
            command="x",
            is_pull_request=True,
            branch_name="feature-branch",
        )
        assert task.branch_name == "feature-branch"

    def test_operation_type_values(self):
        assert OperationType("auto-tagging") == OperationType.AUTO_TAGGING
        assert OperationType.DEFAULT.value == "default"


class TestWebhookResponse:
    def test_acknowledged(self):
        response = WebhookResponse.acknowledged()
        assert response.status_code == 200
        assert response.body == {"message": "Webhook processed successfully"}

    def test_ok(self):
        response = WebhookResponse.ok("done")
        assert response.status_code == 200
        assert response.body == {"success": True, "message": "done"}

    def test_failed(self):
        response = WebhookResponse.failed("Failed to process assigned issue")
        assert response.status_code == 500
        assert response.body == {"success": False, "error": "Failed to process assigned issue"}
