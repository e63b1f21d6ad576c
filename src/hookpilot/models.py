"""Core data models for hookpilot."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ── GitHub Events ────────────────────────────────────────────────────────────


class GitHubEvent(BaseModel):
    """Raw GitHub webhook event. Built once per delivery."""

    model_config = ConfigDict(frozen=True)

    delivery_id: str = Field(description="X-GitHub-Delivery UUID")
    event_type: str = Field(description="X-GitHub-Event header value")
    action: str | None = Field(default=None, description="Event action (e.g. 'assigned')")
    payload: dict = Field(default_factory=dict, description="Full webhook payload")

    @property
    def full_type(self) -> str:
        """e.g. 'issues.assigned', 'pull_request_review.submitted'."""
        if self.action:
            return f"{self.event_type}.{self.action}"
        return self.event_type

    @property
    def sender(self) -> str | None:
        """GitHub username of the event sender."""
        return _login(self.payload.get("sender"))

    @property
    def repository(self) -> dict:
        return self.payload.get("repository") or {}

    @property
    def repo_full_name(self) -> str | None:
        """owner/repo from the event payload."""
        return self.repository.get("full_name")

    @property
    def repo_owner(self) -> str | None:
        owner = _login(self.repository.get("owner"))
        if owner:
            return owner
        full_name = self.repo_full_name or ""
        return full_name.split("/", 1)[0] if "/" in full_name else None

    @property
    def repo_name(self) -> str | None:
        name = self.repository.get("name")
        if name:
            return name
        full_name = self.repo_full_name or ""
        return full_name.split("/", 1)[1] if "/" in full_name else None

    @property
    def issue(self) -> dict | None:
        return self.payload.get("issue")

    @property
    def pull_request(self) -> dict | None:
        return self.payload.get("pull_request")

    @property
    def comment(self) -> dict | None:
        return self.payload.get("comment")

    @property
    def review(self) -> dict | None:
        """The review object for pull_request_review events."""
        return self.payload.get("review")

    @property
    def assignee(self) -> str | None:
        """Login of the user just assigned (issues.assigned only)."""
        return _login(self.payload.get("assignee"))


def _login(actor: dict | None) -> str | None:
    if not isinstance(actor, dict):
        return None
    return actor.get("login")


# ── Tasks ────────────────────────────────────────────────────────────────────


class OperationType(str, enum.Enum):
    """Selects which prompt-augmentation rules apply."""

    DEFAULT = "default"
    AUTO_TAGGING = "auto-tagging"


class NormalizedTask(BaseModel):
    """The unit of work handed to the sandbox executor."""

    model_config = ConfigDict(frozen=True)

    repo_full_name: str
    repo_owner: str
    repo_name: str
    issue_number: int
    command: str
    is_pull_request: bool = False
    branch_name: str | None = None
    operation_type: OperationType = OperationType.DEFAULT

    @model_validator(mode="after")
    def _branch_only_for_prs(self) -> NormalizedTask:
        if self.branch_name is not None and not self.is_pull_request:
            raise ValueError("branch_name is only valid for pull-request tasks")
        return self


class ExecutionRequest(BaseModel):
    """Everything one sandbox run needs, fixed before the run starts."""

    model_config = ConfigDict(frozen=True)

    task: NormalizedTask
    prompt: str
    repo_instructions: str | None = None
    reviewer: str | None = None


class ExecutionResult(BaseModel):
    """Output of a successful run. Failures raise SandboxExecutionFailed."""

    stdout: str
    success: bool = True


class WebhookResponse(BaseModel):
    """HTTP status + JSON body produced for one delivery."""

    status_code: int = 200
    body: dict = Field(default_factory=dict)

    @classmethod
    def acknowledged(cls) -> WebhookResponse:
        """Generic acknowledgement for events that cause no work."""
        return cls(body={"message": "Webhook processed successfully"})

    @classmethod
    def ok(cls, message: str) -> WebhookResponse:
        return cls(body={"success": True, "message": message})

    @classmethod
    def failed(cls, error: str) -> WebhookResponse:
        return cls(status_code=500, body={"success": False, "error": error})
