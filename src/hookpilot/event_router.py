"""Event Router — turns one verified GitHub delivery into a response.

Per delivery::

    received -> verified -> classified -> authorized | unauthorized | ignored
             -> dispatched | responded

Classification is a table lookup on ``"<event>.<action>"`` into a pure
classifier that returns one of three decisions:

- ``Ignore``   — nothing to do; generic acknowledgement.
- ``Reject``   — sender not on the allow-list; comment on the issue, 200.
- ``Dispatch`` — run the task in the sandbox and report the outcome.

Self-loop checks (bot acting on its own output) run before authorization
in every classifier, so the bot can never trigger itself regardless of
allow-list membership.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Protocol, Union

from hookpilot.auth import is_authorized
from hookpilot.errors import MalformedPayload, SandboxExecutionFailed
from hookpilot.models import (
    ExecutionResult,
    GitHubEvent,
    NormalizedTask,
    OperationType,
    WebhookResponse,
)

if TYPE_CHECKING:
    from hookpilot.config import BotConfig
    from hookpilot.delivery_store import DeliveryStore

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized user - assignment ignored"

# Review states that carry actionable feedback. "approved" and "dismissed" do not.
ACTIONABLE_REVIEW_STATES = frozenset({"changes_requested", "commented"})

# Output excerpts embedded in failure issues.
_EXCERPT_CHARS = 3000


# ── Decisions ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Ignore:
    reason: str


@dataclass(frozen=True)
class Reject:
    repo_owner: str
    repo_name: str
    issue_number: int
    sender: str


@dataclass(frozen=True)
class Dispatch:
    task: NormalizedTask
    success_message: str
    error_message: str
    failure_title: str
    reply_with_output: bool = False
    fallback_labels: bool = False


Decision = Union[Ignore, Reject, Dispatch]


# ── Collaborators ────────────────────────────────────────────────────────────


class CommandExecutor(Protocol):
    def process_command(self, task: NormalizedTask) -> Awaitable[ExecutionResult]: ...


class ResultReporter(Protocol):
    def post_comment(
        self, *, repo_owner: str, repo_name: str, issue_number: int, body: str
    ) -> Awaitable[dict]: ...

    def create_issue(
        self,
        *,
        repo_owner: str,
        repo_name: str,
        title: str,
        body: str,
        labels: list[str] | None = None,
    ) -> Awaitable[dict]: ...

    def add_labels(
        self, *, repo_owner: str, repo_name: str, issue_number: int, labels: list[str]
    ) -> Awaitable[list[dict]]: ...


# ── Payload helpers ──────────────────────────────────────────────────────────


def _login(actor: object) -> str | None:
    if isinstance(actor, dict):
        return actor.get("login")
    return None


def _require_repo(event: GitHubEvent) -> tuple[str, str, str]:
    owner, name = event.repo_owner, event.repo_name
    if not owner or not name:
        raise MalformedPayload("payload has no repository", context={"event": event.full_type})
    return f"{owner}/{name}", owner, name


def _require_number(obj: dict | None, what: str) -> int:
    number = (obj or {}).get("number")
    if not isinstance(number, int):
        raise MalformedPayload(f"payload has no {what} number")
    return number


def issue_command(issue: dict) -> str:
    """Command text for an issue: title, blank line, body (null body is empty)."""
    return f"{issue.get('title') or ''}\n\n{issue.get('body') or ''}"


_FALLBACK_KEYWORDS: dict[str, tuple[str, ...]] = {
    "bug": ("bug", "error", "crash", "broken", "exception", "fail"),
    "enhancement": ("feature", "add", "support", "enhance", "improve"),
    "documentation": ("doc", "readme", "typo", "guide"),
    "question": ("question", "how do", "how to", "why does", "?"),
}


def fallback_labels(title: str | None, body: str | None) -> list[str]:
    """Keyword-derived labels used when the auto-tagging run fails."""
    text = f"{title or ''}\n{body or ''}".lower()
    return [label for label, words in _FALLBACK_KEYWORDS.items() if any(w in text for w in words)]


# ── Router ───────────────────────────────────────────────────────────────────


class EventRouter:
    """Classifies deliveries and drives the dispatch pipeline for each."""

    def __init__(
        self,
        config: BotConfig,
        executor: CommandExecutor,
        reporter: ResultReporter,
        *,
        delivery_store: DeliveryStore | None = None,
    ):
        self.config = config
        self.executor = executor
        self.reporter = reporter
        self.delivery_store = delivery_store

        self._classifiers: dict[str, Callable[[GitHubEvent], Decision]] = {
            "issues.assigned": self._classify_issue_assigned,
            "pull_request_review.submitted": self._classify_review_submitted,
            "pull_request_review_comment.created": self._classify_review_comment,
        }
        if config.auto_tag_issues:
            self._classifiers["issues.opened"] = self._classify_issue_opened

    @property
    def handled_events(self) -> list[str]:
        return sorted(self._classifiers)

    # ── Classification ───────────────────────────────────────────────────

    def classify(self, event: GitHubEvent) -> Decision:
        """Decide what to do with an event. Pure: no I/O, never raises."""
        classifier = self._classifiers.get(event.full_type)
        if classifier is None:
            return Ignore(f"unhandled event type {event.full_type}")
        try:
            return classifier(event)
        except MalformedPayload as e:
            logger.warning(
                "Malformed %s payload (delivery=%s): %s",
                event.full_type,
                event.delivery_id,
                e.message,
            )
            return Ignore(f"malformed payload: {e.message}")

    def _classify_issue_assigned(self, event: GitHubEvent) -> Decision:
        if not self.config.is_bot(event.assignee):
            return Ignore("assignee is not the bot")
        if self.config.is_bot(event.sender):
            return Ignore("self-loop: bot assigned itself")
        if not event.sender:
            raise MalformedPayload("payload has no sender")

        full_name, owner, name = _require_repo(event)
        issue = event.issue or {}
        number = _require_number(issue, "issue")

        if not is_authorized(event.sender, self.config.authorized_users):
            return Reject(repo_owner=owner, repo_name=name, issue_number=number, sender=event.sender)

        task = NormalizedTask(
            repo_full_name=full_name,
            repo_owner=owner,
            repo_name=name,
            issue_number=number,
            command=issue_command(issue),
            is_pull_request=False,
            branch_name=None,
            operation_type=OperationType.DEFAULT,
        )
        return Dispatch(
            task=task,
            success_message="Issue assignment processed successfully",
            error_message="Failed to process assigned issue",
            failure_title=f"Bot failed to process issue #{number}",
        )

    def _pr_task(self, event: GitHubEvent, command: str) -> NormalizedTask:
        full_name, owner, name = _require_repo(event)
        pr = event.pull_request or {}
        number = _require_number(pr, "pull request")
        branch = (pr.get("head") or {}).get("ref")
        if not branch:
            raise MalformedPayload("pull request has no head ref")
        return NormalizedTask(
            repo_full_name=full_name,
            repo_owner=owner,
            repo_name=name,
            issue_number=number,
            command=command,
            is_pull_request=True,
            branch_name=branch,
            operation_type=OperationType.DEFAULT,
        )

    def _classify_review_submitted(self, event: GitHubEvent) -> Decision:
        review = event.review or {}
        pr = event.pull_request or {}
        reviewer = _login(review.get("user"))

        if self.config.is_bot(reviewer) or self.config.is_bot(event.sender):
            return Ignore("self-loop: review authored by the bot")
        if not self.config.is_bot(_login(pr.get("user"))):
            return Ignore("pull request not authored by the bot")

        state = (review.get("state") or "").lower()
        if state not in ACTIONABLE_REVIEW_STATES:
            return Ignore(f"review state {state or 'unknown'} is not actionable")
        body = review.get("body") or ""
        if not body.strip():
            return Ignore("review has no body")

        number = _require_number(pr, "pull request")
        command = (
            f"A reviewer (@{reviewer}) submitted a review on pull request #{number} "
            f"with state '{state}'. Address the following feedback:\n\n{body}"
        )
        return Dispatch(
            task=self._pr_task(event, command),
            success_message="PR review processed successfully",
            error_message="Failed to process pull request review",
            failure_title=f"Bot failed to process PR #{number}",
            reply_with_output=True,
        )

    def _classify_review_comment(self, event: GitHubEvent) -> Decision:
        comment = event.comment or {}
        pr = event.pull_request or {}
        author = _login(comment.get("user"))

        if self.config.is_bot(author) or self.config.is_bot(event.sender):
            return Ignore("self-loop: comment authored by the bot")
        if not self.config.is_bot(_login(pr.get("user"))):
            return Ignore("pull request not authored by the bot")

        number = _require_number(pr, "pull request")
        location = ""
        if comment.get("path"):
            line = comment.get("line") or comment.get("original_line")
            location = f" on `{comment['path']}`" + (f" line {line}" if line else "")
        command = (
            f"A reviewer (@{author}) left a review comment on pull request #{number}"
            f"{location}. Address it:\n\n{comment.get('body') or ''}"
        )
        if comment.get("diff_hunk"):
            command += f"\n\nDiff context:\n```diff\n{comment['diff_hunk']}\n```"
        return Dispatch(
            task=self._pr_task(event, command),
            success_message="PR review comment processed successfully",
            error_message="Failed to process pull request review comment",
            failure_title=f"Bot failed to process PR #{number}",
            reply_with_output=True,
        )

    def _classify_issue_opened(self, event: GitHubEvent) -> Decision:
        if self.config.is_bot(event.sender):
            return Ignore("self-loop: issue opened by the bot")
        full_name, owner, name = _require_repo(event)
        issue = event.issue or {}
        number = _require_number(issue, "issue")
        task = NormalizedTask(
            repo_full_name=full_name,
            repo_owner=owner,
            repo_name=name,
            issue_number=number,
            command=issue_command(issue),
            operation_type=OperationType.AUTO_TAGGING,
        )
        return Dispatch(
            task=task,
            success_message="Issue auto-tagging processed successfully",
            error_message="Failed to auto-tag issue",
            failure_title=f"Bot failed to process issue #{number}",
            fallback_labels=True,
        )

    # ── Handling ─────────────────────────────────────────────────────────

    async def handle(self, event: GitHubEvent) -> WebhookResponse:
        """Process one verified delivery end to end."""
        if self.delivery_store is not None:
            try:
                first_time = await self.delivery_store.mark_seen(
                    event.delivery_id, event.full_type
                )
            except Exception:
                logger.exception("Delivery store error for %s — processing anyway", event.delivery_id)
                first_time = True
            if not first_time:
                logger.info("Duplicate delivery ignored: %s", event.delivery_id)
                return WebhookResponse.acknowledged()

        decision = self.classify(event)

        if isinstance(decision, Ignore):
            logger.debug(
                "Ignored %s (delivery=%s): %s", event.full_type, event.delivery_id, decision.reason
            )
            return WebhookResponse.acknowledged()
        if isinstance(decision, Reject):
            return await self._reject(decision)
        return await self._dispatch(event, decision)

    async def _reject(self, decision: Reject) -> WebhookResponse:
        logger.warning(
            "Unauthorized sender %s assigned %s/%s#%d — ignoring",
            decision.sender,
            decision.repo_owner,
            decision.repo_name,
            decision.issue_number,
        )
        body = (
            f"Sorry @{decision.sender}, only authorized users can assign issues to "
            f"{self.config.bot_username}. Ask a repository maintainer to assign it instead."
        )
        try:
            await self.reporter.post_comment(
                repo_owner=decision.repo_owner,
                repo_name=decision.repo_name,
                issue_number=decision.issue_number,
                body=body,
            )
        except Exception:
            logger.exception("Failed to post unauthorized-user comment")
        return WebhookResponse.ok(UNAUTHORIZED_MESSAGE)

    async def _dispatch(self, event: GitHubEvent, decision: Dispatch) -> WebhookResponse:
        task = decision.task
        logger.info(
            "Dispatching %s for %s #%d (delivery=%s, operation=%s)",
            event.full_type,
            task.repo_full_name,
            task.issue_number,
            event.delivery_id,
            task.operation_type.value,
        )
        try:
            result = await self.executor.process_command(task)
        except Exception as e:
            logger.exception("Command failed for %s #%d", task.repo_full_name, task.issue_number)
            if decision.fallback_labels:
                return await self._apply_fallback_labels(event, decision)
            await self._report_failure(decision, e)
            return WebhookResponse.failed(decision.error_message)

        if decision.reply_with_output and result.stdout.strip():
            try:
                await self.reporter.post_comment(
                    repo_owner=task.repo_owner,
                    repo_name=task.repo_name,
                    issue_number=task.issue_number,
                    body=result.stdout,
                )
            except Exception:
                logger.exception("Failed to post agent response on #%d", task.issue_number)

        return WebhookResponse.ok(decision.success_message)

    def _redact(self, text: str) -> str:
        """Mask configured credentials in text bound for a public issue."""
        for secret in (
            self.config.github_token,
            self.config.anthropic_api_key,
            self.config.webhook_secret,
        ):
            if secret:
                text = text.replace(secret, "***")
        return text

    async def _report_failure(self, decision: Dispatch, error: Exception) -> None:
        """Open an issue describing the failure. Best-effort."""
        task = decision.task
        kind = "pull request" if task.is_pull_request else "issue"
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        message = self._redact(message)
        parts = [
            f"The bot failed to process {kind} #{task.issue_number} in {task.repo_full_name}.",
            f"**Error:** {message}",
        ]
        if isinstance(error, SandboxExecutionFailed):
            for label, output in (("stderr", error.stderr), ("stdout", error.stdout)):
                if output.strip():
                    excerpt = self._redact(output)[-_EXCERPT_CHARS:]
                    parts.append(f"**{label}:**\n```\n{excerpt}\n```")
        try:
            await self.reporter.create_issue(
                repo_owner=task.repo_owner,
                repo_name=task.repo_name,
                title=decision.failure_title,
                body="\n\n".join(parts),
            )
        except Exception:
            logger.exception("Failed to create failure issue for #%d", task.issue_number)

    async def _apply_fallback_labels(self, event: GitHubEvent, decision: Dispatch) -> WebhookResponse:
        task = decision.task
        issue = event.issue or {}
        labels = fallback_labels(issue.get("title"), issue.get("body"))
        if not labels:
            return WebhookResponse.failed(decision.error_message)
        try:
            await self.reporter.add_labels(
                repo_owner=task.repo_owner,
                repo_name=task.repo_name,
                issue_number=task.issue_number,
                labels=labels,
            )
        except Exception:
            logger.exception("Failed to apply fallback labels on #%d", task.issue_number)
            return WebhookResponse.failed(decision.error_message)
        logger.info("Applied fallback labels %s on #%d", labels, task.issue_number)
        return WebhookResponse.ok("Issue auto-tagged with fallback labels")
