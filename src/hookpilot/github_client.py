"""GitHub API client for hookpilot.

Token-authenticated async client (httpx) covering what the bot reports
back to GitHub: comments, failure issues, labels, plus the repository
instructions file read before each run. When the token quota runs out,
calls wait for the reset if it is close and fail otherwise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone

import httpx

from hookpilot import __version__

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"

# Repository file whose contents are appended to every prompt.
REPO_INSTRUCTIONS_PATH = "CLAUDE.md"

# Longest wait for a rate-limit reset before a call fails instead.
MAX_QUOTA_WAIT = 60


class GitHubClient:
    """Async GitHub REST client."""

    def __init__(self, *, token: str | None = None, base_url: str = GITHUB_API):
        self.token = token
        self.base_url = base_url

        # Quota as last reported by GitHub; None until a response says otherwise
        self._quota_remaining: int | None = None
        self._quota_reset: float = 0

        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """Initialize HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Accept": "application/vnd.github+json",
                "User-Agent": f"hookpilot/{__version__}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=30.0,
        )
        logger.info("GitHub client started")

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("GitHub client not started")
        return self._client

    def _auth_headers(self) -> dict[str, str]:
        if not self.token:
            raise RuntimeError("GitHub token not configured. Set GITHUB_TOKEN")
        return {"Authorization": f"Bearer {self.token}"}

    # ── Rate Limits ──────────────────────────────────────────────────────

    def _record_quota(self, response: httpx.Response) -> None:
        """Remember the token's remaining quota from response headers."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        reset = response.headers.get("X-RateLimit-Reset")
        if remaining is not None and remaining.isdigit():
            self._quota_remaining = int(remaining)
        if reset is not None and reset.isdigit():
            self._quota_reset = float(reset)
        if self._quota_remaining == 0:
            logger.warning(
                "GitHub quota for this token is exhausted until %s",
                datetime.fromtimestamp(self._quota_reset, tz=timezone.utc).isoformat(),
            )

    async def _await_quota(self) -> None:
        """Block until the quota resets, or fail if that is too far away.

        A webhook delivery is waiting on every call, so only a short wait
        is worth taking.
        """
        if self._quota_remaining is None or self._quota_remaining > 0:
            return
        wait = self._quota_reset - time.time()
        if wait <= 0:
            self._quota_remaining = None
            return
        if wait > MAX_QUOTA_WAIT:
            raise RuntimeError(f"GitHub rate limit exhausted; resets in {wait:.0f}s")
        logger.info("GitHub quota exhausted, waiting %.1fs for reset", wait)
        await asyncio.sleep(wait)
        self._quota_remaining = None

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Authenticated API request. Raises ``httpx.HTTPStatusError`` on 4xx/5xx."""
        await self._await_quota()
        headers = self._auth_headers()
        headers.update(kwargs.pop("headers", {}))
        resp = await self.client.request(method, path, headers=headers, **kwargs)
        self._record_quota(resp)
        resp.raise_for_status()
        return resp

    # ── Reporting ────────────────────────────────────────────────────────

    async def post_comment(
        self, *, repo_owner: str, repo_name: str, issue_number: int, body: str
    ) -> dict:
        """Comment on an issue or pull request."""
        resp = await self._request(
            "POST",
            f"/repos/{repo_owner}/{repo_name}/issues/{issue_number}/comments",
            json={"body": body},
        )
        logger.info("Posted comment on %s/%s#%d", repo_owner, repo_name, issue_number)
        return resp.json()

    async def create_issue(
        self,
        *,
        repo_owner: str,
        repo_name: str,
        title: str,
        body: str,
        labels: list[str] | None = None,
    ) -> dict:
        resp = await self._request(
            "POST",
            f"/repos/{repo_owner}/{repo_name}/issues",
            json={"title": title, "body": body, "labels": labels or []},
        )
        data = resp.json()
        logger.info("Created issue %s/%s#%s: %s", repo_owner, repo_name, data.get("number"), title)
        return data

    async def add_labels(
        self, *, repo_owner: str, repo_name: str, issue_number: int, labels: list[str]
    ) -> list[dict]:
        resp = await self._request(
            "POST",
            f"/repos/{repo_owner}/{repo_name}/issues/{issue_number}/labels",
            json={"labels": labels},
        )
        return resp.json()

    async def remove_label(
        self, *, repo_owner: str, repo_name: str, issue_number: int, label: str
    ) -> bool:
        """Remove a label. Returns False if it was not applied."""
        try:
            await self._request(
                "DELETE",
                f"/repos/{repo_owner}/{repo_name}/issues/{issue_number}/labels/{label}",
            )
            return True
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return False
            raise

    # ── Repository Content ───────────────────────────────────────────────

    async def fetch_repo_instructions(self, owner: str, repo: str) -> str | None:
        """Return the repository's instructions file, or None if it has none."""
        try:
            resp = await self._request(
                "GET",
                f"/repos/{owner}/{repo}/contents/{REPO_INSTRUCTIONS_PATH}",
                headers={"Accept": "application/vnd.github.raw+json"},
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.debug("No %s in %s/%s", REPO_INSTRUCTIONS_PATH, owner, repo)
                return None
            raise
        text = resp.text
        return text if text.strip() else None
