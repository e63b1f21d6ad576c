"""Contract tests for GitHubClient — verify HTTP request shapes.

Uses `respx` to intercept httpx requests at the transport level, so each
reporting call is checked for method, path, JSON payload and auth header
without hitting real GitHub.
"""

from __future__ import annotations

import json
import time

import httpx
import pytest
import respx

from hookpilot.github_client import GitHubClient

API = "https://api.github.com"


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
async def github():
    client = GitHubClient(token="ghp_fake_token")
    await client.start()
    yield client
    await client.close()


# ── Reporting ────────────────────────────────────────────────────────────────


class TestPostComment:
    @respx.mock
    async def test_request_shape(self, github):
        route = respx.post(f"{API}/repos/testowner/test-repo/issues/42/comments").mock(
            return_value=httpx.Response(201, json={"id": 1, "body": "hi"})
        )

        result = await github.post_comment(
            repo_owner="testowner", repo_name="test-repo", issue_number=42, body="hi"
        )

        assert route.called
        assert result["id"] == 1
        request = route.calls[0].request
        assert json.loads(request.content) == {"body": "hi"}
        assert request.headers["Authorization"] == "Bearer ghp_fake_token"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert request.headers["User-Agent"].startswith("hookpilot/")

    @respx.mock
    async def test_http_error_raises(self, github):
        respx.post(f"{API}/repos/testowner/test-repo/issues/42/comments").mock(
            return_value=httpx.Response(403, json={"message": "Forbidden"})
        )
        with pytest.raises(httpx.HTTPStatusError):
            await github.post_comment(
                repo_owner="testowner", repo_name="test-repo", issue_number=42, body="hi"
            )


class TestCreateIssue:
    @respx.mock
    async def test_request_shape(self, github):
        route = respx.post(f"{API}/repos/testowner/test-repo/issues").mock(
            return_value=httpx.Response(201, json={"number": 99})
        )

        result = await github.create_issue(
            repo_owner="testowner",
            repo_name="test-repo",
            title="Bot failed to process issue #42",
            body="**Error:** boom",
        )

        assert result["number"] == 99
        assert json.loads(route.calls[0].request.content) == {
            "title": "Bot failed to process issue #42",
            "body": "**Error:** boom",
            "labels": [],
        }


class TestLabels:
    @respx.mock
    async def test_add_labels(self, github):
        route = respx.post(f"{API}/repos/testowner/test-repo/issues/7/labels").mock(
            return_value=httpx.Response(200, json=[{"name": "bug"}])
        )
        result = await github.add_labels(
            repo_owner="testowner", repo_name="test-repo", issue_number=7, labels=["bug"]
        )
        assert result == [{"name": "bug"}]
        assert json.loads(route.calls[0].request.content) == {"labels": ["bug"]}

    @respx.mock
    async def test_remove_label(self, github):
        route = respx.delete(f"{API}/repos/testowner/test-repo/issues/7/labels/bug").mock(
            return_value=httpx.Response(200, json=[])
        )
        assert await github.remove_label(
            repo_owner="testowner", repo_name="test-repo", issue_number=7, label="bug"
        )
        assert route.called

    @respx.mock
    async def test_remove_missing_label(self, github):
        respx.delete(f"{API}/repos/testowner/test-repo/issues/7/labels/bug").mock(
            return_value=httpx.Response(404, json={"message": "Label does not exist"})
        )
        assert not await github.remove_label(
            repo_owner="testowner", repo_name="test-repo", issue_number=7, label="bug"
        )


# ── Repository content ───────────────────────────────────────────────────────


class TestFetchRepoInstructions:
    @respx.mock
    async def test_returns_raw_content(self, github):
        route = respx.get(f"{API}/repos/testowner/test-repo/contents/CLAUDE.md").mock(
            return_value=httpx.Response(200, text="# Guidelines\nUse tabs.\n")
        )
        text = await github.fetch_repo_instructions("testowner", "test-repo")
        assert text == "# Guidelines\nUse tabs.\n"
        assert route.calls[0].request.headers["Accept"] == "application/vnd.github.raw+json"

    @respx.mock
    async def test_missing_file(self, github):
        respx.get(f"{API}/repos/testowner/test-repo/contents/CLAUDE.md").mock(
            return_value=httpx.Response(404, json={"message": "Not Found"})
        )
        assert await github.fetch_repo_instructions("testowner", "test-repo") is None

    @respx.mock
    async def test_blank_file(self, github):
        respx.get(f"{API}/repos/testowner/test-repo/contents/CLAUDE.md").mock(
            return_value=httpx.Response(200, text="  \n")
        )
        assert await github.fetch_repo_instructions("testowner", "test-repo") is None

    @respx.mock
    async def test_server_error_raises(self, github):
        respx.get(f"{API}/repos/testowner/test-repo/contents/CLAUDE.md").mock(
            return_value=httpx.Response(500)
        )
        with pytest.raises(httpx.HTTPStatusError):
            await github.fetch_repo_instructions("testowner", "test-repo")


# ── Client lifecycle ─────────────────────────────────────────────────────────


class TestLifecycle:
    async def test_not_started(self):
        client = GitHubClient(token="t")
        with pytest.raises(RuntimeError, match="not started"):
            _ = client.client

    async def test_no_token(self):
        client = GitHubClient()
        await client.start()
        try:
            with pytest.raises(RuntimeError, match="GITHUB_TOKEN"):
                await client.post_comment(
                    repo_owner="o", repo_name="r", issue_number=1, body="x"
                )
        finally:
            await client.close()

    @respx.mock
    async def test_rate_limit_tracked(self, github):
        respx.post(f"{API}/repos/o/r/issues/1/comments").mock(
            return_value=httpx.Response(
                201,
                json={"id": 1},
                headers={"X-RateLimit-Remaining": "42", "X-RateLimit-Reset": "1700000000"},
            )
        )
        await github.post_comment(repo_owner="o", repo_name="r", issue_number=1, body="x")
        assert github._quota_remaining == 42
        assert github._quota_reset == 1700000000.0

    @respx.mock
    async def test_exhausted_quota_fails_fast(self, github):
        route = respx.post(f"{API}/repos/o/r/issues/1/comments").mock(
            return_value=httpx.Response(201, json={"id": 1})
        )
        github._quota_remaining = 0
        github._quota_reset = time.time() + 3600
        with pytest.raises(RuntimeError, match="rate limit exhausted"):
            await github.post_comment(repo_owner="o", repo_name="r", issue_number=1, body="x")
        assert not route.called

    @respx.mock
    async def test_elapsed_reset_allows_request(self, github):
        route = respx.post(f"{API}/repos/o/r/issues/1/comments").mock(
            return_value=httpx.Response(201, json={"id": 1})
        )
        github._quota_remaining = 0
        github._quota_reset = time.time() - 5
        await github.post_comment(repo_owner="o", repo_name="r", issue_number=1, body="x")
        assert route.called
