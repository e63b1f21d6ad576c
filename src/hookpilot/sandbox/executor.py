"""SandboxExecutor: runs one agent command inside an isolated container.

Per call::

    idle -> preparing -> running -> succeeded | failed -> cleaned_up

1. Fetch repository instructions (best-effort) and build the prompt.
2. In test mode, return a canned acknowledgement without touching docker.
3. Probe the sandbox image; a missing image is ``SandboxUnavailable``.
4. Run the container with the prompt and credentials injected as env vars,
   bounded by the configured timeout.
5. On success, strip bot self-mentions from the output and return it.
6. On failure, the runtime session captures logs and kills the container,
   and ``SandboxExecutionFailed`` carries stdout/stderr to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Protocol

from hookpilot.errors import SandboxExecutionFailed, SandboxUnavailable
from hookpilot.models import ExecutionRequest, ExecutionResult, NormalizedTask
from hookpilot.prompt import build_prompt
from hookpilot.sandbox.runtime import SandboxRuntime, container_name
from hookpilot.sandbox.sanitize import sanitize_bot_mentions

if TYPE_CHECKING:
    from hookpilot.config import BotConfig

logger = logging.getLogger(__name__)


class InstructionsSource(Protocol):
    def fetch_repo_instructions(self, owner: str, repo: str) -> Awaitable[str | None]: ...


def canned_response(task: NormalizedTask) -> str:
    return (
        "Hello! I'm Claude responding to your request.\n\n"
        f"Since this is a test environment, I'm providing a simulated response "
        f"for {task.repo_full_name} #{task.issue_number}. In production, I would "
        "process your request using the sandboxed agent."
    )


class SandboxExecutor:
    """Builds the prompt for a task and runs it in a sandbox container."""

    def __init__(
        self,
        config: BotConfig,
        *,
        instructions: InstructionsSource | None = None,
        runtime: SandboxRuntime | None = None,
    ) -> None:
        self._config = config
        self._instructions = instructions
        self._runtime = runtime or SandboxRuntime(config.sandbox)

    async def _fetch_instructions(self, task: NormalizedTask) -> str | None:
        if self._instructions is None:
            return None
        try:
            return await self._instructions.fetch_repo_instructions(
                task.repo_owner, task.repo_name
            )
        except Exception:
            logger.warning(
                "Could not fetch repo instructions for %s — continuing without",
                task.repo_full_name,
                exc_info=True,
            )
            return None

    async def prepare(self, task: NormalizedTask) -> ExecutionRequest:
        """Resolve everything the run needs: instructions, reviewer, prompt."""
        instructions = await self._fetch_instructions(task)
        reviewer = self._config.pr_human_reviewer
        prompt = build_prompt(
            task,
            bot_username=self._config.bot_username,
            repo_instructions=instructions,
            reviewer=reviewer,
        )
        return ExecutionRequest(
            task=task,
            prompt=prompt,
            repo_instructions=instructions,
            reviewer=reviewer,
        )

    def container_env(self, request: ExecutionRequest) -> dict[str, str]:
        """Environment injected into the container."""
        task = request.task
        env = {
            "REPO_FULL_NAME": task.repo_full_name,
            "ISSUE_NUMBER": str(task.issue_number),
            "IS_PULL_REQUEST": "true" if task.is_pull_request else "false",
            "OPERATION_TYPE": task.operation_type.value,
            "BOT_USERNAME": self._config.bot_username,
            "COMMAND": request.prompt,
        }
        if task.branch_name:
            env["BRANCH_NAME"] = task.branch_name
        if self._config.github_token:
            env["GITHUB_TOKEN"] = self._config.github_token
        if self._config.anthropic_api_key:
            env["ANTHROPIC_API_KEY"] = self._config.anthropic_api_key
        if request.reviewer:
            env["PR_HUMAN_REVIEWER"] = request.reviewer
        return env

    async def process_command(self, task: NormalizedTask) -> ExecutionResult:
        """Run ``task`` and return the sanitized agent output.

        Raises:
            SandboxUnavailable: The sandbox image could not be found.
            SandboxExecutionFailed: The run failed or timed out.
        """
        request = await self.prepare(task)
        bot = self._config.bot_username

        if self._config.is_test_mode:
            logger.info(
                "Test mode: skipping sandbox for %s #%d", task.repo_full_name, task.issue_number
            )
            return ExecutionResult(stdout=sanitize_bot_mentions(canned_response(task), bot))

        if not await self._runtime.inspect_image():
            raise SandboxUnavailable(
                f"Sandbox image {self._config.sandbox.image} is not available",
                context={"image": self._config.sandbox.image},
            )

        name = container_name(
            self._config.sandbox.name_prefix, task.repo_owner, task.repo_name, task.issue_number
        )
        handle = None
        try:
            async with self._runtime.session(name, self.container_env(request)) as handle:
                run = await self._runtime.run(handle)
                if run.returncode != 0:
                    raise SandboxExecutionFailed(
                        f"Sandbox {name} exited with status {run.returncode}",
                        stdout=run.stdout,
                        stderr=run.stderr,
                        context={"container": name, "returncode": run.returncode},
                    )
        except SandboxExecutionFailed as e:
            if handle is not None and handle.logs and not e.stderr:
                e.stderr = handle.logs
            logger.error("Sandbox run failed for %s: %s", name, e.message)
            raise
        except asyncio.TimeoutError as e:
            logger.error("Sandbox %s timed out after %ss", name, self._config.sandbox.timeout)
            raise SandboxExecutionFailed(
                f"Sandbox {name} timed out after {self._config.sandbox.timeout}s",
                stderr=handle.logs if handle is not None else "",
                context={"container": name},
            ) from e
        except OSError as e:
            raise SandboxExecutionFailed(
                f"Could not launch sandbox {name}: {e}",
                stderr=handle.logs if handle is not None else "",
                context={"container": name},
            ) from e

        return ExecutionResult(stdout=sanitize_bot_mentions(run.stdout.strip(), bot))
