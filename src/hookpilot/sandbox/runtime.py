"""Container runtime wrapper: the only code that shells out to docker.

All commands run as async subprocesses with argument vectors, never
through a shell. Values that may contain arbitrary text (the prompt,
credentials) are handed to the container through the docker client's
environment and referenced by name with ``-e NAME``, so they never appear
in argv.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import secrets
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from hookpilot.sandbox.config import SANDBOX_AUTH_MOUNT, SandboxConfig

logger = logging.getLogger(__name__)

_NAME_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9_.-]+")


@dataclass
class ContainerRun:
    """Result of one ``docker run``."""

    returncode: int
    stdout: str
    stderr: str
    duration: float = 0.0


@dataclass
class SandboxHandle:
    """A named container for the duration of one run."""

    name: str
    logs: str = ""
    killed: bool = False
    env: dict[str, str] = field(default_factory=dict)


def container_name(prefix: str, *parts: object) -> str:
    """Unique, docker-safe container name."""
    raw = "-".join([prefix, *(str(p) for p in parts), secrets.token_hex(4)])
    return _NAME_UNSAFE_RE.sub("-", raw).strip("-.")[:128]


async def _run(
    *cmd: str,
    env: dict[str, str] | None = None,
    timeout: float | None = 30,
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr).

    On timeout or cancellation the child is killed and reaped before the
    exception propagates.
    """
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    finally:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await asyncio.shield(proc.wait())
    return (
        proc.returncode if proc.returncode is not None else -1,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
    )


class SandboxRuntime:
    """Thin async wrapper over the container CLI.

    Lifecycle per run::

        async with runtime.session(name, env) as handle:
            result = await runtime.run(handle)
        # on any exception inside the block: logs captured, container killed
    """

    def __init__(self, config: SandboxConfig) -> None:
        self._config = config
        self._bin = config.runtime

    async def inspect_image(self) -> bool:
        """Probe that the sandbox image exists locally."""
        try:
            rc, _, err = await _run(self._bin, "image", "inspect", self._config.image)
        except (OSError, asyncio.TimeoutError) as e:
            logger.error("Sandbox image probe failed for %s: %s", self._config.image, e)
            return False
        if rc != 0:
            logger.error("Sandbox image %s not available: %s", self._config.image, err.strip())
            return False
        return True

    def build_run_args(self, handle: SandboxHandle) -> list[str]:
        """Argument vector for ``docker run``. Env values are not included."""
        cfg = self._config
        args = [
            self._bin,
            "run",
            "--rm",
            "--name",
            handle.name,
            "--memory",
            f"{cfg.memory_limit_mb}m",
            "--cpus",
            str(cfg.cpus),
            "--pids-limit",
            str(cfg.pids_limit),
            "--security-opt",
            "no-new-privileges",
            "-v",
            f"{cfg.auth_host_dir}:{SANDBOX_AUTH_MOUNT}:ro",
        ]
        for key in sorted(handle.env):
            args.extend(["-e", key])
        args.append(cfg.image)
        return args

    async def run(self, handle: SandboxHandle) -> ContainerRun:
        """Run the container to completion, bounded by the configured timeout."""
        env = dict(os.environ)
        env.update(handle.env)
        args = self.build_run_args(handle)
        started = time.monotonic()
        logger.info(
            "Starting sandbox %s (image=%s, timeout=%ss)",
            handle.name,
            self._config.image,
            self._config.timeout,
        )
        rc, stdout, stderr = await _run(*args, env=env, timeout=self._config.timeout)
        duration = time.monotonic() - started
        logger.info("Sandbox %s exited %d after %.1fs", handle.name, rc, duration)
        return ContainerRun(returncode=rc, stdout=stdout, stderr=stderr, duration=duration)

    async def logs(self, name: str) -> str:
        rc, stdout, stderr = await _run(
            self._bin, "logs", "--tail", str(self._config.log_tail_lines), name
        )
        if rc != 0:
            raise RuntimeError(f"{self._bin} logs {name} failed: {stderr.strip()}")
        return stdout + stderr

    async def kill(self, name: str) -> None:
        rc, _, stderr = await _run(self._bin, "kill", name)
        if rc != 0:
            # Already exited and removed (--rm) is the common case here.
            logger.debug("%s kill %s returned %d: %s", self._bin, name, rc, stderr.strip())

    async def _teardown(self, handle: SandboxHandle) -> None:
        try:
            handle.logs = await self.logs(handle.name)
        except Exception:
            logger.warning("Could not capture logs for sandbox %s", handle.name, exc_info=True)
        try:
            await self.kill(handle.name)
        except Exception:
            logger.exception("Failed to kill sandbox %s", handle.name)
        finally:
            handle.killed = True

    @asynccontextmanager
    async def session(
        self, name: str, env: dict[str, str] | None = None
    ) -> AsyncIterator[SandboxHandle]:
        """Scope one container. Any exit by exception tears it down.

        Successful runs need no teardown: ``--rm`` removes the container
        when it exits.
        """
        handle = SandboxHandle(name=name, env=dict(env or {}))
        try:
            yield handle
        except BaseException:
            await asyncio.shield(self._teardown(handle))
            raise
