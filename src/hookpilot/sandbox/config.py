"""Sandbox configuration model."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

# Where the agent image expects its credential directory.
SANDBOX_AUTH_MOUNT = "/home/node/.claude"


def default_auth_dir() -> str:
    return str(Path.home() / ".claude")


class SandboxConfig(BaseModel):
    """Configuration for sandboxed agent execution."""

    model_config = ConfigDict(frozen=True)

    runtime: str = "docker"
    image: str = "claudecode:latest"
    timeout: int = 7200  # seconds
    memory_limit_mb: int = 2048
    cpus: float = 2.0
    pids_limit: int = 512
    # Host directory mounted read-only at SANDBOX_AUTH_MOUNT. Taken verbatim
    # from configuration; default_auth_dir() is the only fallback.
    auth_host_dir: str = Field(default_factory=default_auth_dir)
    name_prefix: str = "hookpilot"
    log_tail_lines: int = 200
