"""Sandboxed agent execution.

Each dispatched task runs in a short-lived container: resource-limited,
with the agent credential directory mounted read-only and the prompt
passed as an environment variable. Containers that fail or time out are
killed; successful ones remove themselves (``--rm``).
"""

from .config import SANDBOX_AUTH_MOUNT, SandboxConfig
from .executor import SandboxExecutor, canned_response
from .runtime import ContainerRun, SandboxHandle, SandboxRuntime, container_name
from .sanitize import sanitize_bot_mentions

__all__ = [
    "SANDBOX_AUTH_MOUNT",
    "ContainerRun",
    "SandboxConfig",
    "SandboxExecutor",
    "SandboxHandle",
    "SandboxRuntime",
    "canned_response",
    "container_name",
    "sanitize_bot_mentions",
]
