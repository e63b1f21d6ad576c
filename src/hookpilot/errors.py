"""Exception hierarchy for hookpilot.

Classification outcomes (self-loops, ignored events) are not exceptions;
they are expressed as router decisions. The classes here cover conditions
that abort work: bad signatures, missing configuration, and sandbox
failures.
"""

from __future__ import annotations

from typing import Any


class HookpilotError(RuntimeError):
    """Base exception that carries structured context."""

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigError(HookpilotError):
    """Raised when startup configuration is missing or invalid."""


class SignatureInvalid(HookpilotError):
    """Raised when a webhook delivery fails HMAC verification."""


class MalformedPayload(HookpilotError):
    """Raised when a webhook payload lacks a field the router requires."""


class SandboxUnavailable(HookpilotError):
    """Raised when the sandbox image cannot be found or inspected."""


class SandboxExecutionFailed(HookpilotError):
    """Raised when a sandboxed run exits non-zero, times out, or fails to launch.

    Carries whatever output was captured so the failure can be reported
    back to GitHub.
    """

    def __init__(
        self,
        message: str,
        *,
        stdout: str = "",
        stderr: str = "",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.stdout = stdout
        self.stderr = stderr


__all__ = [
    "ConfigError",
    "HookpilotError",
    "MalformedPayload",
    "SandboxExecutionFailed",
    "SandboxUnavailable",
    "SignatureInvalid",
]
