"""Configuration loading for hookpilot.

Configuration is loaded once at process start into an immutable
``BotConfig`` and passed explicitly to every component. Values come from
an optional YAML file, overlaid by environment variables (environment
wins). Secrets may also be supplied as ``<NAME>_FILE`` paths, Docker
secrets style.
"""

from __future__ import annotations

import enum
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hookpilot.errors import ConfigError
from hookpilot.sandbox.config import SandboxConfig

logger = logging.getLogger(__name__)


class ExecutionMode(str, enum.Enum):
    """How dispatched commands are executed."""

    TEST = "test"  # canned response, no sandbox
    PRODUCTION = "production"


class BotConfig(BaseModel):
    """Process-wide, read-only bot configuration."""

    model_config = ConfigDict(frozen=True)

    bot_username: str
    webhook_secret: str = Field(repr=False)
    github_token: str | None = Field(default=None, repr=False)
    anthropic_api_key: str | None = Field(default=None, repr=False)
    authorized_users: frozenset[str] = Field(default_factory=frozenset)
    pr_human_reviewer: str | None = None
    execution_mode: ExecutionMode = ExecutionMode.PRODUCTION
    auto_tag_issues: bool = False
    delivery_db_path: str | None = None
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)

    @field_validator("bot_username")
    @classmethod
    def _strip_at(cls, v: str) -> str:
        """BOT_USERNAME is commonly written as a mention (``@MyBot``)."""
        v = v.strip().lstrip("@")
        if not v:
            raise ValueError("bot_username must not be empty")
        return v

    @field_validator("authorized_users", mode="before")
    @classmethod
    def _split_users(cls, v: Any) -> Any:
        if isinstance(v, str):
            return frozenset(u.strip() for u in v.split(",") if u.strip())
        return v

    @field_validator("pr_human_reviewer")
    @classmethod
    def _blank_reviewer(cls, v: str | None) -> str | None:
        if v is not None:
            v = v.strip().lstrip("@")
        return v or None

    @property
    def is_test_mode(self) -> bool:
        return self.execution_mode == ExecutionMode.TEST

    def is_bot(self, login: str | None) -> bool:
        """Whether a GitHub login is this bot.

        GitHub Apps act as ``<name>[bot]``; both spellings match.
        """
        if not login:
            return False
        login = login.lower()
        me = self.bot_username.lower()
        return login == me or login == f"{me}[bot]"


# ── Environment overlay ──────────────────────────────────────────────────────

# env var → (config key, is_secret)
_ENV_FIELDS: dict[str, tuple[str, bool]] = {
    "BOT_USERNAME": ("bot_username", False),
    "GITHUB_WEBHOOK_SECRET": ("webhook_secret", True),
    "GITHUB_TOKEN": ("github_token", True),
    "ANTHROPIC_API_KEY": ("anthropic_api_key", True),
    "AUTHORIZED_USERS": ("authorized_users", False),
    "PR_HUMAN_REVIEWER": ("pr_human_reviewer", False),
    "DELIVERY_DB_PATH": ("delivery_db_path", False),
}

_SANDBOX_ENV_FIELDS: dict[str, str] = {
    "CLAUDE_CONTAINER_IMAGE": "image",
    "CONTAINER_TIMEOUT": "timeout",
    "CONTAINER_MEMORY_MB": "memory_limit_mb",
    "CONTAINER_CPUS": "cpus",
    "CLAUDE_AUTH_HOST_DIR": "auth_host_dir",
    "CONTAINER_RUNTIME": "runtime",
}


def read_secret(name: str, environ: Mapping[str, str]) -> str | None:
    """Read a secret from ``<name>_FILE`` if set, else from ``<name>``."""
    file_path = environ.get(f"{name}_FILE", "").strip()
    if file_path:
        try:
            return Path(file_path).read_text().strip() or None
        except OSError as e:
            raise ConfigError(
                f"Cannot read {name}_FILE", context={"path": file_path, "error": str(e)}
            ) from e
    value = environ.get(name)
    return value if value else None


def _parse_mode(raw: str) -> ExecutionMode:
    raw = raw.strip().lower()
    if raw == "test":
        return ExecutionMode.TEST
    return ExecutionMode.PRODUCTION


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BotConfig:
    """Build the process configuration.

    Args:
        config_path: Optional YAML file. Defaults to ``$HOOKPILOT_CONFIG``.
        environ: Environment mapping (defaults to ``os.environ``).

    Raises:
        ConfigError: If a required value is missing or validation fails.
    """
    env = os.environ if environ is None else environ

    raw: dict[str, Any] = {}
    if config_path is None and env.get("HOOKPILOT_CONFIG"):
        config_path = Path(env["HOOKPILOT_CONFIG"])
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file must contain a mapping: {config_path}")

    for var, (key, secret) in _ENV_FIELDS.items():
        value = read_secret(var, env) if secret else env.get(var)
        if value:
            raw[key] = value

    mode = env.get("EXECUTION_MODE") or env.get("NODE_ENV")
    if mode:
        raw["execution_mode"] = _parse_mode(mode)

    auto_tag = env.get("AUTO_TAG_ISSUES")
    if auto_tag is not None:
        raw["auto_tag_issues"] = auto_tag.lower() in ("1", "true", "yes")

    sandbox_raw = dict(raw.get("sandbox") or {})
    for var, key in _SANDBOX_ENV_FIELDS.items():
        value = env.get(var)
        if value:
            sandbox_raw[key] = value
    raw["sandbox"] = sandbox_raw

    if not raw.get("bot_username"):
        raise ConfigError("BOT_USERNAME is required")
    if not raw.get("webhook_secret"):
        raise ConfigError("GITHUB_WEBHOOK_SECRET is required")

    try:
        config = BotConfig(**raw)
    except ValidationError as e:
        raise ConfigError("Invalid configuration", context={"errors": e.errors()}) from e

    if not config.is_test_mode and not config.github_token:
        raise ConfigError("GITHUB_TOKEN is required in production mode")

    logger.info(
        "Loaded config: bot=%s mode=%s authorized_users=%d reviewer=%s",
        config.bot_username,
        config.execution_mode.value,
        len(config.authorized_users),
        config.pr_human_reviewer or "none",
    )
    return config
