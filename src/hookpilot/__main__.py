"""hookpilot CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from hookpilot.config import load_config
from hookpilot.errors import ConfigError


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _load_or_exit(config_path: Path | None):
    try:
        return load_config(config_path)
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        for key, value in e.context.items():
            print(f"  {key}: {value}", file=sys.stderr)
        sys.exit(1)


def _check(args) -> None:
    """Validate configuration and probe the sandbox image."""
    from hookpilot.sandbox import SandboxRuntime

    config = _load_or_exit(args.config)

    print(f"Bot:            {config.bot_username}")
    print(f"Mode:           {config.execution_mode.value}")
    print(f"Authorized:     {', '.join(sorted(config.authorized_users)) or '(nobody)'}")
    print(f"Reviewer:       {config.pr_human_reviewer or '(none)'}")
    print(f"Runtime:        {config.sandbox.runtime}")
    print(f"Image:          {config.sandbox.image}")
    print(f"Auth directory: {config.sandbox.auth_host_dir}")

    if config.is_test_mode:
        print("\nTest mode: sandbox is not used.")
        return

    available = asyncio.run(SandboxRuntime(config.sandbox).inspect_image())
    if not available:
        print(f"\nError: sandbox image {config.sandbox.image} is not available", file=sys.stderr)
        sys.exit(1)
    print("\nSandbox image available.")


def main():
    parser = argparse.ArgumentParser(
        prog="hookpilot",
        description="hookpilot — GitHub webhook bot that runs an AI coding agent in a sandbox",
    )

    subparsers = parser.add_subparsers(dest="command")

    # hookpilot serve
    serve_parser = subparsers.add_parser("serve", help="Start the webhook server")
    serve_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML config file (default: $HOOKPILOT_CONFIG, then environment only)",
    )
    serve_parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3002,
        help="Port to bind to (default: 3002)",
    )
    serve_parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    # hookpilot check
    check_parser = subparsers.add_parser(
        "check", help="Validate configuration and probe the sandbox image"
    )
    check_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML config file",
    )
    check_parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.log_level)

    if args.command == "check":
        _check(args)
        return

    # serve
    config = _load_or_exit(args.config)

    import uvicorn

    from hookpilot.server import create_app

    app = create_app(config)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
