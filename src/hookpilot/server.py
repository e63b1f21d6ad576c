"""hookpilot server — FastAPI application that ties all components together.

Startup sequence:
1. Start the GitHub client
2. Open the delivery store (if configured)
3. Build the sandbox executor and event router
4. Probe the sandbox image (warn only; each run probes again)
5. Begin accepting webhooks

Shutdown closes the delivery store and the GitHub client.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hookpilot import __version__
from hookpilot.config import BotConfig
from hookpilot.delivery_store import DeliveryStore
from hookpilot.event_router import EventRouter
from hookpilot.github_client import GitHubClient
from hookpilot.sandbox import SandboxExecutor, SandboxRuntime
from hookpilot.webhook import router as webhook_router

logger = logging.getLogger(__name__)


class HookpilotServer:
    """Encapsulates all server components and lifecycle."""

    def __init__(self, config: BotConfig):
        self.config = config

        # Components (initialized in start())
        self.github: GitHubClient | None = None
        self.delivery_store: DeliveryStore | None = None
        self.executor: SandboxExecutor | None = None
        self.router: EventRouter | None = None

    async def start(self) -> None:
        """Initialize all components."""
        logger.info(
            "hookpilot starting (bot=%s, mode=%s)",
            self.config.bot_username,
            self.config.execution_mode.value,
        )

        # 1. GitHub client
        self.github = GitHubClient(token=self.config.github_token)
        await self.github.start()

        # 2. Delivery store
        if self.config.delivery_db_path:
            self.delivery_store = DeliveryStore(self.config.delivery_db_path)
            await self.delivery_store.initialize()
            pruned = await self.delivery_store.prune()
            if pruned:
                logger.info("Pruned %d old delivery record(s)", pruned)

        # 3. Executor + router
        runtime = SandboxRuntime(self.config.sandbox)
        self.executor = SandboxExecutor(self.config, instructions=self.github, runtime=runtime)
        self.router = EventRouter(
            self.config,
            self.executor,
            self.github,
            delivery_store=self.delivery_store,
        )

        # 4. Sandbox probe
        if not self.config.is_test_mode and not await runtime.inspect_image():
            logger.warning(
                "Sandbox image %s is not available — dispatched tasks will fail until it is",
                self.config.sandbox.image,
            )

        if not self.config.authorized_users:
            logger.warning("AUTHORIZED_USERS is empty — nobody can assign issues to the bot")

        logger.info("hookpilot started; handling %s", ", ".join(self.router.handled_events))

    async def stop(self) -> None:
        """Graceful shutdown — stop all components."""
        logger.info("hookpilot shutting down")
        if self.delivery_store:
            await self.delivery_store.close()
        if self.github:
            await self.github.close()
        logger.info("hookpilot stopped")


# ── FastAPI App ──────────────────────────────────────────────────────────────


def create_app(config: BotConfig, *, event_router: EventRouter | None = None) -> FastAPI:
    """Create the FastAPI application.

    Passing ``event_router`` skips component startup and serves that router
    directly.
    """
    server = HookpilotServer(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """FastAPI lifespan — startup and shutdown."""
        if event_router is not None:
            yield
            return
        await server.start()
        app.state.event_router = server.router
        try:
            yield
        finally:
            await server.stop()

    app = FastAPI(
        title="hookpilot",
        version=__version__,
        description="GitHub webhook bot that dispatches sandboxed AI coding agents",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.server = server
    if event_router is not None:
        app.state.event_router = event_router

    app.include_router(webhook_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "bot_username": config.bot_username,
            "execution_mode": config.execution_mode.value,
        }

    return app
