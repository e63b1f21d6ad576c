"""Seen-delivery store for webhook idempotency.

GitHub may redeliver a webhook; the ``X-GitHub-Delivery`` id is stable
across redeliveries. Storing it lets the router acknowledge a repeat
without running the agent twice. Backed by SQLite via aiosqlite; use
``":memory:"`` for a store that lives only as long as the process.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS seen_deliveries (
    delivery_id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    received_at TEXT NOT NULL
);
"""


class DeliveryStore:
    """Records processed webhook delivery ids."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open database and create tables."""
        self._db = await aiosqlite.connect(self.db_path)
        if self.db_path != ":memory:":
            await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(SCHEMA)
        await self._db.commit()
        logger.info("Delivery store initialized: %s", self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Delivery store not initialized — call initialize() first")
        return self._db

    async def mark_seen(self, delivery_id: str, event_type: str) -> bool:
        """Record a delivery. Returns False if it had already been recorded."""
        cursor = await self.db.execute(
            "INSERT OR IGNORE INTO seen_deliveries (delivery_id, event_type, received_at) "
            "VALUES (?, ?, ?)",
            (delivery_id, event_type, datetime.now(timezone.utc).isoformat()),
        )
        await self.db.commit()
        return cursor.rowcount == 1

    async def prune(self, max_age_hours: int = 72) -> int:
        """Delete entries older than max_age_hours. Returns rows deleted."""
        cutoff = (datetime.now(timezone.utc) - timedelta(hours=max_age_hours)).isoformat()
        cursor = await self.db.execute(
            "DELETE FROM seen_deliveries WHERE received_at < ?", (cutoff,)
        )
        await self.db.commit()
        return cursor.rowcount
