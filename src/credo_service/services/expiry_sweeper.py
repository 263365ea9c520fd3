"""Deadline-driven expiry of open tasks."""

from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING

from credo_service.logging import get_logger
from credo_service.services.timestamps import now_iso

if TYPE_CHECKING:
    from credo_service.services.market_store import MarketStore

logger = get_logger(__name__)


class ExpirySweeper:
    """
    Cancels every OPEN task whose deadline has passed.

    ``sweep`` is idempotent: a second run with no newly overdue tasks
    reports a count of zero. ``run`` repeats the sweep on an interval
    until stopped or cancelled.
    """

    def __init__(self, store: MarketStore, interval_seconds: int) -> None:
        self._store = store
        self._interval_seconds = interval_seconds
        self._running = True

    def sweep(self) -> dict[str, int]:
        """Expire overdue open tasks and report how many changed."""
        count = self._store.cancel_expired_tasks(now_iso())
        if count > 0:
            logger.info("Expired overdue tasks", extra={"count": count})
        return {"count": count}

    async def run(self) -> None:
        """Sweep periodically until stopped."""
        logger.info("Expiry sweeper starting", extra={"interval_seconds": self._interval_seconds})
        while self._running:
            try:
                await asyncio.sleep(self._interval_seconds)
                self.sweep()
            except asyncio.CancelledError:
                logger.info("Expiry sweeper cancelled")
                self._running = False
                raise
            except sqlite3.Error:
                logger.exception("Expiry sweep failed")
        logger.info("Expiry sweeper stopped")

    def stop(self) -> None:
        """Signal the loop to stop after the current cycle."""
        self._running = False
