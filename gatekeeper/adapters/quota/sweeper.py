"""Background sweep of expired quota records.

Opportunistic sweeps only touch shards that keep receiving traffic. This task
covers the rest, so memory stays bounded when many distinct clients show up
once and never return (e.g., rotating IPs).
"""

from __future__ import annotations

import asyncio
import logging

from gatekeeper.adapters.quota.base import AbstractQuotaStore

logger = logging.getLogger(__name__)


class QuotaSweeper:
    """Periodically calls ``store.sweep()`` from an asyncio task."""

    def __init__(self, store: AbstractQuotaStore, interval_seconds: float) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop on the running event loop (no-op when disabled)."""
        if self._interval == 0 or self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="quota-sweeper")
        logger.info("quota_sweeper.started", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("quota_sweeper.stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                removed = self._store.sweep()
            except Exception:
                logger.exception("quota_sweeper.failed")
                continue
            logger.debug(
                "quota_sweeper.swept",
                extra={"evicted": removed, "keys": len(self._store)},
            )
