# src/secbrain/storage/sync.py

from __future__ import annotations

import asyncio
import logging

from .gateway import PersistenceGateway

logger = logging.getLogger(__name__)


async def run_sync_loop(
    gateway: PersistenceGateway,
    *,
    interval_seconds: float = 30.0,
    batch_limit: int | None = None,
) -> None:
    """
    Opportunistic sync.

    Every interval_seconds, if the fallback outbox holds writes, replay them to the
    remote store. While the remote is down each attempt stops at the first failure,
    so this doubles as the reconnection check.

    To stop the loop, cancel the coroutine/task.
    """
    sleep_s = max(0.5, float(interval_seconds))

    while True:
        try:
            if gateway.pending_count() > 0:
                report = await gateway.sync_pending(limit=batch_limit)
                if report.remaining and not report.skipped:
                    logger.debug("Sync pass left %d pending write(s)", report.remaining)
        except Exception:
            logger.exception("sync_pending failed")

        await asyncio.sleep(sleep_s)
