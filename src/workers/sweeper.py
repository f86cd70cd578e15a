"""
Background Settlement Worker
============================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 60 s).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one API process sweeps per
  cycle.
* **SELECT ... FOR UPDATE SKIP LOCKED** on the bookings and rides being
  settled keeps the sweep from blocking on, or overwriting, a request
  that is mid-transition on the same rows.

See :mod:`src.services.settlement_service` for what a sweep does.
"""

from __future__ import annotations

import asyncio
import logging

from src.config import settings
from src.infrastructure.database import async_session_factory
from src.infrastructure.locks import DistributedLock
from src.infrastructure.notifier import database_notifier
from src.infrastructure.redis_client import get_redis
from src.services.settlement_service import SettlementService, SweepResult

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_sweeper_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Settlement worker started (interval=%ds)", settings.sweep_interval_seconds
    )


async def stop_sweeper_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Settlement worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a sweep then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sweep_cycle()
        except Exception:
            logger.exception("Unhandled error in settlement cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_sweep_cycle() -> SweepResult:
    """Execute one settlement sweep under the cluster-wide lock."""
    redis = await get_redis()
    lock = DistributedLock(redis, "settlement_sweeper", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return SweepResult()

    try:
        async with async_session_factory() as session:
            service = SettlementService(
                session, database_notifier(async_session_factory)
            )
            return await service.sweep()
    except Exception:
        logger.exception("Error in settlement cycle")
        return SweepResult()
    finally:
        await lock.release()
