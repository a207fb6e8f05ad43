"""
Background Fallback Reconciliation Worker
=========================================

Runs every ``RECONCILE_INTERVAL_SECONDS`` (default 60 s).

When the primary store rejects a subscription record at submission
time, the record is mirrored to Redis and its owner is added to a
pending set.  Each cycle:

1. Take the ``fallback_reconciliation`` Redis lock (skip the cycle if
   another process holds it).
2. For every pending owner, read the mirrored record and upsert it into
   the primary store (upserts are keyed by reservation id, so a record
   that did reach the primary store is simply overwritten).
3. Clear the pending marker on success, but only if the mirror still
   holds the replayed record; leave it for the next cycle otherwise.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from autosub.config import settings
from autosub.infrastructure.database import async_session_factory
from autosub.infrastructure.fallback import RedisFallbackStore
from autosub.infrastructure.locks import DistributedLock
from autosub.infrastructure.redis_client import get_redis
from autosub.infrastructure.repositories import SqlSubscriptionStore

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_reconciliation_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Reconciliation worker started (interval=%ds)",
        settings.reconcile_interval_seconds,
    )


async def stop_reconciliation_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Reconciliation worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_reconciliation_cycle()
        except Exception:
            logger.exception("Unhandled error in reconciliation cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.reconcile_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass


async def run_reconciliation_cycle(
    fallback: Optional[RedisFallbackStore] = None,
    primary: Optional[SqlSubscriptionStore] = None,
    lock: Optional[DistributedLock] = None,
) -> int:
    """Replay pending fallback records.  Returns how many were replayed."""
    if fallback is None or lock is None:
        redis = await get_redis()
        fallback = fallback or RedisFallbackStore(
            redis, settings.fallback_ttl_seconds
        )
        lock = lock or DistributedLock(
            redis, "fallback_reconciliation", ttl_seconds=60
        )
    primary = primary or SqlSubscriptionStore(async_session_factory)

    if not await lock.acquire():
        logger.debug("Lock held by another worker, skipping cycle")
        return 0

    replayed = 0
    try:
        for owner_id in await fallback.pending_owners():
            record = await fallback.read(owner_id)
            if record is None:
                # mirror expired before the primary store came back
                logger.warning("Fallback record for %s expired", owner_id)
                await fallback.mark_reconciled(owner_id, None)
                continue
            try:
                await primary.write(owner_id, record)
            except Exception:
                logger.exception(
                    "Replay of %s still failing", record.reservation_id
                )
                continue
            replayed += 1
            # a newer degraded submission keeps the owner pending
            await fallback.mark_reconciled(owner_id, record.reservation_id)

        if replayed:
            logger.info("Reconciliation cycle: %d records replayed", replayed)
    finally:
        await lock.release()

    return replayed
