"""
Redis-backed fallback store for subscription records.

Written only when the primary (SQL) store rejects a record, so the owner
can still see their plan.  Each owner has one mirrored record under
``subscription:fallback:<owner_id>`` (with a TTL), and the owner id is
added to a pending set that the reconciliation worker drains once the
primary store is reachable again.  The record and its pending marker
are written in one MULTI/EXEC transaction.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from autosub.domain.entities import (
    PersistenceError,
    SubscriptionRecord,
    record_adapter,
)

logger = logging.getLogger(__name__)

PENDING_KEY = "subscription:fallback:pending"


def record_key(owner_id: str) -> str:
    return f"subscription:fallback:{owner_id}"


class RedisFallbackStore:
    def __init__(self, client: aioredis.Redis, ttl_seconds: int):
        self.redis = client
        self.ttl = ttl_seconds

    async def write(self, owner_id: str, record: SubscriptionRecord) -> None:
        payload = record_adapter.dump_json(record)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                await (
                    pipe.set(record_key(owner_id), payload, ex=self.ttl)
                    .sadd(PENDING_KEY, owner_id)
                    .execute()
                )
        except RedisError as exc:
            raise PersistenceError(str(exc)) from exc
        logger.warning(
            "Subscription %s mirrored to fallback store", record.reservation_id
        )

    async def read(self, owner_id: str) -> Optional[SubscriptionRecord]:
        raw = await self.redis.get(record_key(owner_id))
        if not raw:
            return None
        return record_adapter.validate_json(raw)

    async def pending_owners(self) -> list[str]:
        return sorted(await self.redis.smembers(PENDING_KEY))

    async def mark_reconciled(
        self, owner_id: str, reservation_id: Optional[str]
    ) -> bool:
        """
        Clear the pending marker if the mirror still holds ``reservation_id``
        (``None`` meaning the mirror is gone).  Returns ``False`` and keeps
        the marker when a newer record was mirrored in the meantime.
        """
        key = record_key(owner_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                current = (
                    record_adapter.validate_json(raw).reservation_id if raw else None
                )
                if current != reservation_id:
                    logger.info(
                        "Fallback record for %s changed to %s, keeping it pending",
                        owner_id,
                        current,
                    )
                    return False
                pipe.multi()
                pipe.srem(PENDING_KEY, owner_id)
                await pipe.execute()
            except WatchError:
                logger.info("Fallback record for %s rewritten during replay", owner_id)
                return False
        return True
