"""
Subscription endpoints
======================

GET /api/v1/users/{owner_id}/subscription -- the owner's current plan

Both stores are read.  The Redis fallback mirror wins when it holds a
later plan than the primary store (or the primary store has none or is
down), so a degraded-mode submission is visible to its owner even when
an older plan was stored normally.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autosub.api.dependencies import get_db, get_fallback_store
from autosub.api.middleware import limiter
from autosub.api.schemas import ErrorResponse, SubscriptionResponse
from autosub.config import settings
from autosub.infrastructure.fallback import RedisFallbackStore
from autosub.infrastructure.repositories import SubscriptionRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["subscriptions"])


@router.get(
    "/{owner_id}/subscription",
    response_model=SubscriptionResponse,
    summary="Get the owner's current subscription",
    responses={404: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def get_current_subscription(
    request: Request,
    owner_id: str,
    db: AsyncSession = Depends(get_db),
    fallback: RedisFallbackStore = Depends(get_fallback_store),
):
    now = datetime.now(timezone.utc)
    try:
        record = await SubscriptionRepository(db).get_current_for_owner(owner_id)
    except SQLAlchemyError:
        logger.exception("Primary store unavailable for %s", owner_id)
        record = None

    try:
        mirrored = await fallback.read(owner_id)
    except RedisError:
        logger.exception("Fallback store unavailable for %s", owner_id)
        mirrored = None

    if mirrored is not None and (
        record is None or mirrored.start_date > record.start_date
    ):
        return SubscriptionResponse.build(mirrored, now, source="fallback")
    if record is None:
        raise HTTPException(status_code=404, detail="No subscription found")
    return SubscriptionResponse.build(record, now)
