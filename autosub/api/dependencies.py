"""FastAPI dependency injection helpers."""

import redis.asyncio as aioredis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autosub.api.sessions import ReservationRegistry
from autosub.config import settings
from autosub.domain.submission import SubmissionPipeline
from autosub.infrastructure.database import async_session_factory
from autosub.infrastructure.fallback import RedisFallbackStore
from autosub.infrastructure.redis_client import get_redis
from autosub.infrastructure.repositories import SqlSubscriptionStore
from autosub.infrastructure.storage import LocalDocumentStorage


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_fallback_store(
    redis: aioredis.Redis = Depends(get_redis),
) -> RedisFallbackStore:
    return RedisFallbackStore(redis, settings.fallback_ttl_seconds)


async def get_pipeline(
    fallback: RedisFallbackStore = Depends(get_fallback_store),
) -> SubmissionPipeline:
    return SubmissionPipeline(
        storage=LocalDocumentStorage(settings.document_storage_dir),
        primary=SqlSubscriptionStore(async_session_factory),
        fallback=fallback,
        accepted_types=settings.accepted_document_types,
    )


def get_registry(request: Request) -> ReservationRegistry:
    return request.app.state.reservations
