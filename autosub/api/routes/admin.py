"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health       -- simple health check
GET /api/v1/admin/reservations -- count of in-progress reservation drafts
"""

from fastapi import APIRouter, Depends, Request

from autosub.api.dependencies import get_registry
from autosub.api.middleware import limiter
from autosub.api.schemas import HealthResponse
from autosub.api.sessions import ReservationRegistry
from autosub.config import settings

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.get(
    "/reservations",
    summary="Number of reservation drafts held in this process",
)
@limiter.limit(settings.rate_limit)
async def open_reservations(
    request: Request,
    registry: ReservationRegistry = Depends(get_registry),
):
    return {"open": len(registry)}
