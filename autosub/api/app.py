"""
FastAPI application factory.

* Registers routes for the catalog, quotes, reservations, subscriptions
  and admin.
* Starts / stops the fallback reconciliation worker via lifespan events
  and releases the DB and Redis pools on shutdown.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from autosub.api.middleware import limiter
from autosub.api.routes import admin, catalog, reservations, subscriptions
from autosub.api.sessions import ReservationRegistry
from autosub.config import settings
from autosub.infrastructure.database import dispose_engine
from autosub.infrastructure.redis_client import close_redis
from autosub.workers import reconciler as _reconciler

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the reconciliation worker on startup; stop on shutdown."""
    await _reconciler.start_reconciliation_loop()
    yield
    await _reconciler.stop_reconciliation_loop()
    await close_redis()
    await dispose_engine()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Vehicle Subscription API",
        description=(
            "Configure and price monthly vehicle subscriptions, then take "
            "a reservation through identity, documents, contract and "
            "payment steps."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Session-scoped reservation drafts
    app.state.reservations = ReservationRegistry(
        settings.reservation_idle_ttl_seconds
    )

    # Routers
    app.include_router(catalog.router, prefix="/api/v1")
    app.include_router(reservations.router, prefix="/api/v1")
    app.include_router(subscriptions.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
