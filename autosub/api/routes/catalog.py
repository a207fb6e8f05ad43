"""
Catalog & quote endpoints
=========================

GET  /api/v1/vehicles           -- list vehicles (optional ?category=)
GET  /api/v1/vehicles/{id}      -- one vehicle with its subscription catalog
GET  /api/v1/cities             -- delivery cities and their price factors
POST /api/v1/quotes             -- price a selection for a vehicle
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autosub.api.dependencies import get_db
from autosub.api.middleware import limiter
from autosub.api.schemas import (
    CityResponse,
    PriceBreakdownResponse,
    QuoteRequest,
    QuoteResponse,
    VehicleResponse,
)
from autosub.config import settings
from autosub.domain.pricing import PricingEngine
from autosub.domain.selection import SelectionManager
from autosub.infrastructure.repositories import (
    CityRepository,
    VehicleRepository,
    catalog_from_options,
)

router = APIRouter(tags=["catalog"])


@router.get(
    "/vehicles",
    response_model=list[VehicleResponse],
    summary="List vehicles",
)
@limiter.limit(settings.rate_limit)
async def list_vehicles(
    request: Request,
    category: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    vehicles = await VehicleRepository(db).list_all(category=category)
    return [
        VehicleResponse.build(v, catalog_from_options(v.id, v.subscription_options))
        for v in vehicles
    ]


@router.get(
    "/vehicles/{vehicle_id}",
    response_model=VehicleResponse,
    summary="Get a vehicle and its subscription options",
)
@limiter.limit(settings.rate_limit)
async def get_vehicle(
    request: Request,
    vehicle_id: str,
    db: AsyncSession = Depends(get_db),
):
    vehicle = await VehicleRepository(db).get_by_id(vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return VehicleResponse.build(
        vehicle, catalog_from_options(vehicle.id, vehicle.subscription_options)
    )


@router.get(
    "/cities",
    response_model=list[CityResponse],
    summary="List delivery cities",
)
@limiter.limit(settings.rate_limit)
async def list_cities(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    return await CityRepository(db).list_all()


@router.post(
    "/quotes",
    response_model=QuoteResponse,
    summary="Price a subscription selection",
    description=(
        "Indices are clamped into range. Without an engagement index the "
        "cheapest engagement tier is priced. Unknown cities use factor 1."
    ),
)
@limiter.limit(settings.rate_limit)
async def create_quote(
    request: Request,
    body: QuoteRequest,
    db: AsyncSession = Depends(get_db),
):
    catalog = await VehicleRepository(db).get_catalog(body.vehicle_id)
    if catalog is None:
        raise HTTPException(status_code=404, detail="Vehicle not found")

    cities = await CityRepository(db).list_factors()
    manager = SelectionManager(
        catalog, body.selection.to_domain(settings.default_city)
    )
    engine = PricingEngine()
    city = engine.resolve_city(cities, manager.selection.city_name)

    return QuoteResponse(
        vehicle_id=catalog.vehicle_id,
        city=manager.selection.city_name,
        engagement_index=manager.display_engagement_index(),
        breakdown=PriceBreakdownResponse.build(manager.price(engine, city)),
    )
