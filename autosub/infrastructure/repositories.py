"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``SqlSubscriptionStore`` is the primary
``RecordStore`` used by the submission pipeline; it owns its session so
a write is committed (or rolled back) on its own.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import CityModel, SubscriptionModel, UserModel, VehicleModel
from autosub.domain.entities import (
    CityFactor,
    EngagementTier,
    InsuranceTier,
    MileageTier,
    PersistenceError,
    SubscriptionRecord,
    VehicleCatalog,
    record_adapter,
    to_money,
)

logger = logging.getLogger(__name__)


def catalog_from_options(
    vehicle_id: str, options: Optional[dict[str, Any]]
) -> VehicleCatalog:
    """Map the stored options document to tier records; absent = empty."""
    options = options or {}
    return VehicleCatalog(
        vehicle_id=vehicle_id,
        engagement_tiers=tuple(
            EngagementTier(
                months=int(o.get("months", 0)),
                monthly_price=to_money(o.get("monthlyPrice")),
                label=o.get("label"),
            )
            for o in options.get("engagement") or []
        ),
        mileage_tiers=tuple(
            MileageTier(
                km=int(o.get("km", 0)),
                additional_price=to_money(o.get("additionalPrice")),
                label=o.get("label"),
            )
            for o in options.get("mileage") or []
        ),
        insurance_tiers=tuple(
            InsuranceTier(
                type=o.get("type", ""),
                franchise_amount=to_money(o.get("franchiseAmount")),
                additional_price=to_money(o.get("additionalPrice")),
                label=o.get("label"),
            )
            for o in options.get("insurance") or []
        ),
        additional_driver_price=to_money(options.get("additionalDriverPrice")),
    )


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, vehicle_id: str) -> Optional[VehicleModel]:
        return await self.session.get(VehicleModel, vehicle_id)

    async def list_all(self, category: str | None = None) -> list[VehicleModel]:
        query = select(VehicleModel).order_by(VehicleModel.id)
        if category:
            query = query.where(VehicleModel.category == category)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_catalog(self, vehicle_id: str) -> Optional[VehicleCatalog]:
        vehicle = await self.get_by_id(vehicle_id)
        if vehicle is None:
            logger.debug("No vehicle %s, no catalog", vehicle_id)
            return None
        return catalog_from_options(vehicle.id, vehicle.subscription_options)


class CityRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_all(self) -> list[CityModel]:
        result = await self.session.execute(select(CityModel).order_by(CityModel.id))
        return list(result.scalars().all())

    async def list_factors(self) -> list[CityFactor]:
        return [
            CityFactor(name=c.name, factor=to_money(c.factor))
            for c in await self.list_all()
        ]


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)


class SubscriptionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionModel:
        """Insert or overwrite by reservation id (replays are harmless)."""
        row = SubscriptionModel(
            reservation_id=record.reservation_id,
            owner_id=record.owner_id,
            vehicle_id=record.vehicle_id,
            status=record.status,
            total_price=record.total_price,
            start_date=record.start_date,
            snapshot=record_adapter.dump_python(record, mode="json"),
        )
        row = await self.session.merge(row)
        await self.session.flush()
        return row

    async def get_by_reservation_id(
        self, reservation_id: str
    ) -> Optional[SubscriptionRecord]:
        row = await self.session.get(SubscriptionModel, reservation_id)
        return self._to_record(row) if row else None

    async def get_current_for_owner(
        self, owner_id: str
    ) -> Optional[SubscriptionRecord]:
        result = await self.session.execute(
            select(SubscriptionModel)
            .where(SubscriptionModel.owner_id == owner_id)
            .order_by(SubscriptionModel.start_date.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return self._to_record(row) if row else None

    @staticmethod
    def _to_record(row: SubscriptionModel) -> SubscriptionRecord:
        record = record_adapter.validate_python(row.snapshot)
        # status is owned by back-office flows, the column wins
        record.status = row.status
        return record


class SqlSubscriptionStore:
    """Primary ``RecordStore``: one committed transaction per write."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def write(self, owner_id: str, record: SubscriptionRecord) -> None:
        try:
            async with self.session_factory() as session:
                await SubscriptionRepository(session).upsert(record)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

    async def read_current(self, owner_id: str) -> Optional[SubscriptionRecord]:
        async with self.session_factory() as session:
            return await SubscriptionRepository(session).get_current_for_owner(
                owner_id
            )
