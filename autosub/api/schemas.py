"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from autosub.domain.entities import (
    CardDetails,
    Identity,
    PriceBreakdown,
    Selection,
    SubscriptionRecord,
    VehicleCatalog,
)


# ── Requests ──────────────────────────────────────────────────────────


class SelectionRequest(BaseModel):
    engagement_index: Optional[int] = Field(
        None,
        description="Omit to get the cheapest engagement tier by default.",
    )
    mileage_index: int = 0
    insurance_index: int = 0
    drivers_count: int = Field(
        0, ge=0, description="Additional drivers beyond the primary driver."
    )
    city: Optional[str] = None
    insurance_active: bool = False

    def to_domain(self, default_city: str) -> Selection:
        return Selection(
            engagement_index=self.engagement_index,
            mileage_index=self.mileage_index,
            insurance_index=self.insurance_index,
            drivers_count=self.drivers_count,
            city_name=self.city or default_city,
            insurance_active=self.insurance_active,
        )


class QuoteRequest(BaseModel):
    vehicle_id: str
    selection: SelectionRequest = SelectionRequest()


class SelectionPatch(BaseModel):
    vehicle_id: Optional[str] = Field(
        None, description="Switch vehicle; tier indices reset to defaults."
    )
    engagement_index: Optional[int] = None
    mileage_index: Optional[int] = None
    insurance_index: Optional[int] = None
    drivers_delta: int = 0
    city: Optional[str] = None
    insurance_active: Optional[bool] = None


class ReservationStartRequest(BaseModel):
    vehicle_id: str
    owner_id: str = Field(..., max_length=64)
    selection: SelectionRequest = SelectionRequest()


class IdentityRequest(BaseModel):
    client_type: Literal["particulier", "entreprise", "touriste", ""] = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    birth_date: str = ""
    phone: str = ""
    address: str = ""
    postal_code: str = ""
    floor: str = ""
    door: str = ""
    company: str = ""

    def to_domain(self) -> Identity:
        return Identity(**self.model_dump())


class ContractRequest(BaseModel):
    accepted: bool


class PaymentRequest(BaseModel):
    number: str = ""
    holder_name: str = ""
    expiry: str = Field("", description="MM/YY")
    cvc: str = ""

    def to_domain(self) -> CardDetails:
        return CardDetails(**self.model_dump())


# ── Responses ─────────────────────────────────────────────────────────


class EngagementTierResponse(BaseModel):
    months: int
    monthly_price: Decimal
    label: Optional[str] = None

    model_config = {"from_attributes": True}


class MileageTierResponse(BaseModel):
    km: int
    additional_price: Decimal
    label: Optional[str] = None

    model_config = {"from_attributes": True}


class InsuranceTierResponse(BaseModel):
    type: str
    franchise_amount: Decimal
    additional_price: Decimal
    label: Optional[str] = None

    model_config = {"from_attributes": True}


class CatalogResponse(BaseModel):
    vehicle_id: str
    engagement_tiers: list[EngagementTierResponse] = []
    mileage_tiers: list[MileageTierResponse] = []
    insurance_tiers: list[InsuranceTierResponse] = []
    additional_driver_price: Decimal = Decimal("0")

    model_config = {"from_attributes": True}


class VehicleResponse(BaseModel):
    id: str
    name: str
    brand_id: Optional[str] = None
    category: Optional[str] = None
    available: bool = True
    catalog: CatalogResponse

    @classmethod
    def build(cls, vehicle, catalog: VehicleCatalog) -> VehicleResponse:
        return cls(
            id=vehicle.id,
            name=vehicle.name,
            brand_id=vehicle.brand_id,
            category=vehicle.category,
            available=bool(vehicle.available),
            catalog=CatalogResponse.model_validate(catalog),
        )


class CityResponse(BaseModel):
    id: str
    name: str
    factor: Decimal

    model_config = {"from_attributes": True}


class PriceBreakdownResponse(BaseModel):
    base_price: Decimal
    mileage_supplement: Decimal
    insurance_supplement: Decimal
    drivers_supplement: Decimal
    subtotal: Decimal
    city_factor: Decimal
    total: Decimal

    model_config = {"from_attributes": True}

    @classmethod
    def build(cls, price: PriceBreakdown) -> PriceBreakdownResponse:
        return cls.model_validate(price)


class QuoteResponse(BaseModel):
    vehicle_id: str
    city: str
    engagement_index: Optional[int] = Field(
        None, description="Tier shown as selected (cheapest when unset)."
    )
    breakdown: PriceBreakdownResponse


class FieldErrorResponse(BaseModel):
    field: str
    message: str

    model_config = {"from_attributes": True}


class DocumentResponse(BaseModel):
    id: str
    filename: str
    content_type: str
    size: int
    accepted: bool


class MaskedCardResponse(BaseModel):
    last4: str
    expiry: str
    holder_name: str
    method: str

    model_config = {"from_attributes": True}


class SubscriptionResponse(BaseModel):
    reservation_id: str
    owner_id: str
    vehicle_id: str
    engagement: Optional[EngagementTierResponse] = None
    mileage: Optional[MileageTierResponse] = None
    insurance: Optional[InsuranceTierResponse] = None
    insurance_active: bool
    drivers_count: int
    city: str
    price: PriceBreakdownResponse
    total_price: Decimal
    start_date: datetime
    end_date: Optional[datetime] = None
    health: str
    status: str
    documents: list[str]
    card: MaskedCardResponse
    source: Literal["primary", "fallback"] = "primary"

    @classmethod
    def build(
        cls,
        record: SubscriptionRecord,
        now: datetime,
        source: str = "primary",
    ) -> SubscriptionResponse:
        return cls(
            reservation_id=record.reservation_id,
            owner_id=record.owner_id,
            vehicle_id=record.vehicle_id,
            engagement=(
                EngagementTierResponse.model_validate(record.engagement)
                if record.engagement
                else None
            ),
            mileage=(
                MileageTierResponse.model_validate(record.mileage)
                if record.mileage
                else None
            ),
            insurance=(
                InsuranceTierResponse.model_validate(record.insurance)
                if record.insurance
                else None
            ),
            insurance_active=record.insurance_active,
            drivers_count=record.drivers_count,
            city=record.city_name,
            price=PriceBreakdownResponse.build(record.price),
            total_price=record.total_price,
            start_date=record.start_date,
            end_date=record.end_date(),
            health=record.health(now).value,
            status=record.status.value,
            documents=list(record.documents),
            card=MaskedCardResponse.model_validate(record.card),
            source=source,
        )


class ReservationResponse(BaseModel):
    id: str
    step: str
    vehicle_id: str
    owner_id: str
    selection: SelectionRequest
    identity: IdentityRequest
    documents: list[DocumentResponse] = []
    contract_accepted: bool
    errors: list[FieldErrorResponse] = []
    quote: PriceBreakdownResponse
    subscription: Optional[SubscriptionResponse] = None


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
