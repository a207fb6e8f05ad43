"""
Domain entities with business logic.

Patterns used
-------------
- **Tagged tier records**: each option group (engagement / mileage /
  insurance) is its own frozen record; an absent group is an empty tuple.
- **Value objects** for prices (``PriceBreakdown``) and masked card data,
  never mutated after creation.
- ``SubscriptionRecord`` stores *resolved* tiers, not indices, so later
  catalog edits cannot alter a signed subscription.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import TypeAdapter

from .enums import PlanHealth, SubscriptionStatus, TierKind

ZERO = Decimal("0")


class InvalidStateTransition(Exception):
    """Raised when a reservation step change violates the state machine."""


class CatalogNotFound(Exception):
    """Raised when a vehicle has no subscription catalog."""

    def __init__(self, vehicle_id: str):
        super().__init__(f"No catalog for vehicle {vehicle_id!r}")
        self.vehicle_id = vehicle_id


class SubmissionInProgress(Exception):
    """Raised when a second submission starts while one is in flight."""


class UploadError(Exception):
    """Raised by document storage when a file cannot be stored."""


class PersistenceError(Exception):
    """Raised by a record store when a write fails."""


def to_money(value: Union[int, float, str, Decimal, None]) -> Decimal:
    """Coerce a JSON-ish number to ``Decimal`` without float artefacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ── Catalog ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EngagementTier:
    months: int
    monthly_price: Decimal
    label: Optional[str] = None


@dataclass(frozen=True)
class MileageTier:
    km: int
    additional_price: Decimal
    label: Optional[str] = None


@dataclass(frozen=True)
class InsuranceTier:
    type: str
    franchise_amount: Decimal
    additional_price: Decimal
    label: Optional[str] = None


@dataclass(frozen=True)
class VehicleCatalog:
    vehicle_id: str
    engagement_tiers: tuple[EngagementTier, ...] = ()
    mileage_tiers: tuple[MileageTier, ...] = ()
    insurance_tiers: tuple[InsuranceTier, ...] = ()
    additional_driver_price: Decimal = ZERO

    def tiers(self, kind: TierKind) -> tuple:
        if kind is TierKind.ENGAGEMENT:
            return self.engagement_tiers
        if kind is TierKind.MILEAGE:
            return self.mileage_tiers
        return self.insurance_tiers


@dataclass(frozen=True)
class CityFactor:
    name: str
    factor: Decimal = Decimal("1")


# ── Selection & pricing ──────────────────────────────────────────────


@dataclass
class Selection:
    """
    The user's current choices for one vehicle.

    ``engagement_index`` stays ``None`` until the user picks a tier, which
    lets the pricing engine apply its cheapest-first default.
    ``drivers_count`` counts *additional* drivers beyond the primary one.
    """

    engagement_index: Optional[int] = None
    mileage_index: int = 0
    insurance_index: int = 0
    drivers_count: int = 0
    city_name: str = ""
    insurance_active: bool = False

    def snapshot(self) -> Selection:
        return replace(self)


@dataclass(frozen=True)
class ResolvedSelection:
    engagement: Optional[EngagementTier]
    mileage: Optional[MileageTier]
    insurance: Optional[InsuranceTier]
    insurance_active: bool
    drivers_count: int


@dataclass(frozen=True)
class PriceBreakdown:
    base_price: Decimal = ZERO
    mileage_supplement: Decimal = ZERO
    insurance_supplement: Decimal = ZERO
    drivers_supplement: Decimal = ZERO
    subtotal: Decimal = ZERO
    city_factor: Decimal = Decimal("1")
    total: Decimal = ZERO


# ── Reservation draft ────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


@dataclass
class Identity:
    client_type: str = ""
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

    @classmethod
    def prefilled(cls, email: str = "", display_name: str = "") -> Identity:
        """Seed from the identity provider: "First Last" -> first/last."""
        parts = (display_name or "").split(" ")
        first = parts[0] if parts else ""
        last = parts[1] if len(parts) > 1 else ""
        return cls(email=email or "", first_name=first, last_name=last)


@dataclass(frozen=True)
class DocumentFile:
    id: str
    filename: str
    content_type: str
    size: int
    content: bytes = field(default=b"", repr=False)


@dataclass(frozen=True)
class MaskedCard:
    last4: str
    expiry: str
    holder_name: str
    method: str = "card"


@dataclass
class CardDetails:
    number: str = ""
    holder_name: str = ""
    expiry: str = ""
    cvc: str = field(default="", repr=False)

    def masked(self) -> MaskedCard:
        digits = "".join(ch for ch in self.number if ch.isdigit())
        return MaskedCard(
            last4=digits[-4:],
            expiry=self.expiry.strip(),
            holder_name=self.holder_name.strip(),
        )

    def __repr__(self) -> str:
        return f"CardDetails(last4={self.masked().last4!r})"


@dataclass
class ReservationDraft:
    owner_id: str
    vehicle_id: str
    identity: Identity = field(default_factory=Identity)
    documents: list[DocumentFile] = field(default_factory=list)
    contract_accepted: bool = False
    card: CardDetails = field(default_factory=CardDetails)
    # document id -> storage reference, kept across retries
    uploaded: dict[str, str] = field(default_factory=dict)

    def accepted_documents(self, accepted_types) -> list[DocumentFile]:
        return [d for d in self.documents if d.content_type in accepted_types]

    def rejected_documents(self, accepted_types) -> list[DocumentFile]:
        return [d for d in self.documents if d.content_type not in accepted_types]

    def remove_document(self, document_id: str) -> None:
        self.documents = [d for d in self.documents if d.id != document_id]
        self.uploaded.pop(document_id, None)


# ── Subscription record ──────────────────────────────────────────────


def add_months(start: datetime, months: int) -> datetime:
    """Calendar month add; the day is clamped to the target month length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


@dataclass
class SubscriptionRecord:
    reservation_id: str
    owner_id: str
    vehicle_id: str
    engagement: Optional[EngagementTier]
    mileage: Optional[MileageTier]
    insurance: Optional[InsuranceTier]
    insurance_active: bool
    drivers_count: int
    city_name: str
    price: PriceBreakdown
    start_date: datetime
    documents: tuple[str, ...]
    card: MaskedCard
    client: Identity
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE

    WARNING_DAYS = 30

    @property
    def total_price(self) -> Decimal:
        return self.price.total

    def end_date(self) -> Optional[datetime]:
        """``None`` for no-commitment plans (0 months)."""
        if self.engagement is None or self.engagement.months <= 0:
            return None
        return add_months(self.start_date, self.engagement.months)

    def health(self, now: datetime) -> PlanHealth:
        end = self.end_date()
        if end is None:
            return PlanHealth.ACTIVE
        days_left = (end - now).days
        if days_left < 0:
            return PlanHealth.EXPIRED
        if days_left < self.WARNING_DAYS:
            return PlanHealth.WARNING
        return PlanHealth.ACTIVE


# JSON codec for the ORM snapshot column and the Redis fallback mirror.
# Decimals travel as strings, datetimes as ISO-8601, enums by value.
record_adapter: TypeAdapter[SubscriptionRecord] = TypeAdapter(SubscriptionRecord)
