"""
Subscription Pricing Engine  (Strategy Pattern)
===============================================

Formula
-------
Subtotal = max(0, Base + Mileage_Supp + Insurance_Supp + Drivers_Supp)
Total    = round_half_up(Subtotal x City_Factor)

* **Base**: monthly price of the chosen engagement tier.  When the user
  has not picked one yet, the *cheapest* tier is used (first one wins
  on ties), not the first in list order.
* **Insurance_Supp** only applies when risk coverage is opted in; the
  franchise amount is informational and never priced.
* **Drivers_Supp** = additional drivers x per-driver fee.
* Unknown city -> factor 1.  Rounding happens once, after the multiply.

Every lookup is index-safe: empty tier lists contribute zero and
explicit indices are clamped.  Complexity: O(n) in the engagement tier
count (default selection), O(1) otherwise.
"""

from __future__ import annotations

import unicodedata
from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence, TypeVar

from .entities import (
    ZERO,
    CityFactor,
    EngagementTier,
    PriceBreakdown,
    ResolvedSelection,
    Selection,
    VehicleCatalog,
)

T = TypeVar("T")

NEUTRAL_CITY_FACTOR = Decimal("1")


def clamp_index(index: int, length: int) -> int:
    """Clamp *index* into ``[0, length - 1]``; ``length`` must be > 0."""
    return min(max(index, 0), length - 1)


def safe_pick(items: Sequence[T], index: Optional[int]) -> Optional[T]:
    if not items:
        return None
    return items[clamp_index(index or 0, len(items))]


def normalize_city(name: str) -> str:
    """Strip accents, lower-case and drop whitespace: "Fès " -> "fes"."""
    decomposed = unicodedata.normalize("NFD", name or "")
    bare = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return "".join(bare.lower().split())


# ── Engagement strategies ─────────────────────────────────────────────


class EngagementPolicy(ABC):
    @abstractmethod
    def choose(
        self, tiers: Sequence[EngagementTier]
    ) -> Optional[EngagementTier]: ...


class ExplicitEngagement(EngagementPolicy):
    def __init__(self, index: int):
        self.index = index

    def choose(
        self, tiers: Sequence[EngagementTier]
    ) -> Optional[EngagementTier]:
        return safe_pick(tiers, self.index)


class CheapestEngagement(EngagementPolicy):
    """First tier carrying the minimum monthly price."""

    def choose(
        self, tiers: Sequence[EngagementTier]
    ) -> Optional[EngagementTier]:
        cheapest: Optional[EngagementTier] = None
        for tier in tiers:
            if cheapest is None or tier.monthly_price < cheapest.monthly_price:
                cheapest = tier
        return cheapest


def engagement_policy_for(selection: Selection) -> EngagementPolicy:
    if selection.engagement_index is None:
        return CheapestEngagement()
    return ExplicitEngagement(selection.engagement_index)


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the selection UI, quotes and submission."""

    @staticmethod
    def resolve_city(
        cities: Iterable[CityFactor], name: str
    ) -> CityFactor:
        wanted = normalize_city(name)
        for city in cities:
            if normalize_city(city.name) == wanted:
                return city
        return CityFactor(name=name, factor=NEUTRAL_CITY_FACTOR)

    @staticmethod
    def resolve(
        catalog: VehicleCatalog, selection: Selection
    ) -> ResolvedSelection:
        """Turn indices into the concrete tiers they point at."""
        policy = engagement_policy_for(selection)
        return ResolvedSelection(
            engagement=policy.choose(catalog.engagement_tiers),
            mileage=safe_pick(catalog.mileage_tiers, selection.mileage_index),
            insurance=safe_pick(
                catalog.insurance_tiers, selection.insurance_index
            ),
            insurance_active=selection.insurance_active,
            drivers_count=max(0, selection.drivers_count),
        )

    def compute_price(
        self,
        catalog: VehicleCatalog,
        selection: Selection,
        city: Optional[CityFactor] = None,
    ) -> PriceBreakdown:
        resolved = self.resolve(catalog, selection)
        factor = city.factor if city is not None else NEUTRAL_CITY_FACTOR

        base = resolved.engagement.monthly_price if resolved.engagement else ZERO
        mileage = resolved.mileage.additional_price if resolved.mileage else ZERO
        insurance = (
            resolved.insurance.additional_price
            if resolved.insurance_active and resolved.insurance
            else ZERO
        )
        drivers = resolved.drivers_count * catalog.additional_driver_price

        subtotal = max(ZERO, base + mileage + insurance + drivers)
        total = (subtotal * factor).quantize(Decimal("1"), rounding=ROUND_HALF_UP)

        return PriceBreakdown(
            base_price=base,
            mileage_supplement=mileage,
            insurance_supplement=insurance,
            drivers_supplement=drivers,
            subtotal=subtotal,
            city_factor=factor,
            total=total,
        )


def compute_price(
    catalog: VehicleCatalog,
    selection: Selection,
    city: Optional[CityFactor] = None,
) -> PriceBreakdown:
    return PricingEngine().compute_price(catalog, selection, city)
