"""
Selection state manager.

Owns one session's ``Selection`` for the active ``VehicleCatalog`` and
keeps every index inside its tier list on each mutation.  Switching
vehicles goes through ``reset`` so out-of-range indices from the
previous vehicle are never carried over.
"""

from __future__ import annotations

from typing import Optional

from .entities import PriceBreakdown, Selection, VehicleCatalog
from .enums import TierKind
from .pricing import PricingEngine, clamp_index

_INDEX_ATTR = {
    TierKind.ENGAGEMENT: "engagement_index",
    TierKind.MILEAGE: "mileage_index",
    TierKind.INSURANCE: "insurance_index",
}


class SelectionManager:
    def __init__(
        self,
        catalog: VehicleCatalog,
        selection: Optional[Selection] = None,
    ):
        self.catalog = catalog
        self.selection = Selection()
        if selection is not None:
            self.apply(selection)

    def set_index(self, tier: TierKind, index: int) -> None:
        """Clamp into range; no-op when the tier list is empty."""
        tiers = self.catalog.tiers(TierKind(tier))
        if not tiers:
            return
        setattr(self.selection, _INDEX_ATTR[TierKind(tier)], clamp_index(index, len(tiers)))

    def set_city(self, name: str) -> None:
        self.selection.city_name = name

    def set_insurance_active(self, active: bool) -> None:
        self.selection.insurance_active = bool(active)

    def adjust_drivers(self, delta: int) -> int:
        """Additional drivers never go below zero."""
        self.selection.drivers_count = max(0, self.selection.drivers_count + delta)
        return self.selection.drivers_count

    def reset(self, catalog: VehicleCatalog) -> None:
        """Switch vehicle: indices back to defaults, city and flags kept."""
        self.catalog = catalog
        self.selection = Selection(
            city_name=self.selection.city_name,
            insurance_active=self.selection.insurance_active,
        )

    def apply(self, selection: Selection) -> None:
        """Load caller-supplied values through the clamping setters."""
        if selection.engagement_index is not None:
            self.set_index(TierKind.ENGAGEMENT, selection.engagement_index)
        self.set_index(TierKind.MILEAGE, selection.mileage_index)
        self.set_index(TierKind.INSURANCE, selection.insurance_index)
        self.selection.drivers_count = 0
        self.adjust_drivers(selection.drivers_count)
        self.set_city(selection.city_name)
        self.set_insurance_active(selection.insurance_active)

    def display_engagement_index(self) -> Optional[int]:
        """Index to highlight: the stored one, or the cheapest-tier default."""
        if self.selection.engagement_index is not None:
            return self.selection.engagement_index
        chosen = PricingEngine.resolve(self.catalog, self.selection).engagement
        if chosen is None:
            return None
        return self.catalog.engagement_tiers.index(chosen)

    def price(self, engine: PricingEngine, city=None) -> PriceBreakdown:
        return engine.compute_price(self.catalog, self.selection, city)
