"""Unit tests for the selection state manager."""

from decimal import Decimal

import pytest

from autosub.domain.entities import CityFactor, Selection, VehicleCatalog
from autosub.domain.enums import TierKind
from autosub.domain.pricing import PricingEngine
from autosub.domain.selection import SelectionManager
from tests.conftest import make_catalog


class TestIndexClamping:
    @pytest.mark.parametrize(
        "kind, raw, expected",
        [
            (TierKind.ENGAGEMENT, -5, 0),
            (TierKind.ENGAGEMENT, 2, 2),
            (TierKind.ENGAGEMENT, 99, 2),
            (TierKind.MILEAGE, 3, 2),
            (TierKind.INSURANCE, 7, 1),
            (TierKind.INSURANCE, -1, 0),
        ],
    )
    def test_set_index_stays_in_bounds(self, kind, raw, expected):
        manager = SelectionManager(make_catalog())
        manager.set_index(kind, raw)
        attr = f"{kind.value}_index"
        assert getattr(manager.selection, attr) == expected

    def test_empty_tier_list_is_noop(self):
        manager = SelectionManager(VehicleCatalog("dacia-spring"))
        manager.set_index(TierKind.ENGAGEMENT, 4)
        manager.set_index(TierKind.MILEAGE, 4)
        assert manager.selection.engagement_index is None
        assert manager.selection.mileage_index == 0

    def test_initial_selection_goes_through_clamping(self):
        manager = SelectionManager(
            make_catalog(),
            Selection(engagement_index=50, mileage_index=-2, drivers_count=-1),
        )
        assert manager.selection.engagement_index == 2
        assert manager.selection.mileage_index == 0
        assert manager.selection.drivers_count == 0


class TestDrivers:
    def test_adjust_up_and_down(self):
        manager = SelectionManager(make_catalog())
        assert manager.adjust_drivers(+1) == 1
        assert manager.adjust_drivers(+1) == 2
        assert manager.adjust_drivers(-1) == 1

    def test_never_below_zero(self):
        manager = SelectionManager(make_catalog())
        assert manager.adjust_drivers(-1) == 0
        assert manager.adjust_drivers(-10) == 0


class TestReset:
    def test_switching_vehicle_resets_indices(self):
        manager = SelectionManager(make_catalog())
        manager.set_index(TierKind.ENGAGEMENT, 2)
        manager.set_index(TierKind.MILEAGE, 2)
        manager.adjust_drivers(3)
        manager.set_city("Rabat")
        manager.set_insurance_active(True)

        manager.reset(make_catalog("audi-a3"))

        assert manager.catalog.vehicle_id == "audi-a3"
        assert manager.selection.engagement_index is None
        assert manager.selection.mileage_index == 0
        assert manager.selection.drivers_count == 0
        # delivery city and insurance opt-in survive the switch
        assert manager.selection.city_name == "Rabat"
        assert manager.selection.insurance_active is True


class TestDisplayIndex:
    def test_unset_shows_cheapest(self):
        assert SelectionManager(make_catalog()).display_engagement_index() == 1

    def test_explicit_wins(self):
        manager = SelectionManager(make_catalog())
        manager.set_index(TierKind.ENGAGEMENT, 0)
        assert manager.display_engagement_index() == 0

    def test_empty_catalog(self):
        manager = SelectionManager(VehicleCatalog("dacia-spring"))
        assert manager.display_engagement_index() is None


def test_price_uses_current_selection():
    manager = SelectionManager(make_catalog())
    manager.adjust_drivers(1)
    price = manager.price(PricingEngine(), CityFactor("Agadir", Decimal("1.04")))
    # (250 + 12) x 1.04 = 272.48
    assert price.total == Decimal("272")
