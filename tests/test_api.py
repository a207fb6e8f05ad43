"""
Integration tests for the REST API endpoints.

Uses the in-memory SQLite database from ``conftest`` with the production
models.  Document storage and the Redis fallback store are replaced by
in-memory fakes through ``dependency_overrides``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from autosub.api.middleware import limiter
from autosub.domain.submission import SubmissionPipeline
from autosub.infrastructure.models import CityModel, UserModel, VehicleModel
from autosub.infrastructure.repositories import SqlSubscriptionStore
from tests.conftest import FakeRecordStore, FakeStorage

OPTIONS = {
    "engagement": [
        {"months": 12, "monthlyPrice": 300},
        {"months": 6, "monthlyPrice": 250},
        {"months": 24, "monthlyPrice": 250},
    ],
    "mileage": [
        {"km": 800, "additionalPrice": 0, "label": "Included"},
        {"km": 1000, "additionalPrice": 9.99},
    ],
    "insurance": [
        {"type": "ALL RISKS", "franchiseAmount": 1100, "additionalPrice": 0},
        {"type": "ALL RISKS PLUS", "franchiseAmount": 150, "additionalPrice": 100},
    ],
    "additionalDriverPrice": 12,
}

IDENTITY = {
    "client_type": "particulier",
    "first_name": "Yasmine",
    "last_name": "Benali",
    "email": "yasmine@example.com",
    "phone": "0612345678",
    "address": "12 Rue Atlas",
    "postal_code": "20000",
}

CARD = {
    "number": "4111 1111 1111 1111",
    "holder_name": "Yasmine Benali",
    "expiry": "12/99",
    "cvc": "123",
}

PDFS = [
    ("files", (f"doc{i}.pdf", b"%PDF-1.4", "application/pdf")) for i in range(3)
]


# ── Fixture ───────────────────────────────────────────────────────────


@pytest.fixture
def fakes():
    return SimpleNamespace(
        storage=FakeStorage(), fallback=FakeRecordStore(), primary_fails=False
    )


@pytest_asyncio.fixture
async def client(session_factory, fakes):
    """AsyncClient backed by SQLite + in-memory storage / fallback."""
    async with session_factory() as session:
        session.add(
            UserModel(
                id="u-yasmine",
                display_name="Yasmine Benali",
                email="yasmine@example.com",
            )
        )
        session.add(
            VehicleModel(
                id="peugeot-208",
                name="Peugeot 208",
                category="compact",
                subscription_options=OPTIONS,
            )
        )
        session.add(VehicleModel(id="dacia-spring", name="Dacia Spring"))
        session.add(CityModel(id="casablanca", name="Casablanca", factor=Decimal("1.00")))
        session.add(CityModel(id="marrakech", name="Marrakech", factor=Decimal("1.07")))
        await session.commit()

    with (
        patch(
            "autosub.workers.reconciler.start_reconciliation_loop",
            new_callable=AsyncMock,
        ),
        patch(
            "autosub.workers.reconciler.stop_reconciliation_loop",
            new_callable=AsyncMock,
        ),
    ):
        async def _test_db():
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        def _test_pipeline():
            primary = (
                FakeRecordStore(fail=True)
                if fakes.primary_fails
                else SqlSubscriptionStore(session_factory)
            )
            return SubmissionPipeline(fakes.storage, primary, fakes.fallback)

        from autosub.api.app import create_app
        from autosub.api.dependencies import get_db, get_fallback_store, get_pipeline

        app = create_app()
        app.dependency_overrides[get_db] = _test_db
        app.dependency_overrides[get_pipeline] = _test_pipeline
        app.dependency_overrides[get_fallback_store] = lambda: fakes.fallback

        limiter.enabled = False
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
        limiter.enabled = True


async def _start(client: AsyncClient, **selection) -> dict:
    resp = await client.post(
        "/api/v1/reservations",
        json={
            "vehicle_id": "peugeot-208",
            "owner_id": "u-yasmine",
            "selection": selection,
        },
    )
    assert resp.status_code == 201
    return resp.json()


async def _to_payment(client: AsyncClient, rid: str) -> None:
    assert (await client.put(f"/api/v1/reservations/{rid}/identity", json=IDENTITY)).status_code == 200
    assert (await client.post(f"/api/v1/reservations/{rid}/next")).status_code == 200
    assert (await client.post(f"/api/v1/reservations/{rid}/documents", files=PDFS)).status_code == 200
    assert (await client.post(f"/api/v1/reservations/{rid}/next")).status_code == 200
    assert (
        await client.put(f"/api/v1/reservations/{rid}/contract", json={"accepted": True})
    ).status_code == 200
    resp = await client.post(f"/api/v1/reservations/{rid}/next")
    assert resp.json()["step"] == "PAYMENT"


# ── Catalog & quotes ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_list_vehicles(client: AsyncClient):
    resp = await client.get("/api/v1/vehicles", params={"category": "compact"})
    assert resp.status_code == 200
    data = resp.json()
    assert [v["id"] for v in data] == ["peugeot-208"]
    assert len(data[0]["catalog"]["engagement_tiers"]) == 3


@pytest.mark.asyncio
async def test_vehicle_without_options_has_empty_catalog(client: AsyncClient):
    resp = await client.get("/api/v1/vehicles/dacia-spring")
    assert resp.status_code == 200
    assert resp.json()["catalog"]["engagement_tiers"] == []


@pytest.mark.asyncio
async def test_get_vehicle_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/vehicles/missing")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_list_cities(client: AsyncClient):
    resp = await client.get("/api/v1/cities")
    assert resp.status_code == 200
    assert [c["name"] for c in resp.json()] == ["Casablanca", "Marrakech"]


@pytest.mark.asyncio
async def test_quote_defaults_to_cheapest_tier(client: AsyncClient):
    resp = await client.post(
        "/api/v1/quotes",
        json={"vehicle_id": "peugeot-208", "selection": {"city": "marrakech "}},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["engagement_index"] == 1
    assert Decimal(data["breakdown"]["base_price"]) == Decimal("250")
    # 250 x 1.07 = 267.5 -> 268
    assert Decimal(data["breakdown"]["total"]) == Decimal("268")


@pytest.mark.asyncio
async def test_quote_unknown_vehicle(client: AsyncClient):
    resp = await client.post("/api/v1/quotes", json={"vehicle_id": "missing"})
    assert resp.status_code == 404


# ── Reservations ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_start_prefills_identity(client: AsyncClient):
    data = await _start(client)
    assert data["step"] == "IDENTITY"
    assert data["identity"]["first_name"] == "Yasmine"
    assert data["identity"]["last_name"] == "Benali"
    assert data["identity"]["email"] == "yasmine@example.com"
    assert data["selection"]["city"] == "casablanca"
    assert Decimal(data["quote"]["total"]) == Decimal("250")


@pytest.mark.asyncio
async def test_start_unknown_vehicle(client: AsyncClient):
    resp = await client.post(
        "/api/v1/reservations",
        json={"vehicle_id": "missing", "owner_id": "u-yasmine"},
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_unknown_reservation(client: AsyncClient):
    resp = await client.get("/api/v1/reservations/nope")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_selection_patch_clamps(client: AsyncClient):
    rid = (await _start(client))["id"]
    resp = await client.patch(
        f"/api/v1/reservations/{rid}/selection",
        json={"engagement_index": 99, "drivers_delta": -3, "insurance_active": True},
    )
    assert resp.status_code == 200
    selection = resp.json()["selection"]
    assert selection["engagement_index"] == 2
    assert selection["drivers_count"] == 0
    assert selection["insurance_active"] is True


@pytest.mark.asyncio
async def test_switching_vehicle_resets_indices(client: AsyncClient):
    rid = (await _start(client, engagement_index=0, city="Marrakech"))["id"]
    resp = await client.patch(
        f"/api/v1/reservations/{rid}/selection", json={"vehicle_id": "dacia-spring"}
    )
    data = resp.json()
    assert data["vehicle_id"] == "dacia-spring"
    assert data["selection"]["engagement_index"] is None
    assert data["selection"]["city"] == "Marrakech"
    assert Decimal(data["quote"]["total"]) == Decimal("0")


@pytest.mark.asyncio
async def test_next_with_invalid_identity_returns_422(client: AsyncClient):
    rid = (await _start(client))["id"]
    resp = await client.post(f"/api/v1/reservations/{rid}/next")
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["step"] == "IDENTITY"
    assert {e["field"] for e in detail["errors"]} >= {"client_type", "phone"}


@pytest.mark.asyncio
async def test_payment_outside_payment_step_conflicts(client: AsyncClient):
    rid = (await _start(client))["id"]
    resp = await client.post(f"/api/v1/reservations/{rid}/payment", json=CARD)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_rejected_document_is_flagged(client: AsyncClient):
    rid = (await _start(client))["id"]
    await client.put(f"/api/v1/reservations/{rid}/identity", json=IDENTITY)
    await client.post(f"/api/v1/reservations/{rid}/next")
    resp = await client.post(
        f"/api/v1/reservations/{rid}/documents",
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
    )
    docs = resp.json()["documents"]
    assert docs[0]["accepted"] is False

    resp = await client.delete(f"/api/v1/reservations/{rid}/documents/{docs[0]['id']}")
    assert resp.json()["documents"] == []


@pytest.mark.asyncio
async def test_back_keeps_entered_data(client: AsyncClient):
    rid = (await _start(client))["id"]
    await _to_payment(client, rid)
    resp = await client.post(f"/api/v1/reservations/{rid}/back")
    data = resp.json()
    assert data["step"] == "CONTRACT"
    assert data["contract_accepted"] is True
    assert len(data["documents"]) == 3


@pytest.mark.asyncio
async def test_invalid_card_returns_422(client: AsyncClient):
    rid = (await _start(client))["id"]
    await _to_payment(client, rid)
    resp = await client.post(
        f"/api/v1/reservations/{rid}/payment",
        json={**CARD, "number": "4111111111111112"},
    )
    assert resp.status_code == 422
    assert resp.json()["detail"]["errors"][0]["field"] == "card_number"


@pytest.mark.asyncio
async def test_full_reservation_flow(client: AsyncClient):
    rid = (await _start(client, city="Marrakech", insurance_index=1, insurance_active=True))["id"]
    await _to_payment(client, rid)

    resp = await client.post(f"/api/v1/reservations/{rid}/payment", json=CARD)
    assert resp.status_code == 201
    data = resp.json()
    assert data["step"] == "SUBMITTED"
    sub = data["subscription"]
    assert sub["reservation_id"].startswith("RES-")
    assert sub["card"]["last4"] == "1111"
    assert len(sub["documents"]) == 3
    # (250 + 100) x 1.07 = 374.5 -> 375
    assert Decimal(sub["total_price"]) == Decimal("375")

    resp = await client.get("/api/v1/users/u-yasmine/subscription")
    assert resp.status_code == 200
    plan = resp.json()
    assert plan["source"] == "primary"
    assert plan["reservation_id"] == sub["reservation_id"]
    assert plan["health"] == "active"
    assert plan["engagement"]["months"] == 6

    # the submitted draft is gone, the plan lives in the record stores
    resp = await client.put(f"/api/v1/reservations/{rid}/contract", json={"accepted": False})
    assert resp.status_code == 404
    assert (await client.get("/api/v1/admin/reservations")).json() == {"open": 0}


@pytest.mark.asyncio
async def test_degraded_submission_uses_fallback(client: AsyncClient, fakes):
    fakes.primary_fails = True
    rid = (await _start(client))["id"]
    await _to_payment(client, rid)

    resp = await client.post(f"/api/v1/reservations/{rid}/payment", json=CARD)
    assert resp.status_code == 201
    assert resp.json()["step"] == "SUBMITTED"

    resp = await client.get("/api/v1/users/u-yasmine/subscription")
    assert resp.status_code == 200
    assert resp.json()["source"] == "fallback"


@pytest.mark.asyncio
async def test_no_subscription(client: AsyncClient):
    resp = await client.get("/api/v1/users/u-nobody/subscription")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_open_reservations_count(client: AsyncClient):
    await _start(client)
    resp = await client.get("/api/v1/admin/reservations")
    assert resp.json() == {"open": 1}


@pytest.mark.asyncio
async def test_abandon_reservation(client: AsyncClient):
    rid = (await _start(client))["id"]
    resp = await client.delete(f"/api/v1/reservations/{rid}")
    assert resp.status_code == 204
    assert (await client.get(f"/api/v1/reservations/{rid}")).status_code == 404


@pytest.mark.asyncio
async def test_earlier_steps_are_locked_at_payment(client: AsyncClient):
    rid = (await _start(client))["id"]
    await _to_payment(client, rid)
    doc_id = (await client.get(f"/api/v1/reservations/{rid}")).json()["documents"][0]["id"]

    resp = await client.delete(f"/api/v1/reservations/{rid}/documents/{doc_id}")
    assert resp.status_code == 409
    resp = await client.put(f"/api/v1/reservations/{rid}/identity", json={})
    assert resp.status_code == 409
    resp = await client.put(f"/api/v1/reservations/{rid}/contract", json={"accepted": False})
    assert resp.status_code == 409

    data = (await client.get(f"/api/v1/reservations/{rid}")).json()
    assert len(data["documents"]) == 3
    assert data["contract_accepted"] is True
    assert data["identity"]["email"] == "yasmine@example.com"


@pytest.mark.asyncio
async def test_declining_after_going_back_blocks_submission(client: AsyncClient):
    rid = (await _start(client))["id"]
    await _to_payment(client, rid)

    await client.post(f"/api/v1/reservations/{rid}/back")
    resp = await client.put(f"/api/v1/reservations/{rid}/contract", json={"accepted": False})
    assert resp.status_code == 200

    resp = await client.post(f"/api/v1/reservations/{rid}/next")
    assert resp.status_code == 422
    resp = await client.post(f"/api/v1/reservations/{rid}/payment", json=CARD)
    assert resp.status_code == 409

    resp = await client.get("/api/v1/users/u-yasmine/subscription")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_degraded_plan_wins_over_older_primary_plan(client: AsyncClient, fakes):
    first = (await _start(client))["id"]
    await _to_payment(client, first)
    resp = await client.post(f"/api/v1/reservations/{first}/payment", json=CARD)
    older = resp.json()["subscription"]["reservation_id"]

    fakes.primary_fails = True
    second = (await _start(client, engagement_index=2))["id"]
    await _to_payment(client, second)
    resp = await client.post(f"/api/v1/reservations/{second}/payment", json=CARD)
    newer = resp.json()["subscription"]["reservation_id"]
    assert newer != older

    plan = (await client.get("/api/v1/users/u-yasmine/subscription")).json()
    assert plan["reservation_id"] == newer
    assert plan["source"] == "fallback"
    assert plan["engagement"]["months"] == 24


@pytest.mark.asyncio
async def test_older_fallback_plan_does_not_hide_primary(
    client: AsyncClient, fakes, session_factory
):
    rid = (await _start(client))["id"]
    await _to_payment(client, rid)
    resp = await client.post(f"/api/v1/reservations/{rid}/payment", json=CARD)
    current = resp.json()["subscription"]["reservation_id"]

    stored = await SqlSubscriptionStore(session_factory).read_current("u-yasmine")
    fakes.fallback.records["u-yasmine"] = replace(
        stored,
        reservation_id="RES-0000000OLDER",
        start_date=stored.start_date - timedelta(days=30),
    )

    plan = (await client.get("/api/v1/users/u-yasmine/subscription")).json()
    assert plan["reservation_id"] == current
    assert plan["source"] == "primary"


@pytest.mark.asyncio
async def test_submitted_reservation_leaves_registry(client: AsyncClient):
    rid = (await _start(client))["id"]
    await _start(client)
    await _to_payment(client, rid)
    assert (await client.get("/api/v1/admin/reservations")).json() == {"open": 2}

    resp = await client.post(f"/api/v1/reservations/{rid}/payment", json=CARD)
    assert resp.status_code == 201

    assert (await client.get("/api/v1/admin/reservations")).json() == {"open": 1}
    assert (await client.get(f"/api/v1/reservations/{rid}")).status_code == 404
