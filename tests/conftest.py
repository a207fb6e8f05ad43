"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are created as-is;
Redis-backed stores are replaced by in-memory fakes or ``AsyncMock``.
"""

from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from autosub.domain.entities import (
    DocumentFile,
    EngagementTier,
    Identity,
    InsuranceTier,
    MileageTier,
    PersistenceError,
    ReservationDraft,
    SubscriptionRecord,
    UploadError,
    VehicleCatalog,
)
from autosub.domain.submission import SubmissionPipeline
from autosub.infrastructure.database import Base


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
TestSessionFactory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield a session, then drop everything."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionFactory() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Like ``db_session`` but for code that opens its own sessions."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield TestSessionFactory

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


# ── Collaborator fakes ────────────────────────────────────────────────


class FakeStorage:
    """Records uploads; documents whose filename is in ``fail_on`` fail."""

    def __init__(self, fail_on: tuple[str, ...] = ()):
        self.fail_on = set(fail_on)
        self.calls: list[str] = []

    async def upload(self, owner_id: str, document: DocumentFile) -> str:
        self.calls.append(document.id)
        if document.filename in self.fail_on:
            raise UploadError(f"{document.filename}: disk full")
        return f"mem://{owner_id}/{document.id}"


class FakeRecordStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.records: dict[str, SubscriptionRecord] = {}

    async def write(self, owner_id: str, record: SubscriptionRecord) -> None:
        if self.fail:
            raise PersistenceError("store unavailable")
        self.records[owner_id] = record

    async def read(self, owner_id: str) -> Optional[SubscriptionRecord]:
        return self.records.get(owner_id)


# ── Domain fixtures ───────────────────────────────────────────────────


def make_catalog(vehicle_id: str = "peugeot-208") -> VehicleCatalog:
    return VehicleCatalog(
        vehicle_id=vehicle_id,
        engagement_tiers=(
            EngagementTier(months=12, monthly_price=Decimal("300")),
            EngagementTier(months=6, monthly_price=Decimal("250")),
            EngagementTier(months=24, monthly_price=Decimal("250")),
        ),
        mileage_tiers=(
            MileageTier(km=800, additional_price=Decimal("0"), label="Included"),
            MileageTier(km=1000, additional_price=Decimal("9.99")),
            MileageTier(km=1500, additional_price=Decimal("43.99")),
        ),
        insurance_tiers=(
            InsuranceTier(
                type="ALL RISKS",
                franchise_amount=Decimal("1100"),
                additional_price=Decimal("0"),
            ),
            InsuranceTier(
                type="ALL RISKS PLUS",
                franchise_amount=Decimal("150"),
                additional_price=Decimal("100"),
            ),
        ),
        additional_driver_price=Decimal("12"),
    )


def make_document(
    doc_id: str, content_type: str = "application/pdf", size: int = 1024
) -> DocumentFile:
    return DocumentFile(
        id=doc_id,
        filename=f"{doc_id}.bin",
        content_type=content_type,
        size=size,
        content=b"x" * min(size, 16),
    )


def make_identity(client_type: str = "particulier") -> Identity:
    return Identity(
        client_type=client_type,
        first_name="Yasmine",
        last_name="Benali",
        email="yasmine@example.com",
        phone="0612345678",
        address="12 Rue Atlas",
        postal_code="20000",
        company="Atlas SARL" if client_type == "entreprise" else "",
    )


@pytest.fixture
def catalog() -> VehicleCatalog:
    return make_catalog()


@pytest.fixture
def draft() -> ReservationDraft:
    """A draft with every step already filled in correctly."""
    d = ReservationDraft(
        owner_id="u-yasmine",
        vehicle_id="peugeot-208",
        identity=make_identity(),
        documents=[make_document(f"doc{i}") for i in range(3)],
        contract_accepted=True,
    )
    d.card.number = "4111 1111 1111 1111"
    d.card.holder_name = "Yasmine Benali"
    d.card.expiry = "12/99"
    d.card.cvc = "123"
    return d


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def primary() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def fallback() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def pipeline(storage, primary, fallback) -> SubmissionPipeline:
    return SubmissionPipeline(storage=storage, primary=primary, fallback=fallback)
