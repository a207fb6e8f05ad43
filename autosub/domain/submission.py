"""
Reservation submission pipeline
===============================

Steps, each independently callable and tested:

1. ``price``            -- final ``PriceBreakdown`` from the selection snapshot.
2. ``upload_documents`` -- accepted documents go to blob storage
   concurrently; any failure aborts the submission (incomplete KYC
   documents must not produce a subscription).  References already
   obtained are cached on the draft, so a retry never re-uploads them.
3. ``build_record``     -- resolved tiers, masked card, new reservation id.
4. ``persist``          -- primary store; on error the record is mirrored
   to the fallback store (degraded mode).  Only a double failure is fatal.

Collaborators are structural (``typing.Protocol``) so the API layer can
plug SQL / Redis / filesystem adapters and tests can plug fakes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Sequence

from .entities import (
    CityFactor,
    DocumentFile,
    FieldError,
    PriceBreakdown,
    ReservationDraft,
    Selection,
    SubscriptionRecord,
    UploadError,
    VehicleCatalog,
)
from .pricing import PricingEngine

logger = logging.getLogger(__name__)


class DocumentStorage(Protocol):
    async def upload(self, owner_id: str, document: DocumentFile) -> str: ...


class RecordStore(Protocol):
    async def write(self, owner_id: str, record: SubscriptionRecord) -> None: ...


@dataclass(frozen=True)
class SubmissionResult:
    ok: bool
    record: Optional[SubscriptionRecord] = None
    error: Optional[str] = None
    stage: Optional[str] = None  # "validation" | "upload" | "persist"
    degraded: bool = False  # stored in the fallback store only
    errors: tuple[FieldError, ...] = field(default_factory=tuple)

    @classmethod
    def invalid(cls, errors: Sequence[FieldError]) -> SubmissionResult:
        return cls(
            ok=False,
            error="Reservation details are invalid",
            stage="validation",
            errors=tuple(errors),
        )


def new_reservation_id() -> str:
    return f"RES-{uuid.uuid4().hex[:12].upper()}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionPipeline:
    def __init__(
        self,
        storage: DocumentStorage,
        primary: RecordStore,
        fallback: RecordStore,
        accepted_types: Sequence[str] = ("application/pdf", "image/jpeg", "image/png"),
        engine: Optional[PricingEngine] = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = new_reservation_id,
    ):
        self.storage = storage
        self.primary = primary
        self.fallback = fallback
        self.accepted_types = tuple(accepted_types)
        self.engine = engine or PricingEngine()
        self.clock = clock
        self.id_factory = id_factory

    # ── Steps ─────────────────────────────────────────────────────────

    def price(
        self,
        catalog: VehicleCatalog,
        selection: Selection,
        city: Optional[CityFactor],
    ) -> PriceBreakdown:
        return self.engine.compute_price(catalog, selection, city)

    async def upload_documents(self, draft: ReservationDraft) -> list[str]:
        """Upload pending accepted documents; return refs in draft order."""
        accepted = draft.accepted_documents(self.accepted_types)
        for skipped in draft.rejected_documents(self.accepted_types):
            logger.info(
                "Skipping %s (%s): type not accepted",
                skipped.filename,
                skipped.content_type,
            )

        pending = [d for d in accepted if d.id not in draft.uploaded]
        outcomes = await asyncio.gather(
            *(self.storage.upload(draft.owner_id, d) for d in pending),
            return_exceptions=True,
        )

        failed: list[str] = []
        for document, outcome in zip(pending, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(
                    "Upload of %s failed: %s", document.filename, outcome
                )
                failed.append(document.filename)
            else:
                draft.uploaded[document.id] = outcome

        if failed:
            raise UploadError(f"Could not upload: {', '.join(failed)}")

        return [draft.uploaded[d.id] for d in accepted]

    def build_record(
        self,
        draft: ReservationDraft,
        catalog: VehicleCatalog,
        selection: Selection,
        price: PriceBreakdown,
        documents: Sequence[str],
    ) -> SubscriptionRecord:
        resolved = self.engine.resolve(catalog, selection)
        return SubscriptionRecord(
            reservation_id=self.id_factory(),
            owner_id=draft.owner_id,
            vehicle_id=catalog.vehicle_id,
            engagement=resolved.engagement,
            mileage=resolved.mileage,
            insurance=resolved.insurance,
            insurance_active=resolved.insurance_active,
            drivers_count=resolved.drivers_count,
            city_name=selection.city_name,
            price=price,
            start_date=self.clock(),
            documents=tuple(documents),
            card=draft.card.masked(),
            client=replace(draft.identity),
        )

    async def persist(self, record: SubscriptionRecord) -> SubmissionResult:
        try:
            await self.primary.write(record.owner_id, record)
            return SubmissionResult(ok=True, record=record)
        except Exception:
            logger.exception(
                "Primary store write failed for %s; using fallback",
                record.reservation_id,
            )

        try:
            await self.fallback.write(record.owner_id, record)
        except Exception as exc:
            logger.error(
                "Fallback store write failed for %s: %s",
                record.reservation_id,
                exc,
            )
            return SubmissionResult(
                ok=False,
                error=f"Could not save the subscription: {exc}",
                stage="persist",
            )
        return SubmissionResult(ok=True, record=record, degraded=True)

    # ── Orchestration ─────────────────────────────────────────────────

    async def run(
        self,
        draft: ReservationDraft,
        catalog: VehicleCatalog,
        selection: Selection,
        city: Optional[CityFactor] = None,
    ) -> SubmissionResult:
        snapshot = selection.snapshot()
        price = self.price(catalog, snapshot, city)

        try:
            documents = await self.upload_documents(draft)
        except UploadError as exc:
            return SubmissionResult(ok=False, error=str(exc), stage="upload")

        record = self.build_record(draft, catalog, snapshot, price, documents)
        logger.info(
            "Persisting subscription %s for owner %s (total=%s)",
            record.reservation_id,
            record.owner_id,
            record.total_price,
        )
        return await self.persist(record)
