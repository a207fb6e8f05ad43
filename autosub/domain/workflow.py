"""
Reservation workflow  (State Pattern)
=====================================

IDENTITY -> DOCUMENTS -> CONTRACT -> PAYMENT -> SUBMITTED

* Each forward move is gated by the current step's validator; a failed
  gate leaves the step unchanged and returns the field errors.
* Backward moves are always allowed (except out of SUBMITTED) and keep
  every field already entered.
* A step's data can only change while the workflow sits on that step,
  and never during a submission.
* PAYMENT -> SUBMITTED only happens through ``submit``, which re-runs
  every gate and then the submission pipeline.  A failed submission
  stays in PAYMENT.
* One submission at a time per workflow: a single in-flight flag.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Iterable, Optional

from .entities import (
    CatalogNotFound,
    CityFactor,
    FieldError,
    InvalidStateTransition,
    PriceBreakdown,
    ReservationDraft,
    Selection,
    SubmissionInProgress,
    SubscriptionRecord,
    VehicleCatalog,
)
from .enums import BACKWARD_TRANSITIONS, FORWARD_TRANSITIONS, ReservationStep
from .pricing import PricingEngine
from .selection import SelectionManager
from .submission import SubmissionPipeline, SubmissionResult
from .validation import (
    DocumentRules,
    validate_contract,
    validate_documents,
    validate_identity,
    validate_payment,
)

logger = logging.getLogger(__name__)

GATED_STEPS = (
    ReservationStep.IDENTITY,
    ReservationStep.DOCUMENTS,
    ReservationStep.CONTRACT,
    ReservationStep.PAYMENT,
)


class ReservationWorkflow:
    def __init__(
        self,
        draft: ReservationDraft,
        catalog: VehicleCatalog,
        pipeline: SubmissionPipeline,
        cities: Iterable[CityFactor] = (),
        selection: Optional[Selection] = None,
        rules: DocumentRules = DocumentRules(),
    ):
        self.draft = draft
        self.pipeline = pipeline
        self.cities = list(cities)
        self.rules = rules
        self.selection = SelectionManager(catalog, selection)
        self.step = ReservationStep.IDENTITY
        self.errors: list[FieldError] = []
        self.record: Optional[SubscriptionRecord] = None
        self._submitting = False

    @classmethod
    def start(
        cls,
        catalog: Optional[VehicleCatalog],
        draft: ReservationDraft,
        pipeline: SubmissionPipeline,
        **kwargs,
    ) -> ReservationWorkflow:
        """Refuse to configure a vehicle that has no catalog."""
        if catalog is None:
            raise CatalogNotFound(draft.vehicle_id)
        return cls(draft, catalog, pipeline, **kwargs)

    @property
    def catalog(self) -> VehicleCatalog:
        return self.selection.catalog

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    def city(self) -> CityFactor:
        return PricingEngine.resolve_city(
            self.cities, self.selection.selection.city_name
        )

    def quote(self) -> PriceBreakdown:
        return self.pipeline.engine.compute_price(
            self.catalog, self.selection.selection, self.city()
        )

    # ── Gates ─────────────────────────────────────────────────────────

    def validate_step(
        self, step: ReservationStep, today: Optional[date] = None
    ) -> list[FieldError]:
        if step is ReservationStep.IDENTITY:
            return validate_identity(self.draft.identity)
        if step is ReservationStep.DOCUMENTS:
            return validate_documents(
                self.draft.documents, self.draft.identity.client_type, self.rules
            )
        if step is ReservationStep.CONTRACT:
            return validate_contract(self.draft.contract_accepted)
        if step is ReservationStep.PAYMENT:
            return validate_payment(self.draft.card, today)
        return []

    def require_editable(self, step: Optional[ReservationStep] = None) -> None:
        """
        Guard a change to the draft.  With ``step`` the change touches
        that step's data, which is only writable while the workflow is on
        it; without, only submitted or in-flight workflows refuse.
        """
        if self.step is ReservationStep.SUBMITTED:
            raise InvalidStateTransition("Reservation is already submitted")
        if self._submitting:
            raise SubmissionInProgress(
                f"Submission running for {self.draft.vehicle_id}"
            )
        if step is not None and self.step is not step:
            raise InvalidStateTransition(
                f"{step.value} data cannot change at step {self.step.value}"
            )

    # ── Transitions ───────────────────────────────────────────────────

    def advance(self) -> list[FieldError]:
        """Move one step forward if the gate passes; return gate errors."""
        if self.step in (ReservationStep.PAYMENT, ReservationStep.SUBMITTED):
            raise InvalidStateTransition(
                f"Cannot advance from {self.step.value} without submitting"
            )
        errors = self.validate_step(self.step)
        self.errors = errors
        if not errors:
            self.step = FORWARD_TRANSITIONS[self.step]
        return errors

    def back(self) -> ReservationStep:
        if self.step is ReservationStep.SUBMITTED:
            raise InvalidStateTransition("Reservation is already submitted")
        self.step = BACKWARD_TRANSITIONS.get(self.step, self.step)
        self.errors = []
        return self.step

    async def submit(self, today: Optional[date] = None) -> SubmissionResult:
        if self.step is not ReservationStep.PAYMENT:
            raise InvalidStateTransition(
                f"Cannot submit from {self.step.value}"
            )
        if self._submitting:
            raise SubmissionInProgress(
                f"Submission already running for {self.draft.vehicle_id}"
            )

        errors = [e for step in GATED_STEPS for e in self.validate_step(step, today)]
        self.errors = errors
        if errors:
            return SubmissionResult.invalid(errors)

        self._submitting = True
        try:
            logger.info(
                "Submitting reservation for owner %s, vehicle %s",
                self.draft.owner_id,
                self.draft.vehicle_id,
            )
            result = await self.pipeline.run(
                self.draft, self.catalog, self.selection.selection, self.city()
            )
        finally:
            self._submitting = False

        if result.ok:
            self.record = result.record
            self.step = FORWARD_TRANSITIONS[ReservationStep.PAYMENT]
            # raw card data and file bytes never outlive the submission
            self.draft.card.number = ""
            self.draft.card.cvc = ""
            self.draft.documents = [
                replace(d, content=b"") for d in self.draft.documents
            ]
        return result
