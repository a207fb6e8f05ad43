"""
Reservation endpoints
=====================

POST   /api/v1/reservations                         -- start a workflow (201)
GET    /api/v1/reservations/{id}                    -- step, draft, live quote
DELETE /api/v1/reservations/{id}                    -- abandon the draft
PATCH  /api/v1/reservations/{id}/selection          -- change tiers / city / drivers
PUT    /api/v1/reservations/{id}/identity           -- step 1 form
POST   /api/v1/reservations/{id}/documents          -- step 2 uploads (multipart)
DELETE /api/v1/reservations/{id}/documents/{doc_id} -- remove a document
PUT    /api/v1/reservations/{id}/contract           -- step 3 acceptance
POST   /api/v1/reservations/{id}/next               -- gated forward move (422 on errors)
POST   /api/v1/reservations/{id}/back               -- backward move
POST   /api/v1/reservations/{id}/payment            -- step 4: card + submit

A step's form is only writable while the reservation is on that step
(409 otherwise).  A submitted reservation leaves the registry; its plan
is served by the subscription endpoint.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Request,
    Response,
    UploadFile,
)
from sqlalchemy.ext.asyncio import AsyncSession

from autosub.api.dependencies import get_db, get_pipeline, get_registry
from autosub.api.middleware import limiter
from autosub.api.schemas import (
    ContractRequest,
    DocumentResponse,
    ErrorResponse,
    FieldErrorResponse,
    IdentityRequest,
    PaymentRequest,
    PriceBreakdownResponse,
    ReservationResponse,
    ReservationStartRequest,
    SelectionPatch,
    SelectionRequest,
    SubscriptionResponse,
)
from autosub.api.sessions import ReservationRegistry
from autosub.config import settings
from autosub.domain.entities import (
    CatalogNotFound,
    DocumentFile,
    FieldError,
    Identity,
    InvalidStateTransition,
    ReservationDraft,
    SubmissionInProgress,
)
from autosub.domain.enums import ReservationStep, TierKind
from autosub.domain.submission import SubmissionPipeline
from autosub.domain.validation import DocumentRules
from autosub.domain.workflow import ReservationWorkflow
from autosub.infrastructure.repositories import (
    CityRepository,
    UserRepository,
    VehicleRepository,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])


def document_rules() -> DocumentRules:
    return DocumentRules(
        accepted_types=tuple(settings.accepted_document_types),
        max_total_bytes=settings.max_documents_total_mb * 1024 * 1024,
        required_default=settings.required_documents_default,
        required_entreprise=settings.required_documents_entreprise,
    )


def _load(registry: ReservationRegistry, reservation_id: str) -> ReservationWorkflow:
    workflow = registry.get(reservation_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return workflow


def _editable(
    workflow: ReservationWorkflow, step: Optional[ReservationStep] = None
) -> ReservationWorkflow:
    try:
        workflow.require_editable(step)
    except (InvalidStateTransition, SubmissionInProgress) as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return workflow


def _errors(errors: list[FieldError]) -> list[dict]:
    return [FieldErrorResponse.model_validate(e).model_dump() for e in errors]


def _to_response(reservation_id: str, wf: ReservationWorkflow) -> ReservationResponse:
    sel = wf.selection.selection
    accepted = wf.rules.accepted_types
    return ReservationResponse(
        id=reservation_id,
        step=wf.step.value,
        vehicle_id=wf.catalog.vehicle_id,
        owner_id=wf.draft.owner_id,
        selection=SelectionRequest(
            engagement_index=sel.engagement_index,
            mileage_index=sel.mileage_index,
            insurance_index=sel.insurance_index,
            drivers_count=sel.drivers_count,
            city=sel.city_name,
            insurance_active=sel.insurance_active,
        ),
        identity=IdentityRequest(**vars(wf.draft.identity)),
        documents=[
            DocumentResponse(
                id=d.id,
                filename=d.filename,
                content_type=d.content_type,
                size=d.size,
                accepted=d.content_type in accepted,
            )
            for d in wf.draft.documents
        ],
        contract_accepted=wf.draft.contract_accepted,
        errors=[FieldErrorResponse.model_validate(e) for e in wf.errors],
        quote=PriceBreakdownResponse.build(wf.quote()),
        subscription=(
            SubscriptionResponse.build(wf.record, datetime.now(timezone.utc))
            if wf.record
            else None
        ),
    )


@router.post(
    "",
    status_code=201,
    response_model=ReservationResponse,
    summary="Start a reservation",
)
@limiter.limit(settings.rate_limit)
async def start_reservation(
    request: Request,
    body: ReservationStartRequest,
    db: AsyncSession = Depends(get_db),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
    registry: ReservationRegistry = Depends(get_registry),
):
    catalog = await VehicleRepository(db).get_catalog(body.vehicle_id)
    cities = await CityRepository(db).list_factors()

    # prefill from the identity provider; never written back
    identity = Identity()
    owner = await UserRepository(db).get_by_id(body.owner_id)
    if owner:
        identity = Identity.prefilled(owner.email, owner.display_name)

    draft = ReservationDraft(
        owner_id=body.owner_id, vehicle_id=body.vehicle_id, identity=identity
    )
    try:
        workflow = ReservationWorkflow.start(
            catalog,
            draft,
            pipeline,
            cities=cities,
            selection=body.selection.to_domain(settings.default_city),
            rules=document_rules(),
        )
    except CatalogNotFound:
        raise HTTPException(status_code=404, detail="Vehicle not found")

    reservation_id = registry.add(workflow)
    return _to_response(reservation_id, workflow)


@router.get(
    "/{reservation_id}",
    response_model=ReservationResponse,
    summary="Get reservation state",
)
@limiter.limit(settings.rate_limit)
async def get_reservation(
    request: Request,
    reservation_id: str,
    registry: ReservationRegistry = Depends(get_registry),
):
    return _to_response(reservation_id, _load(registry, reservation_id))


@router.delete(
    "/{reservation_id}",
    status_code=204,
    summary="Abandon a reservation draft",
)
@limiter.limit(settings.rate_limit)
async def abandon_reservation(
    request: Request,
    reservation_id: str,
    registry: ReservationRegistry = Depends(get_registry),
):
    wf = _load(registry, reservation_id)
    if wf.is_submitting:
        raise HTTPException(status_code=409, detail="Submission in progress")
    registry.discard(reservation_id)
    return Response(status_code=204)


@router.patch(
    "/{reservation_id}/selection",
    response_model=ReservationResponse,
    summary="Change the subscription configuration",
)
@limiter.limit(settings.rate_limit)
async def update_selection(
    request: Request,
    reservation_id: str,
    body: SelectionPatch,
    db: AsyncSession = Depends(get_db),
    registry: ReservationRegistry = Depends(get_registry),
):
    wf = _editable(_load(registry, reservation_id))
    manager = wf.selection

    if body.vehicle_id and body.vehicle_id != wf.catalog.vehicle_id:
        catalog = await VehicleRepository(db).get_catalog(body.vehicle_id)
        if catalog is None:
            raise HTTPException(status_code=404, detail="Vehicle not found")
        manager.reset(catalog)
        wf.draft.vehicle_id = catalog.vehicle_id

    if body.engagement_index is not None:
        manager.set_index(TierKind.ENGAGEMENT, body.engagement_index)
    if body.mileage_index is not None:
        manager.set_index(TierKind.MILEAGE, body.mileage_index)
    if body.insurance_index is not None:
        manager.set_index(TierKind.INSURANCE, body.insurance_index)
    if body.drivers_delta:
        manager.adjust_drivers(body.drivers_delta)
    if body.city is not None:
        manager.set_city(body.city)
    if body.insurance_active is not None:
        manager.set_insurance_active(body.insurance_active)

    return _to_response(reservation_id, wf)


@router.put(
    "/{reservation_id}/identity",
    response_model=ReservationResponse,
    summary="Fill in the client identity",
)
@limiter.limit(settings.rate_limit)
async def update_identity(
    request: Request,
    reservation_id: str,
    body: IdentityRequest,
    registry: ReservationRegistry = Depends(get_registry),
):
    wf = _editable(_load(registry, reservation_id), ReservationStep.IDENTITY)
    wf.draft.identity = body.to_domain()
    return _to_response(reservation_id, wf)


@router.post(
    "/{reservation_id}/documents",
    response_model=ReservationResponse,
    summary="Attach identity documents",
    description=(
        "Files outside PDF / JPEG / PNG are kept in the draft but flagged "
        "as not accepted; they do not count towards the required number "
        "and are skipped at submission."
    ),
)
@limiter.limit(settings.rate_limit)
async def add_documents(
    request: Request,
    reservation_id: str,
    files: list[UploadFile] = File(...),
    registry: ReservationRegistry = Depends(get_registry),
):
    wf = _editable(_load(registry, reservation_id), ReservationStep.DOCUMENTS)
    for upload in files:
        content = await upload.read()
        wf.draft.documents.append(
            DocumentFile(
                id=uuid.uuid4().hex,
                filename=upload.filename or "document",
                content_type=upload.content_type or "application/octet-stream",
                size=len(content),
                content=content,
            )
        )
    return _to_response(reservation_id, wf)


@router.delete(
    "/{reservation_id}/documents/{document_id}",
    response_model=ReservationResponse,
    summary="Remove a document",
)
@limiter.limit(settings.rate_limit)
async def remove_document(
    request: Request,
    reservation_id: str,
    document_id: str,
    registry: ReservationRegistry = Depends(get_registry),
):
    wf = _editable(_load(registry, reservation_id), ReservationStep.DOCUMENTS)
    wf.draft.remove_document(document_id)
    return _to_response(reservation_id, wf)


@router.put(
    "/{reservation_id}/contract",
    response_model=ReservationResponse,
    summary="Accept or decline the contract",
)
@limiter.limit(settings.rate_limit)
async def update_contract(
    request: Request,
    reservation_id: str,
    body: ContractRequest,
    registry: ReservationRegistry = Depends(get_registry),
):
    wf = _editable(_load(registry, reservation_id), ReservationStep.CONTRACT)
    wf.draft.contract_accepted = body.accepted
    return _to_response(reservation_id, wf)


@router.post(
    "/{reservation_id}/next",
    response_model=ReservationResponse,
    summary="Validate the current step and move forward",
    responses={422: {"description": "Step validation failed"}},
)
@limiter.limit(settings.rate_limit)
async def next_step(
    request: Request,
    reservation_id: str,
    registry: ReservationRegistry = Depends(get_registry),
):
    wf = _load(registry, reservation_id)
    try:
        errors = wf.advance()
    except InvalidStateTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    if errors:
        raise HTTPException(
            status_code=422,
            detail={"step": wf.step.value, "errors": _errors(errors)},
        )
    return _to_response(reservation_id, wf)


@router.post(
    "/{reservation_id}/back",
    response_model=ReservationResponse,
    summary="Go back one step",
)
@limiter.limit(settings.rate_limit)
async def previous_step(
    request: Request,
    reservation_id: str,
    registry: ReservationRegistry = Depends(get_registry),
):
    wf = _load(registry, reservation_id)
    try:
        wf.back()
    except InvalidStateTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _to_response(reservation_id, wf)


@router.post(
    "/{reservation_id}/payment",
    status_code=201,
    response_model=ReservationResponse,
    summary="Pay and submit the reservation",
    responses={
        409: {
            "model": ErrorResponse,
            "description": "Wrong step or a submission is already running",
        },
        422: {"description": "Card or an earlier step failed validation"},
        502: {
            "model": ErrorResponse,
            "description": "Documents or subscription could not be saved",
        },
    },
)
@limiter.limit(settings.rate_limit)
async def submit_payment(
    request: Request,
    reservation_id: str,
    body: PaymentRequest,
    registry: ReservationRegistry = Depends(get_registry),
):
    wf = _editable(_load(registry, reservation_id), ReservationStep.PAYMENT)
    wf.draft.card = body.to_domain()

    try:
        result = await wf.submit()
    except (InvalidStateTransition, SubmissionInProgress) as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    if result.stage == "validation":
        raise HTTPException(
            status_code=422,
            detail={"step": wf.step.value, "errors": _errors(list(result.errors))},
        )
    if not result.ok:
        raise HTTPException(status_code=502, detail=result.error)

    if result.degraded:
        logger.warning(
            "Reservation %s saved in degraded mode", result.record.reservation_id
        )
    # the draft ends here, the plan is read back from the record stores
    registry.discard(reservation_id)
    return _to_response(reservation_id, wf)
