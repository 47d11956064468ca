"""Registration API Routes: same lifecycle as cases, without closure."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from ..core.dependencies import ActorDep, TransitionEngineDep
from ..models import ApprovalStatus, RegistrationStatus
from ..schemas import (
    AssignRequest,
    PaginatedResponse,
    PaginationParams,
    ReasonRequest,
    RegistrationCreate,
    RegistrationResponse,
    RegistrationUpdate,
    VersionedRequest,
)
from ..services.entity_store import EntityFilters
from ..services.states import EntityType, make_target
from ..services.transition_engine import CreateRegistrationInput

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.post(
    "",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a beneficiary",
)
async def create_registration(
    request: RegistrationCreate,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    registration = await engine.create_registration(
        actor,
        CreateRegistrationInput(
            full_name=request.full_name,
            phone=request.phone,
            category=request.category,
            description=request.description,
            household_size=request.household_size,
            organization_id=request.organization_id,
        ),
    )
    return RegistrationResponse.model_validate(registration)


@router.get("", response_model=PaginatedResponse, summary="List registrations")
async def list_registrations(
    actor: ActorDep,
    engine: TransitionEngineDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    status_filter: RegistrationStatus | None = Query(default=None, alias="status"),
    approval_status: ApprovalStatus | None = Query(default=None),
    category: str | None = Query(default=None),
):
    filters = EntityFilters(
        status=status_filter,
        approval_status=approval_status,
        category=category,
    )
    items, total = await engine.list(
        actor,
        EntityType.REGISTRATION,
        filters,
        PaginationParams(page=page, page_size=page_size),
    )
    return PaginatedResponse.create(
        items=[RegistrationResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{registration_id}", response_model=RegistrationResponse)
async def get_registration(
    registration_id: UUID,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    registration = await engine.get(actor, EntityType.REGISTRATION, registration_id)
    return RegistrationResponse.model_validate(registration)


@router.patch("/{registration_id}", response_model=RegistrationResponse)
async def update_registration(
    registration_id: UUID,
    request: RegistrationUpdate,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    changes = request.model_dump(exclude_unset=True, exclude={"expected_version"})
    registration = await engine.edit(
        actor, EntityType.REGISTRATION, registration_id, changes, request.expected_version
    )
    return RegistrationResponse.model_validate(registration)


@router.delete("/{registration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_registration(
    registration_id: UUID,
    actor: ActorDep,
    engine: TransitionEngineDep,
    expected_version: int | None = Query(default=None, ge=1),
):
    await engine.delete(actor, EntityType.REGISTRATION, registration_id, expected_version)


@router.post(
    "/{registration_id}/approve",
    response_model=RegistrationResponse,
    summary="Approve a pending registration (idempotent)",
)
async def approve_registration(
    registration_id: UUID,
    actor: ActorDep,
    engine: TransitionEngineDep,
    request: VersionedRequest | None = None,
):
    expected_version = request.expected_version if request else None
    registration = await engine.approve(
        actor, EntityType.REGISTRATION, registration_id, expected_version
    )
    return RegistrationResponse.model_validate(registration)


@router.post(
    "/{registration_id}/reject",
    response_model=RegistrationResponse,
    summary="Reject a pending registration",
    description="A non-blank `reason` is required.",
)
async def reject_registration(
    registration_id: UUID,
    request: ReasonRequest,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    registration = await engine.reject(
        actor,
        EntityType.REGISTRATION,
        registration_id,
        request.reason,
        request.expected_version,
    )
    return RegistrationResponse.model_validate(registration)


@router.post("/{registration_id}/assign", response_model=RegistrationResponse)
async def assign_registration(
    registration_id: UUID,
    request: AssignRequest,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    target = make_target(request.assigned_to_type, request.assigned_to)
    registration = await engine.assign(
        actor, EntityType.REGISTRATION, registration_id, target, request.expected_version
    )
    return RegistrationResponse.model_validate(registration)
