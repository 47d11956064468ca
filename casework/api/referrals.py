"""
Referral API Routes: routing referrals to service-provider organizations.

The flow is:
1. POST /referrals - raise a referral (unassigned)
2. POST /referrals/{id}/assign - central authority routes it to an organization
3. POST /referrals/{id}/accept or /decline - the assigned organization responds
4. GET /referrals/reassignable - declined referrals waiting to be routed again
5. POST /referrals/{id}/complete - close out an accepted referral
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from ..core.dependencies import ActorDep, TransitionEngineDep
from ..models import Priority, ReferralStatus
from ..schemas import (
    PaginatedResponse,
    PaginationParams,
    ReasonRequest,
    ReferralAssignRequest,
    ReferralCreate,
    ReferralResponse,
    ReferralUpdate,
    VersionedRequest,
)
from ..services.entity_store import EntityFilters
from ..services.states import EntityType
from ..services.transition_engine import CreateReferralInput

router = APIRouter(prefix="/referrals", tags=["referrals"])


def _page(items, total: int, page: int, page_size: int) -> PaginatedResponse:
    return PaginatedResponse.create(
        items=[ReferralResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post(
    "",
    response_model=ReferralResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Raise a referral",
)
async def create_referral(
    request: ReferralCreate,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    referral = await engine.create_referral(
        actor,
        CreateReferralInput(
            reason=request.reason,
            client_name=request.client_name,
            category=request.category,
            priority=request.priority,
            case_id=request.case_id,
            notes=request.notes,
            referred_from=request.referred_from,
        ),
    )
    return ReferralResponse.model_validate(referral)


@router.get(
    "",
    response_model=PaginatedResponse,
    summary="List referrals",
    description="Organization users see only referrals assigned to their organization.",
)
async def list_referrals(
    actor: ActorDep,
    engine: TransitionEngineDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    status_filter: ReferralStatus | None = Query(default=None, alias="status"),
    priority: Priority | None = Query(default=None),
    category: str | None = Query(default=None),
):
    filters = EntityFilters(status=status_filter, priority=priority, category=category)
    items, total = await engine.list(
        actor, EntityType.REFERRAL, filters, PaginationParams(page=page, page_size=page_size)
    )
    return _page(items, total, page, page_size)


@router.get(
    "/reassignable",
    response_model=PaginatedResponse,
    summary="Declined referrals awaiting reassignment",
)
async def list_reassignable_referrals(
    actor: ActorDep,
    engine: TransitionEngineDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
):
    items, total = await engine.list_reassignable(
        actor, PaginationParams(page=page, page_size=page_size)
    )
    return _page(items, total, page, page_size)


@router.get("/{referral_id}", response_model=ReferralResponse)
async def get_referral(referral_id: UUID, actor: ActorDep, engine: TransitionEngineDep):
    referral = await engine.get(actor, EntityType.REFERRAL, referral_id)
    return ReferralResponse.model_validate(referral)


@router.patch("/{referral_id}", response_model=ReferralResponse)
async def update_referral(
    referral_id: UUID,
    request: ReferralUpdate,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    changes = request.model_dump(exclude_unset=True, exclude={"expected_version"})
    referral = await engine.edit(
        actor, EntityType.REFERRAL, referral_id, changes, request.expected_version
    )
    return ReferralResponse.model_validate(referral)


@router.delete("/{referral_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_referral(
    referral_id: UUID,
    actor: ActorDep,
    engine: TransitionEngineDep,
    expected_version: int | None = Query(default=None, ge=1),
):
    await engine.delete(actor, EntityType.REFERRAL, referral_id, expected_version)


@router.post(
    "/{referral_id}/assign",
    response_model=ReferralResponse,
    summary="Route a referral to an organization",
    description="""
    Assign a pending or declined referral to an active organization.
    Only central authorities may route referrals.
    """,
)
async def assign_referral(
    referral_id: UUID,
    request: ReferralAssignRequest,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    referral = await engine.assign_referral(
        actor, referral_id, request.organization_id, request.expected_version
    )
    return ReferralResponse.model_validate(referral)


@router.post(
    "/{referral_id}/accept",
    response_model=ReferralResponse,
    summary="Accept an assigned referral (idempotent)",
)
async def accept_referral(
    referral_id: UUID,
    actor: ActorDep,
    engine: TransitionEngineDep,
    request: VersionedRequest | None = None,
):
    expected_version = request.expected_version if request else None
    referral = await engine.accept_referral(actor, referral_id, expected_version)
    return ReferralResponse.model_validate(referral)


@router.post(
    "/{referral_id}/decline",
    response_model=ReferralResponse,
    summary="Decline an assigned referral",
    description="A non-blank `reason` is required. The referral becomes reassignable.",
)
async def decline_referral(
    referral_id: UUID,
    request: ReasonRequest,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    referral = await engine.decline_referral(
        actor, referral_id, request.reason, request.expected_version
    )
    return ReferralResponse.model_validate(referral)


@router.post(
    "/{referral_id}/complete",
    response_model=ReferralResponse,
    summary="Complete an accepted referral",
)
async def complete_referral(
    referral_id: UUID,
    actor: ActorDep,
    engine: TransitionEngineDep,
    request: VersionedRequest | None = None,
):
    expected_version = request.expected_version if request else None
    referral = await engine.complete_referral(actor, referral_id, expected_version)
    return ReferralResponse.model_validate(referral)
