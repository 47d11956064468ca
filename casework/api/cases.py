"""
Case API Routes: one endpoint per workflow transition.

Workflow errors raised by the Transition Engine are mapped to HTTP
responses by the application-level handler in ``casework.main``.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from ..core.dependencies import ActorDep, TransitionEngineDep
from ..models import ApprovalStatus, CaseStatus, Priority
from ..schemas import (
    AdvanceStatusRequest,
    AssignRequest,
    CaseCreate,
    CaseResponse,
    CaseUpdate,
    PaginatedResponse,
    PaginationParams,
    ReasonRequest,
    VersionedRequest,
)
from ..services.entity_store import EntityFilters
from ..services.states import EntityType, make_target
from ..services.transition_engine import CreateCaseInput

router = APIRouter(prefix="/cases", tags=["cases"])


@router.post(
    "",
    response_model=CaseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a new case",
    description="""
    Open a case awaiting approval (status `open`, approval status `pending`).

    The case is scoped to `organization_id`, or to the creator's own
    organization when omitted.
    """,
)
async def create_case(
    request: CaseCreate,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    case = await engine.create_case(
        actor,
        CreateCaseInput(
            title=request.title,
            description=request.description,
            category=request.category,
            priority=request.priority,
            organization_id=request.organization_id,
        ),
    )
    return CaseResponse.model_validate(case)


@router.get(
    "",
    response_model=PaginatedResponse,
    summary="List cases visible to the caller",
)
async def list_cases(
    actor: ActorDep,
    engine: TransitionEngineDep,
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=10, ge=1, le=100, description="Items per page"),
    status_filter: CaseStatus | None = Query(default=None, alias="status"),
    approval_status: ApprovalStatus | None = Query(default=None),
    priority: Priority | None = Query(default=None),
    category: str | None = Query(default=None),
):
    filters = EntityFilters(
        status=status_filter,
        approval_status=approval_status,
        priority=priority,
        category=category,
    )
    items, total = await engine.list(
        actor, EntityType.CASE, filters, PaginationParams(page=page, page_size=page_size)
    )
    return PaginatedResponse.create(
        items=[CaseResponse.model_validate(c) for c in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{case_id}", response_model=CaseResponse, summary="Get a case")
async def get_case(case_id: UUID, actor: ActorDep, engine: TransitionEngineDep):
    case = await engine.get(actor, EntityType.CASE, case_id)
    return CaseResponse.model_validate(case)


@router.patch(
    "/{case_id}",
    response_model=CaseResponse,
    summary="Edit descriptive case fields",
    description="""
    Update title, description, category or priority. Status fields only
    change through the transition endpoints.

    **Optimistic Locking**: Pass `expected_version` to detect concurrent edits.
    """,
)
async def update_case(
    case_id: UUID,
    request: CaseUpdate,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    changes = request.model_dump(exclude_unset=True, exclude={"expected_version"})
    case = await engine.edit(
        actor, EntityType.CASE, case_id, changes, request.expected_version
    )
    return CaseResponse.model_validate(case)


@router.delete(
    "/{case_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a case",
)
async def delete_case(
    case_id: UUID,
    actor: ActorDep,
    engine: TransitionEngineDep,
    expected_version: int | None = Query(default=None, ge=1),
):
    await engine.delete(actor, EntityType.CASE, case_id, expected_version)


@router.post(
    "/{case_id}/approve",
    response_model=CaseResponse,
    summary="Approve a pending case",
    description="""
    Approve a case awaiting approval. Approving an already-approved case
    succeeds without changing it.
    """,
)
async def approve_case(
    case_id: UUID,
    actor: ActorDep,
    engine: TransitionEngineDep,
    request: VersionedRequest | None = None,
):
    expected_version = request.expected_version if request else None
    case = await engine.approve(actor, EntityType.CASE, case_id, expected_version)
    return CaseResponse.model_validate(case)


@router.post(
    "/{case_id}/reject",
    response_model=CaseResponse,
    summary="Reject a pending case",
    description="A non-blank `reason` is required. The case is closed.",
)
async def reject_case(
    case_id: UUID,
    request: ReasonRequest,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    case = await engine.reject(
        actor, EntityType.CASE, case_id, request.reason, request.expected_version
    )
    return CaseResponse.model_validate(case)


@router.post(
    "/{case_id}/status",
    response_model=CaseResponse,
    summary="Advance an approved case",
    description="Move an approved case to `in_progress` or `closed`.",
)
async def advance_case_status(
    case_id: UUID,
    request: AdvanceStatusRequest,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    case = await engine.advance_status(
        actor, case_id, request.status, request.expected_version
    )
    return CaseResponse.model_validate(case)


@router.post(
    "/{case_id}/assign",
    response_model=CaseResponse,
    summary="Assign a case to a user or organization",
)
async def assign_case(
    case_id: UUID,
    request: AssignRequest,
    actor: ActorDep,
    engine: TransitionEngineDep,
):
    target = make_target(request.assigned_to_type, request.assigned_to)
    case = await engine.assign(
        actor, EntityType.CASE, case_id, target, request.expected_version
    )
    return CaseResponse.model_validate(case)
