"""Organization API Routes: the service-provider directory."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from ..core.dependencies import ActorDep, SessionDep
from ..schemas import ActivationRequest, OrganizationCreate, OrganizationResponse
from ..services.assignment_router import AssignmentRouter
from ..services.organizations import CreateOrganizationInput, OrganizationDirectory

router = APIRouter(prefix="/organizations", tags=["organizations"])


def get_directory(session: SessionDep) -> OrganizationDirectory:
    return OrganizationDirectory(session)


def get_assignment_router(session: SessionDep) -> AssignmentRouter:
    return AssignmentRouter(session)


DirectoryDep = Annotated[OrganizationDirectory, Depends(get_directory)]
AssignmentRouterDep = Annotated[AssignmentRouter, Depends(get_assignment_router)]


@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a service-provider organization",
)
async def create_organization(
    request: OrganizationCreate,
    actor: ActorDep,
    directory: DirectoryDep,
):
    organization = await directory.create_organization(
        actor,
        CreateOrganizationInput(
            name=request.name,
            organization_type=request.organization_type,
            contact_email=request.contact_email,
            sectors_provided=request.sectors_provided,
            locations_covered=request.locations_covered,
            is_active=request.is_active,
        ),
    )
    return OrganizationResponse.model_validate(organization)


@router.get("", response_model=list[OrganizationResponse], summary="List organizations")
async def list_organizations(
    actor: ActorDep,
    directory: DirectoryDep,
    include_inactive: bool = Query(default=True),
):
    organizations = await directory.list(include_inactive=include_inactive)
    return [OrganizationResponse.model_validate(o) for o in organizations]


@router.get(
    "/candidates",
    response_model=list[OrganizationResponse],
    summary="Active organizations matching a sector and location",
    description="""
    Candidate assignment targets. Matching is a case-insensitive substring
    match against each organization's sector and location tags.
    """,
)
async def find_candidates(
    actor: ActorDep,
    assignment_router: AssignmentRouterDep,
    sector: str | None = Query(default=None),
    location: str | None = Query(default=None),
):
    organizations = await assignment_router.find_candidates(sector=sector, location=location)
    return [OrganizationResponse.model_validate(o) for o in organizations]


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(
    organization_id: UUID,
    actor: ActorDep,
    directory: DirectoryDep,
):
    organization = await directory.get(organization_id)
    return OrganizationResponse.model_validate(organization)


@router.post(
    "/{organization_id}/activation",
    response_model=OrganizationResponse,
    summary="Activate or deactivate an organization",
    description="""
    Inactive organizations cannot receive new assignments. Existing
    assignments are left in place.
    """,
)
async def set_organization_activation(
    organization_id: UUID,
    request: ActivationRequest,
    actor: ActorDep,
    directory: DirectoryDep,
):
    organization = await directory.set_active(actor, organization_id, request.is_active)
    return OrganizationResponse.model_validate(organization)
