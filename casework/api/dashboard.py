"""Dashboard and activity feed endpoints."""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..core.dependencies import ActorDep, SessionDep
from ..schemas import (
    ActivityLogResponse,
    DashboardStatsResponse,
    PaginatedResponse,
    PaginationParams,
)
from ..services.activity import ActivityLogger
from ..services.authorization import AuthorizationGate
from ..services.counters import DashboardCounters

router = APIRouter(tags=["dashboard"])


def get_counters(session: SessionDep) -> DashboardCounters:
    return DashboardCounters(session)


CountersDep = Annotated[DashboardCounters, Depends(get_counters)]


@router.get(
    "/dashboard/stats",
    response_model=DashboardStatsResponse,
    summary="Get dashboard statistics",
    description="""
    Totals per entity type, status and approval status breakdowns, urgent
    and open cases, pending and reassignable referrals.

    Central authorities see every record; everyone else sees counts over
    the records they created.
    """,
)
async def get_dashboard_stats(actor: ActorDep, counters: CountersDep):
    stats = await counters.get_stats(actor)
    return DashboardStatsResponse(**asdict(stats))


@router.get(
    "/activity",
    response_model=PaginatedResponse,
    summary="Recent activity",
)
async def list_activity(
    actor: ActorDep,
    session: SessionDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    resource_type: str | None = Query(default=None),
):
    """Central authorities see all activity; other users only their own."""
    user_id = None if AuthorizationGate().is_central_authority(actor) else actor.user_id
    entries, total = await ActivityLogger(session).list_recent(
        user_id=user_id,
        resource_type=resource_type,
        pagination=PaginationParams(page=page, page_size=page_size),
    )
    return PaginatedResponse.create(
        items=[ActivityLogResponse.model_validate(e) for e in entries],
        total=total,
        page=page,
        page_size=page_size,
    )
