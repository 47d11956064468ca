"""
Aggregate Counters: dashboard projections over current rows.

Counts are computed on every read; nothing is cached, so a committed
transition is reflected by the next call. The predicate functions below
define each bucket for a single row and mirror the SQL used for counting.
"""

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import (
    Case,
    CaseStatus,
    Priority,
    Referral,
    ReferralStatus,
    Registration,
)
from .authorization import Actor, AuthorizationGate

# Cases still needing work; approved cases count as open on the dashboard
OPEN_CASE_STATUSES = frozenset({CaseStatus.OPEN, CaseStatus.APPROVED, CaseStatus.IN_PROGRESS})


def is_open_case(case: Case) -> bool:
    return case.status in OPEN_CASE_STATUSES


def is_urgent_case(case: Case) -> bool:
    return case.priority == Priority.URGENT


def is_pending_referral(referral: Referral) -> bool:
    return referral.status == ReferralStatus.PENDING


def is_reassignable_referral(referral: Referral) -> bool:
    return referral.status == ReferralStatus.REJECTED and bool(referral.can_be_reassigned)


@dataclass
class DashboardStats:
    """Counts shown on the dashboard."""
    total_cases: int = 0
    total_registrations: int = 0
    total_referrals: int = 0
    open_cases: int = 0
    urgent_cases: int = 0
    pending_referrals: int = 0
    reassignable_referrals: int = 0
    cases_by_status: dict[str, int] = field(default_factory=dict)
    cases_by_approval_status: dict[str, int] = field(default_factory=dict)
    registrations_by_status: dict[str, int] = field(default_factory=dict)
    registrations_by_approval_status: dict[str, int] = field(default_factory=dict)
    referrals_by_status: dict[str, int] = field(default_factory=dict)
    referrals_by_approval_status: dict[str, int] = field(default_factory=dict)


def _key(value: Any) -> str:
    return getattr(value, "value", value)


class DashboardCounters:
    """Read-side counts, scoped to the actor's own records unless central."""

    def __init__(self, session: AsyncSession, gate: AuthorizationGate | None = None):
        self._session = session
        self._gate = gate or AuthorizationGate()

    async def get_stats(self, actor: Actor) -> DashboardStats:
        owner = None if self._gate.is_central_authority(actor) else actor.user_id

        return DashboardStats(
            total_cases=await self._count(Case, owner),
            total_registrations=await self._count(Registration, owner),
            total_referrals=await self._count(Referral, owner),
            open_cases=await self._count(
                Case, owner, Case.status.in_(list(OPEN_CASE_STATUSES))
            ),
            urgent_cases=await self._count(Case, owner, Case.priority == Priority.URGENT),
            pending_referrals=await self._count(
                Referral, owner, Referral.status == ReferralStatus.PENDING
            ),
            reassignable_referrals=await self._count(
                Referral,
                owner,
                Referral.status == ReferralStatus.REJECTED,
                Referral.can_be_reassigned.is_(True),
            ),
            cases_by_status=await self._group(Case, Case.status, owner),
            cases_by_approval_status=await self._group(Case, Case.approval_status, owner),
            registrations_by_status=await self._group(
                Registration, Registration.status, owner
            ),
            registrations_by_approval_status=await self._group(
                Registration, Registration.approval_status, owner
            ),
            referrals_by_status=await self._group(Referral, Referral.status, owner),
            referrals_by_approval_status=await self._group(
                Referral, Referral.approval_status, owner
            ),
        )

    async def _count(self, model: type, owner: UUID | None, *conditions) -> int:
        if owner is not None:
            conditions = (*conditions, model.created_by == owner)
        result = await self._session.execute(
            select(func.count()).select_from(model).where(*conditions)
        )
        return result.scalar_one()

    async def _group(self, model: type, column, owner: UUID | None) -> dict[str, int]:
        query = select(column, func.count()).select_from(model).group_by(column)
        if owner is not None:
            query = query.where(model.created_by == owner)
        result = await self._session.execute(query)
        return {_key(value): count for value, count in result.all()}
