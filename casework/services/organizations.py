"""Organization Directory: service providers and their active flag."""

import logging
import re
from dataclasses import dataclass, field
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Organization, Referral, ReferralStatus
from .activity import ActivityLogger
from .authorization import Actor, AuthorizationGate
from .errors import EntityNotFoundError, NotAuthorizedError, ValidationFailedError

logger = logging.getLogger(__name__)


@dataclass
class CreateOrganizationInput:
    name: str
    organization_type: str | None = None
    contact_email: str | None = None
    sectors_provided: list[str] = field(default_factory=list)
    locations_covered: list[str] = field(default_factory=list)
    is_active: bool = True


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:63] or "organization"


def _clean_tags(tags: list[str]) -> list[str]:
    return [t.strip() for t in tags if t and t.strip()]


class OrganizationDirectory:
    """Reads and maintains the set of service-provider organizations."""

    def __init__(self, session: AsyncSession, gate: AuthorizationGate | None = None):
        self._session = session
        self._gate = gate or AuthorizationGate()
        self._activity = ActivityLogger(session)

    async def create_organization(
        self,
        actor: Actor,
        input: CreateOrganizationInput,
    ) -> Organization:
        if not self._gate.is_central_authority(actor):
            raise NotAuthorizedError("Only a central authority can register organizations")
        if not input.name or not input.name.strip():
            raise ValidationFailedError("Organization name is required", detail="name")

        slug = await self._unique_slug(slugify(input.name))
        organization = Organization(
            slug=slug,
            name=input.name.strip(),
            organization_type=input.organization_type,
            contact_email=input.contact_email,
            sectors_provided=_clean_tags(input.sectors_provided),
            locations_covered=_clean_tags(input.locations_covered),
            is_active=input.is_active,
            created_by=actor.user_id,
        )
        self._session.add(organization)
        await self._session.flush()

        await self._activity.record(
            actor=actor,
            action="create",
            resource_type="organization",
            resource_id=organization.id,
            details={"name": organization.name, "is_active": organization.is_active},
        )
        logger.info(f"Registered organization {organization.slug} ({organization.id})")
        return organization

    async def get(self, organization_id: UUID) -> Organization:
        organization = await self._session.get(Organization, organization_id)
        if organization is None:
            raise EntityNotFoundError(f"Organization {organization_id} not found")
        return organization

    async def list(self, include_inactive: bool = True) -> Sequence[Organization]:
        query = select(Organization).order_by(Organization.name)
        if not include_inactive:
            query = query.where(Organization.is_active.is_(True))
        result = await self._session.execute(query)
        return result.scalars().all()

    async def set_active(
        self,
        actor: Actor,
        organization_id: UUID,
        is_active: bool,
    ) -> Organization:
        """Toggle eligibility as an assignment target.

        Existing assignments are left untouched on deactivation.
        """
        if not self._gate.is_central_authority(actor):
            raise NotAuthorizedError("Only a central authority can change organization status")

        organization = await self.get(organization_id)
        if organization.is_active == is_active:
            return organization

        organization.is_active = is_active
        await self._session.flush()

        details: dict = {"is_active": is_active}
        if not is_active:
            still_assigned = await self._pending_referral_count(organization_id)
            details["pending_referrals_assigned"] = still_assigned
            if still_assigned:
                logger.warning(
                    f"Organization {organization_id} deactivated with "
                    f"{still_assigned} pending referral(s) still assigned"
                )

        await self._activity.record(
            actor=actor,
            action="activate" if is_active else "deactivate",
            resource_type="organization",
            resource_id=organization_id,
            details=details,
        )
        return organization

    async def _pending_referral_count(self, organization_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(Referral).where(
                Referral.assigned_organization_id == organization_id,
                Referral.status == ReferralStatus.PENDING,
            )
        )
        return result.scalar_one()

    async def _unique_slug(self, base: str) -> str:
        slug = base
        suffix = 2
        while True:
            result = await self._session.execute(
                select(Organization.id).where(Organization.slug == slug)
            )
            if result.scalar_one_or_none() is None:
                return slug
            slug = f"{base[:58]}-{suffix}"
            suffix += 1
