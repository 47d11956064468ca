"""
Assignment Router: choosing and validating where a record is routed.

Candidate lookup is a convenience snapshot for pickers; ``validate_target``
re-reads the organization at assignment time and is the only check that
counts.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Organization, User
from .errors import EntityNotFoundError, OrganizationInactiveError
from .states import AssignmentTarget, OrganizationTarget

logger = logging.getLogger(__name__)


def _matches(tags: list[str] | None, needle: str | None) -> bool:
    """Case-insensitive substring match of ``needle`` against any tag."""
    if not needle:
        return True
    needle = needle.strip().lower()
    return any(needle in tag.lower() or tag.lower() in needle for tag in tags or [] if tag)


class AssignmentRouter:
    """Selects and validates assignment targets."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_candidates(
        self,
        sector: str | None = None,
        location: str | None = None,
    ) -> list[Organization]:
        """Active organizations whose tags loosely match the filters."""
        result = await self._session.execute(
            select(Organization)
            .where(Organization.is_active.is_(True))
            .order_by(Organization.name)
        )
        organizations = result.scalars().all()

        return [
            org for org in organizations
            if _matches(org.sectors_provided, sector)
            and _matches(org.locations_covered, location)
        ]

    async def validate_target(self, organization_id: UUID) -> Organization:
        """Re-read the organization and require it to be active now."""
        result = await self._session.execute(
            select(Organization)
            .where(Organization.id == organization_id)
            .execution_options(populate_existing=True)
        )
        organization = result.scalar_one_or_none()

        if organization is None:
            raise EntityNotFoundError(f"Organization {organization_id} not found")
        if not organization.is_active:
            logger.info(f"Rejected assignment to inactive organization {organization_id}")
            raise OrganizationInactiveError(
                f"Cannot assign to inactive organization {organization.name}"
            )
        return organization

    async def validate_assignee(self, target: AssignmentTarget) -> str:
        """Validate a case/registration assignee; returns its display name."""
        if isinstance(target, OrganizationTarget):
            organization = await self.validate_target(target.organization_id)
            return organization.display_name

        user = await self._session.get(User, target.user_id)
        if user is None or not user.is_active:
            raise EntityNotFoundError(f"User {target.user_id} not found")
        return user.name
