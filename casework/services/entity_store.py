"""
Entity Store: the read/update contract the workflow runs against.

Writes are conditional on the row version the caller read, so a
transition computed from a stale pre-image never overwrites a write that
committed in between:

    UPDATE cases SET ..., version = :v + 1 WHERE id = :id AND version = :v

Zero matched rows means either the row is gone (not_found) or another
writer won the race (conflict).
"""

import logging
from dataclasses import dataclass
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AssigneeType, Referral
from ..schemas.base import PaginationParams
from .errors import ConflictError, EntityNotFoundError
from .states import WorkflowEntity

logger = logging.getLogger(__name__)

# Fields the store manages itself; never accepted in a patch
_PROTECTED_FIELDS = frozenset({"id", "version", "created_at", "created_by"})


@dataclass
class EntityFilters:
    """Equality filters accepted by ``EntityStore.list``."""
    status: Any = None
    approval_status: Any = None
    category: str | None = None
    priority: Any = None
    created_by: UUID | None = None
    organization_id: UUID | None = None
    can_be_reassigned: bool | None = None


class EntityStore:
    """Row-level CRUD over workflow entities with optimistic concurrency."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, model: type, entity_id: UUID) -> Any:
        """Load a row or raise EntityNotFoundError."""
        entity = await self._load(model, entity_id)
        if entity is None:
            logger.warning(f"{model.__name__} {entity_id} not found")
            raise EntityNotFoundError(f"{model.__name__} {entity_id} not found")
        return entity

    async def create(self, entity: WorkflowEntity) -> WorkflowEntity:
        self._session.add(entity)
        await self._session.flush()
        return entity

    async def update(
        self,
        model: type,
        entity_id: UUID,
        patch: dict[str, Any],
        expected_version: int,
    ) -> Any:
        """Apply ``patch`` atomically if the row is still at ``expected_version``.

        Returns the refreshed row. Raises ConflictError when another write
        committed first, EntityNotFoundError when the row no longer exists.
        """
        illegal = _PROTECTED_FIELDS.intersection(patch)
        if illegal:
            raise ValueError(f"Cannot patch store-managed fields: {sorted(illegal)}")

        stmt = (
            update(model)
            .where(model.id == entity_id, model.version == expected_version)
            .values(**patch, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        if result.rowcount != 1:
            await self._raise_missing_or_conflict(model, entity_id, expected_version)

        entity = await self._load(model, entity_id)
        return entity

    async def delete(self, model: type, entity_id: UUID, expected_version: int) -> None:
        result = await self._session.execute(
            delete(model)
            .where(model.id == entity_id, model.version == expected_version)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._raise_missing_or_conflict(model, entity_id, expected_version)

    async def list(
        self,
        model: type,
        filters: EntityFilters | None = None,
        pagination: PaginationParams | None = None,
    ) -> tuple[Sequence[Any], int]:
        """List rows matching ``filters``, newest first, with the total count."""
        filters = filters or EntityFilters()
        pagination = pagination or PaginationParams()
        conditions = self._conditions(model, filters)

        count_result = await self._session.execute(
            select(func.count()).select_from(model).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await self._session.execute(
            select(model)
            .where(*conditions)
            .order_by(model.created_at.desc())
            .limit(pagination.page_size)
            .offset(pagination.offset)
        )
        return result.scalars().all(), total

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _load(self, model: type, entity_id: UUID) -> Any:
        result = await self._session.execute(
            select(model)
            .where(model.id == entity_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _raise_missing_or_conflict(
        self,
        model: type,
        entity_id: UUID,
        expected_version: int,
    ) -> None:
        current = await self._session.execute(
            select(model.version).where(model.id == entity_id)
        )
        current_version = current.scalar_one_or_none()
        if current_version is None:
            raise EntityNotFoundError(f"{model.__name__} {entity_id} not found")

        logger.warning(
            f"Version conflict on {model.__name__} {entity_id}: "
            f"expected v{expected_version}, found v{current_version}"
        )
        raise ConflictError(
            f"Version mismatch: expected v{expected_version}, "
            f"but current is v{current_version}. "
            "The record was modified by another user."
        )

    @staticmethod
    def _conditions(model: type, filters: EntityFilters):
        conditions = []
        if filters.status is not None:
            conditions.append(model.status == filters.status)
        if filters.approval_status is not None:
            conditions.append(model.approval_status == filters.approval_status)
        if filters.category is not None:
            conditions.append(model.category == filters.category)
        if filters.priority is not None and hasattr(model, "priority"):
            conditions.append(model.priority == filters.priority)
        if filters.created_by is not None:
            conditions.append(model.created_by == filters.created_by)
        if filters.can_be_reassigned is not None and model is Referral:
            conditions.append(Referral.can_be_reassigned == filters.can_be_reassigned)
        if filters.organization_id is not None:
            if model is Referral:
                conditions.append(
                    Referral.assigned_organization_id == filters.organization_id
                )
            else:
                conditions.append(
                    or_(
                        model.organization_id == filters.organization_id,
                        and_(
                            model.assigned_to_type == AssigneeType.ORGANIZATION,
                            model.assigned_to == str(filters.organization_id),
                        ),
                    )
                )
        return conditions
