"""Activity log: append-only trail of committed workflow actions."""

from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import ActivityLog
from ..schemas.base import PaginationParams


class ActivityLogger:
    """Writes and reads activity entries within the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def record(
        self,
        actor: Any,
        action: str,
        resource_type: str,
        resource_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> ActivityLog:
        entry = ActivityLog(
            user_id=actor.user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
        )
        self._session.add(entry)
        # Don't flush here - let it be part of the transaction
        return entry

    async def list_recent(
        self,
        user_id: UUID | None = None,
        resource_type: str | None = None,
        pagination: PaginationParams | None = None,
    ) -> tuple[Sequence[ActivityLog], int]:
        pagination = pagination or PaginationParams()
        conditions = []
        if user_id is not None:
            conditions.append(ActivityLog.user_id == user_id)
        if resource_type is not None:
            conditions.append(ActivityLog.resource_type == resource_type)

        count_result = await self._session.execute(
            select(func.count()).select_from(ActivityLog).where(*conditions)
        )
        result = await self._session.execute(
            select(ActivityLog)
            .where(*conditions)
            .order_by(ActivityLog.created_at.desc())
            .limit(pagination.page_size)
            .offset(pagination.offset)
        )
        return result.scalars().all(), count_result.scalar_one()
