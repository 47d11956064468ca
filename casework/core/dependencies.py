"""FastAPI dependencies for authentication and the acting principal."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import User
from ..services.authorization import Actor
from ..services.transition_engine import TransitionEngine
from .database import get_session
from .security import decode_token

logger = logging.getLogger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser:
    """Represents the authenticated user context."""

    def __init__(self, user: User):
        self.user = user

    @property
    def id(self) -> UUID:
        return self.user.id

    @property
    def actor(self) -> Actor:
        return Actor(
            user_id=self.user.id,
            role=self.user.role,
            organization_id=self.user.organization_id,
        )


async def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CurrentUser:
    """Dependency to get the current authenticated, active user."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )

    try:
        user_id = UUID(payload.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
        )

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if not user.is_active:
        logger.warning(f"Rejected request from inactive user {user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is inactive",
        )

    return CurrentUser(user=user)


def get_current_actor(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> Actor:
    return current_user.actor


# Type aliases for cleaner dependency injection
ActorDep = Annotated[Actor, Depends(get_current_actor)]
SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_transition_engine(session: SessionDep) -> TransitionEngine:
    return TransitionEngine(session)


TransitionEngineDep = Annotated[TransitionEngine, Depends(get_transition_engine)]
