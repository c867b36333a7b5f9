"""API dependencies for authentication and service wiring."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import verify_token
from app.database import get_db
from app.domain.hold_state import Actor
from app.models.user import User
from app.services.expiry_sweeper import ExpirySweeper
from app.services.hold_service import HoldService, build_hold_service

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = verify_token(credentials.credentials, token_type="access")
    try:
        user_id = UUID(payload["sub"])
    except ValueError:
        raise AuthenticationError("Invalid token payload")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    # End the read so the hold workflow's own transactions never queue behind it
    await db.commit()
    return user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are an admin."""
    if not current_user.is_admin:
        raise AuthorizationError("Admin access required")
    return current_user


def actor_from_user(user: User) -> Actor:
    """The hold workflow's view of an authenticated user."""
    return Actor(user_id=user.id, is_admin=user.is_admin)


async def get_current_actor(
    current_user: Annotated[User, Depends(get_current_user)],
) -> Actor:
    return actor_from_user(current_user)


def get_hold_service() -> HoldService:
    """Hold state machine bound to the application database and notifier."""
    return build_hold_service()


def get_expiry_sweeper(
    hold_service: Annotated[HoldService, Depends(get_hold_service)],
) -> ExpirySweeper:
    return ExpirySweeper(hold_service, hold_service.session_factory)


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
HoldServiceDep = Annotated[HoldService, Depends(get_hold_service)]
