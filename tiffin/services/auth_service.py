"""Bearer JWT resolution and the seller guard.

Tokens are issued by the identity service; this service only verifies them.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, UTC

import jwt
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.config import get_settings
from tiffin.db.session import get_db
from tiffin.errors import AuthenticationError, AuthorizationError, NotFoundError
from tiffin.models.enums import UserRole
from tiffin.models.kitchen import Kitchen
from tiffin.models.user import User

SELLER_ROLES = frozenset({UserRole.COOK, UserRole.ADMIN})


@dataclass
class SellerContext:
    user: User
    kitchen: Kitchen


def create_jwt(user_id: int) -> str:
    """Create a signed JWT for the given user (CLI and tests)."""
    settings = get_settings()
    payload = {
        "sub": str(user_id),
        "exp": datetime.now(UTC) + timedelta(days=settings.jwt_expire_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _decode_jwt(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(
        token, settings.jwt_secret, algorithms=[settings.jwt_algorithm],
        options={"require": ["exp", "sub"]},
    )


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """FastAPI dependency: decode the bearer JWT and return the User, or raise 401."""
    token = _bearer_token(request)
    if not token:
        raise AuthenticationError()
    try:
        payload = _decode_jwt(token)
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise AuthenticationError("Invalid or expired token")

    result = await db.execute(select(User).where(User.id == user_id, User.is_active == True))
    user = result.scalar_one_or_none()
    if not user:
        raise AuthenticationError("User not found or deactivated")
    return user


async def require_seller_role(user: User = Depends(get_current_user)) -> User:
    """FastAPI dependency: caller must be a COOK or ADMIN."""
    if user.role not in SELLER_ROLES:
        raise AuthorizationError("Only kitchen owners can manage subscriptions")
    return user


async def require_seller(
    user: User = Depends(require_seller_role),
    db: AsyncSession = Depends(get_db),
) -> SellerContext:
    """FastAPI dependency: caller must be a COOK or ADMIN who owns a kitchen."""
    result = await db.execute(
        select(Kitchen).where(Kitchen.owner_id == user.id).order_by(Kitchen.id).limit(1)
    )
    kitchen = result.scalar_one_or_none()
    if not kitchen:
        raise NotFoundError("Kitchen")
    return SellerContext(user=user, kitchen=kitchen)


async def get_owned_kitchen(db: AsyncSession, user: User, kitchen_id: int) -> Kitchen:
    """Load a kitchen by id on behalf of a seller. Admins may address any kitchen."""
    kitchen = await db.get(Kitchen, kitchen_id)
    if not kitchen or (user.role != UserRole.ADMIN and kitchen.owner_id != user.id):
        raise NotFoundError("Kitchen")
    return kitchen
