"""
shared/middleware/auth.py
FastAPI dependency functions for authentication and authorization.
The JWT is read from the HTTP-only auth cookie, or from an
`Authorization: Bearer` header for non-browser clients.
"""

import uuid
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from config.settings import settings
from shared.exceptions import Forbidden, Unauthenticated
from shared.models.models import User, UserRole
from shared.utils.security import verify_access_token

security = HTTPBearer(auto_error=False)


class TokenData:
    def __init__(self, payload: dict, raw: str):
        self.user_id: str = payload["sub"]
        self.role: UserRole = UserRole(payload["role"])
        self.email: str = payload["email"]
        self.jti: str = payload["jti"]
        self.payload = payload
        self.raw = raw


def extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    """Cookie first (browser clients), then bearer header."""
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    if credentials:
        return credentials.credentials
    return None


async def get_token_data(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    redis=Depends(get_redis),
) -> TokenData:
    """
    Extract and validate the JWT.
    Checks deny-list in Redis to handle revoked tokens (logout).
    """
    token = extract_token(request, credentials)
    if not token:
        raise Unauthenticated("Please login first to continue")

    try:
        payload = verify_access_token(token)
    except JWTError:
        raise Unauthenticated("Unauthorized - Invalid token.")

    jti = payload.get("jti")
    if jti and await RedisCache(redis).is_token_revoked(jti):
        raise Unauthenticated("Token has been revoked")

    return TokenData(payload, token)


async def get_current_user(
    token_data: TokenData = Depends(get_token_data),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Load full User object from database using JWT sub claim."""
    result = await db.execute(select(User).where(User.id == _as_uuid(token_data.user_id)))
    user = result.scalar_one_or_none()

    if not user:
        raise Unauthenticated("User not found.")
    return user


class RoleRequired:
    """Dependency factory for role-based access control."""

    def __init__(self, *roles: UserRole):
        self.roles = roles

    async def __call__(
        self,
        current_user: User = Depends(get_current_user),
    ) -> User:
        if current_user.role not in self.roles:
            labels = " or ".join(r.value.capitalize() for r in self.roles)
            raise Forbidden(f"Unauthorized. {labels} access required.")
        return current_user


# Convenience role dependencies
require_customer = RoleRequired(UserRole.CUSTOMER)
require_provider = RoleRequired(UserRole.PROVIDER)
require_admin = RoleRequired(UserRole.ADMIN)


def _as_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise Unauthenticated("Unauthorized - Invalid token.")
