"""
services/user/router.py
Email/password accounts: register, login, logout, auth check and profile update.
The access token is issued as an HTTP-only cookie.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from config.settings import settings
from shared.exceptions import Conflict, Unauthenticated
from shared.middleware.auth import extract_token, get_current_user, security
from shared.models.models import User
from shared.schemas.schemas import LoginRequest, MessageResponse, RegisterRequest, UserEnvelope, UserResponse
from shared.utils.media import PROFILE_IMAGES_FOLDER, MediaStore, get_media_store, read_uploads
from shared.utils.security import (
    create_access_token,
    get_token_remaining_ttl,
    hash_password,
    verify_access_token,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["Users"])


# ── Helper ────────────────────────────────────────────────────

def _issue_token(user: User, response: Response) -> str:
    """Sign an access token for `user` and set it as the auth cookie."""
    token, _jti = create_access_token(
        user_id=str(user.id),
        role=user.role.value,
        email=user.email,
    )
    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.AUTH_COOKIE_SECURE,
        samesite=settings.AUTH_COOKIE_SAMESITE,
        max_age=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return token


async def _email_taken(email: str, db: AsyncSession) -> bool:
    result = await db.execute(select(User.id).where(User.email == email))
    return result.scalar_one_or_none() is not None


# ── Endpoints ─────────────────────────────────────────────────

@router.post("/register", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Create a customer account and log it in."""
    email = data.email.lower()
    if await _email_taken(email, db):
        raise Conflict("Email is already registered")

    user = User(
        name=data.name,
        email=email,
        password_hash=hash_password(data.password),
        phone_number=data.phone_number,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        # A concurrent registration won the unique index on users.email
        raise Conflict("Email is already registered") from exc

    _issue_token(user, response)
    logger.info(f"User registered: {user.id}")

    return UserEnvelope(message="User registered successfully", user=UserResponse.model_validate(user))


@router.post("/login", response_model=UserEnvelope)
async def login(
    data: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).where(User.email == data.email.lower()))
    user = result.scalar_one_or_none()
    if not user:
        raise Unauthenticated("Email is not registered")
    if not verify_password(data.password, user.password_hash):
        raise Unauthenticated("Email or Password is incorrect")

    _issue_token(user, response)
    logger.info(f"User logged in: {user.id}")

    return UserEnvelope(message="User logged in successfully", user=UserResponse.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    redis=Depends(get_redis),
):
    """
    Clear the auth cookie. A still-valid token is also added to the
    Redis deny-list until it would have expired.
    """
    token = extract_token(request, credentials)
    if token:
        try:
            payload = verify_access_token(token)
        except JWTError:
            payload = None
        if payload and payload.get("jti"):
            ttl = get_token_remaining_ttl(payload)
            if ttl > 0:
                await RedisCache(redis).revoke_token(payload["jti"], ttl)
                logger.info(f"Token revoked for user {payload.get('sub')}")

    response.delete_cookie(
        key=settings.AUTH_COOKIE_NAME,
        httponly=True,
        secure=settings.AUTH_COOKIE_SECURE,
        samesite=settings.AUTH_COOKIE_SAMESITE,
    )
    return MessageResponse(message="User logged out successfully")


@router.get("/check-auth", response_model=UserEnvelope)
async def check_auth(current_user: User = Depends(get_current_user)):
    return UserEnvelope(message="User is authenticated", user=UserResponse.model_validate(current_user))


@router.put("/update-profile", response_model=UserEnvelope)
async def update_profile(
    name: Optional[str] = Form(None),
    phone_number: Optional[str] = Form(None, max_length=20),
    profile_image: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaStore = Depends(get_media_store),
):
    """
    Update name and phone number, and optionally replace the profile image.
    Blank fields are left unchanged.
    """
    files = await read_uploads([profile_image] if profile_image else [])
    if files:
        stored = await media.upload(files[0], PROFILE_IMAGES_FOLDER)
        current_user.profile_image = stored.url

    if name:
        current_user.name = name
    if phone_number:
        current_user.phone_number = phone_number

    await db.flush()

    return UserEnvelope(message="Profile updated successfully", user=UserResponse.model_validate(current_user))
