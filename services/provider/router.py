"""
services/provider/router.py
Provider profiles and their service offerings: becoming a provider,
profile/portfolio updates, public listings and the provider dashboard.
Portfolio images are pushed to the media store before anything is persisted.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.booking.views import booking_dashboard
from shared.exceptions import Forbidden, InvalidRequest, NotFound
from shared.middleware.auth import get_current_user, require_provider
from shared.models.models import (
    ProviderProfile,
    ServiceCategory,
    ServiceOffering,
    User,
    UserRole,
)
from shared.schemas.schemas import (
    DashboardEnvelope,
    MessageResponse,
    ProfileEnvelope,
    ProviderDetailResponse,
    ProviderEnvelope,
    ProviderListEnvelope,
    ProviderProfileResponse,
    ServiceEnvelope,
    ServiceOfferingResponse,
    UserPublic,
)
from shared.utils.media import (
    PROVIDER_PORTFOLIO_FOLDER,
    SERVICE_OFFERINGS_FOLDER,
    MediaStore,
    get_media_store,
    read_uploads,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/provider-profile", tags=["Provider Profiles"])

ALLOWED_CATEGORIES = {c.value for c in ServiceCategory}


# ── Helpers ───────────────────────────────────────────────────

def _validate_categories(categories: Optional[List[str]]) -> List[str]:
    """Keep input order, drop blanks and duplicates, reject unknown categories."""
    cleaned: List[str] = []
    for raw in categories or []:
        category = raw.strip()
        if not category or category in cleaned:
            continue
        if category not in ALLOWED_CATEGORIES:
            raise InvalidRequest(f"'{category}' is not a supported service category.")
        cleaned.append(category)
    return cleaned


def _normalize_terms(values: Optional[List[str]]) -> List[str]:
    terms: List[str] = []
    for raw in values or []:
        term = raw.strip()
        if term and term not in terms:
            terms.append(term)
    return terms


def _check_upload_count(uploads: Optional[List[UploadFile]]) -> None:
    if uploads and len(uploads) > settings.MEDIA_MAX_FILES:
        raise InvalidRequest(f"At most {settings.MEDIA_MAX_FILES} images can be uploaded at once.")


async def _has_profile(user_id: UUID, db: AsyncSession) -> bool:
    result = await db.execute(select(ProviderProfile.id).where(ProviderProfile.user_id == user_id))
    return result.scalar_one_or_none() is not None


async def _get_own_profile_or_404(user: User, db: AsyncSession) -> ProviderProfile:
    result = await db.execute(select(ProviderProfile).where(ProviderProfile.user_id == user.id))
    profile = result.scalar_one_or_none()
    if not profile:
        raise NotFound("Provider profile not found.")
    return profile


async def _detail_views(profiles: List[ProviderProfile], db: AsyncSession) -> List[ProviderDetailResponse]:
    """Attach the owning user's public fields and the service offerings."""
    if not profiles:
        return []
    profile_ids = [p.id for p in profiles]
    user_ids = [p.user_id for p in profiles]

    users = {
        u.id: u
        for u in (await db.execute(select(User).where(User.id.in_(user_ids)))).scalars()
    }
    offerings: dict = {pid: [] for pid in profile_ids}
    offering_rows = await db.execute(
        select(ServiceOffering)
        .where(ServiceOffering.provider_id.in_(profile_ids))
        .order_by(ServiceOffering.created_at.desc())
    )
    for offering in offering_rows.scalars():
        offerings[offering.provider_id].append(ServiceOfferingResponse.model_validate(offering))

    views = []
    for profile in profiles:
        view = ProviderDetailResponse.model_validate(profile)
        user = users.get(profile.user_id)
        if user is not None:
            view.user = UserPublic(id=user.id, name=user.name, profile_image=user.profile_image)
        view.service_offerings = offerings[profile.id]
        views.append(view)
    return views


# ── Becoming / Being a Provider ───────────────────────────────

@router.post("/become-provider", response_model=ProfileEnvelope, status_code=status.HTTP_201_CREATED)
async def become_provider(
    bio: Optional[str] = Form(None),
    experience: Optional[float] = Form(None, ge=0),
    service_categories: Optional[List[str]] = Form(None),
    portfolio_images: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    media: MediaStore = Depends(get_media_store),
):
    """
    Create the caller's provider profile and switch their role to provider.
    A customer can do this exactly once; the role never reverts.
    """
    if not bio or experience is None:
        raise InvalidRequest("Bio and experience are required.")

    if await _has_profile(current_user.id, db):
        raise InvalidRequest("You are already a provider.")
    if current_user.role != UserRole.CUSTOMER:
        raise Forbidden("Only customers can become providers.")

    categories = _validate_categories(service_categories)
    _check_upload_count(portfolio_images)

    stored = await media.upload_many(await read_uploads(portfolio_images), PROVIDER_PORTFOLIO_FOLDER)

    profile = ProviderProfile(
        user_id=current_user.id,
        bio=bio,
        experience=experience,
        service_categories=categories,
        portfolio_images=[s.as_dict() for s in stored],
    )
    db.add(profile)
    current_user.role = UserRole.PROVIDER
    try:
        await db.flush()
    except IntegrityError as exc:
        # Lost a race on the unique index on provider_profiles.user_id
        raise InvalidRequest("You are already a provider.") from exc

    logger.info(f"User {current_user.id} became provider with profile {profile.id}")

    return ProfileEnvelope(
        message="Congratulations! You are now a provider. Proceed to add your services.",
        profile=ProviderProfileResponse.model_validate(profile),
    )


@router.put("/update-provider-profile", response_model=ProfileEnvelope)
async def update_provider_profile(
    bio: Optional[str] = Form(None),
    experience: Optional[float] = Form(None, ge=0),
    service_categories: Optional[List[str]] = Form(None),
    portfolio_images: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
    media: MediaStore = Depends(get_media_store),
):
    """
    Update bio, experience and categories. Only provided fields change.
    New portfolio images are appended to the existing ones.
    """
    profile = await _get_own_profile_or_404(current_user, db)

    categories = _validate_categories(service_categories) if service_categories is not None else None
    _check_upload_count(portfolio_images)

    stored = await media.upload_many(await read_uploads(portfolio_images), PROVIDER_PORTFOLIO_FOLDER)

    if bio is not None:
        profile.bio = bio
    if experience is not None:
        profile.experience = experience
    if categories is not None:
        profile.service_categories = categories
    if stored:
        profile.portfolio_images = list(profile.portfolio_images or []) + [s.as_dict() for s in stored]

    await db.flush()

    return ProfileEnvelope(
        message="Profile updated successfully.",
        profile=ProviderProfileResponse.model_validate(profile),
    )


@router.get("/provider-dashboard-stats", response_model=DashboardEnvelope)
async def provider_dashboard_stats(
    current_user: User = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    """Status counts and the five newest bookings for the caller's profile."""
    profile = await _get_own_profile_or_404(current_user, db)
    return DashboardEnvelope(data=await booking_dashboard(db, provider_id=profile.id))


# ── Service Offerings ─────────────────────────────────────────

@router.post("/service", response_model=ServiceEnvelope, status_code=status.HTTP_201_CREATED)
async def add_service_offering(
    service_category: str = Form(...),
    description: str = Form(""),
    sub_categories: Optional[List[str]] = Form(None),
    keywords: Optional[List[str]] = Form(None),
    portfolio_images: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
    media: MediaStore = Depends(get_media_store),
):
    """List a new service. Its category must be one the profile advertises."""
    files = await read_uploads(portfolio_images)
    if not files:
        raise InvalidRequest("Portfolio images are required for a service.")
    _check_upload_count(portfolio_images)

    profile = await _get_own_profile_or_404(current_user, db)
    if not profile.offers(service_category):
        raise InvalidRequest("Add this category to your profile before listing a service in it.")

    stored = await media.upload_many(files, SERVICE_OFFERINGS_FOLDER)

    offering = ServiceOffering(
        provider_id=profile.id,
        service_category=service_category,
        sub_categories=_normalize_terms(sub_categories),
        keywords=_normalize_terms(keywords),
        description=description,
        portfolio_images=[s.as_dict() for s in stored],
    )
    db.add(offering)
    await db.flush()

    logger.info(f"Service offering {offering.id} added to profile {profile.id}")

    return ServiceEnvelope(
        message="Service added successfully.",
        service=ServiceOfferingResponse.model_validate(offering),
    )


@router.delete("/service/{service_id}", response_model=MessageResponse)
async def delete_service_offering(
    service_id: UUID,
    current_user: User = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
    media: MediaStore = Depends(get_media_store),
):
    """Remove an owned offering together with its images in the media store."""
    profile = await _get_own_profile_or_404(current_user, db)

    result = await db.execute(select(ServiceOffering).where(ServiceOffering.id == service_id))
    offering = result.scalar_one_or_none()
    if not offering:
        raise NotFound("Service offering not found.")
    if offering.provider_id != profile.id:
        raise Forbidden("You are not authorized to delete this service.")

    await media.delete_many([img["public_id"] for img in offering.portfolio_images or []])
    await db.delete(offering)
    await db.flush()

    logger.info(f"Service offering {service_id} deleted from profile {profile.id}")
    return MessageResponse(message="Service deleted successfully.")


# ── Public Endpoints ──────────────────────────────────────────

@router.get("/get-all-providers", response_model=ProviderListEnvelope)
async def get_all_providers(db: AsyncSession = Depends(get_db)):
    """Every provider profile with its owner's public info and offerings."""
    result = await db.execute(select(ProviderProfile).order_by(ProviderProfile.created_at.desc()))
    profiles = list(result.scalars())
    return ProviderListEnvelope(providers=await _detail_views(profiles, db))


@router.get("/get-provider/{profile_id}", response_model=ProviderEnvelope)
async def get_provider(profile_id: UUID, db: AsyncSession = Depends(get_db)):
    """One provider profile by its profile id (not the user id)."""
    result = await db.execute(select(ProviderProfile).where(ProviderProfile.id == profile_id))
    profile = result.scalar_one_or_none()
    if not profile:
        raise NotFound("Provider not found.")
    views = await _detail_views([profile], db)
    return ProviderEnvelope(provider=views[0])
