"""
services/booking/router.py
Booking requests between customers and provider profiles.
States: pending → accepted | rejected | cancelled, accepted → completed | cancelled
(who may set which status lives in services/booking/workflow.py).
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.booking import workflow
from services.booking.views import CustomerUser, booking_view, joined_bookings
from shared.exceptions import InvalidRequest, NotFound
from shared.middleware.auth import get_current_user, require_provider
from shared.models.models import Booking, BookingStatus, ProviderProfile, User
from shared.schemas.schemas import (
    BookingCreateRequest,
    BookingEnvelope,
    BookingListEnvelope,
    BookingStatusUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])

COUNTERPART_FIELDS = ("phone_number", "profile_image")


# ── Helpers ───────────────────────────────────────────────────

async def _get_booking_or_404(booking_id: UUID, db: AsyncSession) -> Booking:
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFound("Booking not found.")
    return booking


async def _get_profile_for_user(user_id: UUID, db: AsyncSession) -> ProviderProfile | None:
    result = await db.execute(select(ProviderProfile).where(ProviderProfile.user_id == user_id))
    return result.scalar_one_or_none()


# ── Create ────────────────────────────────────────────────────

@router.post("/{provider_id}", response_model=BookingEnvelope, status_code=status.HTTP_201_CREATED)
async def create_booking(
    provider_id: UUID,
    data: BookingCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Request a service from a provider profile.
    - The provider profile must exist
    - The requested category must be one the provider advertises
    - New bookings always start as `pending`
    """
    result = await db.execute(select(ProviderProfile).where(ProviderProfile.id == provider_id))
    profile = result.scalar_one_or_none()
    if not profile:
        raise NotFound("Service provider not found.")

    if not profile.offers(data.service_category):
        raise InvalidRequest("The provider does not offer this service.")

    booking = Booking(
        customer_id=current_user.id,
        provider_id=profile.id,
        service_category=data.service_category,
        scheduled_date=data.scheduled_date,
        notes=data.notes or "",
        status=BookingStatus.PENDING,
    )
    db.add(booking)
    await db.flush()

    logger.info(f"Booking {booking.id} created by {current_user.id} for provider {profile.id}")

    return BookingEnvelope(
        message="Booking request created successfully.",
        booking=booking_view(booking),
    )


# ── Read Endpoints ────────────────────────────────────────────

@router.get("/my-bookings", response_model=BookingListEnvelope)
async def list_my_bookings(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Bookings the current user made, newest scheduled date first."""
    result = await db.execute(
        joined_bookings()
        .where(Booking.customer_id == current_user.id)
        .order_by(Booking.scheduled_date.desc())
    )
    bookings = [
        booking_view(
            booking,
            profile=profile,
            provider_user=provider_user,
            provider_fields=COUNTERPART_FIELDS,
        )
        for booking, _customer, profile, provider_user in result.all()
    ]
    return BookingListEnvelope(
        message="Customer bookings fetched successfully.",
        bookings=bookings,
    )


@router.get("/my-requests", response_model=BookingListEnvelope)
async def list_my_requests(
    current_user: User = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    """Bookings addressed to the current provider's profile, newest scheduled date first."""
    profile = await _get_profile_for_user(current_user.id, db)
    if not profile:
        raise NotFound("Provider profile not found.")

    result = await db.execute(
        select(Booking, CustomerUser)
        .outerjoin(CustomerUser, CustomerUser.id == Booking.customer_id)
        .where(Booking.provider_id == profile.id)
        .order_by(Booking.scheduled_date.desc())
    )
    bookings = [
        booking_view(booking, customer=customer, customer_fields=COUNTERPART_FIELDS)
        for booking, customer in result.all()
    ]
    return BookingListEnvelope(
        message="Provider bookings fetched successfully.",
        bookings=bookings,
    )


# ── Status Transition ─────────────────────────────────────────

@router.put("/update-status/{booking_id}", response_model=BookingEnvelope)
async def update_booking_status(
    booking_id: UUID,
    data: BookingStatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Customer may only cancel; provider may accept, reject or complete.
    The new status overwrites the old one unconditionally.
    """
    booking = await _get_booking_or_404(booking_id, db)

    profile = await _get_profile_for_user(current_user.id, db)
    previous = workflow.apply_transition(
        current_user,
        profile.id if profile else None,
        booking,
        data.status,
    )

    if not workflow.is_nominal_transition(previous, booking.status):
        logger.warning(
            f"Booking {booking.id} moved off the nominal path: "
            f"{previous.value} -> {booking.status.value} by {current_user.id}"
        )
    else:
        logger.info(
            f"Booking {booking.id}: {previous.value} -> {booking.status.value} by {current_user.id}"
        )

    await db.flush()

    return BookingEnvelope(
        message=f"Booking status updated to {booking.status.value}.",
        booking=booking_view(booking),
    )
