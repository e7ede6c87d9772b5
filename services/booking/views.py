"""
services/booking/views.py
Read-side helpers shared by the booking, provider and admin routers:
the joined booking query, counterpart-field shaping and the
count-by-status dashboard aggregation.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from shared.models.models import Booking, BookingStatus, ProviderProfile, User
from shared.schemas.schemas import (
    BookingDashboard,
    BookingResponse,
    ProviderSummary,
    UserPublic,
)

RECENT_BOOKINGS_LIMIT = 5

CustomerUser = aliased(User, name="customer_user")
ProviderUser = aliased(User, name="provider_user")


def user_public(user: Optional[User], fields: Sequence[str]) -> Optional[UserPublic]:
    """Project a User onto the public fields the caller asked for."""
    if user is None:
        return None
    return UserPublic(id=user.id, name=user.name, **{f: getattr(user, f) for f in fields})


def booking_view(
    booking: Booking,
    customer: Optional[User] = None,
    customer_fields: Sequence[str] = (),
    profile: Optional[ProviderProfile] = None,
    provider_user: Optional[User] = None,
    provider_fields: Sequence[str] = (),
    include_categories: bool = False,
) -> BookingResponse:
    response = BookingResponse.model_validate(booking)
    if customer is not None:
        response.customer = user_public(customer, customer_fields)
    if profile is not None:
        response.provider = ProviderSummary(
            id=profile.id,
            service_categories=list(profile.service_categories or []) if include_categories else [],
            user=user_public(provider_user, provider_fields),
        )
    return response


def joined_bookings() -> Select:
    """Booking rows with customer, provider profile and provider user attached."""
    return (
        select(Booking, CustomerUser, ProviderProfile, ProviderUser)
        .outerjoin(CustomerUser, CustomerUser.id == Booking.customer_id)
        .outerjoin(ProviderProfile, ProviderProfile.id == Booking.provider_id)
        .outerjoin(ProviderUser, ProviderUser.id == ProviderProfile.user_id)
    )


async def booking_dashboard(
    db: AsyncSession,
    provider_id: Optional[uuid.UUID] = None,
) -> BookingDashboard:
    """
    Count bookings by status plus the most recently created ones.
    Scoped to one provider profile when `provider_id` is given, otherwise
    platform-wide. Every status key is present even when its count is 0.
    """
    counts_query = select(Booking.status, func.count(Booking.id)).group_by(Booking.status)
    recent_query = joined_bookings().order_by(Booking.created_at.desc()).limit(
        RECENT_BOOKINGS_LIMIT
    )
    if provider_id is not None:
        counts_query = counts_query.where(Booking.provider_id == provider_id)
        recent_query = recent_query.where(Booking.provider_id == provider_id)

    status_counts = {s.value: 0 for s in BookingStatus}
    total = 0
    for status, count in (await db.execute(counts_query)).all():
        status_counts[BookingStatus(status).value] = count
        total += count

    rows = (await db.execute(recent_query)).all()
    recent = [
        booking_view(
            booking,
            customer=customer,
            customer_fields=("profile_image",),
            profile=profile,
            provider_user=provider_user,
            provider_fields=("profile_image",),
        )
        for booking, customer, profile, provider_user in rows
    ]

    return BookingDashboard(
        total_bookings=total,
        status_counts=status_counts,
        recent_bookings=recent,
    )
