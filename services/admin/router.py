"""
services/admin/router.py
Admin-only, read-only views over the whole platform:
booking status counts and the full booking listing.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.booking.views import booking_dashboard, booking_view, joined_bookings
from shared.middleware.auth import require_admin
from shared.models.models import Booking, User
from shared.schemas.schemas import BookingListEnvelope, DashboardEnvelope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])

LISTING_USER_FIELDS = ("profile_image", "email")


@router.get("/dashboard-stats", response_model=DashboardEnvelope)
async def admin_dashboard_stats(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Platform-wide status counts and the five newest bookings."""
    return DashboardEnvelope(data=await booking_dashboard(db))


@router.get("/all-bookings", response_model=BookingListEnvelope)
async def admin_all_bookings(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Every booking, newest created first.
    Both parties carry name, email and profile image; the provider side
    also carries the profile's service categories.
    """
    result = await db.execute(joined_bookings().order_by(Booking.created_at.desc()))
    bookings = [
        booking_view(
            booking,
            customer=customer,
            customer_fields=LISTING_USER_FIELDS,
            profile=profile,
            provider_user=provider_user,
            provider_fields=LISTING_USER_FIELDS,
            include_categories=True,
        )
        for booking, customer, profile, provider_user in result.all()
    ]
    logger.info(f"Admin {current_user.id} listed {len(bookings)} bookings")
    return BookingListEnvelope(bookings=bookings)
