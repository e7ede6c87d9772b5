"""
tests/test_admin.py
Tests for the admin dashboard and platform-wide booking listing.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import Booking, BookingStatus, ProviderProfile, User
from tests.conftest import auth_headers


async def _seed_bookings(db: AsyncSession, customer: User, profile: ProviderProfile, statuses):
    when = datetime.now(timezone.utc) + timedelta(days=1)
    for status in statuses:
        db.add(
            Booking(
                customer_id=customer.id,
                provider_id=profile.id,
                service_category="Tutoring",
                scheduled_date=when,
                status=status,
            )
        )
    await db.commit()


@pytest.mark.asyncio
async def test_dashboard_empty_store(client: AsyncClient, admin_user: User):
    response = await client.get("/api/admin/dashboard-stats", headers=auth_headers(admin_user))
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "data": {
            "total_bookings": 0,
            "status_counts": {
                "pending": 0,
                "accepted": 0,
                "rejected": 0,
                "completed": 0,
                "cancelled": 0,
            },
            "recent_bookings": [],
        },
    }


@pytest.mark.asyncio
async def test_dashboard_counts_and_recent_limit(
    client: AsyncClient,
    db: AsyncSession,
    admin_user: User,
    user: User,
    provider_profile: ProviderProfile,
):
    statuses = [BookingStatus.PENDING] * 3 + [BookingStatus.ACCEPTED] * 2 + [BookingStatus.REJECTED, BookingStatus.CANCELLED]
    await _seed_bookings(db, user, provider_profile, statuses)

    response = await client.get("/api/admin/dashboard-stats", headers=auth_headers(admin_user))
    data = response.json()["data"]
    assert data["total_bookings"] == 7
    assert data["status_counts"]["pending"] == 3
    assert data["status_counts"]["accepted"] == 2
    assert data["status_counts"]["completed"] == 0
    assert len(data["recent_bookings"]) == 5
    created = [b["created_at"] for b in data["recent_bookings"]]
    assert created == sorted(created, reverse=True)


@pytest.mark.asyncio
async def test_dashboard_requires_admin(client: AsyncClient, user: User, provider_user: User):
    for actor in (user, provider_user):
        response = await client.get("/api/admin/dashboard-stats", headers=auth_headers(actor))
        assert response.status_code == 403
        assert response.json()["message"] == "Unauthorized. Admin access required."


@pytest.mark.asyncio
async def test_all_bookings_listing(
    client: AsyncClient,
    db: AsyncSession,
    admin_user: User,
    user: User,
    provider_user: User,
    provider_profile: ProviderProfile,
):
    await _seed_bookings(db, user, provider_profile, [BookingStatus.PENDING, BookingStatus.COMPLETED])

    response = await client.get("/api/admin/all-bookings", headers=auth_headers(admin_user))
    assert response.status_code == 200
    bookings = response.json()["bookings"]
    assert len(bookings) == 2

    first = bookings[0]
    assert first["customer"]["email"] == user.email
    assert first["provider"]["user"]["email"] == provider_user.email
    assert first["provider"]["service_categories"] == ["Tutoring", "Home Cleaning"]


@pytest.mark.asyncio
async def test_all_bookings_requires_auth(client: AsyncClient):
    response = await client.get("/api/admin/all-bookings")
    assert response.status_code == 401
