"""
tests/test_providers.py
Tests for becoming a provider, profile updates, service offerings,
the public provider views and the provider dashboard.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import Booking, BookingStatus, ProviderProfile, ServiceOffering, User, UserRole
from tests.conftest import auth_headers


def _images(*names):
    return [("portfolio_images", (name, b"img-bytes", "image/jpeg")) for name in names]


# ── Become provider ───────────────────────────────────────────

@pytest.mark.asyncio
async def test_become_provider_success(client: AsyncClient, user: User, db: AsyncSession, media_store):
    response = await client.post(
        "/api/provider-profile/become-provider",
        headers=auth_headers(user),
        data={
            "bio": "Home baker",
            "experience": "3",
            "service_categories": ["Baking (Cookies/Cakes)", "Home Catering"],
        },
        files=_images("cake.jpg", "cookies.jpg"),
    )
    assert response.status_code == 201
    profile = response.json()["profile"]
    assert profile["user_id"] == str(user.id)
    assert profile["service_categories"] == ["Baking (Cookies/Cakes)", "Home Catering"]
    assert len(profile["portfolio_images"]) == 2
    assert all(img["public_id"] for img in profile["portfolio_images"])
    assert [folder for folder, _ in media_store.uploads] == ["provider_portfolios"] * 2

    await db.refresh(user)
    assert user.role == UserRole.PROVIDER


@pytest.mark.asyncio
async def test_become_provider_requires_bio_and_experience(client: AsyncClient, user: User):
    response = await client.post(
        "/api/provider-profile/become-provider",
        headers=auth_headers(user),
        data={"bio": "No experience given"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_become_provider_twice_rejected(
    client: AsyncClient, provider_user: User, provider_profile: ProviderProfile
):
    response = await client.post(
        "/api/provider-profile/become-provider",
        headers=auth_headers(provider_user),
        data={"bio": "Again", "experience": "1"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "You are already a provider."


@pytest.mark.asyncio
async def test_become_provider_race_is_rejected(
    client: AsyncClient, user: User, db: AsyncSession, monkeypatch
):
    """A profile inserted after the existence check trips the unique index and maps to 400."""
    db.add(ProviderProfile(user_id=user.id, bio="Existing", experience=1, service_categories=[], portfolio_images=[]))
    await db.commit()

    async def no_profile(user_id, db):
        return False

    monkeypatch.setattr("services.provider.router._has_profile", no_profile)
    response = await client.post(
        "/api/provider-profile/become-provider",
        headers=auth_headers(user),
        data={"bio": "Again", "experience": "1"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "You are already a provider."

    await db.refresh(user)
    assert user.role == UserRole.CUSTOMER


@pytest.mark.asyncio
async def test_admin_cannot_become_provider(client: AsyncClient, admin_user: User):
    response = await client.post(
        "/api/provider-profile/become-provider",
        headers=auth_headers(admin_user),
        data={"bio": "Admin bio", "experience": "1"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_become_provider_unknown_category(client: AsyncClient, user: User, db: AsyncSession):
    response = await client.post(
        "/api/provider-profile/become-provider",
        headers=auth_headers(user),
        data={"bio": "Bio", "experience": "2", "service_categories": ["Plumbing"]},
    )
    assert response.status_code == 400
    assert await db.scalar(select(ProviderProfile).where(ProviderProfile.user_id == user.id)) is None


@pytest.mark.asyncio
async def test_become_provider_upload_failure_persists_nothing(
    client: AsyncClient, user: User, db: AsyncSession, media_store
):
    media_store.fail = True
    response = await client.post(
        "/api/provider-profile/become-provider",
        headers=auth_headers(user),
        data={"bio": "Bio", "experience": "2"},
        files=_images("a.jpg"),
    )
    assert response.status_code == 502
    assert await db.scalar(select(ProviderProfile).where(ProviderProfile.user_id == user.id)) is None
    await db.refresh(user)
    assert user.role == UserRole.CUSTOMER


# ── Update profile ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_update_provider_profile_appends_images(
    client: AsyncClient, provider_user: User, provider_profile: ProviderProfile
):
    headers = auth_headers(provider_user)
    first = await client.put(
        "/api/provider-profile/update-provider-profile", headers=headers, files=_images("one.jpg")
    )
    assert first.status_code == 200

    second = await client.put(
        "/api/provider-profile/update-provider-profile",
        headers=headers,
        data={"bio": "Updated bio"},
        files=_images("two.jpg"),
    )
    assert second.status_code == 200
    profile = second.json()["profile"]
    assert profile["bio"] == "Updated bio"
    assert profile["experience"] == 5
    assert profile["service_categories"] == ["Tutoring", "Home Cleaning"]
    assert len(profile["portfolio_images"]) == 2


@pytest.mark.asyncio
async def test_update_provider_profile_requires_provider(client: AsyncClient, user: User):
    response = await client.put(
        "/api/provider-profile/update-provider-profile",
        headers=auth_headers(user),
        data={"bio": "x"},
    )
    assert response.status_code == 403
    assert response.json()["message"] == "Unauthorized. Provider access required."


# ── Service offerings ─────────────────────────────────────────

@pytest.mark.asyncio
async def test_add_service_offering(
    client: AsyncClient, provider_user: User, provider_profile: ProviderProfile, media_store
):
    response = await client.post(
        "/api/provider-profile/service",
        headers=auth_headers(provider_user),
        data={
            "service_category": "Tutoring",
            "description": "Board exam prep",
            "sub_categories": ["Maths", "Physics", "Maths"],
            "keywords": ["cbse"],
        },
        files=_images("class.jpg"),
    )
    assert response.status_code == 201
    service = response.json()["service"]
    assert service["provider_id"] == str(provider_profile.id)
    assert service["sub_categories"] == ["Maths", "Physics"]
    assert service["keywords"] == ["cbse"]
    assert media_store.uploads == [("service_offerings", "class.jpg")]


@pytest.mark.asyncio
async def test_add_service_offering_requires_images(
    client: AsyncClient, provider_user: User, provider_profile: ProviderProfile
):
    response = await client.post(
        "/api/provider-profile/service",
        headers=auth_headers(provider_user),
        data={"service_category": "Tutoring"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_add_service_offering_category_not_on_profile(
    client: AsyncClient, provider_user: User, provider_profile: ProviderProfile, media_store
):
    response = await client.post(
        "/api/provider-profile/service",
        headers=auth_headers(provider_user),
        data={"service_category": "Embroidery"},
        files=_images("x.jpg"),
    )
    assert response.status_code == 400
    assert media_store.uploads == []


@pytest.mark.asyncio
async def test_delete_service_offering(
    client: AsyncClient,
    db: AsyncSession,
    provider_user: User,
    provider_profile: ProviderProfile,
    media_store,
):
    offering = ServiceOffering(
        provider_id=provider_profile.id,
        service_category="Tutoring",
        portfolio_images=[
            {"url": "https://media.test/a", "public_id": "service_offerings/a"},
            {"url": "https://media.test/b", "public_id": "service_offerings/b"},
        ],
    )
    db.add(offering)
    await db.commit()

    response = await client.delete(
        f"/api/provider-profile/service/{offering.id}", headers=auth_headers(provider_user)
    )
    assert response.status_code == 200
    assert sorted(media_store.deleted) == ["service_offerings/a", "service_offerings/b"]
    db.expunge_all()
    assert await db.get(ServiceOffering, offering.id) is None


@pytest.mark.asyncio
async def test_delete_service_offering_not_owner(
    client: AsyncClient, db: AsyncSession, provider_profile: ProviderProfile
):
    other = User(
        name="Other Provider",
        email="other-provider@example.com",
        password_hash="x",
        phone_number="1",
        role=UserRole.PROVIDER,
    )
    db.add(other)
    await db.flush()
    db.add(ProviderProfile(user_id=other.id, bio="b", experience=1, service_categories=["Tutoring"]))
    offering = ServiceOffering(provider_id=provider_profile.id, service_category="Tutoring")
    db.add(offering)
    await db.commit()

    response = await client.delete(
        f"/api/provider-profile/service/{offering.id}", headers=auth_headers(other)
    )
    assert response.status_code == 403


# ── Public views ──────────────────────────────────────────────

@pytest.mark.asyncio
async def test_get_all_providers_public(
    client: AsyncClient, db: AsyncSession, provider_user: User, provider_profile: ProviderProfile
):
    db.add(ServiceOffering(provider_id=provider_profile.id, service_category="Tutoring"))
    await db.commit()

    response = await client.get("/api/provider-profile/get-all-providers")
    assert response.status_code == 200
    providers = response.json()["providers"]
    assert len(providers) == 1
    assert providers[0]["user"]["name"] == provider_user.name
    assert "email" not in providers[0]["user"] or providers[0]["user"]["email"] is None
    assert len(providers[0]["service_offerings"]) == 1


@pytest.mark.asyncio
async def test_get_provider_by_profile_id(
    client: AsyncClient, provider_profile: ProviderProfile, provider_user: User
):
    response = await client.get(f"/api/provider-profile/get-provider/{provider_profile.id}")
    assert response.status_code == 200
    assert response.json()["provider"]["id"] == str(provider_profile.id)

    # A user id is not a profile id
    response = await client.get(f"/api/provider-profile/get-provider/{provider_user.id}")
    assert response.status_code == 404


# ── Dashboard ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_provider_dashboard_stats(
    client: AsyncClient,
    db: AsyncSession,
    user: User,
    provider_user: User,
    provider_profile: ProviderProfile,
):
    when = datetime.now(timezone.utc) + timedelta(days=2)
    for status in (BookingStatus.PENDING, BookingStatus.PENDING, BookingStatus.COMPLETED):
        db.add(
            Booking(
                customer_id=user.id,
                provider_id=provider_profile.id,
                service_category="Tutoring",
                scheduled_date=when,
                status=status,
            )
        )
    await db.commit()

    response = await client.get(
        "/api/provider-profile/provider-dashboard-stats", headers=auth_headers(provider_user)
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total_bookings"] == 3
    assert data["status_counts"] == {
        "pending": 2,
        "accepted": 0,
        "rejected": 0,
        "completed": 1,
        "cancelled": 0,
    }
    assert len(data["recent_bookings"]) == 3
    assert data["recent_bookings"][0]["customer"]["name"] == user.name


@pytest.mark.asyncio
async def test_provider_dashboard_without_profile(client: AsyncClient, provider_user: User):
    response = await client.get(
        "/api/provider-profile/provider-dashboard-stats", headers=auth_headers(provider_user)
    )
    assert response.status_code == 404
