"""
shared/models/models.py
All SQLAlchemy ORM models for the marketplace.
UUID primary keys throughout; column types stay portable (Uuid, JSON)
so the same models run on PostgreSQL and on SQLite in the test suite.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from config.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enumerations ──────────────────────────────────────────────

class UserRole(str, PyEnum):
    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"


class BookingStatus(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ServiceCategory(str, PyEnum):
    """Fixed list of categories a provider may advertise."""
    BAKING = "Baking (Cookies/Cakes)"
    HOME_CATERING = "Home Catering"
    HANDMADE_CRAFTS = "Handmade Crafts"
    TAILORING = "Tailoring & Alterations"
    KNITTING = "Knitting & Crochet"
    EMBROIDERY = "Embroidery"
    MAKEUP_ARTIST = "Makeup Artist"
    HENNA_ARTIST = "Henna Artist"
    CHILDCARE = "Childcare / Babysitting"
    TUTORING = "Tutoring"
    EVENT_PLANNING = "Event Planning"
    GRAPHIC_DESIGN = "Graphic Design"
    CONTENT_WRITING = "Content Writing"
    SOCIAL_MEDIA = "Social Media Management"
    HOME_CLEANING = "Home Cleaning"
    LAUNDRY = "Laundry Services"


def _enum_column(enum_cls):
    """Store enum *values* (e.g. "pending"), not member names."""
    return Enum(
        enum_cls,
        values_callable=lambda e: [m.value for m in e],
        native_enum=False,
        length=32,
        validate_strings=True,
    )


# ── Mixins ────────────────────────────────────────────────────

class TimestampMixin:
    """Adds created_at and updated_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


# ── Models ────────────────────────────────────────────────────

class User(TimestampMixin, Base):
    """Account identity. Role moves customer -> provider at most once."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    profile_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole), nullable=False, default=UserRole.CUSTOMER
    )

    __table_args__ = (Index("ix_users_role", "role"),)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"


class ProviderProfile(TimestampMixin, Base):
    """
    Provider-facing extension of a User (one per user).
    Bookings, comments and service offerings point at this row, not at the User.
    """
    __tablename__ = "provider_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), unique=True, nullable=False
    )
    bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    experience: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    service_categories: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    # [{"url": "...", "public_id": "..."}]
    portfolio_images: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)

    def offers(self, category: str) -> bool:
        return category in (self.service_categories or [])


class ServiceOffering(TimestampMixin, Base):
    """A single listed service under a provider profile."""
    __tablename__ = "service_offerings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("provider_profiles.id"), nullable=False
    )
    service_category: Mapped[str] = mapped_column(String(64), nullable=False)
    sub_categories: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    keywords: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    portfolio_images: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (Index("ix_service_offerings_provider_id", "provider_id"),)


class Booking(TimestampMixin, Base):
    """
    A service request from a customer to a provider profile.
    Nominal lifecycle: pending -> accepted | rejected | cancelled,
    accepted -> completed | cancelled. Only the actor rules are enforced.
    """
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("provider_profiles.id"), nullable=False
    )
    service_category: Mapped[str] = mapped_column(String(255), nullable=False)
    scheduled_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[BookingStatus] = mapped_column(
        _enum_column(BookingStatus), nullable=False, default=BookingStatus.PENDING
    )

    __table_args__ = (
        Index("ix_bookings_customer_id", "customer_id"),
        Index("ix_bookings_provider_id", "provider_id"),
        Index("ix_bookings_status", "status"),
    )


class Comment(TimestampMixin, Base):
    """Customer review attached to a provider profile."""
    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("provider_profiles.id"), nullable=False
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    comment: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("ix_comments_provider_id", "provider_id"),)
