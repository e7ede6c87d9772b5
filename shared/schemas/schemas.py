"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.
Every response is wrapped in an envelope: {"success", "message", <data-field>}.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from shared.models.models import BookingStatus, UserRole


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class MessageResponse(BaseSchema):
    success: bool = True
    message: str


class ErrorResponse(BaseSchema):
    success: bool = False
    message: str
    request_id: Optional[str] = None


# ── Media ─────────────────────────────────────────────────────

class MediaResponse(BaseSchema):
    url: str
    public_id: str


# ── User ──────────────────────────────────────────────────────

class RegisterRequest(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1, max_length=20)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password should be at least 8 characters")
        return v


class LoginRequest(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserResponse(BaseSchema):
    id: uuid.UUID
    name: str
    email: EmailStr
    phone_number: str
    profile_image: Optional[str]
    role: UserRole
    created_at: datetime


class UserPublic(BaseSchema):
    """Counterpart fields attached to bookings and comments."""
    id: uuid.UUID
    name: str
    phone_number: Optional[str] = None
    profile_image: Optional[str] = None
    email: Optional[str] = None


class UserEnvelope(BaseSchema):
    success: bool = True
    message: str
    user: UserResponse


# ── Provider profile ──────────────────────────────────────────

class ServiceOfferingResponse(BaseSchema):
    id: uuid.UUID
    provider_id: uuid.UUID
    service_category: str
    sub_categories: List[str]
    keywords: List[str]
    description: str
    portfolio_images: List[MediaResponse]
    created_at: datetime


class ProviderProfileResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    bio: str
    experience: float
    service_categories: List[str]
    portfolio_images: List[MediaResponse]
    created_at: datetime
    updated_at: datetime


class ProviderDetailResponse(ProviderProfileResponse):
    # Joined
    user: Optional[UserPublic] = None
    service_offerings: List[ServiceOfferingResponse] = []


class ProfileEnvelope(BaseSchema):
    success: bool = True
    message: str
    profile: ProviderProfileResponse


class ProviderEnvelope(BaseSchema):
    success: bool = True
    provider: ProviderDetailResponse


class ProviderListEnvelope(BaseSchema):
    success: bool = True
    providers: List[ProviderDetailResponse]


class ServiceEnvelope(BaseSchema):
    success: bool = True
    message: str
    service: ServiceOfferingResponse


# ── Booking ───────────────────────────────────────────────────

class BookingCreateRequest(BaseSchema):
    service_category: str = Field(..., min_length=1)
    scheduled_date: datetime
    notes: Optional[str] = Field(None, max_length=2000)


class BookingStatusUpdateRequest(BaseSchema):
    # Kept as free text so an unknown value is reported by the workflow
    # ("Invalid status provided.") instead of a schema error.
    status: Optional[str] = None


class ProviderSummary(BaseSchema):
    id: uuid.UUID
    service_categories: List[str] = []
    user: Optional[UserPublic] = None


class BookingResponse(BaseSchema):
    id: uuid.UUID
    customer_id: uuid.UUID
    provider_id: uuid.UUID
    service_category: str
    scheduled_date: datetime
    notes: str
    status: BookingStatus
    created_at: datetime
    updated_at: datetime
    # Joined
    customer: Optional[UserPublic] = None
    provider: Optional[ProviderSummary] = None


class BookingEnvelope(BaseSchema):
    success: bool = True
    message: str
    booking: BookingResponse


class BookingListEnvelope(BaseSchema):
    success: bool = True
    message: Optional[str] = None
    bookings: List[BookingResponse]


class BookingDashboard(BaseSchema):
    total_bookings: int
    status_counts: Dict[str, int]
    recent_bookings: List[BookingResponse]


class DashboardEnvelope(BaseSchema):
    success: bool = True
    data: BookingDashboard


# ── Comment ───────────────────────────────────────────────────

class CommentRequest(BaseSchema):
    comment: Optional[str] = Field(None, max_length=2000)


class CommentResponse(BaseSchema):
    id: uuid.UUID
    provider_id: uuid.UUID
    customer_id: uuid.UUID
    comment: str
    created_at: datetime
    updated_at: datetime
    # Joined
    customer: Optional[UserPublic] = None


class CommentEnvelope(BaseSchema):
    success: bool = True
    message: str
    comment: CommentResponse


class CommentListEnvelope(BaseSchema):
    success: bool = True
    comments: List[CommentResponse]
