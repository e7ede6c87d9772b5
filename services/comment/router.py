"""
services/comment/router.py
Customer comments on provider profiles.
Editable only by the author; deletable by the author or an admin (hard delete).
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.booking.views import user_public
from shared.exceptions import Forbidden, InvalidRequest, NotFound
from shared.middleware.auth import get_current_user
from shared.models.models import Comment, ProviderProfile, User, UserRole
from shared.schemas.schemas import (
    CommentEnvelope,
    CommentListEnvelope,
    CommentRequest,
    CommentResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comments", tags=["Comments"])


def _require_text(data: CommentRequest) -> str:
    # Whitespace-only text counts as empty
    text = (data.comment or "").strip()
    if not text:
        raise InvalidRequest("Comment text is required.")
    return text


async def _get_comment_or_404(comment_id: UUID, db: AsyncSession) -> Comment:
    result = await db.execute(select(Comment).where(Comment.id == comment_id))
    comment = result.scalar_one_or_none()
    if not comment:
        raise NotFound("Comment not found.")
    return comment


@router.post(
    "/create-comment/{provider_id}",
    response_model=CommentEnvelope,
    status_code=status.HTTP_201_CREATED,
)
async def create_comment(
    provider_id: UUID,
    data: CommentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Any authenticated user except the profile owner may comment."""
    text = _require_text(data)

    result = await db.execute(select(ProviderProfile).where(ProviderProfile.id == provider_id))
    profile = result.scalar_one_or_none()
    if not profile:
        raise NotFound("Provider profile not found.")
    if profile.user_id == current_user.id:
        raise InvalidRequest("You cannot comment on your own profile.")

    comment = Comment(provider_id=profile.id, customer_id=current_user.id, comment=text)
    db.add(comment)
    await db.flush()

    logger.info(f"Comment {comment.id} added to profile {profile.id} by {current_user.id}")

    return CommentEnvelope(
        message="Comment added successfully.",
        comment=CommentResponse.model_validate(comment),
    )


@router.get("/get-comments/{provider_id}", response_model=CommentListEnvelope)
async def get_comments(provider_id: UUID, db: AsyncSession = Depends(get_db)):
    """Public: comments on a profile, newest first, with the commenter's name and photo."""
    result = await db.execute(
        select(Comment, User)
        .outerjoin(User, User.id == Comment.customer_id)
        .where(Comment.provider_id == provider_id)
        .order_by(Comment.created_at.desc())
    )
    comments = []
    for comment, author in result.all():
        view = CommentResponse.model_validate(comment)
        view.customer = user_public(author, ("profile_image",))
        comments.append(view)
    return CommentListEnvelope(comments=comments)


@router.put("/update-comment/{comment_id}", response_model=CommentEnvelope)
async def update_comment(
    comment_id: UUID,
    data: CommentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    text = _require_text(data)
    comment = await _get_comment_or_404(comment_id, db)
    if comment.customer_id != current_user.id:
        raise Forbidden("You can only update your own comments.")

    comment.comment = text
    await db.flush()

    return CommentEnvelope(
        message="Comment updated successfully.",
        comment=CommentResponse.model_validate(comment),
    )


@router.delete("/delete/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Author or admin only."""
    comment = await _get_comment_or_404(comment_id, db)
    if comment.customer_id != current_user.id and current_user.role != UserRole.ADMIN:
        raise Forbidden("You are not authorized to delete this comment.")

    await db.delete(comment)
    await db.flush()

    logger.info(f"Comment {comment_id} deleted by {current_user.id}")
    return MessageResponse(message="Comment deleted successfully.")
