"""Notifications API endpoints.

Provides endpoints for reading and managing the current user's
notifications. Read-state changes are pushed to the user's other
connected devices as ``notification-read``.
"""

import math
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.notification import Notification
from ..models.user import User
from ..schemas.notification import (
    NotificationCount,
    NotificationListResponse,
    NotificationResponse,
)
from ..services.auth_service import get_current_user
from ..websocket.events import emit_notification_read

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


async def _count(db: AsyncSession, user_id: UUID, unread_only: bool = False) -> int:
    query = select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    return (await db.execute(query)).scalar_one()


async def _get_owned(db: AsyncSession, notification_id: UUID, user_id: UUID) -> Notification:
    # Filter by owner so other users' ids are indistinguishable from missing ones
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return notification


# ============================================================================
# List and Count endpoints
# ============================================================================


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List user notifications",
    responses={401: {"description": "Not authenticated"}},
)
async def list_notifications(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    unread_only: bool = Query(False, description="Return only unread notifications"),
) -> NotificationListResponse:
    """
    List notifications for the authenticated user, newest first.

    - **page** / **limit**: Pagination
    - **unread_only**: If true, return only unread notifications
    """
    query = select(Notification).where(Notification.user_id == current_user.id)
    if unread_only:
        query = query.where(Notification.read.is_(False))

    result = await db.execute(
        query.order_by(Notification.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    notifications = [NotificationResponse.from_model(n) for n in result.scalars()]

    total = await _count(db, current_user.id, unread_only)
    unread_count = total if unread_only else await _count(db, current_user.id, True)

    return NotificationListResponse(
        count=len(notifications),
        total=total,
        unread_count=unread_count,
        total_pages=math.ceil(total / limit) if total else 0,
        current_page=page,
        data=notifications,
    )


@router.get(
    "/count",
    response_model=NotificationCount,
    summary="Get notification counts",
    responses={401: {"description": "Not authenticated"}},
)
async def get_notification_count(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> NotificationCount:
    """Total and unread notification counts for the authenticated user."""
    return NotificationCount(
        total=await _count(db, current_user.id),
        unread=await _count(db, current_user.id, True),
    )


@router.get(
    "/unread-count",
    response_model=dict,
    summary="Get unread notification count",
    responses={401: {"description": "Not authenticated"}},
)
async def get_unread_count(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Number of unread notifications (badge counter)."""
    return {"count": await _count(db, current_user.id, True)}


# ============================================================================
# Bulk operations
# ============================================================================


@router.put(
    "/read-all",
    response_model=dict,
    summary="Mark all notifications as read",
    responses={401: {"description": "Not authenticated"}},
)
async def mark_all_notifications_read(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Mark every unread notification of the current user as read."""
    result = await db.execute(
        update(Notification)
        .where(
            Notification.user_id == current_user.id,
            Notification.read.is_(False),
        )
        .values(read=True)
    )
    await db.commit()

    await emit_notification_read(current_user.id)

    return {
        "message": f"Marked {result.rowcount} notifications as read",
        "updated_count": result.rowcount,
    }


@router.delete(
    "/clear-read",
    response_model=dict,
    summary="Delete read notifications",
    responses={401: {"description": "Not authenticated"}},
)
async def clear_read_notifications(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Delete every notification the current user has already read."""
    result = await db.execute(
        delete(Notification).where(
            Notification.user_id == current_user.id,
            Notification.read.is_(True),
        )
    )
    await db.commit()

    return {
        "message": f"Deleted {result.rowcount} read notifications",
        "deleted_count": result.rowcount,
    }


# ============================================================================
# Individual notification endpoints
# ============================================================================


@router.put(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read",
    responses={
        401: {"description": "Not authenticated"},
        404: {"description": "Notification not found"},
    },
)
async def mark_notification_read(
    notification_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> NotificationResponse:
    """
    Mark one notification as read.

    Only the notification's owner can update it.
    """
    notification = await _get_owned(db, notification_id, current_user.id)
    notification.read = True
    await db.commit()
    await db.refresh(notification)

    await emit_notification_read(current_user.id, [notification.id])

    return NotificationResponse.from_model(notification)


@router.delete(
    "/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a notification",
    responses={
        401: {"description": "Not authenticated"},
        404: {"description": "Notification not found"},
    },
)
async def delete_notification(
    notification_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    """Delete one notification. Only the owner can delete it."""
    notification = await _get_owned(db, notification_id, current_user.id)
    await db.delete(notification)
    await db.commit()
    return None
