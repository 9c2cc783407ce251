"""Pydantic schemas for Notification model validation."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Notification type enumeration."""

    WORKSPACE_INVITE = "workspace_invite"
    TASK_ASSIGNED = "task_assigned"
    TASK_UPDATED = "task_updated"
    COMMENT = "comment"
    MENTION = "mention"
    PROJECT_ADDED = "project_added"


class NotificationData(BaseModel):
    """Structured reference data attached to a notification."""

    model_config = ConfigDict(from_attributes=True)

    workspace_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    task_id: Optional[UUID] = None
    sender_id: Optional[UUID] = None


class NotificationCreate(BaseModel):
    """Schema for creating a new notification."""

    user_id: UUID = Field(
        ...,
        description="ID of the user receiving the notification",
    )
    type: NotificationType = Field(
        ...,
        description="Type of notification",
        examples=["task_assigned", "mention"],
    )
    text: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Notification text",
        examples=["Ada mentioned you in Apollo chat"],
    )
    data: NotificationData = Field(default_factory=NotificationData)


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = Field(
        None,
        description="Unique notification identifier (absent if the durable write failed)",
    )
    user_id: UUID
    type: NotificationType
    text: str
    read: bool = False
    data: NotificationData = Field(default_factory=NotificationData)
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, notification) -> "NotificationResponse":
        """Build from a Notification row, folding the reference columns into ``data``."""
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            type=notification.type,
            text=notification.text,
            read=notification.read,
            data=NotificationData.model_validate(notification),
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    """Paginated notification list."""

    count: int
    total: int
    unread_count: int
    total_pages: int
    current_page: int
    data: List[NotificationResponse]


class NotificationCount(BaseModel):
    """Schema for notification count response."""

    total: int = Field(..., ge=0)
    unread: int = Field(..., ge=0)
