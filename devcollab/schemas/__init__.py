"""Pydantic schemas for request/response validation."""

from .message import (
    DeleteMessagePayload,
    EditMessagePayload,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessageUpdate,
    SendMessagePayload,
    TypingPayload,
)
from .notification import (
    NotificationCount,
    NotificationCreate,
    NotificationData,
    NotificationListResponse,
    NotificationResponse,
    NotificationType,
)
from .user import UserCreate, UserLogin, UserProfile, UserResponse

__all__ = [
    # Message
    "DeleteMessagePayload",
    "EditMessagePayload",
    "MessageCreate",
    "MessageListResponse",
    "MessageResponse",
    "MessageUpdate",
    "SendMessagePayload",
    "TypingPayload",
    # Notification
    "NotificationCount",
    "NotificationCreate",
    "NotificationData",
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationType",
    # User
    "UserCreate",
    "UserLogin",
    "UserProfile",
    "UserResponse",
]
