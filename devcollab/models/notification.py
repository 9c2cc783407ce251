"""Notification SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class Notification(Base):
    """
    Durable user notification.

    The realtime push to the recipient's ``user`` room is a separate,
    best-effort delivery; this row is the copy that survives.

    Attributes:
        id: Unique identifier (UUID)
        user_id: FK to the recipient
        type: Notification type (see schemas.notification.NotificationType)
        text: Human readable text
        read: Whether the recipient has read it
        workspace_id / project_id / task_id / sender_id: Optional references
        created_at: Timestamp when the notification was created
    """

    __tablename__ = "Notifications"
    __allow_unmapped__ = True
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
    )
    type = Column(
        String(50),
        nullable=False,
    )
    text = Column(
        String(500),
        nullable=False,
    )
    read = Column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Reference data
    workspace_id = Column(UUID(as_uuid=True), nullable=True)
    project_id = Column(UUID(as_uuid=True), nullable=True)
    task_id = Column(UUID(as_uuid=True), nullable=True)
    sender_id = Column(UUID(as_uuid=True), nullable=True)

    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation of Notification."""
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type})>"
