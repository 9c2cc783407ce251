"""Chat message SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class Message(Base):
    """
    Project chat message.

    Attributes:
        id: Unique identifier (UUID)
        project_id: FK to the project whose chat room holds the message
        sender_id: FK to the author
        text: Message body
        mentions: List of mentioned user ids (as strings)
        edited: Whether the message was edited after creation
        edited_at: Timestamp of the last edit
        created_at: Timestamp when the message was sent
    """

    __tablename__ = "Messages"
    __allow_unmapped__ = True
    __table_args__ = (
        Index("ix_messages_project_created", "project_id", "created_at"),
    )

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    project_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text = Column(
        String(2000),
        nullable=False,
    )
    mentions = Column(
        JSON,
        nullable=False,
        default=list,
    )
    edited = Column(
        Boolean,
        nullable=False,
        default=False,
    )
    edited_at = Column(
        DateTime,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation of Message."""
        return f"<Message(id={self.id}, project_id={self.project_id})>"
