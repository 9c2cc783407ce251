"""User SQLAlchemy model for authentication and profile data."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class User(Base):
    """
    User model representing application users.

    Attributes:
        id: Unique identifier (UUID)
        email: User's email address (unique)
        password_hash: Hashed password for authentication
        name: Display name shown in chat and presence payloads
        avatar: URL to user's avatar image
        is_active: Inactive users cannot open realtime connections
        last_login: Timestamp of the last successful login
        created_at: Timestamp when user was created
    """

    __tablename__ = "Users"
    __allow_unmapped__ = True

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )

    # Authentication fields
    email = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash = Column(
        String(255),
        nullable=False,
    )

    # Profile fields
    name = Column(
        String(50),
        nullable=False,
    )
    avatar = Column(
        String(500),
        nullable=False,
        default="",
    )
    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
    )

    # Timestamps
    last_login = Column(
        DateTime,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def to_profile(self) -> dict:
        """Minimal public profile used in realtime payloads."""
        return {
            "id": str(self.id),
            "name": self.name,
            "avatar": self.avatar or "",
        }

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, email={self.email})>"
