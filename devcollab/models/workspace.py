"""Workspace SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class Workspace(Base):
    """
    Workspace model, the top-level container for projects.

    The owner always holds the ``owner`` role even without a
    WorkspaceMember row.
    """

    __tablename__ = "Workspaces"
    __allow_unmapped__ = True

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    name = Column(
        String(100),
        nullable=False,
    )
    owner_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation of Workspace."""
        return f"<Workspace(id={self.id}, name={self.name})>"
