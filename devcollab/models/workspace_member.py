"""WorkspaceMember SQLAlchemy model for user-workspace relationships with roles."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class WorkspaceRole(str, Enum):
    """Workspace membership roles."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class WorkspaceMember(Base):
    """
    WorkspaceMember model representing user-workspace relationships.

    Attributes:
        id: Unique identifier (UUID)
        workspace_id: FK to the workspace
        user_id: FK to the member user
        role: Role of the user (owner, admin, member)
        joined_at: Timestamp when the membership was created
    """

    __tablename__ = "WorkspaceMembers"
    __allow_unmapped__ = True
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )

    # Foreign keys
    workspace_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role = Column(
        String(20),
        nullable=False,
        default=WorkspaceRole.MEMBER.value,
    )

    joined_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation of WorkspaceMember."""
        return (
            f"<WorkspaceMember(workspace_id={self.workspace_id}, "
            f"user_id={self.user_id}, role={self.role})>"
        )
