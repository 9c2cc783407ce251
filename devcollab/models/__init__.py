"""SQLAlchemy ORM models package."""

from .message import Message
from .notification import Notification
from .project import Project
from .task import Task
from .user import User
from .workspace import Workspace
from .workspace_member import WorkspaceMember, WorkspaceRole

__all__ = [
    "Message",
    "Notification",
    "Project",
    "Task",
    "User",
    "Workspace",
    "WorkspaceMember",
    "WorkspaceRole",
]
