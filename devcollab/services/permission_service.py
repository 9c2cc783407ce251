"""Permission service for workspace role checks.

Permission Model:
- Workspace Owner: the workspace's ``owner_id``; full control
- Workspace Admin: may moderate (delete others' chat messages)
- Workspace Member: may read and write in every project of the workspace

Projects, their boards and their chat rooms inherit access from the
workspace that contains them.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.project import Project
from ..models.workspace import Workspace
from ..models.workspace_member import WorkspaceMember, WorkspaceRole

MODERATOR_ROLES = frozenset({WorkspaceRole.OWNER.value, WorkspaceRole.ADMIN.value})


class PermissionService:
    """
    Service class for workspace-level permission checks.

    Every project-scoped check resolves the project's workspace first, so
    there is a single source of truth for membership.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the PermissionService.

        Args:
            db: SQLAlchemy async database session
        """
        self.db = db

    async def get_workspace_role(
        self,
        user_id: UUID,
        workspace_id: UUID,
        workspace: Optional[Workspace] = None,
    ) -> Optional[str]:
        """
        Get the user's role in a workspace.

        Args:
            user_id: The user's ID
            workspace_id: The workspace's ID
            workspace: Optional pre-fetched workspace to avoid an extra query

        Returns:
            The role string ('owner', 'admin', 'member') or None if not a member.
        """
        if workspace is None:
            workspace = await self.db.get(Workspace, workspace_id)

        if not workspace:
            return None

        if workspace.owner_id == user_id:
            return WorkspaceRole.OWNER.value

        result = await self.db.execute(
            select(WorkspaceMember.role).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def is_workspace_member(
        self,
        user_id: UUID,
        workspace_id: UUID,
    ) -> bool:
        """
        Check if a user belongs to a workspace (any role).

        Uses EXISTS so no rows are loaded.
        """
        result = await self.db.execute(
            select(
                exists().where(
                    Workspace.id == workspace_id,
                    Workspace.owner_id == user_id,
                )
            )
        )
        if result.scalar():
            return True

        result = await self.db.execute(
            select(
                exists().where(
                    WorkspaceMember.workspace_id == workspace_id,
                    WorkspaceMember.user_id == user_id,
                )
            )
        )
        return result.scalar() or False

    async def get_project_workspace_role(
        self,
        user_id: UUID,
        project: Project,
    ) -> Optional[str]:
        """Role of the user in the workspace that owns ``project``."""
        return await self.get_workspace_role(user_id, project.workspace_id)

    async def can_access_project(self, user_id: UUID, project: Project) -> bool:
        """Check read/write access to a project (and its chat)."""
        return await self.is_workspace_member(user_id, project.workspace_id)

    async def can_moderate_chat(self, user_id: UUID, workspace_id: UUID) -> bool:
        """
        Check whether a user may delete other members' chat messages.

        Returns:
            True for workspace owners and admins.
        """
        role = await self.get_workspace_role(user_id, workspace_id)
        return role in MODERATOR_ROLES


__all__ = [
    "MODERATOR_ROLES",
    "PermissionService",
]
