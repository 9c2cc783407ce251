"""Notification service for creating and delivering notifications.

A notification is delivered twice, independently:
- a durable row in the Notifications table
- a realtime push to the recipient's ``user`` room

A failed insert is logged and rolled back but never stops the push, and
an offline recipient simply receives nothing in realtime.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.notification import Notification
from ..models.project import Project
from ..models.task import Task
from ..models.user import User
from ..models.workspace import Workspace
from ..schemas.notification import (
    NotificationCreate,
    NotificationData,
    NotificationResponse,
    NotificationType,
)
from ..websocket.events import emit_notification
from ..websocket.manager import ConnectionManager

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Service for managing notifications.

    Handles notification creation and delivery via WebSocket.
    """

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        notification_data: NotificationCreate,
        deliver_realtime: bool = True,
        connection_manager: Optional[ConnectionManager] = None,
    ) -> NotificationResponse:
        """
        Persist a notification and push it to the recipient.

        Args:
            db: Database session
            notification_data: Notification data
            deliver_realtime: Whether to send via WebSocket immediately
            connection_manager: Manager used for the push (defaults to the global one)

        Returns:
            NotificationResponse: The delivered payload (``id`` is None when
            the durable write failed)
        """
        notification = Notification(
            user_id=notification_data.user_id,
            type=notification_data.type.value,
            text=notification_data.text,
            read=False,
            workspace_id=notification_data.data.workspace_id,
            project_id=notification_data.data.project_id,
            task_id=notification_data.data.task_id,
            sender_id=notification_data.data.sender_id,
        )

        response: Optional[NotificationResponse] = None
        try:
            db.add(notification)
            await db.commit()
            await db.refresh(notification)
            response = NotificationResponse.from_model(notification)
            logger.info(
                f"Notification created: id={notification.id}, "
                f"user={notification.user_id}, type={notification.type}"
            )
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to store {notification_data.type.value} notification "
                f"for user {notification_data.user_id}: {e}"
            )
            await db.rollback()

        if response is None:
            response = NotificationResponse(
                user_id=notification_data.user_id,
                type=notification_data.type,
                text=notification_data.text,
                data=notification_data.data,
            )

        if deliver_realtime:
            await emit_notification(
                notification_data.user_id,
                response.model_dump(mode="json"),
                connection_manager,
            )

        return response

    @staticmethod
    def build_mention(
        recipient_id: UUID,
        sender: User,
        project: Project,
    ) -> Optional[NotificationCreate]:
        """
        Build the mention notification for one recipient.

        Returns:
            The notification data, or None for a self-mention
        """
        if recipient_id == sender.id:
            return None

        return NotificationCreate(
            user_id=recipient_id,
            type=NotificationType.MENTION,
            text=f"{sender.name} mentioned you in {project.name} chat",
            data=NotificationData(
                workspace_id=project.workspace_id,
                project_id=project.id,
                sender_id=sender.id,
            ),
        )

    @staticmethod
    async def notify_mention(
        db: AsyncSession,
        recipient_id: UUID,
        sender: User,
        project: Project,
        connection_manager: Optional[ConnectionManager] = None,
    ) -> Optional[NotificationResponse]:
        """
        Notify a user that they were mentioned in a project chat.

        Returns:
            The delivered notification, or None for a self-mention
        """
        notification_data = NotificationService.build_mention(recipient_id, sender, project)
        if notification_data is None:
            return None
        return await NotificationService.create_notification(
            db, notification_data, connection_manager=connection_manager
        )

    @staticmethod
    async def notify_task_assigned(
        db: AsyncSession,
        task: Task,
        assignee_id: UUID,
        assigner: User,
    ) -> Optional[NotificationResponse]:
        """
        Notify a user that a task was assigned to them.

        Returns:
            The delivered notification, or None if self-assigned
        """
        if assignee_id == assigner.id:
            return None

        return await NotificationService.create_notification(
            db,
            NotificationCreate(
                user_id=assignee_id,
                type=NotificationType.TASK_ASSIGNED,
                text=f'You have been assigned to task "{task.title}"',
                data=NotificationData(
                    project_id=task.project_id,
                    task_id=task.id,
                    sender_id=assigner.id,
                ),
            ),
        )

    @staticmethod
    async def notify_workspace_invite(
        db: AsyncSession,
        workspace: Workspace,
        invitee_id: UUID,
        inviter: User,
    ) -> NotificationResponse:
        """Notify a user that they were added to a workspace."""
        return await NotificationService.create_notification(
            db,
            NotificationCreate(
                user_id=invitee_id,
                type=NotificationType.WORKSPACE_INVITE,
                text=f'You have been invited to join "{workspace.name}" workspace',
                data=NotificationData(
                    workspace_id=workspace.id,
                    sender_id=inviter.id,
                ),
            ),
        )

    @staticmethod
    async def notify_project_added(
        db: AsyncSession,
        project: Project,
        member_id: UUID,
        added_by: User,
    ) -> NotificationResponse:
        """Notify a user that they were added to a project."""
        return await NotificationService.create_notification(
            db,
            NotificationCreate(
                user_id=member_id,
                type=NotificationType.PROJECT_ADDED,
                text=f'You have been added to project "{project.name}"',
                data=NotificationData(
                    workspace_id=project.workspace_id,
                    project_id=project.id,
                    sender_id=added_by.id,
                ),
            ),
        )


# Convenience functions for direct import
create_notification = NotificationService.create_notification
notify_mention = NotificationService.notify_mention
notify_task_assigned = NotificationService.notify_task_assigned
notify_workspace_invite = NotificationService.notify_workspace_invite
notify_project_added = NotificationService.notify_project_added


__all__ = [
    "NotificationService",
    "create_notification",
    "notify_mention",
    "notify_project_added",
    "notify_task_assigned",
    "notify_workspace_invite",
]
