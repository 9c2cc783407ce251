"""Chat message pipeline.

Every chat command, whether it arrives over the WebSocket or the REST
API, goes through ``ChatService`` so both paths validate, persist and
broadcast identically:

    validate -> authorize -> persist + commit -> broadcast -> notify mentions

Nothing is broadcast unless the write committed, and a message that was
rejected leaves no trace in the room.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import (
    EditWindowExpiredError,
    InvalidPayloadError,
    NotAuthorizedError,
    NotFoundError,
    TransientIOError,
)
from ..models.message import Message
from ..models.project import Project
from ..models.user import User
from ..schemas.message import (
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    MessageUpdate,
)
from ..schemas.user import UserProfile
from ..websocket.events import emit_chat_message
from ..websocket.manager import ConnectionManager, MessageType, manager
from ..websocket.rooms import get_chat_room
from .notification_service import NotificationService
from .permission_service import PermissionService

logger = logging.getLogger(__name__)


def _validation_error(exc: ValidationError) -> InvalidPayloadError:
    first = exc.errors()[0] if exc.errors() else {}
    return InvalidPayloadError(message=first.get("msg", "Invalid payload"))


def _as_uuid(value) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class ChatService:
    """
    Project chat operations.

    Args:
        db: Database session (committed by the service after each write)
        connection_manager: Manager used for room broadcasts
            (defaults to the global one)
    """

    def __init__(
        self,
        db: AsyncSession,
        connection_manager: Optional[ConnectionManager] = None,
    ):
        self.db = db
        self.connection_manager = connection_manager or manager
        self.permissions = PermissionService(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Chat write failed: {e}")
            await self.db.rollback()
            raise TransientIOError(message="Could not save message, please retry")

    async def _get_project(self, project_id: UUID) -> Project:
        project = await self.db.get(Project, project_id)
        if project is None:
            raise NotFoundError("project_not_found", "Project not found")
        return project

    async def _get_message(self, message_id: UUID) -> Message:
        message = await self.db.get(Message, message_id)
        if message is None:
            raise NotFoundError("message_not_found", "Message not found")
        return message

    async def _require_project_access(self, user: User, project: Project, action: str) -> None:
        if not await self.permissions.can_access_project(user.id, project):
            logger.info(f"User {user.id} denied {action} in project {project.id}")
            raise NotAuthorizedError(message=f"Not authorized to {action} in this project")

    async def _load_profiles(self, user_ids: Iterable[UUID]) -> dict[UUID, UserProfile]:
        ids = {uid for uid in user_ids if uid is not None}
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {user.id: UserProfile.model_validate(user) for user in result.scalars()}

    @staticmethod
    def _mention_ids(message: Message) -> list[UUID]:
        ids = (_as_uuid(value) for value in (message.mentions or []))
        return [uid for uid in ids if uid is not None]

    @classmethod
    def _to_response(
        cls,
        message: Message,
        profiles: dict[UUID, UserProfile],
    ) -> MessageResponse:
        return MessageResponse(
            id=message.id,
            project_id=message.project_id,
            sender=profiles.get(message.sender_id),
            text=message.text,
            mentions=[profiles[uid] for uid in cls._mention_ids(message) if uid in profiles],
            edited=message.edited,
            edited_at=message.edited_at,
            created_at=message.created_at,
        )

    async def _resolve(self, message: Message) -> MessageResponse:
        profiles = await self._load_profiles([message.sender_id, *self._mention_ids(message)])
        return self._to_response(message, profiles)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def send_message(
        self,
        sender: User,
        project_id: UUID,
        text: str,
        mentions: Optional[Iterable[UUID]] = None,
    ) -> MessageResponse:
        """
        Persist a chat message and broadcast it to the project's chat room.

        Each distinct mentioned user other than the sender then gets a
        durable ``mention`` notification plus a realtime push.

        Raises:
            InvalidPayloadError: Blank or oversize text
            NotFoundError: ``project_not_found``
            NotAuthorizedError: Sender is not a member of the workspace
            TransientIOError: The write did not commit
        """
        try:
            payload = MessageCreate(text=text, mentions=list(mentions or []))
        except ValidationError as e:
            raise _validation_error(e)

        project = await self._get_project(project_id)
        await self._require_project_access(sender, project, "send messages")

        mention_ids = list(dict.fromkeys(payload.mentions))
        message = Message(
            project_id=project.id,
            sender_id=sender.id,
            text=payload.text,
            mentions=[str(uid) for uid in mention_ids],
        )
        self.db.add(message)
        await self._commit()

        profiles = await self._load_profiles([sender.id, *mention_ids])
        profiles.setdefault(sender.id, UserProfile.model_validate(sender))
        response = self._to_response(message, profiles)

        logger.info(
            f"Message {message.id} sent by {sender.id} in project {project.id} "
            f"({len(mention_ids)} mentions)"
        )

        await emit_chat_message(
            project.id,
            response.model_dump(mode="json", by_alias=True),
            self.connection_manager,
        )

        # Build every notification up front; a failed insert rolls the
        # session back and expires loaded attributes.
        pending = [
            NotificationService.build_mention(uid, sender, project)
            for uid in mention_ids
            if uid in profiles
        ]
        for notification_data in pending:
            if notification_data is not None:
                await NotificationService.create_notification(
                    self.db,
                    notification_data,
                    connection_manager=self.connection_manager,
                )

        return response

    async def edit_message(
        self,
        user: User,
        message_id: UUID,
        text: str,
    ) -> MessageResponse:
        """
        Edit a message's text and broadcast ``message-edited``.

        Raises:
            InvalidPayloadError: Blank or oversize text
            NotFoundError: ``message_not_found``
            NotAuthorizedError: Caller is not the sender
            EditWindowExpiredError: Message is older than the edit window
        """
        try:
            payload = MessageUpdate(text=text)
        except ValidationError as e:
            raise _validation_error(e)

        message = await self._get_message(message_id)

        if message.sender_id != user.id:
            raise NotAuthorizedError(message="Not authorized to edit this message")

        window = timedelta(minutes=settings.chat_edit_window_minutes)
        if datetime.utcnow() - message.created_at > window:
            raise EditWindowExpiredError(
                message=f"Messages can only be edited within "
                f"{settings.chat_edit_window_minutes} minutes"
            )

        message.text = payload.text
        message.edited = True
        message.edited_at = datetime.utcnow()
        await self._commit()

        response = await self._resolve(message)
        logger.info(f"Message {message.id} edited by {user.id}")

        await self.connection_manager.broadcast_to_room(
            get_chat_room(message.project_id),
            {
                "type": MessageType.MESSAGE_EDITED.value,
                "data": response.model_dump(mode="json", by_alias=True),
            },
        )
        return response

    async def delete_message(self, user: User, message_id: UUID) -> UUID:
        """
        Delete a message and broadcast ``message-deleted``.

        Allowed for the sender and for workspace owners/admins. A second
        delete of the same id fails with ``message_not_found``.

        Returns:
            The deleted message id

        Raises:
            NotFoundError: ``message_not_found``
            NotAuthorizedError: Caller is neither sender nor moderator
        """
        message = await self._get_message(message_id)
        project_id = message.project_id

        if message.sender_id != user.id:
            project = await self.db.get(Project, project_id)
            if project is None or not await self.permissions.can_moderate_chat(
                user.id, project.workspace_id
            ):
                raise NotAuthorizedError(message="Not authorized to delete this message")

        await self.db.delete(message)
        await self._commit()

        logger.info(f"Message {message_id} deleted by {user.id}")

        await self.connection_manager.broadcast_to_room(
            get_chat_room(project_id),
            {
                "type": MessageType.MESSAGE_DELETED.value,
                "data": {"messageId": str(message_id)},
            },
        )
        return message_id

    async def list_messages(
        self,
        user: User,
        project_id: UUID,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> MessageListResponse:
        """
        Page through a project's chat history.

        Pages count back from the newest message; each page is returned
        in chronological order.
        """
        limit = limit or settings.chat_history_page_size
        page = max(page, 1)

        project = await self._get_project(project_id)
        await self._require_project_access(user, project, "access chat")

        total = (
            await self.db.execute(
                select(func.count()).select_from(Message).where(Message.project_id == project.id)
            )
        ).scalar_one()

        result = await self.db.execute(
            select(Message)
            .where(Message.project_id == project.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        messages = list(result.scalars())
        messages.reverse()

        user_ids: set[UUID] = set()
        for message in messages:
            user_ids.add(message.sender_id)
            user_ids.update(self._mention_ids(message))
        profiles = await self._load_profiles(user_ids)

        return MessageListResponse(
            count=len(messages),
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
            current_page=page,
            data=[self._to_response(message, profiles) for message in messages],
        )


__all__ = ["ChatService"]
