"""WebSocket command handlers.

``route_incoming_message`` is called by the endpoint for every inbound
frame, one at a time per connection. Each handler either completes or
raises a ``DevCollabError``; the router turns errors into a
``message-error`` frame sent only to the originating connection.
"""

import logging
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..database import async_session_maker
from ..exceptions import (
    AuthError,
    DevCollabError,
    InvalidPayloadError,
    NotAuthorizedError,
    TransientIOError,
)
from ..models.user import User
from ..schemas.message import (
    DeleteMessagePayload,
    EditMessagePayload,
    SendMessagePayload,
    TypingPayload,
)
from ..services.chat_service import ChatService
from .manager import ConnectionManager, MessageType, WebSocketConnection, manager
from .room_auth import SessionFactory, check_room_access
from .rooms import (
    RoomKind,
    get_chat_room,
    get_project_room,
    get_task_room,
    get_workspace_room,
)

logger = logging.getLogger(__name__)

RoomAuthorizer = Callable[[UUID, str], Awaitable[bool]]

_ROOM_BUILDERS: dict[RoomKind, Callable[[UUID], str]] = {
    RoomKind.WORKSPACE: get_workspace_room,
    RoomKind.PROJECT: get_project_room,
    RoomKind.TASK: get_task_room,
    RoomKind.CHAT: get_chat_room,
}

# command -> (is_join, room kind, payload key)
_ROOM_COMMANDS: dict[str, tuple[bool, RoomKind, str]] = {
    MessageType.JOIN_WORKSPACE.value: (True, RoomKind.WORKSPACE, "workspaceId"),
    MessageType.LEAVE_WORKSPACE.value: (False, RoomKind.WORKSPACE, "workspaceId"),
    MessageType.JOIN_PROJECT.value: (True, RoomKind.PROJECT, "projectId"),
    MessageType.LEAVE_PROJECT.value: (False, RoomKind.PROJECT, "projectId"),
    MessageType.JOIN_TASK.value: (True, RoomKind.TASK, "taskId"),
    MessageType.LEAVE_TASK.value: (False, RoomKind.TASK, "taskId"),
    MessageType.JOIN_CHAT.value: (True, RoomKind.CHAT, "projectId"),
    MessageType.LEAVE_CHAT.value: (False, RoomKind.CHAT, "projectId"),
}


def extract_id(payload: Any, key: str) -> UUID:
    """
    Read an entity id from a command payload.

    Clients send either the bare id or an object keyed by ``key``
    (``"abc..."`` or ``{"projectId": "abc..."}``).

    Raises:
        InvalidPayloadError: If the id is missing or not a UUID
    """
    value = payload.get(key) if isinstance(payload, dict) else payload
    if value is None:
        raise InvalidPayloadError(message=f"{key} is required")
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidPayloadError(message=f"{key} must be a valid id")


def _user_name(connection: WebSocketConnection) -> str:
    return connection.profile.get("name") or ""


async def handle_room_command(
    connection: WebSocketConnection,
    message_type: str,
    payload: Any,
    connection_manager: ConnectionManager,
    room_authorizer: Optional[RoomAuthorizer] = None,
) -> bool:
    """
    Join or leave a workspace, project, task or chat room.

    Joins are authorized first; leaves never are. Chat rooms also tell
    the other members who arrived or left, but only when membership
    actually changed.

    Returns:
        bool: Whether membership changed
    """
    is_join, kind, key = _ROOM_COMMANDS[message_type]
    room_id = _ROOM_BUILDERS[kind](extract_id(payload, key))

    if is_join:
        if room_authorizer is not None and not await room_authorizer(connection.user_id, room_id):
            logger.warning(f"Room access denied: user={connection.user_id}, room={room_id}")
            raise NotAuthorizedError(message=f"Access denied to room: {room_id}")
        changed = connection_manager.join(connection, room_id)
        ack_type, chat_event = MessageType.ROOM_JOINED, MessageType.USER_JOINED_CHAT
    else:
        changed = connection_manager.leave(connection, room_id)
        ack_type, chat_event = MessageType.ROOM_LEFT, MessageType.USER_LEFT_CHAT

    await connection_manager.send_personal(
        connection,
        {
            "type": ack_type.value,
            "data": {
                "roomId": room_id,
                "userCount": connection_manager.get_room_count(room_id),
            },
        },
    )

    if changed and kind is RoomKind.CHAT:
        await connection_manager.broadcast_to_room(
            room_id,
            {
                "type": chat_event.value,
                "data": {
                    "userId": str(connection.user_id),
                    "userName": _user_name(connection),
                },
            },
            exclude=connection,
        )

    return changed


async def handle_typing(
    connection: WebSocketConnection,
    payload: Any,
    connection_manager: ConnectionManager,
) -> int:
    """
    Relay a typing indicator to the rest of the chat room.

    Nothing is stored; the sender never receives its own indicator.

    Returns:
        int: Number of recipients
    """
    typing = TypingPayload.model_validate(payload or {})
    return await connection_manager.broadcast_to_room(
        get_chat_room(typing.project_id),
        {
            "type": MessageType.USER_TYPING.value,
            "data": {
                "userId": str(connection.user_id),
                "userName": _user_name(connection),
                "isTyping": typing.is_typing,
            },
        },
        exclude=connection,
    )


async def handle_get_online_users(
    connection: WebSocketConnection,
    payload: Any,
    connection_manager: ConnectionManager,
) -> list[dict[str, Any]]:
    """Reply with the distinct users currently in a project's chat room."""
    room_id = get_chat_room(extract_id(payload, "projectId"))
    users = connection_manager.members_of(room_id)
    await connection_manager.send_personal(
        connection,
        {"type": MessageType.ONLINE_USERS.value, "data": users},
    )
    return users


async def handle_chat_command(
    connection: WebSocketConnection,
    message_type: str,
    payload: Any,
    connection_manager: ConnectionManager,
    session_factory: SessionFactory,
) -> None:
    """Run ``send-message``, ``edit-message`` or ``delete-message`` through the pipeline."""
    if not isinstance(payload, dict):
        raise InvalidPayloadError(message="Payload must be an object")

    async with session_factory() as db:
        user = await db.get(User, connection.user_id)
        if user is None or not user.is_active:
            raise AuthError("user_not_found", "User not found")

        chat = ChatService(db, connection_manager)

        if message_type == MessageType.SEND_MESSAGE.value:
            command = SendMessagePayload.model_validate(payload)
            await chat.send_message(user, command.project_id, command.text, command.mentions)
        elif message_type == MessageType.EDIT_MESSAGE.value:
            command = EditMessagePayload.model_validate(payload)
            await chat.edit_message(user, command.message_id, command.text)
        else:
            command = DeleteMessagePayload.model_validate(payload)
            await chat.delete_message(user, command.message_id)


_CHAT_COMMANDS = frozenset({
    MessageType.SEND_MESSAGE.value,
    MessageType.EDIT_MESSAGE.value,
    MessageType.DELETE_MESSAGE.value,
})


def _default_authorizer(session_factory: Optional[SessionFactory]) -> Optional[RoomAuthorizer]:
    if not settings.ws_enforce_room_access:
        return None

    async def authorize(user_id: UUID, room_id: str) -> bool:
        return await check_room_access(user_id, room_id, session_factory)

    return authorize


async def route_incoming_message(
    connection: WebSocketConnection,
    data: dict[str, Any],
    connection_manager: Optional[ConnectionManager] = None,
    room_authorizer: Optional[RoomAuthorizer] = None,
    session_factory: Optional[SessionFactory] = None,
) -> None:
    """
    Route an inbound frame to its handler.

    Args:
        connection: The connection that sent the frame
        data: Decoded ``{"type": ..., "data": ...}`` envelope
        connection_manager: Optional custom manager (defaults to global)
        room_authorizer: Optional callable(user_id, room_id) -> bool for joins;
            defaults to ``check_room_access`` when enforcement is enabled
        session_factory: Optional session factory (defaults to the app's)
    """
    mgr = connection_manager or manager
    factory = session_factory or async_session_maker
    authorizer = room_authorizer or _default_authorizer(session_factory)

    message_type = data.get("type")
    payload = data.get("data")

    logger.debug(f"Routing message: user={connection.user_id}, type={message_type}")

    if not isinstance(message_type, str):
        message_type = None

    try:
        if message_type == MessageType.PING.value:
            await mgr.send_personal(connection, {"type": MessageType.PONG.value, "data": {}})
        elif message_type in _ROOM_COMMANDS:
            await handle_room_command(connection, message_type, payload, mgr, authorizer)
        elif message_type in _CHAT_COMMANDS:
            await handle_chat_command(connection, message_type, payload, mgr, factory)
        elif message_type == MessageType.TYPING.value:
            await handle_typing(connection, payload, mgr)
        elif message_type == MessageType.GET_ONLINE_USERS.value:
            await handle_get_online_users(connection, payload, mgr)
        else:
            logger.debug(f"Unknown message type from {connection.user_id}: {message_type}")
            await mgr.send_personal(
                connection,
                {
                    "type": MessageType.ERROR.value,
                    "data": {
                        "error": "unknown_message_type",
                        "message": f"Unknown message type: {message_type}",
                    },
                },
            )
            return
    except ValidationError as e:
        error = InvalidPayloadError(message=e.errors()[0]["msg"] if e.errors() else None)
        await _send_error(connection, mgr, error)
    except DevCollabError as e:
        await _send_error(connection, mgr, e)
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"I/O error handling {message_type} for {connection.user_id}: {e}")
        await _send_error(connection, mgr, TransientIOError())


async def _send_error(
    connection: WebSocketConnection,
    connection_manager: ConnectionManager,
    error: DevCollabError,
) -> None:
    logger.debug(f"message-error to {connection.connection_id}: {error.reason}")
    await connection_manager.send_personal(
        connection,
        {"type": MessageType.MESSAGE_ERROR.value, "data": error.to_payload()},
    )


__all__ = [
    "RoomAuthorizer",
    "extract_id",
    "handle_chat_command",
    "handle_get_online_users",
    "handle_room_command",
    "handle_typing",
    "route_incoming_message",
]
