"""Domain event emitter.

REST flows call these after their write commits. Each function resolves
the target room from entity ids and broadcasts one event; an empty room
is a silent no-op. None of them raise on delivery problems, so a
disconnected audience never fails the request that triggered the event.
"""

import logging
from typing import Any, Iterable, Optional
from uuid import UUID

from .manager import ConnectionManager, MessageType, manager
from .rooms import (
    get_chat_room,
    get_project_room,
    get_task_room,
    get_user_room,
    get_workspace_room,
)

logger = logging.getLogger(__name__)


def _resolve(connection_manager: Optional[ConnectionManager]) -> ConnectionManager:
    return connection_manager or manager


async def _emit(
    room_id: str,
    event: MessageType,
    data: Any,
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    sent = await _resolve(connection_manager).broadcast_to_room(
        room_id,
        {"type": event.value, "data": data},
    )
    logger.debug(f"Emitted {event.value} to {room_id} ({sent} recipients)")
    return sent


async def emit_task_update(
    task_id: UUID,
    update: dict[str, Any],
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    """
    Notify viewers of a task that it changed.

    Args:
        task_id: The updated task
        update: Task payload (full object or changed fields)
        connection_manager: Optional manager (defaults to the global one)

    Returns:
        int: Number of recipients
    """
    return await _emit(get_task_room(task_id), MessageType.TASK_UPDATED, update, connection_manager)


async def emit_new_comment(
    task_id: UUID,
    comment: dict[str, Any],
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    """Broadcast a new comment to the task room."""
    return await _emit(get_task_room(task_id), MessageType.NEW_COMMENT, comment, connection_manager)


async def emit_board_update(
    project_id: UUID,
    update: dict[str, Any],
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    """Broadcast a board change (task moved, created, deleted) to the project room."""
    return await _emit(
        get_project_room(project_id), MessageType.BOARD_UPDATED, update, connection_manager
    )


async def emit_workspace_update(
    workspace_id: UUID,
    update: dict[str, Any],
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    """Broadcast a workspace change (members, projects, settings)."""
    return await _emit(
        get_workspace_room(workspace_id), MessageType.WORKSPACE_UPDATED, update, connection_manager
    )


async def emit_notification(
    user_id: UUID,
    notification: dict[str, Any],
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    """
    Push a notification to every connection of a user.

    Returns:
        int: Number of connections reached (0 when the user is offline)
    """
    return await _emit(
        get_user_room(user_id), MessageType.NOTIFICATION, notification, connection_manager
    )


async def emit_notification_read(
    user_id: UUID,
    notification_ids: Optional[Iterable[UUID]] = None,
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    """
    Sync read state to a user's other devices.

    Args:
        user_id: Owner of the notifications
        notification_ids: Ids marked read, or None for "all read"
        connection_manager: Optional manager (defaults to the global one)
    """
    data = {
        "notificationIds": (
            [str(nid) for nid in notification_ids] if notification_ids is not None else None
        ),
        "all": notification_ids is None,
    }
    return await _emit(
        get_user_room(user_id), MessageType.NOTIFICATION_READ, data, connection_manager
    )


async def emit_chat_message(
    project_id: UUID,
    message: dict[str, Any],
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    """Broadcast a persisted chat message to the project's chat room."""
    return await _emit(get_chat_room(project_id), MessageType.NEW_MESSAGE, message, connection_manager)


def is_user_online(
    user_id: UUID,
    connection_manager: Optional[ConnectionManager] = None,
) -> bool:
    """Check whether a user has at least one live connection."""
    return _resolve(connection_manager).registry.is_online(user_id)


def get_online_users(
    connection_manager: Optional[ConnectionManager] = None,
) -> list[dict[str, Any]]:
    """Profiles of every online user on this worker."""
    return _resolve(connection_manager).registry.list_online()


def get_connected_users_count(
    connection_manager: Optional[ConnectionManager] = None,
) -> int:
    """Number of distinct online users on this worker."""
    return _resolve(connection_manager).registry.total_users


__all__ = [
    "emit_board_update",
    "emit_chat_message",
    "emit_new_comment",
    "emit_notification",
    "emit_notification_read",
    "emit_task_update",
    "emit_workspace_update",
    "get_connected_users_count",
    "get_online_users",
    "is_user_online",
]
