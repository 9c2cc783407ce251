"""Room key helpers.

Rooms are plain strings of the form ``<kind>:<id>``. The manager treats
them as opaque; these helpers are the only place that knows the format.
"""

from enum import Enum
from typing import Optional
from uuid import UUID


class RoomKind(str, Enum):
    """Kinds of broadcast rooms."""

    USER = "user"
    WORKSPACE = "workspace"
    PROJECT = "project"
    TASK = "task"
    CHAT = "chat"


def get_user_room(user_id: UUID | str) -> str:
    """
    Get the personal room for a user (notifications, direct pushes).

    Args:
        user_id: The user's UUID

    Returns:
        str: Room ID in format 'user:{uuid}'
    """
    return f"{RoomKind.USER.value}:{user_id}"


def get_workspace_room(workspace_id: UUID | str) -> str:
    """
    Get the room ID for a workspace.

    Args:
        workspace_id: The workspace's UUID

    Returns:
        str: Room ID in format 'workspace:{uuid}'
    """
    return f"{RoomKind.WORKSPACE.value}:{workspace_id}"


def get_project_room(project_id: UUID | str) -> str:
    """
    Get the room ID for a project board.

    Args:
        project_id: The project's UUID

    Returns:
        str: Room ID in format 'project:{uuid}'
    """
    return f"{RoomKind.PROJECT.value}:{project_id}"


def get_task_room(task_id: UUID | str) -> str:
    """
    Get the room ID for a task (for detailed viewing/editing).

    Args:
        task_id: The task's UUID

    Returns:
        str: Room ID in format 'task:{uuid}'
    """
    return f"{RoomKind.TASK.value}:{task_id}"


def get_chat_room(project_id: UUID | str) -> str:
    """
    Get the chat room ID for a project.

    Args:
        project_id: The project's UUID

    Returns:
        str: Room ID in format 'chat:{uuid}'
    """
    return f"{RoomKind.CHAT.value}:{project_id}"


def parse_room_id(room_id: str) -> Optional[tuple[RoomKind, UUID]]:
    """
    Split a room ID into its kind and resource id.

    Returns:
        (kind, uuid) or None if the room ID is malformed or of unknown kind.
    """
    if not room_id or ":" not in room_id:
        return None
    kind_str, resource_id_str = room_id.split(":", 1)
    try:
        return RoomKind(kind_str), UUID(resource_id_str)
    except ValueError:
        return None


__all__ = [
    "RoomKind",
    "get_chat_room",
    "get_project_room",
    "get_task_room",
    "get_user_room",
    "get_workspace_room",
    "parse_room_id",
]
