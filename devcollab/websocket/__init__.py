"""WebSocket module for real-time collaboration.

``handlers`` is imported directly by the endpoint; it depends on the
service layer, which in turn emits through this package.
"""

from .events import (
    emit_board_update,
    emit_chat_message,
    emit_new_comment,
    emit_notification,
    emit_notification_read,
    emit_task_update,
    emit_workspace_update,
    get_connected_users_count,
    get_online_users,
    is_user_online,
)
from .manager import (
    ConnectionManager,
    MessageType,
    WebSocketConnection,
    manager,
)
from .presence import ConnectionRegistry, PresenceChange, UserPresence
from .rooms import (
    RoomKind,
    get_chat_room,
    get_project_room,
    get_task_room,
    get_user_room,
    get_workspace_room,
    parse_room_id,
)

__all__ = [
    # Manager
    "ConnectionManager",
    "MessageType",
    "WebSocketConnection",
    "manager",
    # Presence
    "ConnectionRegistry",
    "PresenceChange",
    "UserPresence",
    # Rooms
    "RoomKind",
    "get_chat_room",
    "get_project_room",
    "get_task_room",
    "get_user_room",
    "get_workspace_room",
    "parse_room_id",
    # Events
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
