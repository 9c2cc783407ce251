"""WebSocket connection manager with room-based support and Redis pub/sub.

This module provides WebSocket connection management with:
- Room membership per connection (user, workspace, project, task, chat)
- Online/offline presence broadcasts coalesced across a user's devices
- Redis pub/sub for cross-worker room broadcasts
- Graceful disconnect handling

Membership and registry mutations never await, so they run as single
steps on the event loop and cannot interleave with each other.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from fastapi import WebSocket

from ..config import settings
from ..services.redis_service import redis_service
from .presence import ConnectionRegistry, PresenceChange
from .rooms import get_user_room

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """WebSocket event names (inbound and outbound)."""

    # Connection events
    CONNECTED = "connected"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"

    # Room commands
    JOIN_WORKSPACE = "join-workspace"
    LEAVE_WORKSPACE = "leave-workspace"
    JOIN_PROJECT = "join-project"
    LEAVE_PROJECT = "leave-project"
    JOIN_TASK = "join-task"
    LEAVE_TASK = "leave-task"
    JOIN_CHAT = "join-chat"
    LEAVE_CHAT = "leave-chat"
    ROOM_JOINED = "room-joined"
    ROOM_LEFT = "room-left"

    # Chat commands
    SEND_MESSAGE = "send-message"
    EDIT_MESSAGE = "edit-message"
    DELETE_MESSAGE = "delete-message"
    TYPING = "typing"
    GET_ONLINE_USERS = "get-online-users"

    # Chat events
    NEW_MESSAGE = "new-message"
    MESSAGE_EDITED = "message-edited"
    MESSAGE_DELETED = "message-deleted"
    MESSAGE_ERROR = "message-error"
    USER_TYPING = "user-typing"
    ONLINE_USERS = "online-users"
    USER_JOINED_CHAT = "user-joined-chat"
    USER_LEFT_CHAT = "user-left-chat"

    # Presence events
    USER_ONLINE = "user-online"
    USER_OFFLINE = "user-offline"

    # Domain events
    TASK_UPDATED = "task-updated"
    NEW_COMMENT = "new-comment"
    BOARD_UPDATED = "board-updated"
    WORKSPACE_UPDATED = "workspace-updated"
    NOTIFICATION = "notification"
    NOTIFICATION_READ = "notification-read"


@dataclass(eq=False)
class WebSocketConnection:
    """Represents a WebSocket connection with user context."""

    websocket: WebSocket
    user_id: UUID
    profile: dict[str, Any] = field(default_factory=dict)
    connection_id: str = field(default_factory=lambda: uuid4().hex)
    connected_at: datetime = field(default_factory=datetime.utcnow)
    rooms: set[str] = field(default_factory=set)

    def __hash__(self) -> int:
        """Hash by connection id for set operations."""
        return hash(self.connection_id)

    def __eq__(self, other: object) -> bool:
        """Equality check by connection id."""
        if not isinstance(other, WebSocketConnection):
            return False
        return self.connection_id == other.connection_id


class ConnectionManager:
    """
    WebSocket connection manager with room-based support and Redis pub/sub.

    Features:
    - Room membership with set semantics (join/leave are idempotent)
    - Presence registry: one user-online/user-offline per user, not per socket
    - Deduplicated room member profiles
    - Redis pub/sub for cross-worker room delivery
    - Per-user connection cap
    """

    _BROADCAST_CHANNEL = "ws:broadcast"

    def __init__(self, registry: Optional[ConnectionRegistry] = None) -> None:
        """Initialize the connection manager."""
        self.registry = registry or ConnectionRegistry()
        # Map of room_id -> set of connections
        self._rooms: dict[str, set[WebSocketConnection]] = {}
        # Map of connection_id -> connection object
        self._connections: dict[str, WebSocketConnection] = {}
        self._redis_initialized = False

    async def initialize_redis(self) -> None:
        """Set up Redis pub/sub handlers for cross-worker messaging."""
        if self._redis_initialized:
            return

        await redis_service.subscribe(
            self._BROADCAST_CHANNEL,
            self._handle_redis_broadcast,
        )
        self._redis_initialized = True
        logger.info("ConnectionManager Redis pub/sub initialized")

    async def _handle_redis_broadcast(self, data: dict) -> None:
        """
        Handle broadcast messages from Redis (published by any worker).

        Args:
            data: Message containing room_id, message, and exclude_connection_id
        """
        room_id = data.get("room_id")
        message = data.get("message")
        if not room_id or not message:
            return
        await self._deliver_to_room(room_id, message, data.get("exclude_connection_id"))

    @property
    def total_connections(self) -> int:
        """Get total number of active connections."""
        return len(self._connections)

    @property
    def total_rooms(self) -> int:
        """Get total number of active rooms."""
        return len(self._rooms)

    def get_room_count(self, room_id: str) -> int:
        """Get number of connections in a room."""
        return len(self._rooms.get(room_id, set()))

    def get_user_connections_count(self, user_id: UUID) -> int:
        """Get number of connections for a user."""
        return self.registry.connection_count(user_id)

    def get_connection(self, connection_id: str) -> Optional[WebSocketConnection]:
        """Look up a live connection by id."""
        return self._connections.get(connection_id)

    def _at_connection_limit(self, user_id: UUID) -> bool:
        current_connections = self.registry.connection_count(user_id)
        if current_connections < settings.ws_max_connections_per_user:
            return False
        logger.warning(
            f"Connection limit reached for user {user_id}: "
            f"{current_connections}/{settings.ws_max_connections_per_user}"
        )
        return True

    async def connect(
        self,
        websocket: WebSocket,
        user_id: UUID,
        profile: Optional[dict[str, Any]] = None,
        initial_rooms: Optional[list[str]] = None,
    ) -> Optional[WebSocketConnection]:
        """
        Accept a WebSocket connection and register it.

        The connection always joins its owner's ``user:<id>`` room. If this
        is the user's first live connection, ``user-online`` is broadcast
        to every other connection.

        Args:
            websocket: The WebSocket instance
            user_id: The authenticated user's ID
            profile: Minimal user profile (id, name, avatar)
            initial_rooms: Optional list of rooms to join immediately

        Returns:
            WebSocketConnection: The connection wrapper, or None if rejected
        """
        if self._at_connection_limit(user_id):
            await websocket.close(code=4029, reason="Too many connections")
            return None

        await websocket.accept()

        # Another handshake for this user may have registered during accept()
        if self._at_connection_limit(user_id):
            await websocket.close(code=4029, reason="Too many connections")
            return None

        profile = profile or {"id": str(user_id), "name": "", "avatar": ""}
        connection = WebSocketConnection(
            websocket=websocket,
            user_id=user_id,
            profile=profile,
        )

        self._connections[connection.connection_id] = connection
        went_online = self.registry.register(connection.connection_id, user_id, profile)

        self.join(connection, get_user_room(user_id))
        for room_id in initial_rooms or []:
            self.join(connection, room_id)

        logger.info(
            f"WebSocket connected: user={user_id}, connection={connection.connection_id}, "
            f"total_connections={self.total_connections}"
        )

        await self.send_personal(
            connection,
            {
                "type": MessageType.CONNECTED.value,
                "data": {
                    "userId": str(user_id),
                    "connectionId": connection.connection_id,
                    "connectedAt": connection.connected_at.isoformat(),
                    "rooms": sorted(connection.rooms),
                },
            },
        )

        if went_online:
            await self.broadcast_to_all(
                {
                    "type": MessageType.USER_ONLINE.value,
                    "data": {"userId": str(user_id), "user": profile},
                },
                exclude=connection,
            )

        return connection

    async def disconnect(self, connection: WebSocketConnection) -> PresenceChange:
        """
        Disconnect a connection and clean up all associated state.

        Leaves every room, unregisters from the presence registry and
        broadcasts ``user-offline`` if this was the user's last connection.
        Safe to call more than once.

        Args:
            connection: The connection to disconnect

        Returns:
            PresenceChange: What happened to the user's presence
        """
        if self._connections.pop(connection.connection_id, None) is None:
            return PresenceChange.NOT_REGISTERED

        for room_id in list(connection.rooms):
            self._remove_from_room(connection, room_id)

        change = self.registry.unregister(connection.connection_id, connection.user_id)

        logger.info(
            f"WebSocket disconnected: user={connection.user_id}, "
            f"connection={connection.connection_id}, presence={change.value}, "
            f"total_connections={self.total_connections}"
        )

        if change is PresenceChange.WENT_OFFLINE:
            await self.broadcast_to_all(
                {
                    "type": MessageType.USER_OFFLINE.value,
                    "data": {"userId": str(connection.user_id)},
                },
                exclude=connection,
            )

        return change

    def join(self, connection: WebSocketConnection, room_id: str) -> bool:
        """
        Add a connection to a room.

        Args:
            connection: The connection to add
            room_id: The room identifier

        Returns:
            True if the connection was not a member before
        """
        if room_id in connection.rooms:
            return False
        self._rooms.setdefault(room_id, set()).add(connection)
        connection.rooms.add(room_id)
        logger.debug(
            f"User {connection.user_id} joined room {room_id} "
            f"(room_size={self.get_room_count(room_id)})"
        )
        return True

    def leave(self, connection: WebSocketConnection, room_id: str) -> bool:
        """
        Remove a connection from a room.

        Args:
            connection: The connection to remove
            room_id: The room identifier

        Returns:
            True if the connection was a member
        """
        if room_id not in connection.rooms:
            return False
        self._remove_from_room(connection, room_id)
        logger.debug(
            f"User {connection.user_id} left room {room_id} "
            f"(room_size={self.get_room_count(room_id)})"
        )
        return True

    def _remove_from_room(self, connection: WebSocketConnection, room_id: str) -> None:
        members = self._rooms.get(room_id)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._rooms[room_id]
        connection.rooms.discard(room_id)

    def is_member(self, connection: WebSocketConnection, room_id: str) -> bool:
        """Check whether a connection is currently in a room."""
        return connection in self._rooms.get(room_id, set())

    def get_room_users(self, room_id: str) -> list[UUID]:
        """
        Get list of user IDs in a room.

        Args:
            room_id: The room identifier

        Returns:
            list[UUID]: List of unique user IDs in the room
        """
        connections = self._rooms.get(room_id, set())
        return list({conn.user_id for conn in connections})

    def members_of(self, room_id: str) -> list[dict[str, Any]]:
        """
        Get the profiles of the users in a room.

        A user with several connections in the room appears once.

        Args:
            room_id: The room identifier

        Returns:
            list[dict]: One profile per distinct user
        """
        members: dict[UUID, dict[str, Any]] = {}
        for conn in self._rooms.get(room_id, set()):
            if conn.user_id not in members:
                members[conn.user_id] = dict(conn.profile)
        return sorted(members.values(), key=lambda p: (p.get("name") or "", p.get("id") or ""))

    async def send_personal(
        self,
        connection: WebSocketConnection,
        message: dict[str, Any],
    ) -> bool:
        """
        Send a message to a specific connection.

        Args:
            connection: The target connection
            message: The message to send

        Returns:
            bool: True if sent successfully, False otherwise
        """
        try:
            await connection.websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Send to connection {connection.connection_id} failed: {e}")
            return False

    async def _deliver_to_room(
        self,
        room_id: str,
        message: dict[str, Any],
        exclude_connection_id: Optional[str] = None,
    ) -> int:
        """Send to the LOCAL members of a room."""
        connections = [
            conn
            for conn in self._rooms.get(room_id, set()).copy()
            if conn.connection_id != exclude_connection_id
        ]
        if not connections:
            return 0

        results = await asyncio.gather(
            *(self.send_personal(conn, message) for conn in connections),
            return_exceptions=True,
        )
        success_count = sum(1 for r in results if r is True)
        logger.debug(
            f"Broadcast {message.get('type')} to room {room_id}: "
            f"{success_count}/{len(connections)} successful"
        )
        return success_count

    async def broadcast_to_room(
        self,
        room_id: str,
        message: dict[str, Any],
        exclude: Optional[WebSocketConnection] = None,
    ) -> int:
        """
        Broadcast a message to all connections in a room (across all workers).

        An empty room is not an error; nothing is sent and 0 is returned.

        Args:
            room_id: The room to broadcast to
            message: The message to send
            exclude: Optional connection to exclude from broadcast

        Returns:
            int: Number of local recipients
        """
        exclude_id = exclude.connection_id if exclude else None

        if redis_service.is_connected:
            await redis_service.publish(
                self._BROADCAST_CHANNEL,
                {
                    "room_id": room_id,
                    "message": message,
                    "exclude_connection_id": exclude_id,
                },
            )
            # Redis delivers to every worker, this one included
            local = self._rooms.get(room_id, set())
            return len([c for c in local if c.connection_id != exclude_id])

        return await self._deliver_to_room(room_id, message, exclude_id)

    async def broadcast_to_user(
        self,
        user_id: UUID,
        message: dict[str, Any],
    ) -> int:
        """
        Broadcast a message to every connection of a user.

        Args:
            user_id: The user ID to broadcast to
            message: The message to send

        Returns:
            int: Number of recipients
        """
        return await self.broadcast_to_room(get_user_room(user_id), message)

    async def broadcast_to_all(
        self,
        message: dict[str, Any],
        exclude: Optional[WebSocketConnection] = None,
    ) -> int:
        """
        Broadcast a message to all connected clients on this worker.

        Args:
            message: The message to send
            exclude: Optional connection to exclude

        Returns:
            int: Number of successful sends
        """
        connections = [
            conn for conn in self._connections.values()
            if exclude is None or conn.connection_id != exclude.connection_id
        ]
        if not connections:
            return 0

        results = await asyncio.gather(
            *(self.send_personal(conn, message) for conn in connections),
            return_exceptions=True,
        )
        return sum(1 for r in results if r is True)


# Global singleton instance
manager = ConnectionManager()
