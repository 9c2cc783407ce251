"""Connection registry and user presence aggregation.

Tracks which users are online through one or more simultaneous
connections (tabs, devices). A user's presence record exists exactly
while at least one of their connections is registered, which is what
turns raw connection churn into single online/offline transitions.

All methods are synchronous: each call is one uninterrupted step on the
event loop, so no lock is needed even though many connections share the
registry.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


class PresenceChange(str, Enum):
    """Outcome of unregistering a connection."""

    WENT_OFFLINE = "went-offline"
    STILL_ONLINE = "still-online"
    NOT_REGISTERED = "not-registered"


@dataclass
class UserPresence:
    """Aggregated presence for one user across all their connections."""

    user_id: UUID
    profile: dict[str, Any]
    connection_ids: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=datetime.utcnow)
    last_seen: datetime = field(default_factory=datetime.utcnow)


class ConnectionRegistry:
    """
    In-memory registry of live connections grouped by user.

    Structure:
    - _presence[user_id] = UserPresence (with its set of connection ids)
    - _connection_users[connection_id] = user_id
    """

    def __init__(self) -> None:
        self._presence: dict[UUID, UserPresence] = {}
        self._connection_users: dict[str, UUID] = {}

    def register(
        self,
        connection_id: str,
        user_id: UUID,
        profile: dict[str, Any],
    ) -> bool:
        """
        Register a live connection for a user.

        Args:
            connection_id: Unique id of the connection
            user_id: The authenticated user's ID
            profile: Minimal profile (id, name, avatar) for broadcasts

        Returns:
            True if this is the user's first connection (they came online),
            False if they already had other connections.
        """
        now = datetime.utcnow()
        presence = self._presence.get(user_id)
        went_online = presence is None

        if presence is None:
            presence = UserPresence(user_id=user_id, profile=dict(profile), connected_at=now)
            self._presence[user_id] = presence
        else:
            presence.profile = dict(profile)

        presence.connection_ids.add(connection_id)
        presence.last_seen = now
        self._connection_users[connection_id] = user_id

        if went_online:
            logger.info(f"User {user_id} came online (connection {connection_id})")
        else:
            logger.debug(
                f"User {user_id} added connection {connection_id} "
                f"(now {len(presence.connection_ids)} connections)"
            )
        return went_online

    def unregister(self, connection_id: str, user_id: UUID) -> PresenceChange:
        """
        Remove a connection.

        Args:
            connection_id: The connection being closed
            user_id: The connection's owner

        Returns:
            WENT_OFFLINE if that was the user's last connection (the presence
            record is deleted), STILL_ONLINE if others remain, NOT_REGISTERED
            if the connection was unknown (nothing changes).
        """
        presence = self._presence.get(user_id)
        if presence is None or connection_id not in presence.connection_ids:
            return PresenceChange.NOT_REGISTERED

        presence.connection_ids.discard(connection_id)
        self._connection_users.pop(connection_id, None)
        presence.last_seen = datetime.utcnow()

        if not presence.connection_ids:
            del self._presence[user_id]
            logger.info(f"User {user_id} went offline")
            return PresenceChange.WENT_OFFLINE

        logger.debug(
            f"User {user_id} closed connection {connection_id} "
            f"({len(presence.connection_ids)} remaining)"
        )
        return PresenceChange.STILL_ONLINE

    def touch(self, user_id: UUID) -> None:
        """Refresh a user's last-seen timestamp on inbound activity."""
        presence = self._presence.get(user_id)
        if presence is not None:
            presence.last_seen = datetime.utcnow()

    def is_online(self, user_id: UUID) -> bool:
        """Check whether a user has at least one live connection."""
        return user_id in self._presence

    def get_profile(self, user_id: UUID) -> Optional[dict[str, Any]]:
        """Cached profile of an online user, or None."""
        presence = self._presence.get(user_id)
        return dict(presence.profile) if presence else None

    def get_user_for_connection(self, connection_id: str) -> Optional[UUID]:
        """Owner of a registered connection."""
        return self._connection_users.get(connection_id)

    def connection_count(self, user_id: UUID) -> int:
        """Number of live connections for a user."""
        presence = self._presence.get(user_id)
        return len(presence.connection_ids) if presence else 0

    def list_online(self) -> list[dict[str, Any]]:
        """Profiles of all online users."""
        return [
            {
                "user_id": str(p.user_id),
                "name": p.profile.get("name"),
                "avatar": p.profile.get("avatar"),
                "last_seen": p.last_seen.isoformat(),
            }
            for p in self._presence.values()
        ]

    @property
    def total_users(self) -> int:
        """Number of online users."""
        return len(self._presence)

    @property
    def total_connections(self) -> int:
        """Number of registered connections."""
        return len(self._connection_users)


__all__ = [
    "ConnectionRegistry",
    "PresenceChange",
    "UserPresence",
]
