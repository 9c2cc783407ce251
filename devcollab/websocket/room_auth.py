"""Room authorization for WebSocket connections.

Validates that users have access to rooms they attempt to join.

Features:
- Native async database operations
- TTL-based caching to prevent DB overload during reconnection storms
- Hierarchical access checks (workspace -> project/chat -> task)
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import async_session_maker
from ..exceptions import TransientIOError
from ..models.project import Project
from ..models.task import Task
from ..services.permission_service import PermissionService
from .rooms import RoomKind, parse_room_id

logger = logging.getLogger(__name__)

# Cache (user_id, room_id) -> (result, expires_at)
_auth_cache: Dict[Tuple[str, str], Tuple[bool, float]] = {}
_AUTH_CACHE_TTL = 300  # 5 minutes
_AUTH_CACHE_MAX_SIZE = 50000

SessionFactory = Callable[[], AsyncSession]


def _get_cached_auth(user_id: UUID, room_id: str) -> Optional[bool]:
    """Get cached auth result if valid, None if not cached or expired."""
    cache_key = (str(user_id), room_id)
    cached = _auth_cache.get(cache_key)
    if cached is None:
        return None
    result, expires_at = cached
    if time.time() > expires_at:
        _auth_cache.pop(cache_key, None)
        return None
    return result


def _set_cached_auth(user_id: UUID, room_id: str, result: bool) -> None:
    """Cache an auth result with TTL."""
    if len(_auth_cache) >= _AUTH_CACHE_MAX_SIZE:
        # Evict the older half
        sorted_entries = sorted(_auth_cache.items(), key=lambda x: x[1][1])
        for key, _ in sorted_entries[: len(sorted_entries) // 2]:
            _auth_cache.pop(key, None)

    _auth_cache[(str(user_id), room_id)] = (result, time.time() + _AUTH_CACHE_TTL)


def invalidate_user_cache(user_id: UUID) -> None:
    """Invalidate all cached auth results for a user (call on membership changes)."""
    user_id_str = str(user_id)
    for key in [k for k in _auth_cache if k[0] == user_id_str]:
        _auth_cache.pop(key, None)


def invalidate_room_cache(room_id: str) -> None:
    """Invalidate all cached auth results for a room."""
    for key in [k for k in _auth_cache if k[1] == room_id]:
        _auth_cache.pop(key, None)


def clear_auth_cache() -> None:
    """Drop every cached decision."""
    _auth_cache.clear()


async def check_room_access(
    user_id: UUID,
    room_id: str,
    session_factory: Optional[SessionFactory] = None,
) -> bool:
    """
    Check if a user has access to a specific room.

    Room ID formats:
    - user:{uuid} - personal room (only for own user)
    - workspace:{uuid} - requires workspace membership
    - project:{uuid} / chat:{uuid} - requires membership in the project's workspace
    - task:{uuid} - requires access to the task's project

    Args:
        user_id: The user's UUID
        room_id: The room identifier
        session_factory: Optional session factory (defaults to the app's)

    Returns:
        bool: True if user has access, False otherwise

    Raises:
        TransientIOError: If the database could not be reached
    """
    parsed = parse_room_id(room_id)
    if parsed is None:
        logger.warning(f"[Room Auth] DENIED - invalid room ID: {room_id}")
        return False

    kind, resource_id = parsed

    if kind is RoomKind.USER:
        return resource_id == user_id

    cached_result = _get_cached_auth(user_id, room_id)
    if cached_result is not None:
        return cached_result

    factory = session_factory or async_session_maker
    try:
        async with factory() as db:
            result = await _check_access(db, user_id, kind, resource_id)
    except SQLAlchemyError as e:
        logger.error(f"[Room Auth] ERROR checking access to {room_id}: {e}")
        raise TransientIOError(message="Could not verify room access")

    _set_cached_auth(user_id, room_id, result)
    if not result:
        logger.info(f"[Room Auth] DENIED - user {user_id} has no access to {room_id}")
    return result


async def _check_access(
    db: AsyncSession,
    user_id: UUID,
    kind: RoomKind,
    resource_id: UUID,
) -> bool:
    permissions = PermissionService(db)

    if kind is RoomKind.WORKSPACE:
        return await permissions.is_workspace_member(user_id, resource_id)

    if kind in (RoomKind.PROJECT, RoomKind.CHAT):
        project = await db.get(Project, resource_id)
        if project is None:
            return False
        return await permissions.can_access_project(user_id, project)

    if kind is RoomKind.TASK:
        task = await db.get(Task, resource_id)
        if task is None:
            return False
        project = await db.get(Project, task.project_id)
        if project is None:
            return False
        return await permissions.can_access_project(user_id, project)

    return False


__all__ = [
    "SessionFactory",
    "check_room_access",
    "clear_auth_cache",
    "invalidate_room_cache",
    "invalidate_user_cache",
]
