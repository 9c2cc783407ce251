"""Business logic services.

Only the leaf services are re-exported here. ``chat_service`` and
``notification_service`` emit through ``devcollab.websocket`` and are
imported from their modules directly.
"""

from .auth_service import (
    authenticate_handshake,
    authenticate_user,
    create_access_token,
    create_user,
    decode_access_token,
    get_current_user,
    get_user_by_email,
    get_user_by_id,
)
from .permission_service import MODERATOR_ROLES, PermissionService
from .redis_service import RedisService, redis_service

__all__ = [
    # Auth service
    "authenticate_handshake",
    "authenticate_user",
    "create_access_token",
    "create_user",
    "decode_access_token",
    "get_current_user",
    "get_user_by_email",
    "get_user_by_id",
    # Permission service
    "MODERATOR_ROLES",
    "PermissionService",
    # Redis service
    "RedisService",
    "redis_service",
]
