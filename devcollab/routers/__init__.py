"""API routers package.

Each router handles a specific domain of the API.
"""

from .auth import router as auth_router
from .chat import router as chat_router
from .notifications import router as notifications_router

__all__ = [
    "auth_router",
    "chat_router",
    "notifications_router",
]
