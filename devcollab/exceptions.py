"""Error taxonomy shared by the WebSocket handlers and the REST routers.

Every error carries a stable machine-readable ``reason`` which is what
clients see in ``message-error`` frames, handshake close reasons and
REST error bodies.
"""

from typing import Optional


class DevCollabError(Exception):
    """Base class for expected, client-reportable failures."""

    default_reason = "error"
    default_message = "Request failed"

    def __init__(self, reason: Optional[str] = None, message: Optional[str] = None):
        self.reason = reason or self.default_reason
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, str]:
        """Serialize for an error frame."""
        return {"error": self.reason, "message": self.message}


class AuthError(DevCollabError):
    """Missing, malformed or expired credential, or unknown user."""

    default_reason = "invalid_token"
    default_message = "Authentication failed"


class NotFoundError(DevCollabError):
    """A referenced entity does not exist."""

    default_reason = "not_found"
    default_message = "Resource not found"


class NotAuthorizedError(DevCollabError):
    """Authenticated, but lacking permission for the action."""

    default_reason = "not_authorized"
    default_message = "Not authorized"


class InvalidPayloadError(DevCollabError):
    """Malformed inbound payload."""

    default_reason = "validation_error"
    default_message = "Invalid payload"


class EditWindowExpiredError(DevCollabError):
    """Chat message is older than the edit window."""

    default_reason = "edit_window_expired"
    default_message = "Message too old to edit"


class TransientIOError(DevCollabError):
    """Persistence or authorization backend call failed."""

    default_reason = "transient_io_error"
    default_message = "Temporary failure, please retry"


__all__ = [
    "AuthError",
    "DevCollabError",
    "EditWindowExpiredError",
    "InvalidPayloadError",
    "NotAuthorizedError",
    "NotFoundError",
    "TransientIOError",
]
