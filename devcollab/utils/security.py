"""Password hashing helpers (passlib bcrypt)."""

from passlib.context import CryptContext

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain text password against a stored bcrypt hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password for storage in ``Users.password_hash``.

    Args:
        password: The plain text password (bcrypt reads at most 72 bytes)

    Returns:
        The bcrypt hash string
    """
    return pwd_context.hash(password)
