"""Authentication service with JWT token handling and user management.

Also hosts the WebSocket handshake gate: a token either resolves to an
active user or raises ``AuthError`` with the reason the socket is
closed with.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..exceptions import AuthError
from ..models.user import User
from ..schemas.user import UserCreate
from ..utils.security import get_password_hash, verify_password

# OAuth2 scheme for token-based authentication
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


class Token(BaseModel):
    """Token response schema."""

    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    """Token payload data schema."""

    user_id: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[datetime] = None


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary of claims to encode in the token
        expires_delta: Optional custom expiration time delta

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.jwt_expiration_minutes
        )

    to_encode.update({"exp": expire})

    return jwt.encode(
        to_encode,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> Optional[TokenData]:
    """
    Decode and validate a JWT access token.

    Args:
        token: The JWT token string to decode

    Returns:
        TokenData with user information, or None if invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    user_id = payload.get("sub")
    if user_id is None:
        return None

    exp = payload.get("exp")
    expires_at = datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None
    return TokenData(user_id=str(user_id), email=payload.get("email"), expires_at=expires_at)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Get a user by their email address."""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: UUID) -> Optional[User]:
    """Get a user by their ID."""
    return await db.get(User, user_id)


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """
    Authenticate a user with email and password.

    Args:
        db: Database session
        email: User's email address
        password: Plain text password to verify

    Returns:
        User object if authentication successful, None otherwise
    """
    user = await get_user_by_email(db, email)

    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login = datetime.utcnow()
    return user


async def create_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Create a new user in the database.

    Args:
        db: Database session
        user_data: User creation data including password

    Returns:
        Created User object

    Raises:
        HTTPException: If email already exists
    """
    existing_user = await get_user_by_email(db, user_data.email)
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    db_user = User(
        email=user_data.email,
        password_hash=get_password_hash(user_data.password),
        name=user_data.name,
    )

    db.add(db_user)
    await db.flush()
    await db.refresh(db_user)

    return db_user


def parse_token(token: Optional[str]) -> UUID:
    """
    Validate a raw token and return the user id it names.

    Raises:
        AuthError: ``missing_token`` or ``invalid_token``
    """
    if not token:
        raise AuthError("missing_token", "Authentication token required")

    token_data = decode_access_token(token)
    if token_data is None or token_data.user_id is None:
        raise AuthError("invalid_token", "Invalid or expired token")

    try:
        return UUID(token_data.user_id)
    except ValueError:
        raise AuthError("invalid_token", "Invalid token subject")


async def authenticate_handshake(db: AsyncSession, token: Optional[str]) -> User:
    """
    Resolve a WebSocket handshake token to an active user.

    Args:
        db: Database session
        token: Raw JWT from the query string or Authorization header

    Returns:
        The authenticated User

    Raises:
        AuthError: ``missing_token``, ``invalid_token`` or ``user_not_found``
    """
    user_id = parse_token(token)

    user = await get_user_by_id(db, user_id)
    if user is None or not user.is_active:
        raise AuthError("user_not_found", "User not found")

    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get the current authenticated user from the JWT token.

    This is a FastAPI dependency that extracts and validates
    the JWT token from the Authorization header.

    Raises:
        HTTPException: If token is invalid or user not found
    """
    try:
        return await authenticate_handshake(db, token)
    except AuthError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


__all__ = [
    "Token",
    "TokenData",
    "authenticate_handshake",
    "authenticate_user",
    "create_access_token",
    "create_user",
    "decode_access_token",
    "get_current_user",
    "get_user_by_email",
    "get_user_by_id",
    "oauth2_scheme",
    "parse_token",
]
