"""Pydantic schemas for User model validation."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserBase(BaseModel):
    """Base schema with common user fields."""

    email: EmailStr = Field(
        ...,
        description="User's email address",
        examples=["user@example.com"],
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="User's display name",
        examples=["Ada Lovelace"],
    )


class UserCreate(UserBase):
    """Schema for creating a new user (registration)."""

    password: str = Field(
        ...,
        min_length=6,
        max_length=72,
        description="User's password (will be hashed)",
    )


class UserLogin(BaseModel):
    """Schema for email/password login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)


class UserResponse(UserBase):
    """Schema for user response (public data only)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(
        ...,
        description="Unique user identifier",
    )
    avatar: str = Field(
        "",
        description="URL to user's avatar image",
    )
    created_at: Optional[datetime] = Field(
        None,
        description="When the user was created",
    )


class UserProfile(BaseModel):
    """Minimal profile embedded in realtime payloads."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    avatar: str = ""
