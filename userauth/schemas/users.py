"""Schemas for user projections and admin user management."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class UserPublic(BaseModel):
    """Safe projection of a user record (never includes password hash or tokens)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str
    is_active: bool
    auth_provider: str
    last_login: datetime | None = None
    profile_picture: str | None = None
    thumbnail: str | None = None
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UsersListResponse(BaseModel):
    """Response for GET /users (admin only)."""

    users: list[UserPublic]
    total: int
    page: int
    limit: int
    pages: int


class UserUpdateRequest(BaseModel):
    """Admin patch; at least one field must be set."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    username: str | None = Field(default=None, min_length=3, max_length=30)
    email: str | None = None
    password: str | None = Field(default=None, min_length=6)
    role: Literal["user", "admin"] | None = None
    is_active: bool | None = Field(default=None, alias="isActive")
    profile_picture: str | None = None
    thumbnail: str | None = None
    description: str | None = None


class PasswordChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str | None = Field(default=None, alias="currentPassword")
    new_password: str | None = Field(default=None, alias="newPassword")
