"""Pydantic request/response schemas."""

from userauth.schemas.auth import (
    CurrentUser,
    GoogleLoginRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
)
from userauth.schemas.envelope import Envelope, ErrorBody
from userauth.schemas.health import HealthResponse
from userauth.schemas.users import (
    PasswordChangeRequest,
    UserPublic,
    UsersListResponse,
    UserUpdateRequest,
)

__all__ = [
    "CurrentUser",
    "Envelope",
    "ErrorBody",
    "GoogleLoginRequest",
    "HealthResponse",
    "LoginRequest",
    "PasswordChangeRequest",
    "RefreshRequest",
    "RegisterRequest",
    "TokenPairResponse",
    "UserPublic",
    "UsersListResponse",
    "UserUpdateRequest",
]
