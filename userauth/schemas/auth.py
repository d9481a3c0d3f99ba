"""Request/response schemas for auth endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """
    Registration fields. Presence and confirmation are checked by the service
    so that failures map to MISSING_FIELDS / PASSWORD_MISMATCH.
    """

    model_config = ConfigDict(populate_by_name=True)

    username: str | None = Field(default=None, description="Username (3-30 chars)")
    email: str | None = Field(default=None, description="Email address")
    password: str | None = Field(default=None, description="Password (min 6 chars)")
    confirm_password: str | None = Field(
        default=None, alias="confirmPassword", description="Must equal password"
    )
    profile_picture: str | None = None
    thumbnail: str | None = None
    description: str | None = None


class LoginRequest(BaseModel):
    """Credentials for login; email may also be a username."""

    email: str | None = Field(default=None, description="Email or username")
    password: str | None = Field(default=None, description="Password")


class GoogleLoginRequest(BaseModel):
    credential: str | None = Field(default=None, description="Google ID token")


class RefreshRequest(BaseModel):
    """Optional body for clients not using the refresh cookie."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str | None = Field(default=None, alias="refreshToken")


class TokenPairResponse(BaseModel):
    """Token pair returned after login or refresh (also set as cookies)."""

    access_token: str = Field(..., description="Short-lived access token")
    refresh_token: str = Field(..., description="Long-lived refresh token")
    token_type: str = Field(default="bearer", description="Token type")


class CurrentUser(BaseModel):
    """Authenticated subject decoded from an access token."""

    id: int
    username: str
    email: str
    role: str
    is_active: bool = True
    profile_picture: str | None = None

    @classmethod
    def from_token_data(cls, data: dict) -> "CurrentUser":
        return cls(
            id=data["userId"],
            username=data.get("username", ""),
            email=data.get("email", ""),
            role=data.get("role", "user"),
            is_active=data.get("isActive", True),
            profile_picture=data.get("profilePicture"),
        )
