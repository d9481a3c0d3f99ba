"""Registration, login (password and federated), refresh rotation, logout, password change."""

import logging
import re
import secrets
from dataclasses import dataclass
from typing import Any

from userauth.core.errors import AppError, ErrorKind
from userauth.core.security import (
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    hash_password,
    verify_password,
)
from userauth.models import User
from userauth.services.directory import UserDirectory
from userauth.services.identity import VerifiedIdentity
from userauth.services.tokens import TokenPair, TokenService, strip_scheme

logger = logging.getLogger(__name__)

LOCAL_PROVIDER = "local"

# Profile fields a user may supply at registration.
PROFILE_FIELDS = ("profile_picture", "thumbnail", "description")

# Attempts at finding a free generated username for a new federated account.
USERNAME_GENERATION_ATTEMPTS = 5

_USERNAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass(frozen=True)
class SessionResult:
    """A freshly issued token pair and the user it was issued for."""

    tokens: TokenPair
    user: User


def access_payload(user: User) -> dict[str, Any]:
    """Claims carried inside an access token's data object."""
    payload: dict[str, Any] = {
        "userId": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "isActive": bool(user.is_active),
    }
    if user.profile_picture:
        payload["profilePicture"] = user.profile_picture
    return payload


def refresh_payload(user: User) -> dict[str, Any]:
    return {"userId": user.id}


def _missing(**values: Any) -> list[str]:
    return [name for name, value in values.items() if not value]


def _check_password_length(password: str) -> None:
    if len(password) < PASSWORD_MIN_LEN:
        raise AppError(
            ErrorKind.VALIDATION_ERROR,
            {"field": "password", "minLength": PASSWORD_MIN_LEN},
            message=f"Password must be at least {PASSWORD_MIN_LEN} characters",
        )


def _base_username(identity: VerifiedIdentity) -> str:
    raw = identity.name or (identity.email or "").split("@")[0] or "user"
    base = _USERNAME_UNSAFE.sub("_", raw.strip()).strip("_.-") or "user"
    # leave room for a numeric suffix
    base = base[: USERNAME_MAX_LEN - 5]
    if len(base) < USERNAME_MIN_LEN:
        base = base.ljust(USERNAME_MIN_LEN, "_")
    return base


class SessionService:
    """
    Owns the credential and session lifecycle.

    Each user has at most one honoured refresh token, the one stored on the
    user record; issuing a new one overwrites it and logout clears it.
    """

    def __init__(
        self,
        directory: UserDirectory,
        tokens: TokenService,
        default_avatar_url: str | None = None,
    ) -> None:
        self.directory = directory
        self.tokens = tokens
        self.default_avatar_url = default_avatar_url

    def register(
        self,
        username: str | None,
        email: str | None,
        password: str | None,
        confirm_password: str | None,
        **profile: Any,
    ) -> User:
        missing = _missing(
            username=username,
            email=email,
            password=password,
            confirmPassword=confirm_password,
        )
        if missing:
            raise AppError(
                ErrorKind.MISSING_FIELDS,
                {"fields": missing},
                message=f"Required fields missing: {', '.join(missing)}",
            )
        if password != confirm_password:
            raise AppError(ErrorKind.PASSWORD_MISMATCH)
        _check_password_length(password)

        field = self.directory.find_conflict(email=email, username=username)
        if field is not None:
            value = email if field == "email" else username
            raise AppError(
                ErrorKind.USER_EXISTS,
                {"field": field},
                message=f"Registration failed: {field} '{value}' is already registered",
            )

        extra = {key: profile[key] for key in PROFILE_FIELDS if profile.get(key)}
        user = self.directory.create(
            username=username,
            email=email,
            password_hash=hash_password(password),
            auth_provider=LOCAL_PROVIDER,
            **extra,
        )
        logger.info("User registered", extra={"user_id": user.id})
        return user

    def login_with_password(self, login: str | None, password: str | None) -> SessionResult:
        """Authenticate by email or username plus password."""
        missing = _missing(email=login, password=password)
        if missing:
            raise AppError(
                ErrorKind.MISSING_FIELDS,
                {"fields": missing},
                message=f"Required fields missing: {', '.join(missing)}",
            )

        user = self.directory.find_by_login(login)
        if user is None:
            raise AppError(ErrorKind.INVALID_CREDENTIALS, message="Invalid email or password")

        if not user.password_hash:
            if user.auth_provider == LOCAL_PROVIDER:
                # A local account without a password can never log in; remove it.
                logger.warning(
                    "Deleting local account with no password hash",
                    extra={"user_id": user.id},
                )
                self.directory.delete(user)
                raise AppError(
                    ErrorKind.INVALID_CREDENTIALS,
                    {"reason": "password_not_set"},
                    message="Account error: password not properly set up. Please contact support",
                )
            raise AppError(
                ErrorKind.INVALID_CREDENTIALS,
                {"reason": "federated_account", "provider": user.auth_provider},
                message="Invalid email or password",
            )

        if not verify_password(password, user.password_hash):
            raise AppError(ErrorKind.INVALID_CREDENTIALS, message="Invalid email or password")

        self._require_active(user)
        return self._start_session(user)

    def login_with_federated_identity(self, identity: VerifiedIdentity) -> SessionResult:
        """Log in (provisioning on first use) a user vouched for by an identity provider."""
        if not identity.email:
            raise AppError(ErrorKind.MISSING_FIELDS, {"fields": ["email"]})

        user = self.directory.find_by_login(identity.email)
        if user is None and identity.external_id:
            user = self.directory.find_by_external_id(identity.provider, identity.external_id)
        if user is None:
            user = self._provision(identity)

        self._require_active(user)
        return self._start_session(user)

    def refresh(self, refresh_token: str | None) -> SessionResult:
        """
        Rotate a refresh token.

        The presented token must equal the one stored on the user record; the
        replacement is written with a compare-and-set so a token can be used once.
        """
        token = strip_scheme(refresh_token)
        if not token:
            raise AppError(ErrorKind.INVALID_TOKEN, {"issue": "missing_token", "tokenType": "refresh"})

        claims = self.tokens.verify_refresh(token)
        user_id = claims["data"].get("userId")
        user = self.directory.get(user_id) if user_id is not None else None
        if user is None:
            raise AppError(ErrorKind.USER_NOT_FOUND, {"userId": user_id})

        if user.refresh_token != token:
            logger.warning("Refresh token mismatch", extra={"user_id": user.id})
            raise AppError(ErrorKind.INVALID_TOKEN, {"issue": "token_mismatch", "tokenType": "refresh"})
        self._require_active(user)

        pair = self.tokens.issue_pair(access_payload(user), refresh_payload(user))
        if not self.directory.swap_refresh_token(user.id, token, pair.refresh_token):
            # Another request rotated this token first.
            logger.warning("Refresh token rotated concurrently", extra={"user_id": user.id})
            raise AppError(ErrorKind.INVALID_TOKEN, {"issue": "token_mismatch", "tokenType": "refresh"})
        return SessionResult(tokens=pair, user=user)

    def logout(self, refresh_token: str | None) -> bool:
        """
        Clear the server-side refresh token. Idempotent; expired tokens are accepted.

        Returns True when a stored token was actually cleared.
        """
        token = strip_scheme(refresh_token)
        if not token:
            return False
        try:
            claims = self.tokens.verify_refresh_ignoring_expiry(token)
        except AppError as e:
            logger.info("Logout with unusable refresh token: %s", e.details.get("issue"))
            return False
        user_id = claims.get("data", {}).get("userId")
        if user_id is None:
            return False
        cleared = self.directory.clear_refresh_token(user_id) > 0
        logger.info("User logged out", extra={"user_id": user_id, "cleared": cleared})
        return cleared

    def update_password(
        self, user_id: int, current_password: str | None, new_password: str | None
    ) -> User:
        missing = _missing(currentPassword=current_password, newPassword=new_password)
        if missing:
            raise AppError(ErrorKind.MISSING_FIELDS, {"fields": missing})
        user = self.directory.get(user_id)
        if user is None:
            raise AppError(ErrorKind.USER_NOT_FOUND, {"userId": user_id})
        if not verify_password(current_password, user.password_hash):
            raise AppError(ErrorKind.INVALID_CREDENTIALS, message="Current password is incorrect")
        _check_password_length(new_password)
        return self.directory.update(user, password_hash=hash_password(new_password))

    def get_profile(self, user_id: int) -> User:
        user = self.directory.get(user_id)
        if user is None:
            raise AppError(ErrorKind.USER_NOT_FOUND, {"userId": user_id})
        self._require_active(user)
        return user

    def _require_active(self, user: User) -> None:
        if not user.is_active:
            raise AppError(
                ErrorKind.FORBIDDEN,
                {"reason": "account_inactive"},
                message="Account is inactive",
            )

    def _start_session(self, user: User) -> SessionResult:
        pair = self.tokens.issue_pair(access_payload(user), refresh_payload(user))
        self.directory.store_refresh_token(user.id, pair.refresh_token, login=True)
        logger.info("Session started", extra={"user_id": user.id})
        return SessionResult(tokens=pair, user=user)

    def _provision(self, identity: VerifiedIdentity) -> User:
        base = _base_username(identity)
        username = base
        for _ in range(USERNAME_GENERATION_ATTEMPTS):
            if self.directory.find_conflict(email=None, username=username) is None:
                break
            username = f"{base}{secrets.randbelow(10000):04d}"
        else:
            raise AppError(
                ErrorKind.USER_EXISTS,
                {"field": "username", "operation": "provision_federated_user"},
            )

        user = self.directory.create(
            username=username,
            email=identity.email,
            password_hash=None,
            auth_provider=identity.provider,
            external_id=identity.external_id or None,
            profile_picture=identity.avatar or self.default_avatar_url,
        )
        logger.info(
            "Provisioned federated user",
            extra={"user_id": user.id, "provider": identity.provider},
        )
        return user
