"""Signed access/refresh token issuance, verification and rotation."""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import jwt

from userauth.core.errors import AppError, ErrorKind

if TYPE_CHECKING:
    from userauth.core.config import Settings

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


@dataclass(frozen=True)
class TokenConfig:
    """Two independent secrets bound to two independent lifetimes."""

    access_secret: str | None
    refresh_secret: str | None
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    algorithm: str = "HS256"

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TokenConfig":
        access = settings.ACCESS_TOKEN_SECRET
        refresh = settings.REFRESH_TOKEN_SECRET
        return cls(
            access_secret=access.get_secret_value() if access else None,
            refresh_secret=refresh.get_secret_value() if refresh else None,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            algorithm=settings.JWT_ALGORITHM,
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def strip_scheme(token: str | None) -> str | None:
    """Drop an optional Bearer scheme (any case); blank input becomes None."""
    if token is None:
        return None
    token = token.strip()
    scheme, _, credential = token.partition(" ")
    if scheme.lower() == BEARER_SCHEME:
        token = credential.strip()
    return token or None


class TokenService:
    """
    Issues and verifies the two token classes.

    Tokens are JWTs shaped {"data": {...}, "iat", "exp", "jti"}. Verification
    failures are classified: an elapsed expiry raises TOKEN_EXPIRED (with the
    expiry timestamp in details), anything else raises INVALID_TOKEN.
    """

    def __init__(self, config: TokenConfig) -> None:
        self.config = config

    def _issue(self, payload: dict[str, Any] | None, secret: str | None, ttl: timedelta, token_type: str) -> str:
        if not payload:
            raise AppError(
                ErrorKind.INTERNAL_ERROR,
                {"operation": f"issue_{token_type}", "reason": "payload_required"},
            )
        if not secret:
            logger.error("%s token secret is not configured", token_type.capitalize())
            raise AppError(
                ErrorKind.INTERNAL_ERROR,
                {"operation": f"issue_{token_type}", "reason": "secret_not_configured"},
            )
        now = datetime.now(UTC)
        claims = {
            "data": payload,
            "iat": now,
            "exp": now + ttl,
            "jti": uuid.uuid4().hex,
        }
        try:
            return jwt.encode(claims, secret, algorithm=self.config.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            logger.exception("%s token generation failed", token_type.capitalize())
            raise AppError.wrap(e, operation=f"issue_{token_type}") from e

    def _verify(self, token: str | None, secret: str | None, token_type: str) -> dict[str, Any]:
        token = strip_scheme(token)
        if not token:
            raise AppError(
                ErrorKind.INVALID_TOKEN,
                {"issue": "missing_token", "tokenType": token_type},
            )
        if not secret:
            raise AppError(
                ErrorKind.INVALID_TOKEN,
                {"issue": "secret_not_configured", "tokenType": token_type},
            )
        try:
            claims = jwt.decode(token, secret, algorithms=[self.config.algorithm])
        except jwt.ExpiredSignatureError as e:
            expired_at = self.decode_unsafe(token).get("exp")
            logger.debug("%s token expired at %s", token_type, expired_at)
            raise AppError(
                ErrorKind.TOKEN_EXPIRED,
                {"tokenType": token_type, "expiredAt": expired_at, "rawError": str(e)},
            ) from e
        except jwt.PyJWTError as e:
            logger.info("%s token verification failed: %s", token_type, e)
            raise AppError(
                ErrorKind.INVALID_TOKEN,
                {"issue": "verification_failed", "tokenType": token_type, "rawError": str(e)},
            ) from e
        if not isinstance(claims.get("data"), dict):
            raise AppError(
                ErrorKind.INVALID_TOKEN,
                {"issue": "malformed_payload", "tokenType": token_type},
            )
        return claims

    def issue_access(self, payload: dict[str, Any] | None) -> str:
        return self._issue(payload, self.config.access_secret, self.config.access_ttl, "access")

    def issue_refresh(self, payload: dict[str, Any] | None) -> str:
        return self._issue(payload, self.config.refresh_secret, self.config.refresh_ttl, "refresh")

    def verify_access(self, token: str | None) -> dict[str, Any]:
        """Return the verified claims of an access token."""
        return self._verify(token, self.config.access_secret, "access")

    def verify_refresh(self, token: str | None) -> dict[str, Any]:
        """Return the verified claims of a refresh token."""
        return self._verify(token, self.config.refresh_secret, "refresh")

    def verify_refresh_ignoring_expiry(self, token: str | None) -> dict[str, Any]:
        """Check the refresh token signature but tolerate an elapsed expiry (logout path)."""
        token = strip_scheme(token)
        if not token or not self.config.refresh_secret:
            raise AppError(ErrorKind.INVALID_TOKEN, {"issue": "missing_token", "tokenType": "refresh"})
        try:
            return jwt.decode(
                token,
                self.config.refresh_secret,
                algorithms=[self.config.algorithm],
                options={"verify_exp": False},
            )
        except jwt.PyJWTError as e:
            raise AppError(
                ErrorKind.INVALID_TOKEN,
                {"issue": "verification_failed", "tokenType": "refresh", "rawError": str(e)},
            ) from e

    @staticmethod
    def decode_unsafe(token: str | None) -> dict[str, Any]:
        """
        Parse claims without checking signature or expiry.

        Only for recovering the subject of an access token already known to be
        expired; never trust the result for authorization.
        """
        token = strip_scheme(token)
        if not token:
            return {}
        try:
            return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
        except jwt.PyJWTError:
            return {}

    def issue_pair(self, access_payload: dict[str, Any], refresh_payload: dict[str, Any]) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access(access_payload),
            refresh_token=self.issue_refresh(refresh_payload),
        )

    def rotate(self, refresh_token: str | None) -> TokenPair:
        """Verify a refresh token and mint a new pair from its payload. No persistence."""
        claims = self.verify_refresh(refresh_token)
        data = claims["data"]
        return self.issue_pair(data, data)
