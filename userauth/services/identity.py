"""Third-party identity verification for federated login."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import httpx

from userauth.core.errors import AppError, ErrorKind

if TYPE_CHECKING:
    from userauth.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedIdentity:
    """Claims vouched for by an external identity provider."""

    external_id: str
    email: str | None
    name: str | None = None
    avatar: str | None = None
    provider: str = "google"


class IdentityVerifier(Protocol):
    async def verify(self, credential: str) -> VerifiedIdentity: ...


class GoogleIdentityVerifier:
    """Verify a Google ID token through the tokeninfo endpoint."""

    def __init__(
        self,
        client_id: str | None,
        tokeninfo_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.tokeninfo_url = tokeninfo_url
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> GoogleIdentityVerifier:
        return cls(
            client_id=settings.GOOGLE_CLIENT_ID,
            tokeninfo_url=settings.GOOGLE_TOKENINFO_URL,
            timeout=settings.OAUTH_REQUEST_TIMEOUT_SEC,
        )

    async def verify(self, credential: str) -> VerifiedIdentity:
        if not self.client_id:
            raise AppError(
                ErrorKind.INTERNAL_ERROR,
                {"operation": "verify_google_identity", "reason": "google_client_id_not_configured"},
            )
        if not credential or not credential.strip():
            raise AppError(ErrorKind.MISSING_FIELDS, {"fields": ["credential"]})

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.tokeninfo_url, params={"id_token": credential.strip()})
        except httpx.HTTPError as e:
            logger.warning("Google tokeninfo request failed: %s", e)
            raise AppError.wrap(
                e, operation="verify_google_identity", kind=ErrorKind.AUTHENTICATION_FAILED
            ) from e

        if response.status_code != 200:
            logger.info("Google rejected ID token: status=%s", response.status_code)
            raise AppError(
                ErrorKind.AUTHENTICATION_FAILED,
                {
                    "operation": "verify_google_identity",
                    "provider": "google",
                    "rawError": response.text[:500],
                },
            )

        try:
            claims = response.json()
        except ValueError as e:
            raise AppError.wrap(
                e, operation="verify_google_identity", kind=ErrorKind.AUTHENTICATION_FAILED
            ) from e

        if claims.get("aud") != self.client_id:
            raise AppError(
                ErrorKind.AUTHENTICATION_FAILED,
                {"operation": "verify_google_identity", "issue": "audience_mismatch"},
            )
        email = claims.get("email")
        # tokeninfo returns booleans as strings
        if email and str(claims.get("email_verified", "")).lower() != "true":
            raise AppError(
                ErrorKind.AUTHENTICATION_FAILED,
                {"operation": "verify_google_identity", "issue": "email_not_verified"},
            )

        return VerifiedIdentity(
            external_id=str(claims.get("sub", "")),
            email=email,
            name=claims.get("name"),
            avatar=claims.get("picture"),
        )
