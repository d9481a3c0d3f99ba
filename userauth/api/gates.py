"""
Per-request authentication gates.

authenticate classifies the presented access credential as NO_TOKEN,
TOKEN_VALID, TOKEN_EXPIRED or TOKEN_INVALID. An expired credential is not
rejected there: the subject is recovered from the unverified payload and the
request carries the expired marker to resolve_refresh, which routes opt into.
authorize checks the resolved subject's role. The per-request state lives in
an AuthContext on request.state.auth.

Chain them in route dependencies in that order:

    dependencies=[Depends(authenticate), Depends(resolve_refresh), Depends(authorize(["admin"]))]
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated

from fastapi import Depends, Request, Response
from pydantic import ValidationError

from userauth.api.deps import get_session_service, get_token_service
from userauth.core.config import get_settings
from userauth.core.errors import AppError, ErrorKind
from userauth.schemas.auth import CurrentUser
from userauth.services.sessions import SessionService
from userauth.services.tokens import TokenPair, TokenService

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"
# For header-auth clients that keep the refresh token outside the cookie jar.
REFRESH_HEADER = "X-Refresh-Token"


class TokenState(str, Enum):
    NO_TOKEN = "no_token"
    TOKEN_VALID = "token_valid"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_INVALID = "token_invalid"


@dataclass
class AuthContext:
    state: TokenState
    subject: CurrentUser | None = None
    expired_at: int | None = None
    refreshed: bool = False
    issued: TokenPair | None = None
    issuer: TokenService | None = field(default=None, repr=False)

    @property
    def needs_refresh(self) -> bool:
        return self.state is TokenState.TOKEN_EXPIRED


def set_session_cookies(response: Response, pair: TokenPair, tokens: TokenService) -> None:
    secure = get_settings().APP_ENV == "prod"
    for name, value, ttl in (
        (ACCESS_COOKIE, pair.access_token, tokens.config.access_ttl),
        (REFRESH_COOKIE, pair.refresh_token, tokens.config.refresh_ttl),
    ):
        response.set_cookie(
            name,
            value,
            max_age=int(ttl.total_seconds()),
            httponly=True,
            secure=secure,
            samesite="strict",
        )


def clear_session_cookies(response: Response) -> None:
    secure = get_settings().APP_ENV == "prod"
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, httponly=True, secure=secure, samesite="strict")


def reapply_refreshed_cookies(request: Request, response: Response) -> None:
    """
    Copy cookies minted by resolve_refresh onto a response built outside the route.

    The stored refresh token was already rotated, so an error response that
    drops them would leave the client holding a revoked token.
    """
    ctx: AuthContext | None = getattr(request.state, "auth", None)
    if ctx is not None and ctx.issued is not None and ctx.issuer is not None:
        set_session_cookies(response, ctx.issued, ctx.issuer)


def extract_access_token(request: Request) -> str | None:
    """Cookie slot first, then an Authorization: Bearer header."""
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, credential = header.partition(" ")
    if scheme.lower() == "bearer" and credential.strip():
        return credential.strip()
    return None


def _subject_from_claims(claims: dict) -> CurrentUser:
    try:
        return CurrentUser.from_token_data(claims["data"])
    except (KeyError, TypeError, ValidationError) as e:
        raise AppError(
            ErrorKind.INVALID_TOKEN,
            {"issue": "malformed_payload", "tokenType": "access", "rawError": str(e)},
        ) from e


def authenticate(
    request: Request,
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> AuthContext:
    token = extract_access_token(request)
    if token is None:
        request.state.auth = AuthContext(TokenState.NO_TOKEN)
        raise AppError(ErrorKind.INVALID_TOKEN, {"issue": "missing_token", "tokenType": "access"})

    try:
        claims = tokens.verify_access(token)
    except AppError as e:
        if e.kind is not ErrorKind.TOKEN_EXPIRED:
            request.state.auth = AuthContext(TokenState.TOKEN_INVALID)
            raise
        ctx = AuthContext(TokenState.TOKEN_EXPIRED, expired_at=e.details.get("expiredAt"))
        data = tokens.decode_unsafe(token).get("data")
        if isinstance(data, dict) and "userId" in data:
            try:
                ctx.subject = CurrentUser.from_token_data(data)
            except (KeyError, TypeError, ValidationError):
                ctx.subject = None
        request.state.auth = ctx
        return ctx

    ctx = AuthContext(TokenState.TOKEN_VALID, subject=_subject_from_claims(claims))
    request.state.auth = ctx
    return ctx


def resolve_refresh(
    request: Request,
    response: Response,
    ctx: Annotated[AuthContext, Depends(authenticate)],
    sessions: Annotated[SessionService, Depends(get_session_service)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> AuthContext:
    """Silently rotate the session when authenticate left an expired-credential marker."""
    if not ctx.needs_refresh:
        return ctx

    refresh_token = request.cookies.get(REFRESH_COOKIE) or request.headers.get(REFRESH_HEADER)
    if not refresh_token:
        raise AppError(
            ErrorKind.REFRESH_TOKEN_EXPIRED,
            {"issue": "missing_refresh_token", "expiredAt": ctx.expired_at},
        )

    try:
        result = sessions.refresh(refresh_token)
    except AppError as e:
        if e.status >= 500:
            raise
        logger.info("Silent refresh failed: %s", e.kind.name)
        raise AppError(
            ErrorKind.REFRESH_TOKEN_EXPIRED,
            {"cause": e.kind.name, **e.details},
        ) from e

    set_session_cookies(response, result.tokens, tokens)
    ctx.issued = result.tokens
    ctx.issuer = tokens
    ctx.subject = _subject_from_claims(tokens.verify_access(result.tokens.access_token))
    ctx.state = TokenState.TOKEN_VALID
    ctx.refreshed = True
    ctx.expired_at = None
    logger.debug("Session silently refreshed", extra={"user_id": ctx.subject.id})
    return ctx


def _resolved_subject(request: Request) -> CurrentUser:
    ctx: AuthContext | None = getattr(request.state, "auth", None)
    if ctx is None or ctx.state is TokenState.NO_TOKEN:
        raise AppError(ErrorKind.AUTHENTICATION_FAILED, {"issue": "no_subject"})
    if ctx.needs_refresh:
        # Route did not opt into resolve_refresh.
        raise AppError(
            ErrorKind.TOKEN_EXPIRED,
            {"tokenType": "access", "expiredAt": ctx.expired_at},
        )
    if ctx.subject is None:
        raise AppError(ErrorKind.AUTHENTICATION_FAILED, {"issue": "no_subject"})
    return ctx.subject


def current_subject(request: Request) -> CurrentUser:
    """Dependency: the subject attached by the gates that already ran."""
    return _resolved_subject(request)


def authorize(
    roles: Sequence[str], allow_self: bool = False, self_param: str = "user_id"
) -> Callable[[Request], CurrentUser]:
    """
    Build a gate admitting subjects whose role is in roles.

    With allow_self, a subject may also act on the resource whose path
    parameter self_param equals its own id.
    """
    allowed = list(roles)

    def _authorize(request: Request) -> CurrentUser:
        subject = _resolved_subject(request)
        if subject.role in allowed:
            return subject
        if allow_self and str(request.path_params.get(self_param)) == str(subject.id):
            return subject
        raise AppError(
            ErrorKind.FORBIDDEN,
            {"requiredRoles": allowed, "userRole": subject.role},
        )

    return _authorize
