"""Registration, login, federated login, token refresh and logout endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Request, Response, status

from userauth.api.deps import get_identity_verifier, get_session_service, get_token_service
from userauth.api.gates import REFRESH_COOKIE, clear_session_cookies, set_session_cookies
from userauth.schemas.auth import (
    GoogleLoginRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
)
from userauth.schemas.envelope import Envelope, ok
from userauth.schemas.users import UserPublic
from userauth.services.identity import IdentityVerifier
from userauth.services.sessions import SessionResult, SessionService
from userauth.services.tokens import TokenService

logger = logging.getLogger(__name__)
router = APIRouter()


def _session_body(result: SessionResult) -> dict:
    pair = TokenPairResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    )
    user = UserPublic.model_validate(result.user).model_dump(mode="json")
    return {**pair.model_dump(), "user": user}


@router.post(
    "/register",
    response_model=Envelope,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def register(
    body: RegisterRequest,
    sessions: Annotated[SessionService, Depends(get_session_service)],
) -> dict:
    user = sessions.register(
        username=body.username,
        email=body.email,
        password=body.password,
        confirm_password=body.confirm_password,
        profile_picture=body.profile_picture,
        thumbnail=body.thumbnail,
        description=body.description,
    )
    return ok(UserPublic.model_validate(user), message="User registered successfully")


@router.post("/login", response_model=Envelope, response_model_exclude_none=True)
def login(
    body: LoginRequest,
    response: Response,
    sessions: Annotated[SessionService, Depends(get_session_service)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> dict:
    """
    Authenticate with email (or username) and password.

    The token pair is set as http-only cookies and echoed in the body for
    clients using Authorization: Bearer <access_token>.
    """
    result = sessions.login_with_password(body.email, body.password)
    set_session_cookies(response, result.tokens, tokens)
    return ok(_session_body(result), message="Login successful")


@router.post("/oauth/google", response_model=Envelope, response_model_exclude_none=True)
async def login_google(
    body: GoogleLoginRequest,
    response: Response,
    sessions: Annotated[SessionService, Depends(get_session_service)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
    verifier: Annotated[IdentityVerifier, Depends(get_identity_verifier)],
) -> dict:
    """Log in with a Google ID token, creating the account on first use."""
    identity = await verifier.verify(body.credential or "")
    result = sessions.login_with_federated_identity(identity)
    set_session_cookies(response, result.tokens, tokens)
    return ok(_session_body(result), message="Login successful")


@router.post("/refresh-token", response_model=Envelope, response_model_exclude_none=True)
def refresh_token(
    request: Request,
    response: Response,
    sessions: Annotated[SessionService, Depends(get_session_service)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
    body: Annotated[RefreshRequest | None, Body()] = None,
) -> dict:
    """Rotate the refresh token (cookie first, then body) into a new pair."""
    presented = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    result = sessions.refresh(presented)
    set_session_cookies(response, result.tokens, tokens)
    return ok(_session_body(result), message="Token pair refreshed successfully")


@router.post("/logout", response_model=Envelope, response_model_exclude_none=True)
def logout(
    request: Request,
    response: Response,
    sessions: Annotated[SessionService, Depends(get_session_service)],
    body: Annotated[RefreshRequest | None, Body()] = None,
) -> dict:
    """Clear the stored refresh token (if any) and both session cookies."""
    presented = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    sessions.logout(presented)
    clear_session_cookies(response)
    return ok(message="Logged out successfully")
