"""Service wiring for route dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from userauth.core.config import get_settings
from userauth.core.database import get_db
from userauth.services.admin import AdminService
from userauth.services.directory import UserDirectory
from userauth.services.identity import GoogleIdentityVerifier, IdentityVerifier
from userauth.services.sessions import SessionService
from userauth.services.tokens import TokenConfig, TokenService


@lru_cache
def get_token_service() -> TokenService:
    """Process-wide token service built from settings once."""
    return TokenService(TokenConfig.from_settings(get_settings()))


def get_identity_verifier() -> IdentityVerifier:
    return GoogleIdentityVerifier.from_settings(get_settings())


def get_directory(db: Annotated[Session, Depends(get_db)]) -> UserDirectory:
    return UserDirectory(db)


def get_session_service(
    directory: Annotated[UserDirectory, Depends(get_directory)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> SessionService:
    return SessionService(
        directory,
        tokens,
        default_avatar_url=get_settings().DEFAULT_AVATAR_URL,
    )


def get_admin_service(
    directory: Annotated[UserDirectory, Depends(get_directory)],
) -> AdminService:
    return AdminService(directory, page_size_max=get_settings().ADMIN_PAGE_SIZE_MAX)
