"""Shared builders for tests: isolated SQLite databases, token services, API clients."""

from collections.abc import Generator
from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from userauth.api.deps import get_identity_verifier, get_token_service
from userauth.core.database import build_engine, get_db
from userauth.models import Base
from userauth.services.directory import UserDirectory
from userauth.services.identity import IdentityVerifier, VerifiedIdentity
from userauth.services.sessions import SessionService
from userauth.services.tokens import TokenConfig, TokenService

ACCESS_SECRET = "unit-access-secret"
REFRESH_SECRET = "unit-refresh-secret"
EXPIRED = timedelta(seconds=-30)


def make_session_factory() -> sessionmaker:
    """Fresh in-memory database with the schema created."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def make_tokens(
    access_ttl: timedelta = timedelta(minutes=15),
    refresh_ttl: timedelta = timedelta(days=7),
    access_secret: str | None = ACCESS_SECRET,
    refresh_secret: str | None = REFRESH_SECRET,
) -> TokenService:
    return TokenService(
        TokenConfig(
            access_secret=access_secret,
            refresh_secret=refresh_secret,
            access_ttl=access_ttl,
            refresh_ttl=refresh_ttl,
        )
    )


def make_sessions(session: Session, tokens: TokenService | None = None) -> SessionService:
    return SessionService(
        UserDirectory(session),
        tokens or make_tokens(),
        default_avatar_url="https://example.com/default.png",
    )


def register(sessions: SessionService, username: str = "alice", email: str = "a@x.com", password: str = "secret1"):
    return sessions.register(
        username=username, email=email, password=password, confirm_password=password
    )


class FakeVerifier:
    """IdentityVerifier returning a fixed identity."""

    def __init__(self, identity: VerifiedIdentity) -> None:
        self.identity = identity
        self.credentials: list[str] = []

    async def verify(self, credential: str) -> VerifiedIdentity:
        self.credentials.append(credential)
        return self.identity


def make_client(
    factory: sessionmaker,
    tokens: TokenService,
    verifier: IdentityVerifier | None = None,
) -> TestClient:
    """TestClient over the real app with database, tokens and verifier overridden."""
    from userauth.main import app

    def _get_db() -> Generator[Session, None, None]:
        db = factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_token_service] = lambda: tokens
    if verifier is not None:
        app.dependency_overrides[get_identity_verifier] = lambda: verifier
    return TestClient(app)


def reset_overrides() -> None:
    from userauth.main import app

    app.dependency_overrides.clear()
