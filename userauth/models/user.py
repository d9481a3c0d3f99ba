"""ORM model for user accounts (credentials, sessions and RBAC)."""

import re
from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import validates

from userauth.core.security import USERNAME_MAX_LEN, USERNAME_MIN_LEN
from userauth.models.base import Base

EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,})+$")

ROLES = ("user", "admin")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class User(Base):
    """
    User account for credential/federated login and role-based access control.

    role: 'admin' or 'user'
    password_hash: None for federated-only accounts
    auth_provider: 'local' for registered accounts, else the identity provider name
    refresh_token: the single refresh token currently honoured for this user
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(USERNAME_MAX_LEN), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)
    auth_provider = Column(String(32), nullable=False, default="local")
    external_id = Column(String(255), nullable=True, index=True)
    role = Column(String(32), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    refresh_token = Column(Text, nullable=True)
    profile_picture = Column(String(1024), nullable=True)
    thumbnail = Column(String(1024), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    @validates("username")
    def _validate_username(self, _key: str, value: str) -> str:
        value = (value or "").strip()
        if len(value) < USERNAME_MIN_LEN:
            raise ValueError(f"Username must be at least {USERNAME_MIN_LEN} characters")
        if len(value) > USERNAME_MAX_LEN:
            raise ValueError(f"Username cannot exceed {USERNAME_MAX_LEN} characters")
        return value

    @validates("email")
    def _validate_email(self, _key: str, value: str) -> str:
        value = (value or "").strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Please enter a valid email address")
        return value

    @validates("role")
    def _validate_role(self, _key: str, value: str) -> str:
        if value not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")
        return value

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username} email={self.email}>"
