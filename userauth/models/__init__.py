"""SQLAlchemy ORM models."""

from userauth.models.base import Base
from userauth.models.user import User

__all__ = ["Base", "User"]
