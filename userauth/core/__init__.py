"""Core app configuration, database and error taxonomy."""

from userauth.core.config import get_settings, settings
from userauth.core.database import get_db
from userauth.core.errors import AppError, ErrorKind

__all__ = ["AppError", "ErrorKind", "get_settings", "settings", "get_db"]
