"""Closed error taxonomy shared by services, gates and HTTP handlers."""

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Named failure kinds: (stable code, HTTP status, default message)."""

    AUTHENTICATION_FAILED = ("AUTH_001", 401, "Authentication failed")
    INVALID_CREDENTIALS = ("AUTH_002", 401, "Invalid credentials")
    TOKEN_EXPIRED = ("AUTH_003", 401, "Token expired")
    INVALID_TOKEN = ("AUTH_004", 401, "Invalid token")
    REFRESH_TOKEN_EXPIRED = ("AUTH_005", 401, "Refresh token expired, please log in again")
    VALIDATION_ERROR = ("VAL_001", 400, "Validation error")
    MISSING_FIELDS = ("VAL_002", 400, "Missing required fields")
    PASSWORD_MISMATCH = ("VAL_003", 400, "Password confirmation does not match")
    USER_EXISTS = ("USER_001", 409, "User already exists")
    USER_NOT_FOUND = ("USER_002", 404, "User not found")
    FORBIDDEN = ("PERM_001", 403, "Forbidden - insufficient permissions")
    INTERNAL_ERROR = ("SRV_001", 500, "Internal server error")

    def __init__(self, code: str, status: int, default_message: str) -> None:
        self.code = code
        self.status = status
        self.default_message = default_message


# Kinds that mean the client's session credentials are unusable; cookies get cleared.
SESSION_ERROR_KINDS = frozenset(
    {
        ErrorKind.INVALID_TOKEN,
        ErrorKind.TOKEN_EXPIRED,
        ErrorKind.REFRESH_TOKEN_EXPIRED,
    }
)


class AppError(Exception):
    """
    Transport-agnostic failure: kind, human message and structured details.

    Underlying exception text only ever travels in details["rawError"].
    """

    def __init__(
        self,
        kind: ErrorKind,
        details: dict[str, Any] | None = None,
        message: str | None = None,
    ) -> None:
        self.kind = kind
        self.message = message or kind.default_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.code

    @property
    def status(self) -> int:
        return self.kind.status

    @classmethod
    def wrap(
        cls,
        exc: BaseException,
        operation: str,
        kind: ErrorKind = ErrorKind.INTERNAL_ERROR,
        **details: Any,
    ) -> "AppError":
        """Re-wrap a foreign failure as a taxonomy error tagged with the failing operation."""
        if isinstance(exc, AppError):
            return exc
        details.update({"operation": operation, "rawError": str(exc) or type(exc).__name__})
        return cls(kind, details)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __repr__(self) -> str:
        return f"AppError({self.kind.name}, details={self.details!r})"
