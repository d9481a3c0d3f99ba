"""JSON response envelope shared by every endpoint."""

from typing import Any

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    code: str = Field(description="Stable taxonomy code, e.g. AUTH_004")
    message: str
    details: dict[str, Any] | list[Any] | None = None


class Envelope(BaseModel):
    """{success, data?, message?, error?}"""

    success: bool = True
    data: Any | None = None
    message: str | None = None
    error: ErrorBody | None = None


def ok(data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Serialize a success envelope, omitting empty keys."""
    return Envelope(success=True, data=data, message=message).model_dump(
        mode="json", exclude_none=True
    )


def fail(code: str, message: str, details: Any = None) -> dict[str, Any]:
    envelope = Envelope(
        success=False,
        error=ErrorBody(code=code, message=message, details=details),
    )
    return envelope.model_dump(mode="json", exclude_none=True)
