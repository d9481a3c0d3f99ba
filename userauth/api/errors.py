"""Exception handlers rendering every failure into the JSON envelope."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from userauth.api.gates import clear_session_cookies, reapply_refreshed_cookies
from userauth.core.errors import SESSION_ERROR_KINDS, AppError, ErrorKind
from userauth.schemas.envelope import fail

logger = logging.getLogger(__name__)

# Framework-raised statuses (unknown route, wrong method, ...) mapped onto the taxonomy.
HTTP_STATUS_KINDS = {
    401: ErrorKind.AUTHENTICATION_FAILED,
    403: ErrorKind.FORBIDDEN,
}


def error_response(
    exc: AppError,
    request: Request | None = None,
    status_code: int | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    status = status_code or exc.status
    response = JSONResponse(
        status_code=status,
        content=fail(exc.code, exc.message, jsonable_encoder(exc.details) or None),
        headers=headers,
    )
    if status == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    if exc.kind in SESSION_ERROR_KINDS:
        clear_session_cookies(response)
    elif request is not None:
        reapply_refreshed_cookies(request, response)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    """Map AppError, HTTP errors, request validation errors and unexpected errors to envelopes."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        log_fn = logger.error if exc.status >= 500 else logger.warning
        log_fn(
            "Request failed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error_kind": exc.kind.name,
                "status_code": exc.status,
                "operation": exc.details.get("operation"),
            },
        )
        return error_response(exc, request)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        default = ErrorKind.INTERNAL_ERROR if exc.status_code >= 500 else ErrorKind.VALIDATION_ERROR
        kind = HTTP_STATUS_KINDS.get(exc.status_code, default)
        logger.info(
            "HTTP error",
            extra={"path": request.url.path, "method": request.method, "status_code": exc.status_code},
        )
        return error_response(
            AppError(kind, message=str(exc.detail)),
            request,
            status_code=exc.status_code,
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = jsonable_encoder(exc.errors())
        logger.info("Request validation failed", extra={"path": request.url.path})
        return error_response(
            AppError(
                ErrorKind.VALIDATION_ERROR,
                {"errors": [{k: e.get(k) for k in ("loc", "msg", "type")} for e in errors]},
            ),
            request,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", extra={"path": request.url.path})
        return error_response(
            AppError.wrap(exc, operation=f"{request.method} {request.url.path}"), request
        )
