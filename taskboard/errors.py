"""Application errors and the central translator that renders them.

Services raise `AppError` subclasses; no router builds its own error
response. `install_exception_handlers` maps every failure kind to a status
code and the uniform envelope `{success, message, errors?, code?}`.
"""
import logging
import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

FieldError = Dict[str, str]


class AppError(Exception):
    """Expected failure carrying an HTTP status, surfaced verbatim to the caller."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: Optional[str] = None

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        code: Optional[str] = None,
        errors: Optional[List[FieldError]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.errors = errors
        self.headers = headers


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, errors: List[FieldError], message: str = "Validation failed") -> None:
        super().__init__(message, errors=errors)


class NoFields(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "NO_FIELDS"

    def __init__(self, message: str = "No fields to update.") -> None:
        super().__init__(message)


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidToken(Unauthenticated):
    code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid token.") -> None:
        super().__init__(message)


class ExpiredToken(Unauthenticated):
    code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Token expired. Please refresh your token.") -> None:
        super().__init__(message)


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT


class TooManyRequests(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def envelope(
    success: bool,
    message: Optional[str] = None,
    data: Any = None,
    errors: Optional[List[FieldError]] = None,
    code: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": success}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    if errors:
        body["errors"] = errors
    if code is not None:
        body["code"] = code
    return body


def _field_name(loc: tuple) -> str:
    # ("body", "title") -> "title"; ("query", "page") -> "page"
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header", "cookie")]
    return ".".join(parts) if parts else str(loc[-1]) if loc else ""


def _clean_message(msg: str) -> str:
    # Pydantic prefixes custom validator messages with "Value error, ".
    prefix = "Value error, "
    return msg[len(prefix):] if msg.startswith(prefix) else msg


def install_exception_handlers(app: FastAPI, *, expose_stack: bool = False) -> None:
    """Register the single translator for every error kind."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Application error on %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(False, exc.message, errors=exc.errors, code=exc.code),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": _field_name(tuple(err.get("loc", ()))), "message": _clean_message(err.get("msg", ""))}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=envelope(False, "Validation failed", errors=errors),
        )

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=envelope(False, "Duplicate value error."),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            message = f"Route not found: {request.method} {request.url.path}"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(False, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = envelope(False, "Internal server error")
        if expose_stack:
            body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
