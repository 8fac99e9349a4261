"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Domain errors from
`core.errors` are translated here so routers and services can simply raise them.
"""
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Optional, Dict, Any

from core.errors import (
    AuthError,
    ClientSideForbidden,
    ConnectionUnavailable,
    InvalidCredentials,
    InvalidSession,
    StorageError,
    UsernameTaken,
)

logger = logging.getLogger(__name__)


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Authentication required", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code=error_code,
            headers={"WWW-Authenticate": "Bearer"}
        )


_AUTH_STATUS = {
    UsernameTaken: status.HTTP_409_CONFLICT,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    InvalidSession: status.HTTP_401_UNAUTHORIZED,
}


def _error_response(status_code: int, detail: str, error_code: Optional[str], headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "error_code": error_code},
        headers=headers,
    )


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    return _error_response(exc.status_code, exc.detail, exc.error_code, exc.headers)


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    status_code = _AUTH_STATUS.get(type(exc), status.HTTP_401_UNAUTHORIZED)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return _error_response(status_code, exc.detail, exc.error_code, headers)


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    if isinstance(exc, ConnectionUnavailable):
        logger.warning(
            f"Remote store unavailable: {request.method} {request.url.path}: {exc.detail}",
            extra={"extra_fields": {"error_code": exc.error_code, "path": request.url.path}},
        )
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc.detail, exc.error_code)

    if isinstance(exc, ClientSideForbidden):
        logger.error(f"Execution context violation on {request.url.path}: {exc.detail}")

    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.detail, exc.error_code)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain error translations to an application."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
