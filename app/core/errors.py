"""
Error taxonomy shared by the store, resolver, coordinator and policy gate.

Every error carries a stable ``kind`` and a human-readable message. HTTP
rendering lives in ``register_exception_handlers``.
"""
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from app.utils import get_logger


log = get_logger(__name__)


class AccessControlError(Exception):
    """Base class for errors surfaced to callers."""

    kind: str = "error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFound(AccessControlError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(AccessControlError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InvalidArgument(AccessControlError):
    kind = "invalid_argument"
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthenticated(AccessControlError):
    kind = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(AccessControlError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class DependencyInUse(AccessControlError):
    """Deletion blocked because other rows still reference the entity."""

    kind = "dependency_in_use"
    status_code = status.HTTP_409_CONFLICT


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(AccessControlError)
    async def _access_control_error_handler(_request: Request, exc: AccessControlError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(IntegrityError)
    async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
        log.warning("Unhandled integrity error: %s", exc.orig)
        error = Conflict("Request conflicts with existing data")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
