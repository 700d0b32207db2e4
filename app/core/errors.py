from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException


class PortalError(Exception):
    """Base class for errors raised by the session/event core."""

    code = "portal_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ConflictError(PortalError):
    """A clock-in was attempted while the subject already has an open session."""

    code = "already_clocked_in"
    status_code = status.HTTP_409_CONFLICT


class NotFoundError(PortalError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AlreadyClosedError(PortalError):
    """Clock-out on a session that already has ``clock_out`` set."""

    code = "already_closed"
    status_code = status.HTTP_409_CONFLICT


class StorageError(PortalError, OSError):
    """Underlying storage failed on read or write. Never retried by the core."""

    code = "storage_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ValidationError(PortalError, ValueError):
    """Malformed event fields, rejected before anything is written."""

    code = "validation_error"
    status_code = 422


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def portal_exception_handler(request: Request, exc: PortalError):
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(status_code=exc.status_code, code="http_error", message=message, details=details)


async def validation_exception_handler(request: Request, exc):  # type: ignore[override]
    from fastapi.exceptions import RequestValidationError

    if isinstance(exc, RequestValidationError):
        return ErrorEnvelope(
            status_code=422,
            code="validation_error",
            message="Validation failed",
            details={"errors": jsonable_errors(exc.errors())},
        )
    raise exc


def jsonable_errors(errors: Any) -> list[dict[str, Any]]:
    cleaned: list[dict[str, Any]] = []
    for error in errors or []:
        item = {k: v for k, v in dict(error).items() if k in {"loc", "msg", "type"}}
        cleaned.append(item)
    return cleaned
