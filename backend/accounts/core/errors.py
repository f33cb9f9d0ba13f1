"""
Error taxonomy and the translator that turns any exception into the wire envelope.

Domain code raises AppError subclasses (operational errors: expected, their
message is safe to show). Store, validation and token failures are translated
into the same taxonomy here. Anything else is a non-operational fault: it is
logged with its traceback and surfaced as a generic 500.

Error envelope:
    {"status": "error", "message": "..."}
plus "error" and "stack" keys in development.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any

from bson.errors import InvalidId
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from accounts.core.config import settings

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went very wrong!"


class AppError(Exception):
    """Base class for operational errors"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    is_operational: bool = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class CastError(Exception):
    """A raw value (path param or query string) does not fit the field's type"""

    def __init__(self, path: str, value: Any) -> None:
        self.path = path
        self.value = value
        super().__init__(f"Cast to {path} failed for value {value!r}")


class TokenError(Exception):
    """Base class for session token failures"""


class TokenInvalidError(TokenError):
    """Bad signature, malformed structure or missing claims"""


class TokenExpiredError(TokenError):
    """Token is past its expiry"""


def _format_validation_errors(errors: list[dict[str, Any]]) -> str:
    messages = []
    for err in errors:
        # Drop the "body" prefix FastAPI puts in front of request field locations
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        field = ".".join(loc)
        messages.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return f"Invalid input data. {'. '.join(messages)}"


def _duplicate_key_message(exc: DuplicateKeyError) -> str:
    key_value = (exc.details or {}).get("keyValue") or {}
    if key_value:
        field, value = next(iter(key_value.items()))
        return f'Duplicate field value: "{value}" for {field}. Please use another value!'
    return "Duplicate field value. Please use another value!"


def translate_exception(exc: Exception, request: Request | None = None) -> AppError:
    """Map any exception onto the operational taxonomy"""
    # Already operational - raised on purpose by domain code
    if isinstance(exc, AppError):
        return exc
    # Schema violations from request bodies or from repository writes
    if isinstance(exc, (ValidationError, RequestValidationError)):
        return BadRequestError(_format_validation_errors(exc.errors()))
    # Path params and query values that do not fit the field's type
    if isinstance(exc, CastError):
        return BadRequestError(f"Invalid {exc.path}: {exc.value}.")
    if isinstance(exc, InvalidId):
        return BadRequestError(f"Invalid _id: {exc}")
    # Unique index violation (e.g. two signups with the same email)
    if isinstance(exc, DuplicateKeyError):
        return BadRequestError(_duplicate_key_message(exc))
    # Session token failures - the client has to sign in again
    if isinstance(exc, TokenExpiredError):
        return UnauthorizedError("Token has expired. Please login again!")
    if isinstance(exc, TokenInvalidError):
        return UnauthorizedError("Invalid token. Please login again!")
    # Routing errors raised by Starlette (unknown path, method not allowed)
    if isinstance(exc, StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND and request is not None:
            return NotFoundError(f"Could not find {request.url.path}")
        return AppError(str(exc.detail), exc.status_code)

    # Anything else is a programming or infrastructure fault
    error = InternalError(GENERIC_ERROR_MESSAGE)
    error.is_operational = False
    return error


def build_error_response(exc: Exception, request: Request | None = None) -> JSONResponse:
    """Single point deciding how a failure looks on the wire"""
    error = translate_exception(exc, request)
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    # Faults get a traceback in the log; operational errors are left to the access log
    if not error.is_operational:
        logger.error(f"ERROR {type(exc).__name__}: {exc}\n{stack}")

    content: dict[str, Any] = {"status": "error", "message": error.message}
    if settings.is_development:
        # Development responses carry the original failure
        content["message"] = error.message if error.is_operational else str(exc) or error.message
        content["error"] = {"name": type(exc).__name__, "detail": str(exc)}
        content["stack"] = stack

    # 401 responses advertise the bearer scheme
    headers = None
    if error.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=error.status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Register the translator for every exception family on the app"""

    async def _handler(request: Request, exc: Exception) -> JSONResponse:
        return build_error_response(exc, request)

    for exc_type in (
        AppError,
        RequestValidationError,
        ValidationError,
        CastError,
        InvalidId,
        DuplicateKeyError,
        TokenError,
        StarletteHTTPException,
        Exception,
    ):
        app.add_exception_handler(exc_type, _handler)
