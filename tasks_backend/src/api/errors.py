"""
Error taxonomy and the handlers that render every failure in one envelope:

    {"error": {"kind": ..., "message": ..., "fields": [...]}}
"""
import logging
from typing import Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.schemas import ErrorBody, ErrorResponse, FieldError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for failures that map onto an HTTP status and error kind."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "Error"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, fields: Optional[List[FieldError]] = None):
        self.message = message or self.default_message
        self.fields = fields
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "ValidationError"
    default_message = "Invalid input"


class InvalidCredentials(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "InvalidCredentials"
    default_message = "Invalid credentials"


class DuplicateEmail(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "DuplicateEmail"
    default_message = "Email already registered"


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "Unauthenticated"
    default_message = "Could not validate credentials"

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "NotFound"
    default_message = "Not found"


class StoreError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "StoreError"
    default_message = "Database error"


_KIND_BY_STATUS = {
    400: "ValidationError",
    401: "Unauthenticated",
    404: "NotFound",
    405: "MethodNotAllowed",
}


def error_response(
    status_code: int,
    kind: str,
    message: str,
    fields: Optional[List[FieldError]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorBody(kind=kind, message=message, fields=fields))
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


def _field_errors(exc: RequestValidationError) -> List[FieldError]:
    """One entry per failed field; the first message wins when a field fails twice."""
    seen: Dict[str, FieldError] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        field = ".".join(loc) if loc else "body"
        if field in seen:
            continue
        message = str(err.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        seen[field] = FieldError(field=field, message=message)
    return list(seen.values())


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return error_response(exc.status_code, exc.kind, exc.message, exc.fields, exc.headers)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = _field_errors(exc)
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        ValidationError.kind,
        "; ".join(f"{f.field}: {f.message}" for f in fields) or ValidationError.default_message,
        fields,
    )


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = _KIND_BY_STATUS.get(exc.status_code, "Error")
    return error_response(exc.status_code, kind, str(exc.detail), headers=getattr(exc, "headers", None))


async def _store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Detail stays in the server log; the caller only sees the generic message.
    logger.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(StoreError.status_code, StoreError.kind, StoreError.default_message)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(AppError.status_code, AppError.kind, AppError.default_message)


# PUBLIC_INTERFACE
def install_error_handlers(app: FastAPI) -> None:
    """Register the envelope-producing handlers on `app`."""
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, _store_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
