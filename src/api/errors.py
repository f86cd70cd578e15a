"""
Exception handlers.

Domain errors carry their own status code; everything is rendered as
``{"detail": ..., "code": ...}``.  Unexpected failures are logged with a
traceback and answered with a generic 500 so no storage detail leaks out.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from src.domain.exceptions import BookingError, LedgerIntegrityError

logger = logging.getLogger(__name__)


def _error(status_code: int, detail: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    logger.info(
        "%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message
    )
    return _error(exc.status_code, exc.message, exc.code)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    detail = f"{field}: {message}" if field else message
    return _error(400, detail, "validation_error")


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error", "internal_error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, internal_error_handler)
    app.add_exception_handler(LedgerIntegrityError, internal_error_handler)
