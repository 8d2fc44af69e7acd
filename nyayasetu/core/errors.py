"""
Error types and exception handlers.

Every error leaves the API in the same envelope the front end expects:
    {"success": false, "message": "...", ...extra fields}
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class NyayaSetuError(Exception):
    """Base class for domain errors that map to an HTTP status."""

    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra


class NotFoundError(NyayaSetuError):
    status_code = 404


class PermissionDeniedError(NyayaSetuError):
    status_code = 403


class ConflictError(NyayaSetuError):
    status_code = 409


class InsufficientFundsError(NyayaSetuError):
    """Raised when a disbursement exceeds what an allocation has left."""
    status_code = 400


class InvalidTransitionError(NyayaSetuError):
    """Raised when a grievance action is not allowed in its current status."""
    status_code = 400


def error_body(message: str, extra: Optional[dict] = None) -> dict:
    body = {"success": False, "message": message}
    if extra:
        body.update(extra)
    return body


async def nyayasetu_error_handler(request: Request, exc: NyayaSetuError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.extra))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        content = {"success": False, **detail}
        content.setdefault("message", "Request failed")
    else:
        content = error_body(str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=error_body("Invalid request", {"errors": jsonable_encoder(exc.errors())}),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", {"error": str(exc)}),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NyayaSetuError, nyayasetu_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
