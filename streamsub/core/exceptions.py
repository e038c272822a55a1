"""
Application exceptions and their HTTP rendering
"""
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base class for errors that map onto a caller-visible outcome."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFoundException(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Resource not found"


class ConflictException(AppException):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Resource conflict"


class InvalidStateException(AppException):
    """The requested transition is not valid for the record's current state."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_state"
    default_message = "Action not allowed in the current state"


class ValidationException(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"
    default_message = "Invalid input"


class GatewayException(AppException):
    """The payment provider call failed or could not be understood."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "gateway_failure"
    default_message = "Payment gateway request failed"


class PaymentDeclinedException(GatewayException):
    """The payment provider answered, but the charge did not succeed."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "payment_declined"
    default_message = "Payment was not successful"


class AccessDeniedException(AppException):
    status_code = status.HTTP_403_FORBIDDEN
    code = "subscription_required"
    default_message = "Active subscription required"


def _error_response(status_code: int, code: str, message: Any, details: Any = None) -> JSONResponse:
    content = {"status": "error", "code": code, "message": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, "http_error", exc.detail)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ValidationException.code,
        "Request validation failed",
        jsonable_errors(exc),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that are not JSON serialisable
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    """
    Attach the error envelope handlers to the application
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
