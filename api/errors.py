"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from api.middleware import request_id_of
from auth.exceptions import RateLimitedError
from core.errors import DomainError, ErrorKind, InvalidSecretError, PaymentExceedsBalanceError

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.EXTERNAL_SERVICE: 502,
}


def _details(exc: DomainError) -> dict | None:
    if isinstance(exc, PaymentExceedsBalanceError):
        return {
            "amount": str(exc.amount),
            "remaining": str(exc.remaining),
            "excess": str(exc.excess),
        }
    if isinstance(exc, InvalidSecretError) and exc.remaining_attempts is not None:
        return {"remaining_attempts": exc.remaining_attempts}
    return None


def _json(request: Request, status_code: int, code: str, message: str, details=None, headers=None):
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, details, request_id_of(request)).model_dump(mode="json"),
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status_code = STATUS_BY_KIND[exc.kind]
        if status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}")
        return _json(request, status_code, exc.code, exc.message, _details(exc))

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError):
        return _json(
            request,
            429,
            ErrorCodes.RATE_LIMITED,
            str(exc),
            {"retry_after_seconds": exc.retry_after_seconds},
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _json(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError):
        return _json(
            request,
            422,
            ErrorCodes.VALIDATION_ERROR,
            str(exc.errors(include_url=False, include_context=False)),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _json(request, 400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
