"""Error taxonomy and the handlers that turn it into `{error, details?}` JSON."""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base for errors that map onto an HTTP response."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details


class InvalidInput(AppError):
    status_code = 400
    message = "Invalid input"


class InvalidAmount(InvalidInput):
    message = "Valid amount is required"


class AuthFailure(AppError):
    status_code = 401
    message = "Unauthorized"


class SignatureInvalid(AuthFailure):
    # Stripe expects a client error, not 401, for rejected deliveries.
    status_code = 400
    message = "Webhook signature verification failed"


class NotFound(AppError):
    status_code = 404
    message = "Not found"


class Conflict(AppError):
    status_code = 400
    message = "Conflict"


class UpstreamFailure(AppError):
    status_code = 500
    message = "Upstream service failed"


class ProcessingError(UpstreamFailure):
    message = "Failed to create payment intent"


class MissingOrderReference(Exception):
    """A payment event carried no order_id in its metadata."""

    def __init__(self, payment_intent_id: str):
        super().__init__(f"No order_id in metadata of payment intent {payment_intent_id}")
        self.payment_intent_id = payment_intent_id


def error_body(message: str, details: Any = None) -> dict:
    body = {"error": message}
    if details is not None:
        body["details"] = details
    return body


def validation_details(errors) -> list[dict]:
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in errors]


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            # Upstream detail stays in the logs.
            logger.error(
                "request failed path=%s error=%s",
                request.url.path,
                exc.__cause__ or exc,
                exc_info=exc.__cause__ or exc,
            )
            return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content=error_body("Invalid request", validation_details(exc.errors())))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled exception path=%s", request.url.path)
        return JSONResponse(status_code=500, content=error_body("Internal server error"))
