"""
Webhook Errors
==============

Exception taxonomy for the ingestion pipeline and the FastAPI handlers that
render it.

WHY THIS FILE EXISTS
--------------------
Webhook senders decide whether to retry from the status code alone:
4xx means "do not retry", 5xx means "outcome unknown, retry later". Every
failure in the pipeline therefore maps to exactly one status:

    AuthenticationError       401  missing/invalid signature or secret
    AuthorizationError        403  integration inactive
    NotFoundError             404  integration/domain unresolved
    PayloadValidationError    400  schema or field-level violations
    UnsupportedPlatformError  400  integration type has no normalizer
    ConflictError             409  duplicate customer (generic webhook)
    anything else             500  no internal detail leaked

Response body shape: {"error": ..., "message": ..., ["details" | "data"]: ...}

RELATED FILES
-------------
- orderhub/services/normalizer.py: Raises PayloadValidationError / UnsupportedPlatformError
- orderhub/services/customer_webhook_service.py: Raises validation, auth and conflict errors
- orderhub/routers/: Raise auth/not-found errors while resolving integrations
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from orderhub.telemetry import capture_exception

logger = logging.getLogger(__name__)


class WebhookError(Exception):
    """
    Base exception for all pipeline errors.

    Subclasses set `status_code` and a default `error` label; `message` is the
    human-readable explanation returned to the sender.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None):
        self.message = message or self.error
        if error:
            self.error = error
        super().__init__(self.message)

    def to_response_body(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message}


class AuthenticationError(WebhookError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class AuthorizationError(WebhookError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"


class NotFoundError(WebhookError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class PayloadValidationError(WebhookError):
    """
    Request body failed validation.

    `details` is a list of {"field": "line_items.0.price", "message": "..."}
    entries so senders can see every violated field at once.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation error"

    def __init__(
        self,
        message: Optional[str] = None,
        error: Optional[str] = None,
        details: Optional[list[dict[str, Any]]] = None,
    ):
        super().__init__(message, error)
        self.details = details or []

    def to_response_body(self) -> dict[str, Any]:
        body = super().to_response_body()
        if self.details:
            body["details"] = self.details
        return body


class UnsupportedPlatformError(WebhookError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Unsupported integration type"

    def __init__(self, platform: Any):
        self.platform = platform
        super().__init__(f"No order normalizer for integration type '{platform}'")


class ConflictError(WebhookError):
    """Resource already exists; `data` identifies the existing record."""

    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"

    def __init__(
        self,
        message: Optional[str] = None,
        error: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, error)
        self.data = data

    def to_response_body(self) -> dict[str, Any]:
        body = super().to_response_body()
        if self.data is not None:
            body["data"] = self.data
        return body


# =============================================================================
# FASTAPI HANDLERS
# =============================================================================

async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"[WEBHOOK] {request.method} {request.url.path} -> {exc.status_code} {exc.error}: {exc.message}"
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_response_body())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"[WEBHOOK] Unexpected error on {request.method} {request.url.path}")
    capture_exception(exc, extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred while processing the webhook",
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WebhookError, webhook_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
