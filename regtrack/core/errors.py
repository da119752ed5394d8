"""Domain error taxonomy and the standardized JSON error envelope."""
from typing import Any

import sentry_sdk
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all error handlers."""
    error: str
    message: str
    detail: Any = None
    request_id: str = "unknown"

logger = structlog.get_logger()


# ── Taxonomy ──────────────────────────────────────────────────────────────────


class AppError(Exception):
    """Base class for errors the core raises towards its callers."""

    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(AppError):
    """A referenced regulation, reminder or user does not exist."""

    status_code = 404
    error = "not_found"


class ValidationError(AppError):
    """Missing input, or the requested transition is illegal in the current state."""

    status_code = 400
    error = "validation_error"


class ForbiddenError(AppError):
    """The acting user lacks the role the operation requires."""

    status_code = 403
    error = "forbidden"


class StoreError(AppError):
    """The underlying document store failed (network, quota, conflict)."""

    status_code = 500
    error = "store_error"

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        collection: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.collection = collection


# ── FastAPI handlers ──────────────────────────────────────────────────────────


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render domain errors; store failures never leak their internals."""
    request_id = request.headers.get("x-request-id", "unknown")

    if isinstance(exc, StoreError):
        logger.error(
            "store_error",
            error=exc.message,
            operation=exc.operation,
            collection=exc.collection,
            path=request.url.path,
            request_id=request_id,
        )
        sentry_sdk.capture_exception(exc)
        body = ErrorResponse(
            error=exc.error,
            message="The request could not be completed. Please try again later.",
            request_id=request_id,
        )
    else:
        body = ErrorResponse(
            error=exc.error,
            message=exc.message,
            detail=exc.detail,
            request_id=request_id,
        )

    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a consistent JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        request_id=request_id,
    )

    sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Our team has been notified.",
            "request_id": request_id,
        },
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Standardize HTTPException responses into the same JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    if isinstance(exc.detail, dict):
        error = exc.detail.get("error", f"http_{exc.status_code}")
        message = exc.detail.get("message", str(exc.detail))
        detail: Any = exc.detail.get("detail")
    else:
        error = f"http_{exc.status_code}"
        message = str(exc.detail)
        detail = exc.detail

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": error,
            "message": message,
            "detail": detail,
            "request_id": request_id,
        },
        headers=dict(exc.headers or {}),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope handlers to whichever FastAPI app embeds the core."""
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)
