"""Middleware and error translation for the API.

Domain errors are raised by the services and translated here into HTTP
responses, so route handlers contain no status-code bookkeeping for them.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from clinical_coding.domain.ports import (
    ConflictError,
    ExternalUnavailableError,
    InvalidStateError,
    MalformedPayloadError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    WorkflowError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses come before their bases
ERROR_STATUS = (
    (NotFoundError, 404, "Not Found"),
    (UnauthorizedError, 403, "Forbidden"),
    (ConflictError, 409, "Conflict"),
    (InvalidStateError, 400, "Bad Request"),
    (MalformedPayloadError, 422, "Unprocessable Entity"),
    (ExternalUnavailableError, 503, "Service Unavailable"),
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging.

    Each request gets a request id (the caller's X-Request-ID if sent) that is
    echoed in the response and attached to the request's log records.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Log request and response details.

        Parameters:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            Response: HTTP response with X-Process-Time and X-Request-ID headers
        """
        start_time = time.time()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        context = {
            "request_id": request_id,
            "endpoint": request.url.path,
            "principal": request.headers.get("x-user"),
        }

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"{request.method} {request.url.path} - "
                f"Error: {str(e)} - "
                f"Time: {process_time:.3f}s",
                exc_info=True,
                extra=context
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "detail": "An unexpected error occurred"
                },
                headers={"X-Request-ID": request_id}
            )

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.3f}"
        response.headers["X-Request-ID"] = request_id
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.3f}s",
            extra=context
        )
        return response


def error_response(exc: WorkflowError) -> JSONResponse:
    """Translate a domain error into its HTTP response."""
    for error_type, status_code, title in ERROR_STATUS:
        if isinstance(exc, error_type):
            return JSONResponse(status_code=status_code, content={"error": title, "detail": str(exc)})

    if isinstance(exc, StorageError):
        logger.error(f"Storage failure during {exc.operation}: {exc}")
    else:
        logger.error(f"Unhandled workflow error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": "An unexpected error occurred"}
    )


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    if isinstance(exc, (NotFoundError, InvalidStateError, UnauthorizedError)):
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return error_response(exc)


def setup_middleware(app: FastAPI) -> None:
    """Install error translation and request logging.

    Security Impact:
        - Logs all requests for audit trail
        - Internal errors never expose stack traces or storage details
    """
    app.add_exception_handler(WorkflowError, workflow_error_handler)
    app.add_middleware(LoggingMiddleware)
