"""
Global exception handlers for FastAPI.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from dialogue_engine.core.exceptions import (
    ConfigurationError,
    DialogueEngineError,
    IllegalPhaseTransitionError,
    InvalidPlanError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    SessionCompletedError,
    ValidationError,
)

log = structlog.get_logger(__name__)


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers with the FastAPI application.

    Maps the DialogueEngineError hierarchy to HTTP status codes and returns
    a consistent error body; anything else becomes a generic 500.
    """

    @app.exception_handler(DialogueEngineError)
    async def dialogue_engine_error_handler(
        request: Request,
        exc: DialogueEngineError,
    ) -> JSONResponse:
        """Handle DialogueEngineError exceptions with appropriate HTTP status codes."""
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        message = exc.message

        if isinstance(
            exc, (ValidationError, IllegalPhaseTransitionError, InvalidPlanError)
        ):
            status_code = status.HTTP_400_BAD_REQUEST
        elif isinstance(exc, SessionCompletedError):
            status_code = status.HTTP_409_CONFLICT
        elif isinstance(exc, LLMTimeoutError):
            status_code = status.HTTP_504_GATEWAY_TIMEOUT
        elif isinstance(exc, LLMRateLimitError):
            status_code = status.HTTP_429_TOO_MANY_REQUESTS
        elif isinstance(exc, LLMError):
            status_code = status.HTTP_502_BAD_GATEWAY
        elif isinstance(exc, ConfigurationError):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            message = "Server configuration error"

        log_ctx.warning(
            "request_error",
            message=exc.message,
            status_code=status_code,
        )

        return JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "type": type(exc).__name__,
                    "message": message,
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle all unhandled exceptions with HTTP 500 status."""
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )

        log_ctx.error(
            "unhandled_exception",
            message=str(exc),
            exc_info=exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "InternalServerError",
                    "message": "An unexpected error occurred",
                }
            },
        )
