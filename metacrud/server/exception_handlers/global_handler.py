"""
Global Exception Handlers for FastAPI Application.

``api_error_handler`` renders API errors raised outside the request router
(for instance while resolving the caller's session) with the standard error
body. ``global_exception_handler`` catches every other unhandled exception and
logs detailed information including error ID, request context and full
traceback for debugging purposes.
"""

import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from metacrud.core.exceptions import ApiError
from metacrud.core.logging_config import get_logger
from metacrud.core.model.session import ANONYMOUS

logger = get_logger(__name__)


async def api_error_handler(request: Request, exc: ApiError) -> Response:
    """
    Render an ``ApiError`` raised before the request reached the router.

    The caller's session is unknown at that point, so the anonymous session
    is reported.

    Args:
        request: The HTTP request that caused the exception
        exc: The API error that was raised

    Returns:
        The standard error response, without body when the message is empty
    """
    logger.info(f"{request.method} {request.url.path} answered {exc.status_code}: {exc.message}")
    if not exc.message:
        return Response(status_code=exc.status_code, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "session_info": ANONYMOUS.to_dict()},
        headers=exc.headers,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler to log detailed error information.

    This handler is called for any unhandled exception in the application.
    It logs the full error context and returns a JSON response with an error ID
    that clients can use to reference the error when reporting issues.

    Args:
        request: The HTTP request that caused the exception
        exc: The exception that was raised

    Returns:
        JSONResponse with error details and error ID
    """
    # Generate unique error ID for tracking
    error_id = id(exc)

    # Log the error with full context
    logger.error(
        f"Unhandled exception [{error_id}] in {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client": request.client.host if request.client else "unknown",
            "error_type": type(exc).__name__,
            "traceback": traceback.format_exc(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal error",
            "error_id": error_id,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    This function should be called during application initialization to set up
    all custom exception handlers.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("Exception handlers registered successfully")
