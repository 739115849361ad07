"""Middleware configuration for the CareOps API.

This module sets up middleware for logging, error handling and security.
"""

import logging
import os
import time
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.dashboard.api.security import (
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    get_rate_limit_config
)

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging.

    Only method, path, status and timing are logged; query strings may carry
    patient identifiers and are left out.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Log request and response details.

        Parameters:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            Response: HTTP response with X-Process-Time header
        """
        start_time = time.perf_counter()
        client = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - Client: {client}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.perf_counter() - start_time
            logger.error(
                f"{request.method} {request.url.path} - "
                f"Error: {type(e).__name__} - "
                f"Time: {process_time:.3f}s",
                exc_info=True
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": "An unexpected error occurred"}
            )

        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.3f}"
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.3f}s"
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for global error handling.

    ServiceResult failures are converted to HTTPException in the routes; this
    catches anything that escaped a service.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except ValueError as e:
            logger.warning(f"Validation error: {str(e)}")
            return JSONResponse(
                status_code=400,
                content={"error": "Bad Request", "detail": str(e)}
            )
        except Exception as e:
            logger.error(f"Unexpected error: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "detail": "An unexpected error occurred. Please check logs for details."
                }
            )


def setup_middleware(app, rate_limit_per_minute: int = 120) -> None:
    """Setup application middleware.

    Parameters:
        app: FastAPI application instance
        rate_limit_per_minute: Default requests per client per minute

    Security Impact:
        - Logs all requests for audit trail
        - Handles errors gracefully without exposing sensitive information
        - Rate limiting prevents abuse
        - Security headers protect against common vulnerabilities

    Middleware Order (important):
        1. SecurityHeadersMiddleware - Adds security headers
        2. RateLimitMiddleware - Enforces rate limits
        3. ErrorHandlingMiddleware - Handles errors
        4. LoggingMiddleware - Logs requests/responses
    """
    enable_hsts = os.getenv("CO_ENABLE_HSTS", "false").lower() == "true"
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=enable_hsts)

    app.add_middleware(
        RateLimitMiddleware,
        default_limit=rate_limit_per_minute,
        default_window=60,
        per_endpoint_limits=get_rate_limit_config()
    )

    app.add_middleware(ErrorHandlingMiddleware)

    app.add_middleware(LoggingMiddleware)
