"""Security middleware and utilities for the CareOps API.

This module provides rate limiting and security headers for production
deployment.

Security Impact:
    - Rate limiting prevents abuse and runaway model spend on AI endpoints
    - Security headers protect against common vulnerabilities
    - Responses carrying PHI are marked non-cacheable
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, Tuple

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Paths that are never rate limited
UNLIMITED_PATHS = ("/api/health", "/api/docs", "/api/redoc", "/api/openapi.json", "/")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware for rate limiting requests.

    Sliding window per client and endpoint group, kept in memory. Multiple
    API workers each keep their own window.

    Security Impact:
        - Prevents DoS attacks
        - Caps model calls per client on AI skill endpoints
        - Configurable per endpoint prefix
    """

    def __init__(
        self,
        app,
        default_limit: int = 120,
        default_window: int = 60,
        per_endpoint_limits: Dict[str, Tuple[int, int]] = None
    ):
        """Initialize rate limiter.

        Parameters:
            app: FastAPI application
            default_limit: Default requests per window
            default_window: Default window in seconds
            per_endpoint_limits: Dict mapping path prefixes to (limit, window) tuples
        """
        super().__init__(app)
        self.default_limit = default_limit
        self.default_window = default_window
        self.per_endpoint_limits = per_endpoint_limits or {}

        # {client_id: {endpoint_key: [timestamp, ...]}}
        self._requests: Dict[str, Dict[str, list]] = defaultdict(lambda: defaultdict(list))

        self._last_cleanup = time.time()
        self._cleanup_interval = 300

    def _get_client_id(self, request: Request) -> str:
        """Client identifier (first X-Forwarded-For hop, else the peer address)."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    def _get_endpoint_key(self, request: Request) -> str:
        """Longest configured prefix matching the path, or ``default``."""
        path = request.url.path
        matches = [prefix for prefix in self.per_endpoint_limits if path.startswith(prefix)]
        return max(matches, key=len) if matches else "default"

    def _limits_for(self, endpoint_key: str) -> Tuple[int, int]:
        return self.per_endpoint_limits.get(endpoint_key, (self.default_limit, self.default_window))

    def _cleanup_old_entries(self):
        """Remove entries older than an hour (at most every five minutes)."""
        current_time = time.time()
        if current_time - self._last_cleanup < self._cleanup_interval:
            return

        cutoff_time = current_time - 3600
        for client_requests in self._requests.values():
            for endpoint_requests in client_requests.values():
                endpoint_requests[:] = [ts for ts in endpoint_requests if ts > cutoff_time]

        self._last_cleanup = current_time

    def _check_rate_limit(self, client_id: str, endpoint_key: str) -> Tuple[bool, int, int]:
        """Check if request is within rate limit.

        Parameters:
            client_id: Client identifier
            endpoint_key: Endpoint key

        Returns:
            Tuple of (allowed, remaining, reset_after)
        """
        limit, window = self._limits_for(endpoint_key)
        current_time = time.time()
        window_start = current_time - window

        client_requests = self._requests[client_id][endpoint_key]
        client_requests[:] = [ts for ts in client_requests if ts > window_start]

        if len(client_requests) >= limit:
            reset_after = max(1, int(window - (current_time - client_requests[0])))
            return False, 0, reset_after

        client_requests.append(current_time)
        return True, limit - len(client_requests), window

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in UNLIMITED_PATHS:
            return await call_next(request)

        self._cleanup_old_entries()

        client_id = self._get_client_id(request)
        endpoint_key = self._get_endpoint_key(request)
        limit, _ = self._limits_for(endpoint_key)

        allowed, remaining, reset_after = self._check_rate_limit(client_id, endpoint_key)
        reset_at = str(int(time.time()) + reset_after)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_id} on {endpoint_key}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later."},
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": reset_at,
                    "Retry-After": str(reset_after),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = reset_at
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware for adding security headers.

    Security Impact:
        - Prevents clickjacking and MIME type sniffing
        - Enforces HTTPS in production (HSTS)
        - Keeps PHI out of shared caches (Cache-Control: no-store)
    """

    def __init__(self, app, enable_hsts: bool = False):
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "X-XSS-Protection": "1; mode=block",
            "Content-Security-Policy": (
                "default-src 'self'; "
                "script-src 'self' 'unsafe-inline'; "
                "style-src 'self' 'unsafe-inline'; "
                "img-src 'self' data: https:; "
                "font-src 'self' data:; "
                "connect-src 'self'; "
                "frame-ancestors 'none'"
            ),
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Permissions-Policy": (
                "geolocation=(), "
                "microphone=(), "
                "camera=(), "
                "payment=(), "
                "usb=()"
            ),
        }

        if request.url.path.startswith("/api/") and not request.url.path.startswith(("/api/docs", "/api/redoc")):
            security_headers["Cache-Control"] = "no-store"

        if self.enable_hsts:
            security_headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )

        for header, value in security_headers.items():
            response.headers[header] = value

        return response


def get_rate_limit_config() -> Dict[str, Tuple[int, int]]:
    """Rate limits per path prefix as (requests, window seconds)."""
    return {
        "/api/skills": (20, 60),
        "/api/beds/optimization-report": (10, 60),
        "/api/beds/recommendation": (20, 60),
        "/api/welfare/priority": (5, 60),
        "/api/welfare/dispatch-queue": (30, 60),
        "/api/notifications/send": (30, 60),
        "/api/audit-logs": (30, 60),
        "/api/circuit-breaker": (20, 60),
    }
