"""
SchoolTrack - HTTP Middleware
Request correlation, access logging and response hardening
"""

import time
from typing import Callable, Set
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.config import settings
from app.core.logging_config import (
    logger,
    set_request_id,
    set_user_id,
    generate_request_id,
)


# Health checks and docs are not worth an access log line
QUIET_PATHS: Set[str] = {
    "/",
    "/favicon.ico",
    "/docs",
    "/redoc",
    "/openapi.json",
    f"{settings.API_PREFIX}/health",
}


def should_skip_logging(path: str) -> bool:
    """Check if path should skip access logging"""
    if path in QUIET_PATHS:
        return True
    return path.endswith((".js", ".css", ".png", ".ico", ".svg"))


def principal_role(request: Request) -> str:
    """Role of the principal resolved by the auth dependencies, or 'guest'"""
    principal = getattr(request.state, "principal", None)
    return principal.role if principal is not None else "guest"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access log for every request.

    Propagates or mints X-Request-ID, so every line logged while the request
    is in flight carries the same id. The completion line includes the role
    of whoever the request authenticated as.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        path = request.url.path
        quiet = should_skip_logging(path)
        started = time.perf_counter()

        if not quiet:
            logger.debug(
                f"{request.method} {path} started",
                extra={
                    "event_type": "http_request_start",
                    "http_method": request.method,
                    "http_path": path,
                    "user_agent": request.headers.get("user-agent", ""),
                }
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            logger.error(
                f"{request.method} {path} raised {type(exc).__name__} ({duration_ms:.2f}ms)",
                exc_info=True,
                extra={
                    "event_type": "http_request_error",
                    "http_method": request.method,
                    "http_path": path,
                    "duration_ms": duration_ms,
                }
            )
            raise
        else:
            duration_ms = (time.perf_counter() - started) * 1000
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

            if not quiet:
                logger.log_request(
                    request.method,
                    path,
                    response.status_code,
                    duration_ms,
                    principal_role=principal_role(request),
                    client_ip=request.client.host if request.client else "unknown",
                )
                if duration_ms > settings.SLOW_REQUEST_MS:
                    logger.warning(
                        f"Slow request: {request.method} {path} took {duration_ms:.2f}ms",
                        extra={"event_type": "slow_request", "duration_ms": duration_ms}
                    )
            return response
        finally:
            set_request_id("")
            set_user_id("")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Hardening headers on every response. API responses may carry tokens or
    student records, so they are also marked uncacheable.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.path.startswith(settings.API_PREFIX):
            response.headers.setdefault("Cache-Control", "no-store")

        return response


__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "should_skip_logging",
    "principal_role",
]
