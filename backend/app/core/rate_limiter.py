"""
Rate Limiting for SchoolTrack API
=================================
Off-the-shelf limiting with slowapi. Storage is configurable through
RATE_LIMIT_STORAGE_URI (in-process memory by default).

Limiting is disabled in development and testing unless
RATE_LIMIT_ENABLED says otherwise.

Endpoint limits:
- /auth/login, /auth/student-login: 5 req/min (brute force protection)
- /auth/register: 3 req/min
- everything else: RATE_LIMIT_PER_MINUTE per client via SlowAPIMiddleware
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging_config import logger


def get_user_identifier(request: Request) -> str:
    """
    Get rate limit key.

    Priority:
    1. Authenticated principal id (attached by the auth dependency)
    2. Client IP address
    """
    principal = getattr(request.state, 'principal', None)
    if principal is not None:
        return f"user:{principal.id}"

    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute"],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    JSON 429 in the same envelope as every other API error.

    Must stay sync: SlowAPIMiddleware calls it without awaiting.
    """
    retry_after = "60"

    logger.warning(
        f"[RateLimit] Exceeded for {get_user_identifier(request)}: {exc.detail}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Too many requests. Please try again later.",
            "code": "RATE_LIMIT_EXCEEDED",
        },
        headers={
            "Retry-After": retry_after,
            "X-RateLimit-Limit": str(exc.detail),
        }
    )


def auth_rate_limit():
    """Rate limit for login endpoints (5/min)"""
    return limiter.limit("5/minute", key_func=get_user_identifier)


def strict_rate_limit():
    """Very strict rate limit for account creation (3/min)"""
    return limiter.limit("3/minute", key_func=get_user_identifier)
