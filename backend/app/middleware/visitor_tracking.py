from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from typing import Optional, Tuple
import uuid

from app.core.config import settings
from app.core.logging_config import logger
from app.core.security import token_service, TokenVerificationError
from app.modules.auth.principal import Role
from app.modules.auth.transport import extract_token
from app.services.user_agent import get_client_ip

VISITOR_COOKIE_MAX_AGE = 30 * 24 * 60 * 60


def resolve_subject(request: Request) -> Tuple[Optional[str], str]:
    """
    (subject_id, role) for analytics.

    Prefers the principal attached by authentication; otherwise trusts the
    claims of a valid presented token without touching the database;
    otherwise guest.
    """
    principal = getattr(request.state, "principal", None)
    if principal is not None:
        return principal.id, principal.role

    token = extract_token(request)
    if token:
        try:
            claims = token_service.verify(token)
        except TokenVerificationError:
            return None, Role.GUEST
        if claims.principal_kind in Role.ALL:
            return claims.subject_id, claims.principal_kind

    return None, Role.GUEST


class VisitorTrackingMiddleware(BaseHTTPMiddleware):
    """
    Hands every request to the analytics service after the response is built.

    - Assigns a visitor session cookie when the client has none
    - Scheduling is fire-and-forget; the response is never held back
    - Tracking errors are logged and never reach the client
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        session_id = request.cookies.get(settings.VISITOR_SESSION_COOKIE)
        new_session = not session_id
        if new_session:
            session_id = uuid.uuid4().hex

        response = await call_next(request)

        analytics = getattr(request.app.state, "analytics", None)
        if analytics is not None:
            try:
                subject_id, role = resolve_subject(request)
                info = analytics.build_info(
                    session_id=session_id,
                    ip=get_client_ip(request),
                    path=request.url.path,
                    user_agent=request.headers.get("user-agent", ""),
                    subject_id=subject_id,
                    role=role,
                    referrer=request.headers.get("referer"),
                    title=request.headers.get("x-page-title"),
                )
                analytics.observe(info)
            except Exception as e:
                logger.error(f"Visitor tracking error: {e}")

        if new_session:
            response.set_cookie(
                key=settings.VISITOR_SESSION_COOKIE,
                value=session_id,
                max_age=VISITOR_COOKIE_MAX_AGE,
                httponly=True,
                secure=settings.cookie_secure,
                samesite="lax",
                path="/",
            )

        return response
