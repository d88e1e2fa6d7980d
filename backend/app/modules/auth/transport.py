"""
Session transport: how a token travels between client and server.

Login responses carry the token in the JSON body and in an http-only cookie.
Requests may present it as `Authorization: Bearer <token>` (checked first)
or through the cookie.
"""
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Request, Response

from app.core.config import settings

LOGOUT_SENTINEL = "none"
LOGOUT_COOKIE_TTL_SECONDS = 10


def cookie_options() -> dict:
    """Cookie flags for the current environment"""
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "path": "/",
    }


def set_session_cookie(response: Response, token: str, expire_days: Optional[int] = None) -> None:
    days = settings.JWT_COOKIE_EXPIRE_DAYS if expire_days is None else expire_days
    expires = datetime.utcnow() + timedelta(days=days)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=days * 24 * 60 * 60,
        expires=expires.strftime("%a, %d %b %Y %H:%M:%S GMT"),
        **cookie_options()
    )


def clear_session_cookie(response: Response) -> None:
    """Overwrite the session cookie with a short-lived sentinel"""
    expires = datetime.utcnow() + timedelta(seconds=LOGOUT_COOKIE_TTL_SECONDS)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=LOGOUT_SENTINEL,
        max_age=LOGOUT_COOKIE_TTL_SECONDS,
        expires=expires.strftime("%a, %d %b %Y %H:%M:%S GMT"),
        **cookie_options()
    )


def extract_token(request: Request) -> Optional[str]:
    """
    Bearer header first, then the session cookie.

    The logout sentinel and empty values count as no token.
    """
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    cookie_token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if cookie_token and cookie_token != LOGOUT_SENTINEL:
        return cookie_token

    return None
