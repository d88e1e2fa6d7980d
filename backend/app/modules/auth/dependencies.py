from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.core.exceptions import (
    NoTokenError,
    TokenExpiredError,
    TokenMalformedError,
    InvalidTokenError,
    PrincipalNotFoundError,
    AccountDeactivatedError,
    InvalidUserTypeError,
    SchoolTrackError,
)
from app.core.logging_config import logger, set_user_id
from app.core.security import (
    token_service,
    TokenClaims,
    TokenFailureReason,
    TokenVerificationError,
)
from app.modules.auth.principal import Principal, Role, principal_for
from app.modules.auth.transport import extract_token
from app.services.credential_store import CredentialStore

STAFF_TOKEN_KINDS = (Role.TEACHER, Role.ADMIN)


def verify_claims(token: str) -> TokenClaims:
    """Verify a token, translating failures into API errors"""
    try:
        return token_service.verify(token)
    except TokenVerificationError as e:
        if e.reason == TokenFailureReason.EXPIRED:
            raise TokenExpiredError()
        if e.reason == TokenFailureReason.BAD_PAYLOAD:
            raise InvalidTokenError()
        raise TokenMalformedError()


async def load_principal(claims: TokenClaims, db: AsyncSession) -> Principal:
    """
    Re-read the principal named by the claims.

    `is_active` is checked against the stored record on every call, so a
    deactivation takes effect on the next request.
    """
    store = CredentialStore(db)

    if claims.principal_kind == Role.STUDENT:
        record = await store.get_student(claims.subject_id)
        if record is None:
            raise PrincipalNotFoundError("Student not found")
    elif claims.principal_kind in STAFF_TOKEN_KINDS:
        # Stored kind wins over the kind in the token
        record = await store.get_staff(claims.subject_id)
        if record is None:
            raise PrincipalNotFoundError()
    else:
        raise InvalidUserTypeError(claims.principal_kind)

    principal = principal_for(record)
    if not principal.is_active:
        raise AccountDeactivatedError()
    return principal


async def authenticate(token: Optional[str], db: AsyncSession) -> Principal:
    """Resolve a presented token to an active principal or raise a 401 error"""
    if not token:
        raise NoTokenError()
    claims = verify_claims(token)
    return await load_principal(claims, db)


async def get_current_principal(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> Principal:
    """Strict authentication: every failure is a 401 with a specific code"""
    try:
        principal = await authenticate(extract_token(request), db)
    except SchoolTrackError as e:
        logger.log_auth_event(
            event="authenticate",
            success=False,
            reason=e.code,
            http_path=request.url.path
        )
        raise

    request.state.principal = principal
    set_user_id(principal.id)
    return principal


async def get_optional_principal(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> Optional[Principal]:
    """Lenient authentication: any failure yields None"""
    token = extract_token(request)
    if not token:
        return None
    try:
        principal = await authenticate(token, db)
    except SchoolTrackError:
        return None

    request.state.principal = principal
    set_user_id(principal.id)
    return principal
