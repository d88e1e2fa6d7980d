from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any
from jose import JWTError, ExpiredSignatureError, jwt
import bcrypt

from app.core.config import settings


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password"""
    if not plain_password or not hashed_password:
        return False
    # Bcrypt has a 72 byte limit - truncate password if necessary
    password_bytes = plain_password.encode('utf-8')[:72]
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def get_password_hash(password: str) -> str:
    """Hash password with configurable rounds (BCRYPT_ROUNDS in .env)"""
    # Bcrypt has a 72 byte limit - truncate password if necessary
    password_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode('utf-8')


class TokenFailureReason(str, Enum):
    EXPIRED = "EXPIRED"
    MALFORMED = "MALFORMED"
    BAD_SIGNATURE = "BAD_SIGNATURE"
    BAD_PAYLOAD = "BAD_PAYLOAD"


class TokenVerificationError(Exception):
    """Raised by TokenService.verify; `reason` tells the caller which check failed"""

    def __init__(self, reason: TokenFailureReason, message: str = ""):
        self.reason = reason
        super().__init__(message or reason.value)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    subject_id: str
    principal_kind: str
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class TokenService:
    """
    Issues and verifies signed session tokens.

    Claims are `{id, userType, iat, exp}`. Tokens are stateless: nothing is
    persisted and there is no revocation, so a token stays valid until `exp`
    unless the principal is deactivated (re-checked on every request).
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        expire_days: Optional[int] = None
    ):
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.expire_days = expire_days if expire_days is not None else settings.JWT_EXPIRE_DAYS

    def issue(
        self,
        subject_id: str,
        principal_kind: str,
        expires_delta: Optional[timedelta] = None
    ) -> IssuedToken:
        """Create a signed token for the given principal"""
        now = datetime.utcnow()
        if expires_delta is None:
            expires_delta = timedelta(days=self.expire_days)
        expire = now + expires_delta

        to_encode: Dict[str, Any] = {
            "id": str(subject_id),
            "userType": principal_kind,
            "iat": now,
            "exp": expire,
        }
        encoded_jwt = jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)
        return IssuedToken(token=encoded_jwt, expires_at=expire)

    def verify(self, token: str) -> TokenClaims:
        """
        Verify signature, expiry and payload shape.

        Raises:
            TokenVerificationError: MALFORMED for unparseable tokens,
                EXPIRED for a valid signature past `exp`, BAD_SIGNATURE for any
                other verification failure, BAD_PAYLOAD when `id` or
                `userType` is missing or not a string.
        """
        if not token or not isinstance(token, str):
            raise TokenVerificationError(TokenFailureReason.MALFORMED, "Empty token")

        try:
            jwt.get_unverified_claims(token)
        except JWTError:
            raise TokenVerificationError(TokenFailureReason.MALFORMED, "Token could not be parsed")

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise TokenVerificationError(TokenFailureReason.EXPIRED, "Token has expired")
        except JWTError as e:
            raise TokenVerificationError(TokenFailureReason.BAD_SIGNATURE, str(e))

        subject_id = payload.get("id")
        principal_kind = payload.get("userType")
        if not isinstance(subject_id, str) or not subject_id:
            raise TokenVerificationError(TokenFailureReason.BAD_PAYLOAD, "Token has no subject id")
        if not isinstance(principal_kind, str) or not principal_kind:
            raise TokenVerificationError(TokenFailureReason.BAD_PAYLOAD, "Token has no user type")

        return TokenClaims(
            subject_id=subject_id,
            principal_kind=principal_kind,
            issued_at=_timestamp(payload.get("iat")),
            expires_at=_timestamp(payload.get("exp")),
        )


def _timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, (int, float)):
        return datetime.utcfromtimestamp(value)
    return None


token_service = TokenService()
