"""
Custom Exceptions for SchoolTrack
=================================

Every domain error carries a stable machine-readable ``code`` and the HTTP
status it maps to. The API layer renders them as::

    {"success": false, "message": "...", "code": "..."}

Usage:
    from app.core.exceptions import AccountDeactivatedError

    if not principal.is_active:
        raise AccountDeactivatedError()
"""

from typing import Optional, Any, Dict, Iterable


class SchoolTrackError(Exception):
    """Base exception for all SchoolTrack errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


# ============================================
# Authentication Errors (401)
# ============================================

class AuthenticationError(SchoolTrackError):
    """Request could not be authenticated"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", code: str = "AUTH_FAILED"):
        super().__init__(message, code=code)


class NoTokenError(AuthenticationError):
    """No bearer header and no session cookie were presented"""

    def __init__(self):
        super().__init__("Access denied. Please log in.", code="NO_TOKEN")


class TokenExpiredError(AuthenticationError):
    """JWT token has expired"""

    def __init__(self):
        super().__init__("Token has expired", code="TOKEN_EXPIRED")


class TokenMalformedError(AuthenticationError):
    """JWT token is structurally invalid or its signature does not match"""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message, code="TOKEN_MALFORMED")


class InvalidTokenError(AuthenticationError):
    """JWT token verified but its payload is unusable"""

    def __init__(self, message: str = "Token could not be verified"):
        super().__init__(message, code="TOKEN_INVALID")


class PrincipalNotFoundError(AuthenticationError):
    """Token verified but the subject no longer exists"""

    def __init__(self, message: str = "User not found"):
        super().__init__(message, code="USER_NOT_FOUND")


class AccountDeactivatedError(AuthenticationError):
    """Subject exists but has been deactivated"""

    def __init__(self):
        super().__init__("Your account has been deactivated", code="ACCOUNT_DEACTIVATED")


class InvalidUserTypeError(AuthenticationError):
    """Token carries a principal kind this service does not know"""

    def __init__(self, user_type: Any = None):
        super().__init__("Invalid user type", code="INVALID_USER_TYPE")
        if user_type is not None:
            self.details["user_type"] = str(user_type)


class InvalidCredentialsError(AuthenticationError):
    """Login failed; the message never reveals which half was wrong"""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message, code="INVALID_CREDENTIALS")


# ============================================
# Authorization Errors (403)
# ============================================

class AuthorizationError(SchoolTrackError):
    """Authenticated principal is not allowed to perform this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized", code: str = "NOT_AUTHORIZED"):
        super().__init__(message, code=code)


class InsufficientPermissionError(AuthorizationError):
    """Principal's role is not in the allowed set"""

    def __init__(self, required_roles: Iterable[str], actual_role: str):
        required = list(required_roles)
        super().__init__(
            f"This action requires the {' or '.join(required)} role. Current role: {actual_role}",
            code="INSUFFICIENT_PERMISSION"
        )
        self.details = {"required_roles": required, "role": actual_role}


class AccessDeniedError(AuthorizationError):
    """Principal does not own the requested resource"""

    def __init__(self, message: str = "You do not have access to this resource"):
        super().__init__(message, code="ACCESS_DENIED")


class SuperAdminProtectedError(AuthorizationError):
    """The configured super admin cannot be deleted"""

    def __init__(self):
        super().__init__("The super admin cannot be deleted", code="SUPER_ADMIN_PROTECTED")


# ============================================
# Validation Errors (400)
# ============================================

class ValidationError(SchoolTrackError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, code: str = "VALIDATION_ERROR"):
        details = {"field": field} if field else {}
        super().__init__(message, code=code, details=details)


class DuplicateResourceError(ValidationError):
    """Unique field (staff email, student number) already taken"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, field=field, code="DUPLICATE_RESOURCE")


class InvalidTeacherError(ValidationError):
    """Owning teacher reference does not point at an active teacher"""

    def __init__(self, message: str = "Invalid teacher ID"):
        super().__init__(message, field="teacher_id", code="INVALID_TEACHER")


# ============================================
# Resource Errors (404)
# ============================================

class ResourceNotFoundError(SchoolTrackError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class StudentNotFoundError(ResourceNotFoundError):
    def __init__(self, student_id: str):
        super().__init__("Student", student_id)


class StaffNotFoundError(ResourceNotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User", user_id)


class AssignmentNotFoundError(ResourceNotFoundError):
    def __init__(self, assignment_id: str):
        super().__init__("Assignment", assignment_id)
