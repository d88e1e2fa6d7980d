# Pydantic schemas
from app.schemas.auth import (
    StaffRegister,
    StaffLogin,
    StudentLogin,
    PasswordUpdate,
    staff_payload,
    student_payload,
    principal_payload,
    token_response,
)
from app.schemas.student import (
    StudentCreate,
    GradeCreate,
    StatusUpdate,
)

__all__ = [
    # Auth
    "StaffRegister",
    "StaffLogin",
    "StudentLogin",
    "PasswordUpdate",
    "staff_payload",
    "student_payload",
    "principal_payload",
    "token_response",
    # Students
    "StudentCreate",
    "GradeCreate",
    "StatusUpdate",
]
