from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, Dict, Any

from app.models.staff import Staff
from app.models.student import Student
from app.modules.auth.principal import Principal, StudentPrincipal

PHONE_PATTERN = r'^\d{10,11}$'


class StaffRegister(BaseModel):
    first_name: str = Field(..., alias="name", min_length=1, max_length=50)
    last_name: str = Field(..., alias="surname", min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    user_type: str = Field("teacher", alias="userType", pattern=r'^(teacher|admin)$')
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, description="10-11 digit phone number")
    department: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=200)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    class Config:
        populate_by_name = True


class StaffLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class StudentLogin(BaseModel):
    student_number: str = Field(..., alias="studentNumber", min_length=1)
    password: str = Field(..., min_length=1)

    class Config:
        populate_by_name = True


class PasswordUpdate(BaseModel):
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=6)

    class Config:
        populate_by_name = True


# Fields each principal kind may change on its own profile
STAFF_PROFILE_FIELDS = frozenset({"first_name", "last_name", "phone", "department", "address"})
STUDENT_PROFILE_FIELDS = frozenset({"email", "phone"})


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, alias="name", min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, alias="surname", min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    department: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=200)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    def changes(self) -> Dict[str, Any]:
        """Supplied, non-null fields keyed by attribute name"""
        return self.model_dump(exclude_unset=True, exclude_none=True)

    class Config:
        populate_by_name = True


# ============================================
# Response payloads
# ============================================

def _common_payload(record, user_type: str) -> Dict[str, Any]:
    return {
        "id": str(record.id),
        "userType": user_type,
        "name": record.first_name,
        "surname": record.last_name,
        "fullName": record.full_name,
        "email": record.email,
        "phone": record.phone,
        "avatar": record.avatar,
        "slug": record.slug,
        "isActive": record.is_active,
        "lastLogin": record.last_login.isoformat() if record.last_login else None,
    }


def staff_payload(staff: Staff) -> Dict[str, Any]:
    """Public view of a staff record (no password hash)"""
    kind = staff.kind.value if hasattr(staff.kind, "value") else staff.kind
    payload = _common_payload(staff, kind)
    payload.update({
        "department": staff.department,
        "address": staff.address,
    })
    return payload


def student_payload(student: Student) -> Dict[str, Any]:
    """Public view of a student record (no password hash)"""
    payload = _common_payload(student, "student")
    payload.update({
        "studentNumber": student.student_number,
        "classLabel": student.class_label,
        "teacherId": str(student.teacher_id) if student.teacher_id else None,
        "averageGrade": student.average_grade,
        "completedAssignments": student.completed_assignment_count,
        "pendingAssignments": student.pending_assignment_count,
    })
    return payload


def principal_payload(principal: Principal) -> Dict[str, Any]:
    if isinstance(principal, StudentPrincipal):
        return student_payload(principal.student)
    return staff_payload(principal.staff)


def token_response(token: str, principal: Principal, message: str) -> Dict[str, Any]:
    return {
        "success": True,
        "message": message,
        "data": {
            "token": token,
            "user": principal_payload(principal),
        },
    }
