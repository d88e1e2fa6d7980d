from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Any, Dict, Optional

from app.models.student import AssignmentStatus, ExamType
from app.schemas.auth import PHONE_PATTERN


class StudentCreate(BaseModel):
    first_name: str = Field(..., alias="name", min_length=1, max_length=50)
    last_name: str = Field(..., alias="surname", min_length=1, max_length=50)
    student_number: str = Field(..., alias="studentNumber", pattern=r'^\d+$', max_length=32)
    password: str = Field(..., min_length=6)
    class_label: str = Field(..., alias="classLabel", min_length=1, max_length=20)
    # Defaults to the calling teacher
    teacher_id: Optional[str] = Field(None, alias="teacherId")
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    class Config:
        populate_by_name = True


class GradeCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=100)
    grade: float = Field(..., ge=0, le=100)
    description: Optional[str] = Field(None, max_length=200)
    exam_type: ExamType = Field(ExamType.WRITTEN, alias="examType")

    class Config:
        populate_by_name = True


class StatusUpdate(BaseModel):
    is_active: bool = Field(..., alias="isActive")

    class Config:
        populate_by_name = True


class StudentUpdate(BaseModel):
    first_name: Optional[str] = Field(None, alias="name", min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, alias="surname", min_length=1, max_length=50)
    student_number: Optional[str] = Field(None, alias="studentNumber", pattern=r'^\d+$', max_length=32)
    class_label: Optional[str] = Field(None, alias="classLabel", min_length=1, max_length=20)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    @field_validator("first_name", "last_name", "class_label")
    @classmethod
    def not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("must not be blank")
        return value

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)

    class Config:
        populate_by_name = True


class AssignmentCreate(BaseModel):
    assignment_id: str = Field(..., alias="assignmentId", min_length=1, max_length=64)
    due_date: Optional[datetime] = Field(None, alias="dueDate")

    class Config:
        populate_by_name = True


class AssignmentStatusUpdate(BaseModel):
    status: AssignmentStatus
    submission_date: Optional[datetime] = Field(None, alias="submissionDate")

    class Config:
        populate_by_name = True
