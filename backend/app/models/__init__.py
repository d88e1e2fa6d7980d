# Re-export all models for convenient imports
from app.models.staff import Staff, StaffKind
from app.models.student import (
    Student,
    StudentAssignment,
    StudentGrade,
    AssignmentStatus,
    ExamType,
)
from app.models.analytics import OnlineSession, Visitor, VisitorPage

__all__ = [
    # Staff
    "Staff",
    "StaffKind",
    # Students
    "Student",
    "StudentAssignment",
    "StudentGrade",
    "AssignmentStatus",
    "ExamType",
    # Analytics
    "OnlineSession",
    "Visitor",
    "VisitorPage",
]
