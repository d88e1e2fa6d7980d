"""
Student Models
Student accounts plus their append-only assignment and grade records
"""

from sqlalchemy import (
    Column, String, Boolean, DateTime, Float, ForeignKey,
    UniqueConstraint, CheckConstraint, Enum as SQLEnum, event, inspect
)
from sqlalchemy.orm import relationship, deferred, validates
from datetime import datetime
from typing import Optional
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid
from app.utils.slug import student_slug


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class AssignmentStatus(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    LATE = "late"
    GRADED = "graded"
    COMPLETED = "completed"


class ExamType(str, enum.Enum):
    WRITTEN = "written"
    ORAL = "oral"
    PROJECT = "project"
    HOMEWORK = "homework"
    PERFORMANCE = "performance"


class Student(Base):
    """Student account, logs in with student number + password"""
    __tablename__ = "students"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    student_number = Column(String(32), unique=True, index=True, nullable=False)

    # Never part of a default SELECT; login undefers it explicitly
    hashed_password = deferred(Column(String(255), nullable=False))

    # Owning teacher
    teacher_id = Column(GUID, ForeignKey("staff.id", ondelete="RESTRICT"), nullable=False, index=True)
    class_label = Column(String(20), nullable=False, index=True)

    # Contact
    email = Column(String(255), nullable=True)
    phone = Column(String(11), nullable=True)
    avatar = Column(String(255), default="default-student-avatar.jpg")

    is_active = Column(Boolean, default=True, nullable=False, index=True)
    slug = Column(String(200), unique=True, index=True, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    teacher = relationship("Staff", foreign_keys=[teacher_id])
    assignments = relationship(
        "StudentAssignment",
        back_populates="student",
        cascade="all, delete-orphan",
        order_by="StudentAssignment.assigned_date",
        lazy="selectin"
    )
    grades = relationship(
        "StudentGrade",
        back_populates="student",
        cascade="all, delete-orphan",
        order_by="StudentGrade.date",
        lazy="selectin"
    )

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    @validates("student_number")
    def _validate_student_number(self, key, value):
        value = (value or "").strip()
        if not value.isdigit():
            raise ValueError("Student number must contain only digits")
        return value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def average_grade(self) -> float:
        if not self.grades:
            return 0
        total = sum(g.grade for g in self.grades)
        return round(total / len(self.grades), 2)

    @property
    def completed_assignment_count(self) -> int:
        return sum(1 for a in self.assignments if a.status == AssignmentStatus.COMPLETED)

    @property
    def pending_assignment_count(self) -> int:
        return sum(
            1 for a in self.assignments
            if a.status in (AssignmentStatus.PENDING, AssignmentStatus.GRADED)
        )

    def add_grade(
        self,
        subject: str,
        grade: float,
        description: Optional[str] = None,
        teacher_id: Optional[str] = None,
        exam_type: ExamType = ExamType.WRITTEN
    ) -> "StudentGrade":
        """Append a grade entry; the caller commits"""
        entry = StudentGrade(
            subject=subject,
            grade=grade,
            description=description,
            teacher_id=teacher_id,
            exam_type=ExamType(exam_type),
            date=datetime.utcnow(),
        )
        self.grades.append(entry)
        return entry

    def find_assignment(self, assignment_id: str) -> Optional["StudentAssignment"]:
        for assignment in self.assignments:
            if str(assignment.assignment_id) == str(assignment_id):
                return assignment
        return None

    def assign_homework(self, assignment_id: str, due_date: Optional[datetime] = None) -> "StudentAssignment":
        """Attach an assignment once; repeated calls return the existing entry"""
        existing = self.find_assignment(assignment_id)
        if existing is not None:
            return existing
        entry = StudentAssignment(
            assignment_id=str(assignment_id),
            assigned_date=datetime.utcnow(),
            due_date=due_date,
            status=AssignmentStatus.PENDING,
        )
        self.assignments.append(entry)
        return entry

    def update_assignment_status(
        self,
        assignment_id: str,
        status: AssignmentStatus,
        submission_date: Optional[datetime] = None
    ) -> Optional["StudentAssignment"]:
        """Change the status of an attached assignment; unknown ids are a no-op"""
        assignment = self.find_assignment(assignment_id)
        if assignment is None:
            return None
        assignment.status = AssignmentStatus(status)
        if submission_date:
            assignment.submission_date = submission_date
        return assignment

    def __repr__(self):
        return f"<Student {self.student_number}>"


class StudentAssignment(Base):
    """Assignment attached to a student"""
    __tablename__ = "student_assignments"
    __table_args__ = (
        UniqueConstraint("student_id", "assignment_id", name="uq_student_assignment"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    assignment_id = Column(String(64), nullable=False)

    assigned_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    due_date = Column(DateTime, nullable=True)
    status = Column(
        SQLEnum(AssignmentStatus, native_enum=False, values_callable=_enum_values),
        default=AssignmentStatus.PENDING,
        nullable=False
    )
    submission_date = Column(DateTime, nullable=True)

    student = relationship("Student", back_populates="assignments")

    def __repr__(self):
        return f"<StudentAssignment {self.assignment_id} {self.status}>"


class StudentGrade(Base):
    """Single grade entry for a student"""
    __tablename__ = "student_grades"
    __table_args__ = (
        CheckConstraint("grade >= 0 AND grade <= 100", name="ck_grade_range"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    student_id = Column(GUID, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    subject = Column(String(100), nullable=False, index=True)
    grade = Column(Float, nullable=False)
    date = Column(DateTime, default=datetime.utcnow, nullable=False)
    description = Column(String(200), nullable=True)
    teacher_id = Column(GUID, ForeignKey("staff.id", ondelete="SET NULL"), nullable=True)
    exam_type = Column(
        SQLEnum(ExamType, native_enum=False, values_callable=_enum_values),
        default=ExamType.WRITTEN,
        nullable=False
    )

    student = relationship("Student", back_populates="grades")

    @validates("grade")
    def _validate_grade(self, key, value):
        if value is None or not 0 <= value <= 100:
            raise ValueError("Grade must be between 0 and 100")
        return value

    def __repr__(self):
        return f"<StudentGrade {self.subject} {self.grade}>"


@event.listens_for(Student, "before_insert")
def _student_slug_on_insert(mapper, connection, target):
    target.slug = student_slug(target.first_name, target.last_name, target.student_number)


@event.listens_for(Student, "before_update")
def _student_slug_on_update(mapper, connection, target):
    attrs = inspect(target).attrs
    if (
        attrs.first_name.history.has_changes()
        or attrs.last_name.history.has_changes()
        or attrs.student_number.history.has_changes()
    ):
        target.slug = student_slug(target.first_name, target.last_name, target.student_number)
