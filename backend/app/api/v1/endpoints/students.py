"""
Student Management Endpoints
Teacher/admin operations on student accounts, scoped by ownership
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any

from app.core.database import get_db
from app.core.exceptions import (
    AssignmentNotFoundError,
    InvalidTeacherError,
    StudentNotFoundError,
    ValidationError,
)
from app.core.logging_config import logger
from app.models.student import Student
from app.modules.auth.principal import Principal, Role
from app.modules.auth.policy import (
    teacher_only,
    require_ownership_or_admin,
    ensure_teacher_owns,
    path_param,
)
from app.schemas.auth import student_payload
from app.schemas.student import (
    StudentCreate,
    StudentUpdate,
    GradeCreate,
    AssignmentCreate,
    AssignmentStatusUpdate,
)
from app.services.credential_store import CredentialStore


router = APIRouter(prefix="/students", tags=["Students"])


def student_detail(student: Student) -> Dict[str, Any]:
    payload = student_payload(student)
    payload["teacher"] = (
        {"id": str(student.teacher.id), "fullName": student.teacher.full_name}
        if student.teacher is not None else None
    )
    payload["grades"] = [
        {
            "id": str(g.id),
            "subject": g.subject,
            "grade": g.grade,
            "date": g.date.isoformat() if g.date else None,
            "description": g.description,
            "examType": g.exam_type.value if hasattr(g.exam_type, "value") else g.exam_type,
            "teacherId": str(g.teacher_id) if g.teacher_id else None,
        }
        for g in student.grades
    ]
    payload["assignments"] = [
        {
            "assignmentId": a.assignment_id,
            "assignedDate": a.assigned_date.isoformat() if a.assigned_date else None,
            "dueDate": a.due_date.isoformat() if a.due_date else None,
            "status": a.status.value if hasattr(a.status, "value") else a.status,
            "submissionDate": a.submission_date.isoformat() if a.submission_date else None,
        }
        for a in student.assignments
    ]
    return payload


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_student(
    data: StudentCreate,
    principal: Principal = Depends(teacher_only),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a student.

    Teachers create students for themselves; admins must name the owning
    teacher explicitly.
    """
    teacher_id = data.teacher_id
    if principal.role == Role.TEACHER:
        teacher_id = teacher_id or principal.id
        ensure_teacher_owns(principal, teacher_id)
    elif not teacher_id:
        raise InvalidTeacherError("teacherId is required")

    student = await CredentialStore(db).create_student(
        first_name=data.first_name,
        last_name=data.last_name,
        student_number=data.student_number,
        password=data.password,
        teacher_id=teacher_id,
        class_label=data.class_label,
        email=data.email,
        phone=data.phone,
    )

    logger.info(f"[Students] {principal.role} {principal.id} created student {student.id}")
    return {"success": True, "data": student_detail(student)}


@router.get("/{student_id}")
async def get_student(
    student_id: str,
    principal: Principal = Depends(require_ownership_or_admin(path_param("student_id"))),
    db: AsyncSession = Depends(get_db)
):
    """Student detail; students see themselves, teachers see their own students"""
    student = await CredentialStore(db).get_student(student_id)
    if student is None:
        raise StudentNotFoundError(student_id)

    if principal.role == Role.TEACHER:
        ensure_teacher_owns(principal, student.teacher_id)

    return {"success": True, "data": student_detail(student)}


@router.post("/{student_id}/grades", status_code=status.HTTP_201_CREATED)
async def add_grade(
    student_id: str,
    data: GradeCreate,
    principal: Principal = Depends(teacher_only),
    db: AsyncSession = Depends(get_db)
):
    """Append a grade to one of the caller's students"""
    student = await CredentialStore(db).get_student(student_id)
    if student is None:
        raise StudentNotFoundError(student_id)

    ensure_teacher_owns(principal, student.teacher_id)

    student.add_grade(
        subject=data.subject,
        grade=data.grade,
        description=data.description,
        teacher_id=principal.id if principal.role == Role.TEACHER else None,
        exam_type=data.exam_type,
    )
    await db.commit()

    return {"success": True, "data": student_detail(student)}


async def _owned_student(db: AsyncSession, principal: Principal, student_id: str) -> Student:
    student = await CredentialStore(db).get_student(student_id)
    if student is None:
        raise StudentNotFoundError(student_id)
    ensure_teacher_owns(principal, student.teacher_id)
    return student


@router.put("/{student_id}")
async def update_student(
    student_id: str,
    data: StudentUpdate,
    principal: Principal = Depends(teacher_only),
    db: AsyncSession = Depends(get_db)
):
    """Edit one of the caller's students; a new student number must be unused"""
    changes = data.changes()
    if not changes:
        raise ValidationError("No student fields supplied")

    student = await _owned_student(db, principal, student_id)
    student = await CredentialStore(db).update_profile(student, changes)

    logger.info(f"[Students] {principal.role} {principal.id} updated student {student.id}")
    return {"success": True, "data": student_detail(student)}


@router.post("/{student_id}/assignments", status_code=status.HTTP_201_CREATED)
async def assign_homework(
    student_id: str,
    data: AssignmentCreate,
    principal: Principal = Depends(teacher_only),
    db: AsyncSession = Depends(get_db)
):
    """Attach an assignment; attaching the same id twice keeps the first entry"""
    student = await _owned_student(db, principal, student_id)

    student.assign_homework(data.assignment_id, due_date=data.due_date)
    await db.commit()

    return {"success": True, "data": student_detail(student)}


@router.patch("/{student_id}/assignments/{assignment_id}")
async def update_assignment_status(
    student_id: str,
    assignment_id: str,
    data: AssignmentStatusUpdate,
    principal: Principal = Depends(teacher_only),
    db: AsyncSession = Depends(get_db)
):
    """Move an attached assignment to a new status"""
    student = await _owned_student(db, principal, student_id)

    updated = student.update_assignment_status(
        assignment_id,
        data.status,
        submission_date=data.submission_date,
    )
    if updated is None:
        raise AssignmentNotFoundError(assignment_id)
    await db.commit()

    return {"success": True, "data": student_detail(student)}
