"""
Credential Store
Lookup and persistence of staff and student principals
"""

from typing import Any, Dict, Optional, Union
from datetime import datetime
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload, undefer

from app.core.exceptions import (
    DuplicateResourceError,
    InvalidTeacherError,
    ValidationError,
)
from app.core.logging_config import logger
from app.core.security import get_password_hash, verify_password
from app.models.staff import Staff, StaffKind
from app.models.student import Student


class CredentialStore:
    """Service for principal lookup and account maintenance"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =====================================================
    # LOOKUPS
    # =====================================================

    async def get_staff(self, staff_id: str) -> Optional[Staff]:
        result = await self.db.execute(select(Staff).where(Staff.id == str(staff_id)))
        return result.scalar_one_or_none()

    async def get_student(self, student_id: str) -> Optional[Student]:
        """Student with its owning teacher eagerly loaded"""
        result = await self.db.execute(
            select(Student)
            .options(selectinload(Student.teacher))
            .where(Student.id == str(student_id))
        )
        return result.scalar_one_or_none()

    async def find_staff_by_email(self, email: str, with_password: bool = False) -> Optional[Staff]:
        """Case-insensitive email lookup; the password hash is loaded only on request"""
        query = select(Staff).where(func.lower(Staff.email) == (email or "").strip().lower())
        if with_password:
            query = query.options(undefer(Staff.hashed_password))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_student_by_number(self, student_number: str, with_password: bool = False) -> Optional[Student]:
        query = (
            select(Student)
            .options(selectinload(Student.teacher))
            .where(Student.student_number == (student_number or "").strip())
        )
        if with_password:
            query = query.options(undefer(Student.hashed_password))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_password_hash(self, record: Union[Staff, Student]) -> Optional[str]:
        """Load the deferred hash for an already-loaded record"""
        model = type(record)
        result = await self.db.execute(
            select(model.hashed_password).where(model.id == record.id)
        )
        return result.scalar_one_or_none()

    # =====================================================
    # CREATION
    # =====================================================

    async def create_staff(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        kind: StaffKind = StaffKind.TEACHER,
        phone: Optional[str] = None,
        department: Optional[str] = None,
        address: Optional[str] = None
    ) -> Staff:
        """
        Create a teacher or admin account.

        Raises:
            DuplicateResourceError: email already registered (pre-check or
                unique constraint, whichever fires first)
            IntegrityError: any other unique conflict, re-raised as is
        """
        if await self.find_staff_by_email(email) is not None:
            raise DuplicateResourceError("This email address is already registered", field="email")

        staff = Staff(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            hashed_password=get_password_hash(password),
            kind=StaffKind(kind),
            is_active=True,
            phone=phone,
            department=department,
            address=address,
        )
        self.db.add(staff)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            # Only an email collision is a duplicate registration
            if await self.find_staff_by_email(email) is not None:
                raise DuplicateResourceError("This email address is already registered", field="email")
            logger.error(f"[CredentialStore] Staff insert conflict for {email}", exc_info=True)
            raise

        await self.db.refresh(staff)
        logger.info(f"[CredentialStore] Created {staff.kind.value} {staff.id}")
        return staff

    async def require_active_teacher(self, teacher_id: str) -> Staff:
        """
        Resolve an owning-teacher reference.

        Raises:
            InvalidTeacherError: missing, inactive, or not a teacher
        """
        teacher = await self.get_staff(teacher_id) if teacher_id else None
        if teacher is None or not teacher.is_active or teacher.kind != StaffKind.TEACHER:
            raise InvalidTeacherError()
        return teacher

    async def create_student(
        self,
        first_name: str,
        last_name: str,
        student_number: str,
        password: str,
        teacher_id: str,
        class_label: str,
        email: Optional[str] = None,
        phone: Optional[str] = None
    ) -> Student:
        """
        Create a student owned by an active teacher.

        Raises:
            DuplicateResourceError: student number already taken
            InvalidTeacherError: teacher_id does not reference an active teacher
        """
        existing = await self.db.execute(
            select(Student.id).where(Student.student_number == student_number.strip())
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateResourceError("This student number is already in use", field="student_number")

        await self.require_active_teacher(teacher_id)

        try:
            student = Student(
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                student_number=student_number,
                hashed_password=get_password_hash(password),
                teacher_id=str(teacher_id),
                class_label=class_label.strip(),
                email=email,
                phone=phone,
                is_active=True,
            )
        except ValueError as e:
            raise ValidationError(str(e), field="student_number")

        self.db.add(student)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateResourceError("This student number is already in use", field="student_number")

        logger.info(f"[CredentialStore] Created student {student.id} for teacher {teacher_id}")
        student_id = student.id
        # Reload with teacher and collections
        self.db.expunge(student)
        return await self.get_student(student_id)

    # =====================================================
    # MAINTENANCE
    # =====================================================

    async def touch_last_login(self, record: Union[Staff, Student]) -> None:
        record.last_login = datetime.utcnow()
        await self.db.commit()

    async def set_active(self, record: Union[Staff, Student], is_active: bool) -> None:
        record.is_active = bool(is_active)
        await self.db.commit()
        logger.info(
            f"[CredentialStore] {type(record).__name__} {record.id} "
            f"{'activated' if is_active else 'deactivated'}"
        )

    async def update_profile(
        self,
        record: Union[Staff, Student],
        changes: Dict[str, Any]
    ) -> Union[Staff, Student]:
        """
        Apply validated field changes to a staff or student record.

        Name or student number changes regenerate the slug on flush.
        Students come back reloaded with teacher, grades and assignments.

        Raises:
            DuplicateResourceError: new student number already in use
            ValidationError: a model validator rejected a value
        """
        if isinstance(record, Student) and changes.get("student_number"):
            number = changes["student_number"].strip()
            taken = await self.db.execute(
                select(Student.id).where(
                    Student.student_number == number,
                    Student.id != record.id
                )
            )
            if taken.scalar_one_or_none() is not None:
                raise DuplicateResourceError("This student number is already in use", field="student_number")

        for key, value in changes.items():
            try:
                setattr(record, key, value.strip() if isinstance(value, str) else value)
            except ValueError as e:
                raise ValidationError(str(e), field=key)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if isinstance(record, Student):
                raise DuplicateResourceError("This student number is already in use", field="student_number")
            raise

        logger.info(
            f"[CredentialStore] Updated {type(record).__name__} {record.id}: {', '.join(sorted(changes))}"
        )
        if isinstance(record, Student):
            student_id = record.id
            self.db.expunge(record)
            return await self.get_student(student_id)

        await self.db.refresh(record)
        return record

    async def change_password(
        self,
        record: Union[Staff, Student],
        current_password: str,
        new_password: str
    ) -> None:
        """
        Raises:
            ValidationError: current password does not match
        """
        stored_hash = await self.get_password_hash(record)
        if not verify_password(current_password, stored_hash):
            raise ValidationError("Current password is incorrect", field="current_password")

        record.hashed_password = get_password_hash(new_password)
        await self.db.commit()

    async def count_students_of(self, teacher_id: str) -> int:
        result = await self.db.execute(
            select(func.count(Student.id)).where(Student.teacher_id == str(teacher_id))
        )
        return result.scalar() or 0

    async def delete_staff(self, staff: Staff) -> None:
        """
        Raises:
            ValidationError: the teacher still owns students
        """
        if await self.count_students_of(staff.id):
            raise ValidationError("Reassign or remove this teacher's students first", field="user_id")
        await self.db.delete(staff)
        await self.db.commit()
        logger.info(f"[CredentialStore] Deleted staff {staff.id}")
