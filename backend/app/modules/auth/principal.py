"""
Authenticated principals.

A principal is either staff (teacher or admin) or a student. Both expose the
same small surface (`id`, `role`, `is_active`, `display_name`); the ORM record
behind them is reached through `staff` / `student` after checking `kind`.

The surface is copied off the record when the principal is built. Middleware
reads it after the request's session has been rolled back and closed, when
the record itself can no longer be refreshed.
"""
from dataclasses import dataclass, field
from typing import Union

from app.models.staff import Staff
from app.models.student import Student


class PrincipalKind:
    STAFF = "staff"
    STUDENT = "student"


class Role:
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    GUEST = "guest"

    ALL = (ADMIN, TEACHER, STUDENT)


@dataclass(frozen=True)
class StaffPrincipal:
    staff: Staff = field(repr=False, compare=False)
    kind: str = PrincipalKind.STAFF
    id: str = field(init=False)
    role: str = field(init=False)
    is_active: bool = field(init=False)
    display_name: str = field(init=False)

    def __post_init__(self):
        kind = self.staff.kind
        object.__setattr__(self, "id", str(self.staff.id))
        object.__setattr__(self, "role", kind.value if hasattr(kind, "value") else str(kind))
        object.__setattr__(self, "is_active", bool(self.staff.is_active))
        object.__setattr__(self, "display_name", self.staff.full_name)


@dataclass(frozen=True)
class StudentPrincipal:
    student: Student = field(repr=False, compare=False)
    kind: str = PrincipalKind.STUDENT
    id: str = field(init=False)
    role: str = field(init=False, default=Role.STUDENT)
    is_active: bool = field(init=False)
    display_name: str = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.student.id))
        object.__setattr__(self, "is_active", bool(self.student.is_active))
        object.__setattr__(self, "display_name", self.student.full_name)


Principal = Union[StaffPrincipal, StudentPrincipal]


def principal_for(record: Union[Staff, Student]) -> Principal:
    """Wrap a loaded ORM record in its principal type"""
    if isinstance(record, Student):
        return StudentPrincipal(student=record)
    if isinstance(record, Staff):
        return StaffPrincipal(staff=record)
    raise TypeError(f"Not a principal record: {type(record).__name__}")
