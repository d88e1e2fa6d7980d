from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, Text, event, inspect
from sqlalchemy.orm import deferred, validates
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid
from app.utils.slug import staff_slug


class StaffKind(str, enum.Enum):
    """Staff principal kinds"""
    TEACHER = "teacher"
    ADMIN = "admin"


class Staff(Base):
    """Teacher or admin account, logs in with email + password"""
    __tablename__ = "staff"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # Never part of a default SELECT; login undefers it explicitly
    hashed_password = deferred(Column(String(255), nullable=False))

    kind = Column(
        SQLEnum(StaffKind, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=StaffKind.TEACHER,
        nullable=False
    )
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Profile fields
    phone = Column(String(11), nullable=True)
    department = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)
    avatar = Column(String(255), default="no-avatar.jpg")
    slug = Column(String(200), unique=True, index=True, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_teacher(self) -> bool:
        return self.kind == StaffKind.TEACHER

    @property
    def is_admin(self) -> bool:
        return self.kind == StaffKind.ADMIN

    def __repr__(self):
        return f"<Staff {self.email} ({self.kind})>"


@event.listens_for(Staff, "before_insert")
def _staff_slug_on_insert(mapper, connection, target):
    if not target.slug:
        target.slug = staff_slug(target.first_name, target.last_name)


@event.listens_for(Staff, "before_update")
def _staff_slug_on_update(mapper, connection, target):
    attrs = inspect(target).attrs
    if attrs.first_name.history.has_changes() or attrs.last_name.history.has_changes():
        target.slug = staff_slug(target.first_name, target.last_name)
