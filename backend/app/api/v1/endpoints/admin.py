"""
Admin Endpoints
Account activation and staff removal, admin role only
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import (
    StaffNotFoundError,
    StudentNotFoundError,
    SuperAdminProtectedError,
    ValidationError,
)
from app.core.logging_config import logger
from app.modules.auth.principal import Principal
from app.modules.auth.policy import admin_only
from app.schemas.auth import staff_payload, student_payload
from app.schemas.student import StatusUpdate
from app.services.credential_store import CredentialStore


router = APIRouter(prefix="/admin", tags=["Admin"])


def is_super_admin(email: str) -> bool:
    configured = (settings.SUPER_ADMIN_EMAIL or "").strip().lower()
    return bool(configured) and (email or "").lower() == configured


@router.patch("/users/{user_id}/status")
async def set_staff_status(
    user_id: str,
    data: StatusUpdate,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Activate or deactivate a teacher/admin account"""
    store = CredentialStore(db)
    staff = await store.get_staff(user_id)
    if staff is None:
        raise StaffNotFoundError(user_id)

    await store.set_active(staff, data.is_active)
    logger.info(f"[Admin] {principal.id} set staff {user_id} is_active={data.is_active}")
    return {"success": True, "data": staff_payload(staff)}


@router.patch("/students/{student_id}/status")
async def set_student_status(
    student_id: str,
    data: StatusUpdate,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Activate or deactivate a student account"""
    store = CredentialStore(db)
    student = await store.get_student(student_id)
    if student is None:
        raise StudentNotFoundError(student_id)

    await store.set_active(student, data.is_active)
    logger.info(f"[Admin] {principal.id} set student {student_id} is_active={data.is_active}")
    return {"success": True, "data": student_payload(student)}


@router.delete("/users/{user_id}")
async def delete_staff(
    user_id: str,
    principal: Principal = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Delete a staff account; the super admin and the caller are protected"""
    store = CredentialStore(db)
    staff = await store.get_staff(user_id)
    if staff is None:
        raise StaffNotFoundError(user_id)

    if is_super_admin(staff.email):
        raise SuperAdminProtectedError()
    if str(staff.id) == principal.id:
        raise ValidationError("You cannot delete your own account", field="user_id")

    await store.delete_staff(staff)
    logger.warning(f"[Admin] {principal.id} deleted staff {user_id}")
    return {"success": True, "message": "User deleted"}
