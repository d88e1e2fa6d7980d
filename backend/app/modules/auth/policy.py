"""
Authorization policy.

All checks depend on strict authentication, so they only ever run with a
principal and only ever fail with 403.

Usage:
    @router.get("/dashboard", dependencies=[Depends(teacher_only)])
    async def dashboard(): ...

    @router.get("/students/{student_id}")
    async def get_student(
        principal: Principal = Depends(require_ownership_or_admin(path_param("student_id")))
    ): ...
"""
from typing import Callable, Optional

from fastapi import Depends, Request

from app.core.exceptions import AccessDeniedError, InsufficientPermissionError
from app.modules.auth.dependencies import get_current_principal
from app.modules.auth.principal import Principal, Role

OwnerIdExtractor = Callable[[Request], Optional[str]]


def require_roles(*roles: str):
    """Dependency factory: allow only the given roles"""
    allowed = tuple(roles)

    async def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise InsufficientPermissionError(allowed, principal.role)
        return principal

    return checker


def path_param(name: str) -> OwnerIdExtractor:
    """Owner id extractor reading a path parameter"""
    def extract(request: Request) -> Optional[str]:
        return request.path_params.get(name)
    return extract


def check_ownership(principal: Principal, owner_id: Optional[str]) -> None:
    """
    Raises AccessDeniedError unless the principal may act on a resource
    owned by `owner_id`.

    Admins always pass. Students pass only for their own id. Teachers pass
    for their own id and for any other id; the handler then narrows with
    `ensure_teacher_owns` against the resource's owning teacher.
    """
    if principal.role == Role.ADMIN:
        return
    if not owner_id:
        raise AccessDeniedError()
    if principal.role == Role.STUDENT:
        if str(owner_id) != principal.id:
            raise AccessDeniedError()
        return
    if principal.role == Role.TEACHER:
        return
    raise AccessDeniedError()


def require_ownership_or_admin(extract_owner_id: OwnerIdExtractor):
    """Dependency factory wrapping `check_ownership` around a request-derived owner id"""

    async def checker(
        request: Request,
        principal: Principal = Depends(get_current_principal)
    ) -> Principal:
        check_ownership(principal, extract_owner_id(request))
        return principal

    return checker


def ensure_teacher_owns(principal: Principal, resource_teacher_id: Optional[str]) -> None:
    """Teacher-scoped resource check used inside handlers"""
    if principal.role == Role.ADMIN:
        return
    if principal.role != Role.TEACHER or str(resource_teacher_id) != principal.id:
        raise AccessDeniedError()


teacher_only = require_roles(Role.TEACHER, Role.ADMIN)
student_only = require_roles(Role.STUDENT)
admin_only = require_roles(Role.ADMIN)
