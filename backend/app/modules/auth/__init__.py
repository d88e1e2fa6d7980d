# Authentication module

from app.modules.auth.dependencies import (
    authenticate,
    get_current_principal,
    get_optional_principal,
)

from app.modules.auth.principal import (
    Principal,
    StaffPrincipal,
    StudentPrincipal,
    Role,
)

from app.modules.auth.policy import (
    require_roles,
    require_ownership_or_admin,
    ensure_teacher_owns,
    path_param,
    teacher_only,
    student_only,
    admin_only,
)

__all__ = [
    # Authentication
    "authenticate",
    "get_current_principal",
    "get_optional_principal",
    # Principals
    "Principal",
    "StaffPrincipal",
    "StudentPrincipal",
    "Role",
    # Authorization
    "require_roles",
    "require_ownership_or_admin",
    "ensure_teacher_owns",
    "path_param",
    "teacher_only",
    "student_only",
    "admin_only",
]
