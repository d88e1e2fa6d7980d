from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.core.config import settings
from app.core.exceptions import (
    AccountDeactivatedError,
    InsufficientPermissionError,
    InvalidCredentialsError,
    ValidationError,
)
from app.core.logging_config import logger, set_user_id
from app.core.rate_limiter import auth_rate_limit, strict_rate_limit
from app.core.security import token_service, verify_password
from app.models.staff import StaffKind
from app.modules.auth.dependencies import get_current_principal, get_optional_principal
from app.modules.auth.principal import Principal, Role, StaffPrincipal, StudentPrincipal, principal_for
from app.modules.auth.transport import set_session_cookie, clear_session_cookie
from app.schemas.auth import (
    StaffRegister,
    StaffLogin,
    StudentLogin,
    PasswordUpdate,
    ProfileUpdate,
    STAFF_PROFILE_FIELDS,
    STUDENT_PROFILE_FIELDS,
    principal_payload,
    token_response,
)
from app.services.credential_store import CredentialStore
from app.services.user_agent import get_client_ip


router = APIRouter(prefix="/auth", tags=["Authentication"])


def _issue_session(response: Response, principal: Principal) -> str:
    issued = token_service.issue(principal.id, principal.role)
    set_session_cookie(response, issued.token)
    return issued.token


@router.post("/register", status_code=status.HTTP_201_CREATED)
@strict_rate_limit()
async def register(
    request: Request,
    response: Response,
    data: StaffRegister,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a teacher or admin (rate limited: 3/min).

    Open in development. Elsewhere an authenticated admin must make the call,
    and the new account's session cookie is not set on the admin's client.
    A presented token that fails verification is reported as such.
    """
    client_ip = get_client_ip(request)

    if settings.is_dev_mode():
        acting = await get_optional_principal(request, db)
    else:
        acting = await get_current_principal(request, db)
        if acting.role != Role.ADMIN:
            raise InsufficientPermissionError([Role.ADMIN], acting.role)

    store = CredentialStore(db)
    staff = await store.create_staff(
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        password=data.password,
        kind=StaffKind(data.user_type),
        phone=data.phone,
        department=data.department,
        address=data.address,
    )
    principal = StaffPrincipal(staff=staff)

    logger.log_auth_event(
        event="register",
        success=True,
        subject=staff.email,
        client_ip=client_ip,
        registered_by=acting.id if acting else None
    )

    if acting is None:
        token = _issue_session(response, principal)
    else:
        token = token_service.issue(principal.id, principal.role).token

    return token_response(token, principal, "Registration successful")


@router.post("/login")
@auth_rate_limit()
async def login(
    request: Request,
    response: Response,
    credentials: StaffLogin,
    db: AsyncSession = Depends(get_db)
):
    """Staff login by email (rate limited: 5/min)"""
    client_ip = get_client_ip(request)
    store = CredentialStore(db)

    staff = await store.find_staff_by_email(credentials.email, with_password=True)
    if staff is None or not verify_password(credentials.password, staff.hashed_password):
        logger.log_auth_event(
            event="login",
            success=False,
            subject=credentials.email,
            reason="Invalid email or password",
            client_ip=client_ip
        )
        raise InvalidCredentialsError("Invalid email or password")

    if not staff.is_active:
        logger.log_auth_event(
            event="login",
            success=False,
            subject=credentials.email,
            reason="Account deactivated",
            client_ip=client_ip
        )
        raise AccountDeactivatedError()

    await store.touch_last_login(staff)
    principal = StaffPrincipal(staff=staff)
    token = _issue_session(response, principal)

    set_user_id(principal.id)
    logger.log_auth_event(
        event="login",
        success=True,
        subject=staff.email,
        client_ip=client_ip,
        user_type=principal.role
    )

    return token_response(token, principal, "Login successful")


@router.post("/student-login")
@auth_rate_limit()
async def student_login(
    request: Request,
    response: Response,
    credentials: StudentLogin,
    db: AsyncSession = Depends(get_db)
):
    """Student login by student number (rate limited: 5/min)"""
    client_ip = get_client_ip(request)
    store = CredentialStore(db)

    student = await store.find_student_by_number(credentials.student_number, with_password=True)
    if student is None or not verify_password(credentials.password, student.hashed_password):
        logger.log_auth_event(
            event="student_login",
            success=False,
            subject=credentials.student_number,
            reason="Invalid student number or password",
            client_ip=client_ip
        )
        raise InvalidCredentialsError("Invalid student number or password")

    if not student.is_active:
        logger.log_auth_event(
            event="student_login",
            success=False,
            subject=credentials.student_number,
            reason="Account deactivated",
            client_ip=client_ip
        )
        raise AccountDeactivatedError()

    await store.touch_last_login(student)
    principal = StudentPrincipal(student=student)
    token = _issue_session(response, principal)

    set_user_id(principal.id)
    logger.log_auth_event(
        event="student_login",
        success=True,
        subject=student.student_number,
        client_ip=client_ip
    )

    return token_response(token, principal, "Login successful")


@router.get("/me")
async def get_me(principal: Principal = Depends(get_current_principal)):
    """Current principal"""
    return {"success": True, "data": principal_payload(principal)}


@router.post("/logout")
async def logout(
    response: Response,
    principal: Principal = Depends(get_current_principal)
):
    """Clear the session cookie; the token itself stays valid until it expires"""
    clear_session_cookie(response)
    logger.log_auth_event(event="logout", success=True, subject=principal.id)
    return {"success": True, "message": "Logged out successfully"}


@router.put("/update-profile")
async def update_profile(
    data: ProfileUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """
    Update the caller's own profile.

    Staff may change name, surname, phone, department and address; students
    may change email and phone. Anything else is rejected.
    """
    changes = data.changes()
    if not changes:
        raise ValidationError("No profile fields supplied")

    is_student = isinstance(principal, StudentPrincipal)
    allowed = STUDENT_PROFILE_FIELDS if is_student else STAFF_PROFILE_FIELDS
    refused = sorted(set(changes) - allowed)
    if refused:
        raise ValidationError(f"{refused[0]} cannot be changed here", field=refused[0])

    record = principal.student if is_student else principal.staff
    updated = await CredentialStore(db).update_profile(record, changes)

    logger.info(f"[Auth] {principal.role} {principal.id} updated profile: {', '.join(sorted(changes))}")
    return {"success": True, "data": principal_payload(principal_for(updated))}


@router.put("/update-password")
async def update_password(
    response: Response,
    data: PasswordUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """Change the caller's password and start a fresh session"""
    record = principal.student if isinstance(principal, StudentPrincipal) else principal.staff
    await CredentialStore(db).change_password(record, data.current_password, data.new_password)

    token = _issue_session(response, principal)
    logger.log_auth_event(event="update_password", success=True, subject=principal.id)
    return token_response(token, principal, "Password updated")


@router.get("/check")
async def check_auth(principal: Optional[Principal] = Depends(get_optional_principal)):
    """Session check that never fails"""
    return {
        "success": True,
        "authenticated": principal is not None,
        "userType": principal.role if principal else None,
    }
