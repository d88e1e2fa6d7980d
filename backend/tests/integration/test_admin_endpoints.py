"""
Integration Tests for Admin Endpoints
Tests for: account activation, staff deletion guards, role enforcement
"""
import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.models.staff import StaffKind

PASSWORD = 'password123'


class TestAccountStatus:
    """PATCH /api/admin/.../status"""

    @pytest.mark.asyncio
    async def test_deactivate_student_blocks_login(self, client: AsyncClient, student, admin_headers):
        response = await client.patch(
            f'/api/admin/students/{student.id}/status',
            json={'isActive': False},
            headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()['data']['isActive'] is False

        login = await client.post(
            '/api/auth/student-login',
            json={'studentNumber': student.student_number, 'password': PASSWORD}
        )
        assert login.status_code == 401
        assert login.json()['code'] == 'ACCOUNT_DEACTIVATED'

    @pytest.mark.asyncio
    async def test_reactivate_staff(self, client: AsyncClient, staff_factory, admin_headers):
        staff = await staff_factory(is_active=False)

        response = await client.patch(
            f'/api/admin/users/{staff.id}/status',
            json={'isActive': True},
            headers=admin_headers
        )
        assert response.status_code == 200

        login = await client.post('/api/auth/login', json={'email': staff.email, 'password': PASSWORD})
        assert login.status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient, admin_headers):
        response = await client.patch(
            '/api/admin/users/00000000-0000-0000-0000-000000000000/status',
            json={'isActive': False},
            headers=admin_headers
        )

        assert response.status_code == 404
        assert response.json()['code'] == 'USER_NOT_FOUND'

    @pytest.mark.asyncio
    async def test_teacher_is_forbidden(self, client: AsyncClient, student, teacher_headers):
        response = await client.patch(
            f'/api/admin/students/{student.id}/status',
            json={'isActive': False},
            headers=teacher_headers
        )

        assert response.status_code == 403
        assert response.json()['code'] == 'INSUFFICIENT_PERMISSION'


class TestDeleteStaff:
    """DELETE /api/admin/users/{user_id}"""

    @pytest.mark.asyncio
    async def test_delete_teacher_without_students(self, client: AsyncClient, staff_factory, admin_headers):
        staff = await staff_factory(kind=StaffKind.TEACHER)

        response = await client.delete(f'/api/admin/users/{staff.id}', headers=admin_headers)
        assert response.status_code == 200

        gone = await client.patch(
            f'/api/admin/users/{staff.id}/status',
            json={'isActive': True},
            headers=admin_headers
        )
        assert gone.status_code == 404

    @pytest.mark.asyncio
    async def test_teacher_with_students_is_kept(self, client: AsyncClient, student, teacher, admin_headers):
        response = await client.delete(f'/api/admin/users/{teacher.id}', headers=admin_headers)

        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_super_admin_is_protected(self, client: AsyncClient, staff_factory, admin_headers):
        root = await staff_factory(kind=StaffKind.ADMIN, email=settings.SUPER_ADMIN_EMAIL)

        response = await client.delete(f'/api/admin/users/{root.id}', headers=admin_headers)

        assert response.status_code == 403
        assert response.json()['code'] == 'SUPER_ADMIN_PROTECTED'

    @pytest.mark.asyncio
    async def test_cannot_delete_self(self, client: AsyncClient, admin, admin_headers):
        response = await client.delete(f'/api/admin/users/{admin.id}', headers=admin_headers)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_student_is_forbidden_not_unauthenticated(self, client: AsyncClient, teacher, student_headers):
        response = await client.delete(f'/api/admin/users/{teacher.id}', headers=student_headers)

        assert response.status_code == 403
        assert response.json()['code'] == 'INSUFFICIENT_PERMISSION'
