"""
Integration Tests for Authentication
Tests for: registration gate, staff/student login, cookie sessions, token failures,
profile updates
"""
import pytest
from datetime import timedelta
from httpx import AsyncClient
from faker import Faker

from app.core.config import settings
from app.core.security import token_service
from app.models.staff import StaffKind

fake = Faker()

PASSWORD = 'password123'


def register_payload(**overrides) -> dict:
    payload = {
        'name': fake.first_name(),
        'surname': fake.last_name(),
        'email': fake.unique.email(),
        'password': 'securePass1',
        'userType': 'teacher',
    }
    payload.update(overrides)
    return payload


class TestRegistration:
    """Staff registration is admin-only outside development"""

    @pytest.mark.asyncio
    async def test_admin_registers_teacher(self, client: AsyncClient, admin_headers):
        payload = register_payload()

        response = await client.post('/api/auth/register', json=payload, headers=admin_headers)

        assert response.status_code == 201
        data = response.json()
        assert data['success'] is True
        assert data['data']['user']['email'] == payload['email'].lower()
        assert data['data']['user']['userType'] == 'teacher'
        assert 'hashed_password' not in data['data']['user']
        # The admin's own session is left alone
        assert settings.SESSION_COOKIE_NAME not in response.cookies

    @pytest.mark.asyncio
    async def test_anonymous_registration_rejected(self, client: AsyncClient):
        response = await client.post('/api/auth/register', json=register_payload())

        assert response.status_code == 401
        assert response.json()['code'] == 'NO_TOKEN'

    @pytest.mark.asyncio
    async def test_teacher_cannot_register_staff(self, client: AsyncClient, teacher_headers):
        response = await client.post('/api/auth/register', json=register_payload(), headers=teacher_headers)

        assert response.status_code == 403
        assert response.json()['code'] == 'INSUFFICIENT_PERMISSION'

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client: AsyncClient, admin_headers, teacher):
        payload = register_payload(email=teacher.email.upper())

        response = await client.post('/api/auth/register', json=payload, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()['code'] == 'DUPLICATE_RESOURCE'

    @pytest.mark.asyncio
    async def test_expired_admin_token(self, client: AsyncClient, admin):
        token = token_service.issue(admin.id, 'admin', expires_delta=timedelta(seconds=-5)).token

        response = await client.post(
            '/api/auth/register',
            json=register_payload(),
            headers={'Authorization': f'Bearer {token}'}
        )

        assert response.status_code == 401
        assert response.json()['code'] == 'TOKEN_EXPIRED'

    @pytest.mark.asyncio
    async def test_deactivated_admin(self, client: AsyncClient, staff_factory, make_headers):
        inactive = await staff_factory(kind=StaffKind.ADMIN, is_active=False)

        response = await client.post(
            '/api/auth/register',
            json=register_payload(),
            headers=make_headers(inactive.id, 'admin')
        )

        assert response.status_code == 401
        assert response.json()['code'] == 'ACCOUNT_DEACTIVATED'

    @pytest.mark.asyncio
    async def test_same_name_staff(self, client: AsyncClient, admin_headers):
        first = await client.post(
            '/api/auth/register',
            json=register_payload(name='Ayşe', surname='Kaya'),
            headers=admin_headers
        )
        second = await client.post(
            '/api/auth/register',
            json=register_payload(name='Ayşe', surname='Kaya'),
            headers=admin_headers
        )

        assert first.status_code == 201
        assert second.status_code == 201
        first_slug = first.json()['data']['user']['slug']
        second_slug = second.json()['data']['user']['slug']
        assert first_slug.startswith('ayse-kaya-')
        assert first_slug != second_slug

    @pytest.mark.asyncio
    async def test_invalid_payload(self, client: AsyncClient, admin_headers):
        payload = register_payload(email='not-an-email')

        response = await client.post('/api/auth/register', json=payload, headers=admin_headers)

        assert response.status_code == 400
        body = response.json()
        assert body['success'] is False
        assert body['code'] == 'VALIDATION_ERROR'
        assert body['errors']


class TestStaffLogin:
    """Email + password login"""

    @pytest.mark.asyncio
    async def test_cookie_session_round_trip(self, client: AsyncClient, teacher):
        response = await client.post('/api/auth/login', json={'email': teacher.email, 'password': PASSWORD})

        assert response.status_code == 200
        data = response.json()['data']
        assert data['token']
        assert data['user']['id'] == teacher.id
        assert settings.SESSION_COOKIE_NAME in response.cookies

        # Cookie alone authenticates
        me = await client.get('/api/auth/me')
        assert me.status_code == 200
        assert me.json()['data']['id'] == teacher.id

        logout = await client.post('/api/auth/logout')
        assert logout.status_code == 200

        after = await client.get('/api/auth/me')
        assert after.status_code == 401
        assert after.json()['code'] == 'NO_TOKEN'

    @pytest.mark.asyncio
    async def test_email_is_case_insensitive(self, client: AsyncClient, teacher):
        response = await client.post(
            '/api/auth/login',
            json={'email': teacher.email.upper(), 'password': PASSWORD}
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_the_same(self, client: AsyncClient, teacher):
        wrong = await client.post('/api/auth/login', json={'email': teacher.email, 'password': 'nope-nope'})
        unknown = await client.post('/api/auth/login', json={'email': 'ghost@example.com', 'password': PASSWORD})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()['code'] == 'INVALID_CREDENTIALS'

    @pytest.mark.asyncio
    async def test_deactivated_staff(self, client: AsyncClient, staff_factory):
        staff = await staff_factory(is_active=False)

        response = await client.post('/api/auth/login', json={'email': staff.email, 'password': PASSWORD})

        assert response.status_code == 401
        assert response.json()['code'] == 'ACCOUNT_DEACTIVATED'

    @pytest.mark.asyncio
    async def test_last_login_recorded(self, client: AsyncClient, teacher):
        await client.post('/api/auth/login', json={'email': teacher.email, 'password': PASSWORD})

        me = await client.get('/api/auth/me')

        assert me.json()['data']['lastLogin'] is not None


class TestStudentLogin:
    """Student number + password login"""

    @pytest.mark.asyncio
    async def test_student_login(self, client: AsyncClient, student):
        response = await client.post(
            '/api/auth/student-login',
            json={'studentNumber': student.student_number, 'password': PASSWORD}
        )

        assert response.status_code == 200
        user = response.json()['data']['user']
        assert user['userType'] == 'student'
        assert user['studentNumber'] == student.student_number

    @pytest.mark.asyncio
    async def test_unknown_number_and_wrong_password_look_the_same(self, client: AsyncClient, student):
        wrong = await client.post(
            '/api/auth/student-login',
            json={'studentNumber': student.student_number, 'password': 'nope-nope'}
        )
        unknown = await client.post(
            '/api/auth/student-login',
            json={'studentNumber': '999999999', 'password': PASSWORD}
        )

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()

    @pytest.mark.asyncio
    async def test_deactivated_student_with_right_password(self, client: AsyncClient, student_factory, teacher):
        inactive = await student_factory(teacher, is_active=False)

        response = await client.post(
            '/api/auth/student-login',
            json={'studentNumber': inactive.student_number, 'password': PASSWORD}
        )

        assert response.status_code == 401
        assert response.json()['code'] == 'ACCOUNT_DEACTIVATED'

    @pytest.mark.asyncio
    async def test_deactivated_student_with_wrong_password(self, client: AsyncClient, student_factory, teacher):
        inactive = await student_factory(teacher, is_active=False)

        response = await client.post(
            '/api/auth/student-login',
            json={'studentNumber': inactive.student_number, 'password': 'nope-nope'}
        )

        assert response.json()['code'] == 'INVALID_CREDENTIALS'


class TestTokenFailures:
    """Every strict-auth failure is a 401 with a specific code"""

    @pytest.mark.asyncio
    async def test_expired(self, client: AsyncClient, teacher):
        token = token_service.issue(teacher.id, 'teacher', expires_delta=timedelta(seconds=-5)).token

        response = await client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 401
        assert response.json()['code'] == 'TOKEN_EXPIRED'

    @pytest.mark.asyncio
    async def test_garbage(self, client: AsyncClient):
        response = await client.get('/api/auth/me', headers={'Authorization': 'Bearer garbage'})

        assert response.status_code == 401
        assert response.json()['code'] == 'TOKEN_MALFORMED'

    @pytest.mark.asyncio
    async def test_unknown_user_type(self, client: AsyncClient, teacher, make_headers):
        response = await client.get('/api/auth/me', headers=make_headers(teacher.id, 'parent'))

        assert response.status_code == 401
        assert response.json()['code'] == 'INVALID_USER_TYPE'

    @pytest.mark.asyncio
    async def test_unknown_principal(self, client: AsyncClient, db_session, make_headers):
        response = await client.get('/api/auth/me', headers=make_headers('00000000-0000-0000-0000-000000000000', 'student'))

        assert response.status_code == 401
        assert response.json()['code'] == 'USER_NOT_FOUND'

    @pytest.mark.asyncio
    async def test_stored_kind_wins_over_token(self, client: AsyncClient, admin, make_headers):
        # Admin presenting a token that says teacher is still treated as admin
        response = await client.get('/api/auth/me', headers=make_headers(admin.id, 'teacher'))

        assert response.status_code == 200
        assert response.json()['data']['userType'] == StaffKind.ADMIN.value

    @pytest.mark.asyncio
    async def test_deactivation_applies_to_live_tokens(self, client: AsyncClient, teacher_headers, teacher, admin_headers):
        assert (await client.get('/api/auth/me', headers=teacher_headers)).status_code == 200

        patch = await client.patch(
            f'/api/admin/users/{teacher.id}/status',
            json={'isActive': False},
            headers=admin_headers
        )
        assert patch.status_code == 200

        response = await client.get('/api/auth/me', headers=teacher_headers)
        assert response.status_code == 401
        assert response.json()['code'] == 'ACCOUNT_DEACTIVATED'


class TestSessionCheck:
    """Lenient endpoints never fail"""

    @pytest.mark.asyncio
    async def test_check_anonymous(self, client: AsyncClient):
        response = await client.get('/api/auth/check')

        assert response.status_code == 200
        assert response.json()['authenticated'] is False

    @pytest.mark.asyncio
    async def test_check_with_bad_token(self, client: AsyncClient):
        response = await client.get('/api/auth/check', headers={'Authorization': 'Bearer garbage'})

        assert response.status_code == 200
        assert response.json()['authenticated'] is False

    @pytest.mark.asyncio
    async def test_check_authenticated(self, client: AsyncClient, teacher_headers):
        response = await client.get('/api/auth/check', headers=teacher_headers)

        assert response.json()['authenticated'] is True
        assert response.json()['userType'] == 'teacher'


class TestPasswordUpdate:
    """Password change and re-issue"""

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, client: AsyncClient, teacher_headers):
        response = await client.put(
            '/api/auth/update-password',
            json={'currentPassword': 'not-it', 'newPassword': 'brandNew1'},
            headers=teacher_headers
        )

        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_change_password(self, client: AsyncClient, teacher, teacher_headers):
        response = await client.put(
            '/api/auth/update-password',
            json={'currentPassword': PASSWORD, 'newPassword': 'brandNew1'},
            headers=teacher_headers
        )

        assert response.status_code == 200
        assert response.json()['data']['token']

        old = await client.post('/api/auth/login', json={'email': teacher.email, 'password': PASSWORD})
        new = await client.post('/api/auth/login', json={'email': teacher.email, 'password': 'brandNew1'})
        assert old.status_code == 401
        assert new.status_code == 200


class TestProfileUpdate:
    """Self-service profile edits"""

    @pytest.mark.asyncio
    async def test_teacher_updates_profile(self, client: AsyncClient, teacher, teacher_headers):
        old_slug = teacher.slug

        response = await client.put(
            '/api/auth/update-profile',
            json={'name': 'Zeynep', 'department': 'Mathematics', 'phone': '05551234567'},
            headers=teacher_headers
        )

        assert response.status_code == 200
        data = response.json()['data']
        assert data['name'] == 'Zeynep'
        assert data['department'] == 'Mathematics'
        assert data['phone'] == '05551234567'
        assert data['slug'].startswith('zeynep-')
        assert data['slug'] != old_slug

    @pytest.mark.asyncio
    async def test_staff_cannot_change_email(self, client: AsyncClient, teacher_headers):
        response = await client.put(
            '/api/auth/update-profile',
            json={'email': 'someone.else@example.com'},
            headers=teacher_headers
        )

        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_student_updates_contact_details(self, client: AsyncClient, student, student_headers):
        response = await client.put(
            '/api/auth/update-profile',
            json={'email': 'Ali.Yilmaz@Example.com', 'phone': '05557654321'},
            headers=student_headers
        )

        assert response.status_code == 200
        data = response.json()['data']
        assert data['email'] == 'ali.yilmaz@example.com'
        assert data['phone'] == '05557654321'
        assert data['studentNumber'] == student.student_number

    @pytest.mark.asyncio
    async def test_student_cannot_rename_self(self, client: AsyncClient, student_headers):
        response = await client.put(
            '/api/auth/update-profile',
            json={'name': 'Someone'},
            headers=student_headers
        )

        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_empty_update(self, client: AsyncClient, teacher_headers):
        response = await client.put('/api/auth/update-profile', json={}, headers=teacher_headers)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient, db_session):
        response = await client.put('/api/auth/update-profile', json={'phone': '05551234567'})

        assert response.status_code == 401


class TestApiEnvelope:
    """Shared response conventions"""

    @pytest.mark.asyncio
    async def test_request_id_header(self, client: AsyncClient):
        response = await client.get('/api/auth/check')

        assert response.headers.get('x-request-id')
        assert response.headers.get('x-content-type-options') == 'nosniff'

    @pytest.mark.asyncio
    async def test_unknown_route(self, client: AsyncClient):
        response = await client.get('/api/does-not-exist')

        assert response.status_code == 404
        assert response.json()['code'] == 'NOT_FOUND'

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get('/api/health')

        assert response.status_code == 200
        assert response.json()['checks']['database']['status'] == 'healthy'
