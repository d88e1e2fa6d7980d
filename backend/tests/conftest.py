"""
SchoolTrack - Test Configuration and Fixtures
"""
import os
from typing import AsyncGenerator, Callable, Dict
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession
from faker import Faker

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['SUPER_ADMIN_EMAIL'] = 'superadmin@schooltrack.io'

from app.main import app
from app.core.database import Base, get_engine, get_session_local, close_db
from app.core.security import get_password_hash, token_service
from app.models.staff import Staff, StaffKind
from app.models.student import Student
from app.services.analytics_service import AnalyticsService

fake = Faker()

DEFAULT_PASSWORD = 'password123'


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database for each test"""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = get_session_local()
    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await close_db()


@pytest.fixture
async def analytics(db_session: AsyncSession) -> AsyncGenerator[AnalyticsService, None]:
    """Recording analytics service; pending writes are drained on teardown"""
    service = AnalyticsService(get_session_local(), enabled=True)
    yield service
    await service.drain()


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with visitor recording switched off.

    https base URL because session cookies are Secure outside development.
    """
    app.state.analytics = AnalyticsService(get_session_local(), enabled=False)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='https://test') as ac:
        yield ac


@pytest.fixture
async def tracking_client(analytics: AnalyticsService) -> AsyncGenerator[AsyncClient, None]:
    """Test client that records presence and page views"""
    app.state.analytics = analytics

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='https://test') as ac:
        yield ac
    await analytics.drain()


@pytest.fixture
def staff_factory(db_session: AsyncSession) -> Callable:
    """Create committed staff accounts"""
    async def create(
        kind: StaffKind = StaffKind.TEACHER,
        email: str = None,
        password: str = DEFAULT_PASSWORD,
        is_active: bool = True
    ) -> Staff:
        staff = Staff(
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            email=email or fake.unique.email(),
            hashed_password=get_password_hash(password),
            kind=kind,
            is_active=is_active,
        )
        db_session.add(staff)
        await db_session.commit()
        await db_session.refresh(staff)
        return staff

    return create


@pytest.fixture
def student_factory(db_session: AsyncSession) -> Callable:
    """Create committed student accounts owned by a given teacher"""
    async def create(
        teacher: Staff,
        student_number: str = None,
        password: str = DEFAULT_PASSWORD,
        is_active: bool = True
    ) -> Student:
        student = Student(
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            student_number=student_number or str(fake.unique.random_int(min=1000, max=999999)),
            hashed_password=get_password_hash(password),
            teacher_id=teacher.id,
            class_label='9-A',
            is_active=is_active,
        )
        db_session.add(student)
        await db_session.commit()
        await db_session.refresh(student)
        return student

    return create


@pytest.fixture
async def teacher(staff_factory) -> Staff:
    return await staff_factory(kind=StaffKind.TEACHER)


@pytest.fixture
async def admin(staff_factory) -> Staff:
    return await staff_factory(kind=StaffKind.ADMIN)


@pytest.fixture
async def student(student_factory, teacher: Staff) -> Student:
    return await student_factory(teacher)


def bearer(subject_id: str, user_type: str) -> Dict[str, str]:
    token = token_service.issue(str(subject_id), user_type).token
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def teacher_headers(teacher: Staff) -> dict:
    """Authentication headers for the teacher fixture"""
    return bearer(teacher.id, 'teacher')


@pytest.fixture
def admin_headers(admin: Staff) -> dict:
    """Authentication headers for the admin fixture"""
    return bearer(admin.id, 'admin')


@pytest.fixture
def student_headers(student: Student) -> dict:
    """Authentication headers for the student fixture"""
    return bearer(student.id, 'student')


@pytest.fixture
def make_headers() -> Callable:
    """bearer(subject_id, user_type) for ad-hoc principals"""
    return bearer
