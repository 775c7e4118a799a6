"""
Shared test fixtures.

Environment is pinned before the app is imported so the module-level
settings pick up a local SQLite database and no email provider.
"""

import os

os.environ.setdefault("PYTHON_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import UTC, datetime, timedelta  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.auth import Caller, UserRole  # noqa: E402
from app.core.database import Base  # noqa: E402
from app.modules.applications.models import Application, ApplicationStatus  # noqa: E402
from app.modules.courses.models import Course, CourseStatus  # noqa: E402
from app.modules.job_applications.models import (  # noqa: E402
    Job,
    JobApplication,
    JobApplicationStatus,
    JobStatus,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


# ============================================
# Database
# ============================================


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    maker = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with maker() as session:
        yield session


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_gateway():
    """Notification gateway that records events."""
    gateway = MagicMock()
    gateway.notify = AsyncMock()
    return gateway


# ============================================
# Callers
# ============================================


@pytest.fixture
def institution_id():
    return uuid4()


@pytest.fixture
def student():
    return Caller(
        id=uuid4(), role=UserRole.STUDENT, email="ama@student.test", name="Ama Mensah"
    )


@pytest.fixture
def institution(institution_id):
    return Caller(id=institution_id, role=UserRole.INSTITUTION, name="Accra Polytechnic")


@pytest.fixture
def other_institution():
    return Caller(id=uuid4(), role=UserRole.INSTITUTION)


# ============================================
# Factories
# ============================================


@pytest.fixture
def make_course():
    def _make(
        institution_id,
        *,
        status=CourseStatus.ACTIVE,
        deadline=NOW + timedelta(days=30),
        seats=30,
        name="BSc Computer Science",
    ) -> Course:
        return Course(
            id=uuid4(),
            institution_id=institution_id,
            name=name,
            seats=seats,
            application_deadline=deadline,
            status=status,
            requirements={"min_grade": "C"},
        )

    return _make


@pytest.fixture
def make_application():
    def _make(
        student_id,
        course_id,
        institution_id,
        *,
        status=ApplicationStatus.PENDING,
        published=False,
        admitted_at=None,
        offer_accepted=False,
        applied_at=NOW,
        student_email="ama@student.test",
    ) -> Application:
        return Application(
            id=uuid4(),
            student_id=student_id,
            course_id=course_id,
            institution_id=institution_id,
            student_name="Ama Mensah",
            student_email=student_email,
            documents=[],
            status=status,
            published=published,
            offer_accepted=offer_accepted,
            admitted_at=admitted_at,
            applied_at=applied_at,
            updated_at=applied_at,
        )

    return _make


@pytest.fixture
def make_job():
    def _make(
        company_id,
        *,
        status=JobStatus.ACTIVE,
        deadline=NOW + timedelta(days=14),
        title="Junior Data Analyst",
    ) -> Job:
        return Job(
            id=uuid4(),
            company_id=company_id,
            title=title,
            vacancies=2,
            application_deadline=deadline,
            status=status,
        )

    return _make


@pytest.fixture
def make_job_application():
    def _make(
        student_id,
        job_id,
        company_id,
        *,
        status=JobApplicationStatus.PENDING,
    ) -> JobApplication:
        return JobApplication(
            id=uuid4(),
            student_id=student_id,
            job_id=job_id,
            company_id=company_id,
            student_name="Ama Mensah",
            student_email="ama@student.test",
            status=status,
            applied_at=NOW,
            updated_at=NOW,
        )

    return _make
