import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from fest_portal.access.context import AccessContext
from fest_portal.access.roles import normalize_roles
from fest_portal.db.db import init_db
from fest_portal.db.models import (
    AcademicYear,
    Base,
    Event,
    EventCategory,
    EventMode,
    Profile,
    Registration,
    RegistrationMethod,
    RegistrationStatus,
    Role,
    Student,
    User,
)
from fest_portal.db.seed import seed_settings
from fest_portal.main import create_application
from fest_portal.services.activity_trail import ActivityTrail
from fest_portal.services.settings_service import SettingsService
from fest_portal.schemas.settings_schemas import UpdateRegistrationSettingsRequest
from fest_portal.utils.auth import AuthUtils

DEFAULT_PASSWORD = "festival-2024"

# Hashed once per run; bcrypt is deliberately slow
PASSWORD_HASH = AuthUtils.hash_password(DEFAULT_PASSWORD)


def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'fest_portal_test.db'}"


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create test database engine on a temporary SQLite file."""
    engine = create_async_engine(database_url(tmp_path), poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        await seed_settings(session)
        yield session
        await session.rollback()


@pytest.fixture
def trail(session_factory) -> ActivityTrail:
    """Trail without a running worker; tests write queued entries with ``drain``."""
    return ActivityTrail(session_factory, queue_size=100)


def act_as(profile: Profile, role: Optional[Role] = None) -> AccessContext:
    """Access context for ``profile`` acting as ``role`` (default: first held role)."""
    roles = normalize_roles(profile.roles)
    return AccessContext(profile=profile, active_role=role or roles[0], roles=roles)


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def account(
        self,
        roles: List[str],
        email: Optional[str] = None,
        full_name: str = "Test User",
        is_first_login: bool = False,
        profile_completed: bool = True,
        is_active: bool = True,
    ) -> Profile:
        n = self._next()
        user = User(
            email=email or f"user{n}@ekc.edu.in",
            password_hash=PASSWORD_HASH,
            is_active=is_active,
        )
        self.db.add(user)
        await self.db.flush()

        profile = Profile(
            user_id=user.id,
            full_name=full_name,
            email=user.email,
            roles=[getattr(role, "value", role) for role in roles],
            is_first_login=is_first_login,
            profile_completed=profile_completed,
        )
        self.db.add(profile)
        await self.db.commit()
        await self.db.refresh(profile)
        return profile

    async def admin(self, **kwargs) -> Profile:
        return await self.account([Role.ADMIN], full_name="Festival Admin", **kwargs)

    async def coordinator(self, year: AcademicYear = AcademicYear.SECOND, **kwargs) -> Profile:
        role = {
            AcademicYear.FIRST: Role.FIRST_YEAR_COORDINATOR,
            AcademicYear.SECOND: Role.SECOND_YEAR_COORDINATOR,
            AcademicYear.THIRD: Role.THIRD_YEAR_COORDINATOR,
            AcademicYear.FOURTH: Role.FOURTH_YEAR_COORDINATOR,
        }[year]
        return await self.account([role], full_name="Year Coordinator", **kwargs)

    async def student(
        self,
        academic_year: AcademicYear = AcademicYear.SECOND,
        name: Optional[str] = None,
        roll_number: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Student:
        n = self._next()
        student = Student(
            name=name or f"Student {n}",
            roll_number=roll_number or f"EKC{n:04d}",
            department="Computer Science",
            academic_year=academic_year,
            user_id=user_id,
        )
        self.db.add(student)
        await self.db.commit()
        await self.db.refresh(student)
        return student

    async def student_account(
        self, academic_year: AcademicYear = AcademicYear.SECOND, **kwargs
    ) -> Profile:
        """Student login with a linked student record"""
        profile = await self.account([Role.STUDENT], full_name="Student Login", **kwargs)
        await self.student(academic_year=academic_year, user_id=profile.user_id)
        return profile

    async def event(
        self,
        category: EventCategory = EventCategory.ON_STAGE,
        name: Optional[str] = None,
        mode: EventMode = EventMode.INDIVIDUAL,
        registration_method: RegistrationMethod = RegistrationMethod.COORDINATOR,
        max_participants: Optional[int] = None,
        is_active: bool = True,
        registration_deadline: Optional[datetime] = None,
    ) -> Event:
        n = self._next()
        event = Event(
            name=name or f"Event {n}",
            category=category,
            mode=mode,
            registration_method=registration_method,
            max_participants=max_participants,
            is_active=is_active,
            registration_deadline=registration_deadline,
        )
        self.db.add(event)
        await self.db.commit()
        await self.db.refresh(event)
        return event

    async def past_deadline_event(self, **kwargs) -> Event:
        return await self.event(
            registration_deadline=datetime.now(timezone.utc) - timedelta(days=1),
            **kwargs,
        )

    async def registration(
        self,
        student: Student,
        event: Event,
        status: RegistrationStatus = RegistrationStatus.APPROVED,
    ) -> Registration:
        registration = Registration(
            student_id=student.id, event_id=event.id, status=status
        )
        self.db.add(registration)
        await self.db.commit()
        await self.db.refresh(registration)
        return registration

    async def settings(self, **values) -> None:
        await SettingsService(self.db).update_registration_settings(
            UpdateRegistrationSettingsRequest(**values)
        )


@pytest_asyncio.fixture
async def factory(db_session: AsyncSession) -> Factory:
    return Factory(db_session)


@pytest.fixture
def acting():
    return act_as


@pytest.fixture
def password() -> str:
    """Password of every account the factory creates"""
    return DEFAULT_PASSWORD


# HTTP tests drive the app through TestClient, which runs its own event loop;
# the database is prepared and seeded with asyncio.run from the test thread.


@pytest.fixture
def app_session_factory(tmp_path):
    engine = create_async_engine(database_url(tmp_path), poolclass=NullPool, echo=False)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    asyncio.run(init_db(factory))
    yield factory
    asyncio.run(engine.dispose())


@pytest.fixture
def seed(app_session_factory):
    """Run ``build(factory)`` against the app database and return its result."""

    def run(build):
        async def _seed():
            async with app_session_factory() as db:
                return await build(Factory(db))

        return asyncio.run(_seed())

    return run


@pytest.fixture
def client(app_session_factory):
    with TestClient(create_application(app_session_factory)) as test_client:
        yield test_client
