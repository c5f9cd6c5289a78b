"""Shared fixtures: a controllable clock and an in-memory database."""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from costagolf.models.database import Base
from costagolf.models.schemas import Course
from costagolf.services.database_service import DatabaseService


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 5, 1, 8, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def test_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(test_engine) -> DatabaseService:
    """DatabaseService bound to the in-memory engine."""
    return DatabaseService(sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False))


@pytest_asyncio.fixture
async def course(db: DatabaseService) -> Course:
    return await db.create_course(
        Course(id="course-1", name="Los Naranjos Golf Club", city="Marbella", email="caddie@naranjos.example")
    )
