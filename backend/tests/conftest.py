"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.models.base import Base
from app.models.user import UserRole
from app.services.escalation_dispatcher import EscalationDispatcher
from app.services.notification_service import DeliveryResult, EscalationNotifier
from app.services.sla_policy import SLAPolicy
from tests.factories import BASE_TIME, UserFactory


# Test database URL
# WHY: Using SQLite for tests eliminates external database dependencies
# and makes tests faster. For integration tests, use PostgreSQL.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """
    Controllable clock for the escalation engine.

    WHY: Escalation rules are time-based. Tests move time forward
    explicitly instead of sleeping.
    """

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set_minutes(self, minutes: float, start: datetime = BASE_TIME) -> datetime:
        self.now = start + timedelta(minutes=minutes)
        return self.now


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state.
    StaticPool shares the single in-memory database between the test
    session and the sessions the dispatcher opens itself.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Yields:
        AsyncSession: Database session for the test
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at BASE_TIME."""
    return FakeClock()


@pytest.fixture
def policy() -> SLAPolicy:
    """Default SLA policy (urgent 5, high 15, medium 30, low 60, x1.5)."""
    return SLAPolicy()


@pytest.fixture
def mock_notifier() -> MagicMock:
    """
    Notifier whose deliveries all succeed.

    WHY: Dispatcher tests check escalation state and delivery calls, not
    message formatting.
    """
    notifier = MagicMock(spec=EscalationNotifier)
    notifier.send_warning = AsyncMock(return_value=DeliveryResult.delivered())
    notifier.send_escalation = AsyncMock(return_value=DeliveryResult.delivered())
    notifier.notify_admins = AsyncMock(return_value=DeliveryResult.delivered())
    return notifier


@pytest.fixture
def dispatcher(session_factory, policy, mock_notifier, clock) -> EscalationDispatcher:
    """Dispatcher wired to the test database, fake clock and mock notifier."""
    return EscalationDispatcher(
        session_factory=session_factory,
        policy=policy,
        notifier=mock_notifier,
        clock=clock,
        max_attempts=3,
        retry_backoff_seconds=0,
        scan_timeout_seconds=30,
    )


@pytest_asyncio.fixture
async def test_customer(db_session: AsyncSession):
    """Customer who opens tickets."""
    return await UserFactory.create(
        db_session,
        name="Nguyen Van A",
        email="customer@example.com",
        role=UserRole.CUSTOMER,
    )


@pytest_asyncio.fixture
async def test_staff(db_session: AsyncSession):
    """CSKH staff member tickets are assigned to."""
    return await UserFactory.create(
        db_session,
        name="Tran Thi B",
        email="staff@example.com",
        role=UserRole.CSKH,
    )


@pytest_asyncio.fixture
async def test_admin(db_session: AsyncSession):
    """Active admin who receives in-app escalation notifications."""
    return await UserFactory.create(
        db_session,
        name="Admin User",
        email="admin@example.com",
        role=UserRole.ADMIN,
    )
