"""Shared fixtures: in-memory database, controllable clock, mocked dispatcher."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from course_auth.database.otp_repository import OTPRepository
from course_auth.models import account, otp  # noqa: F401
from course_auth.models.base import Base
from course_auth.services.email_service import EmailService
from course_auth.services.otp_manager import OTPManager

START = datetime(2026, 1, 15, 9, 0, 0, tzinfo=UTC)

# Test-only signing secret.
TEST_TOKEN_SECRET = "test-secret-key-that-is-at-least-32-characters-long"


class FakeClock:
    """Callable clock that only moves when a test says so."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database per test."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher():
    """Mocked email service — never actually sends emails."""
    svc = EmailService()
    svc.send_otp = AsyncMock()
    return svc


@pytest.fixture
def otp_repo(db_session) -> OTPRepository:
    return OTPRepository(db_session)


@pytest.fixture
def manager(otp_repo, dispatcher, clock) -> OTPManager:
    return OTPManager(otp_repo, dispatcher, clock)


def sent_code(dispatcher) -> str:
    """Return the code passed to the most recent ``send_otp`` call."""
    return dispatcher.send_otp.call_args.args[1]
