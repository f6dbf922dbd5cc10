"""
OrgTrack Backend — Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every HTTP test builds its own app through create_app() with fresh
       collaborators (in-memory rate limit store, stub user loader, disabled
       telemetry) and a mocked database session injected via
       dependency_overrides. No database, Redis or network is needed.

Fixture Hierarchy:
    ├── mock_db_session: AsyncSession stand-in; commit() assigns id/created_at
    ├── db_result:       sets what the next db.execute() returns
    ├── user_loader:     AsyncMock used by the Authenticator to resolve principals
    ├── build_app:       factory for a fully wired app
    └── client:          HTTPX AsyncClient over ASGITransport
"""

import os

# Must run before any app import: settings are read at import time
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["COOKIE_SECRET"] = "test-cookie-secret-0123456789"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["TELEMETRY_API_KEY"] = ""
os.environ["TELEMETRY_ENDPOINT"] = ""

from datetime import datetime, timezone  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.database import get_db_session  # noqa: E402
from app.services.authenticator import Authenticator  # noqa: E402
from app.services.rate_limit_store import MemoryRateLimitStore  # noqa: E402
from app.services.telemetry_service import TelemetryService  # noqa: E402


class FakeClock:
    """Manually advanced clock for window/expiry tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    add() records objects; commit() fills in the columns the database would
    (id, created_at) so handlers can serialize the new record.
    """
    session = AsyncMock()
    added = []

    def _add(obj):
        added.append(obj)

    async def _commit():
        for obj in added:
            if getattr(obj, "id", None) is None:
                obj.id = uuid4()
            if getattr(obj, "created_at", None) is None:
                obj.created_at = datetime.now(timezone.utc)

    session.add = MagicMock(side_effect=_add)
    session.commit = AsyncMock(side_effect=_commit)
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock())
    session.added = added
    return session


@pytest.fixture
def db_result(mock_db_session):
    """
    Configure the result of db.execute().

    Usage:
        db_result(one=user)             → scalar_one_or_none() returns user
        db_result(many=[org1, org2])    → scalars().all() returns the list
    """

    def _set(one=None, many=None):
        result = MagicMock()
        result.scalar_one_or_none.return_value = one
        result.scalars.return_value.all.return_value = list(many or [])
        mock_db_session.execute = AsyncMock(return_value=result)
        return result

    return _set


@pytest.fixture
def user_loader():
    return AsyncMock(return_value=None)


@pytest.fixture
def build_app(mock_db_session, user_loader):
    """Factory: build_app(rate_limit_store=..., telemetry_service=...) → FastAPI."""
    from app.main import create_app

    def _build(**overrides):
        overrides.setdefault("rate_limit_store", MemoryRateLimitStore())
        overrides.setdefault("authenticator", Authenticator(user_loader=user_loader))
        overrides.setdefault("telemetry_service", TelemetryService())
        app = create_app(**overrides)

        async def _db_override():
            yield mock_db_session

        app.dependency_overrides[get_db_session] = _db_override
        return app

    return _build


@pytest_asyncio.fixture
async def client(build_app):
    """
    Provides an async HTTP test client bound to a fresh app.

    Usage:
        async def test_health(client):
            response = await client.get("/health")
    """
    transport = ASGITransport(app=build_app())
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
