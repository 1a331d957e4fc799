"""
Shared fixtures for the Consumption Ledger test suite.

The ledger runs against a throwaway SQLite file (aiosqlite) so that each
session gets its own connection and transactions really interleave.
Environment is configured before any ``app`` import: settings are cached.
"""
import os
import tempfile
from datetime import date, datetime, timezone

_DB_DIR = tempfile.mkdtemp(prefix="ledger-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'ledger.db')}"
os.environ["STOCK_CACHE_ENABLED"] = "false"
os.environ["METRICS_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["OPT_LOCK_BASE_DELAY_MS"] = "5"
os.environ["OPT_LOCK_JITTER_MS"] = "5"
os.environ["LEDGER_TIMEZONE"] = "UTC"

import httpx
import pytest
import pytest_asyncio
from jose import jwt

from app.core.clock import FixedClock
from app.db import catalog_ops
from app.db.database import Base, SessionLocal, engine
from app.models.consumption import Period

ADMIN_ID = "admin-001"
USER_ID = "user-001"
OTHER_USER_ID = "user-002"
NOW = datetime(2025, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(db_schema):
    async with SessionLocal() as s:
        yield s


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def make_type(session):
    async def _make(name="Coffee", limit=5, period=Period.WEEKLY):
        return await catalog_ops.create_type(session, name, limit, period)
    return _make


@pytest.fixture
def make_item(session, clock):
    async def _make(ctype, stock=10, name="Arabica capsules"):
        return await catalog_ops.create_item(
            session,
            user_id=ADMIN_ID,
            name=name,
            consumption_type_id=ctype.id,
            purchase_date=date(2025, 1, 10),
            stock=stock,
            clock=clock,
        )
    return _make


def make_token(user_id: str, is_admin: bool = False) -> str:
    return jwt.encode({"sub": user_id, "is_admin": is_admin}, "test-secret", algorithm="HS256")


@pytest.fixture
def auth():
    def _headers(user_id: str = USER_ID, is_admin: bool = False) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, is_admin)}"}
    return _headers


@pytest_asyncio.fixture
async def client(db_schema, clock):
    from app.api.deps import get_clock
    from app.main import app

    app.dependency_overrides[get_clock] = lambda: clock
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://ledger") as c:
        yield c
    app.dependency_overrides.clear()
