# tests/conftest.py

import pytest
import pytest_asyncio
from uuid import uuid4

from app.database import build_engine, build_session_factory, create_tables
from app.models import User
from app.services.ledger import Ledger


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Throwaway sqlite database per test (file-backed so sessions can overlap)"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# USERS
# ============================================================================

@pytest.fixture
def make_user(session_factory):
    """Create a user and fund it through the ledger"""
    async def _make_user(credits: int = 0, email: str = None) -> User:
        async with session_factory() as session:
            user = User(
                email=email or f"user-{uuid4().hex[:8]}@example.com",
                password_hash="not-a-real-hash",
                full_name="Test User",
                credits=0,
                is_active=True
            )
            session.add(user)
            await session.commit()

            if credits:
                await Ledger(session).credit(user.id, credits, "Test top-up")
            return user

    return _make_user


@pytest_asyncio.fixture
async def user(make_user):
    return await make_user(credits=100)


@pytest_asyncio.fixture
async def other_user(make_user):
    return await make_user(credits=100)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests")
    config.addinivalue_line("markers", "integration: integration tests")
