"""
Global pytest configuration and fixtures for cauth tests.

Every test gets its own SQLite database file, built with the same engine
factory and schema initialization the service uses.
"""
import logging
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio

from cauth.core.database import engine as engine_module
from cauth.core.database.engine import build_engine, build_sessionmaker, init_db


# Store mutations log at DEBUG; keep test output readable
logging.getLogger("cauth").setLevel(logging.INFO)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh database with every table created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'cauth.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    """Session for one test; whatever the test leaves uncommitted is rolled back."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_scope(session_factory, monkeypatch):
    """
    ``get_db`` bound to the test database, usable as ``async with session_scope() as db``.

    Exceptions raised in the block are delivered to ``get_db`` so its
    commit/rollback policy applies.
    """
    monkeypatch.setattr(engine_module, "AsyncSessionLocal", session_factory)
    return asynccontextmanager(engine_module.get_db)


def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line("markers", "scenario: End-to-end flows across several stores")
