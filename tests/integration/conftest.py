"""Integration-test fixtures.

Pre-condition: a reachable PostgreSQL at DATABASE_URL and `alembic upgrade head`.
Every test in this package is skipped when either is missing.

All integration tests share a single event loop so that the module-level
SQLAlchemy async engine pool (created at import time) remains valid across
the entire test session.
"""

import asyncio
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.cl_common.database import async_session_factory, engine


async def _schema_present() -> bool:
    async with engine.connect() as conn:
        regclass = (
            await conn.execute(text("SELECT to_regclass('transactions')"))
        ).scalar_one()
    return regclass is not None


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """The application's session factory; skips the suite if the database is not ready."""
    try:
        migrated = await asyncio.wait_for(_schema_present(), timeout=5)
    except (OSError, TimeoutError, SQLAlchemyError) as exc:
        await engine.dispose()
        pytest.skip(f"PostgreSQL unreachable at DATABASE_URL: {exc}")
    if not migrated:
        await engine.dispose()
        pytest.skip("schema missing, run `alembic upgrade head` first")
    yield async_session_factory
    await engine.dispose()
