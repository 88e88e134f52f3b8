"""Engine, session factory and the unit-of-work boundary.

Every ledger operation runs inside exactly one `unit_of_work(db)` block:
the block commits on success and rolls back on any exception, so a failed
operation never leaves a partial balance change or an orphaned transaction row.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config.settings import settings
from src.cl_common.errors import LockTimeoutError

logger = logging.getLogger(__name__)

# lock_not_available, deadlock_detected, serialization_failure
RETRYABLE_SQLSTATES = frozenset({"55P03", "40P01", "40001"})

_SET_LOCK_TIMEOUT_SQL = text("SELECT set_config('lock_timeout', :timeout, true)")


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models across modules."""

    pass


engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=20,
    max_overflow=10,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def sqlstate_of(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@asynccontextmanager
async def unit_of_work(
    db: AsyncSession, lock_timeout_ms: int | None = None
) -> AsyncIterator[AsyncSession]:
    """Run the enclosed block as one atomic, isolated database transaction.

    Lock waits inside the block are bounded by `lock_timeout_ms`
    (defaults to settings.LOCK_TIMEOUT_MS). Lock timeouts, deadlocks and
    serialization failures surface as the retryable LockTimeoutError.
    """
    timeout = settings.LOCK_TIMEOUT_MS if lock_timeout_ms is None else lock_timeout_ms
    try:
        await db.execute(_SET_LOCK_TIMEOUT_SQL, {"timeout": f"{timeout}ms"})
        yield db
        await db.commit()
    except DBAPIError as exc:
        await db.rollback()
        state = sqlstate_of(exc)
        if state in RETRYABLE_SQLSTATES:
            logger.warning("Unit of work aborted (sqlstate=%s), retryable", state)
            raise LockTimeoutError(state) from exc
        raise
    except Exception:
        await db.rollback()
        raise
