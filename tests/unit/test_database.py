"""Tests for the unit_of_work boundary in cl_common.database."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import DBAPIError

from src.cl_common.database import unit_of_work
from src.cl_common.errors import InvalidAmountError, LockTimeoutError


class _PgError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"pg error {sqlstate}")
        self.sqlstate = sqlstate


def _dbapi_error(sqlstate: str) -> DBAPIError:
    return DBAPIError("SELECT 1", {}, _PgError(sqlstate))


class TestUnitOfWork:
    async def test_commits_on_success(self) -> None:
        db = AsyncMock()
        async with unit_of_work(db) as session:
            assert session is db
        db.commit.assert_awaited_once()
        db.rollback.assert_not_awaited()

    async def test_sets_lock_timeout(self) -> None:
        db = AsyncMock()
        async with unit_of_work(db, lock_timeout_ms=250):
            pass
        stmt, params = db.execute.await_args_list[0].args
        assert "lock_timeout" in str(stmt)
        assert params == {"timeout": "250ms"}

    async def test_rolls_back_on_app_error(self) -> None:
        db = AsyncMock()
        with pytest.raises(InvalidAmountError):
            async with unit_of_work(db):
                raise InvalidAmountError("0")
        db.rollback.assert_awaited_once()
        db.commit.assert_not_awaited()

    @pytest.mark.parametrize("sqlstate", ["55P03", "40P01", "40001"])
    async def test_retryable_sqlstate_becomes_lock_timeout(self, sqlstate: str) -> None:
        db = AsyncMock()
        with pytest.raises(LockTimeoutError) as exc_info:
            async with unit_of_work(db):
                raise _dbapi_error(sqlstate)
        assert exc_info.value.sqlstate == sqlstate
        db.rollback.assert_awaited_once()

    async def test_other_db_errors_propagate_unchanged(self) -> None:
        db = AsyncMock()
        with pytest.raises(DBAPIError):
            async with unit_of_work(db):
                raise _dbapi_error("23514")  # check_violation
        db.rollback.assert_awaited_once()

    async def test_commit_failure_rolls_back(self) -> None:
        db = AsyncMock()
        db.commit.side_effect = _dbapi_error("40001")
        with pytest.raises(LockTimeoutError):
            async with unit_of_work(db):
                pass
        db.rollback.assert_awaited_once()
