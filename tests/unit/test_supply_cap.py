"""Unit tests for SupplyCapGuard."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cl_common.errors import BankLimitExceededError, InvariantViolationError
from src.cl_ledger.domain.supply_cap import SUPPLY_CAP_LOCK_KEY, SupplyCapGuard


def _db_with_total(total: str) -> AsyncMock:
    db = AsyncMock()
    lock_result = MagicMock()
    sum_result = MagicMock()
    sum_result.scalar_one.return_value = Decimal(total)
    db.execute.side_effect = [lock_result, sum_result]
    return db


class TestSupplyCapGuard:
    async def test_grant_up_to_limit_passes(self) -> None:
        guard = SupplyCapGuard(bank_limit=Decimal("1000.00"))
        current = await guard.check_grant(_db_with_total("990.00"), Decimal("10.00"))
        assert current == Decimal("990.00")

    async def test_grant_over_limit_fails(self) -> None:
        guard = SupplyCapGuard(bank_limit=Decimal("1000.00"))
        with pytest.raises(BankLimitExceededError):
            await guard.check_grant(_db_with_total("990.00"), Decimal("20.00"))

    async def test_failure_is_an_invariant_violation(self) -> None:
        guard = SupplyCapGuard(bank_limit=Decimal("0.00"))
        with pytest.raises(InvariantViolationError):
            await guard.check_grant(_db_with_total("0"), Decimal("0.01"))

    async def test_serializing_lock_taken_before_sum(self) -> None:
        db = _db_with_total("0")
        await SupplyCapGuard(bank_limit=Decimal("1.00")).check_grant(db, Decimal("1.00"))
        first, second = db.execute.await_args_list
        assert "pg_advisory_xact_lock" in str(first.args[0])
        assert first.args[1] == {"key": SUPPLY_CAP_LOCK_KEY}
        assert "SUM(total_credits)" in str(second.args[0])

    def test_defaults_to_configured_limit(self) -> None:
        from config.settings import settings

        assert SupplyCapGuard().bank_limit == settings.BANK_LIMIT

    def test_lock_key_fits_bigint(self) -> None:
        assert 0 < SUPPLY_CAP_LOCK_KEY < 2**63
