"""Unit tests for the lazy TransactionHistory iterable."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cl_common.enums import TxnStatus, TxnType
from src.cl_ledger.domain.history import TransactionHistory
from src.cl_ledger.domain.models import Transaction

_BASE = datetime(2026, 1, 1, tzinfo=UTC)


def _txn(txn_id: int) -> Transaction:
    return Transaction(
        id=txn_id,
        txn_type=TxnType.ADMIN_CREDIT,
        status=TxnStatus.COMPLETED,
        amount=Decimal("1.00"),
        to_account_id=1,
        created_at=_BASE + timedelta(seconds=txn_id),
    )


def _repo_with(ids_newest_first: list[int]) -> MagicMock:
    rows = [_txn(i) for i in ids_newest_first]

    async def _page(db, account_id, before, limit):  # type: ignore[no-untyped-def]
        start = 0
        if before is not None:
            start = next(n for n, t in enumerate(rows) if t.id == before[1]) + 1
        return rows[start:start + limit]

    repo = MagicMock()
    repo.list_page_for_account = AsyncMock(side_effect=_page)
    return repo


class TestTransactionHistory:
    async def test_yields_all_rows_across_batches(self) -> None:
        repo = _repo_with([5, 4, 3, 2, 1])
        history = TransactionHistory(repo, MagicMock(), 1, batch_size=2)
        assert [t.id for t in await history.to_list()] == [5, 4, 3, 2, 1]
        assert repo.list_page_for_account.await_count == 3

    async def test_exact_multiple_needs_one_empty_probe(self) -> None:
        repo = _repo_with([4, 3, 2, 1])
        history = TransactionHistory(repo, MagicMock(), 1, batch_size=2)
        assert len(await history.to_list()) == 4
        assert repo.list_page_for_account.await_count == 3

    async def test_keyset_follows_last_row(self) -> None:
        repo = _repo_with([3, 2, 1])
        await TransactionHistory(repo, MagicMock(), 1, batch_size=2).to_list()
        second_call = repo.list_page_for_account.await_args_list[1]
        assert second_call.args[2] == (_BASE + timedelta(seconds=2), 2)

    async def test_restartable(self) -> None:
        repo = _repo_with([2, 1])
        history = TransactionHistory(repo, MagicMock(), 1, batch_size=10)
        first = [t.id async for t in history]
        second = [t.id async for t in history]
        assert first == second == [2, 1]

    async def test_nothing_fetched_until_iterated(self) -> None:
        repo = _repo_with([1])
        TransactionHistory(repo, MagicMock(), 1, batch_size=10)
        repo.list_page_for_account.assert_not_awaited()

    async def test_empty_history(self) -> None:
        repo = _repo_with([])
        assert await TransactionHistory(repo, MagicMock(), 1, batch_size=3).to_list() == []

    def test_batch_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            TransactionHistory(MagicMock(), MagicMock(), 1, batch_size=0)
