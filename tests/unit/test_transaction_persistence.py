"""Unit tests for TransactionRepository using a mocked AsyncSession."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cl_common.enums import TxnStatus, TxnType
from src.cl_common.errors import (
    InternalError,
    InvalidTransitionError,
    TransactionNotFoundError,
)
from src.cl_ledger.domain.history import TransactionHistory
from src.cl_ledger.domain.models import Transaction
from src.cl_ledger.infrastructure.persistence import TransactionRepository


def _make_row(**kwargs: Any) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", 1)
    row.txn_type = kwargs.get("txn_type", "transfer_request")
    row.status = kwargs.get("status", "pending")
    row.amount = kwargs.get("amount", Decimal("25.00"))
    row.from_account_id = kwargs.get("from_account_id", 1)
    row.to_account_id = kwargs.get("to_account_id", 2)
    row.initiating_user_id = kwargs.get("initiating_user_id", 10)
    row.admin_comment = kwargs.get("admin_comment")
    row.created_at = kwargs.get("created_at", datetime.now(UTC))
    row.updated_at = kwargs.get("updated_at", datetime.now(UTC))
    return row


def _fetchone(row: object) -> MagicMock:
    result = MagicMock()
    result.fetchone.return_value = row
    return result


def _fetchall(rows: list[object]) -> MagicMock:
    result = MagicMock()
    result.fetchall.return_value = rows
    return result


def _make_txn(status: TxnStatus = TxnStatus.PENDING) -> Transaction:
    return Transaction(
        id=None,
        txn_type=TxnType.TRANSFER_REQUEST,
        status=status,
        amount=Decimal("25.00"),
        from_account_id=1,
        to_account_id=2,
        initiating_user_id=10,
    )


class TestAppend:
    async def test_inserts_and_maps_returning_row(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _fetchone(_make_row(id=11))
        txn = await TransactionRepository().append(db, _make_txn())
        params = db.execute.await_args.args[1]
        assert params["txn_type"] == "transfer_request"
        assert params["status"] == "pending"
        assert params["amount"] == Decimal("25.00")
        assert txn.id == 11
        assert txn.txn_type is TxnType.TRANSFER_REQUEST
        assert txn.status is TxnStatus.PENDING

    async def test_rejected_rows_cannot_be_appended(self) -> None:
        db = AsyncMock()
        with pytest.raises(InternalError):
            await TransactionRepository().append(db, _make_txn(TxnStatus.REJECTED))
        db.execute.assert_not_awaited()


class TestGet:
    async def test_get_for_update_maps_orm_object(self) -> None:
        db = AsyncMock()
        result = MagicMock()
        result.scalar_one_or_none.return_value = _make_row(id=4, status="completed")
        db.execute.return_value = result
        txn = await TransactionRepository().get_for_update(db, 4)
        assert txn is not None
        assert txn.status is TxnStatus.COMPLETED
        stmt = db.execute.await_args.args[0]
        assert "FOR UPDATE" in str(stmt)

    async def test_get_for_update_missing_returns_none(self) -> None:
        db = AsyncMock()
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        db.execute.return_value = result
        assert await TransactionRepository().get_for_update(db, 4) is None


class TestTransition:
    async def test_pending_to_completed(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _fetchone(_make_row(id=3, status="completed"))
        txn = await TransactionRepository().transition(db, 3, TxnStatus.COMPLETED)
        assert txn.status is TxnStatus.COMPLETED
        assert db.execute.await_args.args[1] == {"txn_id": 3, "new_status": "completed"}
        assert "NOW()" not in str(db.execute.await_args.args[0])

    async def test_already_terminal_raises_invalid_transition(self) -> None:
        db = AsyncMock()
        status_row = MagicMock()
        status_row.status = "rejected"
        db.execute.side_effect = [_fetchone(None), _fetchone(status_row)]
        with pytest.raises(InvalidTransitionError, match="rejected"):
            await TransactionRepository().transition(db, 3, TxnStatus.COMPLETED)

    async def test_missing_raises_not_found(self) -> None:
        db = AsyncMock()
        db.execute.side_effect = [_fetchone(None), _fetchone(None)]
        with pytest.raises(TransactionNotFoundError):
            await TransactionRepository().transition(db, 3, TxnStatus.REJECTED)

    async def test_back_to_pending_is_never_allowed(self) -> None:
        db = AsyncMock()
        with pytest.raises(InvalidTransitionError):
            await TransactionRepository().transition(db, 3, TxnStatus.PENDING)
        db.execute.assert_not_awaited()


class TestHistoryQueries:
    async def test_first_page_has_no_keyset(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _fetchall([_make_row(id=2), _make_row(id=1)])
        txns = await TransactionRepository().list_page_for_account(db, 1, None, 20)
        assert [t.id for t in txns] == [2, 1]
        assert db.execute.await_args.args[1] == {"account_id": 1, "limit": 20}

    async def test_next_page_passes_keyset(self) -> None:
        db = AsyncMock()
        db.execute.return_value = _fetchall([])
        ts = datetime(2026, 1, 1, tzinfo=UTC)
        await TransactionRepository().list_page_for_account(db, 1, (ts, 9), 20)
        params = db.execute.await_args.args[1]
        assert params["before_created_at"] == ts
        assert params["before_id"] == 9

    def test_list_for_account_is_lazy(self) -> None:
        db = AsyncMock()
        history = TransactionRepository().list_for_account(db, 1, batch_size=5)
        assert isinstance(history, TransactionHistory)
        db.execute.assert_not_called()

    async def test_list_pending_transfers_carries_emails(self) -> None:
        db = AsyncMock()
        row = _make_row(id=8)
        row.from_email = "a@example.com"
        row.to_email = "b@example.com"
        db.execute.return_value = _fetchall([row])
        pending = await TransactionRepository().list_pending_transfers(db)
        assert len(pending) == 1
        assert pending[0].transaction.id == 8
        assert pending[0].from_email == "a@example.com"
        assert pending[0].to_email == "b@example.com"
