"""Pydantic result schemas and cursor utilities for cl_ledger."""

import base64
import json
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from src.cl_common.credits import credits_to_display
from src.cl_ledger.domain.models import PendingTransfer, Transaction
from src.cl_ledger.domain.repository import HistoryCursor

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(created_at: datetime, txn_id: int) -> str:
    """Encode the (created_at, id) keyset of the last row into an opaque Base64 cursor."""
    payload = json.dumps({"created_at": created_at.isoformat(), "id": txn_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> HistoryCursor | None:
    """Decode a cursor string back to its keyset. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        return datetime.fromisoformat(payload["created_at"]), int(payload["id"])
    except Exception:
        return None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class TransactionItem(BaseModel):
    id: int
    txn_type: str
    status: str
    amount: Decimal
    amount_display: str
    from_account_id: int | None
    to_account_id: int | None
    initiating_user_id: int | None
    admin_comment: str | None
    created_at: str  # ISO8601 string
    updated_at: str

    @classmethod
    def from_domain(cls, txn: Transaction) -> "TransactionItem":
        return cls(
            id=txn.id,
            txn_type=txn.txn_type.value,
            status=txn.status.value,
            amount=txn.amount,
            amount_display=credits_to_display(txn.amount),
            from_account_id=txn.from_account_id,
            to_account_id=txn.to_account_id,
            initiating_user_id=txn.initiating_user_id,
            admin_comment=txn.admin_comment,
            created_at=txn.created_at.isoformat() if txn.created_at else "",
            updated_at=txn.updated_at.isoformat() if txn.updated_at else "",
        )


class PendingTransferItem(TransactionItem):
    from_email: str | None
    to_email: str | None

    @classmethod
    def from_pending(cls, pending: PendingTransfer) -> "PendingTransferItem":
        base = TransactionItem.from_domain(pending.transaction)
        return cls(
            **base.model_dump(),
            from_email=pending.from_email,
            to_email=pending.to_email,
        )


class TransactionPage(BaseModel):
    items: list[TransactionItem]
    next_cursor: str | None
    has_more: bool


class TransferApprovalResponse(BaseModel):
    transaction: TransactionItem
    from_total_credits: Decimal
    from_spendable_credits: Decimal
    to_total_credits: Decimal
    to_spendable_credits: Decimal


class BalanceChangeResponse(BaseModel):
    """Result of grant/promote: the appended record plus the account's new balances."""

    transaction: TransactionItem
    account_id: int
    total_credits: Decimal
    spendable_credits: Decimal


class InvariantReport(BaseModel):
    ok: bool
    violations: list[str]
