"""TransactionRepository: the append-only transaction log.

Rows are inserted once and only ever change status from `pending` to a
terminal status. The guarded UPDATE in `transition` makes a second
transition impossible even without a prior lock, and a DB trigger rejects
any other mutation.
"""

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.cl_common.enums import TxnStatus, TxnType
from src.cl_common.errors import (
    InternalError,
    InvalidTransitionError,
    TransactionNotFoundError,
)
from src.cl_ledger.domain.history import TransactionHistory
from src.cl_ledger.domain.models import PendingTransfer, Transaction
from src.cl_ledger.domain.repository import HistoryCursor
from src.cl_ledger.infrastructure.db_models import TransactionORM

_TXN_COLUMNS = (
    "id, txn_type, status, amount, from_account_id, to_account_id, "
    "initiating_user_id, admin_comment, created_at, updated_at"
)

_INSERT_TXN_SQL = text(f"""
    INSERT INTO transactions
        (txn_type, status, amount, from_account_id, to_account_id,
         initiating_user_id, admin_comment)
    VALUES
        (:txn_type, :status, :amount, :from_account_id, :to_account_id,
         :initiating_user_id, :admin_comment)
    RETURNING {_TXN_COLUMNS}
""")

_TRANSITION_SQL = text(f"""
    UPDATE transactions
    SET status = :new_status
    WHERE id = :txn_id AND status = 'pending'
    RETURNING {_TXN_COLUMNS}
""")

_GET_STATUS_SQL = text("SELECT status FROM transactions WHERE id = :txn_id")

# Sender, receiver, or initiated by the account's owner.
_HISTORY_FILTER = """
    (from_account_id = :account_id
     OR to_account_id = :account_id
     OR initiating_user_id = (SELECT user_id FROM accounts WHERE id = :account_id))
"""

_HISTORY_FIRST_PAGE_SQL = text(f"""
    SELECT {_TXN_COLUMNS}
    FROM transactions
    WHERE {_HISTORY_FILTER}
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")

_HISTORY_NEXT_PAGE_SQL = text(f"""
    SELECT {_TXN_COLUMNS}
    FROM transactions
    WHERE {_HISTORY_FILTER}
      AND (created_at < :before_created_at
           OR (created_at = :before_created_at AND id < :before_id))
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")

_LIST_PENDING_TRANSFERS_SQL = text("""
    SELECT t.id, t.txn_type, t.status, t.amount, t.from_account_id, t.to_account_id,
           t.initiating_user_id, t.admin_comment, t.created_at, t.updated_at,
           fu.email AS from_email, tu.email AS to_email
    FROM transactions t
    LEFT JOIN accounts fa ON fa.id = t.from_account_id
    LEFT JOIN users fu ON fu.id = fa.user_id
    LEFT JOIN accounts ta ON ta.id = t.to_account_id
    LEFT JOIN users tu ON tu.id = ta.user_id
    WHERE t.status = 'pending' AND t.txn_type = 'transfer_request'
    ORDER BY t.created_at, t.id
""")


def _row_to_txn(row: object) -> Transaction:
    return Transaction(
        id=row.id,  # type: ignore[attr-defined]
        txn_type=TxnType(row.txn_type),  # type: ignore[attr-defined]
        status=TxnStatus(row.status),  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        from_account_id=row.from_account_id,  # type: ignore[attr-defined]
        to_account_id=row.to_account_id,  # type: ignore[attr-defined]
        initiating_user_id=row.initiating_user_id,  # type: ignore[attr-defined]
        admin_comment=row.admin_comment,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class TransactionRepository:
    """Concrete transaction log on the `transactions` table."""

    async def append(self, db: AsyncSession, txn: Transaction) -> Transaction:
        if txn.status not in (TxnStatus.PENDING, TxnStatus.COMPLETED):
            raise InternalError(f"Cannot append a transaction in status {txn.status.value}")
        result = await db.execute(
            _INSERT_TXN_SQL,
            {
                "txn_type": txn.txn_type.value,
                "status": txn.status.value,
                "amount": txn.amount,
                "from_account_id": txn.from_account_id,
                "to_account_id": txn.to_account_id,
                "initiating_user_id": txn.initiating_user_id,
                "admin_comment": txn.admin_comment,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Transaction insert returned no rows")
        return _row_to_txn(row)

    async def get_for_update(
        self, db: AsyncSession, txn_id: int
    ) -> Transaction | None:
        """Read the row and hold an exclusive lock on it until the unit of work ends."""
        stmt = (
            select(TransactionORM)
            .where(TransactionORM.id == txn_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        orm = (await db.execute(stmt)).scalar_one_or_none()
        return _row_to_txn(orm) if orm else None

    async def transition(
        self, db: AsyncSession, txn_id: int, new_status: TxnStatus
    ) -> Transaction:
        if new_status not in (TxnStatus.COMPLETED, TxnStatus.REJECTED):
            raise InvalidTransitionError(txn_id, TxnStatus.PENDING.value, new_status.value)
        result = await db.execute(
            _TRANSITION_SQL, {"txn_id": txn_id, "new_status": new_status.value}
        )
        row = result.fetchone()
        if row is not None:
            return _row_to_txn(row)

        # 0 rows: either absent or no longer pending
        status_row = (await db.execute(_GET_STATUS_SQL, {"txn_id": txn_id})).fetchone()
        if status_row is None:
            raise TransactionNotFoundError(txn_id)
        raise InvalidTransitionError(txn_id, status_row.status, new_status.value)

    async def list_page_for_account(
        self,
        db: AsyncSession,
        account_id: int,
        before: HistoryCursor | None,
        limit: int,
    ) -> list[Transaction]:
        if before is None:
            result = await db.execute(
                _HISTORY_FIRST_PAGE_SQL, {"account_id": account_id, "limit": limit}
            )
        else:
            before_created_at, before_id = before
            result = await db.execute(
                _HISTORY_NEXT_PAGE_SQL,
                {
                    "account_id": account_id,
                    "before_created_at": before_created_at,
                    "before_id": before_id,
                    "limit": limit,
                },
            )
        return [_row_to_txn(row) for row in result.fetchall()]

    def list_for_account(
        self, db: AsyncSession, account_id: int, batch_size: int | None = None
    ) -> TransactionHistory:
        return TransactionHistory(
            self, db, account_id, batch_size or settings.HISTORY_BATCH_SIZE
        )

    async def list_pending_transfers(self, db: AsyncSession) -> list[PendingTransfer]:
        result = await db.execute(_LIST_PENDING_TRANSFERS_SQL)
        return [
            PendingTransfer(
                transaction=_row_to_txn(row),
                from_email=row.from_email,
                to_email=row.to_email,
            )
            for row in result.fetchall()
        ]
