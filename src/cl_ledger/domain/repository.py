"""Repository Protocol for the transaction log."""

from collections.abc import AsyncIterable
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cl_common.enums import TxnStatus
from src.cl_ledger.domain.models import PendingTransfer, Transaction

HistoryCursor = tuple[datetime, int]  # (created_at, id) of the last row seen


class TransactionRepositoryProtocol(Protocol):
    async def append(self, db: AsyncSession, txn: Transaction) -> Transaction: ...

    async def get_for_update(
        self, db: AsyncSession, txn_id: int
    ) -> Transaction | None: ...

    async def transition(
        self, db: AsyncSession, txn_id: int, new_status: TxnStatus
    ) -> Transaction: ...

    async def list_page_for_account(
        self,
        db: AsyncSession,
        account_id: int,
        before: HistoryCursor | None,
        limit: int,
    ) -> list[Transaction]: ...

    def list_for_account(
        self, db: AsyncSession, account_id: int, batch_size: int | None = None
    ) -> AsyncIterable[Transaction]: ...

    async def list_pending_transfers(
        self, db: AsyncSession
    ) -> list[PendingTransfer]: ...
