"""Lazy transaction history for one account."""

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from src.cl_ledger.domain.models import Transaction
from src.cl_ledger.domain.repository import HistoryCursor, TransactionRepositoryProtocol


class TransactionHistory:
    """Finite, restartable async iterable over an account's transactions.

    Rows are fetched newest first in keyset-paginated batches; every
    `async for` over the same object starts again from the newest row.
    """

    def __init__(
        self,
        repo: TransactionRepositoryProtocol,
        db: AsyncSession,
        account_id: int,
        batch_size: int,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._repo = repo
        self._db = db
        self.account_id = account_id
        self._batch_size = batch_size

    def __aiter__(self) -> AsyncIterator[Transaction]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Transaction]:
        before: HistoryCursor | None = None
        while True:
            page = await self._repo.list_page_for_account(
                self._db, self.account_id, before, self._batch_size
            )
            for txn in page:
                yield txn
            if len(page) < self._batch_size:
                return
            last = page[-1]
            before = (last.created_at, last.id)  # type: ignore[assignment]

    async def to_list(self) -> list[Transaction]:
        return [txn async for txn in self]
