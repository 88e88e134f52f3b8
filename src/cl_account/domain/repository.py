"""Repository Protocol: dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cl_account.domain.models import Account, User


class AccountRepositoryProtocol(Protocol):
    async def get_account(
        self, db: AsyncSession, account_id: int
    ) -> Account | None: ...

    async def get_account_for_update(
        self, db: AsyncSession, account_id: int
    ) -> Account: ...

    async def lock_accounts(
        self, db: AsyncSession, account_ids: list[int]
    ) -> dict[int, Account]: ...

    async def adjust_balances(
        self,
        db: AsyncSession,
        account_id: int,
        delta_total: Decimal,
        delta_spendable: Decimal,
    ) -> Account: ...

    async def find_account_by_user_id(
        self, db: AsyncSession, user_id: int
    ) -> Account | None: ...

    async def find_account_by_email(
        self, db: AsyncSession, email: str
    ) -> Account | None: ...

    async def resolve_account(
        self, db: AsyncSession, ref: str | int
    ) -> Account | None: ...

    async def create_user_with_account(
        self, db: AsyncSession, email: str, is_admin: bool
    ) -> tuple[User, Account]: ...

    async def sum_total_credits(self, db: AsyncSession) -> Decimal: ...
