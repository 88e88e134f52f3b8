"""Supply cap guard: SUM(accounts.total_credits) must never exceed BANK_LIMIT."""

import logging
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.cl_account.domain.repository import AccountRepositoryProtocol
from src.cl_account.infrastructure.persistence import AccountRepository
from src.cl_common.errors import BankLimitExceededError

logger = logging.getLogger(__name__)

# Arbitrary constant identifying the grant-serialization advisory lock.
SUPPLY_CAP_LOCK_KEY = 0x43524544434150  # b"CREDCAP"

_ACQUIRE_CAP_LOCK_SQL = text("SELECT pg_advisory_xact_lock(:key)")


class SupplyCapGuard:
    """Serializes grants and checks the cap inside the grant's unit of work.

    The advisory lock is transaction-scoped: it is released automatically at
    commit or rollback, so the aggregate read and the subsequent credit are
    never interleaved with another grant.
    """

    def __init__(
        self,
        bank_limit: Decimal | None = None,
        accounts: AccountRepositoryProtocol | None = None,
    ) -> None:
        self.bank_limit = settings.BANK_LIMIT if bank_limit is None else bank_limit
        self._accounts: AccountRepositoryProtocol = accounts or AccountRepository()

    async def check_grant(self, db: AsyncSession, amount: Decimal) -> Decimal:
        """Return the global total before the grant, or raise BankLimitExceededError."""
        await db.execute(_ACQUIRE_CAP_LOCK_SQL, {"key": SUPPLY_CAP_LOCK_KEY})
        current = await self._accounts.sum_total_credits(db)
        if current + amount > self.bank_limit:
            logger.warning(
                "Grant rejected: global total %s + %s exceeds bank limit %s",
                current,
                amount,
                self.bank_limit,
            )
            raise BankLimitExceededError(current, amount, self.bank_limit)
        return current
