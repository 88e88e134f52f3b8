"""AccountRepository: concrete implementation of AccountRepositoryProtocol.

Balance mutations go through a single guarded `UPDATE ... RETURNING`.
A result of 0 rows means the balance invariants would have been violated.

Transaction ownership: the CALLER (application service) is responsible for
opening and committing the unit of work. Row locks taken here are held until
that unit of work ends.
"""

from decimal import Decimal

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.cl_account.domain.models import Account, User, normalize_email
from src.cl_account.infrastructure.db_models import UserORM
from src.cl_common.errors import (
    AccountNotFoundError,
    EmailExistsError,
    InternalError,
    InvariantViolationError,
)

_ACCOUNT_COLUMNS = (
    "a.id, a.user_id, a.total_credits, a.spendable_credits, "
    "a.created_at, a.updated_at, u.email"
)

_GET_ACCOUNT_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts a JOIN users u ON u.id = a.user_id
    WHERE a.id = :account_id
""")

# NO KEY UPDATE serializes balance writers but leaves the KEY SHARE locks taken
# by foreign-key checks on transaction inserts unblocked.
_GET_ACCOUNT_FOR_UPDATE_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts a JOIN users u ON u.id = a.user_id
    WHERE a.id = :account_id
    FOR NO KEY UPDATE OF a
""")

_GET_ACCOUNT_BY_USER_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts a JOIN users u ON u.id = a.user_id
    WHERE a.user_id = :user_id
""")

_GET_ACCOUNT_BY_EMAIL_SQL = text(f"""
    SELECT {_ACCOUNT_COLUMNS}
    FROM accounts a JOIN users u ON u.id = a.user_id
    WHERE u.email = :email
""")

_ADJUST_BALANCES_SQL = text("""
    UPDATE accounts
    SET total_credits     = total_credits + :delta_total,
        spendable_credits = spendable_credits + :delta_spendable
    WHERE id = :account_id
      AND total_credits + :delta_total >= 0
      AND spendable_credits + :delta_spendable >= 0
      AND spendable_credits + :delta_spendable <= total_credits + :delta_total
    RETURNING id, user_id, total_credits, spendable_credits, created_at, updated_at
""")

_INSERT_ACCOUNT_SQL = text("""
    INSERT INTO accounts (user_id, total_credits, spendable_credits)
    VALUES (:user_id, 0, 0)
    RETURNING id, user_id, total_credits, spendable_credits, created_at, updated_at
""")

_SUM_TOTAL_CREDITS_SQL = text(
    "SELECT COALESCE(SUM(total_credits), 0) FROM accounts"
)


def _row_to_account(row: object, email: str | None = None) -> Account:
    return Account(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        total_credits=row.total_credits,  # type: ignore[attr-defined]
        spendable_credits=row.spendable_credits,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
        email=getattr(row, "email", email),
    )


class AccountRepository:
    """Concrete repository: locked reads and guarded updates on `accounts`."""

    async def get_account(
        self, db: AsyncSession, account_id: int
    ) -> Account | None:
        result = await db.execute(_GET_ACCOUNT_SQL, {"account_id": account_id})
        row = result.fetchone()
        return _row_to_account(row) if row else None

    async def get_account_for_update(
        self, db: AsyncSession, account_id: int
    ) -> Account:
        """Read the row and hold a write lock on it until the unit of work ends."""
        result = await db.execute(
            _GET_ACCOUNT_FOR_UPDATE_SQL, {"account_id": account_id}
        )
        row = result.fetchone()
        if row is None:
            raise AccountNotFoundError(str(account_id))
        return _row_to_account(row)

    async def lock_accounts(
        self, db: AsyncSession, account_ids: list[int]
    ) -> dict[int, Account]:
        """Lock each distinct account one at a time in ascending id order.

        Every multi-account operation goes through here so concurrent units of
        work always acquire overlapping locks in the same order.
        """
        locked: dict[int, Account] = {}
        for account_id in sorted(set(account_ids)):
            locked[account_id] = await self.get_account_for_update(db, account_id)
        return locked

    async def adjust_balances(
        self,
        db: AsyncSession,
        account_id: int,
        delta_total: Decimal,
        delta_spendable: Decimal,
    ) -> Account:
        """Apply both deltas atomically. Caller must hold the row lock."""
        result = await db.execute(
            _ADJUST_BALANCES_SQL,
            {
                "account_id": account_id,
                "delta_total": delta_total,
                "delta_spendable": delta_spendable,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InvariantViolationError(
                f"adjusting account {account_id} by total={delta_total}, "
                f"spendable={delta_spendable} breaks 0 <= spendable <= total"
            )
        return _row_to_account(row)

    async def find_account_by_user_id(
        self, db: AsyncSession, user_id: int
    ) -> Account | None:
        result = await db.execute(_GET_ACCOUNT_BY_USER_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_account(row) if row else None

    async def find_account_by_email(
        self, db: AsyncSession, email: str
    ) -> Account | None:
        result = await db.execute(
            _GET_ACCOUNT_BY_EMAIL_SQL, {"email": normalize_email(email)}
        )
        row = result.fetchone()
        return _row_to_account(row) if row else None

    async def resolve_account(
        self, db: AsyncSession, ref: str | int
    ) -> Account | None:
        """Resolve an e-mail address or an account id to an account."""
        if isinstance(ref, int):
            return await self.get_account(db, ref)
        ref = ref.strip()
        if "@" in ref:
            return await self.find_account_by_email(db, ref)
        if ref.isdigit():
            return await self.get_account(db, int(ref))
        return None

    async def create_user_with_account(
        self, db: AsyncSession, email: str, is_admin: bool
    ) -> tuple[User, Account]:
        """Insert a user and its single account in the caller's unit of work."""
        normalized = normalize_email(email)
        result = await db.execute(select(UserORM).where(UserORM.email == normalized))
        if result.scalar_one_or_none() is not None:
            raise EmailExistsError()

        user_row = UserORM(email=normalized, is_admin=is_admin)
        db.add(user_row)
        try:
            await db.flush()  # Get user_row.id without committing
        except IntegrityError:
            raise EmailExistsError() from None

        account_result = await db.execute(_INSERT_ACCOUNT_SQL, {"user_id": user_row.id})
        account_row = account_result.fetchone()
        if account_row is None:
            raise InternalError("Account insert returned no rows")
        user = User(id=user_row.id, email=normalized, is_admin=is_admin)
        return user, _row_to_account(account_row, email=normalized)

    async def sum_total_credits(self, db: AsyncSession) -> Decimal:
        result = await db.execute(_SUM_TOTAL_CREDITS_SQL)
        return Decimal(result.scalar_one())
