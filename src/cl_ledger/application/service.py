"""LedgerService: the ledger engine.

Every mutating operation is one unit of work: validate, lock exactly the
rows involved (transaction row first, then accounts in ascending id order),
check invariants, mutate balances, write the transaction record, commit.
Any failure rolls the whole unit back.

Only `approve_transfer`, `grant_credit` and `promote_to_spendable` lock
account rows. `request_transfer` is lock-free because it moves no balance.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.cl_account.application.schemas import AccountResponse, RegisterResponse
from src.cl_account.application.service import AccountApplicationService
from src.cl_account.domain.models import Account
from src.cl_account.domain.repository import AccountRepositoryProtocol
from src.cl_account.infrastructure.persistence import AccountRepository
from src.cl_common.credits import ZERO, parse_amount
from src.cl_common.database import unit_of_work
from src.cl_common.enums import TxnStatus, TxnType
from src.cl_common.errors import (
    AccountNotFoundError,
    InsufficientSpendableError,
    InsufficientTotalCreditsError,
    InvalidTransitionError,
    RecipientNotFoundError,
    TransactionNotFoundError,
)
from src.cl_common.identity import CallerIdentity, require_admin
from src.cl_ledger.application.schemas import (
    BalanceChangeResponse,
    InvariantReport,
    PendingTransferItem,
    TransactionItem,
    TransactionPage,
    TransferApprovalResponse,
    cursor_decode,
    cursor_encode,
)
from src.cl_ledger.domain.history import TransactionHistory
from src.cl_ledger.domain.invariants import verify_ledger_invariants
from src.cl_ledger.domain.models import Transaction
from src.cl_ledger.domain.repository import TransactionRepositoryProtocol
from src.cl_ledger.domain.supply_cap import SupplyCapGuard
from src.cl_ledger.infrastructure.persistence import TransactionRepository

logger = logging.getLogger(__name__)

PROMOTION_COMMENT = "made spendable"
MAX_PAGE_LIMIT = 100


class LedgerService:
    def __init__(
        self,
        account_repo: AccountRepositoryProtocol | None = None,
        txn_repo: TransactionRepositoryProtocol | None = None,
        supply_guard: SupplyCapGuard | None = None,
    ) -> None:
        self._accounts: AccountRepositoryProtocol = account_repo or AccountRepository()
        self._txns: TransactionRepositoryProtocol = txn_repo or TransactionRepository()
        self._guard = supply_guard or SupplyCapGuard(accounts=self._accounts)
        self.accounts = AccountApplicationService(self._accounts)

    # ------------------------------------------------------------------
    # Account holder operations
    # ------------------------------------------------------------------

    async def register_account_holder(
        self, db: AsyncSession, email: str, is_admin: bool = False
    ) -> RegisterResponse:
        return await self.accounts.register_account_holder(db, email, is_admin)

    async def get_account(
        self, db: AsyncSession, caller: CallerIdentity, account_id: int | None = None
    ) -> AccountResponse:
        return await self.accounts.get_account(db, caller, account_id)

    async def request_transfer(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        recipient: str | int,
        amount: Decimal | int | str,
    ) -> TransactionItem:
        """Record a pending transfer from the caller's account. Moves no balance."""
        value = parse_amount(amount)
        async with unit_of_work(db):
            sender = await self._accounts.find_account_by_user_id(db, caller.user_id)
            if sender is None:
                raise AccountNotFoundError(f"user {caller.user_id}")
            receiver = await self._accounts.resolve_account(db, recipient)
            if receiver is None:
                raise RecipientNotFoundError(str(recipient))
            txn = await self._txns.append(
                db,
                Transaction(
                    id=None,
                    txn_type=TxnType.TRANSFER_REQUEST,
                    status=TxnStatus.PENDING,
                    amount=value,
                    from_account_id=sender.id,
                    to_account_id=receiver.id,
                    initiating_user_id=caller.user_id,
                ),
            )
        logger.info(
            "Transfer %s requested: %s from account %s to account %s",
            txn.id, value, sender.id, receiver.id,
        )
        return TransactionItem.from_domain(txn)

    async def list_transactions(
        self, db: AsyncSession, caller: CallerIdentity, account_id: int | None = None
    ) -> TransactionHistory:
        """Lazy, restartable history of one account, newest first.

        Callers see their own account; admins may name any account.
        """
        account = await self.accounts.visible_account(db, caller, account_id)
        return self._txns.list_for_account(db, account.id)

    async def list_transactions_page(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        cursor: str | None,
        limit: int,
        account_id: int | None = None,
    ) -> TransactionPage:
        if not 1 <= limit <= MAX_PAGE_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_LIMIT}, got {limit}")
        account = await self.accounts.visible_account(db, caller, account_id)
        before = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        txns = await self._txns.list_page_for_account(db, account.id, before, limit + 1)
        has_more = len(txns) > limit
        page = txns[:limit]
        next_cursor = (
            cursor_encode(page[-1].created_at, page[-1].id)  # type: ignore[arg-type]
            if has_more and page
            else None
        )
        return TransactionPage(
            items=[TransactionItem.from_domain(t) for t in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def grant_credit(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        target: str | int,
        amount: Decimal | int | str,
        note: str | None = None,
    ) -> BalanceChangeResponse:
        """Mint new credit into `target`'s total (not spendable) under the supply cap."""
        require_admin(caller)
        value = parse_amount(amount)
        async with unit_of_work(db):
            account = await self._resolve_target(db, target)
            await self._guard.check_grant(db, value)
            await self._accounts.get_account_for_update(db, account.id)
            updated = await self._accounts.adjust_balances(db, account.id, value, ZERO)
            txn = await self._txns.append(
                db,
                Transaction(
                    id=None,
                    txn_type=TxnType.ADMIN_CREDIT,
                    status=TxnStatus.COMPLETED,
                    amount=value,
                    to_account_id=account.id,
                    admin_comment=note,
                ),
            )
        logger.info(
            "Admin %s granted %s to account %s (txn %s)",
            caller.user_id, value, account.id, txn.id,
        )
        return _balance_change(txn, updated)

    async def promote_to_spendable(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        target: str | int,
        amount: Decimal | int | str,
        note: str | None = None,
    ) -> BalanceChangeResponse:
        """Release part of the locked portion (total - spendable) into spendable."""
        require_admin(caller)
        value = parse_amount(amount)
        async with unit_of_work(db):
            resolved = await self._resolve_target(db, target)
            account = await self._accounts.get_account_for_update(db, resolved.id)
            if value > account.locked_credits:
                raise InsufficientTotalCreditsError(value, account.locked_credits)
            updated = await self._accounts.adjust_balances(db, account.id, ZERO, value)
            txn = await self._txns.append(
                db,
                Transaction(
                    id=None,
                    txn_type=TxnType.ADMIN_ADJUSTMENT,
                    status=TxnStatus.COMPLETED,
                    amount=value,
                    to_account_id=account.id,
                    admin_comment=note or PROMOTION_COMMENT,
                ),
            )
        logger.info(
            "Admin %s promoted %s to spendable on account %s (txn %s)",
            caller.user_id, value, account.id, txn.id,
        )
        return _balance_change(txn, updated)

    async def approve_transfer(
        self, db: AsyncSession, caller: CallerIdentity, txn_id: int
    ) -> TransferApprovalResponse:
        require_admin(caller)
        async with unit_of_work(db):
            txn = await self._lock_pending_transfer(db, txn_id, TxnStatus.COMPLETED)
            from_id, to_id = txn.from_account_id, txn.to_account_id
            if from_id is None or to_id is None:
                raise AccountNotFoundError(f"transfer {txn_id} is missing an account")

            locked = await self._accounts.lock_accounts(db, [from_id, to_id])
            sender = locked[from_id]
            if sender.spendable_credits < txn.amount:
                raise InsufficientSpendableError(txn.amount, sender.spendable_credits)

            sender_after = await self._accounts.adjust_balances(
                db, from_id, -txn.amount, -txn.amount
            )
            receiver_after = await self._accounts.adjust_balances(
                db, to_id, txn.amount, txn.amount
            )
            if from_id == to_id:
                sender_after = receiver_after
            completed = await self._txns.transition(db, txn_id, TxnStatus.COMPLETED)
        logger.info(
            "Admin %s approved transfer %s: %s from account %s to account %s",
            caller.user_id, txn_id, txn.amount, from_id, to_id,
        )
        return TransferApprovalResponse(
            transaction=TransactionItem.from_domain(completed),
            from_total_credits=sender_after.total_credits,
            from_spendable_credits=sender_after.spendable_credits,
            to_total_credits=receiver_after.total_credits,
            to_spendable_credits=receiver_after.spendable_credits,
        )

    async def reject_transfer(
        self, db: AsyncSession, caller: CallerIdentity, txn_id: int
    ) -> TransactionItem:
        require_admin(caller)
        async with unit_of_work(db):
            await self._lock_pending_transfer(db, txn_id, TxnStatus.REJECTED)
            rejected = await self._txns.transition(db, txn_id, TxnStatus.REJECTED)
        logger.info("Admin %s rejected transfer %s", caller.user_id, txn_id)
        return TransactionItem.from_domain(rejected)

    async def list_pending_transfers(
        self, db: AsyncSession, caller: CallerIdentity
    ) -> list[PendingTransferItem]:
        require_admin(caller)
        pending = await self._txns.list_pending_transfers(db)
        return [PendingTransferItem.from_pending(p) for p in pending]

    async def verify_invariants(
        self, db: AsyncSession, caller: CallerIdentity
    ) -> InvariantReport:
        """Read-only audit of balance bounds, the supply cap and transfer lineage."""
        require_admin(caller)
        violations = await verify_ledger_invariants(db, self._guard.bank_limit)
        return InvariantReport(ok=not violations, violations=violations)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_target(self, db: AsyncSession, target: str | int) -> Account:
        account = await self._accounts.resolve_account(db, target)
        if account is None:
            raise AccountNotFoundError(str(target))
        return account

    async def _lock_pending_transfer(
        self, db: AsyncSession, txn_id: int, target: TxnStatus
    ) -> Transaction:
        txn = await self._txns.get_for_update(db, txn_id)
        if txn is None:
            raise TransactionNotFoundError(txn_id)
        if txn.txn_type is not TxnType.TRANSFER_REQUEST or not txn.can_transition_to(target):
            raise InvalidTransitionError(txn_id, txn.status.value, target.value)
        return txn


def _balance_change(txn: Transaction, account: Account) -> BalanceChangeResponse:
    return BalanceChangeResponse(
        transaction=TransactionItem.from_domain(txn),
        account_id=account.id,
        total_credits=account.total_credits,
        spendable_credits=account.spendable_credits,
    )

