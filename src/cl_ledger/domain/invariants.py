"""Read-only ledger audit: balance bounds, supply cap, transfer lineage."""

import logging
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_BAD_BALANCE_SQL = text("""
    SELECT id, total_credits, spendable_credits
    FROM accounts
    WHERE spendable_credits < 0 OR spendable_credits > total_credits
    ORDER BY id
""")
_GLOBAL_TOTAL_SQL = text("SELECT COALESCE(SUM(total_credits), 0) FROM accounts")
_ISSUED_SQL = text("""
    SELECT COALESCE(SUM(amount), 0)
    FROM transactions
    WHERE txn_type = 'admin_credit' AND status = 'completed'
""")
_BAD_TRANSFER_SQL = text("""
    SELECT id FROM transactions
    WHERE txn_type = 'transfer_request'
      AND (from_account_id IS NULL OR to_account_id IS NULL)
    ORDER BY id
""")


async def verify_ledger_invariants(
    db: AsyncSession, bank_limit: Decimal
) -> list[str]:
    """Scan the whole ledger. Returns a list of violation strings (empty when sound).

    INV-BAL: 0 <= spendable_credits <= total_credits on every account.
    INV-CAP: SUM(total_credits) <= bank_limit.
    INV-SUP: SUM(total_credits) == SUM(completed admin_credit amounts), since
             transfers conserve supply and promotions never change totals.
    INV-LIN: every transfer_request names both accounts.
    """
    violations: list[str] = []

    for row in (await db.execute(_BAD_BALANCE_SQL)).fetchall():
        violations.append(
            f"INV-BAL violated: account {row.id} total={row.total_credits} "
            f"spendable={row.spendable_credits}"
        )

    global_total = Decimal((await db.execute(_GLOBAL_TOTAL_SQL)).scalar_one())
    if global_total > bank_limit:
        violations.append(
            f"INV-CAP violated: global total {global_total} > bank limit {bank_limit}"
        )

    issued = Decimal((await db.execute(_ISSUED_SQL)).scalar_one())
    if global_total != issued:
        violations.append(
            f"INV-SUP violated: global total {global_total} != granted credits {issued}"
        )

    for row in (await db.execute(_BAD_TRANSFER_SQL)).fetchall():
        violations.append(f"INV-LIN violated: transfer {row.id} is missing an account")

    for msg in violations:
        logger.error(msg)
    return violations
