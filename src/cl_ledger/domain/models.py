"""Domain models for cl_ledger: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.cl_common.enums import TxnStatus, TxnType


@dataclass
class Transaction:
    id: int | None                   # BIGSERIAL, None until appended
    txn_type: TxnType
    status: TxnStatus
    amount: Decimal
    to_account_id: int | None
    from_account_id: int | None = None
    initiating_user_id: int | None = None   # None for admin-attributed rows
    admin_comment: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def can_transition_to(self, target: TxnStatus) -> bool:
        return self.status is TxnStatus.PENDING and target in (
            TxnStatus.COMPLETED,
            TxnStatus.REJECTED,
        )


@dataclass
class PendingTransfer:
    """Admin review row: a pending transfer_request with both parties' e-mails."""

    transaction: Transaction
    from_email: str | None
    to_email: str | None
