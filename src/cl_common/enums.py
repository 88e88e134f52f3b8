"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class TxnType(str, Enum):
    TRANSFER_REQUEST = "transfer_request"
    ADMIN_CREDIT = "admin_credit"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class TxnStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not TxnStatus.PENDING
