"""Domain models for cl_account: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass
class User:
    id: int
    email: str
    is_admin: bool
    created_at: datetime | None = None


@dataclass
class Account:
    id: int
    user_id: int
    total_credits: Decimal       # counted against BANK_LIMIT
    spendable_credits: Decimal   # subset of total eligible for transfer
    created_at: datetime | None = None
    updated_at: datetime | None = None
    email: str | None = None     # owner's e-mail when the read joined users

    @property
    def locked_credits(self) -> Decimal:
        return self.total_credits - self.spendable_credits

    def satisfies_invariants(self) -> bool:
        return 0 <= self.spendable_credits <= self.total_credits


def normalize_email(email: str) -> str:
    return email.strip().lower()
