"""Pydantic result schemas for cl_account."""

from decimal import Decimal

from pydantic import BaseModel

from src.cl_account.domain.models import Account
from src.cl_common.credits import credits_to_display


class AccountResponse(BaseModel):
    account_id: int
    user_id: int
    email: str | None
    total_credits: Decimal
    total_credits_display: str
    spendable_credits: Decimal
    spendable_credits_display: str
    locked_credits: Decimal
    locked_credits_display: str

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            account_id=account.id,
            user_id=account.user_id,
            email=account.email,
            total_credits=account.total_credits,
            total_credits_display=credits_to_display(account.total_credits),
            spendable_credits=account.spendable_credits,
            spendable_credits_display=credits_to_display(account.spendable_credits),
            locked_credits=account.locked_credits,
            locked_credits_display=credits_to_display(account.locked_credits),
        )


class RegisterResponse(BaseModel):
    user_id: int
    account_id: int
    email: str
    is_admin: bool
