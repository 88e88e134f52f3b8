"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: User / caller
  2xxx: Account
  3xxx: Transaction
  4xxx: Supply / ledger invariants
  9xxx: System

`http_status` is the suggested mapping for a boundary layer; the ledger
core itself never speaks HTTP.
"""

from decimal import Decimal


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


class NotFoundError(AppError):
    """Base for every "entity is absent" error."""


class InvariantViolationError(AppError):
    def __init__(self, detail: str, code: int = 4001) -> None:
        super().__init__(code, f"Invariant violation: {detail}", 422)


# --- 1xxx: User / caller ---

class EmailExistsError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Email already exists", 409)


class PermissionDeniedError(AppError):
    def __init__(self, detail: str = "Admin privilege required") -> None:
        super().__init__(1007, detail, 403)


class InvalidEmailError(AppError):
    def __init__(self, email: str) -> None:
        super().__init__(1008, f"Invalid email: {email!r}", 422)


# --- 2xxx: Account ---

class InsufficientSpendableError(AppError):
    def __init__(self, required: Decimal, available: Decimal) -> None:
        super().__init__(
            2001,
            f"Insufficient spendable credits: required {required}, available {available}",
            422,
        )


class AccountNotFoundError(NotFoundError):
    def __init__(self, account_ref: str) -> None:
        super().__init__(2002, f"Account not found: {account_ref}", 404)


class RecipientNotFoundError(AppError):
    def __init__(self, recipient: str) -> None:
        super().__init__(2003, f"Recipient not found: {recipient}", 404)


class InsufficientTotalCreditsError(AppError):
    def __init__(self, requested: Decimal, promotable: Decimal) -> None:
        super().__init__(
            2004,
            f"Insufficient total credits: requested {requested}, promotable {promotable}",
            422,
        )


# --- 3xxx: Transaction ---

class InvalidAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3001, f"Invalid amount: {detail}", 422)


class TransactionNotFoundError(NotFoundError):
    def __init__(self, txn_id: int) -> None:
        super().__init__(3002, f"Transaction not found: {txn_id}", 404)


class InvalidTransitionError(AppError):
    def __init__(self, txn_id: int, status: str, target: str) -> None:
        super().__init__(
            3003,
            f"Transaction {txn_id} in status {status} cannot become {target}",
            409,
        )


# --- 4xxx: Supply ---

class BankLimitExceededError(InvariantViolationError):
    def __init__(self, current: Decimal, amount: Decimal, limit: Decimal) -> None:
        super().__init__(
            f"bank limit exceeded: {current} + {amount} > {limit}",
            code=4002,
        )


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class LockTimeoutError(AppError):
    """Lock wait timed out or the transaction lost a conflict; safe to retry."""

    retryable = True

    def __init__(self, sqlstate: str | None = None) -> None:
        super().__init__(
            9003,
            f"Ledger is busy, retry the operation (sqlstate={sqlstate})",
            503,
        )
        self.sqlstate = sqlstate
