"""Exact decimal arithmetic for credit amounts.

All balances and amounts are decimal.Decimal with two fractional digits,
stored as NUMERIC(20, 2). Never float.
"""

from decimal import Decimal, InvalidOperation

from src.cl_common.errors import InvalidAmountError

CREDIT_PLACES = 2
CREDIT_QUANTUM = Decimal(1).scaleb(-CREDIT_PLACES)  # Decimal("0.01")
ZERO = Decimal("0.00")
MAX_AMOUNT = Decimal("999999999999999999.99")  # NUMERIC(20, 2) ceiling


def parse_amount(value: object) -> Decimal:
    """Convert user input into a positive, exactly-representable credit amount.

    Accepts Decimal, int or str. Floats are rejected since they cannot carry
    an exact value. Raises InvalidAmountError for malformed, non-finite,
    non-positive, or over-precise input ("1.005").
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(f"{value!r} is not an exact decimal")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"{value!r} is not a number") from None
    if not amount.is_finite():
        raise InvalidAmountError(f"{value!r} is not finite")
    if amount <= 0:
        raise InvalidAmountError(f"{amount} must be greater than zero")
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(f"{amount} exceeds {MAX_AMOUNT}")
    quantized = amount.quantize(CREDIT_QUANTUM)
    if quantized != amount:
        raise InvalidAmountError(
            f"{amount} has more than {CREDIT_PLACES} decimal places"
        )
    return quantized


def credits_to_display(amount: Decimal) -> str:
    """Format credits with thousands separators: Decimal('1234.5') -> '1,234.50'."""
    return f"{amount.quantize(CREDIT_QUANTUM):,}"
