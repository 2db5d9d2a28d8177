"""
Exact money arithmetic for balances and prices.

Amounts travel through the service as Decimal with at most 9 fractional
digits (nano units, the TON convention: 1 TON = 1_000_000_000 nanotons).
Durable storage keeps integer nano units so that every addition and
subtraction done by the database is exact:

    Decimal("2.5")  <->  2_500_000_000

Floats are never accepted: 0.1 + 0.2 != 0.3 in IEEE 754, and a ledger that
drifts by one nanoton is a ledger that does not balance.
"""

from decimal import Decimal, InvalidOperation

from markethub.exceptions import InvalidAmountError

NANO = Decimal("0.000000001")
NANOS_PER_UNIT = 10**9
ZERO = Decimal("0").quantize(NANO)

# Largest magnitude a signed 64-bit nanos column holds
MAX_NANOS = 2**63 - 1
MAX_AMOUNT = (Decimal(MAX_NANOS) / NANOS_PER_UNIT).quantize(NANO)


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Normalize an amount to a 9-place Decimal.

    Raises:
        InvalidAmountError: If the value is not a finite number, carries
            more than 9 fractional digits, or does not fit in MAX_NANOS.
    """
    if isinstance(value, float):
        raise InvalidAmountError("Amounts must not be floats")
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    try:
        quantized = amount.quantize(NANO)
    except InvalidOperation:
        raise InvalidAmountError(f"Amount out of range: {value!r}")
    if quantized != amount:
        raise InvalidAmountError("Amounts support at most 9 decimal places")
    if abs(quantized) > MAX_AMOUNT:
        raise InvalidAmountError(f"Amount out of range: {value!r}")
    return quantized


def to_nanos(amount: Decimal) -> int:
    """Convert a normalized Decimal amount to integer nano units."""
    return int(to_decimal(amount) * NANOS_PER_UNIT)


def from_nanos(nanos: int) -> Decimal:
    """Convert integer nano units back to a 9-place Decimal."""
    return (Decimal(nanos) / NANOS_PER_UNIT).quantize(NANO)
