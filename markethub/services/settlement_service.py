"""
Settlement service — credits account sub-fields after an external payment.

When a TonConnect payment is confirmed, the client reports it with the
transaction reference and what was bought:

  - points:          N points added to points_balance
  - premium_months:  premium_until extended by N calendar months, starting
                     from whichever is later: now or the current expiry

There is no privileged-actor check here; the trust boundary is the
caller's transaction proof, verified upstream. What this service does
guarantee is idempotency: each reference is recorded in the ledger with a
unique key in the same unit of work as the credit, so a replayed callback
re-observes the current value and applies nothing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from markethub.datetime_utils import utc_now
from markethub.domain import SETTLEMENT_LIMITS, Account, SettlementKind
from markethub.exceptions import (
    DuplicateReferenceError,
    InvalidAmountError,
    InvalidReferenceError,
)
from markethub.storage.base import Storage, StorageSession
from markethub.storage.retry import read_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    kind: SettlementKind
    account: Account
    applied: bool


def _whole_units(kind: SettlementKind, amount: int | Decimal | str) -> int:
    """Settlement amounts are positive whole numbers, capped per kind."""
    if isinstance(amount, bool):
        raise InvalidAmountError("Settlement amount must be a positive integer")
    try:
        value = Decimal(amount)
    except (ArithmeticError, TypeError, ValueError):
        raise InvalidAmountError("Settlement amount must be a positive integer")
    if not value.is_finite() or value != value.to_integral_value() or value <= 0:
        raise InvalidAmountError("Settlement amount must be a positive integer")
    limit = SETTLEMENT_LIMITS[kind]
    if value > limit:
        raise InvalidAmountError(f"A {kind.value} settlement may carry at most {limit}")
    return int(value)


async def settle_external_payment(
    storage: Storage,
    user_id: str,
    kind: SettlementKind,
    amount: int | Decimal | str,
    reference: str,
    now: datetime | None = None,
) -> SettlementResult:
    """
    Apply a confirmed external payment to the user's account.

    Args:
        storage: The store.
        user_id: Verified id of the paying user.
        kind: Which account field to credit.
        amount: Number of points or months.
        reference: External transaction reference (e.g. the TON tx hash).
        now: Clock override for tests.

    Returns:
        SettlementResult with the account after settlement; `applied` is
        False when the reference had already been settled.

    Raises:
        InvalidAmountError: If amount is not a positive whole number, exceeds
            the per-kind limit, or would push the account out of range.
        InvalidReferenceError: If reference is empty.
    """
    units = _whole_units(kind, amount)
    if not reference or not reference.strip():
        raise InvalidReferenceError()

    user_id = str(user_id)
    key = f"{kind.value}:{reference.strip()}"

    try:
        async with storage.unit_of_work() as uow:
            if kind is SettlementKind.POINTS:
                await uow.add_points(user_id, units, reference=key)
            else:
                await uow.extend_premium(user_id, units, now=now or utc_now(), reference=key)
            account = await uow.get_account(user_id)
    except DuplicateReferenceError:
        logger.info("Settlement %s already applied, returning current state", key)

        async def read(uow: StorageSession) -> Account:
            return await uow.get_account(user_id)

        account = await read_with_retry(storage, read)
        return SettlementResult(kind=kind, account=account, applied=False)

    logger.info("Settled %s x%d for %s", kind.value, units, user_id)
    return SettlementResult(kind=kind, account=account, applied=True)
