"""
Credit service — privileged balance issuance.

Only one identity may create balance out of thin air: the configured
ADMIN_USER_ID. The authorization check runs before amount validation and
before any storage access, so a rejected call touches nothing.

Issuance goes through the same conditional apply_delta primitive as
purchases, so a credit racing a purchase on the same account serializes
with it instead of overwriting it.
"""

import logging
from decimal import Decimal

from markethub.config import settings
from markethub.domain import EntryKind
from markethub.exceptions import InvalidAmountError, UnauthorizedError
from markethub.money import to_decimal
from markethub.storage.base import Storage

logger = logging.getLogger(__name__)


def is_privileged(actor_id: str, privileged_id: str | None = None) -> bool:
    """True if actor_id is the configured privileged actor."""
    expected = settings.ADMIN_USER_ID if privileged_id is None else privileged_id
    return bool(expected) and str(actor_id) == str(expected)


def require_privileged(actor_id: str, privileged_id: str | None = None) -> None:
    """
    Raises:
        UnauthorizedError: If actor_id is not the privileged actor.
    """
    if not is_privileged(actor_id, privileged_id):
        logger.warning("Rejected privileged operation by %s", actor_id)
        raise UnauthorizedError("Only the administrator can perform this operation")


async def issue_credit(
    storage: Storage,
    actor_id: str,
    target_id: str,
    amount: Decimal | int | str,
    privileged_id: str | None = None,
) -> Decimal:
    """
    Increase a user's balance.

    Args:
        storage: The store.
        actor_id: Verified id of the caller.
        target_id: The account to credit (created lazily).
        amount: Positive amount, at most 9 decimal places.
        privileged_id: Override for the configured ADMIN_USER_ID.

    Returns:
        The target's new balance.

    Raises:
        UnauthorizedError: If actor_id is not the privileged actor.
        InvalidAmountError: If amount is not a positive finite decimal.
    """
    require_privileged(actor_id, privileged_id)

    value = to_decimal(amount)
    if value <= 0:
        raise InvalidAmountError("Credit amount must be positive")

    async with storage.unit_of_work() as uow:
        balance = await uow.apply_delta(
            str(target_id), value, kind=EntryKind.CREDIT, actor_id=str(actor_id)
        )

    logger.info("Credited %s to %s by %s, balance now %s", value, target_id, actor_id, balance)
    return balance
