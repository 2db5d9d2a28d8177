"""
Ledger service — read access to accounts and the accounting audit.

Balance reads never fail for a well-formed id: an account that has never
been seen is created lazily with a zero balance.

Audit:
  Every purchase debit is written to the ledger in the same unit of work as
  the ownership claim it pays for. For any account, therefore:

      -sum(purchase entries) == sum(price of assets owned by the account)

  audit_account() recomputes both sides. A mismatch means the
  debit-and-grant atomicity was broken somewhere and is logged at
  CRITICAL for operator attention.
"""

import logging
from decimal import Decimal

from markethub.domain import Account, AuditReport, EntryKind
from markethub.money import ZERO
from markethub.services.credit_service import require_privileged
from markethub.storage.base import Storage, StorageSession
from markethub.storage.retry import read_with_retry

logger = logging.getLogger(__name__)


async def get_account(storage: Storage, user_id: str) -> Account:
    """Get (or lazily create) the account for a user."""
    async def read(uow: StorageSession) -> Account:
        return await uow.get_account(user_id)

    return await read_with_retry(storage, read)


async def get_balance(storage: Storage, user_id: str) -> Decimal:
    """Spendable balance for a user; 0 if the user has never been credited."""
    account = await get_account(storage, user_id)
    return account.balance


async def audit_account(
    storage: Storage,
    actor_id: str,
    user_id: str,
    privileged_id: str | None = None,
) -> AuditReport:
    """
    [ADMIN ONLY] Check the purchase accounting identity for one account.

    Raises:
        UnauthorizedError: If actor_id is not the privileged actor.
    """
    require_privileged(actor_id, privileged_id)

    async def read(uow: StorageSession) -> AuditReport:
        account = await uow.get_account(user_id)
        debits = await uow.list_entries(user_id, EntryKind.PURCHASE)
        owned = await uow.list_owned_assets(user_id)
        return AuditReport(
            user_id=user_id,
            balance=account.balance,
            total_purchase_debits=-sum((entry.amount for entry in debits), ZERO),
            owned_asset_value=sum((asset.price for asset in owned), ZERO),
            owned_asset_ids=[asset.asset_id for asset in owned],
        )

    report = await read_with_retry(storage, read)
    if not report.match:
        logger.critical(
            "Ledger mismatch for %s: debits %s vs owned value %s",
            user_id, report.total_purchase_debits, report.owned_asset_value,
        )
    return report
