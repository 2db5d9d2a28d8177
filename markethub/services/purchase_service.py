"""
Purchase service — exchanges balance for ownership of one asset.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. A purchase intent
(buyer id + asset id) ends in exactly one of two states:

  Rejected(reason)  — nothing changed
  Committed         — the asset belongs to the buyer AND the buyer paid

Protocol:
  1. Read the asset and the buyer's account (retried on transient errors).
     Missing asset -> AssetNotFoundError. Owner already set ->
     AlreadyOwnedError. Balance below price -> InsufficientFundsError
     carrying the current balance. These reads are an early exit only;
     nothing is decided by them.
  2. In ONE unit of work:
       a. claim_owner(asset, buyer)  — compare-and-set on owner_id
       b. apply_delta(buyer, -price) — conditional debit, balance stays >= 0
     The claim goes first because it is the cheap, asset-scoped check. If
     the debit fails (another purchase drained the balance between step 1
     and 2b), the unit raises and the claim is undone before the error
     reaches the caller. An asset is never given away for free, and a
     balance is never debited for an asset that was not granted.

Idempotency:
  Retrying a purchase that already committed re-observes AlreadyOwnedError.
  The debit's ledger reference is "asset:<id>", so storage itself refuses a
  second debit for the same asset.
"""

import logging
from decimal import Decimal

from markethub.domain import Account, Asset, EntryKind
from markethub.exceptions import (
    AlreadyOwnedError,
    DuplicateReferenceError,
    InsufficientFundsError,
    InvariantViolationError,
)
from markethub.storage.base import Storage, StorageSession
from markethub.storage.retry import read_with_retry

logger = logging.getLogger(__name__)


def purchase_reference(asset_id: int) -> str:
    return f"asset:{asset_id}"


async def purchase(storage: Storage, buyer_id: str, asset_id: int) -> Decimal:
    """
    Buy an asset with internal balance.

    Args:
        storage: The store.
        buyer_id: Verified id of the buyer.
        asset_id: The asset to buy.

    Returns:
        The buyer's balance after the debit.

    Raises:
        AssetNotFoundError: If the asset doesn't exist.
        AlreadyOwnedError: If the asset already has an owner (including a
            retry of this buyer's own committed purchase).
        InsufficientFundsError: If the balance is below the price.
    """
    buyer_id = str(buyer_id)

    async def snapshot(uow: StorageSession) -> tuple[Asset, Account]:
        asset = await uow.get_asset(asset_id)
        account = await uow.get_account(buyer_id)
        return asset, account

    asset, account = await read_with_retry(storage, snapshot)

    if asset.is_owned:
        logger.info("Purchase of asset %s by %s rejected: already owned", asset_id, buyer_id)
        raise AlreadyOwnedError(asset_id)

    if account.balance < asset.price:
        logger.info(
            "Purchase of asset %s by %s rejected: balance %s < price %s",
            asset_id, buyer_id, account.balance, asset.price,
        )
        raise InsufficientFundsError(buyer_id, asset.price, account.balance)

    try:
        async with storage.unit_of_work() as uow:
            claimed = await uow.claim_owner(asset_id, buyer_id)
            balance = await uow.apply_delta(
                buyer_id,
                -claimed.price,
                kind=EntryKind.PURCHASE,
                asset_id=asset_id,
                reference=purchase_reference(asset_id),
            )
    except AlreadyOwnedError:
        logger.info("Purchase of asset %s by %s lost the ownership race", asset_id, buyer_id)
        raise
    except InsufficientFundsError:
        logger.info(
            "Purchase of asset %s by %s rolled back: funds spent concurrently",
            asset_id, buyer_id,
        )
        raise
    except DuplicateReferenceError as exc:
        # A debit for this asset exists although the claim just succeeded
        logger.critical("Asset %s already has a purchase debit", asset_id)
        raise InvariantViolationError(
            f"Asset {asset_id} was unowned but already has a purchase debit"
        ) from exc

    logger.info(
        "Asset %s sold to %s for %s, balance now %s",
        asset_id, buyer_id, claimed.price, balance,
    )
    return balance
