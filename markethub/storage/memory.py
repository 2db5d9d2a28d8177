"""MemoryStorage — process-local implementation of the Storage protocol.

State lives in plain dictionaries guarded by one short critical section
(threading.Lock). Every primitive reads, checks and writes inside that
section without awaiting, so it behaves as a compare-and-set: two
concurrent claims on one asset, or two debits on one account, serialize.
The lock is never held across an await.

Units of work are made all-or-nothing with an undo log: each successful
primitive pushes a compensating action, and if the unit raises (including
cancellation) the actions run in reverse order. A compensation checks its
own precondition first — it only releases a claim the same unit made, and
only reverses a delta if that cannot drive the balance negative — and
raises InvariantViolationError otherwise.
"""

import logging
import threading
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from markethub.datetime_utils import add_months, utc_now
from markethub.domain import (
    MAX_POINTS_BALANCE,
    Account,
    Asset,
    AssetDraft,
    EntryKind,
    LedgerEntry,
)
from markethub.exceptions import (
    AlreadyOwnedError,
    AssetNotFoundError,
    DuplicateAssetError,
    DuplicateReferenceError,
    InsufficientFundsError,
    InvalidAmountError,
    InvariantViolationError,
)
from markethub.money import MAX_AMOUNT, ZERO, to_decimal

logger = logging.getLogger(__name__)


class MemoryStorage:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accounts: dict[str, Account] = {}
        self._assets: dict[int, Asset] = {}
        self._asset_refs: dict[str, int] = {}
        self._entries: list[LedgerEntry] = []
        self._entry_refs: set[str] = set()
        self._next_asset_id = 1
        self._next_entry_id = 1

    async def start(self) -> None:
        logger.info("Memory storage ready")

    async def close(self) -> None:
        pass

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator["MemorySession"]:
        session = MemorySession(self)
        try:
            yield session
        except BaseException:
            session.rollback()
            raise

    # --- helpers; callers must hold self._lock ---

    def _account(self, user_id: str) -> Account:
        account = self._accounts.get(user_id)
        if account is None:
            now = utc_now()
            account = Account(user_id=user_id, balance=ZERO, created_at=now, updated_at=now)
            self._accounts[user_id] = account
        return account

    def _asset(self, asset_id: int) -> Asset:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset

    def _record(
        self,
        user_id: str,
        kind: EntryKind,
        amount: Decimal,
        asset_id: int | None = None,
        actor_id: str | None = None,
        reference: str | None = None,
    ) -> LedgerEntry:
        if reference is not None:
            if reference in self._entry_refs:
                raise DuplicateReferenceError(reference)
            self._entry_refs.add(reference)
        entry = LedgerEntry(
            id=self._next_entry_id,
            user_id=user_id,
            kind=kind,
            amount=amount,
            asset_id=asset_id,
            actor_id=actor_id,
            reference=reference,
            created_at=utc_now(),
        )
        self._next_entry_id += 1
        self._entries.append(entry)
        return entry

    def _forget(self, entry: LedgerEntry) -> None:
        self._entries.remove(entry)
        if entry.reference is not None:
            self._entry_refs.discard(entry.reference)


class MemorySession:
    """One unit of work against MemoryStorage."""

    def __init__(self, storage: MemoryStorage) -> None:
        self._storage = storage
        self._undo: list[Callable[[], None]] = []

    def rollback(self) -> None:
        with self._storage._lock:
            while self._undo:
                self._undo.pop()()

    # --- Ledger store ---

    async def get_account(self, user_id: str) -> Account:
        with self._storage._lock:
            return self._storage._account(user_id)

    async def update_profile(
        self, user_id: str, first_name: str | None, username: str | None
    ) -> Account:
        storage = self._storage
        with storage._lock:
            previous = storage._account(user_id)
            updated = replace(
                previous,
                first_name=first_name or previous.first_name,
                username=username or previous.username,
                updated_at=utc_now(),
            )
            storage._accounts[user_id] = updated

            def undo() -> None:
                storage._accounts[user_id] = replace(
                    storage._accounts[user_id],
                    first_name=previous.first_name,
                    username=previous.username,
                )

            self._undo.append(undo)
            return updated

    async def apply_delta(
        self,
        user_id: str,
        delta: Decimal,
        *,
        kind: EntryKind,
        asset_id: int | None = None,
        actor_id: str | None = None,
        reference: str | None = None,
    ) -> Decimal:
        delta = to_decimal(delta)
        storage = self._storage
        with storage._lock:
            account = storage._account(user_id)
            new_balance = account.balance + delta
            if new_balance < 0:
                raise InsufficientFundsError(user_id, -delta, account.balance)
            if new_balance > MAX_AMOUNT:
                raise InvalidAmountError(
                    f"Balance of account {user_id} would exceed {MAX_AMOUNT}"
                )

            entry = storage._record(user_id, kind, delta, asset_id, actor_id, reference)
            storage._accounts[user_id] = replace(
                account, balance=new_balance, updated_at=utc_now()
            )

            def undo() -> None:
                current = storage._accounts[user_id]
                reverted = current.balance - delta
                if reverted < 0:
                    raise InvariantViolationError(
                        f"Reverting delta {delta} would leave account {user_id} negative"
                    )
                storage._accounts[user_id] = replace(current, balance=reverted)
                storage._forget(entry)

            self._undo.append(undo)
            return new_balance

    async def add_points(self, user_id: str, points: int, *, reference: str) -> int:
        storage = self._storage
        with storage._lock:
            account = storage._account(user_id)
            total = account.points_balance + points
            if total > MAX_POINTS_BALANCE:
                raise InvalidAmountError(f"Points balance would exceed {MAX_POINTS_BALANCE}")
            entry = storage._record(
                user_id, EntryKind.POINTS, Decimal(points), reference=reference
            )
            storage._accounts[user_id] = replace(
                account, points_balance=total, updated_at=utc_now()
            )

            def undo() -> None:
                current = storage._accounts[user_id]
                storage._accounts[user_id] = replace(
                    current, points_balance=current.points_balance - points
                )
                storage._forget(entry)

            self._undo.append(undo)
            return total

    async def extend_premium(
        self, user_id: str, months: int, *, now: datetime, reference: str
    ) -> datetime:
        storage = self._storage
        with storage._lock:
            account = storage._account(user_id)
            previous = account.premium_until
            base = previous if previous is not None and previous > now else now
            try:
                until = add_months(base, months)
            except OverflowError:
                raise InvalidAmountError("Premium expiry would be out of range")
            entry = storage._record(
                user_id, EntryKind.PREMIUM, Decimal(months), reference=reference
            )
            storage._accounts[user_id] = replace(
                account, premium_until=until, updated_at=utc_now()
            )

            def undo() -> None:
                storage._accounts[user_id] = replace(
                    storage._accounts[user_id], premium_until=previous
                )
                storage._forget(entry)

            self._undo.append(undo)
            return until

    async def list_entries(
        self, user_id: str, kind: EntryKind | None = None
    ) -> list[LedgerEntry]:
        with self._storage._lock:
            return [
                entry for entry in self._storage._entries
                if entry.user_id == user_id and (kind is None or entry.kind == kind)
            ]

    # --- Asset catalog ---

    async def list_assets(self) -> list[Asset]:
        with self._storage._lock:
            return [self._storage._assets[key] for key in sorted(self._storage._assets)]

    async def get_asset(self, asset_id: int) -> Asset:
        with self._storage._lock:
            return self._storage._asset(asset_id)

    async def find_asset_by_ref(self, external_ref: str) -> Asset | None:
        with self._storage._lock:
            asset_id = self._storage._asset_refs.get(external_ref)
            return None if asset_id is None else self._storage._assets[asset_id]

    async def list_owned_assets(self, user_id: str) -> list[Asset]:
        with self._storage._lock:
            return [
                self._storage._assets[key] for key in sorted(self._storage._assets)
                if self._storage._assets[key].owner_id == user_id
            ]

    async def claim_owner(self, asset_id: int, user_id: str) -> Asset:
        storage = self._storage
        with storage._lock:
            asset = storage._asset(asset_id)
            if asset.owner_id is not None:
                raise AlreadyOwnedError(asset_id)
            claimed = replace(asset, owner_id=user_id)
            storage._assets[asset_id] = claimed

            def undo() -> None:
                current = storage._assets[asset_id]
                if current.owner_id != user_id:
                    raise InvariantViolationError(
                        f"Asset {asset_id} owner changed from {user_id} to "
                        f"{current.owner_id} before rollback"
                    )
                storage._assets[asset_id] = replace(current, owner_id=None)

            self._undo.append(undo)
            return claimed

    async def add_asset(self, draft: AssetDraft) -> Asset:
        storage = self._storage
        price = to_decimal(draft.price)
        if price <= 0:
            raise InvalidAmountError("Asset price must be positive")
        with storage._lock:
            if draft.asset_id is not None and draft.asset_id in storage._assets:
                raise DuplicateAssetError(asset_id=draft.asset_id)
            if draft.external_ref is not None and draft.external_ref in storage._asset_refs:
                raise DuplicateAssetError(external_ref=draft.external_ref)

            asset_id = draft.asset_id if draft.asset_id is not None else storage._next_asset_id
            storage._next_asset_id = max(storage._next_asset_id, asset_id + 1)

            asset = Asset(
                asset_id=asset_id,
                display_name=draft.display_name,
                serial_number=draft.serial_number,
                price=price,
                external_link=draft.external_link,
                image_url=draft.image_url,
                external_ref=draft.external_ref,
                sender_id=draft.sender_id,
                receiver_id=draft.receiver_id,
                created_at=utc_now(),
            )
            storage._assets[asset_id] = asset
            if draft.external_ref is not None:
                storage._asset_refs[draft.external_ref] = asset_id

            def undo() -> None:
                storage._assets.pop(asset_id, None)
                if draft.external_ref is not None:
                    storage._asset_refs.pop(draft.external_ref, None)

            self._undo.append(undo)
            return asset
