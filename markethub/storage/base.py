"""Storage protocols — the single seam between the services and persistence.

Two implementations satisfy these protocols:

  - MemoryStorage (markethub/storage/memory.py): process-local dictionaries,
    used by tests, demos and STORAGE_BACKEND=memory.
  - SqlStorage (markethub/storage/sql.py): SQLAlchemy async engine, used in
    production against SQLite or PostgreSQL.

Services never branch on which one is active. Every mutation goes through a
unit of work:

    async with storage.unit_of_work() as uow:
        asset = await uow.claim_owner(asset_id, buyer_id)
        balance = await uow.apply_delta(buyer_id, -asset.price, ...)

If the block raises, every mutation made through `uow` is undone before the
exception leaves the context manager (a database rollback for SqlStorage, a
compensating action for MemoryStorage). If it exits normally, all of them
are committed together.

Mutating primitives are all conditional, so concurrent callers serialize on
the row/record they touch:
  - apply_delta:  balance += delta  only if the result stays >= 0
  - claim_owner:  owner_id := user  only if owner_id is currently unset
  - extend_premium / add_points: guarded by a unique settlement reference
"""

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from markethub.domain import Account, Asset, AssetDraft, EntryKind, LedgerEntry


class StorageSession(Protocol):
    # --- Ledger store ---
    async def get_account(self, user_id: str) -> Account: ...

    async def update_profile(
        self, user_id: str, first_name: str | None, username: str | None
    ) -> Account: ...

    async def apply_delta(
        self,
        user_id: str,
        delta: Decimal,
        *,
        kind: EntryKind,
        asset_id: int | None = None,
        actor_id: str | None = None,
        reference: str | None = None,
    ) -> Decimal: ...

    async def add_points(self, user_id: str, points: int, *, reference: str) -> int: ...

    async def extend_premium(
        self, user_id: str, months: int, *, now: datetime, reference: str
    ) -> datetime: ...

    async def list_entries(
        self, user_id: str, kind: EntryKind | None = None
    ) -> list[LedgerEntry]: ...

    # --- Asset catalog ---
    async def list_assets(self) -> list[Asset]: ...

    async def get_asset(self, asset_id: int) -> Asset: ...

    async def find_asset_by_ref(self, external_ref: str) -> Asset | None: ...

    async def list_owned_assets(self, user_id: str) -> list[Asset]: ...

    async def claim_owner(self, asset_id: int, user_id: str) -> Asset: ...

    async def add_asset(self, draft: AssetDraft) -> Asset: ...


class Storage(Protocol):
    async def start(self) -> None: ...

    async def close(self) -> None: ...

    def unit_of_work(self) -> AbstractAsyncContextManager[StorageSession]: ...
