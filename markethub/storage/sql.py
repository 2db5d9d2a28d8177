"""SqlStorage — durable implementation of the Storage protocol.

All balance and ownership mutations are single conditional UPDATE ...
RETURNING statements. Zero returned rows means the precondition did not
hold (insufficient funds, balance at its ceiling, asset already owned)
and nothing was written:

    UPDATE accounts SET balance_nanos = balance_nanos + :delta
     WHERE user_id = :user_id AND balance_nanos >= -:delta
    RETURNING balance_nanos

    UPDATE assets SET owner_id = :buyer
     WHERE id = :asset_id AND owner_id IS NULL
    RETURNING id

Transaction ownership: each unit_of_work() is one database transaction.
Leaving the block normally commits; any exception (including cancellation)
rolls back every statement issued through the unit, so a debit and the
ownership claim it pays for commit together or not at all.

Error mapping:
  - OperationalError / InterfaceError (connection lost, database locked)
    -> StorageUnavailableError
  - IntegrityError that no primitive anticipated (a CHECK constraint
    tripped) -> InvariantViolationError, logged at CRITICAL

Supported dialects: SQLite (aiosqlite) and PostgreSQL (asyncpg).
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from markethub.database import Base, create_engine, create_session_factory
from markethub.datetime_utils import add_months, ensure_utc, utc_now
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
    StorageUnavailableError,
)
from markethub.models import AccountModel, AssetModel, LedgerEntryModel
from markethub.money import MAX_AMOUNT, MAX_NANOS, from_nanos, to_decimal, to_nanos

logger = logging.getLogger(__name__)

# Compare-and-set attempts for premium_until before reporting contention
_PREMIUM_CAS_ATTEMPTS = 5


def _to_account(row: AccountModel) -> Account:
    return Account(
        user_id=row.user_id,
        balance=from_nanos(row.balance_nanos),
        points_balance=row.points_balance,
        premium_until=ensure_utc(row.premium_until) if row.premium_until else None,
        first_name=row.first_name,
        username=row.username,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_asset(row: AssetModel) -> Asset:
    return Asset(
        asset_id=row.id,
        display_name=row.display_name,
        serial_number=row.serial_number,
        price=from_nanos(row.price_nanos),
        external_link=row.external_link,
        image_url=row.image_url,
        owner_id=row.owner_id,
        external_ref=row.external_ref,
        sender_id=row.sender_id,
        receiver_id=row.receiver_id,
        created_at=row.created_at,
    )


def _to_entry(row: LedgerEntryModel) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        user_id=row.user_id,
        kind=EntryKind(row.kind),
        amount=from_nanos(row.amount_nanos),
        asset_id=row.asset_id,
        actor_id=row.actor_id,
        reference=row.reference,
        created_at=row.created_at,
    )


class SqlStorage:
    def __init__(self, database_url: str, echo: bool = False) -> None:
        self._engine = create_engine(database_url, echo=echo)
        self._session_factory = create_session_factory(self._engine)
        self._dialect = self._engine.dialect.name

    async def start(self) -> None:
        """
        Create all tables if they don't exist. This is a convenience for
        development — in production, schema changes go through migrations.
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQL storage ready (dialect=%s)", self._dialect)

    async def close(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator["SqlSession"]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield SqlSession(session, self._dialect)
        except IntegrityError as exc:
            logger.critical("Integrity constraint violated: %s", exc.orig)
            raise InvariantViolationError(f"Integrity constraint violated: {exc.orig}") from exc
        except (OperationalError, InterfaceError) as exc:
            logger.warning("Storage unavailable: %s", exc.orig)
            raise StorageUnavailableError() from exc


class SqlSession:
    """One unit of work — wraps a single AsyncSession transaction."""

    def __init__(self, session: AsyncSession, dialect: str) -> None:
        self._session = session
        self._dialect = dialect

    # --- helpers ---

    async def _ensure_account(self, user_id: str) -> None:
        """INSERT the account row if absent; a concurrent insert is a no-op."""
        insert = pg_insert if self._dialect == "postgresql" else sqlite_insert
        now = utc_now()
        await self._session.execute(
            insert(AccountModel)
            .values(
                user_id=user_id,
                balance_nanos=0,
                points_balance=0,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["user_id"])
        )

    async def _load_account(self, user_id: str) -> AccountModel:
        result = await self._session.execute(
            select(AccountModel)
            .where(AccountModel.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _check_reference(self, reference: str | None) -> None:
        if reference is None:
            return
        existing = await self._session.scalar(
            select(LedgerEntryModel.id).where(LedgerEntryModel.reference == reference)
        )
        if existing is not None:
            raise DuplicateReferenceError(reference)

    async def _record(
        self,
        user_id: str,
        kind: EntryKind,
        amount: Decimal,
        asset_id: int | None = None,
        actor_id: str | None = None,
        reference: str | None = None,
    ) -> None:
        self._session.add(LedgerEntryModel(
            user_id=user_id,
            kind=kind.value,
            amount_nanos=to_nanos(amount),
            asset_id=asset_id,
            actor_id=actor_id,
            reference=reference,
        ))
        try:
            await self._session.flush()
        except IntegrityError:
            # Lost a race on the unique reference; the unit rolls back
            if reference is None:
                raise
            raise DuplicateReferenceError(reference)

    # --- Ledger store ---

    async def get_account(self, user_id: str) -> Account:
        await self._ensure_account(user_id)
        return _to_account(await self._load_account(user_id))

    async def update_profile(
        self, user_id: str, first_name: str | None, username: str | None
    ) -> Account:
        await self._ensure_account(user_id)
        values = {"updated_at": utc_now()}
        if first_name:
            values["first_name"] = first_name
        if username:
            values["username"] = username
        await self._session.execute(
            update(AccountModel)
            .where(AccountModel.user_id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return _to_account(await self._load_account(user_id))

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
        delta_nanos = to_nanos(delta)
        await self._check_reference(reference)
        await self._ensure_account(user_id)

        # Both bounds compare the stored value against a constant so the
        # database never evaluates an overflowing sum
        if delta_nanos < 0:
            in_range = AccountModel.balance_nanos >= -delta_nanos
        else:
            in_range = AccountModel.balance_nanos <= MAX_NANOS - delta_nanos

        result = await self._session.execute(
            update(AccountModel)
            .where(AccountModel.user_id == user_id)
            .where(in_range)
            .values(
                balance_nanos=AccountModel.balance_nanos + delta_nanos,
                updated_at=utc_now(),
            )
            .returning(AccountModel.balance_nanos)
            .execution_options(synchronize_session=False)
        )
        new_balance_nanos = result.scalar_one_or_none()

        if new_balance_nanos is None:
            if delta_nanos >= 0:
                raise InvalidAmountError(
                    f"Balance of account {user_id} would exceed {MAX_AMOUNT}"
                )
            available = await self._session.scalar(
                select(AccountModel.balance_nanos).where(AccountModel.user_id == user_id)
            )
            raise InsufficientFundsError(user_id, -delta, from_nanos(available or 0))

        await self._record(user_id, kind, delta, asset_id, actor_id, reference)
        return from_nanos(new_balance_nanos)

    async def add_points(self, user_id: str, points: int, *, reference: str) -> int:
        await self._check_reference(reference)
        await self._ensure_account(user_id)

        result = await self._session.execute(
            update(AccountModel)
            .where(AccountModel.user_id == user_id)
            .where(AccountModel.points_balance <= MAX_POINTS_BALANCE - points)
            .values(
                points_balance=AccountModel.points_balance + points,
                updated_at=utc_now(),
            )
            .returning(AccountModel.points_balance)
            .execution_options(synchronize_session=False)
        )
        total = result.scalar_one_or_none()
        if total is None:
            raise InvalidAmountError(f"Points balance would exceed {MAX_POINTS_BALANCE}")
        await self._record(user_id, EntryKind.POINTS, Decimal(points), reference=reference)
        return total

    async def extend_premium(
        self, user_id: str, months: int, *, now: datetime, reference: str
    ) -> datetime:
        await self._check_reference(reference)
        await self._ensure_account(user_id)

        for _ in range(_PREMIUM_CAS_ATTEMPTS):
            stored = await self._session.scalar(
                select(AccountModel.premium_until).where(AccountModel.user_id == user_id)
            )
            current = ensure_utc(stored) if stored is not None else None
            base = current if current is not None and current > now else now
            try:
                until = add_months(base, months)
            except OverflowError:
                raise InvalidAmountError("Premium expiry would be out of range")

            if stored is None:
                unchanged = AccountModel.premium_until.is_(None)
            else:
                unchanged = AccountModel.premium_until == stored

            result = await self._session.execute(
                update(AccountModel)
                .where(AccountModel.user_id == user_id)
                .where(unchanged)
                .values(premium_until=until, updated_at=utc_now())
                .returning(AccountModel.user_id)
                .execution_options(synchronize_session=False)
            )
            if result.scalar_one_or_none() is not None:
                break
        else:
            raise StorageUnavailableError("Premium expiry is under contention, retry later")

        await self._record(user_id, EntryKind.PREMIUM, Decimal(months), reference=reference)
        return until

    async def list_entries(
        self, user_id: str, kind: EntryKind | None = None
    ) -> list[LedgerEntry]:
        query = (
            select(LedgerEntryModel)
            .where(LedgerEntryModel.user_id == user_id)
            .order_by(LedgerEntryModel.id)
        )
        if kind is not None:
            query = query.where(LedgerEntryModel.kind == kind.value)
        result = await self._session.execute(query)
        return [_to_entry(row) for row in result.scalars().all()]

    # --- Asset catalog ---

    async def list_assets(self) -> list[Asset]:
        result = await self._session.execute(select(AssetModel).order_by(AssetModel.id))
        return [_to_asset(row) for row in result.scalars().all()]

    async def get_asset(self, asset_id: int) -> Asset:
        result = await self._session.execute(
            select(AssetModel)
            .where(AssetModel.id == asset_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise AssetNotFoundError(asset_id)
        return _to_asset(row)

    async def find_asset_by_ref(self, external_ref: str) -> Asset | None:
        result = await self._session.execute(
            select(AssetModel).where(AssetModel.external_ref == external_ref)
        )
        row = result.scalar_one_or_none()
        return None if row is None else _to_asset(row)

    async def list_owned_assets(self, user_id: str) -> list[Asset]:
        result = await self._session.execute(
            select(AssetModel)
            .where(AssetModel.owner_id == user_id)
            .order_by(AssetModel.id)
        )
        return [_to_asset(row) for row in result.scalars().all()]

    async def claim_owner(self, asset_id: int, user_id: str) -> Asset:
        result = await self._session.execute(
            update(AssetModel)
            .where(AssetModel.id == asset_id)
            .where(AssetModel.owner_id.is_(None))
            .values(owner_id=user_id, sold_at=utc_now())
            .returning(AssetModel.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            # Distinguish "missing" from "taken" only after the CAS failed
            exists = await self._session.scalar(
                select(AssetModel.id).where(AssetModel.id == asset_id)
            )
            if exists is None:
                raise AssetNotFoundError(asset_id)
            raise AlreadyOwnedError(asset_id)
        return await self.get_asset(asset_id)

    async def add_asset(self, draft: AssetDraft) -> Asset:
        price_nanos = to_nanos(draft.price)
        if price_nanos <= 0:
            raise InvalidAmountError("Asset price must be positive")
        if draft.asset_id is not None:
            existing = await self._session.scalar(
                select(AssetModel.id).where(AssetModel.id == draft.asset_id)
            )
            if existing is not None:
                raise DuplicateAssetError(asset_id=draft.asset_id)
        if draft.external_ref is not None:
            if await self.find_asset_by_ref(draft.external_ref) is not None:
                raise DuplicateAssetError(external_ref=draft.external_ref)

        row = AssetModel(
            id=draft.asset_id,
            display_name=draft.display_name,
            serial_number=draft.serial_number,
            price_nanos=price_nanos,
            external_link=draft.external_link,
            image_url=draft.image_url,
            external_ref=draft.external_ref,
            sender_id=draft.sender_id,
            receiver_id=draft.receiver_id,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError:
            raise DuplicateAssetError(asset_id=draft.asset_id, external_ref=draft.external_ref)
        return _to_asset(row)
