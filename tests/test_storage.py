"""
Tests for the storage primitives shared by both backends.

These tests verify:
  - apply_delta refuses to go negative and leaves state untouched
  - Balances and point totals stop at their column ceilings
  - claim_owner is write-once
  - Duplicate asset ids / external references are rejected
  - Non-positive prices are rejected as amounts, not duplicates
  - Ledger references are unique
  - Read retries back off and give up after the configured attempts
  - The application lifespan builds, seeds and closes the store
"""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from markethub.config import settings
from markethub.domain import MAX_POINTS_BALANCE, AssetDraft, EntryKind
from markethub.exceptions import (
    AlreadyOwnedError,
    AssetNotFoundError,
    DuplicateAssetError,
    DuplicateReferenceError,
    InsufficientFundsError,
    InvalidAmountError,
    StorageUnavailableError,
)
from markethub.main import app, lifespan
from markethub.money import MAX_AMOUNT
from markethub.storage.factory import build_storage
from markethub.storage.memory import MemoryStorage
from markethub.storage.retry import read_with_retry
from markethub.storage.sql import SqlStorage

from helpers import add_asset, balance_of, fund


class TestLedgerPrimitives:

    async def test_lazy_account(self, storage):
        async with storage.unit_of_work() as uow:
            account = await uow.get_account("new-user")

        assert account.balance == Decimal("0")
        assert account.points_balance == 0
        assert account.premium_until is None

    async def test_negative_delta_does_not_mutate(self, storage):
        await fund(storage, "42", "1")

        with pytest.raises(InsufficientFundsError) as exc_info:
            async with storage.unit_of_work() as uow:
                await uow.apply_delta("42", Decimal("-1.5"), kind=EntryKind.PURCHASE)

        assert exc_info.value.available == Decimal("1")
        assert await balance_of(storage, "42") == Decimal("1")

    async def test_balance_ceiling_does_not_mutate(self, storage):
        await fund(storage, "42", "1")

        with pytest.raises(InvalidAmountError):
            async with storage.unit_of_work() as uow:
                await uow.apply_delta("42", MAX_AMOUNT, kind=EntryKind.CREDIT)

        assert await balance_of(storage, "42") == Decimal("1")

    async def test_points_ceiling(self, storage):
        async with storage.unit_of_work() as uow:
            await uow.add_points("42", MAX_POINTS_BALANCE, reference="points:a")

        with pytest.raises(InvalidAmountError):
            async with storage.unit_of_work() as uow:
                await uow.add_points("42", 1, reference="points:b")

        async with storage.unit_of_work() as uow:
            assert (await uow.get_account("42")).points_balance == MAX_POINTS_BALANCE
            assert len(await uow.list_entries("42", EntryKind.POINTS)) == 1

    async def test_duplicate_reference(self, storage):
        async with storage.unit_of_work() as uow:
            await uow.add_points("42", 5, reference="points:tx")

        with pytest.raises(DuplicateReferenceError):
            async with storage.unit_of_work() as uow:
                await uow.add_points("42", 5, reference="points:tx")

        async with storage.unit_of_work() as uow:
            assert (await uow.get_account("42")).points_balance == 5

    async def test_rollback_undoes_every_primitive(self, storage):
        await fund(storage, "42", "2")

        with pytest.raises(RuntimeError):
            async with storage.unit_of_work() as uow:
                await uow.apply_delta("42", Decimal("1"), kind=EntryKind.CREDIT)
                await uow.add_points("42", 3, reference="points:a")
                await uow.update_profile("42", "Ada", "ada")
                raise RuntimeError("abort")

        async with storage.unit_of_work() as uow:
            account = await uow.get_account("42")
            credits = await uow.list_entries("42", EntryKind.CREDIT)
        assert account.balance == Decimal("2")
        assert account.points_balance == 0
        assert account.first_name is None
        assert len(credits) == 1


class TestCatalogPrimitives:

    async def test_claim_is_write_once(self, storage):
        await add_asset(storage, "1", asset_id=5)

        async with storage.unit_of_work() as uow:
            claimed = await uow.claim_owner(5, "42")
        assert claimed.owner_id == "42"

        with pytest.raises(AlreadyOwnedError):
            async with storage.unit_of_work() as uow:
                await uow.claim_owner(5, "43")

        async with storage.unit_of_work() as uow:
            assert (await uow.get_asset(5)).owner_id == "42"

    async def test_claim_missing(self, storage):
        with pytest.raises(AssetNotFoundError):
            async with storage.unit_of_work() as uow:
                await uow.claim_owner(404, "42")

    async def test_duplicate_asset_id(self, storage):
        await add_asset(storage, "1", number=1, asset_id=5)

        with pytest.raises(DuplicateAssetError):
            await add_asset(storage, "1", number=2, asset_id=5)

    async def test_duplicate_external_ref(self, storage):
        draft = AssetDraft("Gift", 1, Decimal("1"), external_ref="ref-1")
        async with storage.unit_of_work() as uow:
            await uow.add_asset(draft)

        with pytest.raises(DuplicateAssetError):
            async with storage.unit_of_work() as uow:
                await uow.add_asset(draft)

    @pytest.mark.parametrize("price", ["0", "-1"])
    async def test_non_positive_price(self, storage, price):
        with pytest.raises(InvalidAmountError):
            await add_asset(storage, price, asset_id=5)

        async with storage.unit_of_work() as uow:
            assert await uow.list_assets() == []

    async def test_assigned_ids_follow_explicit_ones(self, memory_storage):
        await add_asset(memory_storage, "1", number=1, asset_id=10)
        assigned = await add_asset(memory_storage, "1", number=2)
        assert assigned.asset_id == 11


class TestReadRetry:

    async def test_recovers_after_transient_failure(self, memory_storage):
        operation = AsyncMock(side_effect=[StorageUnavailableError(), "ok"])

        with patch("markethub.storage.retry.BASE_DELAY_SECONDS", 0):
            result = await read_with_retry(memory_storage, operation, attempts=3)

        assert result == "ok"
        assert operation.await_count == 2

    async def test_gives_up(self, memory_storage):
        operation = AsyncMock(side_effect=StorageUnavailableError())

        with patch("markethub.storage.retry.BASE_DELAY_SECONDS", 0):
            with pytest.raises(StorageUnavailableError):
                await read_with_retry(memory_storage, operation, attempts=3)

        assert operation.await_count == 3

    async def test_other_errors_are_not_retried(self, memory_storage):
        operation = AsyncMock(side_effect=AssetNotFoundError(1))

        with pytest.raises(AssetNotFoundError):
            await read_with_retry(memory_storage, operation, attempts=3)

        assert operation.await_count == 1


class TestFactoryAndLifespan:

    def test_build_memory(self, monkeypatch):
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "memory")
        assert isinstance(build_storage(settings), MemoryStorage)

    async def test_build_sql(self, monkeypatch):
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "sql")
        monkeypatch.setattr(settings, "DATABASE_URL", "sqlite+aiosqlite://")
        storage = build_storage(settings)
        assert isinstance(storage, SqlStorage)
        await storage.close()

    async def test_lifespan_seeds_and_attaches_store(self, monkeypatch):
        monkeypatch.setattr(settings, "STORAGE_BACKEND", "memory")
        monkeypatch.setattr(settings, "SEED_DEMO_DATA", True)

        async with lifespan(app):
            storage = app.state.storage
            assert isinstance(storage, MemoryStorage)
            async with storage.unit_of_work() as uow:
                assets = await uow.list_assets()
            assert len(assets) == 4
            assert await balance_of(storage, "12345678") == Decimal("20")
