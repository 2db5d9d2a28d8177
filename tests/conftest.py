"""
Test fixtures for the MarketHub test suite.

This module provides shared fixtures used across all test files:

  - memory_storage / sql_storage: a fresh, empty store per test
  - storage: parametrized over both backends, for service-level tests that
    must behave identically on either
  - file_sql_storage: SqlStorage over a SQLite file, so concurrent units of
    work use separate connections and real database locking
  - client: Async HTTP test client with a fresh MemoryStorage injected
  - auth_headers / admin_headers: Bearer headers for a member and the admin
  - make_init_data: builds Telegram initData signed with the test bot token

Key design decisions:
  - Environment variables are set before anything imports markethub.config,
    so the settings singleton sees the test configuration.
  - In-memory SQLite (sqlite+aiosqlite://) backs SqlStorage; each test gets
    a completely fresh database.
  - We override the get_storage dependency instead of running the lifespan,
    so every test controls exactly which store the app talks to.
"""

import json
import os
import time
from urllib.parse import quote, urlencode

# Must run before markethub.config is imported anywhere
os.environ["SECRET_KEY"] = "test-secret-key-do-not-use-in-production"
os.environ["ADMIN_USER_ID"] = "1000"
os.environ["TELEGRAM_BOT_TOKEN"] = "123456:TEST-BOT-TOKEN"
os.environ["INGEST_API_KEY"] = "test-ingest-key"
os.environ["FETCH_PREVIEW_IMAGES"] = "false"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["SEED_DEMO_DATA"] = "false"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from markethub.config import settings
from markethub.dependencies import get_storage
from markethub.main import app
from markethub.security import compute_init_data_hash
from markethub.storage.memory import MemoryStorage
from markethub.storage.sql import SqlStorage

from helpers import ADMIN_ID, MEMBER_ID, bearer


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def memory_storage():
    storage = MemoryStorage()
    await storage.start()
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def sql_storage():
    """SqlStorage over a fresh in-memory SQLite database."""
    storage = SqlStorage(TEST_DATABASE_URL)
    await storage.start()
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def file_sql_storage(tmp_path):
    """SqlStorage over a fresh SQLite file in a per-test directory."""
    storage = SqlStorage(f"sqlite+aiosqlite:///{tmp_path / 'markethub.db'}")
    await storage.start()
    yield storage
    await storage.close()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def storage(request):
    """Run the test once per storage backend."""
    if request.param == "memory":
        backend = MemoryStorage()
    else:
        backend = SqlStorage(TEST_DATABASE_URL)
    await backend.start()
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def client(memory_storage):
    """
    Async HTTP test client with a fresh store injected.

    The test can reach the same store through the memory_storage fixture
    to arrange state or assert on it directly.
    """
    app.dependency_overrides[get_storage] = lambda: memory_storage

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return bearer(MEMBER_ID)


@pytest.fixture
def admin_headers():
    return bearer(ADMIN_ID)


@pytest.fixture
def make_init_data():
    """
    Build a Telegram initData query string signed with the test bot token.

    Pass sign=False for an unsigned string, or hash=... to force a value.
    """
    def _make(user=None, auth_date=None, sign=True, bot_token=None, **extra):
        params = {
            "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
            "auth_date": str(int(time.time()) if auth_date is None else auth_date),
        }
        if user is not False:
            params["user"] = json.dumps(
                user or {"id": 42, "first_name": "Ada", "username": "ada"},
                separators=(",", ":"),
            )
        params.update({key: str(value) for key, value in extra.items()})
        if sign and "hash" not in params:
            params["hash"] = compute_init_data_hash(
                params, bot_token or settings.TELEGRAM_BOT_TOKEN
            )
        return urlencode(params, quote_via=quote)

    return _make
