"""
Tests for the catalog and purchase endpoints.

These tests verify:
  - GET /api/nfts lists every asset ascending by id, prices as exact strings
  - POST /api/nft/buy commits and returns the new balance
  - 404 / 409 / 422 bodies carry the error_type (and balance for 422)
  - The buyer is the token subject, never a body field
  - Storage outages surface as 503 with Retry-After
"""

from decimal import Decimal
from unittest.mock import patch

from markethub.exceptions import StorageUnavailableError

from helpers import add_asset, balance_of, bearer, fund


class TestListNfts:

    async def test_empty_catalog(self, client):
        response = await client.get("/api/nfts")
        assert response.status_code == 200
        assert response.json() == []

    async def test_listing_order_and_fields(self, client, memory_storage):
        await add_asset(memory_storage, "3.0", name="Blue Planet", number=77, asset_id=3)
        await add_asset(memory_storage, "2.5", name="Desk Calendar", number=4567, asset_id=1)

        response = await client.get("/api/nfts")

        assert response.status_code == 200
        data = response.json()
        assert [item["id"] for item in data] == [1, 3]
        first = data[0]
        assert first["name"] == "Desk Calendar"
        assert first["number"] == 4567
        assert Decimal(first["price"]) == Decimal("2.5")
        assert first["link"] == "https://t.me/nft/DeskCalendar-4567"
        assert first["owner_id"] is None

    async def test_listing_shows_owner(self, client, memory_storage):
        await fund(memory_storage, "42", "3")
        await add_asset(memory_storage, "2.5", asset_id=7)
        await client.post("/api/nft/buy", json={"nft_id": 7}, headers=bearer("42"))

        response = await client.get("/api/nfts")
        assert response.json()[0]["owner_id"] == "42"


class TestBuyNft:

    async def test_buy(self, client, memory_storage, auth_headers):
        await fund(memory_storage, "42", "3.0")
        await add_asset(memory_storage, "2.5", asset_id=7)

        response = await client.post("/api/nft/buy", json={"nft_id": 7}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["nft_id"] == 7
        assert Decimal(data["balance"]) == Decimal("0.5")

        me = await client.get("/api/me", headers=auth_headers)
        assert Decimal(me.json()["balance"]) == Decimal("0.5")

    async def test_buy_twice(self, client, memory_storage, auth_headers):
        await fund(memory_storage, "42", "3.0")
        await add_asset(memory_storage, "2.5", asset_id=7)
        await client.post("/api/nft/buy", json={"nft_id": 7}, headers=auth_headers)

        response = await client.post("/api/nft/buy", json={"nft_id": 7}, headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["error_type"] == "already_owned"
        assert await balance_of(memory_storage, "42") == Decimal("0.5")

    async def test_buy_missing(self, client, memory_storage, auth_headers):
        response = await client.post("/api/nft/buy", json={"nft_id": 99}, headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error_type"] == "asset_not_found"

    async def test_buy_insufficient_funds(self, client, memory_storage, auth_headers):
        await fund(memory_storage, "42", "1.0")
        await add_asset(memory_storage, "2.5", asset_id=7)

        response = await client.post("/api/nft/buy", json={"nft_id": 7}, headers=auth_headers)

        assert response.status_code == 422
        data = response.json()
        assert data["error_type"] == "insufficient_funds"
        assert Decimal(data["balance"]) == Decimal("1.0")
        assert Decimal(data["price"]) == Decimal("2.5")

    async def test_buyer_comes_from_token(self, client, memory_storage):
        await fund(memory_storage, "42", "3.0")
        await add_asset(memory_storage, "2.5", asset_id=7)

        # A body user_id is ignored; user 43 has no funds
        response = await client.post(
            "/api/nft/buy", json={"nft_id": 7, "user_id": "42"}, headers=bearer("43")
        )

        assert response.status_code == 422
        assert await balance_of(memory_storage, "42") == Decimal("3.0")

    async def test_buy_requires_token(self, client):
        response = await client.post("/api/nft/buy", json={"nft_id": 7})
        assert response.status_code == 401

    async def test_buy_validates_body(self, client, auth_headers):
        response = await client.post("/api/nft/buy", json={"nft_id": "seven"}, headers=auth_headers)
        assert response.status_code == 422


class TestStorageOutage:

    async def test_read_outage_is_503(self, client, memory_storage):
        def broken():
            raise StorageUnavailableError()

        with patch.object(memory_storage, "unit_of_work", broken), \
                patch("markethub.storage.retry.BASE_DELAY_SECONDS", 0):
            response = await client.get("/api/nfts")

        assert response.status_code == 503
        assert response.json()["error_type"] == "storage_unavailable"
        assert response.headers["Retry-After"] == "1"


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
