"""
Pydantic schemas for catalog and purchase endpoints.

Prices and balances are decimals with up to 9 fractional digits; they are
serialized as JSON strings so no precision is lost on the way out.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class AssetResponse(BaseModel):
    """Public representation of a catalog asset."""
    id: int = Field(validation_alias="asset_id")
    name: str = Field(validation_alias="display_name")
    number: int = Field(validation_alias="serial_number")
    price: Decimal
    link: str | None = Field(default=None, validation_alias="external_link")
    image_url: str | None = None
    owner_id: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class PurchaseRequest(BaseModel):
    """Request body for POST /api/nft/buy. The buyer comes from the token."""
    nft_id: int = Field(gt=0)


class PurchaseResponse(BaseModel):
    ok: bool = True
    nft_id: int
    balance: Decimal


class IngestRequest(BaseModel):
    """One incoming NFT gift reported by the sync worker."""
    name: str = Field(min_length=1, max_length=200)
    number: int = Field(ge=0)
    sender_id: str | None = None
    receiver_id: str | None = None
    price: Decimal | None = None
    external_ref: str | None = Field(default=None, max_length=500)
    image_url: str | None = None


class IngestResponse(BaseModel):
    ok: bool = True
    nft: AssetResponse
