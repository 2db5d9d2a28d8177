"""Pydantic schemas for TonConnect payment settlement."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from markethub.domain import SETTLEMENT_LIMITS, SettlementKind


class SettlementRequest(BaseModel):
    """Request body for POST /api/ton/purchase."""
    type: Literal["points", "premium_months"]
    amount: int = Field(
        gt=0,
        description="Whole points (at most 1,000,000) or months (at most 1200)",
    )
    tx_hash: str = Field(min_length=1, max_length=200)

    @field_validator("tx_hash")
    @classmethod
    def tx_hash_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("tx_hash must not be blank")
        return value

    @model_validator(mode="after")
    def amount_within_limit(self):
        """Each settlement kind has its own ceiling."""
        limit = SETTLEMENT_LIMITS[SettlementKind(self.type)]
        if self.amount > limit:
            raise ValueError(f"A {self.type} settlement may carry at most {limit}")
        return self


class SettlementResponse(BaseModel):
    ok: bool = True
    type: str
    applied: bool
    points_balance: int
    premium_until: datetime | None = None
