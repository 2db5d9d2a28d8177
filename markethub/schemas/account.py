"""Pydantic schemas for the current user's account."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class AccountResponse(BaseModel):
    """The caller's balances and profile (GET /api/me)."""
    user_id: str
    balance: Decimal
    points_balance: int
    premium_until: datetime | None = None
    first_name: str | None = None
    username: str | None = None

    model_config = {"from_attributes": True}
