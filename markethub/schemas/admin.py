"""
Pydantic schemas for privileged endpoints.

The acting admin is never part of a request body; it is the subject of
the bearer token.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


class AddBalanceRequest(BaseModel):
    """Request body for POST /api/admin/add_balance."""
    target_id: str = Field(min_length=1, max_length=64)
    # Validated by the credit service, after the actor check
    amount: Decimal


class AddBalanceResponse(BaseModel):
    ok: bool = True
    target_id: str
    balance: Decimal


class AuditResponse(BaseModel):
    """
    Accounting check for one account.

    `match` is False when purchase debits and owned asset value disagree,
    which would mean a debit and its ownership grant were split.
    """
    user_id: str
    balance: Decimal
    total_purchase_debits: Decimal
    owned_asset_value: Decimal
    owned_asset_ids: list[int]
    match: bool

    model_config = {"from_attributes": True}
