"""
Account router — the caller's own balances.

Endpoints:
  GET /api/me — Balance, points, premium expiry and profile

Accounts are created lazily, so a freshly verified user sees a zero
balance rather than a 404.
"""

from fastapi import APIRouter, Depends

from markethub.dependencies import get_current_user_id, get_storage
from markethub.schemas.account import AccountResponse
from markethub.services import ledger_service
from markethub.storage.base import Storage

router = APIRouter()


@router.get("/me", response_model=AccountResponse, summary="Get my account")
async def get_me(
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
):
    account = await ledger_service.get_account(storage, user_id)
    return AccountResponse.model_validate(account)
