"""
Admin router — privileged balance issuance and accounting audit.

Endpoints:
  POST /api/admin/add_balance        — Credit any account
  GET  /api/admin/audit/{user_id}    — Check an account's purchase accounting

Both require the bearer token's subject to be ADMIN_USER_ID. Anyone else
gets 403 before the amount is even validated.
"""

from fastapi import APIRouter, Depends

from markethub.dependencies import get_current_user_id, get_storage
from markethub.schemas.admin import AddBalanceRequest, AddBalanceResponse, AuditResponse
from markethub.services import credit_service, ledger_service
from markethub.storage.base import Storage

router = APIRouter()


@router.post(
    "/add_balance",
    response_model=AddBalanceResponse,
    summary="[Admin] Credit an account",
)
async def add_balance(
    request: AddBalanceRequest,
    actor_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
):
    """
    Increase a user's balance.

    - **target_id**: The account to credit (created if it doesn't exist)
    - **amount**: Positive, at most 9 decimal places
    """
    balance = await credit_service.issue_credit(
        storage,
        actor_id=actor_id,
        target_id=request.target_id,
        amount=request.amount,
    )
    return AddBalanceResponse(target_id=request.target_id, balance=balance)


@router.get(
    "/audit/{user_id}",
    response_model=AuditResponse,
    summary="[Admin] Audit an account",
)
async def audit(
    user_id: str,
    actor_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
):
    """Compare an account's purchase debits with the prices of what it owns."""
    report = await ledger_service.audit_account(storage, actor_id, user_id)
    return AuditResponse.model_validate(report)
