"""
Settlements router — TonConnect payment callbacks.

Endpoints:
  POST /api/ton/purchase — Credit points or premium months after payment

The paying user is the token subject. Replaying a tx_hash is harmless:
the response reports applied=false along with the current values.
"""

from fastapi import APIRouter, Depends

from markethub.dependencies import get_current_user_id, get_storage
from markethub.domain import SettlementKind
from markethub.schemas.settlement import SettlementRequest, SettlementResponse
from markethub.services import settlement_service
from markethub.storage.base import Storage

router = APIRouter()


@router.post(
    "/ton/purchase",
    response_model=SettlementResponse,
    summary="Settle a TonConnect payment",
)
async def ton_purchase(
    request: SettlementRequest,
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
):
    """
    - **type**: `points` or `premium_months`
    - **amount**: Positive whole number of points or months
    - **tx_hash**: Transaction reference; each is applied once
    """
    result = await settlement_service.settle_external_payment(
        storage,
        user_id=user_id,
        kind=SettlementKind(request.type),
        amount=request.amount,
        reference=request.tx_hash,
    )
    return SettlementResponse(
        type=result.kind.value,
        applied=result.applied,
        points_balance=result.account.points_balance,
        premium_until=result.account.premium_until,
    )
