"""
Assets router — the catalog and purchases.

Endpoints:
  GET  /api/nfts     — List every asset, ascending by id
  POST /api/nft/buy  — Buy an asset with internal balance

The buyer is the authenticated user. A purchase either commits both the
ownership grant and the debit or changes nothing; see purchase_service.
"""

from fastapi import APIRouter, Depends

from markethub.dependencies import get_current_user_id, get_storage
from markethub.schemas.asset import AssetResponse, PurchaseRequest, PurchaseResponse
from markethub.services import catalog_service, purchase_service
from markethub.storage.base import Storage

router = APIRouter()


@router.get(
    "/nfts",
    response_model=list[AssetResponse],
    summary="List the catalog",
)
async def list_nfts(storage: Storage = Depends(get_storage)):
    """Every asset, owned or not. Owned assets carry their owner_id."""
    assets = await catalog_service.list_assets(storage)
    return [AssetResponse.model_validate(asset) for asset in assets]


@router.post(
    "/nft/buy",
    response_model=PurchaseResponse,
    summary="Buy an asset",
)
async def buy_nft(
    request: PurchaseRequest,
    user_id: str = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
):
    """
    Buy an unowned asset.

    - **nft_id**: The asset to buy
    - 404 if the asset doesn't exist, 409 if it is already owned,
      422 with the current balance if funds are insufficient
    """
    balance = await purchase_service.purchase(storage, user_id, request.nft_id)
    return PurchaseResponse(nft_id=request.nft_id, balance=balance)
