"""
Ingestion router — the sync worker's entry point.

Endpoints:
  POST /api/sync-nfts — Report an incoming NFT gift

Authenticated by the shared X-Ingest-Key header rather than a user token;
the endpoint is disabled when INGEST_API_KEY is empty. Re-reporting the
same gift returns the asset created the first time.
"""

from fastapi import APIRouter, Depends

from markethub.dependencies import get_storage, require_ingest_key
from markethub.schemas.asset import AssetResponse, IngestRequest, IngestResponse
from markethub.services import catalog_service
from markethub.storage.base import Storage

router = APIRouter()


@router.post(
    "/sync-nfts",
    response_model=IngestResponse,
    summary="Ingest an NFT gift",
    dependencies=[Depends(require_ingest_key)],
)
async def sync_nft(
    request: IngestRequest,
    storage: Storage = Depends(get_storage),
):
    asset = await catalog_service.ingest_asset(
        storage,
        display_name=request.name,
        serial_number=request.number,
        sender_id=request.sender_id,
        receiver_id=request.receiver_id,
        price=request.price,
        external_ref=request.external_ref,
        image_url=request.image_url,
    )
    return IngestResponse(nft=AssetResponse.model_validate(asset))
