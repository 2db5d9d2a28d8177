"""
Authentication router — Telegram sign-in.

Endpoints:
  POST /api/auth/verify — Verify Telegram initData and get a token

This is the only way to obtain a bearer token. The token's subject is the
Telegram user id, which every authenticated endpoint then trusts.

Security notes:
  - initData and the issued JWT are never logged; the request-log
    middleware records method, path, status and latency only.
  - A failed verification always answers 401 with the same body,
    whichever check failed.
"""

from fastapi import APIRouter, Depends

from markethub.dependencies import get_storage
from markethub.schemas.auth import TokenResponse, VerifiedUserResponse, VerifyRequest
from markethub.services import identity_service
from markethub.storage.base import Storage

router = APIRouter()


@router.post(
    "/verify",
    response_model=TokenResponse,
    summary="Verify Telegram initData",
)
async def verify(
    request: VerifyRequest,
    storage: Storage = Depends(get_storage),
):
    """
    Exchange a signed Telegram initData string for an access token.

    - **initData**: The raw query string from `Telegram.WebApp.initData`
    """
    user, account, token = await identity_service.sign_in(storage, request.init_data)

    return TokenResponse(
        user=VerifiedUserResponse(
            id=user.user_id,
            first_name=account.first_name,
            username=account.username,
        ),
        token=token,
    )
