"""
Pydantic schemas for the Telegram sign-in endpoint.

The client posts the raw initData string exactly as Telegram handed it to
the mini-app; verification happens in identity_service.
"""

from pydantic import BaseModel, Field


class VerifyRequest(BaseModel):
    """Request body for POST /api/auth/verify."""
    init_data: str = Field(min_length=1, alias="initData")

    model_config = {"populate_by_name": True}


class VerifiedUserResponse(BaseModel):
    id: str
    first_name: str | None = None
    username: str | None = None


class TokenResponse(BaseModel):
    """Response body for a successful verification — profile + JWT."""
    user: VerifiedUserResponse
    token: str
    token_type: str = "bearer"
