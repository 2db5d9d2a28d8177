"""
FastAPI dependencies for storage access and authentication.

Dependencies are reusable functions that FastAPI injects into route
handlers:

  get_storage              (app.state -> Storage)
  get_current_user_id      (Bearer JWT -> verified user id)
  require_ingest_key       (X-Ingest-Key header -> None)

The acting user of every purchase, credit and settlement is whatever
get_current_user_id returns. Request bodies never carry it, so a client
cannot act on someone else's behalf by editing a field.

Whether that user is the privileged actor is decided in the service layer
(credit_service.require_privileged), not here, so the rule holds for
callers that bypass HTTP too.
"""

import hmac

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from markethub.config import settings
from markethub.security import decode_access_token
from markethub.storage.base import Storage


# auto_error=False so a missing header gets the same 401 body as a bad token
bearer_scheme = HTTPBearer(auto_error=False)
ingest_key_scheme = APIKeyHeader(name="X-Ingest-Key", auto_error=False)


def get_storage(request: Request) -> Storage:
    """The store created in the application lifespan."""
    return request.app.state.storage


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """
    Validate the bearer token and return its subject.

    Raises:
        HTTPException 401: If the token is missing, expired, or invalid.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception
    return str(user_id)


async def require_ingest_key(api_key: str | None = Depends(ingest_key_scheme)) -> None:
    """
    Guard for the sync worker endpoint.

    Raises:
        HTTPException 403: If ingestion is disabled (no key configured) or
            the header doesn't match.
    """
    expected = settings.INGEST_API_KEY
    if not expected or not api_key or not hmac.compare_digest(api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid ingest key",
        )
