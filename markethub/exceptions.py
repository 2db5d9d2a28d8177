"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors (like InsufficientFundsError)
without importing HTTP concepts. The handlers registered here translate them
into HTTP responses with a consistent body:

    {"detail": "...", "error_type": "...", ...extra fields}

so the client can branch on `error_type` instead of parsing messages.

Exception hierarchy:
    MarketHubError (base)
    ├── InvalidCredentialError   — identity credential failed verification
    ├── UnauthorizedError        — actor is not allowed to perform the operation
    ├── AssetNotFoundError       — requested asset doesn't exist
    ├── AlreadyOwnedError        — asset already has an owner
    ├── DuplicateAssetError      — asset id / external reference already present
    ├── InsufficientFundsError   — debit would make the balance negative
    ├── InvalidAmountError       — amount is non-positive, malformed or out of range
    ├── InvalidReferenceError    — settlement reference is missing or blank
    ├── DuplicateReferenceError  — settlement reference already applied
    ├── StorageUnavailableError  — transient storage failure, safe to retry reads
    └── InvariantViolationError  — a core invariant was about to break
"""

import logging
from decimal import Decimal

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class MarketHubError(Exception):
    """Base exception for all MarketHub domain errors."""

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class InvalidCredentialError(MarketHubError):
    """Raised when an identity credential cannot be verified."""

    def __init__(self, detail: str = "Invalid credential"):
        super().__init__(detail)


class UnauthorizedError(MarketHubError):
    """Raised when the acting user is not allowed to perform an operation."""

    def __init__(self, detail: str = "Not authorized"):
        super().__init__(detail)


class AssetNotFoundError(MarketHubError):
    """Raised when a requested asset does not exist."""

    def __init__(self, asset_id: int):
        self.asset_id = asset_id
        super().__init__(f"Asset {asset_id} not found")


class AlreadyOwnedError(MarketHubError):
    """Raised when claiming an asset that already has an owner."""

    def __init__(self, asset_id: int):
        self.asset_id = asset_id
        super().__init__(f"Asset {asset_id} is already owned")


class DuplicateAssetError(MarketHubError):
    """Raised when inserting an asset whose id or external reference exists."""

    def __init__(self, asset_id: int | None = None, external_ref: str | None = None):
        self.asset_id = asset_id
        self.external_ref = external_ref
        key = f"id {asset_id}" if asset_id is not None else f"reference {external_ref}"
        super().__init__(f"Asset with {key} already exists")


class InsufficientFundsError(MarketHubError):
    """
    Raised when a debit would cause a negative balance.

    Attributes:
        user_id: The account that lacks sufficient funds.
        required: The amount the operation tried to debit.
        available: The current balance of the account.
    """

    def __init__(self, user_id: str, required: Decimal, available: Decimal):
        self.user_id = user_id
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient funds: required {required}, available {available}"
        )


class InvalidAmountError(MarketHubError):
    """Raised when an amount is non-positive, not finite, or too precise."""

    def __init__(self, detail: str = "Amount must be positive"):
        super().__init__(detail)


class InvalidReferenceError(MarketHubError):
    """Raised when an external payment reference is missing or blank."""

    def __init__(self, detail: str = "A settlement reference is required"):
        super().__init__(detail)


class DuplicateReferenceError(MarketHubError):
    """Raised by storage when a ledger reference has already been recorded."""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Reference {reference} has already been applied")


class StorageUnavailableError(MarketHubError):
    """Transient storage failure. Reads may be retried; writes are not."""

    def __init__(self, detail: str = "Storage is temporarily unavailable"):
        super().__init__(detail)


class InvariantViolationError(MarketHubError):
    """
    A core invariant (non-negative balance, write-once ownership) was about
    to be broken. The operation is aborted without partial mutation.
    """

    def __init__(self, detail: str):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Each handler maps a domain exception to an HTTP status code and the
    {"detail", "error_type"} response format.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(InvalidCredentialError)
    async def invalid_credential_handler(
        request: Request, exc: InvalidCredentialError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"detail": exc.detail, "error_type": "invalid_credential"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(
        request: Request, exc: UnauthorizedError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=403,
            content={"detail": exc.detail, "error_type": "unauthorized"},
        )

    @app.exception_handler(AssetNotFoundError)
    async def asset_not_found_handler(
        request: Request, exc: AssetNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"detail": exc.detail, "error_type": "asset_not_found"},
        )

    @app.exception_handler(AlreadyOwnedError)
    async def already_owned_handler(
        request: Request, exc: AlreadyOwnedError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,  # someone already holds the asset
            content={"detail": exc.detail, "error_type": "already_owned"},
        )

    @app.exception_handler(DuplicateAssetError)
    async def duplicate_asset_handler(
        request: Request, exc: DuplicateAssetError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": exc.detail, "error_type": "duplicate_asset"},
        )

    @app.exception_handler(InsufficientFundsError)
    async def insufficient_funds_handler(
        request: Request, exc: InsufficientFundsError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,  # the request was valid but business rules reject it
            content={
                "detail": exc.detail,
                "error_type": "insufficient_funds",
                "balance": str(exc.available),
                "price": str(exc.required),
            },
        )

    @app.exception_handler(InvalidAmountError)
    async def invalid_amount_handler(
        request: Request, exc: InvalidAmountError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": exc.detail, "error_type": "invalid_amount"},
        )

    @app.exception_handler(InvalidReferenceError)
    async def invalid_reference_handler(
        request: Request, exc: InvalidReferenceError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": exc.detail, "error_type": "invalid_reference"},
        )

    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable_handler(
        request: Request, exc: StorageUnavailableError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": exc.detail, "error_type": "storage_unavailable"},
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(InvariantViolationError)
    async def invariant_violation_handler(
        request: Request, exc: InvariantViolationError
    ) -> JSONResponse:
        logger.critical(
            "Invariant violation on %s %s: %s",
            request.method, request.url.path, exc.detail,
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal consistency error",
                "error_type": "invariant_violation",
            },
        )
