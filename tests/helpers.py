"""Shared test helpers: identities, tokens and store setup shortcuts."""

from decimal import Decimal

from markethub.domain import AssetDraft, EntryKind
from markethub.security import create_access_token

ADMIN_ID = "1000"
MEMBER_ID = "42"


def bearer(user_id: str) -> dict[str, str]:
    """Authorization header for a user, as issued by /api/auth/verify."""
    token = create_access_token(data={"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


async def fund(storage, user_id: str, amount: str) -> Decimal:
    """Give an account a starting balance."""
    async with storage.unit_of_work() as uow:
        return await uow.apply_delta(
            user_id, Decimal(amount), kind=EntryKind.CREDIT, actor_id=ADMIN_ID
        )


async def add_asset(storage, price: str, name: str = "Desk Calendar", number: int = 1,
                    asset_id: int | None = None):
    """Insert an unowned asset and return it."""
    link = f"https://t.me/nft/{name.replace(' ', '')}-{number}"
    async with storage.unit_of_work() as uow:
        return await uow.add_asset(AssetDraft(
            display_name=name,
            serial_number=number,
            price=Decimal(price),
            external_link=link,
            external_ref=link,
            asset_id=asset_id,
        ))


async def balance_of(storage, user_id: str) -> Decimal:
    async with storage.unit_of_work() as uow:
        account = await uow.get_account(user_id)
    return account.balance
