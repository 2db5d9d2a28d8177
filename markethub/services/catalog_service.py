"""
Catalog service — listing, ingestion and demo seed data.

Ingestion:
  The sync worker reports incoming NFT gifts as (name, number, sender,
  receiver). Each one becomes a purchasable asset:
    - external_link: https://t.me/nft/<name>-<number> (URL-encoded parts)
    - external_ref:  the link, unless the event carries its own reference
    - price:         DEFAULT_ASSET_PRICE unless the event sets one
    - image_url:     the page's og:image / twitter:image when it can be
                     fetched, the placeholder otherwise (best effort)

  Delivery is at-least-once, so ingestion is idempotent on external_ref:
  a retried event returns the asset created the first time instead of
  minting a second purchasable copy. The unique constraint in storage
  settles races between two concurrent deliveries.
"""

import logging
from decimal import Decimal
from urllib.parse import quote

import httpx
from lxml import etree, html

from markethub.config import settings
from markethub.domain import Asset, AssetDraft, EntryKind
from markethub.exceptions import DuplicateAssetError, InvalidAmountError
from markethub.money import to_decimal
from markethub.storage.base import Storage, StorageSession
from markethub.storage.retry import read_with_retry

logger = logging.getLogger(__name__)

NFT_LINK_BASE = "https://t.me/nft/"

_PREVIEW_XPATHS = (
    '//meta[@property="og:image"]/@content',
    '//meta[@name="twitter:image"]/@content',
)

# Demo catalog and balances loaded when SEED_DEMO_DATA is enabled
DEMO_ASSETS = [
    AssetDraft("Desk Calendar", 4567, Decimal("2.5"),
               "https://t.me/nft/DeskCalendar-4567", "/assets/placeholder1.png",
               external_ref="https://t.me/nft/DeskCalendar-4567"),
    AssetDraft("Abstract Soul", 12, Decimal("1.2"),
               "https://t.me/nft/AbstractSoul-12", "/assets/placeholder2.png",
               external_ref="https://t.me/nft/AbstractSoul-12"),
    AssetDraft("Blue Planet", 77, Decimal("3.0"),
               "https://t.me/nft/BluePlanet-77", "/assets/placeholder3.png",
               external_ref="https://t.me/nft/BluePlanet-77"),
    AssetDraft("Fragment #9", 9, Decimal("0.5"),
               "https://t.me/nft/Fragment-9", "/assets/placeholder4.png",
               external_ref="https://t.me/nft/Fragment-9"),
]
DEMO_BALANCES = {"12345678": Decimal("20.0")}


def build_nft_link(name: str, number: int | str) -> str:
    """Public t.me/nft link, with percent-encoded parts."""
    safe = "!*'()"
    return f"{NFT_LINK_BASE}{quote(str(name), safe=safe)}-{quote(str(number), safe=safe)}"


async def list_assets(storage: Storage) -> list[Asset]:
    """All assets, ordered by asset id."""
    async def read(uow: StorageSession) -> list[Asset]:
        return await uow.list_assets()

    return await read_with_retry(storage, read)


async def get_asset(storage: Storage, asset_id: int) -> Asset:
    """
    Raises:
        AssetNotFoundError: If the asset doesn't exist.
    """
    async def read(uow: StorageSession) -> Asset:
        return await uow.get_asset(asset_id)

    return await read_with_retry(storage, read)


async def find_by_reference(storage: Storage, external_ref: str) -> Asset | None:
    async def read(uow: StorageSession) -> Asset | None:
        return await uow.find_asset_by_ref(external_ref)

    return await read_with_retry(storage, read)


async def fetch_preview_image(link: str, timeout: float | None = None) -> str | None:
    """
    Best-effort lookup of a page's preview image.

    Returns None on any network, HTTP or parse failure — the caller falls
    back to the placeholder image.
    """
    try:
        async with httpx.AsyncClient(
            timeout=timeout or settings.PREVIEW_FETCH_TIMEOUT_SECONDS,
            follow_redirects=True,
        ) as client:
            response = await client.get(link)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.info("Preview fetch failed for %s: %s", link, exc)
        return None

    try:
        document = html.fromstring(response.text)
    except (etree.ParserError, ValueError):
        return None

    for xpath in _PREVIEW_XPATHS:
        for value in document.xpath(xpath):
            if value.strip():
                return value.strip()
    return None


async def ingest_asset(
    storage: Storage,
    display_name: str,
    serial_number: int,
    sender_id: str | None = None,
    receiver_id: str | None = None,
    price: Decimal | int | str | None = None,
    external_ref: str | None = None,
    image_url: str | None = None,
    fetch_preview: bool | None = None,
) -> Asset:
    """
    Create a purchasable asset from an external event, at most once.

    Returns:
        The new asset, or the existing one if this event was ingested before.

    Raises:
        InvalidAmountError: If the price is not positive.
    """
    value = to_decimal(settings.DEFAULT_ASSET_PRICE if price is None else price)
    if value <= 0:
        raise InvalidAmountError("Asset price must be positive")

    link = build_nft_link(display_name, serial_number)
    ref = external_ref or link

    existing = await find_by_reference(storage, ref)
    if existing is not None:
        logger.info("Ingestion of %s skipped: already asset %s", ref, existing.asset_id)
        return existing

    should_fetch = settings.FETCH_PREVIEW_IMAGES if fetch_preview is None else fetch_preview
    if image_url is None and should_fetch:
        image_url = await fetch_preview_image(link)

    draft = AssetDraft(
        display_name=display_name,
        serial_number=serial_number,
        price=value,
        external_link=link,
        image_url=image_url or settings.PLACEHOLDER_IMAGE_URL,
        external_ref=ref,
        sender_id=None if sender_id is None else str(sender_id),
        receiver_id=None if receiver_id is None else str(receiver_id),
    )

    try:
        async with storage.unit_of_work() as uow:
            asset = await uow.add_asset(draft)
    except DuplicateAssetError:
        # A concurrent delivery of the same event committed first
        existing = await find_by_reference(storage, ref)
        if existing is None:
            raise
        return existing

    logger.info("Ingested asset %s (%s #%s) at %s", asset.asset_id, display_name, serial_number, value)
    return asset


async def seed_demo_data(storage: Storage) -> None:
    """Load the demo catalog and balances; safe to run on every start."""
    created = 0
    for draft in DEMO_ASSETS:
        if await find_by_reference(storage, draft.external_ref) is not None:
            continue
        async with storage.unit_of_work() as uow:
            await uow.add_asset(draft)
        created += 1

    for user_id, balance in DEMO_BALANCES.items():
        async with storage.unit_of_work() as uow:
            account = await uow.get_account(user_id)
            if account.balance < balance:
                await uow.apply_delta(
                    user_id, balance - account.balance, kind=EntryKind.CREDIT, actor_id="seed"
                )

    logger.info("Demo data seeded (%d new assets)", created)
