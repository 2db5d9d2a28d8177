"""
Asset model — a uniquely ownable collectible in the catalog.

Each asset has:
  - A display name and serial number (e.g. "Desk Calendar" #4567)
  - A price in integer nano units (strictly positive)
  - The public t.me/nft link and a preview image URL
  - An optional owner — write-once

Ownership:
  `owner_id` starts NULL and is set by a compare-and-set UPDATE
  (... WHERE owner_id IS NULL). Once a purchase commits, no code path
  writes the column again: there is no resale and no reassignment. The
  only way a claim disappears is the rollback of the very transaction that
  made it.

Ingestion:
  `external_ref` identifies the external event an asset was minted from
  (the t.me link by default). It is UNIQUE, so a retried delivery of the
  same event cannot create a second purchasable asset.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from markethub.database import Base


class AssetModel(Base):
    __tablename__ = "assets"

    __table_args__ = (
        CheckConstraint("price_nanos > 0", name="ck_assets_positive_price"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    serial_number: Mapped[int] = mapped_column(Integer, nullable=False)

    price_nanos: Mapped[int] = mapped_column(BigInteger, nullable=False)

    external_link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Write-once: NULL until the single successful purchase
    owner_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    # Dedup key for ingestion retries
    external_ref: Mapped[str | None] = mapped_column(
        String(512),
        nullable=True,
        unique=True,
    )

    # Gift metadata from the ingestion feed
    sender_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    receiver_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    sold_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
