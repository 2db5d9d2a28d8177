"""
LedgerEntry model — the audit trail of every committed account mutation.

Every balance delta, point credit and premium extension writes one entry
in the same database transaction as the mutation itself, so the trail can
never disagree with the account row.

Key fields:
  - kind: "purchase", "credit", "points" or "premium"
  - amount_nanos: signed for balance entries (purchase < 0, credit > 0);
    for points/premium it holds the unit count in nano form
  - asset_id: the asset bought (purchase entries only)
  - actor_id: the privileged actor who issued a credit
  - reference: unique idempotency key. Purchases use "asset:<id>", which
    makes a second sale of the same asset impossible at the storage level;
    settlement callbacks use the external transaction reference, which
    makes replays no-ops.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from markethub.database import Base


class LedgerEntryModel(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    user_id: Mapped[str] = mapped_column(
        ForeignKey("accounts.user_id"),
        nullable=False,
        index=True,
    )

    kind: Mapped[str] = mapped_column(String(16), nullable=False)

    amount_nanos: Mapped[int] = mapped_column(BigInteger, nullable=False)

    asset_id: Mapped[int | None] = mapped_column(
        ForeignKey("assets.id"),
        nullable=True,
        index=True,
    )

    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    reference: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
