"""
Account model — the per-user balance record.

Each account is keyed by the verified user id (the Telegram user id as a
string) and holds:
  - balance_nanos: spendable balance in integer nano units
  - points_balance: secondary point balance credited by payment callbacks
  - premium_until: premium subscription expiry, extended by callbacks
  - first_name / username: profile fields captured at identity verification

Balance management:
  `balance_nanos` is only ever changed by a conditional UPDATE
  (balance_nanos >= -delta for debits) issued by SqlStorage.apply_delta,
  so two concurrent debits can never both pass a stale read.

  A CHECK constraint at the database level enforces that the balance can
  never go negative. The conditional UPDATE already guarantees this; the
  constraint is the final safety net, and tripping it is reported as an
  invariant violation rather than a business error.

Why integer nano units?
  1 TON = 1_000_000_000 nanotons. Integers make every database-side sum
  exact; money.py converts to and from Decimal at the storage boundary.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from markethub.database import Base


class AccountModel(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        CheckConstraint(
            "balance_nanos >= 0",
            name="ck_accounts_non_negative_balance",
        ),
        CheckConstraint(
            "points_balance >= 0",
            name="ck_accounts_non_negative_points",
        ),
    )

    # Verified user identifier; accounts are created lazily on first lookup
    user_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    balance_nanos: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    points_balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    premium_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
