"""Domain records — plain dataclasses shared by both storage backends.

Storage implementations return these snapshots; nothing outside
markethub/storage ever touches ORM rows or backend dictionaries directly.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


class EntryKind(str, enum.Enum):
    """What a ledger entry records."""
    PURCHASE = "purchase"   # balance debit paired with an ownership claim
    CREDIT = "credit"       # privileged balance issuance
    POINTS = "points"       # settlement: secondary point balance
    PREMIUM = "premium"     # settlement: premium expiry extension


class SettlementKind(str, enum.Enum):
    """Account field an external payment callback credits."""
    POINTS = "points"
    PREMIUM_MONTHS = "premium_months"


# Largest whole-unit amount one settlement may carry
SETTLEMENT_LIMITS = {
    SettlementKind.POINTS: 1_000_000,
    SettlementKind.PREMIUM_MONTHS: 1200,
}

# points_balance is a 32-bit column
MAX_POINTS_BALANCE = 2**31 - 1


@dataclass(frozen=True)
class Account:
    user_id: str
    balance: Decimal
    points_balance: int = 0
    premium_until: datetime | None = None
    first_name: str | None = None
    username: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class Asset:
    asset_id: int
    display_name: str
    serial_number: int
    price: Decimal
    external_link: str | None = None
    image_url: str | None = None
    owner_id: str | None = None
    external_ref: str | None = None
    sender_id: str | None = None
    receiver_id: str | None = None
    created_at: datetime | None = None

    @property
    def is_owned(self) -> bool:
        return self.owner_id is not None


@dataclass(frozen=True)
class AssetDraft:
    """An asset as delivered by ingestion or seed data, before storage."""
    display_name: str
    serial_number: int
    price: Decimal
    external_link: str | None = None
    image_url: str | None = None
    external_ref: str | None = None
    sender_id: str | None = None
    receiver_id: str | None = None
    # Explicit id for seed data; storage assigns one when None
    asset_id: int | None = None


@dataclass(frozen=True)
class LedgerEntry:
    id: int
    user_id: str
    kind: EntryKind
    amount: Decimal
    asset_id: int | None = None
    actor_id: str | None = None
    reference: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class AuditReport:
    """Accounting identity check for one account."""
    user_id: str
    balance: Decimal
    total_purchase_debits: Decimal
    owned_asset_value: Decimal
    owned_asset_ids: list[int] = field(default_factory=list)

    @property
    def match(self) -> bool:
        return self.total_purchase_debits == self.owned_asset_value
