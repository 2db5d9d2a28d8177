"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from markethub.models directly
"""

from markethub.models.account import AccountModel  # noqa: F401
from markethub.models.asset import AssetModel  # noqa: F401
from markethub.models.ledger_entry import LedgerEntryModel  # noqa: F401
