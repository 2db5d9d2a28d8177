"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This keeps secrets (JWT key, bot token) out of source code — the
.env file is gitignored, and .env.example provides a safe template.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from markethub.config import settings
    print(settings.ADMIN_USER_ID)
"""

from decimal import Decimal
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the MarketHub API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
      - ADMIN_USER_ID: The single identity allowed to issue balance
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "MarketHub API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    # "text" for development, "json" for log shippers
    LOG_FORMAT: Literal["text", "json"] = "text"

    # --- Storage ---
    # "sql" for the durable store, "memory" for demos and throwaway instances
    STORAGE_BACKEND: Literal["sql", "memory"] = "sql"
    # SQLite for development; swap to postgresql+asyncpg for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/markethub.db"
    # Attempts for read operations when the store reports a transient failure
    STORAGE_READ_RETRIES: int = 3

    # --- Authentication ---
    # REQUIRED: no default, the operator must set a real secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # --- Identity verification (Telegram WebApp initData) ---
    # Empty token means no credential can be verified
    TELEGRAM_BOT_TOKEN: str = ""
    INIT_DATA_MAX_AGE_SECONDS: int = 86400

    # --- Privileged actor ---
    # REQUIRED: the user id allowed to issue credit and run audits
    ADMIN_USER_ID: str

    # --- Catalog ingestion ---
    # Shared key for the sync worker; empty disables the ingestion endpoint
    INGEST_API_KEY: str = ""
    DEFAULT_ASSET_PRICE: Decimal = Decimal("1.0")
    FETCH_PREVIEW_IMAGES: bool = True
    PREVIEW_FETCH_TIMEOUT_SECONDS: float = 5.0
    PLACEHOLDER_IMAGE_URL: str = "/assets/placeholder1.png"

    # --- Demo data ---
    SEED_DEMO_DATA: bool = False

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
