"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager — creates the store, optionally seeds demo data,
     closes the store on shutdown
  2. Middleware — CORS and per-request logging
  3. Exception handlers — maps domain errors to HTTP responses
  4. Router registration — mounts all API endpoint groups under /api

Running locally:
    uvicorn markethub.main:app --reload

The store is an explicitly owned object on app.state; route handlers reach
it through the get_storage dependency, which tests override.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from markethub.config import settings
from markethub.exceptions import register_exception_handlers
from markethub.logging_config import configure_logging
from markethub.middleware import RequestLogMiddleware
from markethub.routers import account, admin, assets, auth, ingestion, settlements
from markethub.services.catalog_service import seed_demo_data
from markethub.storage.factory import build_storage

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      Configures logging, builds the store selected by STORAGE_BACKEND
      (creating SQL tables if they don't exist) and seeds the demo catalog
      when SEED_DEMO_DATA is set.

    Shutdown:
      Closes the store, disposing of any database connections.
    """
    # --- Startup ---
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    storage = build_storage(settings)
    await storage.start()
    if settings.SEED_DEMO_DATA:
        await seed_demo_data(storage)
    app.state.storage = storage
    logger.info("%s %s started (%s storage)", settings.APP_NAME, settings.APP_VERSION, settings.STORAGE_BACKEND)
    yield
    # --- Shutdown ---
    await storage.close()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Collectible storefront API: balances, catalog, purchases and settlements",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(RequestLogMiddleware)

# CORS: the mini-app frontend calls the API from its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(assets.router, prefix="/api", tags=["Catalog"])
app.include_router(account.router, prefix="/api", tags=["Account"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
app.include_router(ingestion.router, prefix="/api", tags=["Ingestion"])
app.include_router(settlements.router, prefix="/api", tags=["Settlements"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe; does not touch storage."""
    return {"status": "ok", "version": settings.APP_VERSION}
