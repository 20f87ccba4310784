"""
Rotating Savings Pool API - Main Application.

Wires the pools and contributions routers under /api/v1. Identity is taken
from headers set by the upstream session layer (see api/dependencies.py).
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Rotating Savings Pool API",
    description="Contributions, early and regular payouts, and round scheduling for rotating savings pools",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Browser clients call the API directly during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """Liveness probe; reports which pool store this process writes to."""
    return {
        "status": "healthy",
        "version": __version__,
        "service": "pool-rounds-api",
        "store": settings.pool_store,
    }


@app.get("/", tags=["Root"])
def root():
    return {
        "message": "Rotating Savings Pool API",
        "version": __version__,
        "pools": "/api/v1/pools",
        "docs": "/docs",
    }


from api.routers import contributions, pools  # noqa: E402

app.include_router(pools.router, prefix="/api/v1", tags=["Pools"])
app.include_router(contributions.router, prefix="/api/v1", tags=["Contributions"])
