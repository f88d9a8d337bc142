"""
storefront_data.api.routers.health

Health and readiness endpoints.

Responsibilities:
- Provide the liveness check (`/healthz`).
- Provide the readiness check (`/readyz`) with one round trip to the database.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text

from storefront_data.api.deps import database
from storefront_data.db.facade import Database

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(db: Database = Depends(database)) -> dict[str, str]:
    # TransportError here becomes a 503 via the app's exception handler.
    await db.executor.execute(text("SELECT 1"))
    return {"status": "ready"}
