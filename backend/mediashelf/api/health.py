"""Liveness endpoint: database reachability plus the startup provider probe."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mediashelf.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check could not reach the database: {e}")
        database = "unreachable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "version": "0.1.0",
        "checked_at": datetime.now(timezone.utc).isoformat(),
        "database": database,
        "integrations": getattr(request.app.state, "integrations", {}),
    }
