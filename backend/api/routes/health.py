"""Liveness, database readiness and runtime status endpoints."""

import platform
import time
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from db import database

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

_booted_monotonic = time.monotonic()
_booted_at = datetime.now(timezone.utc).isoformat()


def _format_uptime(seconds: float) -> str:
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}h {minutes}m {secs}s"


@router.get("/", response_model=dict[str, Any])
async def liveness() -> dict[str, Any]:
    settings = get_settings()
    return {"app": settings.APP_NAME, "version": settings.APP_VERSION, "status": "ok"}


@router.get("/health", response_model=dict[str, Any])
async def readiness() -> dict[str, Any]:
    """503 when the execution history database cannot be reached."""
    try:
        async with database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database readiness check failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "checks": {"database": "unavailable"}},
        )
    return {"status": "healthy", "database": "ok"}


@router.get("/status", response_model=dict[str, Any])
async def runtime_status(request: Request) -> dict[str, Any]:
    """Uptime plus what the decisioning runtime currently has in flight."""
    settings = get_settings()
    uptime = time.monotonic() - _booted_monotonic

    runtime = getattr(request.app.state, "runtime", None)
    in_flight = len(runtime.engine.get_running_executions()) if runtime else 0
    pending = len(runtime.operations.list_pending()) if runtime else 0

    body: dict[str, Any] = {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "started_at": _booted_at,
        "uptime": _format_uptime(uptime),
        "uptime_seconds": round(uptime, 1),
        "python": platform.python_version(),
        "engine": {"in_flight_executions": in_flight, "pending_operations": pending},
    }
    if runtime is not None:
        body["capabilities"] = {
            "node_types": runtime.engine.executor_factory.registered_node_types(),
            "action_types": runtime.actions.available_types,
            "data_sources": [s["source_type"] for s in runtime.data_sources.list_all()],
        }
    return body
