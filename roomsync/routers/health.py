"""
Health Check Endpoints

- /health/live - process is up
- /health/ready - database answers, 503 otherwise
- /health/detailed - database probe plus per-channel sync state
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import Settings
from ..database import get_db
from ..models.channel_integration import ChannelConnection, SyncLogEntry
from ..services.scheduler import SyncScheduler
from ..utils.dependencies import get_app_settings, get_scheduler

router = APIRouter(prefix="/health", tags=["Health"])


def _stamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def probe_database(db: Session) -> Dict[str, Any]:
    """Round-trip a trivial query and time it"""
    began = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "down", "error": str(e)[:100]}
    return {
        "status": "up",
        "backend": db.bind.url.get_backend_name(),
        "latency_ms": round((time.perf_counter() - began) * 1000, 2),
    }


def channel_states(db: Session) -> Dict[str, Any]:
    states = {}
    connections = db.query(ChannelConnection).order_by(ChannelConnection.channel_name).all()
    for connection in connections:
        last_run = db.query(SyncLogEntry).filter(
            SyncLogEntry.channel_name == connection.channel_name
        ).order_by(SyncLogEntry.started_at.desc(), SyncLogEntry.id.desc()).first()

        state = {
            "status": connection.status if connection.is_active else "disabled",
            "last_sync_at": connection.last_sync_at.isoformat() if connection.last_sync_at else None,
            "last_error": connection.last_error,
            "last_run": None,
        }
        if last_run:
            state["last_run"] = {
                "sync_type": last_run.sync_type,
                "status": last_run.status,
                "started_at": last_run.started_at.isoformat(),
            }
        states[connection.channel_name] = state
    return states


# ================================
# ENDPOINTS
# ================================

@router.get("")
async def health():
    return {"status": "healthy", "timestamp": _stamp()}


@router.get("/live")
async def live():
    """Liveness probe for the process supervisor"""
    return {"status": "alive", "timestamp": _stamp()}


@router.get("/ready")
async def ready(db: Session = Depends(get_db)):
    """Readiness probe. Unready while the database cannot be reached."""
    database = probe_database(db)
    if database["status"] != "up":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "reason": "database_unavailable", "timestamp": _stamp()},
        )
    return {"status": "ready", "timestamp": _stamp()}


@router.get("/detailed")
async def detailed(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_app_settings),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """
    Component report. Any active connection parked in `error` (auth failure
    or repeated sync failures) marks the service as degraded.
    """
    database = probe_database(db)
    channels: Dict[str, Any] = {}

    if database["status"] != "up":
        overall = "unhealthy"
    else:
        channels = channel_states(db)
        overall = "degraded" if any(c["status"] == "error" for c in channels.values()) else "healthy"

    return {
        "status": overall,
        "timestamp": _stamp(),
        "environment": app_settings.environment,
        "checks": {"database": database, "channels": channels},
        "scheduler": {
            "enabled": app_settings.scheduler_enabled,
            "running": scheduler.running,
            "jobs": scheduler.jobs(),
            "pull_interval_seconds": app_settings.pull_interval_seconds,
            "push_interval_seconds": app_settings.push_interval_seconds,
        },
    }
