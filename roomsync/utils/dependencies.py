"""
FastAPI dependencies

Process-wide collaborators live on app.state (built in the lifespan);
per-request services wrap them around the request's DB session.
"""

import uuid

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..config import Settings
from ..database import get_db
from ..services.channel_clients import ChannelClientRegistry
from ..services.channel_registry import ChannelRegistryService
from ..services.inventory_ledger import InventoryLedger
from ..services.inventory_service import InventoryService
from ..services.scheduler import SyncScheduler
from ..services.sync_log import SyncLogRepository
from ..services.sync_orchestrator import SyncOrchestrator


def get_request_id(request: Request) -> str:
    """Get request_id from request state or generate one"""
    return getattr(request.state, "request_id", str(uuid.uuid4())[:8])


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_client_registry(request: Request) -> ChannelClientRegistry:
    return request.app.state.clients


def get_scheduler(request: Request) -> SyncScheduler:
    return request.app.state.scheduler


def get_ledger(db: Session = Depends(get_db)) -> InventoryLedger:
    return InventoryLedger(db)


def get_inventory_service(
    request: Request,
    db: Session = Depends(get_db)
) -> InventoryService:
    return InventoryService(db, InventoryLedger(db), request.app.state.settings)


def get_registry_service(request: Request, db: Session = Depends(get_db)) -> ChannelRegistryService:
    return ChannelRegistryService(db, request.app.state.vault, request.app.state.clients)


def get_sync_log(db: Session = Depends(get_db)) -> SyncLogRepository:
    return SyncLogRepository(db)


def get_orchestrator(request: Request, db: Session = Depends(get_db)) -> SyncOrchestrator:
    state = request.app.state
    return SyncOrchestrator.build(db, state.vault, state.clients, state.settings, state.event_bus)
