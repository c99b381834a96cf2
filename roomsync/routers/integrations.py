"""
Integrations API Router

Admin endpoints for the channel sync engine:
- Channel connections (create, update, test)
- Channel mappings (room type + rate plan <-> channel ids)
- Manual "run sync now" trigger
- Sync log (observability)

Security:
- Credentials are write-only and never returned
- request_id in all logs
"""

import asyncio
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request, Response

from ..schemas.integration import (
    ChannelConnectionCreate,
    ChannelConnectionUpdate,
    ChannelConnectionResponse,
    ConnectionTestResponse,
    ChannelInfo,
    ChannelMappingCreate,
    ChannelMappingUpdate,
    ChannelMappingResponse,
    SyncRequest,
    SyncRunResponse,
    SyncLogResponse,
    SyncLogListResponse
)
from ..services.channel_clients import ChannelClientRegistry
from ..services.channel_registry import ChannelRegistryService
from ..services.scheduler import SyncScheduler
from ..services.sync_log import SyncLogRepository
from ..services.sync_orchestrator import SyncOrchestrator
from ..utils.dependencies import (
    get_client_registry,
    get_orchestrator,
    get_registry_service,
    get_request_id,
    get_scheduler,
    get_sync_log
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations", tags=["Integrations"])


# ==================
# Channels
# ==================

@router.get("/channels", response_model=List[ChannelInfo])
async def list_channels(
    clients: ChannelClientRegistry = Depends(get_client_registry),
    registry: ChannelRegistryService = Depends(get_registry_service)
):
    """Channels with a registered client, and whether each is connected"""
    connected = {c.channel_name for c in registry.list_connections()}
    return [
        ChannelInfo(channel_name=name, label=label, connected=name in connected)
        for name, label in clients.labels().items()
    ]


# ==================
# Channel Connections
# ==================

@router.get("/connections", response_model=List[ChannelConnectionResponse])
async def list_connections(registry: ChannelRegistryService = Depends(get_registry_service)):
    """List all channel connections"""
    return registry.list_connections()


@router.post("/connections", response_model=ChannelConnectionResponse, status_code=201)
async def create_connection(
    request: Request,
    connection_data: ChannelConnectionCreate,
    registry: ChannelRegistryService = Depends(get_registry_service)
):
    """Create a channel connection; credentials are encrypted before storage"""
    connection = registry.create_connection(
        channel_name=connection_data.channel_name,
        credentials=connection_data.credentials,
        is_active=connection_data.is_active
    )
    logger.info(f"[{get_request_id(request)}] Connection created for {connection.channel_name}")
    return connection


@router.get("/connections/{connection_id}", response_model=ChannelConnectionResponse)
async def get_connection(
    connection_id: str,
    registry: ChannelRegistryService = Depends(get_registry_service)
):
    """Get a channel connection by ID"""
    return registry.get_connection(connection_id)


@router.patch("/connections/{connection_id}", response_model=ChannelConnectionResponse)
async def update_connection(
    request: Request,
    connection_id: str,
    connection_data: ChannelConnectionUpdate,
    registry: ChannelRegistryService = Depends(get_registry_service)
):
    """Replace credentials and/or toggle a connection. New credentials clear an auth error."""
    connection = registry.update_connection(
        connection_id,
        credentials=connection_data.credentials,
        is_active=connection_data.is_active
    )
    logger.info(f"[{get_request_id(request)}] Connection {connection.channel_name} updated")
    return connection


@router.delete("/connections/{connection_id}", status_code=204)
async def delete_connection(
    connection_id: str,
    cascade: bool = Query(False, description="Also remove the channel's mappings"),
    registry: ChannelRegistryService = Depends(get_registry_service)
):
    """Delete a channel connection permanently"""
    registry.delete_connection(connection_id, cascade=cascade)
    return Response(status_code=204)


@router.post("/connections/{channel_name}/test", response_model=ConnectionTestResponse)
def test_connection(
    request: Request,
    channel_name: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
):
    """Check stored credentials against the channel. Does not write a sync log entry."""
    result = orchestrator.test_connection(channel_name)
    logger.info(f"[{get_request_id(request)}] Connection test {channel_name}: {result['message']}")
    return result


# ==================
# Channel Mappings
# ==================

@router.get("/mappings", response_model=List[ChannelMappingResponse])
async def list_mappings(
    channel: Optional[str] = Query(None),
    room_type_id: Optional[str] = Query(None),
    registry: ChannelRegistryService = Depends(get_registry_service)
):
    """List mappings, optionally filtered by channel and room type"""
    return registry.list_mappings(channel_name=channel, room_type_id=room_type_id)


@router.post("/mappings", response_model=ChannelMappingResponse, status_code=201)
async def create_mapping(
    mapping_data: ChannelMappingCreate,
    registry: ChannelRegistryService = Depends(get_registry_service)
):
    """Create a mapping between a local room type/rate plan and channel ids"""
    return registry.create_mapping(**mapping_data.model_dump())


@router.patch("/mappings/{mapping_id}", response_model=ChannelMappingResponse)
async def update_mapping(
    mapping_id: str,
    mapping_data: ChannelMappingUpdate,
    registry: ChannelRegistryService = Depends(get_registry_service)
):
    """Update a mapping"""
    return registry.update_mapping(mapping_id, **mapping_data.model_dump(exclude_unset=True))


@router.delete("/mappings/{mapping_id}", status_code=204)
async def delete_mapping(
    mapping_id: str,
    registry: ChannelRegistryService = Depends(get_registry_service)
):
    """Delete a mapping"""
    registry.delete_mapping(mapping_id)
    return Response(status_code=204)


# ==================
# Sync
# ==================

@router.post("/sync", response_model=SyncRunResponse)
async def run_sync(
    request: Request,
    sync_request: SyncRequest,
    scheduler: SyncScheduler = Depends(get_scheduler)
):
    """
    Run a sync now on the scheduler's worker pool and wait for it.

    kind: push (availability + rates), pull (reservations) or full.
    """
    request_id = get_request_id(request)
    options = {"channel_name": sync_request.channel}
    if sync_request.kind != "pull":
        options.update(start=sync_request.start, end=sync_request.end)

    logger.info(f"[{request_id}] Manual {sync_request.kind} sync requested (channel={sync_request.channel or 'all'})")
    summary = await asyncio.wrap_future(scheduler.trigger(sync_request.kind, **options))
    return summary


# ==================
# Sync Log
# ==================

@router.get("/logs", response_model=SyncLogListResponse)
async def list_sync_logs(
    channel: Optional[str] = Query(None),
    sync_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    sync_log: SyncLogRepository = Depends(get_sync_log)
):
    """List sync log entries, newest first"""
    items, total = sync_log.list(
        channel_name=channel,
        sync_type=sync_type,
        status=status,
        page=page,
        per_page=per_page
    )
    return SyncLogListResponse(items=items, total=total, page=page, per_page=per_page)


@router.get("/logs/recent", response_model=List[SyncLogResponse])
async def recent_sync_logs(
    limit: int = Query(20, ge=1, le=200),
    sync_log: SyncLogRepository = Depends(get_sync_log)
):
    """Most recent sync log entries"""
    return sync_log.recent(limit)
