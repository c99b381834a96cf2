"""
Inventory API Router

Room types and the per-night ledger calendar:
- Room type administration (activation opens the calendar)
- Calendar reads and bulk edits (inclusive end date)
- Bottleneck availability for a stay (half-open range)
"""

import logging
from datetime import date, timedelta
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request

from ..exceptions import ValidationError
from ..schemas.inventory import (
    AvailabilityResponse,
    InventoryBulkUpdate,
    InventoryBulkUpdateResponse,
    InventoryDayResponse,
    InventoryInitialize,
    InventoryInitializeResponse,
    RoomTypeCreate,
    RoomTypeResponse,
    RoomTypeUpdate
)
from ..services.inventory_ledger import InventoryLedger
from ..services.inventory_service import InventoryService
from ..utils.dates import property_today
from ..utils.dependencies import get_inventory_service, get_ledger, get_request_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/inventory", tags=["Inventory"])


def _window(start: Optional[date], end: Optional[date], timezone_name: str = "UTC", default_days: int = 30):
    start = start or property_today(timezone_name)
    end = end or (start + timedelta(days=default_days))
    if end <= start:
        raise ValidationError({"end": "must be after start"})
    return start, end


# ==================
# Room Types
# ==================

@router.get("/room-types", response_model=List[RoomTypeResponse])
async def list_room_types(
    active_only: bool = Query(False),
    service: InventoryService = Depends(get_inventory_service)
):
    return service.list_room_types(active_only=active_only)


@router.post("/room-types", response_model=RoomTypeResponse, status_code=201)
async def create_room_type(
    request: Request,
    data: RoomTypeCreate,
    service: InventoryService = Depends(get_inventory_service)
):
    """Create a room type; an active one gets its calendar initialized"""
    room_type = service.create_room_type(**data.model_dump())
    logger.info(f"[{get_request_id(request)}] Room type {room_type.code} created")
    return room_type


@router.patch("/room-types/{room_type_id}", response_model=RoomTypeResponse)
async def update_room_type(
    room_type_id: str,
    data: RoomTypeUpdate,
    service: InventoryService = Depends(get_inventory_service)
):
    return service.update_room_type(room_type_id, **data.model_dump(exclude_unset=True))


# ==================
# Calendar
# ==================

@router.get("/{room_type_id}", response_model=List[InventoryDayResponse])
async def get_calendar(
    room_type_id: str,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None, description="Exclusive"),
    service: InventoryService = Depends(get_inventory_service)
):
    """Ledger rows for [start, end); defaults to the next 30 nights"""
    service.get_room_type(room_type_id)
    start, end = _window(start, end, service.settings.property_timezone)
    return service.ledger.get_for_range(room_type_id, start, end)


@router.put("/{room_type_id}", response_model=InventoryBulkUpdateResponse)
async def bulk_update(
    request: Request,
    room_type_id: str,
    data: InventoryBulkUpdate,
    service: InventoryService = Depends(get_inventory_service)
):
    """Overwrite counts and restrictions from start to end, both inclusive"""
    service.get_room_type(room_type_id)
    count = service.ledger.bulk_update(room_type_id, data.start, data.end, data.fields())
    logger.info(f"[{get_request_id(request)}] Bulk update {room_type_id} {data.start}..{data.end}: {count} night(s)")
    return InventoryBulkUpdateResponse(room_type_id=room_type_id, nights_updated=count)


@router.post("/{room_type_id}/initialize", response_model=InventoryInitializeResponse)
async def initialize(
    room_type_id: str,
    data: Optional[InventoryInitialize] = None,
    service: InventoryService = Depends(get_inventory_service)
):
    """Create missing nights with every room available; existing nights are untouched"""
    room_type = service.get_room_type(room_type_id)
    data = data or InventoryInitialize()
    if data.start and data.end and data.end < data.start:
        raise ValidationError({"end": "must not be before start"})
    created = service.initialize_calendar(room_type, data.start, data.end)
    return InventoryInitializeResponse(room_type_id=room_type_id, nights_created=created)


@router.get("/{room_type_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    room_type_id: str,
    start: date = Query(...),
    end: date = Query(..., description="Exclusive (check-out date)"),
    ledger: InventoryLedger = Depends(get_ledger)
):
    """Bottleneck availability for a stay of [start, end)"""
    start, end = _window(start, end)
    return AvailabilityResponse(
        room_type_id=room_type_id,
        start=start,
        end=end,
        min_available=ledger.get_min_availability(room_type_id, start, end),
        has_stop_sell=ledger.has_stop_sell(room_type_id, start, end),
        nights=[InventoryDayResponse.model_validate(row) for row in ledger.get_for_range(room_type_id, start, end)],
    )
