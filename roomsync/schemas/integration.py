"""
Channel Integration Schemas

Pydantic models for the channel integration API. Credentials are accepted
on write and never returned.
"""

from datetime import date, datetime
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field, model_validator


# ==================
# Channel Connection
# ==================

class ChannelConnectionCreate(BaseModel):
    """Schema for creating a channel connection"""
    channel_name: str = Field(..., max_length=50, description="Registered channel name, e.g. channex")
    credentials: Dict[str, str] = Field(default_factory=dict, description="Channel credential pairs")
    is_active: bool = False


class ChannelConnectionUpdate(BaseModel):
    """Schema for updating a channel connection"""
    credentials: Optional[Dict[str, str]] = None
    is_active: Optional[bool] = None


class ChannelConnectionResponse(BaseModel):
    """Schema for channel connection response"""
    id: str
    channel_name: str
    is_active: bool
    status: str
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    # Note: credentials are NOT exposed in responses

    class Config:
        from_attributes = True


class ConnectionTestResponse(BaseModel):
    success: bool
    channel_name: str
    message: str


class ChannelInfo(BaseModel):
    """A channel with a registered client"""
    channel_name: str
    label: str
    connected: bool = False


# ==================
# Channel Mapping
# ==================

class ChannelMappingCreate(BaseModel):
    """Schema for creating a channel mapping"""
    channel_name: str
    room_type_id: str
    rate_plan_id: int = 0
    external_room_id: str
    external_rate_id: Optional[str] = None
    sync_availability: bool = True
    sync_rates: bool = True
    sync_reservations: bool = True
    status: str = "active"


class ChannelMappingUpdate(BaseModel):
    """Schema for updating a channel mapping"""
    external_room_id: Optional[str] = None
    external_rate_id: Optional[str] = None
    rate_plan_id: Optional[int] = None
    sync_availability: Optional[bool] = None
    sync_rates: Optional[bool] = None
    sync_reservations: Optional[bool] = None
    status: Optional[str] = None


class ChannelMappingResponse(BaseModel):
    """Schema for channel mapping response"""
    id: str
    channel_name: str
    room_type_id: str
    rate_plan_id: int
    external_room_id: str
    external_rate_id: Optional[str] = None
    sync_availability: bool
    sync_rates: bool
    sync_reservations: bool
    status: str
    last_sync_at: Optional[datetime] = None
    last_sync_status: Optional[str] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ==================
# Sync
# ==================

class SyncRequest(BaseModel):
    """Manual "run sync now" trigger"""
    kind: Literal["push", "pull", "full"] = "full"
    channel: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.start and self.end and self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class SyncRunResponse(BaseModel):
    kind: str
    generation: int
    status: str
    results: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class SyncLogResponse(BaseModel):
    """Schema for sync log response"""
    id: int
    channel_name: str
    direction: str
    sync_type: str
    status: str
    records_processed: int
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    request_id: Optional[str] = None

    class Config:
        from_attributes = True


class SyncLogListResponse(BaseModel):
    """Paged sync log listing"""
    items: List[SyncLogResponse]
    total: int
    page: int
    per_page: int
