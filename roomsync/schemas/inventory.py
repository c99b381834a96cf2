"""
Inventory Schemas

Room types and the per-night ledger calendar.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, model_validator


# ==================
# Room Type
# ==================

class RoomTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    total_rooms: int = Field(..., ge=0)
    base_price: Decimal = Field(default=Decimal("0"), ge=0)
    is_active: bool = True


class RoomTypeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    code: Optional[str] = Field(default=None, max_length=20)
    total_rooms: Optional[int] = Field(default=None, ge=0)
    base_price: Optional[Decimal] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class RoomTypeResponse(BaseModel):
    id: str
    name: str
    code: Optional[str] = None
    total_rooms: int
    base_price: Decimal
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ==================
# Calendar
# ==================

class InventoryDayResponse(BaseModel):
    date: date
    total_rooms: int
    available_rooms: int
    booked_rooms: int
    stop_sell: bool
    min_stay: int
    price_override: Optional[Decimal] = None

    class Config:
        from_attributes = True


class InventoryBulkUpdate(BaseModel):
    """Overwrite nights from start to end, both inclusive"""
    start: date
    end: date
    total_rooms: Optional[int] = Field(default=None, ge=0)
    available_rooms: Optional[int] = Field(default=None, ge=0)
    price_override: Optional[Decimal] = Field(default=None, ge=0)
    clear_price_override: bool = False
    stop_sell: Optional[bool] = None
    min_stay: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_range(self):
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self

    def fields(self) -> dict:
        data = self.model_dump(
            exclude={"start", "end", "clear_price_override"},
            exclude_none=True,
        )
        if self.clear_price_override:
            data["price_override"] = None
        return data


class InventoryBulkUpdateResponse(BaseModel):
    room_type_id: str
    nights_updated: int


class InventoryInitialize(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None


class InventoryInitializeResponse(BaseModel):
    room_type_id: str
    nights_created: int


class AvailabilityResponse(BaseModel):
    room_type_id: str
    start: date
    end: date
    min_available: int
    has_stop_sell: bool
    nights: List[InventoryDayResponse] = Field(default_factory=list)
