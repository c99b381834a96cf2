"""
Inventory Ledger Models

RoomType: sellable room category with its physical room count.
InventoryDay: per room type, per night record of total/available/booked rooms.
This is the source of truth for internal availability.
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Date, DateTime, Boolean, Integer, Numeric, ForeignKey,
    Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from ..database import Base


class RoomType(Base):
    __tablename__ = "room_types"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=True, unique=True)
    base_price = Column(Numeric(10, 2), default=0)
    total_rooms = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    inventory_days = relationship("InventoryDay", back_populates="room_type", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<RoomType {self.code or self.id} rooms={self.total_rooms}>"


class InventoryDay(Base):
    """
    Daily inventory state for each room type.

    Rows are created ahead of time up to the sales horizon and are never
    deleted; deduct/restore and admin edits only ever update them.
    """
    __tablename__ = "inventory_days"

    id = Column(Integer, primary_key=True, autoincrement=True)

    room_type_id = Column(String(36), ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)

    # Counts
    total_rooms = Column(Integer, nullable=False, default=0)
    available_rooms = Column(Integer, nullable=False, default=0)
    booked_rooms = Column(Integer, nullable=False, default=0)

    # Restrictions
    stop_sell = Column(Boolean, nullable=False, default=False)
    min_stay = Column(Integer, nullable=False, default=1)
    price_override = Column(Numeric(10, 2), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room_type = relationship("RoomType", back_populates="inventory_days")

    __table_args__ = (
        UniqueConstraint('room_type_id', 'date', name='uq_inventory_room_type_date'),
        CheckConstraint('available_rooms >= 0', name='ck_inventory_available_non_negative'),
        CheckConstraint('booked_rooms >= 0', name='ck_inventory_booked_non_negative'),
        CheckConstraint('min_stay >= 1', name='ck_inventory_min_stay'),
        Index('ix_inventory_room_type_date', 'room_type_id', 'date'),
    )

    def __repr__(self):
        return (
            f"<InventoryDay {self.room_type_id} {self.date} "
            f"{self.available_rooms}/{self.total_rooms}{' stop' if self.stop_sell else ''}>"
        )
