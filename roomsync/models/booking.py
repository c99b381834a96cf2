import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, String, Date, Integer, Numeric, Text, ForeignKey, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    def holds_inventory(self) -> bool:
        return self.value in INVENTORY_HOLDING_STATUSES


# The only definition of which booking states keep rooms deducted from the ledger
INVENTORY_HOLDING_STATUSES = frozenset({
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.CHECKED_IN.value,
})


def holds_inventory(status) -> bool:
    """Accepts a BookingStatus or its string value"""
    if isinstance(status, BookingStatus):
        return status.holds_inventory()
    return status in INVENTORY_HOLDING_STATUSES


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_type_id = Column(String(36), ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False)
    guest_name = Column(String(200), nullable=False, default="")
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(50), nullable=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    num_guests = Column(Integer, default=1)
    total_price = Column(Numeric(10, 2), default=0)
    currency = Column(String(3), nullable=True)
    status = Column(String(30), default=BookingStatus.CONFIRMED.value)
    # Whether this booking currently holds rooms in the ledger
    rooms_deducted = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    # Channel tracking; both NULL for direct bookings
    channel_name = Column(String(50), nullable=True)
    external_reservation_id = Column(String(255), nullable=True)
    channel_data = Column(Text, nullable=True)  # JSON string with original OTA data

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room_type = relationship("RoomType")

    __table_args__ = (
        UniqueConstraint("channel_name", "external_reservation_id", name="uq_booking_channel_external_ref"),
        Index("ix_booking_room_type_dates", "room_type_id", "check_in_date", "check_out_date"),
    )

    @property
    def holds_inventory(self) -> bool:
        return holds_inventory(self.status)

    def __repr__(self):
        return f"<Booking {self.id} {self.room_type_id} {self.check_in_date}..{self.check_out_date} {self.status}>"
