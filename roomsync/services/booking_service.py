"""
Booking Service

Reference booking lifecycle for the ledger and the sync engine:
- Direct bookings deduct inventory before they are stored
- External (OTA) bookings are deduplicated by (channel, reservation ref)
- Status changes deduct or restore through the single holds-inventory rule
- Lifecycle events are published on the event bus after the ledger commits
"""

import json
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import (
    DuplicateReservationError,
    InsufficientInventoryError,
    NotFoundError,
    ValidationError
)
from ..models.booking import Booking, BookingStatus, holds_inventory
from ..models.inventory import RoomType
from .event_bus import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    BOOKING_CREATED,
    BookingEvent,
    EventBus
)
from .inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)

BOOKING_STATUSES = {s.value for s in BookingStatus}

STATUS_EVENTS = {
    BookingStatus.CONFIRMED.value: BOOKING_CONFIRMED,
    BookingStatus.CANCELLED.value: BOOKING_CANCELLED,
}


class BookingService:
    def __init__(self, db: Session, ledger: InventoryLedger, event_bus: Optional[EventBus] = None):
        self.db = db
        self.ledger = ledger
        self.event_bus = event_bus

    def _validate_stay(self, room_type_id: str, check_in: date, check_out: date, quantity: int) -> None:
        errors = {}
        if not check_in or not check_out:
            errors["dates"] = "check_in and check_out are required"
        elif check_out <= check_in:
            errors["check_out"] = "must be after check_in"
        if quantity < 1:
            errors["quantity"] = "must be at least 1"
        if errors:
            raise ValidationError(errors)
        if not self.db.query(RoomType.id).filter(RoomType.id == room_type_id).first():
            raise NotFoundError(f"Room type {room_type_id} not found")

    def get(self, booking_id: str) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def find_external(self, channel_name: str, external_ref: str) -> Optional[Booking]:
        return self.db.query(Booking).filter(
            Booking.channel_name == channel_name,
            Booking.external_reservation_id == external_ref
        ).first()

    def notify(self, event_type: str, booking: Booking) -> None:
        if not self.event_bus:
            return
        self.event_bus.publish(event_type, BookingEvent(
            room_type_id=booking.room_type_id,
            check_in=booking.check_in_date,
            check_out=booking.check_out_date,
            booking_id=booking.id,
            status=booking.status,
        ))

    # ==================
    # Creation
    # ==================

    def create_direct(
        self,
        room_type_id: str,
        check_in: date,
        check_out: date,
        guest_info: Dict[str, Any],
        quantity: int = 1,
        status: str = BookingStatus.CONFIRMED.value
    ) -> Booking:
        """Deduct first, then store. Raises InsufficientInventoryError when the ledger refuses."""
        self._validate_stay(room_type_id, check_in, check_out, quantity)

        deducted = False
        if holds_inventory(status):
            if not self.ledger.deduct_rooms(room_type_id, check_in, check_out, quantity):
                raise InsufficientInventoryError(room_type_id, check_in, check_out, quantity)
            deducted = True

        booking = Booking(
            room_type_id=room_type_id,
            check_in_date=check_in,
            check_out_date=check_out,
            quantity=quantity,
            status=status,
            rooms_deducted=deducted,
            guest_name=guest_info.get("name") or "",
            guest_email=guest_info.get("email"),
            guest_phone=guest_info.get("phone"),
            num_guests=guest_info.get("num_guests") or 1,
            total_price=Decimal(str(guest_info.get("total_amount") or 0)),
            currency=guest_info.get("currency"),
            notes=guest_info.get("special_requests"),
        )

        try:
            self.db.add(booking)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            if deducted:
                self.ledger.restore_rooms(room_type_id, check_in, check_out, quantity)
            raise

        self.db.refresh(booking)
        logger.info(f"Booking {booking.id} created for room type {room_type_id} {check_in}..{check_out}")
        self.notify(BOOKING_CREATED, booking)
        return booking

    def create_from_external(
        self,
        room_type_id: str,
        check_in: date,
        check_out: date,
        external_ref: str,
        guest_info: Dict[str, Any],
        channel_name: str,
        quantity: int = 1
    ) -> Booking:
        """
        Store a reservation pulled from a channel. Inventory is not touched
        here; the caller deducts once the booking exists.
        Raises DuplicateReservationError for an already imported reference.
        """
        self._validate_stay(room_type_id, check_in, check_out, quantity)

        existing = self.find_external(channel_name, external_ref)
        if existing:
            raise DuplicateReservationError(channel_name, external_ref, existing.id)

        status = guest_info.get("status")
        if status not in BOOKING_STATUSES:
            status = BookingStatus.CONFIRMED.value

        booking = Booking(
            room_type_id=room_type_id,
            check_in_date=check_in,
            check_out_date=check_out,
            quantity=quantity,
            status=status,
            rooms_deducted=False,
            guest_name=guest_info.get("name") or "OTA Guest",
            guest_email=guest_info.get("email"),
            guest_phone=guest_info.get("phone"),
            num_guests=guest_info.get("num_guests") or 1,
            total_price=Decimal(str(guest_info.get("total_amount") or 0)),
            currency=guest_info.get("currency"),
            notes=guest_info.get("special_requests"),
            channel_name=channel_name,
            external_reservation_id=external_ref,
            channel_data=json.dumps(guest_info.get("raw") or {}, default=str),
        )

        try:
            self.db.add(booking)
            self.db.commit()
        except IntegrityError:
            # Same reference stored by a concurrent pull
            self.db.rollback()
            existing = self.find_external(channel_name, external_ref)
            raise DuplicateReservationError(channel_name, external_ref, existing.id if existing else None)

        self.db.refresh(booking)
        logger.info(f"Imported {channel_name} reservation {external_ref} as booking {booking.id}")
        return booking

    def mark_rooms_deducted(self, booking: Booking) -> None:
        booking.rooms_deducted = True
        self.db.commit()

    # ==================
    # Status changes
    # ==================

    def update_status(self, booking_id: str, new_status: str) -> Booking:
        """
        Move a booking to new_status, deducting or restoring rooms when the
        move crosses the holds-inventory line.
        """
        booking = self.get(booking_id)
        new_status = getattr(new_status, "value", new_status)
        if booking.status == new_status:
            return booking

        room_type_id = booking.room_type_id
        check_in, check_out, quantity = booking.check_in_date, booking.check_out_date, booking.quantity or 1
        old_status = booking.status

        if holds_inventory(new_status) and not booking.rooms_deducted:
            if not self.ledger.deduct_rooms(room_type_id, check_in, check_out, quantity):
                raise InsufficientInventoryError(room_type_id, check_in, check_out, quantity)
            booking = self.get(booking_id)
            booking.rooms_deducted = True
        elif not holds_inventory(new_status) and booking.rooms_deducted:
            self.ledger.restore_rooms(room_type_id, check_in, check_out, quantity)
            booking = self.get(booking_id)
            booking.rooms_deducted = False

        booking.status = new_status
        self.db.commit()
        self.db.refresh(booking)

        logger.info(f"Booking {booking.id} status {old_status} -> {new_status}")
        event_type = STATUS_EVENTS.get(new_status)
        if event_type:
            self.notify(event_type, booking)
        return booking

    def confirm(self, booking_id: str) -> Booking:
        return self.update_status(booking_id, BookingStatus.CONFIRMED.value)

    def cancel(self, booking_id: str) -> Booking:
        return self.update_status(booking_id, BookingStatus.CANCELLED.value)
