"""
Tests for the booking lifecycle against the ledger

These tests verify:
- Direct bookings deduct before they are stored
- Insufficient inventory leaves nothing behind
- Cancel restores rooms exactly once
- External reservations are deduplicated by (channel, ref)
- Lifecycle events are published after the ledger changes
"""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock, patch

from roomsync.exceptions import (
    DuplicateReservationError,
    InsufficientInventoryError,
    NotFoundError,
    ValidationError
)
from roomsync.models.booking import Booking, BookingStatus
from roomsync.services.booking_service import BookingService
from roomsync.services.event_bus import BOOKING_CANCELLED, BOOKING_CONFIRMED, BOOKING_CREATED, BookingEvent, EventBus

from conftest import START

GUEST = {"name": "Dana Guest", "email": "dana@example.com", "total_amount": "200.00", "currency": "EUR"}


@pytest.fixture
def events(event_bus):
    received = []
    for event_type in (BOOKING_CREATED, BOOKING_CONFIRMED, BOOKING_CANCELLED):
        event_bus.subscribe(event_type, lambda event_type, payload: received.append((event_type, payload)))
    return received


@pytest.fixture
def bookings(db, ledger, event_bus):
    return BookingService(db, ledger, event_bus)


def available(db, ledger, room_type_id, night):
    db.expire_all()
    return ledger.get_for_date(room_type_id, night).available_rooms


class TestDirectBookings:
    def test_create_deducts_and_publishes(self, db, ledger, bookings, events, make_room_type):
        room_type = make_room_type(total_rooms=3)
        check_out = START + timedelta(days=2)

        booking = bookings.create_direct(room_type.id, START, check_out, GUEST, quantity=2)

        assert booking.rooms_deducted is True
        assert booking.status == BookingStatus.CONFIRMED.value
        assert available(db, ledger, room_type.id, START) == 1
        assert available(db, ledger, room_type.id, START + timedelta(days=1)) == 1
        assert available(db, ledger, room_type.id, check_out) == 3

        event_type, payload = events[0]
        assert event_type == BOOKING_CREATED
        assert isinstance(payload, BookingEvent)
        assert (payload.room_type_id, payload.check_in, payload.check_out) == (room_type.id, START, check_out)
        assert payload.booking_id == booking.id

    def test_insufficient_inventory_stores_nothing(self, db, ledger, bookings, events, make_room_type):
        room_type = make_room_type(total_rooms=1)
        bookings.create_direct(room_type.id, START, START + timedelta(days=1), GUEST)

        with pytest.raises(InsufficientInventoryError):
            bookings.create_direct(room_type.id, START, START + timedelta(days=2), GUEST)

        assert db.query(Booking).count() == 1
        assert available(db, ledger, room_type.id, START + timedelta(days=1)) == 1
        assert len(events) == 1

    def test_non_holding_status_skips_ledger(self, db, ledger, bookings, make_room_type):
        room_type = make_room_type(total_rooms=1)

        booking = bookings.create_direct(room_type.id, START, START + timedelta(days=1), GUEST,
                                         status=BookingStatus.CANCELLED.value)

        assert booking.rooms_deducted is False
        assert available(db, ledger, room_type.id, START) == 1

    def test_validation(self, bookings, make_room_type):
        room_type = make_room_type()
        with pytest.raises(ValidationError):
            bookings.create_direct(room_type.id, START, START, GUEST)
        with pytest.raises(ValidationError):
            bookings.create_direct(room_type.id, START, START + timedelta(days=1), GUEST, quantity=0)
        with pytest.raises(NotFoundError):
            bookings.create_direct("missing", START, START + timedelta(days=1), GUEST)


class TestStatusChanges:
    def test_cancel_restores_once(self, db, ledger, bookings, events, make_room_type):
        room_type = make_room_type(total_rooms=2)
        booking = bookings.create_direct(room_type.id, START, START + timedelta(days=2), GUEST)
        assert available(db, ledger, room_type.id, START) == 1

        cancelled = bookings.cancel(booking.id)
        assert cancelled.rooms_deducted is False
        assert available(db, ledger, room_type.id, START) == 2
        assert events[-1][0] == BOOKING_CANCELLED

        # Cancelling again is a no-op: no restore, no event
        bookings.cancel(booking.id)
        assert available(db, ledger, room_type.id, START) == 2
        assert [e for e, _ in events].count(BOOKING_CANCELLED) == 1

    def test_reinstating_deducts_again(self, db, ledger, bookings, events, make_room_type):
        room_type = make_room_type(total_rooms=2)
        booking = bookings.create_direct(room_type.id, START, START + timedelta(days=1), GUEST)
        bookings.cancel(booking.id)

        confirmed = bookings.confirm(booking.id)

        assert confirmed.rooms_deducted is True
        assert available(db, ledger, room_type.id, START) == 1
        assert events[-1][0] == BOOKING_CONFIRMED

    def test_reinstating_without_rooms_fails(self, db, ledger, bookings, make_room_type):
        room_type = make_room_type(total_rooms=1)
        first = bookings.create_direct(room_type.id, START, START + timedelta(days=1), GUEST)
        bookings.cancel(first.id)
        bookings.create_direct(room_type.id, START, START + timedelta(days=1), GUEST)

        with pytest.raises(InsufficientInventoryError):
            bookings.confirm(first.id)

        db.expire_all()
        assert bookings.get(first.id).status == BookingStatus.CANCELLED.value

    def test_checked_in_keeps_rooms(self, db, ledger, bookings, make_room_type):
        room_type = make_room_type(total_rooms=2)
        booking = bookings.create_direct(room_type.id, START, START + timedelta(days=1), GUEST)

        bookings.update_status(booking.id, BookingStatus.CHECKED_IN)

        assert available(db, ledger, room_type.id, START) == 1

    def test_checked_out_releases_rooms(self, db, ledger, bookings, make_room_type):
        room_type = make_room_type(total_rooms=2)
        booking = bookings.create_direct(room_type.id, START, START + timedelta(days=1), GUEST)

        bookings.update_status(booking.id, BookingStatus.CHECKED_OUT.value)

        assert available(db, ledger, room_type.id, START) == 2


class TestExternalBookings:
    def test_import_does_not_touch_ledger(self, db, ledger, bookings, events, make_room_type):
        room_type = make_room_type(total_rooms=2)

        booking = bookings.create_from_external(
            room_type.id, START, START + timedelta(days=1), "OTA-1",
            {**GUEST, "raw": {"id": "OTA-1"}}, channel_name="channex",
        )

        assert booking.channel_name == "channex"
        assert booking.external_reservation_id == "OTA-1"
        assert booking.rooms_deducted is False
        assert '"OTA-1"' in booking.channel_data
        assert available(db, ledger, room_type.id, START) == 2
        assert events == []

    def test_duplicate_reference_rejected(self, db, bookings, make_room_type):
        room_type = make_room_type()
        first = bookings.create_from_external(room_type.id, START, START + timedelta(days=1), "OTA-1",
                                              GUEST, channel_name="channex")

        with pytest.raises(DuplicateReservationError) as exc_info:
            bookings.create_from_external(room_type.id, START, START + timedelta(days=1), "OTA-1",
                                          GUEST, channel_name="channex")
        assert exc_info.value.booking_id == first.id

        # Same reference on another channel is a different reservation
        bookings.create_from_external(room_type.id, START, START + timedelta(days=1), "OTA-1",
                                      GUEST, channel_name="booking_com")
        assert db.query(Booking).count() == 2


class TestWithMockedCollaborators:
    def test_failed_deduction_publishes_nothing(self, db, ledger, make_room_type):
        room_type = make_room_type(total_rooms=1)
        bus = MagicMock(spec=EventBus)
        service = BookingService(db, ledger, bus)

        with patch.object(ledger, "deduct_rooms", return_value=False) as deduct:
            with pytest.raises(InsufficientInventoryError):
                service.create_direct(room_type.id, START, START + timedelta(days=1), GUEST)

        deduct.assert_called_once_with(room_type.id, START, START + timedelta(days=1), 1)
        bus.publish.assert_not_called()
        assert db.query(Booking).count() == 0

    def test_confirm_publishes_booking_event(self, db, ledger, make_room_type):
        room_type = make_room_type(total_rooms=2)
        bus = MagicMock(spec=EventBus)
        service = BookingService(db, ledger, bus)
        booking = service.create_direct(
            room_type.id, START, START + timedelta(days=2), GUEST, status=BookingStatus.PENDING.value
        )
        bus.reset_mock()

        service.confirm(booking.id)

        bus.publish.assert_called_once()
        event_type, event = bus.publish.call_args[0]
        assert event_type == BOOKING_CONFIRMED
        assert isinstance(event, BookingEvent)
        assert (event.room_type_id, event.check_in, event.check_out) == (room_type.id, START, START + timedelta(days=2))
