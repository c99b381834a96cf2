"""
Inventory Ledger

Per room type, per night counts of total/available/booked rooms.

Allocation never reads-then-writes: deduct_rooms issues one conditional
UPDATE for the whole stay and compares the affected row count with the
number of nights. Two bookings racing for the last room are serialized by
the database row locks; the loser matches fewer rows and rolls back.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import ValidationError
from ..models.inventory import InventoryDay

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DateRange:
    """Half-open range of nights: start inclusive, end exclusive."""
    start: date
    end: date

    def nights(self) -> Iterator[date]:
        current = self.start
        while current < self.end:
            yield current
            current += timedelta(days=1)

    def __len__(self) -> int:
        return max((self.end - self.start).days, 0)

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass
class NightAvailability:
    """What a channel should be told it can sell for one night"""
    date: date
    available: int
    stop_sell: bool = False
    min_stay: int = 1


class InventoryLedger:
    """
    Single source of truth for internal availability.

    deduct_rooms/restore_rooms/bulk_update/initialize_inventory commit their
    own unit of work; run them on a session with no other pending changes.
    """

    BULK_FIELDS = {"total_rooms", "available_rooms", "price_override", "stop_sell", "min_stay"}

    def __init__(self, db: Session):
        self.db = db

    def _in_range(self, room_type_id: str, start: date, end: date):
        return and_(
            InventoryDay.room_type_id == room_type_id,
            InventoryDay.date >= start,
            InventoryDay.date < end,
        )

    # ==================
    # Queries
    # ==================

    def get_for_date(self, room_type_id: str, day: date) -> Optional[InventoryDay]:
        return self.db.query(InventoryDay).filter(
            InventoryDay.room_type_id == room_type_id,
            InventoryDay.date == day
        ).first()

    def get_for_range(self, room_type_id: str, start: date, end: date) -> List[InventoryDay]:
        """One row per existing night in [start, end), ordered by date."""
        return self.db.query(InventoryDay).filter(
            self._in_range(room_type_id, start, end)
        ).order_by(InventoryDay.date).all()

    def get_min_availability(self, room_type_id: str, start: date, end: date) -> int:
        """
        Bottleneck availability: the smallest available_rooms among sellable
        nights in [start, end). Returns 0 when no night is sellable or when any
        night of the range has no ledger row.
        """
        known = self.db.execute(
            select(func.count(InventoryDay.id)).where(self._in_range(room_type_id, start, end))
        ).scalar()
        if known < len(DateRange(start, end)):
            return 0

        result = self.db.execute(
            select(func.min(InventoryDay.available_rooms)).where(
                self._in_range(room_type_id, start, end),
                InventoryDay.stop_sell == False,  # noqa: E712
            )
        ).scalar()
        return int(result) if result is not None else 0

    def has_stop_sell(self, room_type_id: str, start: date, end: date) -> bool:
        row = self.db.execute(
            select(InventoryDay.id).where(
                self._in_range(room_type_id, start, end),
                InventoryDay.stop_sell == True,  # noqa: E712
            ).limit(1)
        ).first()
        return row is not None

    def get_sellable_nights(self, room_type_id: str, start: date, end: date) -> List[NightAvailability]:
        """
        Per-night bottleneck for a channel push. Each value equals
        get_min_availability over that single night; nights without a ledger
        row are reported as closed.
        """
        rows = {row.date: row for row in self.get_for_range(room_type_id, start, end)}
        nights = []
        for night in DateRange(start, end).nights():
            row = rows.get(night)
            if row is None:
                nights.append(NightAvailability(date=night, available=0, stop_sell=True))
                continue
            nights.append(NightAvailability(
                date=night,
                available=0 if row.stop_sell else max(row.available_rooms, 0),
                stop_sell=bool(row.stop_sell),
                min_stay=row.min_stay or 1,
            ))
        return nights

    def get_price_overrides(self, room_type_id: str, start: date, end: date) -> Dict[date, Decimal]:
        rows = self.db.query(InventoryDay.date, InventoryDay.price_override).filter(
            self._in_range(room_type_id, start, end),
            InventoryDay.price_override.isnot(None),
        ).all()
        return {row.date: Decimal(str(row.price_override)) for row in rows}

    # ==================
    # Allocation
    # ==================

    def deduct_rooms(self, room_type_id: str, start: date, end: date, quantity: int = 1) -> bool:
        """
        Take `quantity` rooms for every night in [start, end).

        Applied only where available_rooms >= quantity and the night is open
        for sale. Returns False, leaving every night untouched, unless exactly
        one row per night was updated. Callers must treat False as
        insufficient inventory and must not retry it.
        """
        if quantity < 1:
            raise ValueError("quantity must be at least 1")

        nights = len(DateRange(start, end))
        if nights == 0:
            return False

        stmt = (
            update(InventoryDay)
            .where(
                self._in_range(room_type_id, start, end),
                InventoryDay.available_rooms >= quantity,
                InventoryDay.stop_sell == False,  # noqa: E712
            )
            .values(
                available_rooms=InventoryDay.available_rooms - quantity,
                booked_rooms=InventoryDay.booked_rooms + quantity,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        try:
            updated = self.db.execute(stmt).rowcount
            if updated != nights:
                # Undo the nights that did match
                self.db.rollback()
                logger.info(
                    f"Deduct refused for room type {room_type_id} {start}..{end} "
                    f"qty={quantity}: {updated}/{nights} nights available"
                )
                return False
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(f"Deducted {quantity} room(s) for room type {room_type_id} over {nights} night(s) from {start}")
        return True

    def restore_rooms(self, room_type_id: str, start: date, end: date, quantity: int = 1) -> int:
        """
        Give back `quantity` rooms for every night in [start, end).

        Clamped so available never exceeds total and booked never drops below
        zero; a repeated restore cannot inflate the ledger. Returns the number
        of nights touched.
        """
        if quantity < 1:
            raise ValueError("quantity must be at least 1")

        restored_available = InventoryDay.available_rooms + quantity
        released_booked = InventoryDay.booked_rooms - quantity

        stmt = (
            update(InventoryDay)
            .where(self._in_range(room_type_id, start, end))
            .values(
                available_rooms=case(
                    (restored_available > InventoryDay.total_rooms, InventoryDay.total_rooms),
                    else_=restored_available,
                ),
                booked_rooms=case(
                    (released_booked < 0, 0),
                    else_=released_booked,
                ),
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        try:
            count = self.db.execute(stmt).rowcount
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(f"Restored {quantity} room(s) for room type {room_type_id} on {count} night(s) from {start}")
        return count

    # ==================
    # Administration
    # ==================

    def bulk_update(self, room_type_id: str, start: date, end: date, fields: Dict) -> int:
        """
        Overwrite restrictions and counts for every night from start to end,
        both inclusive.

        Changing total_rooms recomputes available_rooms as
        max(total_rooms - booked_rooms, 0) unless available_rooms is given,
        in which case it is clamped to [0, total_rooms].
        """
        unknown = set(fields) - self.BULK_FIELDS
        if unknown:
            raise ValidationError({name: "not an editable inventory field" for name in sorted(unknown)})
        if not fields:
            return 0
        if end < start:
            raise ValidationError({"end": "must not be before start"})

        values = {"updated_at": datetime.utcnow()}
        total = fields.get("total_rooms")

        if total is not None:
            total = int(total)
            if total < 0:
                raise ValidationError({"total_rooms": "must be zero or more"})
            values["total_rooms"] = total
            remaining = total - InventoryDay.booked_rooms
            values["available_rooms"] = case((remaining < 0, 0), else_=remaining)

        if fields.get("available_rooms") is not None:
            available = max(int(fields["available_rooms"]), 0)
            if total is not None:
                values["available_rooms"] = min(available, total)
            else:
                values["available_rooms"] = case(
                    (InventoryDay.total_rooms < available, InventoryDay.total_rooms),
                    else_=available,
                )

        if "stop_sell" in fields and fields["stop_sell"] is not None:
            values["stop_sell"] = bool(fields["stop_sell"])

        if fields.get("min_stay") is not None:
            min_stay = int(fields["min_stay"])
            if min_stay < 1:
                raise ValidationError({"min_stay": "must be at least 1"})
            values["min_stay"] = min_stay

        if "price_override" in fields:
            price = fields["price_override"]
            values["price_override"] = Decimal(str(price)) if price is not None else None

        stmt = (
            update(InventoryDay)
            .where(
                InventoryDay.room_type_id == room_type_id,
                InventoryDay.date >= start,
                InventoryDay.date <= end,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            count = self.db.execute(stmt).rowcount
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(f"Bulk updated {count} night(s) for room type {room_type_id} ({', '.join(sorted(fields))})")
        return count

    def initialize_inventory(self, room_type_id: str, total_rooms: int, start: date, end: date) -> int:
        """
        Create missing rows from start to end, both inclusive, with every room
        available. Existing rows are never touched. Returns the number created.
        """
        if total_rooms < 0:
            raise ValidationError({"total_rooms": "must be zero or more"})

        for attempt in range(2):
            existing = {
                row.date for row in self.db.query(InventoryDay.date).filter(
                    InventoryDay.room_type_id == room_type_id,
                    InventoryDay.date >= start,
                    InventoryDay.date <= end,
                ).all()
            }

            missing = [night for night in DateRange(start, end + timedelta(days=1)).nights() if night not in existing]
            if not missing:
                return 0

            self.db.add_all([
                InventoryDay(
                    room_type_id=room_type_id,
                    date=night,
                    total_rooms=total_rooms,
                    available_rooms=total_rooms,
                    booked_rooms=0,
                    stop_sell=False,
                    min_stay=1,
                )
                for night in missing
            ])

            try:
                self.db.commit()
            except IntegrityError:
                # Another initializer inserted some of the same nights
                self.db.rollback()
                if attempt:
                    raise
                logger.warning(f"Concurrent inventory initialization for room type {room_type_id}, retrying")
                continue

            logger.info(f"Initialized {len(missing)} inventory night(s) for room type {room_type_id}")
            return len(missing)

        return 0
