"""
Inventory Service

Room type administration on top of the ledger. Activating a room type
opens its calendar from today through inventory_init_days ahead.
"""

import logging
import re
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..exceptions import NotFoundError, ValidationError
from ..models.inventory import RoomType
from ..utils.dates import property_today
from .inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)

CODE_RE = re.compile(r"^[A-Za-z0-9_-]{1,20}$")


class InventoryService:
    def __init__(self, db: Session, ledger: InventoryLedger, settings: Optional[Settings] = None):
        self.db = db
        self.ledger = ledger
        self.settings = settings or get_settings()

    def _validate(self, data: Dict, room_type_id: Optional[str] = None) -> None:
        errors = {}
        if "name" in data and not (data["name"] or "").strip():
            errors["name"] = "is required"
        if "code" in data:
            code = data["code"] or ""
            if not CODE_RE.match(code):
                errors["code"] = "must be 1-20 letters, digits, '-' or '_'"
            else:
                clash = self.db.query(RoomType.id).filter(RoomType.code == code)
                if room_type_id:
                    clash = clash.filter(RoomType.id != room_type_id)
                if clash.first():
                    errors["code"] = f"'{code}' is already used"
        if data.get("total_rooms") is not None and data["total_rooms"] < 0:
            errors["total_rooms"] = "must be zero or more"
        if data.get("base_price") is not None and Decimal(str(data["base_price"])) < 0:
            errors["base_price"] = "must be zero or more"
        if errors:
            raise ValidationError(errors)

    def list_room_types(self, active_only: bool = False) -> List[RoomType]:
        query = self.db.query(RoomType)
        if active_only:
            query = query.filter(RoomType.is_active == True)  # noqa: E712
        return query.order_by(RoomType.name).all()

    def get_room_type(self, room_type_id: str) -> RoomType:
        room_type = self.db.query(RoomType).filter(RoomType.id == room_type_id).first()
        if not room_type:
            raise NotFoundError(f"Room type {room_type_id} not found")
        return room_type

    def create_room_type(
        self,
        name: str,
        code: str,
        total_rooms: int,
        base_price: Decimal = Decimal("0"),
        is_active: bool = True
    ) -> RoomType:
        self._validate({"name": name, "code": code, "total_rooms": total_rooms, "base_price": base_price})

        room_type = RoomType(
            name=name.strip(),
            code=code,
            total_rooms=total_rooms,
            base_price=Decimal(str(base_price)),
            is_active=is_active,
        )
        self.db.add(room_type)
        self.db.commit()
        self.db.refresh(room_type)
        logger.info(f"Created room type {room_type.code} ({room_type.total_rooms} rooms)")

        if is_active:
            self.initialize_calendar(room_type)
        return room_type

    def update_room_type(self, room_type_id: str, **changes) -> RoomType:
        room_type = self.get_room_type(room_type_id)
        changes = {k: v for k, v in changes.items() if v is not None}
        self._validate(changes, room_type_id=room_type.id)

        activating = changes.get("is_active") is True and not room_type.is_active
        for field in ("name", "code", "total_rooms", "base_price", "is_active"):
            if field in changes:
                setattr(room_type, field, changes[field])
        self.db.commit()
        self.db.refresh(room_type)

        if activating:
            self.initialize_calendar(room_type)
        return room_type

    def initialize_calendar(
        self,
        room_type: RoomType,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> int:
        """Create missing ledger nights; end is inclusive"""
        start = start or property_today(self.settings.property_timezone)
        end = end or (start + timedelta(days=self.settings.inventory_init_days))
        created = self.ledger.initialize_inventory(room_type.id, room_type.total_rooms, start, end)
        if created:
            logger.info(f"Opened {created} night(s) for room type {room_type.code} from {start} to {end}")
        return created
