"""
Pricing Engine Service

Prices a stay night by night:
- Ledger price_override for the night when one is set
- Otherwise the room type base price
- Taxes as a percentage of the subtotal, plus a flat per-stay fee

The sync engine consumes it as a priced-quote provider when pushing rates.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Protocol

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..exceptions import NotFoundError
from ..models.inventory import RoomType
from .inventory_ledger import DateRange, InventoryLedger

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class StayPrice:
    """Quote for one stay"""
    subtotal: Decimal
    taxes: Decimal
    fees: Decimal
    nightly: Dict[date, Decimal] = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.taxes + self.fees


class PricingProvider(Protocol):
    def calculate_stay_price(
        self,
        room_type_id: str,
        check_in: date,
        check_out: date,
        adults: int = 1,
        children: int = 0,
        rate_plan_id: Optional[int] = None
    ) -> StayPrice:
        ...


class PricingEngine:
    """
    Pricing Formula:
    1. night_price = price_override if set else base_price
    2. subtotal = sum(night_price)
    3. taxes = round(subtotal * tax_percent / 100, 2)
    4. fees = fee_per_stay
    """

    def __init__(self, db: Session, ledger: InventoryLedger, settings: Optional[Settings] = None):
        self.db = db
        self.ledger = ledger
        self.settings = settings or get_settings()

    def calculate_stay_price(
        self,
        room_type_id: str,
        check_in: date,
        check_out: date,
        adults: int = 1,
        children: int = 0,
        rate_plan_id: Optional[int] = None
    ) -> StayPrice:
        room_type = self.db.query(RoomType).filter(RoomType.id == room_type_id).first()
        if not room_type:
            raise NotFoundError(f"Room type {room_type_id} not found")

        base_price = money(room_type.base_price)
        overrides = self.ledger.get_price_overrides(room_type_id, check_in, check_out)

        nightly = {
            night: money(overrides.get(night, base_price))
            for night in DateRange(check_in, check_out).nights()
        }
        subtotal = money(sum(nightly.values(), Decimal("0")))
        taxes = money(subtotal * Decimal(str(self.settings.tax_percent)) / 100)
        fees = money(self.settings.fee_per_stay) if nightly else Decimal("0.00")

        return StayPrice(subtotal=subtotal, taxes=taxes, fees=fees, nightly=nightly)
