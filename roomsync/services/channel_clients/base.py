"""
Channel client capability interface.

Each OTA adapter owns its own request/response translation. The orchestrator
only sees SyncResult and RawReservation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ...models.channel_integration import ChannelConnection, ChannelMapping, SyncStatus
from ..inventory_ledger import DateRange, NightAvailability


@dataclass
class SyncResult:
    """Outcome of one sync call; turned into a SyncLogEntry by the orchestrator"""
    success: bool
    message: str = ""
    items_synced: int = 0
    errors: List[str] = field(default_factory=list)

    @classmethod
    def succeeded(cls, items_synced: int, message: str = "") -> "SyncResult":
        return cls(success=True, message=message or f"Synced {items_synced} item(s)", items_synced=items_synced)

    @classmethod
    def failed(cls, message: str, errors: Optional[List[str]] = None) -> "SyncResult":
        return cls(success=False, message=message, errors=list(errors) if errors else [message])

    @classmethod
    def partial(cls, items_synced: int, errors: List[str], message: str = "") -> "SyncResult":
        return cls(
            success=True,
            message=message or f"Synced {items_synced} item(s) with {len(errors)} error(s)",
            items_synced=items_synced,
            errors=list(errors),
        )

    @property
    def status(self) -> SyncStatus:
        if not self.success:
            return SyncStatus.FAILED
        if self.errors:
            return SyncStatus.PARTIAL
        return SyncStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "items_synced": self.items_synced,
            "errors": list(self.errors),
        }


@dataclass
class RawReservation:
    """A reservation as reported by a channel, before local resolution"""
    external_id: str
    room_type_code: str
    check_in: Optional[date]
    check_out: Optional[date]
    status: str = "confirmed"
    rate_code: Optional[str] = None
    guest_first_name: str = ""
    guest_last_name: str = ""
    guest_email: str = ""
    guest_phone: str = ""
    total_amount: Decimal = Decimal("0")
    currency: str = "USD"
    num_guests: int = 1
    num_rooms: int = 1
    special_requests: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def guest_name(self) -> str:
        return f"{self.guest_first_name} {self.guest_last_name}".strip()

    @property
    def is_cancelled(self) -> bool:
        return self.status.lower() in ("cancelled", "canceled", "cancel")

    def guest_info(self) -> Dict[str, Any]:
        return {
            "name": self.guest_name or "OTA Guest",
            "email": self.guest_email or None,
            "phone": self.guest_phone or None,
            "num_guests": self.num_guests,
            "total_amount": self.total_amount,
            "currency": self.currency,
            "special_requests": self.special_requests or None,
            "status": self.status,
        }


class ChannelClient(ABC):
    channel_name: str = ""
    label: str = ""

    @abstractmethod
    def push_availability(
        self,
        mapping: ChannelMapping,
        date_range: DateRange,
        quantities: List[NightAvailability]
    ) -> SyncResult:
        ...

    @abstractmethod
    def push_rates(
        self,
        mapping: ChannelMapping,
        date_range: DateRange,
        rates: Dict[date, Decimal]
    ) -> SyncResult:
        ...

    @abstractmethod
    def pull_reservations(
        self,
        connection: ChannelConnection,
        since: Optional[datetime] = None
    ) -> List[RawReservation]:
        ...

    def test_connection(self) -> bool:
        return True

    def close(self) -> None:
        pass
