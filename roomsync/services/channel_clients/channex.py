"""
Channex channel adapter.

Channex API Documentation: https://docs.channex.io/
- Auth via "user-api-key" header (NOT Bearer token)
- Availability per room type: POST /availability
- Rates and restrictions per rate plan: POST /restrictions
- Bookings: GET /properties/{id}/bookings
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from ...config import Settings
from ...exceptions import ChannelAuthError, ChannelTransportError
from ...models.channel_integration import ChannelConnection, ChannelMapping
from ...utils.dates import parse_date
from ..inventory_ledger import DateRange, NightAvailability
from .base import ChannelClient, RawReservation, SyncResult
from .http import ChannelHttpTransport

logger = logging.getLogger(__name__)

CHANNEX_STATUS_MAP = {
    "new": "confirmed",
    "modified": "confirmed",
    "cancelled": "cancelled",
}


def _warnings(data: Any) -> List[str]:
    """Channex reports per-value problems as meta.warnings on a 200 answer"""
    if not isinstance(data, dict):
        return []
    warnings = (data.get("meta") or {}).get("warnings") or []
    messages = []
    for warning in warnings:
        if isinstance(warning, dict):
            messages.append(str(warning.get("warning") or warning.get("message") or warning))
        else:
            messages.append(str(warning))
    return messages


class ChannexChannelClient(ChannelClient):
    channel_name = "channex"
    label = "Channex"

    def __init__(self, api_key: str, property_id: str, transport: ChannelHttpTransport):
        self.api_key = api_key
        self.property_id = property_id
        self.transport = transport

    @classmethod
    def from_credentials(
        cls,
        credentials: Dict[str, str],
        settings: Settings,
        http_client: Optional[httpx.Client] = None
    ) -> "ChannexChannelClient":
        api_key = credentials.get("api_key")
        property_id = credentials.get("property_id")
        if not api_key or not property_id:
            raise ChannelAuthError("Channex credentials need api_key and property_id", channel_name=cls.channel_name)

        transport = ChannelHttpTransport(
            channel_name=cls.channel_name,
            base_url=credentials.get("base_url") or settings.channex_base_url,
            headers={
                "Content-Type": "application/json",
                "user-api-key": api_key,
                "User-Agent": "roomsync/1.0",
            },
            timeout=settings.channel_request_timeout_seconds,
            max_retries=settings.channel_max_retries,
            base_delay=settings.channel_retry_base_delay,
            client=http_client,
        )
        return cls(api_key=api_key, property_id=property_id, transport=transport)

    def _post_values(self, endpoint: str, values: List[Dict]) -> SyncResult:
        if not values:
            return SyncResult.succeeded(0, "Nothing to push")

        response = self.transport.request("POST", endpoint, json={"values": values})
        if not response.success:
            return SyncResult.failed(f"Channex rejected {endpoint}: {response.error}")

        warnings = _warnings(response.data)
        if warnings:
            return SyncResult.partial(len(values) - len(warnings), warnings)
        return SyncResult.succeeded(len(values))

    # ==================
    # ARI
    # ==================

    def push_availability(
        self,
        mapping: ChannelMapping,
        date_range: DateRange,
        quantities: List[NightAvailability]
    ) -> SyncResult:
        values = [
            {
                "property_id": self.property_id,
                "room_type_id": mapping.external_room_id,
                "date": night.date.isoformat(),
                "availability": night.available,
            }
            for night in quantities
        ]
        result = self._post_values("/availability", values)
        if not result.success or not mapping.external_rate_id:
            return result

        # Stop-sell and min stay live on the rate plan
        restrictions = [
            {
                "property_id": self.property_id,
                "rate_plan_id": mapping.external_rate_id,
                "date": night.date.isoformat(),
                "stop_sell": night.stop_sell,
                "min_stay_arrival": night.min_stay,
            }
            for night in quantities
        ]
        restriction_result = self._post_values("/restrictions", restrictions)
        if not restriction_result.success or restriction_result.errors:
            return SyncResult.partial(result.items_synced, result.errors + restriction_result.errors)
        return result

    def push_rates(
        self,
        mapping: ChannelMapping,
        date_range: DateRange,
        rates: Dict[date, Decimal]
    ) -> SyncResult:
        if not mapping.external_rate_id:
            return SyncResult.failed(f"Mapping {mapping.id} has no external rate plan id")

        # Channex wants the rate as a string with 2 decimals
        values = [
            {
                "property_id": self.property_id,
                "rate_plan_id": mapping.external_rate_id,
                "date": night.isoformat(),
                "rate": f"{Decimal(rate):.2f}",
            }
            for night, rate in sorted(rates.items())
        ]
        return self._post_values("/restrictions", values)

    # ==================
    # Bookings
    # ==================

    def pull_reservations(
        self,
        connection: ChannelConnection,
        since: Optional[datetime] = None
    ) -> List[RawReservation]:
        params = {}
        if since:
            params["filter[updated_at_gte]"] = since.isoformat()

        response = self.transport.request("GET", f"/properties/{self.property_id}/bookings", params=params)
        if not response.success:
            raise ChannelTransportError(
                f"Channex booking pull failed: {response.error}",
                status_code=response.status_code,
                channel_name=self.channel_name,
            )

        items = response.data.get("data", []) if isinstance(response.data, dict) else []
        reservations = []
        for item in items:
            try:
                reservation = self._parse_booking(item)
            except (ValueError, TypeError, AttributeError, KeyError) as e:
                booking_id = item.get("id") if isinstance(item, dict) else None
                logger.warning(f"[channex] Skipping unreadable booking {booking_id}: {e}")
                continue
            if reservation:
                reservations.append(reservation)

        logger.info(f"[channex] Pulled {len(reservations)} reservation(s)")
        return reservations

    def _parse_booking(self, item: Dict) -> Optional[RawReservation]:
        if not isinstance(item, dict):
            return None
        attrs = item.get("attributes") or item
        external_id = str(attrs.get("ota_reservation_code") or attrs.get("id") or item.get("id") or "")
        if not external_id:
            return None

        rooms = attrs.get("rooms") or [{}]
        room = rooms[0] if rooms else {}
        guest = attrs.get("customer") or attrs.get("guest") or {}
        occupancy = room.get("occupancy") or {}

        status = str(attrs.get("status") or "new").lower()
        room_type_code = str(room.get("room_type_id") or attrs.get("room_type_id") or "")

        try:
            amount = Decimal(str(attrs.get("amount") or attrs.get("total_price") or "0"))
        except InvalidOperation:
            amount = Decimal("0")

        return RawReservation(
            external_id=external_id,
            room_type_code=room_type_code,
            rate_code=room.get("rate_plan_id"),
            check_in=parse_date(room.get("checkin_date") or attrs.get("arrival_date")),
            check_out=parse_date(room.get("checkout_date") or attrs.get("departure_date")),
            status=CHANNEX_STATUS_MAP.get(status, status),
            guest_first_name=guest.get("name") or guest.get("first_name") or "",
            guest_last_name=guest.get("surname") or guest.get("last_name") or "",
            guest_email=guest.get("mail") or guest.get("email") or "",
            guest_phone=guest.get("phone") or "",
            total_amount=amount,
            currency=attrs.get("currency") or "USD",
            num_guests=int(occupancy.get("adults") or 1) + int(occupancy.get("children") or 0),
            num_rooms=sum(1 for r in rooms if str(r.get("room_type_id") or "") == room_type_code) or 1,
            special_requests=attrs.get("notes") or "",
            raw=item,
        )

    def test_connection(self) -> bool:
        response = self.transport.request("GET", f"/properties/{self.property_id}")
        return response.success
