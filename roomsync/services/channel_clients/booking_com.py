"""
Booking.com channel adapter (OTA XML interface).

- HTTP Basic auth with the hotel's XML username/password
- OTA_HotelAvailNotifRQ for availability, stop-sell and min stay
- OTA_HotelRateAmountNotifRQ for nightly rates
- OTA_ReadRQ for reservations, OTA_PingRQ for connection tests
"""

import base64
import logging
import uuid
import xml.etree.ElementTree as ET
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import httpx

from ...config import Settings
from ...exceptions import ChannelAuthError, ChannelTransportError
from ...models.channel_integration import ChannelConnection, ChannelMapping
from ...utils.dates import parse_date
from ..inventory_ledger import DateRange, NightAvailability
from .base import ChannelClient, RawReservation, SyncResult
from .http import ChannelHttpTransport

logger = logging.getLogger(__name__)

OTA_NS = "http://www.opentravel.org/OTA/2003/05"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find_all(node: ET.Element, name: str) -> List[ET.Element]:
    """Descendants by local name, with or without the OTA namespace"""
    return [el for el in node.iter() if _local(el.tag) == name]


def _find(node: ET.Element, name: str) -> Optional[ET.Element]:
    found = _find_all(node, name)
    return found[0] if found else None


def _text(node: Optional[ET.Element]) -> str:
    return (node.text or "").strip() if node is not None else ""


class BookingComChannelClient(ChannelClient):
    channel_name = "booking_com"
    label = "Booking.com"

    def __init__(self, hotel_id: str, transport: ChannelHttpTransport):
        self.hotel_id = hotel_id
        self.transport = transport

    @classmethod
    def from_credentials(
        cls,
        credentials: Dict[str, str],
        settings: Settings,
        http_client: Optional[httpx.Client] = None
    ) -> "BookingComChannelClient":
        hotel_id = credentials.get("hotel_id")
        username = credentials.get("username")
        password = credentials.get("password")
        if not hotel_id or not username or not password:
            raise ChannelAuthError(
                "Booking.com credentials need hotel_id, username and password",
                channel_name=cls.channel_name,
            )

        token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        transport = ChannelHttpTransport(
            channel_name=cls.channel_name,
            base_url=credentials.get("base_url") or settings.booking_com_base_url,
            headers={
                "Content-Type": "application/xml; charset=utf-8",
                "Authorization": f"Basic {token}",
            },
            timeout=settings.channel_request_timeout_seconds,
            max_retries=settings.channel_max_retries,
            base_delay=settings.channel_retry_base_delay,
            client=http_client,
        )
        return cls(hotel_id=hotel_id, transport=transport)

    # ==================
    # XML builders
    # ==================

    def _envelope(self, root_tag: str) -> ET.Element:
        return ET.Element(root_tag, {
            "xmlns": OTA_NS,
            "EchoToken": str(uuid.uuid4()),
            "TimeStamp": datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%S"),
            "Version": "1.0",
        })

    @staticmethod
    def _serialize(root: ET.Element) -> str:
        return '<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(root, encoding="unicode")

    def build_availability_xml(self, mapping: ChannelMapping, quantities: List[NightAvailability]) -> str:
        root = self._envelope("OTA_HotelAvailNotifRQ")
        messages = ET.SubElement(root, "AvailStatusMessages", {"HotelCode": self.hotel_id})

        for night in quantities:
            message = ET.SubElement(messages, "AvailStatusMessage", {"BookingLimit": str(night.available)})
            control = {
                "Start": night.date.isoformat(),
                "End": night.date.isoformat(),
                "InvTypeCode": mapping.external_room_id,
            }
            if mapping.external_rate_id:
                control["RatePlanCode"] = mapping.external_rate_id
            ET.SubElement(message, "StatusApplicationControl", control)

            lengths = ET.SubElement(message, "LengthsOfStay")
            ET.SubElement(lengths, "LengthOfStay", {
                "MinMaxMessageType": "SetMinLOS",
                "Time": str(night.min_stay),
            })
            ET.SubElement(message, "RestrictionStatus", {
                "Status": "Close" if night.stop_sell else "Open",
                "Restriction": "Master",
            })

        return self._serialize(root)

    def build_rates_xml(self, mapping: ChannelMapping, rates: Dict[date, Decimal]) -> str:
        root = self._envelope("OTA_HotelRateAmountNotifRQ")
        messages = ET.SubElement(root, "RateAmountMessages", {"HotelCode": self.hotel_id})

        for night, rate in sorted(rates.items()):
            message = ET.SubElement(messages, "RateAmountMessage")
            ET.SubElement(message, "StatusApplicationControl", {
                "Start": night.isoformat(),
                "End": night.isoformat(),
                "InvTypeCode": mapping.external_room_id,
                "RatePlanCode": mapping.external_rate_id or "",
            })
            rates_el = ET.SubElement(message, "Rates")
            rate_el = ET.SubElement(rates_el, "Rate")
            amounts = ET.SubElement(rate_el, "BaseByGuestAmts")
            ET.SubElement(amounts, "BaseByGuestAmt", {
                "AmountAfterTax": f"{Decimal(rate):.2f}",
                "NumberOfGuests": "2",
            })

        return self._serialize(root)

    def build_read_xml(self, since: Optional[datetime]) -> str:
        root = self._envelope("OTA_ReadRQ")
        requests = ET.SubElement(root, "ReadRequests")
        hotel = ET.SubElement(requests, "HotelReadRequest", {"HotelCode": self.hotel_id})
        if since:
            ET.SubElement(hotel, "SelectionCriteria", {
                "Start": since.strftime("%Y-%m-%d"),
                "End": (datetime.utcnow() + timedelta(days=1)).strftime("%Y-%m-%d"),
                "DateType": "LastUpdateDate",
            })
        return self._serialize(root)

    # ==================
    # Response handling
    # ==================

    @staticmethod
    def extract_errors(body: str) -> List[str]:
        """Error and Warning elements in a 2xx answer; an empty list means clean"""
        if not body:
            return []
        try:
            doc = ET.fromstring(body)
        except ET.ParseError:
            return []
        messages = []
        for el in _find_all(doc, "Error") + _find_all(doc, "Warning"):
            messages.append(_text(el) or el.get("ShortText") or el.get("Code") or "Unspecified channel warning")
        return messages

    def _push(self, endpoint: str, xml_body: str, record_count: int, sync_type: str) -> SyncResult:
        response = self.transport.request("POST", endpoint, content=xml_body)
        if not response.success:
            return SyncResult.failed(f"Booking.com API error for {sync_type}: HTTP {response.status_code}")

        errors = self.extract_errors(response.text)
        if errors:
            logger.warning(f"[booking_com] {sync_type} accepted with {len(errors)} warning(s)")
            return SyncResult.partial(max(record_count - len(errors), 0), errors)
        return SyncResult.succeeded(record_count, f"Pushed {record_count} {sync_type} record(s) to Booking.com")

    def push_availability(
        self,
        mapping: ChannelMapping,
        date_range: DateRange,
        quantities: List[NightAvailability]
    ) -> SyncResult:
        if not quantities:
            return SyncResult.succeeded(0, "Nothing to push")
        return self._push("availability", self.build_availability_xml(mapping, quantities), len(quantities), "availability")

    def push_rates(
        self,
        mapping: ChannelMapping,
        date_range: DateRange,
        rates: Dict[date, Decimal]
    ) -> SyncResult:
        if not rates:
            return SyncResult.succeeded(0, "Nothing to push")
        return self._push("rates", self.build_rates_xml(mapping, rates), len(rates), "rates")

    def pull_reservations(
        self,
        connection: ChannelConnection,
        since: Optional[datetime] = None
    ) -> List[RawReservation]:
        response = self.transport.request("POST", "reservations", content=self.build_read_xml(since))
        if not response.success:
            raise ChannelTransportError(
                f"Booking.com API error for reservations: HTTP {response.status_code}",
                status_code=response.status_code,
                channel_name=self.channel_name,
            )

        reservations = self.parse_reservations(response.text)
        logger.info(f"[booking_com] Pulled {len(reservations)} reservation(s)")
        return reservations

    def parse_reservations(self, body: str) -> List[RawReservation]:
        if not body:
            return []
        try:
            doc = ET.fromstring(body)
        except ET.ParseError:
            logger.warning(f"[booking_com] Failed to parse reservation XML: {body[:200]}")
            return []

        reservations = []
        for node in _find_all(doc, "HotelReservation"):
            reservation = self._parse_reservation(node)
            if reservation:
                reservations.append(reservation)
        return reservations

    def _parse_reservation(self, node: ET.Element) -> Optional[RawReservation]:
        external_id = node.get("ResID_Value") or node.get("UniqueID") or ""
        if not external_id:
            unique = _find(node, "UniqueID")
            external_id = unique.get("ID", "") if unique is not None else ""
        if not external_id:
            return None

        guest = _find(node, "PersonName")
        phone = _find(node, "Telephone")
        time_span = _find(node, "TimeSpan")
        room_type = _find(node, "RoomType")
        rate_plan = _find(node, "RatePlan")
        total = _find(node, "Total")
        request = _find(node, "SpecialRequest")
        guest_count = _find(node, "GuestCount")

        amount = Decimal("0")
        if total is not None:
            try:
                amount = Decimal(total.get("AmountAfterTax") or "0")
            except InvalidOperation:
                amount = Decimal("0")

        return RawReservation(
            external_id=external_id,
            status=(node.get("ResStatus") or "confirmed").lower(),
            room_type_code=room_type.get("RoomTypeCode", "") if room_type is not None else "",
            rate_code=rate_plan.get("RatePlanCode") if rate_plan is not None else None,
            check_in=parse_date(time_span.get("Start")) if time_span is not None else None,
            check_out=parse_date(time_span.get("End")) if time_span is not None else None,
            guest_first_name=_text(_find(guest, "GivenName")) if guest is not None else "",
            guest_last_name=_text(_find(guest, "Surname")) if guest is not None else "",
            guest_email=_text(_find(node, "Email")),
            guest_phone=(phone.get("PhoneNumber") or _text(phone)) if phone is not None else "",
            total_amount=amount,
            currency=total.get("CurrencyCode", "USD") if total is not None else "USD",
            num_guests=int(guest_count.get("Count") or 1) if guest_count is not None else 1,
            special_requests=_text(_find(request, "Text")) if request is not None else "",
            raw={"xml": ET.tostring(node, encoding="unicode")},
        )

    def test_connection(self) -> bool:
        root = self._envelope("OTA_PingRQ")
        ET.SubElement(root, "EchoData").text = "roomsync"
        response = self.transport.request("POST", "availability", content=self._serialize(root))
        return response.success and not self.extract_errors(response.text)
