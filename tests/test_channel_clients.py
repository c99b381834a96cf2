"""
Tests for the channel adapters and their shared HTTP transport

All HTTP traffic goes through httpx.MockTransport, no network needed.

These tests verify:
- Retries on 5xx/network errors, then ChannelTransportError
- 401/403 raise ChannelAuthError without retrying
- Channex payload shapes and meta.warnings -> partial result
- Booking.com OTA XML building and parsing, with and without namespace
"""

import json
from datetime import date, datetime, timedelta
from decimal import Decimal

import httpx
import pytest

from roomsync.exceptions import ChannelAuthError, ChannelTransportError
from roomsync.models.channel_integration import ChannelMapping, SyncStatus
from roomsync.services.channel_clients import default_registry
from roomsync.services.channel_clients.booking_com import BookingComChannelClient
from roomsync.services.channel_clients.channex import ChannexChannelClient
from roomsync.services.channel_clients.http import ChannelHttpTransport, sanitize_payload
from roomsync.services.inventory_ledger import DateRange, NightAvailability

CHANNEX_CREDS = {"api_key": "cx-key", "property_id": "prop-1"}
BOOKING_CREDS = {"hotel_id": "12345", "username": "xml-user", "password": "xml-pass"}
NIGHT = date(2031, 5, 1)


def mock_client(handler, calls):
    def recording(request):
        calls.append(request)
        return handler(request)
    return httpx.Client(transport=httpx.MockTransport(recording))


def sequence(*responses):
    """Handler answering with each response in turn, repeating the last one"""
    remaining = list(responses)

    def handler(request):
        response = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(response, Exception):
            raise response
        return response
    return handler


def nights(*values):
    return [NightAvailability(date=NIGHT + timedelta(days=i), available=v) for i, v in enumerate(values)]


@pytest.fixture
def mapping():
    return ChannelMapping(
        id="map-1",
        channel_name="channex",
        room_type_id="rt-1",
        rate_plan_id=0,
        external_room_id="CX-ROOM",
        external_rate_id="CX-RATE",
    )


class TestHttpTransport:
    def test_retries_then_succeeds(self):
        calls = []
        client = mock_client(sequence(
            httpx.Response(503),
            httpx.Response(502),
            httpx.Response(200, json={"ok": True}),
        ), calls)
        sleeps = []
        transport = ChannelHttpTransport("channex", "https://api.test", client=client, max_retries=3,
                                         base_delay=0.5, sleep=sleeps.append)

        response = transport.request("GET", "/ping")

        assert response.success
        assert response.data == {"ok": True}
        assert len(calls) == 3
        assert sleeps == [0.5, 1.0]

    def test_gives_up_after_max_retries(self):
        calls = []
        client = mock_client(sequence(httpx.Response(500)), calls)
        transport = ChannelHttpTransport("channex", "https://api.test", client=client, max_retries=3,
                                         sleep=lambda s: None)

        with pytest.raises(ChannelTransportError) as exc_info:
            transport.request("POST", "/availability", json={"values": []})

        assert len(calls) == 3
        assert exc_info.value.status_code == 500
        assert exc_info.value.channel_name == "channex"

    def test_network_errors_are_retried(self):
        calls = []

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = ChannelHttpTransport("channex", "https://api.test", client=mock_client(handler, calls),
                                         max_retries=2, sleep=lambda s: None)

        with pytest.raises(ChannelTransportError):
            transport.request("GET", "/ping")
        assert len(calls) == 2

    @pytest.mark.parametrize("status_code", [401, 403])
    def test_auth_failure_is_not_retried(self, status_code):
        calls = []
        client = mock_client(sequence(httpx.Response(status_code, json={"error": "invalid key"})), calls)
        transport = ChannelHttpTransport("channex", "https://api.test", client=client, sleep=lambda s: None)

        with pytest.raises(ChannelAuthError) as exc_info:
            transport.request("GET", "/ping")

        assert len(calls) == 1
        assert str(exc_info.value) == "invalid key"

    def test_client_errors_are_returned(self):
        calls = []
        client = mock_client(sequence(httpx.Response(422, json={"errors": {"title": "bad date"}})), calls)
        transport = ChannelHttpTransport("channex", "https://api.test", client=client, sleep=lambda s: None)

        response = transport.request("POST", "/restrictions", json={})

        assert not response.success
        assert response.error == "bad date"
        assert response.error_code == "validation_error"
        assert len(calls) == 1

    def test_secrets_redacted_for_logging(self):
        cleaned = sanitize_payload({"api_key": "x", "nested": {"password": "y", "date": "2031-01-01"}})
        assert cleaned == {"api_key": "[REDACTED]", "nested": {"password": "[REDACTED]", "date": "2031-01-01"}}


class TestChannexClient:
    def build(self, settings, handler, calls):
        return ChannexChannelClient.from_credentials(CHANNEX_CREDS, settings, http_client=mock_client(handler, calls))

    def test_missing_credentials(self, settings):
        with pytest.raises(ChannelAuthError):
            ChannexChannelClient.from_credentials({"api_key": "only"}, settings)

    def test_push_availability_payload(self, settings, mapping):
        calls = []
        client = self.build(settings, sequence(httpx.Response(200, json={"data": []})), calls)

        result = client.push_availability(mapping, DateRange(NIGHT, NIGHT + timedelta(days=2)), nights(3, 1))

        assert result.status == SyncStatus.SUCCESS
        assert result.items_synced == 2
        availability = json.loads(calls[0].content)
        assert str(calls[0].url) == "https://app.channex.io/api/v1/availability"
        assert calls[0].headers["user-api-key"] == "cx-key"
        assert availability["values"][0] == {
            "property_id": "prop-1",
            "room_type_id": "CX-ROOM",
            "date": NIGHT.isoformat(),
            "availability": 3,
        }
        # Restrictions follow on the mapped rate plan
        restrictions = json.loads(calls[1].content)
        assert calls[1].url.path.endswith("/restrictions")
        assert restrictions["values"][1]["rate_plan_id"] == "CX-RATE"
        assert restrictions["values"][1]["stop_sell"] is False

    def test_warnings_make_partial_result(self, settings, mapping):
        calls = []
        mapping.external_rate_id = None
        body = {"meta": {"warnings": [{"warning": "availability exceeds room count"}]}}
        client = self.build(settings, sequence(httpx.Response(200, json=body)), calls)

        result = client.push_availability(mapping, DateRange(NIGHT, NIGHT + timedelta(days=3)), nights(1, 1, 1))

        assert result.status == SyncStatus.PARTIAL
        assert result.items_synced == 2
        assert result.errors == ["availability exceeds room count"]
        assert len(calls) == 1

    def test_push_rates_formats_two_decimals(self, settings, mapping):
        calls = []
        client = self.build(settings, sequence(httpx.Response(200, json={})), calls)

        result = client.push_rates(mapping, DateRange(NIGHT, NIGHT + timedelta(days=1)), {NIGHT: Decimal("99.5")})

        assert result.success
        assert json.loads(calls[0].content)["values"][0]["rate"] == "99.50"

    def test_push_rates_requires_rate_plan(self, settings, mapping):
        mapping.external_rate_id = None
        client = self.build(settings, sequence(httpx.Response(200, json={})), [])

        result = client.push_rates(mapping, DateRange(NIGHT, NIGHT + timedelta(days=1)), {NIGHT: Decimal("80")})

        assert result.status == SyncStatus.FAILED

    def test_rejected_push_is_failed_result(self, settings, mapping):
        client = self.build(settings, sequence(httpx.Response(400, json={"message": "bad room"})), [])

        result = client.push_availability(mapping, DateRange(NIGHT, NIGHT + timedelta(days=1)), nights(1))

        assert result.status == SyncStatus.FAILED
        assert "bad room" in result.message

    def test_pull_reservations(self, settings):
        calls = []
        body = {"data": [
            {
                "id": "bk-1",
                "attributes": {
                    "ota_reservation_code": "OTA-77",
                    "status": "new",
                    "amount": "240.00",
                    "currency": "EUR",
                    "customer": {"name": "Ana", "surname": "Lopez", "mail": "ana@example.com"},
                    "rooms": [{
                        "room_type_id": "CX-ROOM",
                        "rate_plan_id": "CX-RATE",
                        "checkin_date": "2031-05-01",
                        "checkout_date": "2031-05-03",
                        "occupancy": {"adults": 2, "children": 1},
                    }],
                },
            },
            {"id": "bk-2", "attributes": {"status": "cancelled", "rooms": [{"room_type_id": "CX-ROOM"}]}},
        ]}
        client = self.build(settings, sequence(httpx.Response(200, json=body)), calls)

        reservations = client.pull_reservations(None, since=datetime(2031, 4, 1, 12, 0))

        assert calls[0].url.params["filter[updated_at_gte]"] == "2031-04-01T12:00:00"
        first, second = reservations
        assert first.external_id == "OTA-77"
        assert first.status == "confirmed"
        assert (first.check_in, first.check_out) == (date(2031, 5, 1), date(2031, 5, 3))
        assert first.guest_name == "Ana Lopez"
        assert first.num_guests == 3
        assert first.total_amount == Decimal("240.00")
        assert second.external_id == "bk-2"
        assert second.is_cancelled

    def test_unreadable_booking_is_skipped(self, settings):
        """One malformed booking does not cost the rest of the page"""
        room = {"room_type_id": "CX-ROOM", "checkin_date": "2031-05-01", "checkout_date": "2031-05-02"}
        body = {"data": [
            {"id": "bk-1", "attributes": {"status": "new", "rooms": [dict(room, occupancy={"adults": 2})]}},
            {"id": "bk-2", "attributes": {"status": "new", "rooms": [dict(room, occupancy={"adults": "two"})]}},
        ]}
        client = self.build(settings, sequence(httpx.Response(200, json=body)), [])

        reservations = client.pull_reservations(None)

        assert [r.external_id for r in reservations] == ["bk-1"]
        assert reservations[0].num_guests == 2

    def test_pull_failure_raises(self, settings):
        client = self.build(settings, sequence(httpx.Response(404, json={})), [])
        with pytest.raises(ChannelTransportError):
            client.pull_reservations(None)


RESERVATIONS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<OTA_ResRetrieveRS {ns}>
  <ReservationsList>
    <HotelReservation ResStatus="Commit">
      <UniqueID ID="BDC-1001"/>
      <RoomStays>
        <RoomStay>
          <RoomTypes><RoomType RoomTypeCode="BDC-DBL"/></RoomTypes>
          <RatePlans><RatePlan RatePlanCode="STD"/></RatePlans>
          <GuestCounts><GuestCount Count="2"/></GuestCounts>
          <TimeSpan Start="2031-05-01" End="2031-05-04"/>
          <Total AmountAfterTax="330.00" CurrencyCode="EUR"/>
        </RoomStay>
      </RoomStays>
      <ResGuests><ResGuest><Profiles><ProfileInfo><Profile><Customer>
        <PersonName><GivenName>Jo</GivenName><Surname>Smith</Surname></PersonName>
        <Telephone PhoneNumber="+100200"/>
        <Email>jo@example.com</Email>
      </Customer></Profile></ProfileInfo></Profiles></ResGuest></ResGuests>
    </HotelReservation>
    <HotelReservation ResID_Value="BDC-1002" ResStatus="Cancelled">
      <TimeSpan Start="2031-06-01" End="2031-06-02"/>
    </HotelReservation>
  </ReservationsList>
</OTA_ResRetrieveRS>"""


class TestBookingComClient:
    def build(self, settings, handler, calls):
        return BookingComChannelClient.from_credentials(BOOKING_CREDS, settings, http_client=mock_client(handler, calls))

    def test_missing_credentials(self, settings):
        with pytest.raises(ChannelAuthError):
            BookingComChannelClient.from_credentials({"hotel_id": "1"}, settings)

    @pytest.mark.parametrize("ns", ['xmlns="http://www.opentravel.org/OTA/2003/05"', ""])
    def test_parse_reservations(self, settings, ns):
        client = self.build(settings, sequence(httpx.Response(200)), [])

        first, second = client.parse_reservations(RESERVATIONS_XML.format(ns=ns))

        assert first.external_id == "BDC-1001"
        assert first.room_type_code == "BDC-DBL"
        assert first.rate_code == "STD"
        assert (first.check_in, first.check_out) == (date(2031, 5, 1), date(2031, 5, 4))
        assert first.guest_name == "Jo Smith"
        assert first.guest_email == "jo@example.com"
        assert first.guest_phone == "+100200"
        assert first.total_amount == Decimal("330.00")
        assert first.currency == "EUR"
        assert not first.is_cancelled
        assert second.external_id == "BDC-1002"
        assert second.is_cancelled

    def test_unparseable_reservation_body(self, settings):
        client = self.build(settings, sequence(httpx.Response(200)), [])
        assert client.parse_reservations("<not-closed") == []

    def test_push_availability_xml(self, settings, mapping):
        calls = []
        client = self.build(settings, sequence(httpx.Response(200, text="<OTA_HotelAvailNotifRS><Success/></OTA_HotelAvailNotifRS>")), calls)
        quantities = nights(2, 0)
        quantities[1].stop_sell = True

        result = client.push_availability(mapping, DateRange(NIGHT, NIGHT + timedelta(days=2)), quantities)

        assert result.status == SyncStatus.SUCCESS
        assert result.items_synced == 2
        request = calls[0]
        assert str(request.url) == "https://supply-xml.booking.com/hotels/xml/availability"
        assert request.headers["Authorization"].startswith("Basic ")
        body = request.content.decode("utf-8")
        assert 'BookingLimit="2"' in body
        assert 'InvTypeCode="CX-ROOM"' in body
        assert 'Status="Close"' in body
        assert 'HotelCode="12345"' in body

    def test_warnings_in_success_answer(self, settings, mapping):
        answer = """<OTA_HotelRateAmountNotifRS xmlns="http://www.opentravel.org/OTA/2003/05">
          <Warnings><Warning ShortText="Rate below minimum"/></Warnings>
        </OTA_HotelRateAmountNotifRS>"""
        client = self.build(settings, sequence(httpx.Response(200, text=answer)), [])

        result = client.push_rates(mapping, DateRange(NIGHT, NIGHT + timedelta(days=2)),
                                   {NIGHT: Decimal("50"), NIGHT + timedelta(days=1): Decimal("55")})

        assert result.status == SyncStatus.PARTIAL
        assert result.items_synced == 1
        assert result.errors == ["Rate below minimum"]

    def test_http_error_is_failed_result(self, settings, mapping):
        client = self.build(settings, sequence(httpx.Response(400, text="<Errors/>")), [])

        result = client.push_rates(mapping, DateRange(NIGHT, NIGHT + timedelta(days=1)), {NIGHT: Decimal("50")})

        assert result.status == SyncStatus.FAILED


class TestClientRegistry:
    def test_default_channels(self, settings):
        registry = default_registry(settings)
        assert registry.names() == ["booking_com", "channex"]
        assert registry.labels()["booking_com"] == "Booking.com"

    def test_resolve_builds_client(self, settings):
        client = default_registry(settings).resolve("channex", CHANNEX_CREDS)
        assert isinstance(client, ChannexChannelClient)
        assert client.property_id == "prop-1"
