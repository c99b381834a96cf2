"""
Tests for the inventory admin API and room type administration
"""

from datetime import timedelta

import pytest

from roomsync.exceptions import ValidationError
from roomsync.services.inventory_service import InventoryService
from roomsync.utils.dates import property_today

from conftest import START


@pytest.fixture
def room_type(api):
    response = api.post("/api/inventory/room-types", json={
        "name": "Twin", "code": "TWN", "total_rooms": 3, "base_price": "90.00"
    })
    assert response.status_code == 201
    return response.json()


class TestRoomTypesApi:
    def test_active_room_type_opens_calendar(self, api, room_type):
        calendar = api.get(f"/api/inventory/{room_type['id']}")

        assert calendar.status_code == 200
        nights = calendar.json()
        assert len(nights) == 30
        assert nights[0]["date"] == property_today().isoformat()
        assert all(n["available_rooms"] == 3 and n["booked_rooms"] == 0 for n in nights)

    def test_inactive_room_type_has_no_calendar_until_activated(self, api):
        created = api.post("/api/inventory/room-types", json={
            "name": "Suite", "code": "STE", "total_rooms": 1, "is_active": False
        }).json()
        assert api.get(f"/api/inventory/{created['id']}").json() == []

        activated = api.patch(f"/api/inventory/room-types/{created['id']}", json={"is_active": True})

        assert activated.status_code == 200
        assert len(api.get(f"/api/inventory/{created['id']}").json()) == 30

    def test_duplicate_code(self, api, room_type):
        response = api.post("/api/inventory/room-types", json={"name": "Other", "code": "TWN", "total_rooms": 1})
        assert response.status_code == 422
        assert "code" in response.json()["errors"]

    def test_list(self, api, room_type):
        assert [rt["code"] for rt in api.get("/api/inventory/room-types").json()] == ["TWN"]

    def test_unknown_room_type(self, api):
        assert api.get("/api/inventory/nope").status_code == 404
        assert api.patch("/api/inventory/room-types/nope", json={"name": "x"}).status_code == 404


class TestCalendarApi:
    def test_bulk_update_inclusive_end(self, api, room_type):
        today = property_today()
        response = api.put(f"/api/inventory/{room_type['id']}", json={
            "start": today.isoformat(),
            "end": (today + timedelta(days=1)).isoformat(),
            "stop_sell": True,
            "price_override": "150.00",
        })

        assert response.status_code == 200
        assert response.json() == {"room_type_id": room_type["id"], "nights_updated": 2}

        nights = api.get(f"/api/inventory/{room_type['id']}", params={
            "start": today.isoformat(), "end": (today + timedelta(days=3)).isoformat()
        }).json()
        assert [n["stop_sell"] for n in nights] == [True, True, False]

    def test_bulk_update_rejects_bad_range(self, api, room_type):
        response = api.put(f"/api/inventory/{room_type['id']}", json={
            "start": "2031-03-05", "end": "2031-03-01", "stop_sell": True
        })
        assert response.status_code == 422

    def test_availability_is_bottleneck(self, api, room_type):
        today = property_today()
        api.put(f"/api/inventory/{room_type['id']}", json={
            "start": (today + timedelta(days=1)).isoformat(),
            "end": (today + timedelta(days=1)).isoformat(),
            "available_rooms": 1,
        })

        response = api.get(f"/api/inventory/{room_type['id']}/availability", params={
            "start": today.isoformat(), "end": (today + timedelta(days=3)).isoformat()
        })

        assert response.status_code == 200
        body = response.json()
        assert body["min_available"] == 1
        assert body["has_stop_sell"] is False
        assert len(body["nights"]) == 3

    def test_initialize_explicit_range(self, api, room_type):
        start = START
        response = api.post(f"/api/inventory/{room_type['id']}/initialize", json={
            "start": start.isoformat(), "end": (start + timedelta(days=4)).isoformat()
        })

        assert response.status_code == 200
        assert response.json()["nights_created"] == 5

        again = api.post(f"/api/inventory/{room_type['id']}/initialize", json={
            "start": start.isoformat(), "end": (start + timedelta(days=4)).isoformat()
        })
        assert again.json()["nights_created"] == 0


class TestInventoryService:
    def test_validation(self, db, ledger, settings):
        service = InventoryService(db, ledger, settings)

        with pytest.raises(ValidationError) as exc_info:
            service.create_room_type(name=" ", code="bad code!", total_rooms=-1, base_price=-5)

        assert set(exc_info.value.errors) == {"name", "code", "total_rooms", "base_price"}

    def test_total_rooms_change_does_not_rewrite_calendar(self, db, ledger, settings):
        service = InventoryService(db, ledger, settings)
        room_type = service.create_room_type(name="Double", code="DBL", total_rooms=2)

        service.update_room_type(room_type.id, total_rooms=5)

        db.expire_all()
        assert ledger.get_for_date(room_type.id, property_today()).total_rooms == 2
