"""
Shared fixtures: a fresh SQLite file per test, settings tuned for tests,
room type factory and a scriptable fake channel client.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from roomsync.config import Settings
from roomsync.database import build_engine, create_tables
from roomsync.models.inventory import RoomType
from roomsync.services.channel_clients import ChannelClient, ChannelClientRegistry, RawReservation, SyncResult
from roomsync.services.credential_vault import CredentialVault
from roomsync.services.event_bus import EventBus
from roomsync.services.inventory_ledger import InventoryLedger
from roomsync.services.sync_orchestrator import SyncOrchestrator

TEST_SECRET = "test-secret-key-with-at-least-32-characters"
START = date(2031, 3, 2)


@pytest.fixture
def settings():
    return Settings(
        secret_key=TEST_SECRET,
        scheduler_enabled=False,
        channel_max_retries=3,
        channel_retry_base_delay=0,
        sync_horizon_days=30,
        mapping_error_threshold=3,
        inventory_init_days=30,
        log_json=False,
    )


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'roomsync-test.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def ledger(db):
    return InventoryLedger(db)


@pytest.fixture
def vault():
    return CredentialVault(TEST_SECRET)


@pytest.fixture
def make_room_type(db):
    """Create a room type with nights START .. START + days - 1 open"""
    def _make(code="DBL", total_rooms=5, base_price="100.00", days=10, start=START):
        room_type = RoomType(
            name=f"Room {code}",
            code=code,
            total_rooms=total_rooms,
            base_price=Decimal(base_price),
            is_active=True,
        )
        db.add(room_type)
        db.commit()
        db.refresh(room_type)
        if days:
            InventoryLedger(db).initialize_inventory(
                room_type.id, total_rooms, start, start + timedelta(days=days - 1)
            )
        return room_type
    return _make


class FakeChannelClient(ChannelClient):
    """
    Records every call. Behaviour per method is set on the instance:
    an exception to raise, or a SyncResult / reservation list to return.
    """

    def __init__(self, channel_name: str):
        self.channel_name = channel_name
        self.label = channel_name
        self.push_error: Optional[Exception] = None
        self.push_result: Optional[SyncResult] = None
        self.failing_rooms: Dict[str, Exception] = {}
        self.reservations: List[RawReservation] = []
        self.pull_error: Optional[Exception] = None
        self.availability_calls = []
        self.rate_calls = []
        self.pull_calls = 0
        self.closed = 0

    def _respond(self, mapping, count):
        if mapping.external_room_id in self.failing_rooms:
            raise self.failing_rooms[mapping.external_room_id]
        if self.push_error:
            raise self.push_error
        return self.push_result or SyncResult.succeeded(count)

    def push_availability(self, mapping, date_range, quantities):
        self.availability_calls.append((mapping.external_room_id, date_range, list(quantities)))
        return self._respond(mapping, len(quantities))

    def push_rates(self, mapping, date_range, rates):
        self.rate_calls.append((mapping.external_room_id, date_range, dict(rates)))
        return self._respond(mapping, len(rates))

    def pull_reservations(self, connection, since=None):
        self.pull_calls += 1
        if self.pull_error:
            raise self.pull_error
        return list(self.reservations)

    def test_connection(self):
        if self.push_error:
            raise self.push_error
        return True

    def close(self):
        self.closed += 1


@pytest.fixture
def fake_clients():
    """One FakeChannelClient per registered channel name"""
    return {
        "booking_com": FakeChannelClient("booking_com"),
        "channex": FakeChannelClient("channex"),
    }


@pytest.fixture
def clients(settings, fake_clients):
    registry = ChannelClientRegistry(settings)
    for name, client in fake_clients.items():
        registry.register(name, lambda credentials, s, client=client: client)
    return registry


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def orchestrator(db, vault, clients, settings, event_bus):
    return SyncOrchestrator.build(db, vault, clients, settings, event_bus)


@pytest.fixture
def connect_channel(orchestrator):
    """Active connection plus one mapping for the given room type"""
    def _connect(channel_name, room_type, external_room_id=None, credentials=None, **mapping_fields):
        registry = orchestrator.registry
        connection = registry.get_connection_by_channel(channel_name)
        if not connection:
            connection = registry.create_connection(
                channel_name, credentials or {"api_key": "k", "property_id": "p"}, is_active=True
            )
        mapping = registry.create_mapping(
            channel_name=channel_name,
            room_type_id=room_type.id,
            external_room_id=external_room_id or f"{channel_name.upper()}-{room_type.code}",
            **mapping_fields,
        )
        return connection, mapping
    return _connect


@pytest.fixture
def api(settings, engine, session_factory):
    """TestClient around an app bound to the test database, scheduler loops off"""
    from fastapi.testclient import TestClient

    from roomsync.database import get_db
    from roomsync.main import create_app

    app = create_app(settings, session_factory=session_factory, bind=engine)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
