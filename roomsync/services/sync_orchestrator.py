"""
Sync Orchestrator

Drives every exchange between the inventory ledger and the OTA channels:
- push_availability / push_rates: ledger and pricing -> channel, per mapping
- pull_reservations: channel -> booking service -> ledger
- on_booking_event: real-time availability push for one room type

Every (channel, sync_type) batch gets exactly one SyncLogEntry. Failures are
contained per mapping and per channel; only an auth failure stops a channel,
and it stays parked until its credentials are replaced.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..exceptions import (
    ChannelAuthError,
    ChannelError,
    DuplicateReservationError,
    InsufficientInventoryError,
    RoomSyncError,
    UnknownChannelError
)
from ..models.booking import BookingStatus
from ..models.channel_integration import (
    ChannelConnection,
    ChannelMapping,
    SyncDirection,
    SyncLogEntry,
    SyncStatus,
    SyncType
)
from ..utils.dates import parse_date, property_today
from ..utils.logging_config import log_context, request_id_var
from .booking_service import BookingService
from .channel_clients import ChannelClient, ChannelClientRegistry, RawReservation, SyncResult
from .channel_registry import ChannelRegistryService
from .credential_vault import CredentialVault
from .event_bus import BOOKING_CREATED, BOOKING_EVENTS, EventBus
from .inventory_ledger import DateRange, InventoryLedger
from .pricing_engine import PricingEngine, PricingProvider
from .sync_log import SyncLogRepository

logger = logging.getLogger(__name__)

PUSH_FLAGS = {
    SyncType.AVAILABILITY: "sync_availability",
    SyncType.RATES: "sync_rates",
}


def extract_booking_window(payload: Any) -> Tuple[Optional[str], Optional[date], Optional[date]]:
    """
    Pull (room_type_id, check_in, check_out) out of an event payload.

    Accepts a dict (optionally wrapping a "booking" dict), a BookingEvent or
    any object with matching attributes. Dates may be date objects or
    ISO strings. Missing pieces come back as None.
    """
    if payload is None:
        return None, None, None

    if isinstance(payload, dict):
        source = payload.get("booking") if isinstance(payload.get("booking"), dict) else payload

        def read(*names):
            for name in names:
                if source.get(name) not in (None, ""):
                    return source.get(name)
            return None
    else:
        def read(*names):
            for name in names:
                value = getattr(payload, name, None)
                if value not in (None, ""):
                    return value
            return None

    room_type_id = read("room_type_id")
    check_in = parse_date(read("check_in", "check_in_date"))
    check_out = parse_date(read("check_out", "check_out_date"))
    return (str(room_type_id) if room_type_id else None), check_in, check_out


class SyncOrchestrator:
    def __init__(
        self,
        db: Session,
        registry: ChannelRegistryService,
        sync_log: SyncLogRepository,
        ledger: InventoryLedger,
        pricing: PricingProvider,
        booking_service: BookingService,
        settings: Optional[Settings] = None
    ):
        self.db = db
        self.registry = registry
        self.sync_log = sync_log
        self.ledger = ledger
        self.pricing = pricing
        self.booking_service = booking_service
        self.settings = settings or get_settings()

    @classmethod
    def build(
        cls,
        db: Session,
        vault: CredentialVault,
        clients: ChannelClientRegistry,
        settings: Optional[Settings] = None,
        event_bus: Optional[EventBus] = None
    ) -> "SyncOrchestrator":
        """Wire the default collaborators around one session"""
        settings = settings or get_settings()
        ledger = InventoryLedger(db)
        return cls(
            db=db,
            registry=ChannelRegistryService(db, vault, clients),
            sync_log=SyncLogRepository(db),
            ledger=ledger,
            pricing=PricingEngine(db, ledger, settings),
            booking_service=BookingService(db, ledger, event_bus),
            settings=settings,
        )

    # ==================
    # Helpers
    # ==================

    def default_window(self) -> DateRange:
        today = property_today(self.settings.property_timezone)
        return DateRange(today, today + timedelta(days=self.settings.sync_horizon_days))

    def _window(self, start: Optional[date], end: Optional[date]) -> DateRange:
        default = self.default_window()
        start = start or default.start
        end = end or (start + timedelta(days=self.settings.sync_horizon_days))
        return DateRange(start, end)

    def _connections(self, channel_name: Optional[str]) -> List[ChannelConnection]:
        connections = self.registry.get_active_connections()
        if channel_name:
            connections = [c for c in connections if c.channel_name == channel_name]
            if not connections:
                logger.info(f"[{channel_name}] No active connection, nothing to sync")
        return connections

    def _client_for(self, connection: ChannelConnection) -> ChannelClient:
        credentials = self.registry.get_credentials(connection)
        if not credentials:
            raise ChannelAuthError(
                "Stored credentials could not be read", channel_name=connection.channel_name
            )
        return self.registry.clients.resolve(connection.channel_name, credentials)

    def _park(self, connection: ChannelConnection, exc: ChannelAuthError) -> None:
        self.registry.mark_connection_error(connection, f"Authentication failed: {exc}")

    @staticmethod
    def _batch_status(attempted: int, succeeded: int, errors: List[str], aborted: bool) -> SyncStatus:
        if aborted:
            return SyncStatus.FAILED
        if attempted == 0:
            return SyncStatus.SUCCESS
        if succeeded == 0:
            return SyncStatus.FAILED
        if errors:
            return SyncStatus.PARTIAL
        return SyncStatus.SUCCESS

    def _finish(
        self,
        entry: SyncLogEntry,
        status: SyncStatus,
        attempted: int,
        succeeded: int,
        errors: List[str]
    ) -> SyncResult:
        self.sync_log.complete(entry, status.value, attempted, "; ".join(errors) or None)
        result = SyncResult(
            success=status != SyncStatus.FAILED,
            message=f"{status.value}: {succeeded}/{attempted} item(s) synced",
            items_synced=succeeded,
            errors=list(errors),
        )
        if status == SyncStatus.FAILED and not result.errors:
            result.errors.append(result.message)
        return result

    def _isolated(
        self,
        connection: ChannelConnection,
        direction: SyncDirection,
        sync_type: SyncType,
        work: Callable[[SyncLogEntry], SyncResult]
    ) -> SyncResult:
        """Run one channel batch. A crash closes its log entry as failed and goes no further than this channel."""
        channel = connection.channel_name
        entry = None
        entry_id = None
        try:
            entry = self.sync_log.start(channel, direction, sync_type, request_id_var.get() or None)
            entry_id = entry.id
            return work(entry)
        except Exception as exc:
            self.db.rollback()
            logger.exception(f"[{channel}] {direction.value}/{sync_type.value} crashed: {exc}")
            message = f"Unexpected error: {exc}"
            if entry is not None:
                try:
                    if entry.completed_at is None:
                        return self._finish(entry, SyncStatus.FAILED, 0, 0, [message])
                except SQLAlchemyError as log_exc:
                    self.db.rollback()
                    logger.error(f"[{channel}] Could not close sync log entry {entry_id}: {log_exc}")
            return SyncResult.failed(message)

    # ==================
    # Push
    # ==================

    def _availability_payload(self, mapping: ChannelMapping, window: DateRange):
        return self.ledger.get_sellable_nights(mapping.room_type_id, window.start, window.end)

    def _rates_payload(self, mapping: ChannelMapping, window: DateRange) -> Dict[date, Decimal]:
        rate_plan_id = mapping.rate_plan_id or None
        rates = {}
        for night in window.nights():
            quote = self.pricing.calculate_stay_price(
                mapping.room_type_id, night, night + timedelta(days=1), rate_plan_id=rate_plan_id
            )
            rates[night] = quote.subtotal
        return rates

    def _push_channel(
        self,
        connection: ChannelConnection,
        sync_type: SyncType,
        window: DateRange,
        room_type_id: Optional[str] = None
    ) -> SyncResult:
        return self._isolated(
            connection, SyncDirection.PUSH, sync_type,
            lambda entry: self._push_batch(entry, connection, sync_type, window, room_type_id),
        )

    def _push_batch(
        self,
        entry: SyncLogEntry,
        connection: ChannelConnection,
        sync_type: SyncType,
        window: DateRange,
        room_type_id: Optional[str]
    ) -> SyncResult:
        channel = connection.channel_name

        mappings = self.registry.get_mappings_for_channel(channel, PUSH_FLAGS[sync_type])
        if room_type_id:
            mappings = [m for m in mappings if m.room_type_id == room_type_id]

        try:
            client = self._client_for(connection)
        except ChannelAuthError as exc:
            self._park(connection, exc)
            return self._finish(entry, SyncStatus.FAILED, 0, 0, [str(exc)])
        except UnknownChannelError as exc:
            logger.error(f"[{channel}] {exc}")
            return self._finish(entry, SyncStatus.FAILED, 0, 0, [str(exc)])

        if sync_type == SyncType.AVAILABILITY:
            build_payload: Callable = self._availability_payload
            send: Callable = client.push_availability
        else:
            build_payload = self._rates_payload
            send = client.push_rates

        # Read everything first; no transaction stays open across network calls
        prepared = []
        for mapping in mappings:
            try:
                prepared.append((mapping, build_payload(mapping, window), None))
            except RoomSyncError as exc:
                prepared.append((mapping, None, str(exc)))
            except Exception as exc:
                self.db.rollback()
                logger.exception(f"[{channel}] Could not prepare {sync_type.value} for {mapping.external_room_id}: {exc}")
                prepared.append((mapping, None, f"Unexpected error: {exc}"))
        self.db.commit()

        attempted = succeeded = 0
        errors: List[str] = []
        auth_error = None

        try:
            for mapping, payload, prepare_error in prepared:
                attempted += 1
                label = f"{mapping.external_room_id}"

                if prepare_error:
                    result = SyncResult.failed(prepare_error)
                else:
                    try:
                        result = send(mapping, window, payload)
                    except ChannelAuthError as exc:
                        auth_error = exc
                        break
                    except ChannelError as exc:
                        result = SyncResult.failed(str(exc))
                    except Exception as exc:
                        logger.exception(f"[{channel}] Unexpected error pushing {sync_type.value} for {label}: {exc}")
                        result = SyncResult.failed(f"Unexpected error: {exc}")

                if result.success:
                    succeeded += 1
                    self.registry.record_mapping_success(mapping, result.status.value)
                else:
                    self.registry.record_mapping_failure(
                        mapping, "; ".join(result.errors) or result.message, self.settings.mapping_error_threshold
                    )
                errors.extend(f"{label}: {error}" for error in result.errors)
        finally:
            client.close()

        if auth_error:
            self.db.commit()
            self._park(connection, auth_error)
            errors.append(str(auth_error))
            return self._finish(entry, SyncStatus.FAILED, attempted, succeeded, errors)

        self.registry.mark_synced(connection)
        self.db.commit()

        status = self._batch_status(attempted, succeeded, errors, aborted=False)
        return self._finish(entry, status, attempted, succeeded, errors)

    def push_availability(
        self,
        channel_name: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        room_type_id: Optional[str] = None
    ) -> Dict[str, SyncResult]:
        """Push per-night sellable counts for [start, end) to every active channel"""
        window = self._window(start, end)
        results = {}
        for connection in self._connections(channel_name):
            with log_context(channel=connection.channel_name):
                results[connection.channel_name] = self._push_channel(
                    connection, SyncType.AVAILABILITY, window, room_type_id
                )
        return results

    def push_rates(
        self,
        channel_name: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        room_type_id: Optional[str] = None
    ) -> Dict[str, SyncResult]:
        """Push per-night prices for [start, end) to every active channel"""
        window = self._window(start, end)
        results = {}
        for connection in self._connections(channel_name):
            with log_context(channel=connection.channel_name):
                results[connection.channel_name] = self._push_channel(connection, SyncType.RATES, window, room_type_id)
        return results

    # ==================
    # Pull
    # ==================

    def _import_reservation(self, channel: str, raw: RawReservation) -> str:
        """
        Resolve one raw reservation and apply it locally.
        Returns the outcome: created, duplicate, cancelled or ignored.
        Raises RoomSyncError subclasses for anything that needs attention.
        """
        if raw.is_cancelled:
            existing = self.booking_service.find_external(channel, raw.external_id)
            if existing and existing.status != BookingStatus.CANCELLED.value:
                self.booking_service.cancel(existing.id)
                return "cancelled"
            return "ignored"

        mapping = self.registry.find_mapping_by_external_room(channel, raw.room_type_code, raw.rate_code)
        if not mapping:
            raise RoomSyncError(f"No mapping for external room {raw.room_type_code}")

        guest_info = raw.guest_info()
        guest_info["raw"] = raw.raw
        try:
            booking = self.booking_service.create_from_external(
                room_type_id=mapping.room_type_id,
                check_in=raw.check_in,
                check_out=raw.check_out,
                external_ref=raw.external_id,
                guest_info=guest_info,
                channel_name=channel,
                quantity=max(raw.num_rooms, 1),
            )
        except DuplicateReservationError:
            return "duplicate"

        if booking.holds_inventory:
            if not self.ledger.deduct_rooms(booking.room_type_id, booking.check_in_date,
                                            booking.check_out_date, booking.quantity):
                logger.warning(
                    f"[{channel}] Reservation {raw.external_id} stored as booking {booking.id} "
                    f"without inventory: ledger refused the deduction"
                )
                raise InsufficientInventoryError(
                    booking.room_type_id, booking.check_in_date, booking.check_out_date, booking.quantity
                )
            self.booking_service.mark_rooms_deducted(booking)
            self.booking_service.notify(BOOKING_CREATED, booking)
        return "created"

    def _pull_channel(self, connection: ChannelConnection, since: Optional[datetime]) -> SyncResult:
        return self._isolated(
            connection, SyncDirection.PULL, SyncType.RESERVATIONS,
            lambda entry: self._pull_batch(entry, connection, since),
        )

    def _pull_batch(self, entry: SyncLogEntry, connection: ChannelConnection, since: Optional[datetime]) -> SyncResult:
        channel = connection.channel_name

        try:
            client = self._client_for(connection)
            try:
                reservations = client.pull_reservations(connection, since=since)
            finally:
                client.close()
        except ChannelAuthError as exc:
            self._park(connection, exc)
            return self._finish(entry, SyncStatus.FAILED, 0, 0, [str(exc)])
        except (ChannelError, UnknownChannelError) as exc:
            logger.error(f"[{channel}] Reservation pull failed: {exc}")
            return self._finish(entry, SyncStatus.FAILED, 0, 0, [str(exc)])

        attempted = succeeded = 0
        errors: List[str] = []
        outcomes: Dict[str, int] = {}

        for raw in reservations:
            attempted += 1
            try:
                outcome = self._import_reservation(channel, raw)
            except RoomSyncError as exc:
                errors.append(f"{raw.external_id}: {exc}")
                continue
            except Exception as exc:
                self.db.rollback()
                logger.exception(f"[{channel}] Unexpected error importing reservation {raw.external_id}: {exc}")
                errors.append(f"{raw.external_id}: Unexpected error: {exc}")
                continue
            succeeded += 1
            outcomes[outcome] = outcomes.get(outcome, 0) + 1

        if outcomes:
            logger.info(f"[{channel}] Pulled {attempted} reservation(s): {outcomes}")

        self.registry.mark_synced(connection)
        self.db.commit()

        status = self._batch_status(attempted, succeeded, errors, aborted=False)
        return self._finish(entry, status, attempted, succeeded, errors)

    def pull_reservations(
        self,
        channel_name: Optional[str] = None,
        since: Optional[datetime] = None
    ) -> Dict[str, SyncResult]:
        """Ingest reservations from every active channel with reservation sync enabled"""
        results = {}
        for connection in self._connections(channel_name):
            if not self.registry.get_mappings_for_channel(connection.channel_name, "sync_reservations"):
                logger.debug(f"[{connection.channel_name}] Reservation sync disabled on all mappings")
                continue
            with log_context(channel=connection.channel_name):
                results[connection.channel_name] = self._pull_channel(connection, since)
        return results

    # ==================
    # Composite runs
    # ==================

    def full_sync(
        self,
        channel_name: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> Dict[str, Dict[str, SyncResult]]:
        return {
            SyncType.AVAILABILITY.value: self.push_availability(channel_name, start, end),
            SyncType.RATES.value: self.push_rates(channel_name, start, end),
            SyncType.RESERVATIONS.value: self.pull_reservations(channel_name),
        }

    def test_connection(self, channel_name: str) -> Dict[str, Any]:
        """Check credentials against the channel without writing a sync log entry"""
        connection = self.registry.get_connection_by_channel(channel_name)
        if not connection:
            return {"success": False, "channel_name": channel_name, "message": "No connection configured"}

        try:
            client = self._client_for(connection)
            try:
                ok = client.test_connection()
            finally:
                client.close()
        except ChannelAuthError as exc:
            return {"success": False, "channel_name": channel_name, "message": f"Authentication failed: {exc}"}
        except (ChannelError, UnknownChannelError) as exc:
            return {"success": False, "channel_name": channel_name, "message": str(exc)}

        return {
            "success": bool(ok),
            "channel_name": channel_name,
            "message": "Connection OK" if ok else "Channel rejected the test request",
        }

    # ==================
    # Real-time push
    # ==================

    def attach(self, bus: EventBus) -> None:
        for event_type in BOOKING_EVENTS:
            bus.subscribe(event_type, self.on_booking_event)

    def on_booking_event(self, event_type: str, payload: Any) -> Dict[str, SyncResult]:
        """Push recomputed availability for the booked room type and nights to every mapped channel"""
        room_type_id, check_in, check_out = extract_booking_window(payload)
        if not room_type_id or not check_in or not check_out or check_out <= check_in:
            logger.warning(f"Ignoring {event_type}: payload has no usable room type and stay dates")
            return {}

        mappings = self.registry.get_mappings_for_room_type(room_type_id, "sync_availability")
        results: Dict[str, SyncResult] = {}
        for channel in sorted({m.channel_name for m in mappings}):
            results.update(self.push_availability(
                channel_name=channel, start=check_in, end=check_out, room_type_id=room_type_id
            ))

        if results:
            logger.info(f"{event_type}: pushed {room_type_id} {check_in}..{check_out} to {', '.join(results)}")
        return results
