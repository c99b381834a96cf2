# Services package
from .inventory_ledger import InventoryLedger, DateRange, NightAvailability
from .credential_vault import CredentialVault
from .event_bus import EventBus, BookingEvent, BOOKING_CREATED, BOOKING_CONFIRMED, BOOKING_CANCELLED
from .channel_clients import ChannelClient, ChannelClientRegistry, RawReservation, SyncResult, default_registry
from .channel_registry import ChannelRegistryService
from .sync_log import SyncLogRepository
from .pricing_engine import PricingEngine, StayPrice
from .booking_service import BookingService
from .inventory_service import InventoryService
from .sync_orchestrator import SyncOrchestrator
from .scheduler import SyncScheduler

__all__ = [
    "InventoryLedger", "DateRange", "NightAvailability",
    "CredentialVault",
    "EventBus", "BookingEvent", "BOOKING_CREATED", "BOOKING_CONFIRMED", "BOOKING_CANCELLED",
    "ChannelClient", "ChannelClientRegistry", "RawReservation", "SyncResult", "default_registry",
    "ChannelRegistryService",
    "SyncLogRepository",
    "PricingEngine", "StayPrice",
    "BookingService",
    "InventoryService",
    "SyncOrchestrator",
    "SyncScheduler",
]
