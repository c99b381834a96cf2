# Models package
from .inventory import RoomType, InventoryDay
from .booking import Booking, BookingStatus, INVENTORY_HOLDING_STATUSES, holds_inventory
from .channel_integration import (
    ChannelConnection,
    ChannelMapping,
    SyncLogEntry,
    ConnectionStatus,
    MappingStatus,
    SyncDirection,
    SyncType,
    SyncStatus
)
