"""
Error taxonomy for the inventory ledger and channel sync engine.

Channel errors are contained by the orchestrator at channel or mapping scope.
Only InsufficientInventoryError reaches the caller that asked for a deduction.
"""

from typing import Dict, Optional


class RoomSyncError(Exception):
    """Base class for all domain errors"""


class ValidationError(RoomSyncError):
    """Malformed connection/mapping/inventory input, rejected before persistence"""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))


class NotFoundError(RoomSyncError):
    pass


class InsufficientInventoryError(RoomSyncError):
    """A deduction could not be applied to every night of the stay"""

    def __init__(self, room_type_id: str, check_in, check_out, quantity: int):
        self.room_type_id = room_type_id
        self.check_in = check_in
        self.check_out = check_out
        self.quantity = quantity
        super().__init__(
            f"Not enough rooms for room type {room_type_id} "
            f"from {check_in} to {check_out} (requested {quantity})"
        )


class DuplicateReservationError(RoomSyncError):
    """An external reservation reference was already imported"""

    def __init__(self, channel_name: str, external_ref: str, booking_id: Optional[str] = None):
        self.channel_name = channel_name
        self.external_ref = external_ref
        self.booking_id = booking_id
        super().__init__(f"Reservation {external_ref} from {channel_name} already exists")


class ChannelError(RoomSyncError):
    """Base for failures reported by or while talking to a channel"""

    def __init__(self, message: str, status_code: int = 0, channel_name: Optional[str] = None):
        self.status_code = status_code
        self.channel_name = channel_name
        super().__init__(message)


class ChannelTransportError(ChannelError):
    """Network, timeout or retryable HTTP failure; retried on the next run"""


class ChannelAuthError(ChannelError):
    """Bad or missing credentials; the channel is parked until reconfigured"""


class UnknownChannelError(RoomSyncError):
    def __init__(self, channel_name: str):
        self.channel_name = channel_name
        super().__init__(f"No client registered for channel '{channel_name}'")
