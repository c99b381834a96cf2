"""
Channel client registry.

Maps channel_name to a factory building a ChannelClient from decrypted
credentials. Populated once at process start and resolved by name inside the
orchestrator.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from ...config import Settings, get_settings
from ...exceptions import UnknownChannelError
from .base import ChannelClient, RawReservation, SyncResult
from .booking_com import BookingComChannelClient
from .channex import ChannexChannelClient

logger = logging.getLogger(__name__)

ChannelClientFactory = Callable[[Dict[str, str], Settings], ChannelClient]

CHANNEL_LABELS = {
    "booking_com": "Booking.com",
    "channex": "Channex",
    "expedia": "Expedia",
    "airbnb": "Airbnb",
    "agoda": "Agoda",
}


class ChannelClientRegistry:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._factories: Dict[str, ChannelClientFactory] = {}
        self._labels: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, channel_name: str, factory: ChannelClientFactory, label: Optional[str] = None) -> None:
        with self._lock:
            if channel_name in self._factories:
                logger.warning(f"Replacing client factory for channel {channel_name}")
            self._factories[channel_name] = factory
            self._labels[channel_name] = label or CHANNEL_LABELS.get(channel_name, channel_name)

    def is_registered(self, channel_name: str) -> bool:
        return channel_name in self._factories

    def resolve(self, channel_name: str, credentials: Dict[str, str]) -> ChannelClient:
        factory = self._factories.get(channel_name)
        if factory is None:
            raise UnknownChannelError(channel_name)
        return factory(credentials, self.settings)

    def names(self) -> List[str]:
        return sorted(self._factories)

    def labels(self) -> Dict[str, str]:
        return {name: self._labels[name] for name in self.names()}


def default_registry(settings: Optional[Settings] = None) -> ChannelClientRegistry:
    registry = ChannelClientRegistry(settings)
    registry.register(BookingComChannelClient.channel_name, BookingComChannelClient.from_credentials,
                      BookingComChannelClient.label)
    registry.register(ChannexChannelClient.channel_name, ChannexChannelClient.from_credentials,
                      ChannexChannelClient.label)
    return registry


__all__ = [
    "CHANNEL_LABELS",
    "ChannelClient",
    "ChannelClientFactory",
    "ChannelClientRegistry",
    "RawReservation",
    "SyncResult",
    "default_registry",
]
