"""
Booking Lifecycle Event Bus

In-process publish/subscribe between the booking service and the channel
sync engine. Handlers run synchronously in subscription order; a failing
handler is logged and reported, never raised, and never stops the others.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"

BOOKING_EVENTS = (BOOKING_CREATED, BOOKING_CONFIRMED, BOOKING_CANCELLED)

EventHandler = Callable[[str, Any], None]


@dataclass
class BookingEvent:
    """Minimal payload every booking lifecycle event carries"""
    room_type_id: str
    check_in: date
    check_out: date
    booking_id: Optional[str] = None
    status: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=datetime.utcnow)


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        if not callable(handler):
            raise TypeError(f"Handler for {event_type} must be callable")

        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler in handlers:
                raise ValueError(
                    f"Handler {getattr(handler, '__qualname__', handler)} "
                    f"already subscribed to {event_type}"
                )
            handlers.append(handler)

        logger.debug(f"Subscribed {getattr(handler, '__qualname__', handler)} to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler not in handlers:
                return False
            handlers.remove(handler)
            return True

    def subscribers(self, event_type: str) -> List[EventHandler]:
        with self._lock:
            return list(self._subscribers.get(event_type, []))

    def publish(self, event_type: str, payload: Any) -> Dict[str, Any]:
        """
        Deliver payload to every handler of event_type.

        Returns a summary: subscribers_notified, subscribers_failed and a
        failures list with handler name and error per failed handler.
        """
        result = {
            "event_type": event_type,
            "subscribers_notified": 0,
            "subscribers_failed": 0,
            "failures": [],
        }

        for handler in self.subscribers(event_type):
            handler_name = getattr(handler, "__qualname__", str(handler))
            try:
                handler(event_type, payload)
                result["subscribers_notified"] += 1
            except Exception as exc:
                result["subscribers_failed"] += 1
                result["failures"].append({
                    "handler": handler_name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                })
                logger.error(f"Subscriber {handler_name} failed for {event_type}: {exc}", exc_info=True)

        if result["subscribers_notified"] or result["subscribers_failed"]:
            logger.info(
                f"Published {event_type}: {result['subscribers_notified']} notified, "
                f"{result['subscribers_failed']} failed"
            )
        return result
