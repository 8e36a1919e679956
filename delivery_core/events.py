# shirpur-delivery-core/delivery_core/events.py
"""
In-process publish/subscribe channel shared by the lifecycle, coordinator
and tracking services.

Handlers run synchronously, in registration order, on the publishing call
stack. Nothing is persisted: subscribers that are not registered when an
event is published never see it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], None]


class EventType(Enum):
    ORDER_STATUS_CHANGED = "orderStatusChanged"
    AGENT_LOCATION_UPDATE = "agentLocationUpdate"
    ORDER_ACCEPTED = "orderAccepted"
    LIVE_LOCATION_UPDATE = "liveLocationUpdate"
    ORDER_DELIVERED = "orderDelivered"
    TRACKING_STARTED = "trackingStarted"
    TRACKING_UPDATE = "trackingUpdate"
    TRACKING_STOPPED = "trackingStopped"


class EventBus:
    """Topic -> ordered list of handlers."""

    def __init__(self) -> None:
        self._subscribers: Dict[EventType, List[Handler]] = {}

    def subscribe(self, event: EventType, handler: Handler) -> None:
        self._subscribers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: EventType, handler: Handler) -> None:
        """Remove the first registration of handler. Unknown handlers are ignored."""
        handlers = self._subscribers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, event: EventType) -> int:
        return len(self._subscribers.get(event, []))

    def publish(self, event: EventType, payload: Dict[str, Any]) -> int:
        """
        Deliver payload to every handler of event.

        A failing handler is logged and skipped so the remaining handlers
        still run.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        # Copy so handlers may unsubscribe themselves while being notified
        for handler in list(self._subscribers.get(event, [])):
            try:
                handler(payload)
                delivered += 1
            except Exception:
                logger.exception(f"Handler {handler!r} failed for {event.value}")
        return delivered
