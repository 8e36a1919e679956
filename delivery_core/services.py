# shirpur-delivery-core/delivery_core/services.py
"""
Process-level wiring of the delivery services.

build_services() creates one event bus and hands it to the lifecycle
service, the coordinator and the tracking simulator, then connects them:
- the coordinator applies acceptance and delivery through the lifecycle
- orderAccepted starts rich tracking from the coordinator's records
- orderDelivered, or any authoritative move away from out_for_delivery,
  stops it

Every dependency can be injected; anything omitted gets an in-memory or
real-time default.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from . import config, utils
from .coordination import ACCEPTABLE_STATUSES, DeliveryCoordinator
from .events import EventBus, EventType
from .lifecycle import OrderLifecycle
from .mock_data import MockDataGenerator
from .models import Location, OrderStatus
from .scheduler import AsyncioScheduler, Scheduler
from .storage import (
    InMemoryKeyValueStore,
    InMemoryOrderStore,
    KeyValueStore,
    OrderStore,
    OrderStoreError,
)
from .tracking import TrackingSimulator

logger = logging.getLogger(__name__)


@dataclass
class DeliveryServices:
    """One wired set of services sharing a bus, a scheduler and a clock."""
    bus: EventBus
    order_store: OrderStore
    storage: KeyValueStore
    scheduler: Scheduler
    lifecycle: OrderLifecycle
    coordinator: DeliveryCoordinator
    tracker: TrackingSimulator

    def start_tracking(self, payload: Dict[str, Any]) -> None:
        """orderAccepted handler: track the accepted order from the agent's position."""
        order_id = payload["order_id"]
        agent_id = payload["agent_id"]
        record = self.coordinator.get_order(order_id)
        agent = self.coordinator.get_agent(agent_id)
        if record is None or agent is None:
            logger.warning(f"Cannot start tracking {order_id}: missing order or agent record")
            return

        now = self.tracker.clock()
        customer = Location(
            lat=record.customer_lat,
            lng=record.customer_lng,
            timestamp=now,
            address=record.customer_address or None,
        )
        start = Location(
            lat=agent.current_lat,
            lng=agent.current_lng,
            timestamp=now,
            speed=config.DEFAULT_AGENT_SPEED_KMH,
        )
        self.tracker.start_order_tracking(order_id, agent_id, customer, start)

    def stop_tracking(self, payload: Dict[str, Any]) -> None:
        self.tracker.stop_order_tracking(payload["order_id"])

    def on_status_change(self, payload: Dict[str, Any]) -> None:
        if payload["to_status"] != OrderStatus.OUT_FOR_DELIVERY:
            self.tracker.stop_order_tracking(payload["order_id"])

    def sync_orders(self) -> int:
        """
        Register every acceptable order from the order store with the coordinator.

        Returns:
            Number of orders registered; 0 if the store could not be read
        """
        registered = 0
        for status in sorted(ACCEPTABLE_STATUSES, key=lambda s: s.value):
            try:
                orders = self.order_store.list_orders(status)
            except OrderStoreError as e:
                logger.warning(f"Could not load {status.value} orders: {e.message}")
                return registered
            for order in orders:
                self.coordinator.register_order(order)
                registered += 1
        logger.info(f"Registered {registered} orders with the coordinator")
        return registered

    def shutdown(self) -> None:
        """Cancel every recurring job and detach the handlers."""
        self.coordinator.shutdown()
        self.tracker.stop_all_tracking()
        self.bus.unsubscribe(EventType.ORDER_ACCEPTED, self.start_tracking)
        self.bus.unsubscribe(EventType.ORDER_DELIVERED, self.stop_tracking)
        self.bus.unsubscribe(EventType.ORDER_STATUS_CHANGED, self.on_status_change)


def build_services(
    order_store: Optional[OrderStore] = None,
    storage: Optional[KeyValueStore] = None,
    scheduler: Optional[Scheduler] = None,
    rng: Optional[random.Random] = None,
    clock: Callable[[], datetime] = utils.utc_now,
    bus: Optional[EventBus] = None
) -> DeliveryServices:
    """
    Wire lifecycle, coordinator and tracker around one event bus.

    Args:
        order_store: Authoritative orders (default: empty InMemoryOrderStore)
        storage: Coordinator state (default: InMemoryKeyValueStore)
        scheduler: Tick source (default: AsyncioScheduler on the running loop)
        rng: Random source for all simulated data
        clock: Returns the current aware datetime; the tracker sees it as epoch seconds
        bus: Shared event bus (default: a new one)

    Returns:
        The wired DeliveryServices
    """
    bus = bus or EventBus()
    order_store = order_store or InMemoryOrderStore()
    storage = storage or InMemoryKeyValueStore()
    scheduler = scheduler or AsyncioScheduler()

    def epoch_clock() -> float:
        return clock().timestamp()

    mock_data = MockDataGenerator(rng=rng, clock=epoch_clock)

    lifecycle = OrderLifecycle(order_store, bus, clock=clock)
    coordinator = DeliveryCoordinator(storage, bus, scheduler, clock=clock, mock_data=mock_data,
                                      lifecycle=lifecycle)
    tracker = TrackingSimulator(bus, scheduler, mock_data=mock_data, clock=epoch_clock)

    services = DeliveryServices(
        bus=bus,
        order_store=order_store,
        storage=storage,
        scheduler=scheduler,
        lifecycle=lifecycle,
        coordinator=coordinator,
        tracker=tracker,
    )
    bus.subscribe(EventType.ORDER_ACCEPTED, services.start_tracking)
    bus.subscribe(EventType.ORDER_DELIVERED, services.stop_tracking)
    bus.subscribe(EventType.ORDER_STATUS_CHANGED, services.on_status_change)
    return services
