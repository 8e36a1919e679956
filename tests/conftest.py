# shirpur-delivery-core/tests/conftest.py
"""Shared fixtures: deterministic clocks, schedulers, random sources and stores."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

import pytest

from delivery_core.coordination import DeliveryCoordinator
from delivery_core.events import EventBus, EventType
from delivery_core.lifecycle import OrderLifecycle
from delivery_core.mock_data import MockDataGenerator
from delivery_core.models import Order, OrderLocation, OrderStatus
from delivery_core.scheduler import ManualScheduler
from delivery_core.storage import InMemoryKeyValueStore, InMemoryOrderStore
from delivery_core.tracking import TrackingSimulator

T0 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

MARKET = (21.3486, 74.8811)
STATION_ROAD = (21.3520, 74.8840)


class FixedRandom(random.Random):
    """random() always returns 0.5, so every jitter is exactly zero."""

    def random(self) -> float:
        return 0.5

    def choice(self, seq):
        return seq[0]

    def randint(self, a: int, b: int) -> int:
        return a


class EventRecorder:
    """Collects every payload published on the given topics."""

    def __init__(self, bus: EventBus, *events: EventType) -> None:
        self.received: List[Tuple[EventType, Dict[str, Any]]] = []
        for event in events:
            bus.subscribe(event, lambda payload, e=event: self.received.append((e, payload)))

    def of(self, event: EventType) -> List[Dict[str, Any]]:
        return [payload for e, payload in self.received if e == event]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock(scheduler):
    """Aware datetime clock that follows the manual scheduler."""
    return lambda: T0 + timedelta(seconds=scheduler.now)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def mock_data(scheduler) -> MockDataGenerator:
    return MockDataGenerator(rng=FixedRandom(), clock=lambda: T0.timestamp() + scheduler.now)


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore([
        Order(
            order_id="ORD-001",
            customer_name="Priya Sharma",
            customer_phone="+91 9123456780",
            customer_address="Station Road, Shirpur",
            total_amount=450.0,
            status=OrderStatus.PENDING,
            customer_lat=STATION_ROAD[0],
            customer_lng=STATION_ROAD[1],
            created_at=T0,
        ),
        Order(
            order_id="ORD-002",
            customer_name="Amit Joshi",
            total_amount=280.0,
            status=OrderStatus.READY_FOR_DELIVERY,
            created_at=T0 + timedelta(minutes=1),
        ),
    ])


@pytest.fixture
def lifecycle(order_store, bus, clock) -> OrderLifecycle:
    return OrderLifecycle(order_store, bus, clock=clock)


@pytest.fixture
def storage() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def coordinator(storage, bus, scheduler, clock, mock_data) -> DeliveryCoordinator:
    return DeliveryCoordinator(storage, bus, scheduler, clock=clock, mock_data=mock_data)


@pytest.fixture
def tracker(bus, scheduler, mock_data) -> TrackingSimulator:
    return TrackingSimulator(bus, scheduler, mock_data=mock_data, clock=mock_data.clock)


def make_record(order_id: str, lat: float, lng: float,
                status: OrderStatus = OrderStatus.READY_FOR_DELIVERY,
                phone: str = "+91 9000000000") -> OrderLocation:
    return OrderLocation(
        order_id=order_id,
        customer_lat=lat,
        customer_lng=lng,
        customer_name=f"Customer {order_id}",
        customer_phone=phone,
        total=100.0,
        status=status,
    )
