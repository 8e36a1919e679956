# shirpur-delivery-core/tests/test_coordination.py
"""Delivery coordinator: nearby search, acceptance, movement ticks and mirroring."""

import pytest

from delivery_core import config, utils
from delivery_core.coordination import AGENTS_KEY, ORDERS_KEY, DeliveryCoordinator
from delivery_core.events import EventType
from delivery_core.models import Order, OrderStatus

from conftest import MARKET, STATION_ROAD, EventRecorder, make_record


@pytest.fixture
def agent(coordinator):
    return coordinator.set_agent_position("AGT-01", *MARKET, name="Ravi Patil", phone="+91 9876543210")


def point_at(distance_km):
    """A point due north of the market."""
    return utils.destination_point(*MARKET, 0.0, distance_km)


# =============================================================================
# AGENTS
# =============================================================================


def test_new_agent_is_created_and_published(coordinator, bus, storage):
    events = EventRecorder(bus, EventType.AGENT_LOCATION_UPDATE)

    agent = coordinator.set_agent_position("AGT-02", 21.35, 74.88)

    assert agent.name == "Agent AGT-02"
    assert agent.phone == "+91 1000000000"
    assert agent.is_active
    assert "AGT-02" in storage.get(AGENTS_KEY)
    assert events.of(EventType.AGENT_LOCATION_UPDATE) == [{"agent_id": "AGT-02", "lat": 21.35, "lng": 74.88}]


def test_position_update_keeps_details(coordinator, agent):
    coordinator.deactivate_agent("AGT-01")
    assert not coordinator.get_agent("AGT-01").is_active

    updated = coordinator.set_agent_position("AGT-01", 21.36, 74.89)

    assert updated.name == "Ravi Patil"
    assert updated.is_active
    assert updated.current_loc == (21.36, 74.89)
    assert not coordinator.deactivate_agent("AGT-404")


# =============================================================================
# NEARBY ORDERS
# =============================================================================


def test_nearby_radius_is_inclusive(coordinator, agent):
    coordinator.register_order(make_record("INSIDE", *point_at(9.999)))
    coordinator.register_order(make_record("OUTSIDE", *point_at(10.001)))

    nearby = coordinator.find_nearby_orders("AGT-01", 10.0)

    assert [o.order_id for o in nearby] == ["INSIDE"]
    assert nearby[0].distance == pytest.approx(9.999, abs=1e-6)


def test_nearby_sorted_and_filtered_by_status(coordinator, agent):
    coordinator.register_order(make_record("FAR", *point_at(3.0)))
    coordinator.register_order(make_record("NEAR", *point_at(1.0), status=OrderStatus.CONFIRMED))
    coordinator.register_order(make_record("DONE", *point_at(0.5), status=OrderStatus.DELIVERED))
    coordinator.register_order(make_record("NEW", *point_at(0.5), status=OrderStatus.PENDING))

    assert [o.order_id for o in coordinator.find_nearby_orders("AGT-01")] == ["NEAR", "FAR"]


def test_unknown_agent_has_no_nearby_orders(coordinator):
    coordinator.register_order(make_record("ORD-1", *MARKET))
    assert coordinator.find_nearby_orders("AGT-404") == []


def test_register_store_order_uses_default_location(coordinator):
    record = coordinator.register_order(Order(order_id="ORD-9", status=OrderStatus.CONFIRMED))
    assert record.customer_loc == (config.DEFAULT_CUSTOMER_LAT, config.DEFAULT_CUSTOMER_LNG)
    assert coordinator.get_order("ORD-9").status == OrderStatus.CONFIRMED


# =============================================================================
# ACCEPTANCE
# =============================================================================


def test_accept_order(coordinator, agent, bus, storage):
    events = EventRecorder(bus, EventType.ORDER_ACCEPTED)
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))

    assert coordinator.accept_order("AGT-01", "ORD-1")

    record = coordinator.get_order("ORD-1")
    assert record.status == OrderStatus.OUT_FOR_DELIVERY
    assert record.agent_id == "AGT-01"
    assert record.delivery_agent["phone"] == "+91 9876543210"
    assert events.of(EventType.ORDER_ACCEPTED) == [{"order_id": "ORD-1", "agent_id": "AGT-01"}]
    assert coordinator.is_tracking("ORD-1")
    assert storage.get("delivery_otp_ORD-1")["otp"] == "100000"


def test_order_can_only_be_accepted_once(coordinator, agent):
    coordinator.set_agent_position("AGT-02", *MARKET)
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))

    assert coordinator.accept_order("AGT-01", "ORD-1")
    assert not coordinator.accept_order("AGT-02", "ORD-1")
    assert not coordinator.accept_order("AGT-01", "ORD-1")
    assert coordinator.get_order("ORD-1").agent_id == "AGT-01"


def test_agent_holds_one_active_order(coordinator, agent):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    coordinator.register_order(make_record("ORD-2", *STATION_ROAD))

    assert coordinator.accept_order("AGT-01", "ORD-1")
    assert not coordinator.accept_order("AGT-01", "ORD-2")
    assert coordinator.get_order("ORD-2").status == OrderStatus.READY_FOR_DELIVERY


def test_accept_unknown_agent_or_order(coordinator, agent):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    assert not coordinator.accept_order("AGT-404", "ORD-1")
    assert not coordinator.accept_order("AGT-01", "ORD-404")


def test_unassigned_out_for_delivery_order_is_acceptable(coordinator, agent):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD, status=OrderStatus.OUT_FOR_DELIVERY))
    assert coordinator.accept_order("AGT-01", "ORD-1")


def test_no_otp_without_customer_phone(coordinator, agent, storage):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD, phone=""))
    coordinator.accept_order("AGT-01", "ORD-1")
    assert storage.get("delivery_otp_ORD-1") is None


def test_delivery_otp_is_consumed(coordinator, agent):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    coordinator.accept_order("AGT-01", "ORD-1")

    assert not coordinator.verify_delivery_otp("ORD-1", "999999")
    assert coordinator.verify_delivery_otp("ORD-1", " 100000 ")
    assert not coordinator.verify_delivery_otp("ORD-1", "100000")


# =============================================================================
# MOVEMENT
# =============================================================================


def test_tick_moves_agent_towards_customer(coordinator, agent, scheduler, bus):
    events = EventRecorder(bus, EventType.LIVE_LOCATION_UPDATE)
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    coordinator.accept_order("AGT-01", "ORD-1")
    start = utils.distance_between(MARKET, STATION_ROAD)

    scheduler.advance(config.COORDINATOR_TICK_SECONDS)

    updates = events.of(EventType.LIVE_LOCATION_UPDATE)
    assert len(updates) == 1
    assert updates[0]["distance"] == pytest.approx(start * 0.9, rel=1e-3)
    moved = coordinator.get_agent("AGT-01").current_loc
    assert moved == pytest.approx((updates[0]["lat"], updates[0]["lng"]))
    location = coordinator.get_order("ORD-1").delivery_agent["location"]
    assert location["distance_to_customer"] == pytest.approx(updates[0]["distance"])


def test_agent_stops_inside_arrival_radius(coordinator, agent, scheduler):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    coordinator.accept_order("AGT-01", "ORD-1")

    scheduler.advance(config.COORDINATOR_TICK_SECONDS * 100)

    remaining = utils.distance_between(coordinator.get_agent("AGT-01").current_loc, STATION_ROAD)
    assert remaining < config.ARRIVAL_RADIUS_KM
    before = coordinator.get_agent("AGT-01").current_loc
    assert not coordinator.tick("ORD-1", "AGT-01")
    assert coordinator.get_agent("AGT-01").current_loc == before


def test_stale_tick_after_delivery_changes_nothing(coordinator, agent, scheduler, bus, storage):
    events = EventRecorder(bus, EventType.ORDER_DELIVERED, EventType.LIVE_LOCATION_UPDATE)
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    coordinator.accept_order("AGT-01", "ORD-1")
    scheduler.advance(config.COORDINATOR_TICK_SECONDS)

    assert coordinator.mark_as_delivered("ORD-1")
    assert not coordinator.is_tracking("ORD-1")
    snapshot = (storage.get(AGENTS_KEY), storage.get(ORDERS_KEY))

    assert not coordinator.tick("ORD-1", "AGT-01")
    scheduler.advance(config.COORDINATOR_TICK_SECONDS * 5)

    assert (storage.get(AGENTS_KEY), storage.get(ORDERS_KEY)) == snapshot
    assert coordinator.get_order("ORD-1").status == OrderStatus.DELIVERED
    assert len(events.of(EventType.LIVE_LOCATION_UPDATE)) == 1
    assert events.of(EventType.ORDER_DELIVERED) == [{"order_id": "ORD-1", "agent_id": "AGT-01"}]


def test_mark_as_delivered_requires_out_for_delivery(coordinator):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    assert not coordinator.mark_as_delivered("ORD-1")
    assert not coordinator.mark_as_delivered("ORD-404")


# =============================================================================
# MIRRORING LIFECYCLE CHANGES
# =============================================================================


def test_status_change_is_mirrored(coordinator, bus):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD, status=OrderStatus.CONFIRMED))

    bus.publish(EventType.ORDER_STATUS_CHANGED, {
        "order_id": "ORD-1",
        "from_status": OrderStatus.CONFIRMED,
        "to_status": OrderStatus.PREPARING,
    })

    assert coordinator.get_order("ORD-1").status == OrderStatus.PREPARING


def test_cancellation_stops_movement(coordinator, agent, scheduler, bus):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    coordinator.accept_order("AGT-01", "ORD-1")

    bus.publish(EventType.ORDER_STATUS_CHANGED, {
        "order_id": "ORD-1",
        "from_status": OrderStatus.OUT_FOR_DELIVERY,
        "to_status": OrderStatus.FAILED,
    })

    assert not coordinator.is_tracking("ORD-1")
    assert scheduler.advance(config.COORDINATOR_TICK_SECONDS * 3) == 0
    assert coordinator.get_agent("AGT-01").current_loc == MARKET


def test_delivered_record_is_not_overwritten(coordinator, agent, bus):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    coordinator.accept_order("AGT-01", "ORD-1")
    coordinator.mark_as_delivered("ORD-1")

    bus.publish(EventType.ORDER_STATUS_CHANGED, {
        "order_id": "ORD-1",
        "from_status": OrderStatus.READY_FOR_DELIVERY,
        "to_status": OrderStatus.OUT_FOR_DELIVERY,
    })

    assert coordinator.get_order("ORD-1").status == OrderStatus.DELIVERED


def test_shutdown_cancels_jobs_and_unsubscribes(coordinator, agent, scheduler, bus):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    coordinator.accept_order("AGT-01", "ORD-1")

    coordinator.shutdown()

    assert scheduler.active_jobs == []
    assert bus.subscriber_count(EventType.ORDER_STATUS_CHANGED) == 0


def test_moving_back_before_dispatch_releases_agent(coordinator, agent, bus):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD))
    coordinator.accept_order("AGT-01", "ORD-1")

    bus.publish(EventType.ORDER_STATUS_CHANGED, {
        "order_id": "ORD-1",
        "from_status": OrderStatus.OUT_FOR_DELIVERY,
        "to_status": OrderStatus.READY_FOR_DELIVERY,
    })

    record = coordinator.get_order("ORD-1")
    assert record.status == OrderStatus.READY_FOR_DELIVERY
    assert record.delivery_agent is None
    assert not coordinator.is_tracking("ORD-1")


# =============================================================================
# AUTHORITATIVE TRANSITIONS
# =============================================================================


@pytest.fixture
def backed(storage, bus, scheduler, clock, mock_data, lifecycle):
    backed = DeliveryCoordinator(storage, bus, scheduler, clock=clock, mock_data=mock_data, lifecycle=lifecycle)
    backed.set_agent_position("AGT-01", *MARKET)
    yield backed
    backed.shutdown()


def test_refused_acceptance_leaves_record_alone(backed, order_store, scheduler, storage):
    # Local record says ready, the order store still has ORD-001 pending
    backed.register_order(make_record("ORD-001", *STATION_ROAD))

    assert not backed.accept_order("AGT-01", "ORD-001")

    record = backed.get_order("ORD-001")
    assert record.status == OrderStatus.READY_FOR_DELIVERY
    assert record.delivery_agent is None
    assert not backed.is_tracking("ORD-001")
    assert storage.get("delivery_otp_ORD-001") is None
    assert scheduler.active_jobs == []
    assert order_store.get_order("ORD-001").status == OrderStatus.PENDING


def test_backed_acceptance_and_delivery_reach_the_store(backed, order_store):
    backed.register_order(order_store.get_order("ORD-002"))

    assert backed.accept_order("AGT-01", "ORD-002")
    assert order_store.get_order("ORD-002").status == OrderStatus.OUT_FOR_DELIVERY
    assert backed.get_order("ORD-002").agent_id == "AGT-01"

    assert backed.mark_as_delivered("ORD-002")
    assert order_store.get_order("ORD-002").status == OrderStatus.DELIVERED
    assert backed.get_order("ORD-002").status == OrderStatus.DELIVERED
    assert not backed.is_tracking("ORD-002")
