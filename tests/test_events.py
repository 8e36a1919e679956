# shirpur-delivery-core/tests/test_events.py
"""In-process event bus."""

from delivery_core.events import EventBus, EventType


def test_handlers_run_in_registration_order():
    bus = EventBus()
    calls = []
    bus.subscribe(EventType.ORDER_ACCEPTED, lambda p: calls.append(("first", p["order_id"])))
    bus.subscribe(EventType.ORDER_ACCEPTED, lambda p: calls.append(("second", p["order_id"])))

    delivered = bus.publish(EventType.ORDER_ACCEPTED, {"order_id": "ORD-001"})

    assert delivered == 2
    assert calls == [("first", "ORD-001"), ("second", "ORD-001")]


def test_publish_without_subscribers():
    assert EventBus().publish(EventType.TRACKING_UPDATE, {}) == 0


def test_failing_handler_does_not_stop_delivery(caplog):
    bus = EventBus()
    calls = []

    def broken(payload):
        raise RuntimeError("boom")

    bus.subscribe(EventType.ORDER_DELIVERED, broken)
    bus.subscribe(EventType.ORDER_DELIVERED, calls.append)

    delivered = bus.publish(EventType.ORDER_DELIVERED, {"order_id": "ORD-001"})

    assert delivered == 1
    assert calls == [{"order_id": "ORD-001"}]
    assert "orderDelivered" in caplog.text


def test_unsubscribe():
    bus = EventBus()
    calls = []
    bus.subscribe(EventType.TRACKING_STOPPED, calls.append)
    bus.unsubscribe(EventType.TRACKING_STOPPED, calls.append)
    bus.unsubscribe(EventType.TRACKING_STOPPED, calls.append)

    bus.publish(EventType.TRACKING_STOPPED, {"order_id": "ORD-001"})

    assert calls == []
    assert bus.subscriber_count(EventType.TRACKING_STOPPED) == 0


def test_handler_may_unsubscribe_itself():
    bus = EventBus()
    calls = []

    def once(payload):
        calls.append(payload)
        bus.unsubscribe(EventType.ORDER_ACCEPTED, once)

    bus.subscribe(EventType.ORDER_ACCEPTED, once)
    bus.publish(EventType.ORDER_ACCEPTED, {"n": 1})
    bus.publish(EventType.ORDER_ACCEPTED, {"n": 2})

    assert calls == [{"n": 1}]


def test_topic_names():
    assert EventType.ORDER_STATUS_CHANGED.value == "orderStatusChanged"
    assert EventType.LIVE_LOCATION_UPDATE.value == "liveLocationUpdate"
