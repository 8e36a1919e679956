# shirpur-delivery-core/delivery_core/coordination.py
"""
Delivery coordination: which agent works which order, and a simple
simulated GPS feed while the order is out for delivery.

State lives in an injected KeyValueStore under two keys:
- "delivery_agents": agent_id -> DeliveryAgent record
- "all_orders": order_id -> OrderLocation record

Per order the coordinator overlays a small state machine on OrderStatus:

    confirmed / ready_for_delivery --(agent accepts)--> out_for_delivery
    out_for_delivery --(mark_as_delivered)--> delivered

With an OrderLifecycle attached, both steps are applied to the order store
first and the local record only follows a successful transition. Without
one the coordinator keeps its local records alone.

Once accepted, a recurring tick moves the agent a fixed fraction of the
remaining distance towards the customer. Each tick re-reads its records and
does nothing unless the order is still out for delivery with the same
agent, so a tick firing after delivery cannot resurrect the order.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Union

from . import config, order_status, utils
from .events import EventBus, EventType
from .lifecycle import OrderLifecycle
from .mock_data import MockDataGenerator
from .models import DeliveryAgent, Order, OrderLocation, OrderStatus
from .scheduler import ScheduledJob, Scheduler
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

AGENTS_KEY = "delivery_agents"
ORDERS_KEY = "all_orders"
OTP_KEY_PREFIX = "delivery_otp_"

ACCEPTABLE_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.READY_FOR_DELIVERY,
})
"""Paid orders not yet dispatched. Unassigned out_for_delivery orders are also acceptable."""

PRE_DISPATCH_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_DELIVERY,
})


class DeliveryCoordinator:
    """
    Matches agents with orders and drives their simulated movement.

    Args:
        storage: Local key-value state (agents, order records, OTPs)
        bus: Event bus; the coordinator also mirrors orderStatusChanged from it
        scheduler: Source of the per-order recurring tick
        clock: Returns the current aware datetime
        mock_data: Random source for placeholder agent phones and OTPs
        tick_seconds: Interval of the movement tick
        lifecycle: Authoritative status writer for acceptance and delivery
    """

    def __init__(
        self,
        storage: KeyValueStore,
        bus: EventBus,
        scheduler: Scheduler,
        clock: Callable[[], datetime] = utils.utc_now,
        mock_data: Optional[MockDataGenerator] = None,
        tick_seconds: float = config.COORDINATOR_TICK_SECONDS,
        lifecycle: Optional[OrderLifecycle] = None
    ) -> None:
        self.storage = storage
        self.bus = bus
        self.scheduler = scheduler
        self.clock = clock
        self.mock_data = mock_data or MockDataGenerator()
        self.tick_seconds = tick_seconds
        self.lifecycle = lifecycle
        self._jobs: Dict[str, ScheduledJob] = {}

        self.bus.subscribe(EventType.ORDER_STATUS_CHANGED, self.handle_status_change)

    # -------------------------------------------------------------------------
    # Record access
    # -------------------------------------------------------------------------

    def _load_agents(self) -> Dict[str, DeliveryAgent]:
        raw = self.storage.get(AGENTS_KEY, {})
        return {agent_id: DeliveryAgent.from_dict(data) for agent_id, data in raw.items()}

    def _save_agents(self, agents: Dict[str, DeliveryAgent]) -> None:
        self.storage.set(AGENTS_KEY, {agent_id: a.to_dict() for agent_id, a in agents.items()})

    def _load_orders(self) -> Dict[str, OrderLocation]:
        raw = self.storage.get(ORDERS_KEY, {})
        return {order_id: OrderLocation.from_dict(data) for order_id, data in raw.items()}

    def _save_orders(self, orders: Dict[str, OrderLocation]) -> None:
        self.storage.set(ORDERS_KEY, {order_id: o.to_dict() for order_id, o in orders.items()})

    def get_agent(self, agent_id: str) -> Optional[DeliveryAgent]:
        return self._load_agents().get(agent_id)

    def get_delivery_agents(self) -> List[DeliveryAgent]:
        return list(self._load_agents().values())

    def get_order(self, order_id: str) -> Optional[OrderLocation]:
        return self._load_orders().get(order_id)

    def get_orders(self) -> List[OrderLocation]:
        return list(self._load_orders().values())

    # -------------------------------------------------------------------------
    # Agents
    # -------------------------------------------------------------------------

    def set_agent_position(
        self,
        agent_id: str,
        lat: float,
        lng: float,
        name: Optional[str] = None,
        phone: Optional[str] = None
    ) -> DeliveryAgent:
        """
        Record a position report, creating the agent on first sight.

        The agent is (re)activated and stamped, then agentLocationUpdate is
        published.
        """
        agents = self._load_agents()
        now = self.clock()
        agent = agents.get(agent_id)

        if agent is None:
            agent = DeliveryAgent(
                agent_id=agent_id,
                name=name or f"Agent {agent_id}",
                phone=phone or self.mock_data.phone_number(),
                current_lat=lat,
                current_lng=lng,
                is_active=True,
                last_update=now,
            )
        else:
            agent.current_lat = lat
            agent.current_lng = lng
            agent.is_active = True
            agent.last_update = now
            if name:
                agent.name = name
            if phone:
                agent.phone = phone

        agents[agent_id] = agent
        self._save_agents(agents)
        self.bus.publish(EventType.AGENT_LOCATION_UPDATE, {"agent_id": agent_id, "lat": lat, "lng": lng})
        return agent

    def deactivate_agent(self, agent_id: str) -> bool:
        agents = self._load_agents()
        agent = agents.get(agent_id)
        if agent is None:
            return False
        agent.is_active = False
        agent.last_update = self.clock()
        self._save_agents(agents)
        return True

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def register_order(self, order: Union[Order, OrderLocation]) -> OrderLocation:
        """Add or replace the local record of an order."""
        if isinstance(order, Order):
            record = OrderLocation.from_order(
                order, (config.DEFAULT_CUSTOMER_LAT, config.DEFAULT_CUSTOMER_LNG)
            )
        else:
            record = order
        orders = self._load_orders()
        orders[record.order_id] = record
        self._save_orders(orders)
        return record

    @staticmethod
    def _is_acceptable(record: OrderLocation) -> bool:
        if record.status in ACCEPTABLE_STATUSES:
            return True
        return record.status == OrderStatus.OUT_FOR_DELIVERY and record.delivery_agent is None

    def _active_order_for(self, agent_id: str, orders: Dict[str, OrderLocation]) -> Optional[str]:
        for record in orders.values():
            if record.status == OrderStatus.OUT_FOR_DELIVERY and record.agent_id == agent_id:
                return record.order_id
        return None

    def find_nearby_orders(
        self,
        agent_id: str,
        radius_km: float = config.NEARBY_ORDER_RADIUS_KM
    ) -> List[OrderLocation]:
        """
        Acceptable orders within radius_km of the agent, closest first.

        The boundary is inclusive. Unknown agents get an empty list.
        """
        agent = self.get_agent(agent_id)
        if agent is None:
            return []

        nearby: List[OrderLocation] = []
        for record in self._load_orders().values():
            if not self._is_acceptable(record):
                continue
            distance = utils.distance_between(agent.current_loc, record.customer_loc)
            if distance <= radius_km:
                record.distance = distance
                nearby.append(record)

        return sorted(nearby, key=lambda o: o.distance)

    def accept_order(self, agent_id: str, order_id: str) -> bool:
        """
        Hand an order to an agent and start moving the agent towards the customer.

        Returns:
            False if the agent or order is unknown, the order is no longer
            acceptable, the agent already has an active order, or the order
            store refused the transition. A refused order is left untouched.
        """
        agent = self.get_agent(agent_id)
        if agent is None:
            logger.warning(f"Agent not found: {agent_id}")
            return False

        orders = self._load_orders()
        record = orders.get(order_id)
        if record is None:
            logger.warning(f"Order not found: {order_id}")
            return False
        if not self._is_acceptable(record):
            logger.info(f"Order {order_id} is {record.status.value}, cannot be accepted by {agent_id}")
            return False

        busy_with = self._active_order_for(agent_id, orders)
        if busy_with is not None:
            logger.info(f"Agent {agent_id} is already delivering {busy_with}")
            return False

        if self.lifecycle is not None:
            result = self.lifecycle.accept_order(order_id, agent_id)
            if not result.success:
                logger.warning(f"Order {order_id} not accepted by {agent_id}: {result.error}")
                return False
            # The lifecycle's events have already been mirrored into the record
            orders = self._load_orders()
            record = orders[order_id]

        now = self.clock()
        record.status = OrderStatus.OUT_FOR_DELIVERY
        record.delivery_agent = {
            "id": agent.agent_id,
            "name": agent.name,
            "phone": agent.phone,
            "location": {"lat": agent.current_lat, "lng": agent.current_lng, "timestamp": now.isoformat()},
        }
        orders[order_id] = record
        self._save_orders(orders)

        if record.customer_phone:
            self._issue_delivery_otp(record, now)

        logger.info(f"Order {order_id} accepted by {agent_id}")
        self.bus.publish(EventType.ORDER_ACCEPTED, {"order_id": order_id, "agent_id": agent_id})
        self._start_live_tracking(order_id, agent_id)
        return True

    def _issue_delivery_otp(self, record: OrderLocation, now: datetime) -> str:
        low = 10 ** (config.DELIVERY_OTP_DIGITS - 1)
        otp = str(self.mock_data.rng.randint(low, low * 10 - 1))
        self.storage.set(f"{OTP_KEY_PREFIX}{record.order_id}", {
            "otp": otp,
            "timestamp": now.isoformat(),
            "phone": record.customer_phone,
            "order_id": record.order_id,
        })
        logger.debug(f"Delivery OTP issued for {record.order_id}")
        return otp

    def verify_delivery_otp(self, order_id: str, otp: str) -> bool:
        """Check the code the customer read out. A matching code is consumed."""
        key = f"{OTP_KEY_PREFIX}{order_id}"
        stored = self.storage.get(key)
        if stored is None or stored.get("otp") != str(otp).strip():
            return False
        self.storage.delete(key)
        return True

    # -------------------------------------------------------------------------
    # Live movement
    # -------------------------------------------------------------------------

    def _start_live_tracking(self, order_id: str, agent_id: str) -> None:
        self._cancel_job(order_id)
        self._jobs[order_id] = self.scheduler.schedule_interval(
            self.tick_seconds,
            lambda: self.tick(order_id, agent_id),
            name=f"coordinator:{order_id}",
        )

    def _cancel_job(self, order_id: str) -> None:
        job = self._jobs.pop(order_id, None)
        if job is not None:
            job.cancel()

    def is_tracking(self, order_id: str) -> bool:
        return order_id in self._jobs

    def tick(self, order_id: str, agent_id: str) -> bool:
        """
        Advance the agent of one order by one step.

        Returns:
            True if the agent moved
        """
        orders = self._load_orders()
        record = orders.get(order_id)
        if record is None or record.status != OrderStatus.OUT_FOR_DELIVERY or record.agent_id != agent_id:
            return False

        agent = self.get_agent(agent_id)
        if agent is None:
            return False

        distance = utils.distance_between(agent.current_loc, record.customer_loc)
        if distance < config.ARRIVAL_RADIUS_KM:
            logger.debug(f"Agent {agent_id} reached the customer of {order_id}")
            return False

        new_lat, new_lng = utils.move_fraction_towards(
            agent.current_loc, record.customer_loc, config.COORDINATOR_MOVE_FRACTION
        )
        self.set_agent_position(agent_id, new_lat, new_lng)

        remaining = utils.distance_between((new_lat, new_lng), record.customer_loc)
        record.delivery_agent["location"] = {
            "lat": new_lat,
            "lng": new_lng,
            "timestamp": self.clock().isoformat(),
            "distance_to_customer": remaining,
        }
        orders[order_id] = record
        self._save_orders(orders)

        logger.debug(f"Agent {agent_id} moving: {remaining:.2f}km to customer of {order_id}")
        self.bus.publish(EventType.LIVE_LOCATION_UPDATE, {
            "order_id": order_id,
            "agent_id": agent_id,
            "lat": new_lat,
            "lng": new_lng,
            "distance": remaining,
        })
        return True

    def mark_as_delivered(self, order_id: str) -> bool:
        """
        Close a delivery: status delivered, tick cancelled, orderDelivered published.

        Returns:
            False if the order is unknown, delivered is not a legal next
            status, or the order store refused the transition
        """
        orders = self._load_orders()
        record = orders.get(order_id)
        if record is None:
            return False

        check = order_status.validate_transition(record.status, OrderStatus.DELIVERED)
        if not check.valid:
            logger.info(f"Cannot mark {order_id} delivered: {check.reason}")
            return False

        if self.lifecycle is not None:
            result = self.lifecycle.transition(order_id, OrderStatus.DELIVERED, actor=record.agent_id or "system")
            if not result.success:
                logger.warning(f"Order {order_id} not marked delivered: {result.error}")
                return False
            orders = self._load_orders()
            record = orders[order_id]

        record.status = OrderStatus.DELIVERED
        orders[order_id] = record
        self._save_orders(orders)
        self._cancel_job(order_id)

        self.bus.publish(EventType.ORDER_DELIVERED, {"order_id": order_id, "agent_id": record.agent_id})
        return True

    def handle_status_change(self, payload: Dict[str, Any]) -> None:
        """
        Mirror an authoritative status change into the local record.

        Unknown orders are ignored. A record that is already terminal is not
        touched. Leaving out_for_delivery stops the movement tick, and moving
        back before dispatch drops the agent snapshot.
        """
        order_id = payload["order_id"]
        target: OrderStatus = payload["to_status"]

        orders = self._load_orders()
        record = orders.get(order_id)
        if record is None or record.status in order_status.TERMINAL_STATUSES:
            return

        changed = record.status != target
        if target in PRE_DISPATCH_STATUSES and record.delivery_agent is not None:
            logger.info(f"Order {order_id} moved back to {target.value}, releasing {record.agent_id}")
            record.delivery_agent = None
            changed = True

        if changed:
            record.status = target
            orders[order_id] = record
            self._save_orders(orders)

        if target != OrderStatus.OUT_FOR_DELIVERY:
            self._cancel_job(order_id)

    def shutdown(self) -> None:
        """Cancel every movement tick and stop listening to the bus."""
        for order_id in list(self._jobs):
            self._cancel_job(order_id)
        self.bus.unsubscribe(EventType.ORDER_STATUS_CHANGED, self.handle_status_change)
