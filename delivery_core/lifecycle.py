# shirpur-delivery-core/delivery_core/lifecycle.py
"""
Order lifecycle service: the only writer of an order's status.

Every status change goes through OrderLifecycle.transition, which:
1. Loads the current order from the order store
2. Validates the requested edge against the status graph
3. Persists the new status with an updated timestamp
4. Publishes orderStatusChanged on the event bus

Nothing raises past this boundary. Missing orders, illegal transitions and
store failures all come back as a TransitionResult the caller can branch on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from . import order_status, utils
from .events import EventBus, EventType
from .models import Order, OrderStatus
from .storage import OrderStore, OrderStoreError

logger = logging.getLogger(__name__)

NOT_FOUND = "NOT_FOUND"
INVALID_STATUS = "INVALID_STATUS"
INVALID_TRANSITION = "INVALID_TRANSITION"
STORE_ERROR = "STORE_ERROR"


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of a transition attempt.

    Attributes:
        success: Whether the new status was persisted
        order: The order as stored after the update (success only)
        from_status/to_status: The attempted edge, when known
        error: Human-readable reason on failure
        error_code: NOT_FOUND, INVALID_STATUS, INVALID_TRANSITION or STORE_ERROR
        retryable: True when a store timeout or connection failure caused it
    """
    success: bool
    order: Optional[Order] = None
    from_status: Optional[OrderStatus] = None
    to_status: Optional[OrderStatus] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False


class OrderLifecycle:
    """
    Applies validated status transitions to orders in an OrderStore.

    Args:
        store: Authoritative order store
        bus: Event bus receiving orderStatusChanged
        clock: Returns the current aware datetime
    """

    def __init__(self, store: OrderStore, bus: EventBus,
                 clock: Callable[[], datetime] = utils.utc_now) -> None:
        self.store = store
        self.bus = bus
        self.clock = clock
        self._history: Dict[str, List[Dict[str, Any]]] = {}

    def transition(
        self,
        order_id: str,
        target_status: Union[OrderStatus, str],
        actor: str = "system",
        agent_id: Optional[str] = None
    ) -> TransitionResult:
        """
        Move an order to target_status.

        Args:
            order_id: Order to update
            target_status: Requested status (member or string value)
            actor: Who asked for the change ("admin", an agent id, ...)
            agent_id: Agent to assign; only stored for out_for_delivery

        Returns:
            TransitionResult describing the outcome
        """
        try:
            target = target_status if isinstance(target_status, OrderStatus) else OrderStatus(target_status)
        except ValueError:
            return TransitionResult(success=False, error=f"Unknown order status: {target_status}",
                                    error_code=INVALID_STATUS)

        try:
            order = self.store.get_order(order_id)
        except OrderStoreError as e:
            return TransitionResult(success=False, to_status=target, error=e.message,
                                    error_code=STORE_ERROR, retryable=e.retryable)

        if order is None:
            logger.warning(f"Transition to {target.value} requested for unknown order {order_id}")
            return TransitionResult(success=False, to_status=target, error="Order not found",
                                    error_code=NOT_FOUND)

        source = order.status
        check = order_status.validate_transition(source, target)
        if not check.valid:
            logger.info(f"Rejected {order_id}: {source.value} -> {target.value} ({check.reason})")
            return TransitionResult(success=False, order=order, from_status=source, to_status=target,
                                    error=check.reason, error_code=INVALID_TRANSITION)

        now = self.clock()
        fields: Dict[str, Any] = {"status": target.value, "updated_at": now.isoformat()}
        if target == OrderStatus.DELIVERED:
            fields["delivered_at"] = now.isoformat()
        if agent_id is not None and target == OrderStatus.OUT_FOR_DELIVERY:
            fields["delivery_agent_id"] = agent_id

        try:
            updated = self.store.update_order(order_id, fields)
        except OrderStoreError as e:
            return TransitionResult(success=False, order=order, from_status=source, to_status=target,
                                    error=e.message, error_code=STORE_ERROR, retryable=e.retryable)

        if updated is None:
            # Deleted between the read and the write
            return TransitionResult(success=False, from_status=source, to_status=target,
                                    error="Order not found", error_code=NOT_FOUND)

        self._history.setdefault(order_id, []).append({
            "order_id": order_id,
            "from_status": source.value,
            "to_status": target.value,
            "actor": actor,
            "agent_id": agent_id,
            "timestamp": now.isoformat(),
        })
        logger.info(f"Order {order_id}: {source.value} -> {target.value} by {actor}")

        self.bus.publish(EventType.ORDER_STATUS_CHANGED, {
            "order_id": order_id,
            "from_status": source,
            "to_status": target,
            "actor": actor,
            "agent_id": agent_id,
            "timestamp": now,
        })
        return TransitionResult(success=True, order=updated, from_status=source, to_status=target)

    def mark_ready_for_delivery(self, order_id: str, actor: str = "admin") -> TransitionResult:
        return self.transition(order_id, OrderStatus.READY_FOR_DELIVERY, actor)

    def mark_out_for_delivery(self, order_id: str, actor: str = "admin") -> TransitionResult:
        return self.transition(order_id, OrderStatus.OUT_FOR_DELIVERY, actor)

    def accept_order(self, order_id: str, agent_id: str) -> TransitionResult:
        """
        An agent takes an order: out_for_delivery with the agent recorded.

        A confirmed order has no direct edge to out_for_delivery, so it is
        walked through preparing first. An order already out for delivery
        with no agent only gets the agent recorded.
        """
        result = self.transition(order_id, OrderStatus.OUT_FOR_DELIVERY, actor=agent_id, agent_id=agent_id)
        if result.success or result.error_code != INVALID_TRANSITION or result.order is None:
            return result

        order = result.order
        if order.status == OrderStatus.CONFIRMED:
            step = self.transition(order_id, OrderStatus.PREPARING, actor=agent_id)
            if not step.success:
                return step
            return self.transition(order_id, OrderStatus.OUT_FOR_DELIVERY, actor=agent_id, agent_id=agent_id)

        if order.status == OrderStatus.OUT_FOR_DELIVERY and not order.delivery_agent_id:
            return self._assign_agent(order, agent_id)
        return result

    def _assign_agent(self, order: Order, agent_id: str) -> TransitionResult:
        status = order.status
        fields = {"delivery_agent_id": agent_id, "updated_at": self.clock().isoformat()}
        try:
            updated = self.store.update_order(order.order_id, fields)
        except OrderStoreError as e:
            return TransitionResult(success=False, order=order, from_status=status, to_status=status,
                                    error=e.message, error_code=STORE_ERROR, retryable=e.retryable)
        if updated is None:
            return TransitionResult(success=False, from_status=status, to_status=status,
                                    error="Order not found", error_code=NOT_FOUND)
        logger.info(f"Order {order.order_id}: agent {agent_id} assigned while {status.value}")
        return TransitionResult(success=True, order=updated, from_status=status, to_status=status)

    def reject_order(self, order_id: str, agent_id: str, reason: Optional[str] = None) -> bool:
        """Record that an agent declined an order. The order itself is unchanged."""
        try:
            self.store.record_rejection(order_id, agent_id, reason or "No reason provided", self.clock())
        except OrderStoreError as e:
            logger.warning(f"Could not record rejection of {order_id} by {agent_id}: {e.message}")
            return False
        return True

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _list(self, status: OrderStatus) -> List[Order]:
        try:
            return self.store.list_orders(status)
        except OrderStoreError as e:
            logger.warning(f"Could not list {status.value} orders: {e.message}")
            return []

    def orders_ready_for_delivery(self) -> List[Order]:
        """Ready orders no agent has taken yet. Empty on store failure."""
        return [o for o in self._list(OrderStatus.READY_FOR_DELIVERY) if not o.delivery_agent_id]

    def orders_out_for_delivery(self) -> List[Order]:
        return self._list(OrderStatus.OUT_FOR_DELIVERY)

    def agent_orders(self, agent_id: str) -> List[Order]:
        """Orders currently out for delivery with this agent."""
        return [o for o in self._list(OrderStatus.OUT_FOR_DELIVERY) if o.delivery_agent_id == agent_id]

    def tracking_history(self, order_id: str) -> List[Dict[str, Any]]:
        """Transitions applied through this service, oldest first."""
        return [dict(entry) for entry in self._history.get(order_id, [])]
