# shirpur-delivery-core/delivery_core/order_status.py
"""
Order status metadata and the transition graph.

This module is the single source of truth for which status may follow which.
Everything here is pure lookup over the static STATUS_CONFIG table:
- status_info / all_statuses / next_statuses: metadata access
- can_transition / validate_transition: graph membership with business rules
- estimated_remaining_time / progress_percentage / status_timeline:
  derived figures along the canonical delivery flow
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Union

from .models import OrderStatus

StatusLike = Union[OrderStatus, str]


@dataclass(frozen=True)
class StatusInfo:
    """
    Static metadata for one order status.

    Attributes:
        status: The status described
        label: Human-readable name
        description: One-line explanation shown to users
        icon: Emoji badge
        estimated_minutes: Typical time spent in this status
        is_terminal: True when no further transition is allowed
        can_transition_to: Statuses reachable in one step
    """
    status: OrderStatus
    label: str
    description: str
    icon: str
    estimated_minutes: int
    is_terminal: bool
    can_transition_to: FrozenSet[OrderStatus]


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None


STATUS_CONFIG: Dict[OrderStatus, StatusInfo] = {
    OrderStatus.PENDING: StatusInfo(
        status=OrderStatus.PENDING,
        label="Pending",
        description="Order placed, awaiting payment confirmation",
        icon="⏳",
        estimated_minutes=5,
        is_terminal=False,
        can_transition_to=frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    ),
    OrderStatus.CONFIRMED: StatusInfo(
        status=OrderStatus.CONFIRMED,
        label="Confirmed",
        description="Payment confirmed, order accepted",
        icon="✅",
        estimated_minutes=10,
        is_terminal=False,
        can_transition_to=frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    ),
    OrderStatus.PREPARING: StatusInfo(
        status=OrderStatus.PREPARING,
        label="Preparing",
        description="Order is being prepared",
        icon="👨‍🍳",
        estimated_minutes=20,
        is_terminal=False,
        can_transition_to=frozenset({
            OrderStatus.READY_FOR_DELIVERY,
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.CANCELLED,
        }),
    ),
    OrderStatus.READY_FOR_DELIVERY: StatusInfo(
        status=OrderStatus.READY_FOR_DELIVERY,
        label="Ready for Delivery",
        description="Order ready, waiting for delivery agent",
        icon="📦",
        estimated_minutes=15,
        is_terminal=False,
        can_transition_to=frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    ),
    OrderStatus.OUT_FOR_DELIVERY: StatusInfo(
        status=OrderStatus.OUT_FOR_DELIVERY,
        label="Out for Delivery",
        description="Delivery agent is on the way",
        icon="🚚",
        estimated_minutes=30,
        is_terminal=False,
        can_transition_to=frozenset({
            OrderStatus.DELIVERED,
            OrderStatus.FAILED,
            OrderStatus.RETURNED,
        }),
    ),
    OrderStatus.DELIVERED: StatusInfo(
        status=OrderStatus.DELIVERED,
        label="Delivered",
        description="Order successfully delivered",
        icon="✅",
        estimated_minutes=0,
        is_terminal=True,
        can_transition_to=frozenset(),
    ),
    OrderStatus.CANCELLED: StatusInfo(
        status=OrderStatus.CANCELLED,
        label="Cancelled",
        description="Order has been cancelled",
        icon="❌",
        estimated_minutes=0,
        is_terminal=True,
        can_transition_to=frozenset(),
    ),
    OrderStatus.FAILED: StatusInfo(
        status=OrderStatus.FAILED,
        label="Delivery Failed",
        description="Delivery attempt failed",
        icon="⚠️",
        estimated_minutes=0,
        is_terminal=False,
        can_transition_to=frozenset({
            OrderStatus.OUT_FOR_DELIVERY,
            OrderStatus.RETURNED,
            OrderStatus.CANCELLED,
        }),
    ),
    OrderStatus.RETURNED: StatusInfo(
        status=OrderStatus.RETURNED,
        label="Returned",
        description="Order returned to store",
        icon="↩️",
        estimated_minutes=0,
        is_terminal=False,
        can_transition_to=frozenset({OrderStatus.CANCELLED}),
    ),
}

STATUS_FLOW: tuple = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)
"""Canonical happy path used for ETA and progress figures."""

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    info.status for info in STATUS_CONFIG.values() if info.is_terminal
)


def _coerce(status: StatusLike) -> OrderStatus:
    """Accept either an OrderStatus or its string value. Unknown values raise ValueError."""
    if isinstance(status, OrderStatus):
        return status
    return OrderStatus(status)


def status_info(status: StatusLike) -> StatusInfo:
    """
    Look up the metadata for a status.

    Raises:
        ValueError: If status is not a known status value
    """
    return STATUS_CONFIG[_coerce(status)]


def all_statuses() -> List[StatusInfo]:
    return list(STATUS_CONFIG.values())


def next_statuses(status: StatusLike) -> List[StatusInfo]:
    """Metadata of every status reachable in one step, in enum order."""
    allowed = status_info(status).can_transition_to
    return [STATUS_CONFIG[s] for s in OrderStatus if s in allowed]


def status_flow() -> List[StatusInfo]:
    return [STATUS_CONFIG[s] for s in STATUS_FLOW]


def admin_statuses() -> List[StatusInfo]:
    """Statuses an admin may set from the order management screen."""
    return [STATUS_CONFIG[s] for s in (
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY_FOR_DELIVERY,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.CANCELLED,
    )]


def delivery_statuses() -> List[StatusInfo]:
    """Statuses a delivery agent deals with."""
    return [STATUS_CONFIG[s] for s in (
        OrderStatus.READY_FOR_DELIVERY,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.FAILED,
        OrderStatus.RETURNED,
    )]


def customer_statuses() -> List[StatusInfo]:
    """Statuses shown to customers (ready_for_delivery is folded into preparing)."""
    return [STATUS_CONFIG[s] for s in (
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    )]


def can_transition(from_status: StatusLike, to_status: StatusLike) -> bool:
    """True if to_status is in the can_transition_to set of from_status."""
    return _coerce(to_status) in status_info(from_status).can_transition_to


def validate_transition(from_status: StatusLike, to_status: StatusLike) -> ValidationResult:
    """
    Check a transition and explain a rejection.

    Terminal orders are rejected with a dedicated reason, including a
    "transition" to the same terminal status. Otherwise the edge must exist
    in the graph.

    Returns:
        ValidationResult(valid=True) or ValidationResult(valid=False, reason=...)
    """
    source = _coerce(from_status)
    target = _coerce(to_status)

    if source in TERMINAL_STATUSES:
        return ValidationResult(
            valid=False,
            reason=f"Cannot change status of {source.value} order",
        )

    if not can_transition(source, target):
        return ValidationResult(
            valid=False,
            reason=(f"Cannot transition from {STATUS_CONFIG[source].label} "
                    f"to {STATUS_CONFIG[target].label}"),
        )

    return ValidationResult(valid=True)


def estimated_remaining_time(status: StatusLike) -> int:
    """
    Minutes until delivery along the canonical flow.

    The status's own estimate plus the estimates of every later step.
    Statuses off the flow (cancelled, failed, returned) only count their own
    estimate, which is zero.
    """
    current = _coerce(status)
    total = STATUS_CONFIG[current].estimated_minutes

    if current in STATUS_FLOW:
        index = STATUS_FLOW.index(current)
        total += sum(STATUS_CONFIG[s].estimated_minutes for s in STATUS_FLOW[index + 1:])

    return total


def progress_percentage(status: StatusLike) -> int:
    """
    Position along the canonical flow as 0 - 100.

    Example:
        >>> progress_percentage("preparing")
        40
    """
    current = _coerce(status)
    if current == OrderStatus.DELIVERED:
        return 100
    if current not in STATUS_FLOW:
        return 0
    return round(STATUS_FLOW.index(current) / (len(STATUS_FLOW) - 1) * 100)


def status_timeline(status: StatusLike) -> List[Dict[str, object]]:
    """Per-step view of the canonical flow for order tracking screens."""
    current = _coerce(status)
    current_index = STATUS_FLOW.index(current) if current in STATUS_FLOW else -1

    return [
        {
            "status": step.value,
            "label": STATUS_CONFIG[step].label,
            "icon": STATUS_CONFIG[step].icon,
            "completed": index < current_index or current == OrderStatus.DELIVERED,
            "active": index == current_index,
        }
        for index, step in enumerate(STATUS_FLOW)
    ]
