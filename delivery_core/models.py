# shirpur-delivery-core/delivery_core/models.py
"""
Core domain models for the delivery order lifecycle and tracking core.

This module defines the fundamental data structures used throughout the package:
- OrderStatus: The authoritative order lifecycle states
- Order: A customer order as held by the hosted order store
- DeliveryAgent: A courier with contact details and last known position
- OrderLocation: The coordinator's local record of an order awaiting or in delivery
- GeofenceZone: A circular zone checked against agent positions
- TrackingSnapshot: The per-order state recomputed on every tracking tick
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class OrderStatus(Enum):
    """Lifecycle states for an order. Transitions live in order_status.py."""
    PENDING = "pending"                        # Order placed, payment pending
    CONFIRMED = "confirmed"                    # Payment confirmed, order accepted
    PREPARING = "preparing"                    # Store is preparing the order
    READY_FOR_DELIVERY = "ready_for_delivery"  # Waiting for a delivery agent
    OUT_FOR_DELIVERY = "out_for_delivery"      # Agent assigned and on the way
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"                          # Delivery attempt failed
    RETURNED = "returned"                      # Returned to the store


class TrackingStatus(Enum):
    """
    Display hints produced by the tracking simulator.

    These are not order states: the simulator derives them from distance
    thresholds and never writes them back to an Order.
    """
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    ON_THE_WAY = "on_the_way"
    NEARBY = "nearby"
    DELIVERED = "delivered"
    DELAYED = "delayed"
    REROUTING = "rerouting"


class GeofenceType(Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    RESTRICTED = "restricted"
    SAFE = "safe"


class AlertSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TrafficLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class Order:
    """
    A customer order as stored in the hosted order database.

    Attributes:
        order_id: Unique identifier (e.g. "ORD-001")
        customer_name/phone/address: Contact details for the drop-off
        items: Line items as stored upstream ({name, quantity, price})
        total_amount: Order total in rupees
        status: Current lifecycle state
        customer_lat/lng: Geocoded drop-off position, if known
        delivery_agent_id: Back-reference to the assigned agent (non-owning)
        created_at/updated_at/delivered_at: Store-maintained timestamps
    """
    order_id: str
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    items: List[Dict[str, Any]] = field(default_factory=list)
    total_amount: float = 0.0
    status: OrderStatus = OrderStatus.PENDING
    customer_lat: Optional[float] = None
    customer_lng: Optional[float] = None
    delivery_agent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    @property
    def customer_loc(self) -> Optional[Tuple[float, float]]:
        """Returns the drop-off location as a (lat, lng) tuple, if geocoded."""
        if self.customer_lat is None or self.customer_lng is None:
            return None
        return (self.customer_lat, self.customer_lng)

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the column layout of the `orders` table."""
        location = None
        if self.customer_loc is not None:
            location = {"lat": self.customer_lat, "lng": self.customer_lng}
        return {
            "id": self.order_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "items": list(self.items),
            "total_amount": self.total_amount,
            "status": self.status.value,
            "location": location,
            "delivery_agent_id": self.delivery_agent_id,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
            "delivered_at": _format_timestamp(self.delivered_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Order":
        """
        Build an Order from an `orders` row.

        Raises:
            KeyError: If the row has no id
            ValueError: If the status or a timestamp is malformed
        """
        location = record.get("location") or {}
        return cls(
            order_id=str(record["id"]),
            customer_name=record.get("customer_name") or "",
            customer_phone=record.get("customer_phone") or "",
            customer_address=record.get("customer_address") or "",
            items=list(record.get("items") or []),
            total_amount=float(record.get("total_amount") or 0.0),
            status=OrderStatus(record.get("status", OrderStatus.PENDING.value)),
            customer_lat=location.get("lat"),
            customer_lng=location.get("lng"),
            delivery_agent_id=record.get("delivery_agent_id"),
            created_at=_parse_timestamp(record.get("created_at")),
            updated_at=_parse_timestamp(record.get("updated_at")),
            delivered_at=_parse_timestamp(record.get("delivered_at")),
        )

    def __repr__(self) -> str:
        return f"Order({self.order_id}, {self.status.value})"


@dataclass
class DeliveryAgent:
    """
    Represents a delivery agent known to the coordinator.

    Agents are never deleted, only deactivated.
    """
    agent_id: str
    name: str
    phone: str
    current_lat: float
    current_lng: float
    is_active: bool = True
    last_update: Optional[datetime] = None

    @property
    def current_loc(self) -> Tuple[float, float]:
        """Returns the current location as a (lat, lng) tuple."""
        return (self.current_lat, self.current_lng)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_update"] = _format_timestamp(self.last_update)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveryAgent":
        return cls(
            agent_id=data["agent_id"],
            name=data["name"],
            phone=data["phone"],
            current_lat=float(data["current_lat"]),
            current_lng=float(data["current_lng"]),
            is_active=bool(data.get("is_active", True)),
            last_update=_parse_timestamp(data.get("last_update")),
        )

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return f"DeliveryAgent({self.agent_id}, {state})"


@dataclass
class OrderLocation:
    """
    The coordinator's local record of an order it can hand to an agent.

    Attributes:
        order_id: Identifier shared with the order store
        customer_lat/lng: Drop-off position
        status: Local copy of the order status
        distance: Distance from the querying agent in km (set by find_nearby_orders)
        delivery_agent: Snapshot of the accepting agent ({id, name, phone, location})
    """
    order_id: str
    customer_lat: float
    customer_lng: float
    customer_address: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    total: float = 0.0
    status: OrderStatus = OrderStatus.CONFIRMED
    distance: Optional[float] = None
    delivery_agent: Optional[Dict[str, Any]] = None

    @property
    def customer_loc(self) -> Tuple[float, float]:
        return (self.customer_lat, self.customer_lng)

    @property
    def agent_id(self) -> Optional[str]:
        return self.delivery_agent["id"] if self.delivery_agent else None

    @classmethod
    def from_order(cls, order: Order, default_loc: Tuple[float, float]) -> "OrderLocation":
        """Build a local record from a store Order, falling back to default_loc."""
        lat, lng = order.customer_loc or default_loc
        return cls(
            order_id=order.order_id,
            customer_lat=lat,
            customer_lng=lng,
            customer_address=order.customer_address,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            total=order.total_amount,
            status=order.status,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderLocation":
        return cls(
            order_id=data["order_id"],
            customer_lat=float(data["customer_lat"]),
            customer_lng=float(data["customer_lng"]),
            customer_address=data.get("customer_address", ""),
            customer_name=data.get("customer_name", ""),
            customer_phone=data.get("customer_phone", ""),
            total=float(data.get("total", 0.0)),
            status=OrderStatus(data.get("status", OrderStatus.CONFIRMED.value)),
            distance=data.get("distance"),
            delivery_agent=data.get("delivery_agent"),
        )

    def __repr__(self) -> str:
        return f"OrderLocation({self.order_id}, {self.status.value})"


# =============================================================================
# TRACKING SIMULATION TYPES
# =============================================================================
# Snapshots are frozen: every tick builds a new one and replaces the old.


@dataclass(frozen=True)
class Location:
    """A GPS fix. speed is km/h, heading is degrees clockwise from north."""
    lat: float
    lng: float
    accuracy: float = 5.0
    timestamp: float = 0.0
    speed: Optional[float] = None
    altitude: Optional[float] = None
    heading: Optional[float] = None
    address: Optional[str] = None

    @property
    def loc(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class GeofenceZone:
    """A circular zone. radius_m is in metres."""
    zone_id: str
    center: Location
    radius_m: float
    zone_type: GeofenceType
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class Alert:
    alert_type: str  # 'traffic' | 'weather' | 'geofence' | 'delay' | 'route'
    message: str
    severity: AlertSeverity
    timestamp: float


@dataclass(frozen=True)
class TrafficData:
    level: TrafficLevel
    delay: float  # minutes
    congestion_points: Tuple[Location, ...] = ()
    alternate_routes: Tuple[Tuple[Location, ...], ...] = ()


@dataclass(frozen=True)
class WeatherData:
    condition: str
    temperature: float  # Celsius
    humidity: float     # percent
    visibility: float   # km
    wind_speed: float   # km/h
    impact: str = "none"


@dataclass(frozen=True)
class RouteAnalytics:
    total_distance: float
    estimated_time: float
    fuel_consumption: float
    carbon_footprint: float
    efficiency: float
    time_savings: float = 0.0
    distance_savings: float = 0.0
    fuel_savings: float = 0.0


@dataclass(frozen=True)
class DeliveryMetrics:
    average_speed: float
    stop_duration: float
    route_deviation: float
    customer_satisfaction: float
    on_time_performance: float


@dataclass(frozen=True)
class RoutePlan:
    current: Tuple[Location, ...]
    optimized: Tuple[Location, ...]
    alternate: Tuple[Location, ...]


@dataclass(frozen=True)
class TrackingSnapshot:
    """Derived per-order tracking state. Superseded on every tick, never patched."""
    order_id: str
    agent_id: str
    agent_location: Location
    customer_location: Location
    route: RoutePlan
    estimated_arrival: float  # minutes
    distance: float           # km
    status: TrackingStatus
    traffic: TrafficData
    weather: WeatherData
    analytics: RouteAnalytics
    geofences: Tuple[GeofenceZone, ...]
    metrics: DeliveryMetrics
    alerts: Tuple[Alert, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data view with enum members replaced by their values."""
        return _plain(asdict(self))

    def __repr__(self) -> str:
        return (f"TrackingSnapshot({self.order_id}, {self.status.value}, "
                f"dist={self.distance:.2f}km, eta={self.estimated_arrival:.0f}m)")


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
