# shirpur-delivery-core/delivery_core/__init__.py

from .models import (
    Order,
    DeliveryAgent,
    OrderLocation,
    OrderStatus,
    TrackingStatus,
    Location,
    GeofenceZone,
    GeofenceType,
    TrackingSnapshot,
)
from .order_status import (
    can_transition,
    validate_transition,
    estimated_remaining_time,
    progress_percentage,
)
from .events import EventBus, EventType
from .storage import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    InMemoryOrderStore,
    RestOrderStore,
    OrderStoreError,
)
from .scheduler import ManualScheduler, AsyncioScheduler
from .lifecycle import OrderLifecycle, TransitionResult
from .coordination import DeliveryCoordinator
from .tracking import TrackingSimulator
from .services import DeliveryServices, build_services

__version__ = "1.0.0"
__author__ = "Shirpur Market Team"

__all__ = [
    # Models
    "Order",
    "DeliveryAgent",
    "OrderLocation",
    "OrderStatus",
    "TrackingStatus",
    "Location",
    "GeofenceZone",
    "GeofenceType",
    "TrackingSnapshot",
    # Status graph
    "can_transition",
    "validate_transition",
    "estimated_remaining_time",
    "progress_percentage",
    # Infrastructure
    "EventBus",
    "EventType",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "InMemoryOrderStore",
    "RestOrderStore",
    "OrderStoreError",
    "ManualScheduler",
    "AsyncioScheduler",
    # Services
    "OrderLifecycle",
    "TransitionResult",
    "DeliveryCoordinator",
    "TrackingSimulator",
    "DeliveryServices",
    "build_services",
]
