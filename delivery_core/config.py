# shirpur-delivery-core/delivery_core/config.py
"""
Configuration parameters for the delivery order lifecycle and tracking core.

This module centralizes all tunable parameters, making it easy to:
- Point the core at a hosted order store and geocoder
- Adjust tick intervals and movement behaviour of the simulators
- Tune geofence, ETA and analytics constants

All parameters are documented with their purpose and typical value ranges.
"""

from decouple import config as env
from typing import Final

# =============================================================================
# ORDER STORE (HOSTED REST DATABASE)
# =============================================================================

ORDER_STORE_URL: str = env("ORDER_STORE_URL", default="http://localhost:54321")
"""Base URL of the hosted order database. The REST API lives under /rest/v1."""

ORDER_STORE_API_KEY: str = env("ORDER_STORE_API_KEY", default="")
"""Anon/service key sent as both `apikey` and bearer token."""

ORDER_STORE_TIMEOUT_SECONDS: float = env("ORDER_STORE_TIMEOUT_SECONDS", default=5.0, cast=float)
"""Timeout for order store requests. Expiry is reported as a retryable failure."""

ORDERS_TABLE: Final[str] = "orders"
ORDER_REJECTIONS_TABLE: Final[str] = "order_rejections"

# =============================================================================
# GEOCODING (NOMINATIM)
# =============================================================================

GEOCODER_URL: str = env("GEOCODER_URL", default="https://nominatim.openstreetmap.org")
"""OSM-compatible geocoder. The public instance requires a descriptive User-Agent."""

GEOCODER_USER_AGENT: str = env("GEOCODER_USER_AGENT", default="Shirpur-Market-App")

GEOCODER_TIMEOUT_SECONDS: float = env("GEOCODER_TIMEOUT_SECONDS", default=5.0, cast=float)
"""Timeout for geocoding requests."""

GEOCODER_CACHE_SIZE: int = 1000
"""Maximum number of cached geocoding results."""

GEOCODER_SEARCH_LIMIT: int = 5
"""Number of candidates returned by a free-text address search."""

# =============================================================================
# PHYSICS CONSTANTS
# =============================================================================

EARTH_RADIUS_KM: Final[float] = 6371.0
"""Mean Earth radius used by haversine, bearing and destination-point math."""

# =============================================================================
# DELIVERY COORDINATION
# =============================================================================

COORDINATOR_TICK_SECONDS: float = 3.0
"""Interval of the per-order simulated GPS tick once an agent accepts."""

COORDINATOR_MOVE_FRACTION: float = 0.10
"""Fraction of the remaining distance covered by the agent on each tick."""

ARRIVAL_RADIUS_KM: float = 0.1
"""Agents within this distance of the customer stop moving."""

NEARBY_ORDER_RADIUS_KM: float = 10.0
"""Default search radius for orders an agent may pick up."""

DELIVERY_OTP_DIGITS: int = 6
"""Length of the one-time code handed to the customer on acceptance."""

DEFAULT_CUSTOMER_LAT: float = 21.3099
DEFAULT_CUSTOMER_LNG: float = 75.1178
"""Fallback customer coordinates for order records without a location."""

# =============================================================================
# ENHANCED TRACKING SIMULATION
# =============================================================================

TRACKING_TICK_SECONDS: float = 5.0
"""Interval of the shared tracking tick. Also the time step used for movement."""

TRACKING_HISTORY_SIZE: int = 10
"""Number of recent agent positions kept in the live route."""

TRACKING_ALERT_HISTORY: int = 5
"""Older alerts kept before the alerts raised on the current tick are appended."""

ROUTE_STEPS: int = 10
"""Number of segments in a generated mock route (ROUTE_STEPS + 1 points)."""

DEFAULT_AGENT_SPEED_KMH: float = 25.0
"""Speed assumed when a location carries no speed reading."""

MIN_AGENT_SPEED_KMH: float = 5.0
"""Lower bound of the speed random walk."""

NEARBY_THRESHOLD_KM: float = 0.05
"""Distance under which the tracking status becomes `nearby`."""

ON_THE_WAY_THRESHOLD_KM: float = 0.5
"""Distance under which the tracking status becomes `on_the_way`."""

ETA_MINUTES_PER_KM: float = 2.0
"""ETA slope. ETA = distance * ETA_MINUTES_PER_KM + jitter, floored at MIN_ETA_MINUTES."""

ETA_JITTER_MINUTES: float = 3.0
MIN_ETA_MINUTES: float = 1.0

MOCK_AGENT_CENTER: Final[tuple] = (21.3486, 74.8811)
"""Centre of the area where mock agent positions are generated (Shirpur market)."""

MOCK_AGENT_SPREAD_DEG: float = 0.02
"""Width of the square around MOCK_AGENT_CENTER for mock positions."""

# =============================================================================
# ROUTE ANALYTICS
# =============================================================================

FUEL_LITRES_PER_KM: float = 0.05
"""Two-wheeler consumption, 50 ml per km."""

CO2_KG_PER_LITRE: float = 2.3
"""Carbon emitted per litre of petrol."""

MIN_ROUTE_EFFICIENCY: float = 60.0
"""Floor of the efficiency score (0 - 100)."""
