# shirpur-delivery-core/delivery_core/utils.py
"""
Utility functions for the delivery tracking core.

Provides the spherical geometry used by the coordinator and the tracking
simulator (haversine distance, bearing, destination point) and small
time/format helpers.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import List, Tuple

from . import config


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Straight-line distance over the Earth's surface, in km.

    Spherical model with R = config.EARTH_RADIUS_KM. The nearby-order
    radius and the tracker's distance and arrival checks all use it.

    Args:
        lat1: Latitude of point 1 in decimal degrees
        lon1: Longitude of point 1 in decimal degrees
        lat2: Latitude of point 2 in decimal degrees
        lon2: Longitude of point 2 in decimal degrees

    Returns:
        Distance in kilometers between the two points

    Example:
        >>> haversine_distance(21.3486, 74.8811, 21.3500, 74.8825)
        0.210  # ~210 meters
    """
    lon1, lat1, lon2, lat2 = map(math.radians, [lon1, lat1, lon2, lat2])

    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = math.sin(dlat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2)**2
    # Rounding can push a a hair above 1 for antipodal points
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return c * config.EARTH_RADIUS_KM


def distance_between(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Haversine distance in km between two (lat, lng) tuples."""
    return haversine_distance(a[0], a[1], b[0], b[1])


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Initial compass bearing from point 1 towards point 2.

    Returns:
        Bearing in degrees, normalised to [0, 360)
    """
    d_lng = math.radians(lon2 - lon1)
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)

    y = math.sin(d_lng) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lng)

    return (math.degrees(math.atan2(y, x)) + 360) % 360


def destination_point(lat: float, lon: float, bearing: float, distance_km: float) -> Tuple[float, float]:
    """
    Point reached by travelling distance_km from (lat, lon) along a bearing.

    Args:
        lat: Start latitude in decimal degrees
        lon: Start longitude in decimal degrees
        bearing: Heading in degrees clockwise from north
        distance_km: Distance to travel in kilometers

    Returns:
        (lat, lng) of the destination in decimal degrees
    """
    angular = distance_km / config.EARTH_RADIUS_KM
    theta = math.radians(bearing)
    phi1 = math.radians(lat)
    lambda1 = math.radians(lon)

    phi2 = math.asin(
        math.sin(phi1) * math.cos(angular) +
        math.cos(phi1) * math.sin(angular) * math.cos(theta)
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(angular) * math.cos(phi1),
        math.cos(angular) - math.sin(phi1) * math.sin(phi2)
    )

    return math.degrees(phi2), math.degrees(lambda2)


def move_fraction_towards(
    current: Tuple[float, float],
    target: Tuple[float, float],
    fraction: float
) -> Tuple[float, float]:
    """
    Linear step covering `fraction` of the remaining lat/lng delta.

    Good enough at city scale, where the coordinator uses it to nudge an
    agent towards the customer on every tick.
    """
    return (
        current[0] + (target[0] - current[0]) * fraction,
        current[1] + (target[1] - current[1]) * fraction,
    )


def interpolate_points(
    start: Tuple[float, float],
    end: Tuple[float, float],
    steps: int
) -> List[Tuple[float, float]]:
    """
    Evenly spaced points from start to end inclusive (steps + 1 points).

    Example:
        >>> interpolate_points((0, 0), (1, 1), 2)
        [(0.0, 0.0), (0.5, 0.5), (1.0, 1.0)]
    """
    if steps <= 0:
        return [start, end]
    return [
        (
            start[0] + (end[0] - start[0]) * (i / steps),
            start[1] + (end[1] - start[1]) * (i / steps),
        )
        for i in range(steps + 1)
    ]


def utc_now() -> datetime:
    """Default clock for services: timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def format_time_duration(minutes: float) -> str:
    """
    Format a duration in minutes as a human-readable string.

    Args:
        minutes: Duration in minutes

    Returns:
        Formatted string like "1h 23m" or "45m"
    """
    if minutes < 60:
        return f"{minutes:.0f}m"
    hours = int(minutes // 60)
    mins = int(minutes % 60)
    return f"{hours}h {mins}m"
