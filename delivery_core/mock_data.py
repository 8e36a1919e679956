# shirpur-delivery-core/delivery_core/mock_data.py
"""
Mock data for the tracking simulator.

Everything random the simulator needs (start positions, route jitter,
traffic, weather, speed and sensor noise) comes from one MockDataGenerator
holding an injected random.Random. Seed it, or subclass it, to make a
simulation reproducible.
"""

from __future__ import annotations

import random
import time
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from . import config, utils
from .models import (
    DeliveryMetrics,
    Location,
    TrafficData,
    TrafficLevel,
    WeatherData,
)

WEATHER_CONDITIONS: Tuple[str, ...] = ("Clear", "Cloudy", "Light Rain", "Sunny", "Overcast")

TRAFFIC_CHANGE_PROBABILITY: float = 0.1
"""Chance per tick that the traffic level is redrawn."""


class MockDataGenerator:
    """
    Source of simulated sensor and environment data.

    Args:
        rng: Random source. Defaults to an unseeded random.Random
        clock: Returns the current time as epoch seconds
    """

    def __init__(self, rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.time) -> None:
        self.rng = rng or random.Random()
        self.clock = clock

    def _jitter(self, spread: float) -> float:
        """Uniform noise in [-spread/2, spread/2)."""
        return (self.rng.random() - 0.5) * spread

    # -------------------------------------------------------------------------
    # Positions and routes
    # -------------------------------------------------------------------------

    def agent_location(self) -> Location:
        """A plausible agent fix somewhere around the market area."""
        center_lat, center_lng = config.MOCK_AGENT_CENTER
        return Location(
            lat=center_lat + self._jitter(config.MOCK_AGENT_SPREAD_DEG),
            lng=center_lng + self._jitter(config.MOCK_AGENT_SPREAD_DEG),
            accuracy=3 + self.rng.random() * 7,
            timestamp=self.clock(),
            speed=20 + self.rng.random() * 15,
            altitude=450 + self.rng.random() * 50,
            heading=self.rng.random() * 360,
        )

    def route(self, start: Location, end: Location, spread: float = 0.001) -> List[Location]:
        """
        Straight-line route with per-point jitter.

        Timestamps run backwards one minute per remaining step so the route
        reads as already travelled up to `now`.
        """
        now = self.clock()
        steps = config.ROUTE_STEPS
        points = utils.interpolate_points(start.loc, end.loc, steps)
        return [
            Location(
                lat=lat + self._jitter(spread),
                lng=lng + self._jitter(spread),
                accuracy=5.0,
                timestamp=now - (steps - i) * 60,
                speed=20 + self.rng.random() * 10,
            )
            for i, (lat, lng) in enumerate(points)
        ]

    def optimized_route(self, start: Location, end: Location) -> List[Location]:
        return [replace(p, lat=p.lat + self._jitter(0.0005), lng=p.lng + self._jitter(0.0005))
                for p in self.route(start, end)]

    def alternate_route(self, start: Location, end: Location) -> List[Location]:
        return [replace(p, lat=p.lat + self._jitter(0.002), lng=p.lng + self._jitter(0.002))
                for p in self.route(start, end)]

    # -------------------------------------------------------------------------
    # Movement noise
    # -------------------------------------------------------------------------

    def next_speed(self, current_speed: float) -> float:
        """Random walk of +/-5 km/h with a floor of MIN_AGENT_SPEED_KMH."""
        return max(config.MIN_AGENT_SPEED_KMH, current_speed + self._jitter(10))

    def gps_accuracy(self) -> float:
        return 3 + self.rng.random() * 7

    def altitude_drift(self) -> float:
        return self._jitter(10)

    def heading_noise(self) -> float:
        return self._jitter(30)

    def eta_jitter(self) -> float:
        return self.rng.random() * config.ETA_JITTER_MINUTES

    # -------------------------------------------------------------------------
    # Environment
    # -------------------------------------------------------------------------

    def traffic(self) -> TrafficData:
        level = self.rng.choice(list(TrafficLevel))
        if level == TrafficLevel.HIGH:
            delay = 5 + self.rng.random() * 10
        elif level == TrafficLevel.MEDIUM:
            delay = 2 + self.rng.random() * 5
        else:
            delay = self.rng.random() * 2
        return TrafficData(level=level, delay=delay)

    def update_traffic(self, current: TrafficData) -> TrafficData:
        level = current.level
        if self.rng.random() < TRAFFIC_CHANGE_PROBABILITY:
            level = self.rng.choice(list(TrafficLevel))
        return replace(current, level=level, delay=max(0.0, current.delay + self._jitter(2)))

    def weather(self) -> WeatherData:
        return WeatherData(
            condition=self.rng.choice(WEATHER_CONDITIONS),
            temperature=25 + self.rng.random() * 10,
            humidity=40 + self.rng.random() * 40,
            visibility=8 + self.rng.random() * 4,
            wind_speed=self.rng.random() * 15,
        )

    def update_weather(self, current: WeatherData) -> WeatherData:
        return replace(
            current,
            temperature=current.temperature + self._jitter(2),
            humidity=max(20.0, min(90.0, current.humidity + self._jitter(10))),
            visibility=max(2.0, min(15.0, current.visibility + self._jitter(2))),
        )

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def delivery_metrics(self) -> DeliveryMetrics:
        return DeliveryMetrics(
            average_speed=20 + self.rng.random() * 15,
            stop_duration=self.rng.random() * 5,
            route_deviation=self.rng.random() * 10,
            customer_satisfaction=4.2 + self.rng.random() * 0.8,
            on_time_performance=85 + self.rng.random() * 15,
        )

    def update_metrics(self, current: DeliveryMetrics, location: Location) -> DeliveryMetrics:
        speed = location.speed if location.speed is not None else config.DEFAULT_AGENT_SPEED_KMH
        return replace(
            current,
            average_speed=(current.average_speed + speed) / 2,
            route_deviation=max(0.0, current.route_deviation + self._jitter(2)),
        )

    def optimization_savings(self) -> Tuple[float, float, float]:
        """(minutes, km, litres) saved against the unoptimised route."""
        return (self.rng.random() * 5, self.rng.random() * 0.5, self.rng.random() * 0.02)

    def phone_number(self) -> str:
        return f"+91 {self.rng.randint(1000000000, 9999999999)}"
