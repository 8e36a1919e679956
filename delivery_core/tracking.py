# shirpur-delivery-core/delivery_core/tracking.py
"""
Enhanced tracking simulator for the richer order tracking views.

For every tracked order the simulator keeps a TrackingSnapshot and, on one
shared recurring tick, replaces it with a freshly computed one:
1. Move the agent along the bearing to the customer by speed * tick length
2. Recompute distance (haversine) and ETA
3. Append the new position to a bounded route history
4. Check geofences and raise alerts
5. Random-walk traffic, weather and delivery metrics
6. Derive a display status from distance thresholds

The display status (TrackingStatus) is a hint for the UI. It is never
written back as an OrderStatus.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from . import config, utils
from .events import EventBus, EventType
from .mock_data import MockDataGenerator
from .models import (
    Alert,
    AlertSeverity,
    GeofenceType,
    GeofenceZone,
    Location,
    RouteAnalytics,
    RoutePlan,
    TrackingSnapshot,
    TrackingStatus,
)
from .scheduler import ScheduledJob, Scheduler

logger = logging.getLogger(__name__)


def default_geofences(timestamp: float = 0.0) -> List[GeofenceZone]:
    """Zones around Shirpur used when no geofences are supplied."""
    def center(lat: float, lng: float) -> Location:
        return Location(lat=lat, lng=lng, accuracy=5.0, timestamp=timestamp)

    return [
        GeofenceZone("shirpur-market", center(21.3486, 74.8811), 200, GeofenceType.PICKUP,
                     "Shirpur Market Area"),
        GeofenceZone("gandhi-chowk", center(21.3500, 74.8825), 150, GeofenceType.DELIVERY,
                     "Gandhi Chowk"),
        GeofenceZone("station-road", center(21.3520, 74.8840), 100, GeofenceType.DELIVERY,
                     "Station Road"),
        GeofenceZone("restricted-zone", center(21.3450, 74.8790), 300, GeofenceType.RESTRICTED,
                     "Restricted Area"),
    ]


def determine_status(distance_km: float, current: TrackingStatus) -> TrackingStatus:
    """
    Display status from the remaining distance.

    nearby under 50 m, on_the_way under 500 m, otherwise an assigned order
    becomes picked_up on its first update and any other status is kept.
    """
    if distance_km < config.NEARBY_THRESHOLD_KM:
        return TrackingStatus.NEARBY
    if distance_km < config.ON_THE_WAY_THRESHOLD_KM:
        return TrackingStatus.ON_THE_WAY
    if current == TrackingStatus.ASSIGNED:
        return TrackingStatus.PICKED_UP
    return current


class TrackingSimulator:
    """
    Order-keyed tracking simulation on one shared interval.

    Args:
        bus: Event bus for trackingStarted / trackingUpdate / trackingStopped
        scheduler: Source of the shared tick
        mock_data: Random source for positions, routes and environment data
        geofences: Zones to check; defaults to default_geofences()
        tick_seconds: Tick interval, also the movement time step
        clock: Returns the current time as epoch seconds
    """

    def __init__(
        self,
        bus: EventBus,
        scheduler: Scheduler,
        mock_data: Optional[MockDataGenerator] = None,
        geofences: Optional[List[GeofenceZone]] = None,
        tick_seconds: float = config.TRACKING_TICK_SECONDS,
        clock: Callable[[], float] = time.time
    ) -> None:
        self.bus = bus
        self.scheduler = scheduler
        self.clock = clock
        self.mock_data = mock_data or MockDataGenerator(clock=clock)
        self.tick_seconds = tick_seconds
        self._geofences: List[GeofenceZone] = (
            list(geofences) if geofences is not None else default_geofences(clock())
        )
        self._tracking: Dict[str, TrackingSnapshot] = {}
        self._job: Optional[ScheduledJob] = None

    # -------------------------------------------------------------------------
    # Geofences
    # -------------------------------------------------------------------------

    def add_geofence(self, zone: GeofenceZone) -> None:
        self._geofences.append(zone)

    def remove_geofence(self, zone_id: str) -> bool:
        before = len(self._geofences)
        self._geofences = [z for z in self._geofences if z.zone_id != zone_id]
        return len(self._geofences) < before

    def get_geofences(self) -> List[GeofenceZone]:
        return list(self._geofences)

    def check_geofences(self, location: Location) -> List[Alert]:
        """
        Alerts for every active zone containing location.

        A position is inside a zone when its distance to the centre is at
        most the radius. Restricted zones raise a high alert, delivery zones
        a low "arrived" alert; pickup and safe zones are silent.
        """
        alerts: List[Alert] = []
        now = self.clock()

        for zone in self._geofences:
            if not zone.is_active:
                continue
            distance = utils.distance_between(location.loc, zone.center.loc)
            if distance > zone.radius_m / 1000:
                continue

            if zone.zone_type == GeofenceType.RESTRICTED:
                alerts.append(Alert("geofence", f"Entered restricted zone: {zone.name}",
                                    AlertSeverity.HIGH, now))
            elif zone.zone_type == GeofenceType.DELIVERY:
                alerts.append(Alert("geofence", f"Arrived at delivery zone: {zone.name}",
                                    AlertSeverity.LOW, now))

        return alerts

    # -------------------------------------------------------------------------
    # Simulation math
    # -------------------------------------------------------------------------

    def simulate_movement(self, current: Location, target: Location) -> Location:
        """
        One tick of travel from current towards target.

        The agent covers speed * tick_seconds along the initial bearing and
        stops on the target rather than overshooting it.
        """
        speed = current.speed if current.speed is not None else config.DEFAULT_AGENT_SPEED_KMH
        step_km = speed / 3600 * self.tick_seconds
        remaining = utils.distance_between(current.loc, target.loc)
        bearing = utils.calculate_bearing(current.lat, current.lng, target.lat, target.lng)

        if step_km >= remaining:
            lat, lng = target.lat, target.lng
        else:
            lat, lng = utils.destination_point(current.lat, current.lng, bearing, step_km)

        altitude = current.altitude if current.altitude is not None else 450.0
        return Location(
            lat=lat,
            lng=lng,
            accuracy=self.mock_data.gps_accuracy(),
            timestamp=self.clock(),
            speed=self.mock_data.next_speed(speed),
            altitude=altitude + self.mock_data.altitude_drift(),
            heading=(bearing + self.mock_data.heading_noise()) % 360,
        )

    def estimate_arrival(self, distance_km: float) -> float:
        """ETA in minutes: distance * 2 plus jitter, never under one minute."""
        return max(config.MIN_ETA_MINUTES,
                   distance_km * config.ETA_MINUTES_PER_KM + self.mock_data.eta_jitter())

    def route_analytics(self, distance_km: float, eta_minutes: float) -> RouteAnalytics:
        fuel = distance_km * config.FUEL_LITRES_PER_KM
        if distance_km > 0:
            efficiency = max(config.MIN_ROUTE_EFFICIENCY, 100 - (eta_minutes / distance_km) * 10)
        else:
            efficiency = 100.0
        time_saved, distance_saved, fuel_saved = self.mock_data.optimization_savings()
        return RouteAnalytics(
            total_distance=distance_km,
            estimated_time=eta_minutes,
            fuel_consumption=fuel,
            carbon_footprint=fuel * config.CO2_KG_PER_LITRE,
            efficiency=efficiency,
            time_savings=time_saved,
            distance_savings=distance_saved,
            fuel_savings=fuel_saved,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_order_tracking(
        self,
        order_id: str,
        agent_id: str,
        customer_location: Location,
        agent_location: Optional[Location] = None
    ) -> TrackingSnapshot:
        """
        Begin tracking an order and make sure the shared tick is running.

        Without an agent_location a mock position near the market is used.
        Restarting an order replaces its previous snapshot.
        """
        start = agent_location or self.mock_data.agent_location()
        distance = utils.distance_between(start.loc, customer_location.loc)
        eta = max(config.MIN_ETA_MINUTES, distance * config.ETA_MINUTES_PER_KM)

        snapshot = TrackingSnapshot(
            order_id=order_id,
            agent_id=agent_id,
            agent_location=start,
            customer_location=customer_location,
            route=RoutePlan(
                current=tuple(self.mock_data.route(start, customer_location)),
                optimized=tuple(self.mock_data.optimized_route(start, customer_location)),
                alternate=tuple(self.mock_data.alternate_route(start, customer_location)),
            ),
            estimated_arrival=eta,
            distance=distance,
            status=TrackingStatus.ASSIGNED,
            traffic=self.mock_data.traffic(),
            weather=self.mock_data.weather(),
            analytics=self.route_analytics(distance, eta),
            geofences=tuple(self._geofences),
            metrics=self.mock_data.delivery_metrics(),
            alerts=(),
        )

        self._tracking[order_id] = snapshot
        self._ensure_running()
        logger.info(f"Tracking started for {order_id} with agent {agent_id} ({distance:.2f}km away)")
        self.bus.publish(EventType.TRACKING_STARTED, {"order_id": order_id, "data": snapshot})
        return snapshot

    def _ensure_running(self) -> None:
        if self._job is None or self._job.cancelled:
            self._job = self.scheduler.schedule_interval(self.tick_seconds, self.tick, name="tracking")

    def update_order(self, order_id: str) -> Optional[TrackingSnapshot]:
        """Recompute one order's snapshot. Returns None if it is not tracked."""
        data = self._tracking.get(order_id)
        if data is None:
            return None

        agent_location = self.simulate_movement(data.agent_location, data.customer_location)
        distance = utils.distance_between(agent_location.loc, data.customer_location.loc)
        eta = self.estimate_arrival(distance)
        history = data.route.current[-(config.TRACKING_HISTORY_SIZE - 1):] + (agent_location,)
        new_alerts = self.check_geofences(agent_location)

        updated = replace(
            data,
            agent_location=agent_location,
            route=replace(data.route, current=history),
            distance=distance,
            estimated_arrival=eta,
            status=determine_status(distance, data.status),
            traffic=self.mock_data.update_traffic(data.traffic),
            weather=self.mock_data.update_weather(data.weather),
            analytics=self.route_analytics(distance, eta),
            geofences=tuple(self._geofences),
            metrics=self.mock_data.update_metrics(data.metrics, agent_location),
            alerts=data.alerts[-config.TRACKING_ALERT_HISTORY:] + tuple(new_alerts),
        )

        # The order may have been stopped by a handler while we computed
        if order_id not in self._tracking:
            return None
        self._tracking[order_id] = updated
        self.bus.publish(EventType.TRACKING_UPDATE, {"order_id": order_id, "data": updated})
        return updated

    def tick(self) -> int:
        """
        Update every tracked order once.

        Returns:
            Number of snapshots recomputed
        """
        updated = 0
        for order_id in list(self._tracking):
            if self.update_order(order_id) is not None:
                updated += 1
        return updated

    def get_tracking_data(self, order_id: str) -> Optional[TrackingSnapshot]:
        return self._tracking.get(order_id)

    def get_all_active_trackings(self) -> Dict[str, TrackingSnapshot]:
        return dict(self._tracking)

    def _cancel_tick(self) -> None:
        if self._job is not None:
            self._job.cancel()
            self._job = None

    def stop_order_tracking(self, order_id: str) -> bool:
        """Drop one order. The shared tick is cancelled with the last order."""
        if self._tracking.pop(order_id, None) is None:
            return False
        if not self._tracking:
            self._cancel_tick()
        logger.info(f"Tracking stopped for {order_id}")
        self.bus.publish(EventType.TRACKING_STOPPED, {"order_id": order_id})
        return True

    def stop_all_tracking(self) -> None:
        """Cancel the shared tick and drop every snapshot."""
        self._cancel_tick()
        self._tracking.clear()

    @property
    def is_running(self) -> bool:
        return self._job is not None and not self._job.cancelled
