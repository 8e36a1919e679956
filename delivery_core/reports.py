# shirpur-delivery-core/delivery_core/reports.py
"""
Tabular summaries of the live delivery state.

Each function turns service state into a pandas DataFrame with one row per
order or agent, ready to print, filter or export. Empty inputs produce an
empty frame that still carries the expected columns.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd

from . import order_status
from .models import DeliveryAgent, OrderLocation, TrackingSnapshot

logger = logging.getLogger(__name__)

TRACKING_COLUMNS: List[str] = [
    "Order", "Agent", "Status", "Distance (km)", "ETA (min)",
    "Traffic", "Weather", "Alerts", "Efficiency (%)",
]

AGENT_COLUMNS: List[str] = ["Agent", "Name", "Lat", "Lng", "Active", "Last Update"]

ORDER_COLUMNS: List[str] = [
    "Order", "Customer", "Status", "Progress (%)", "Remaining (min)", "Agent", "Total",
]


def tracking_summary(trackings: Dict[str, TrackingSnapshot]) -> pd.DataFrame:
    """
    One row per tracked order, closest to its customer first.

    Args:
        trackings: Output of TrackingSimulator.get_all_active_trackings()
    """
    rows = []
    for snapshot in trackings.values():
        rows.append({
            "Order": snapshot.order_id,
            "Agent": snapshot.agent_id,
            "Status": snapshot.status.value,
            "Distance (km)": round(snapshot.distance, 3),
            "ETA (min)": round(snapshot.estimated_arrival, 1),
            "Traffic": snapshot.traffic.level.value,
            "Weather": snapshot.weather.condition,
            "Alerts": len(snapshot.alerts),
            "Efficiency (%)": round(snapshot.analytics.efficiency, 1),
        })

    df = pd.DataFrame(rows, columns=TRACKING_COLUMNS)
    if not df.empty:
        df = df.sort_values("Distance (km)").reset_index(drop=True)
    return df


def agent_positions(agents: Iterable[DeliveryAgent]) -> pd.DataFrame:
    rows = [
        {
            "Agent": agent.agent_id,
            "Name": agent.name,
            "Lat": agent.current_lat,
            "Lng": agent.current_lng,
            "Active": agent.is_active,
            "Last Update": agent.last_update.isoformat() if agent.last_update else None,
        }
        for agent in agents
    ]
    return pd.DataFrame(rows, columns=AGENT_COLUMNS)


def order_board(orders: Iterable[OrderLocation]) -> pd.DataFrame:
    """Coordinator records with lifecycle progress and remaining time."""
    rows = [
        {
            "Order": record.order_id,
            "Customer": record.customer_name,
            "Status": order_status.status_info(record.status).label,
            "Progress (%)": order_status.progress_percentage(record.status),
            "Remaining (min)": order_status.estimated_remaining_time(record.status),
            "Agent": record.agent_id,
            "Total": record.total,
        }
        for record in orders
    ]
    return pd.DataFrame(rows, columns=ORDER_COLUMNS)


def alert_log(trackings: Dict[str, TrackingSnapshot]) -> pd.DataFrame:
    """Every retained alert across tracked orders, newest first."""
    rows = [
        {
            "Order": snapshot.order_id,
            "Type": alert.alert_type,
            "Severity": alert.severity.value,
            "Message": alert.message,
            "Timestamp": alert.timestamp,
        }
        for snapshot in trackings.values()
        for alert in snapshot.alerts
    ]
    df = pd.DataFrame(rows, columns=["Order", "Type", "Severity", "Message", "Timestamp"])
    if not df.empty:
        df = df.sort_values("Timestamp", ascending=False).reset_index(drop=True)
    return df


def export_csv(df: pd.DataFrame, path: str) -> Optional[str]:
    """
    Write a report to CSV.

    Returns:
        The path written, or None if the file could not be written
    """
    try:
        df.to_csv(path, index=False)
    except OSError as e:
        logger.warning(f"Could not write report to {path}: {e}")
        return None
    logger.info(f"Wrote {len(df)} rows to {path}")
    return path
