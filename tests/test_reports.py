# shirpur-delivery-core/tests/test_reports.py
"""pandas summaries of tracking and coordinator state."""

import pandas as pd

from delivery_core import reports
from delivery_core.models import Location, OrderStatus

from conftest import MARKET, STATION_ROAD, T0, make_record

CUSTOMER = Location(lat=STATION_ROAD[0], lng=STATION_ROAD[1])


def test_tracking_summary_sorted_by_distance(tracker):
    far = Location(lat=MARKET[0] - 0.05, lng=MARKET[1], speed=25.0)
    near = Location(lat=MARKET[0], lng=MARKET[1], speed=25.0)
    tracker.start_order_tracking("ORD-FAR", "AGT-01", CUSTOMER, far)
    tracker.start_order_tracking("ORD-NEAR", "AGT-02", CUSTOMER, near)

    df = reports.tracking_summary(tracker.get_all_active_trackings())

    assert list(df.columns) == reports.TRACKING_COLUMNS
    assert list(df["Order"]) == ["ORD-NEAR", "ORD-FAR"]
    assert df.loc[0, "Status"] == "assigned"
    assert df.loc[0, "Alerts"] == 0


def test_empty_reports_keep_columns():
    assert list(reports.tracking_summary({}).columns) == reports.TRACKING_COLUMNS
    assert list(reports.agent_positions([]).columns) == reports.AGENT_COLUMNS
    assert reports.alert_log({}).empty


def test_agent_positions(coordinator):
    coordinator.set_agent_position("AGT-01", *MARKET, name="Ravi Patil")

    df = reports.agent_positions(coordinator.get_delivery_agents())

    assert df.loc[0, "Name"] == "Ravi Patil"
    assert df.loc[0, "Last Update"] == T0.isoformat()
    assert bool(df.loc[0, "Active"])


def test_order_board(coordinator):
    coordinator.register_order(make_record("ORD-1", *STATION_ROAD, status=OrderStatus.PREPARING))

    df = reports.order_board(coordinator.get_orders())

    row = df.iloc[0]
    assert row["Status"] == "Preparing"
    assert row["Progress (%)"] == 40
    assert row["Remaining (min)"] == 65
    assert pd.isna(row["Agent"])


def test_alert_log_lists_geofence_alerts(tracker, scheduler):
    inside = Location(lat=21.3450, lng=74.8790, speed=0.0)
    tracker.start_order_tracking("ORD-1", "AGT-01", Location(lat=21.3450, lng=74.8790), inside)
    scheduler.advance(tracker.tick_seconds)

    df = reports.alert_log(tracker.get_all_active_trackings())

    assert list(df["Severity"]) == ["high"]
    assert df.loc[0, "Message"] == "Entered restricted zone: Restricted Area"


def test_export_csv(tmp_path, coordinator):
    coordinator.set_agent_position("AGT-01", *MARKET)
    path = str(tmp_path / "agents.csv")

    assert reports.export_csv(reports.agent_positions(coordinator.get_delivery_agents()), path) == path
    assert list(pd.read_csv(path)["Agent"]) == ["AGT-01"]


def test_export_csv_unwritable(tmp_path):
    missing = str(tmp_path / "no" / "such" / "dir" / "out.csv")
    assert reports.export_csv(pd.DataFrame({"a": [1]}), missing) is None
