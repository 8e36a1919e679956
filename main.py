#!/usr/bin/env python3
# shirpur-delivery-core/main.py
"""
Command-Line Interface for the Shirpur delivery core.

Runs an end-to-end delivery scenario on in-memory stores and a manual
clock, so it needs no database, no network and no waiting:
  1. ORD-001 is walked through the order lifecycle
  2. A delivery agent comes online, finds nearby orders and accepts ORD-001
  3. The coordinator and tracking simulator tick for a while
  4. The order is delivered and the final state is printed

Usage:
    python main.py                      # Run with defaults
    python main.py --ticks 40           # Let the agent travel longer
    python main.py --seed 7 --verbose   # Reproducible run with logging
    python main.py --export reports     # Also write CSV reports

Exit Codes:
    0: Success
    1: Scenario setup error
    2: Simulation error
"""

from __future__ import annotations

import argparse
import logging
import os
import random
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pandas as pd

from delivery_core import config, order_status, reports, utils
from delivery_core.models import Order, OrderStatus
from delivery_core.scheduler import ManualScheduler
from delivery_core.services import DeliveryServices, build_services
from delivery_core.storage import InMemoryOrderStore

DEMO_START = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

# Agent starts at Shirpur market; customers are a few km away
DEMO_AGENT: Dict[str, object] = {
    "agent_id": "AGT-01",
    "name": "Ravi Patil",
    "phone": "+91 9876543210",
    "lat": 21.3486,
    "lng": 74.8811,
}

DEMO_ORDERS: List[Order] = [
    Order(
        order_id="ORD-001",
        customer_name="Priya Sharma",
        customer_phone="+91 9123456780",
        customer_address="Station Road, Shirpur",
        items=[{"name": "Basmati Rice 5kg", "quantity": 1, "price": 450.0}],
        total_amount=450.0,
        status=OrderStatus.PENDING,
        customer_lat=21.3620,
        customer_lng=74.8950,
        created_at=DEMO_START,
    ),
    Order(
        order_id="ORD-002",
        customer_name="Amit Joshi",
        customer_phone="+91 9988776655",
        customer_address="Gandhi Chowk, Shirpur",
        items=[{"name": "Toor Dal 1kg", "quantity": 2, "price": 140.0}],
        total_amount=280.0,
        status=OrderStatus.CONFIRMED,
        customer_lat=21.3500,
        customer_lng=74.8825,
        created_at=DEMO_START + timedelta(minutes=2),
    ),
    Order(
        order_id="ORD-003",
        customer_name="Sunita Wagh",
        customer_phone="",
        customer_address="Dhule Road",
        total_amount=120.0,
        status=OrderStatus.READY_FOR_DELIVERY,
        customer_lat=21.4500,
        customer_lng=74.9900,
        created_at=DEMO_START + timedelta(minutes=4),
    ),
]

LIFECYCLE_WALK = [OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY_FOR_DELIVERY]


def print_header() -> None:
    """Print the CLI header."""
    print("\n" + "=" * 60)
    print("  SHIRPUR MARKET - Delivery Core Demo")
    print("  Order Lifecycle, Coordination and Live Tracking")
    print("=" * 60 + "\n")


def print_section(title: str) -> None:
    print("\n" + "-" * 60)
    print(f"  {title}")
    print("-" * 60)


def print_frame(df: pd.DataFrame) -> None:
    if df.empty:
        print("  (no rows)")
    else:
        print(df.to_string(index=False))


def print_status(services: DeliveryServices, order_id: str) -> None:
    order = services.order_store.get_order(order_id)
    if order is None:
        return
    info = order_status.status_info(order.status)
    print(f"  {info.icon} {order_id}: {info.label:<20} "
          f"progress {order_status.progress_percentage(order.status):>3}%  "
          f"~{utils.format_time_duration(order_status.estimated_remaining_time(order.status))} left")


def run_lifecycle(services: DeliveryServices, order_id: str) -> bool:
    """
    Walk an order from pending to ready_for_delivery.

    An illegal shortcut (confirmed -> delivered) is attempted on the way to
    show the rejection.

    Returns:
        False if any legal step failed
    """
    print_section(f"ORDER LIFECYCLE ({order_id})")
    print_status(services, order_id)

    for target in LIFECYCLE_WALK:
        result = services.lifecycle.transition(order_id, target, actor="admin")
        if not result.success:
            print(f"ERROR: {result.error} ({result.error_code})")
            return False
        print_status(services, order_id)

        if target == OrderStatus.CONFIRMED:
            shortcut = services.lifecycle.transition(order_id, OrderStatus.DELIVERED, actor="admin")
            print(f"  Shortcut to delivered rejected: {shortcut.error}")

    return True


def run_delivery(services: DeliveryServices, scheduler: ManualScheduler,
                 order_id: str, ticks: int) -> bool:
    """
    Agent comes online, accepts the order and travels for `ticks` coordinator ticks.

    Returns:
        False if the order could not be accepted or tracking never started
    """
    coordinator = services.coordinator
    agent_id = str(DEMO_AGENT["agent_id"])

    print_section("DISPATCH")
    services.sync_orders()
    coordinator.set_agent_position(agent_id, float(DEMO_AGENT["lat"]), float(DEMO_AGENT["lng"]),
                                   name=str(DEMO_AGENT["name"]), phone=str(DEMO_AGENT["phone"]))

    nearby = coordinator.find_nearby_orders(agent_id)
    print(f"  {len(nearby)} orders within {config.NEARBY_ORDER_RADIUS_KM:.0f}km of {agent_id}:")
    for record in nearby:
        print(f"    {record.order_id:<8} {record.status.value:<20} {record.distance:.2f}km")

    if not coordinator.accept_order(agent_id, order_id):
        print(f"ERROR: {agent_id} could not accept {order_id}")
        return False
    print(f"  {agent_id} accepted {order_id}")
    print_status(services, order_id)

    print_section(f"LIVE TRACKING ({ticks} ticks)")
    fired = scheduler.advance(ticks * config.COORDINATOR_TICK_SECONDS)
    print(f"  {fired} scheduled callbacks ran over {scheduler.now:.0f}s of simulated time")

    if services.tracker.get_tracking_data(order_id) is None:
        print(f"ERROR: {order_id} is not being tracked")
        return False

    print()
    print_frame(reports.tracking_summary(services.tracker.get_all_active_trackings()))
    alerts = reports.alert_log(services.tracker.get_all_active_trackings())
    if not alerts.empty:
        print()
        print_frame(alerts)
    return True


def complete_delivery(services: DeliveryServices, order_id: str) -> bool:
    print_section("DELIVERY")
    if not services.coordinator.mark_as_delivered(order_id):
        print(f"ERROR: {order_id} could not be marked delivered")
        return False
    print_status(services, order_id)

    print("\n  History:")
    for entry in services.lifecycle.tracking_history(order_id):
        print(f"    {entry['timestamp']}  {entry['from_status']:>18} -> {entry['to_status']:<18} by {entry['actor']}")
    return True


def export_reports(services: DeliveryServices, directory: str) -> int:
    """
    Write the agent and order tables as CSV files.

    Returns:
        Number of files written
    """
    os.makedirs(directory, exist_ok=True)
    frames = {
        "agents.csv": reports.agent_positions(services.coordinator.get_delivery_agents()),
        "orders.csv": reports.order_board(services.coordinator.get_orders()),
    }
    written = 0
    for filename, df in frames.items():
        if reports.export_csv(df, os.path.join(directory, filename)) is not None:
            written += 1
    return written


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Shirpur delivery core demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                       # Default scenario
  python main.py --ticks 60            # Agent gets closer to the customer
  python main.py --export reports      # Write agents.csv and orders.csv
        """
    )

    parser.add_argument(
        "--ticks", "-t",
        type=int,
        default=20,
        help=f"Coordinator ticks to simulate, {config.COORDINATOR_TICK_SECONDS:.0f}s each (default: 20)"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for simulated traffic, weather and sensor noise (default: 42)"
    )

    parser.add_argument(
        "--export", "-e",
        type=str,
        default=None,
        help="Directory to write CSV reports into"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show service logging"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.ticks < 0:
        print("ERROR: --ticks must not be negative")
        return 1

    print_header()

    scheduler = ManualScheduler()
    services = build_services(
        order_store=InMemoryOrderStore(DEMO_ORDERS),
        scheduler=scheduler,
        rng=random.Random(args.seed),
        clock=lambda: DEMO_START + timedelta(seconds=scheduler.now),
    )

    order_id = DEMO_ORDERS[0].order_id
    try:
        if not run_lifecycle(services, order_id):
            return 1
        if not run_delivery(services, scheduler, order_id, args.ticks):
            return 2
        if not complete_delivery(services, order_id):
            return 2

        print_section("FINAL STATE")
        print_frame(reports.order_board(services.coordinator.get_orders()))
        print()
        print_frame(reports.agent_positions(services.coordinator.get_delivery_agents()))

        if args.export:
            written = export_reports(services, args.export)
            print(f"\n  Wrote {written} CSV files to {args.export}")
    finally:
        services.shutdown()

    print("\n" + "=" * 60 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
