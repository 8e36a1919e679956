# shirpur-delivery-core/delivery_core/storage.py
"""
Persistence ports used by the services.

Two kinds of storage are involved:
- KeyValueStore: small local state owned by the coordinator (agents, local
  order records, delivery OTPs). In-memory for tests, a JSON file for a
  single process that must survive restarts.
- OrderStore: the authoritative order database. InMemoryOrderStore for tests
  and demos, RestOrderStore for the hosted REST database.

Order store implementations raise OrderStoreError on upstream failure and
return None for unknown ids; the lifecycle service turns both into results.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from . import config
from .models import Order, OrderStatus

logger = logging.getLogger(__name__)


class OrderStoreError(Exception):
    """
    Raised when the order store cannot complete a request.

    Attributes:
        retryable: True for timeouts and connection failures
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = retryable


# =============================================================================
# KEY-VALUE STORES
# =============================================================================


class KeyValueStore(ABC):
    """get/set/delete over JSON-compatible values."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. Values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store persisted as a single JSON document, rewritten on every mutation.

    Suitable for one process; there is no cross-process locking.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._data: Dict[str, Any] = {}
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                self._data = json.load(f)

    def _flush(self) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
        self._flush()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()


# =============================================================================
# ORDER STORES
# =============================================================================


class OrderStore(ABC):
    """The operations the lifecycle service needs from the order database."""

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    def update_order(self, order_id: str, fields: Dict[str, Any]) -> Optional[Order]:
        """Apply column updates. Returns the updated order or None if unknown."""

    @abstractmethod
    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        pass

    @abstractmethod
    def record_rejection(self, order_id: str, agent_id: str, reason: str, rejected_at: datetime) -> None:
        pass


class InMemoryOrderStore(OrderStore):
    """
    Order store backed by a dict of `orders` rows.

    Rows use the same column layout as the REST table so both stores go
    through Order.from_record.
    """

    def __init__(self, orders: Optional[List[Order]] = None) -> None:
        self._rows: Dict[str, Dict[str, Any]] = {}
        self.rejections: List[Dict[str, Any]] = []
        for order in orders or []:
            self.add_order(order)

    def add_order(self, order: Order) -> None:
        self._rows[order.order_id] = order.to_record()

    def get_order(self, order_id: str) -> Optional[Order]:
        row = self._rows.get(order_id)
        return Order.from_record(row) if row is not None else None

    def update_order(self, order_id: str, fields: Dict[str, Any]) -> Optional[Order]:
        row = self._rows.get(order_id)
        if row is None:
            return None
        row.update(copy.deepcopy(fields))
        return Order.from_record(row)

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        orders = [Order.from_record(row) for row in self._rows.values()]
        if status is not None:
            orders = [o for o in orders if o.status == status]
        return sorted(orders, key=lambda o: (o.created_at is None, o.created_at or datetime.min, o.order_id))

    def record_rejection(self, order_id: str, agent_id: str, reason: str, rejected_at: datetime) -> None:
        self.rejections.append({
            "order_id": order_id,
            "agent_id": agent_id,
            "reason": reason,
            "rejected_at": rejected_at.isoformat(),
        })


class RestOrderStore(OrderStore):
    """
    Order store backed by a PostgREST-style API (the hosted database's /rest/v1).

    Filters use the `column=eq.value` syntax; writes ask for the updated
    representation back so a missing row shows up as an empty list.
    """

    def __init__(
        self,
        base_url: str = config.ORDER_STORE_URL,
        api_key: str = config.ORDER_STORE_API_KEY,
        timeout: float = config.ORDER_STORE_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None
    ) -> None:
        self.base_url = f"{base_url.rstrip('/')}/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _request(self, method: str, table: str, params: Optional[Dict[str, str]] = None,
                 payload: Any = None) -> Any:
        url = f"{self.base_url}/{table}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=payload,
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            if not response.content:
                return []
            return response.json()
        except requests.exceptions.Timeout:
            logger.warning(f"Order store {method} {table} timed out")
            raise OrderStoreError(f"Order store request timed out after {self.timeout}s", retryable=True)
        except requests.exceptions.ConnectionError as e:
            logger.warning(f"Order store unreachable: {e}")
            raise OrderStoreError(f"Order store unreachable: {e}", retryable=True)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Order store {method} {table} failed: {e}")
            raise OrderStoreError(f"Order store error: {e}")
        except ValueError as e:
            logger.warning(f"Order store returned invalid JSON: {e}")
            raise OrderStoreError(f"Order store returned invalid JSON: {e}")

    def _rows_to_orders(self, rows: Any) -> List[Order]:
        try:
            return [Order.from_record(row) for row in rows]
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Order store row parsing failed: {e}")
            raise OrderStoreError(f"Malformed order row: {e}")

    def get_order(self, order_id: str) -> Optional[Order]:
        rows = self._request("GET", config.ORDERS_TABLE, params={"id": f"eq.{order_id}"})
        orders = self._rows_to_orders(rows)
        return orders[0] if orders else None

    def update_order(self, order_id: str, fields: Dict[str, Any]) -> Optional[Order]:
        rows = self._request("PATCH", config.ORDERS_TABLE,
                             params={"id": f"eq.{order_id}"}, payload=fields)
        orders = self._rows_to_orders(rows)
        return orders[0] if orders else None

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        params = {"order": "created_at.asc"}
        if status is not None:
            params["status"] = f"eq.{status.value}"
        return self._rows_to_orders(self._request("GET", config.ORDERS_TABLE, params=params))

    def record_rejection(self, order_id: str, agent_id: str, reason: str, rejected_at: datetime) -> None:
        self._request("POST", config.ORDER_REJECTIONS_TABLE, payload={
            "order_id": order_id,
            "agent_id": agent_id,
            "reason": reason,
            "rejected_at": rejected_at.isoformat(),
        })
