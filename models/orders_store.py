# models/orders_store.py (SQLAlchemy)
"""
Read/write access to host orders for the checkout integration.

Orders come back fully loaded (items, adjustments, profiles, store are
selectin-loaded) and detached, so they can be handed to the request
builders after the session is closed.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Optional

from models.base import session_scope
from models.schema import Order, OrderAdjustment


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_order(order_id) -> Optional[Order]:
    try:
        oid = int(order_id)
    except (TypeError, ValueError):
        return None
    with session_scope() as s:
        return s.get(Order, oid)


def get_order_data(order: Order, key: str, default: Any = None) -> Any:
    return (order.data or {}).get(key, default)


def set_order_data(order_id: int, key: str, value: Any) -> None:
    with session_scope() as s:
        o = s.get(Order, order_id)
        if not o:
            raise LookupError(f"Order {order_id} not found")
        # reassign so the JSON column is flagged dirty
        o.data = {**(o.data or {}), key: value}
        o.updated_at = _now_utc()


def collect_adjustments(order: Order) -> list[OrderAdjustment]:
    """Item-level adjustments first (in item order), then order-level ones."""
    out: list[OrderAdjustment] = []
    for item in order.items:
        out.extend(item.adjustments)
    out.extend(order.adjustments)
    return out
