# tests/utils.py
import copy
import json as _json
import re
from datetime import datetime, timezone
from decimal import Decimal

import requests
from sqlalchemy import select

from models.base import session_scope
from models.orders_store import get_order
from models.schema import (
    Order, OrderAdjustment, OrderItem, ProductVariation, Profile, Store,
)

BASE = "https://api.playground.klarna.com"

SNIPPET = '<div id="klarna-checkout-container">{id}</div>'


def _now():
    return datetime.now(timezone.utc)


def _adjustment(row: dict) -> OrderAdjustment:
    return OrderAdjustment(
        type=row["type"],
        label=row.get("label", ""),
        amount=Decimal(str(row["amount"])),
        percentage=Decimal(str(row["percentage"])) if row.get("percentage") is not None else None,
        source_id=row.get("source_id"),
        included=bool(row.get("included", False)),
    )


def _variation(s, cache, sku, title):
    if sku not in cache:
        cache[sku] = s.execute(select(ProductVariation).where(
            ProductVariation.sku == sku)).scalar_one_or_none() or ProductVariation(sku=sku, title=title)
    return cache[sku]


def make_order(*, currency="USD", total="19.99", items=None, adjustments=None,
               billing=None, email=None, store_name="Example Shop",
               order_number=None, data=None):
    """
    Insert an order and return it fully loaded.

    items: [{"title", "quantity", "unit_price", "total_price", "sku"?, "adjustments"?}]
    adjustments: order-level [{"type", "amount", "label"?, "percentage"?, "source_id"?, "included"?}]
    billing: dict of Profile attributes, or None for no billing profile
    """
    if items is None:
        items = [{"title": "T-shirt", "quantity": 2, "unit_price": "9.995",
                  "total_price": "19.99", "sku": "TSHIRT-1"}]
    now = _now()
    variations = {}
    with session_scope() as s:
        order = Order(
            order_number=order_number,
            currency_code=currency,
            total_price=Decimal(str(total)),
            email=email,
            data=dict(data or {}),
            created_at=now,
            updated_at=now,
        )
        if store_name:
            order.store = Store(name=store_name)
        if billing is not None:
            order.billing_profile = Profile(type="customer", uid=0, data={}, **billing)
        for row in items:
            item = OrderItem(
                title=row["title"],
                quantity=int(row.get("quantity", 1)),
                unit_price=Decimal(str(row["unit_price"])),
                total_price=Decimal(str(row["total_price"])),
            )
            if row.get("sku"):
                item.purchased_entity = _variation(s, variations, row["sku"], row["title"])
            item.adjustments = [_adjustment(a) for a in row.get("adjustments", [])]
            order.items.append(item)
        order.adjustments = [_adjustment(a) for a in (adjustments or [])]
        s.add(order)
        s.flush()
        oid = order.id
    return get_order(oid)


# ----- in-memory Klarna -----

class FakeResponse:
    def __init__(self, status_code=200, body=None, headers=None):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.content = b"" if body is None else _json.dumps(body).encode("utf-8")
        self.text = self.content.decode("utf-8")

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class FakeKlarna:
    """
    Stands in for requests.Session in SessionClient: keeps Klarna orders in a
    dict and answers the handful of Checkout v3 / Order Management calls.

    `fail(method, pattern, status=..., exc=...)` makes matching calls fail.
    """

    ORDERS = re.compile(r"^/checkout/v3/orders(?:/(?P<id>[^/]+))?$")
    ACK = re.compile(r"^/ordermanagement/v1/orders/(?P<id>[^/]+)/acknowledge$")
    CAPTURES = re.compile(r"^/ordermanagement/v1/orders/(?P<id>[^/]+)/captures$")

    def __init__(self, base=BASE):
        self.base = base
        self.auth = None
        self.headers = {}
        self.orders = {}
        self.acknowledged = []
        self.captures = []
        self.calls = []
        self._failures = []
        self._order_seq = 0
        self._capture_seq = 0
        self.closed = False

    # test controls

    def fail(self, method, pattern, status=500, exc=None, body=None, times=None):
        self._failures.append({
            "method": method, "pattern": re.compile(pattern),
            "status": status, "exc": exc, "body": body, "times": times,
        })

    def complete(self, order_id, billing_address=None, **fields):
        o = self.orders[order_id]
        o["status"] = "checkout_complete"
        if billing_address is not None:
            o["billing_address"] = billing_address
        o.update(fields)
        return o

    def add_order(self, order_id, **fields):
        self.orders[order_id] = {"order_id": order_id, "status": "checkout_incomplete",
                                 "html_snippet": SNIPPET.format(id=order_id), **fields}
        return self.orders[order_id]

    def calls_to(self, method, path_prefix):
        return [c for c in self.calls if c[0] == method and c[1].startswith(path_prefix)]

    def close(self):
        self.closed = True

    # requests.Session surface used by SessionClient

    def request(self, method, url, json=None, timeout=None):
        assert url.startswith(self.base), url
        assert timeout is not None
        path = url[len(self.base):]
        self.calls.append((method, path, copy.deepcopy(json)))

        for f in self._failures:
            if f["method"] == method and f["pattern"].search(path) and f["times"] != 0:
                if f["times"] is not None:
                    f["times"] -= 1
                if f["exc"] is not None:
                    raise f["exc"]
                return FakeResponse(f["status"], f["body"] if f["body"] is not None else {
                    "error_code": "INTERNAL_ERROR",
                    "error_messages": ["Simulated failure"],
                    "correlation_id": "test-correlation",
                })

        m = self.ORDERS.match(path)
        if m:
            return self._orders(method, m.group("id"), json)
        m = self.ACK.match(path)
        if m and method == "POST":
            if m.group("id") not in self.orders:
                return self._not_found()
            self.acknowledged.append(m.group("id"))
            return FakeResponse(204)
        m = self.CAPTURES.match(path)
        if m and method == "POST":
            if m.group("id") not in self.orders:
                return self._not_found()
            self._capture_seq += 1
            capture_id = f"cap-{self._capture_seq}"
            self.captures.append((m.group("id"), copy.deepcopy(json)))
            return FakeResponse(201, headers={
                "Capture-Id": capture_id,
                "Location": f"{self.base}/ordermanagement/v1/orders/{m.group('id')}/captures/{capture_id}",
            })
        raise requests.ConnectionError(f"unexpected call {method} {path}")

    def _orders(self, method, order_id, payload):
        if order_id is None and method == "POST":
            self._order_seq += 1
            new_id = f"kco-{self._order_seq}"
            self.add_order(new_id, **copy.deepcopy(payload or {}))
            return FakeResponse(201, copy.deepcopy(self.orders[new_id]), headers={
                "Location": f"{self.base}/checkout/v3/orders/{new_id}"})
        if order_id not in self.orders:
            return self._not_found()
        if method == "POST":
            self.orders[order_id].update(copy.deepcopy(payload or {}))
        return FakeResponse(200, copy.deepcopy(self.orders[order_id]))

    @staticmethod
    def _not_found():
        return FakeResponse(404, {"error_code": "NOT_FOUND",
                                  "error_messages": ["Order not found"]})
