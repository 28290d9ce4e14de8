# services/klarna/client.py
"""
Thin Klarna REST client (Checkout v3 + Order Management v1).

  create(request)                  POST /checkout/v3/orders, then GET it back
  update(id, request)              POST /checkout/v3/orders/{id}
  fetch(id)                        GET  /checkout/v3/orders/{id}
  acknowledge(id)                  POST /ordermanagement/v1/orders/{id}/acknowledge
  create_capture(id, amount, lines)
                                   POST /ordermanagement/v1/orders/{id}/captures

Failures:
  timeout / connection error -> RemoteError(retryable=True)
  404                        -> RemoteNotFound
  other non-2xx              -> RemoteError (status_code, error_code from body)

One client per configuration; the only state it keeps is the pooled
requests.Session.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from services.klarna.config import KlarnaConfig
from services.klarna.errors import RemoteError, RemoteNotFound

CHECKOUT_ORDERS = "/checkout/v3/orders"
OM_ORDERS = "/ordermanagement/v1/orders"

STATUS_CHECKOUT_COMPLETE = "checkout_complete"


@dataclass
class RemoteSession:
    id: str
    status: Optional[str]
    order_amount: Optional[int]
    purchase_currency: Optional[str]
    billing_address: Dict[str, Any] = field(default_factory=dict)
    shipping_address: Dict[str, Any] = field(default_factory=dict)
    merchant_reference2: Optional[str] = None
    html_snippet: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.status == STATUS_CHECKOUT_COMPLETE

    @classmethod
    def from_payload(cls, js: Dict[str, Any], fallback_id: str | None = None) -> "RemoteSession":
        amount = js.get("order_amount")
        return cls(
            id=str(js.get("order_id") or fallback_id or ""),
            status=js.get("status"),
            order_amount=int(amount) if amount is not None else None,
            purchase_currency=(js.get("purchase_currency") or "").upper() or None,
            billing_address=js.get("billing_address") or {},
            shipping_address=js.get("shipping_address") or {},
            merchant_reference2=js.get("merchant_reference2"),
            html_snippet=js.get("html_snippet"),
            raw=js,
        )


@dataclass
class Capture:
    capture_id: Optional[str]
    location: Optional[str]


def _id_from_location(location: str | None) -> str | None:
    if not location:
        return None
    return location.rstrip("/").rsplit("/", 1)[-1] or None


class SessionClient:
    def __init__(self, config: KlarnaConfig, http: requests.Session | None = None) -> None:
        self.config = config
        self.base_url = config.base_url
        self.timeout = config.timeout
        self.http = http or requests.Session()
        self.http.auth = (config.username, config.password)
        self.http.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, payload: Dict[str, Any] | None = None) -> requests.Response:
        url = self._url(path)
        try:
            r = self.http.request(method, url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise RemoteError(f"Klarna {method} {path} timed out", retryable=True) from e
        except requests.RequestException as e:
            raise RemoteError(f"Klarna {method} {path} failed: {e}", retryable=True) from e

        if 200 <= r.status_code < 300:
            return r

        body: Any = None
        try:
            body = r.json()
        except ValueError:
            body = None
        error_code = body.get("error_code") if isinstance(body, dict) else None
        messages = body.get("error_messages") if isinstance(body, dict) else None
        detail = "; ".join(messages) if messages else (r.text or "")[:200]
        msg = f"Klarna {method} {path} -> {r.status_code}"
        if error_code or detail:
            msg += f" ({error_code or 'error'}: {detail})"
        cls = RemoteNotFound if r.status_code == 404 else RemoteError
        raise cls(msg, status_code=r.status_code, error_code=error_code,
                  retryable=r.status_code >= 500, payload=body)

    @staticmethod
    def _json(r: requests.Response) -> Dict[str, Any]:
        if not r.content:
            return {}
        try:
            js = r.json()
        except ValueError as e:
            raise RemoteError("Klarna returned a non-JSON body",
                              status_code=r.status_code) from e
        if not isinstance(js, dict):
            raise RemoteError("Klarna returned an unexpected payload",
                              status_code=r.status_code)
        return js

    # ----- checkout -------------------------------------------------------

    def create(self, request: Dict[str, Any]) -> RemoteSession:
        r = self._request("POST", CHECKOUT_ORDERS, request)
        js = self._json(r)
        session_id = js.get("order_id") or _id_from_location(r.headers.get("Location"))
        if not session_id:
            raise RemoteError("Klarna did not return an order id",
                              status_code=r.status_code, payload=js)
        # re-read so server-computed fields (snippet, totals) are current
        return self.fetch(str(session_id))

    def update(self, session_id: str, request: Dict[str, Any]) -> RemoteSession:
        r = self._request("POST", f"{CHECKOUT_ORDERS}/{session_id}", request)
        js = self._json(r)
        if not js:
            return self.fetch(session_id)
        return RemoteSession.from_payload(js, fallback_id=session_id)

    def fetch(self, session_id: str) -> RemoteSession:
        r = self._request("GET", f"{CHECKOUT_ORDERS}/{session_id}")
        return RemoteSession.from_payload(self._json(r), fallback_id=session_id)

    # ----- order management -----------------------------------------------

    def acknowledge(self, session_id: str) -> None:
        self._request("POST", f"{OM_ORDERS}/{session_id}/acknowledge")

    def create_capture(self, session_id: str, amount_minor: int,
                       order_lines: List[Dict[str, Any]]) -> Capture:
        r = self._request("POST", f"{OM_ORDERS}/{session_id}/captures", {
            "captured_amount": int(amount_minor),
            "order_lines": order_lines,
        })
        location = r.headers.get("Location")
        return Capture(
            capture_id=r.headers.get("Capture-Id") or _id_from_location(location),
            location=location,
        )

    def close(self) -> None:
        self.http.close()
