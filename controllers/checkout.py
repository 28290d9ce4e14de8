# controllers/checkout.py
from __future__ import annotations
import os
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, abort, current_app, jsonify, url_for

from models.orders_store import get_order
from models.payments_store import get_payment
from services.klarna.errors import InvalidArgument, PaymentGatewayError
from services.klarna.registry import get_gateway

checkout_bp = Blueprint("checkout", __name__)

# Klarna substitutes its own order id into this placeholder.
KLARNA_ORDER_ID_PLACEHOLDER = "{checkout.order.id}"


def _env(key: str, default: str | None = None) -> str | None:
    v = os.environ.get(key)
    return v if v is not None else current_app.config.get(key, default)


def _site() -> str:
    return (_env("SITE_BASE_URL") or request.host_url).rstrip("/")


def _load_order(order_id: int):
    order = get_order(order_id)
    if order is None:
        abort(404)
    return order


def _payment_json(p):
    return {
        "payment_id": p.id,
        "order_id": p.order_id,
        "state": p.state,
        "amount": str(p.amount),
        "currency_code": p.currency_code,
        "remote_id": p.remote_id,
        "capture_id": p.capture_id,
    }


# ----- session (embedded checkout widget) -----

@checkout_bp.post("/checkout/<int:order_id>/klarna/session")
def create_session(order_id: int):
    order = _load_order(order_id)
    body = request.get_json(silent=True) or {}
    site = _site()

    merchant_urls = {
        "checkout": body.get("checkout_url") or f"{site}/checkout/{order_id}",
        "confirmation": site + url_for("checkout.klarna_return", order_id=order_id),
        "push": site + url_for("checkout.klarna_notify")
        + "?klarna_order_id=" + KLARNA_ORDER_ID_PLACEHOLDER,
    }

    gateway = get_gateway()
    try:
        result = gateway.create_or_update_session(order, merchant_urls, base_url=site)
    except PaymentGatewayError as e:
        current_app.logger.error("Klarna session for order %s failed: %s", order_id, e)
        return jsonify(error="Could not start the Klarna checkout."), 502

    return jsonify(result), 200


# ----- customer comes back from the widget -----

@checkout_bp.get("/checkout/<int:order_id>/klarna/return")
def klarna_return(order_id: int):
    order = _load_order(order_id)
    gateway = get_gateway()
    try:
        payment = gateway.on_return(order, request.args)
    except PaymentGatewayError as e:
        current_app.logger.error("Klarna return for order %s failed: %s", order_id, e)
        # don't leak provider details to the customer
        return jsonify(error="Payment failed at the payment server. Please review your information and try again."), 402

    return jsonify(status="ok", payment=_payment_json(payment)), 200


@checkout_bp.get("/checkout/<int:order_id>/klarna/complete")
def klarna_complete(order_id: int):
    order = _load_order(order_id)
    snippet = get_gateway().get_confirmation_snippet(order)
    if not snippet:
        abort(404)
    return snippet, 200, {"Content-Type": "text/html; charset=utf-8"}


# ----- provider push (no auth; Klarna only needs a 2xx) -----

@checkout_bp.route("/payments/klarna/notify", methods=["GET", "POST"])
def klarna_notify():
    payment = get_gateway().on_notify(request.args)
    if payment is not None:
        current_app.logger.info("Klarna push handled: payment %s (%s)",
                                payment.id, payment.state)
    return "", 200


# ----- manual capture -----

@checkout_bp.post("/payments/<int:payment_id>/capture")
def capture(payment_id: int):
    payment = get_payment(payment_id)
    if payment is None:
        abort(404)

    body = request.get_json(silent=True) or {}
    amount = None
    if body.get("amount") is not None:
        try:
            amount = Decimal(str(body["amount"]))
        except InvalidOperation:
            raise InvalidArgument(f"Invalid amount: {body['amount']!r}")
        if not amount.is_finite() or amount <= 0:
            raise InvalidArgument("Capture amount must be positive")

    try:
        captured = get_gateway().capture_payment(payment, amount)
    except PaymentGatewayError as e:
        current_app.logger.error("Capture of payment %s failed: %s", payment_id, e)
        return jsonify(error=str(e)), 502

    return jsonify(_payment_json(captured)), 200
