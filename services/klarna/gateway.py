# services/klarna/gateway.py
"""
Klarna Checkout gateway: session creation and the reconciliation state
machine.

    Unacknowledged -> Acknowledging -> Authorized -> (Captured)

Both the customer's return redirect (on_return) and Klarna's push
notification (on_notify) funnel into acknowledge_order(). A Klarna order
produces at most one local Payment: the lookup by remote_id short-circuits
repeated deliveries, and the uq_payments_remote_id constraint catches the
ones that race past the lookup.
"""

from __future__ import annotations
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from models import orders_store, payments_store
from models.currency_store import get_fraction_digits
from models.schema import Payment, Profile
from services.klarna.address import populate_profile
from services.klarna.adjustments import AdjustmentTransformer, DefaultAdjustmentTransformer
from services.klarna.client import STATUS_CHECKOUT_COMPLETE, RemoteSession, SessionClient
from services.klarna.config import GATEWAY_ID, KlarnaConfig
from services.klarna.errors import (
    ConfigurationError, InvalidArgument, InvalidState, PaymentGatewayError, RemoteError,
    RemoteNotFound,
)
from services.klarna.hooks import CheckoutHooks
from services.klarna.money import D, from_minor_units, to_minor_units
from services.klarna.order_lines import build_order_lines
from services.klarna.request_builder import build_session_request
from services.metrics import (
    AMOUNT_MISMATCHES, CAPTURES, NOTIFICATIONS, PAYMENTS_AUTHORIZED, SESSIONS,
)

logger = logging.getLogger(__name__)

SESSION_DATA_KEY = "klarna_order_id"


class KlarnaCheckoutGateway:
    name = GATEWAY_ID

    def __init__(self, config: KlarnaConfig, client: SessionClient | None = None,
                 hooks: CheckoutHooks | None = None,
                 transformer: AdjustmentTransformer | None = None,
                 fraction_digits: Callable[[str], int] | None = None) -> None:
        self.config = config
        self.client = client or SessionClient(config)
        self.hooks = hooks or CheckoutHooks()
        self.fraction_digits = fraction_digits or get_fraction_digits
        self.transformer = transformer or DefaultAdjustmentTransformer(
            self.fraction_digits)

    # ----- sessions -------------------------------------------------------

    def build_request(self, order, merchant_urls: Mapping[str, str],
                      base_url: str | None = None) -> Dict[str, Any]:
        return build_session_request(
            order, merchant_urls, self.config,
            fraction_digits=self.fraction_digits,
            transformer=self.transformer,
            hooks=self.hooks,
            base_url=base_url,
        )

    def create_or_update_session(self, order, merchant_urls: Mapping[str, str],
                                 base_url: str | None = None) -> Dict[str, Optional[str]]:
        # validation (InvalidArgument) happens here, before any network call
        request = self.build_request(order, merchant_urls, base_url)

        remote: RemoteSession | None = None
        session_id = orders_store.get_order_data(order, SESSION_DATA_KEY)
        if session_id:
            try:
                remote = self.client.update(session_id, request)
                SESSIONS.labels(action="update", outcome="ok").inc()
            except RemoteNotFound:
                # stale id, start over with a fresh Klarna order
                logger.info("Klarna order %s not found for order %s, creating a new one",
                            session_id, order.id)
                remote = None
            except RemoteError as e:
                SESSIONS.labels(action="update", outcome="error").inc()
                raise PaymentGatewayError(str(e)) from e

        if remote is None:
            try:
                remote = self.client.create(request)
            except RemoteError as e:
                SESSIONS.labels(action="create", outcome="error").inc()
                raise PaymentGatewayError(str(e)) from e
            SESSIONS.labels(action="create", outcome="ok").inc()
            orders_store.set_order_data(order.id, SESSION_DATA_KEY, remote.id)
            order.data = {**(order.data or {}), SESSION_DATA_KEY: remote.id}
            logger.info("Created Klarna order %s for order %s", remote.id, order.id)

        return {"session_id": remote.id, "snippet": remote.html_snippet}

    def get_session(self, session_id: str) -> RemoteSession:
        return self.client.fetch(session_id)

    def get_confirmation_snippet(self, order) -> Optional[str]:
        session_id = orders_store.get_order_data(order, SESSION_DATA_KEY)
        if not session_id:
            return None
        try:
            return self.get_session(session_id).html_snippet
        except RemoteError:
            logger.warning("Could not load the confirmation snippet for Klarna order %s",
                           session_id, exc_info=True)
            return None

    # ----- callbacks ------------------------------------------------------

    def on_return(self, order, request_args: Mapping[str, Any] | None = None) -> Payment:
        # Klarna expects an acknowledge attempt from the confirmation callback.
        session_id = orders_store.get_order_data(order, SESSION_DATA_KEY)
        if not session_id:
            NOTIFICATIONS.labels(source="return", outcome="error").inc()
            raise PaymentGatewayError(
                f"Order {order.id} has no Klarna order to acknowledge")
        try:
            payment, created = self._acknowledge(session_id, order)
        except PaymentGatewayError:
            NOTIFICATIONS.labels(source="return", outcome="error").inc()
            raise
        NOTIFICATIONS.labels(
            source="return", outcome="created" if created else "duplicate").inc()
        return payment

    def on_notify(self, request_args: Mapping[str, Any]) -> Optional[Payment]:
        session_id = (request_args or {}).get("klarna_order_id")
        if not session_id:
            logger.error("Cannot acknowledge the Klarna order: No order ID provided.")
            NOTIFICATIONS.labels(source="push", outcome="error").inc()
            return None
        try:
            payment, created = self._acknowledge(session_id)
        except PaymentGatewayError as e:
            # Klarna only wants a 2xx back; there is nobody to report to
            logger.error("Klarna push for %s failed: %s", session_id, e)
            NOTIFICATIONS.labels(source="push", outcome="error").inc()
            return None
        NOTIFICATIONS.labels(
            source="push", outcome="created" if created else "duplicate").inc()
        return payment

    # ----- reconciliation -------------------------------------------------

    def acknowledge_order(self, session_id: str, order=None) -> Payment:
        """
        Acknowledge a completed Klarna order and record its payment.

        If `order` is not passed it is recovered from merchant_reference2.
        Returns the existing payment untouched when the Klarna order was
        already processed. Raises PaymentGatewayError when the Klarna order
        cannot be loaded, is not checkout_complete, fails validation or
        cannot be acknowledged.
        """
        payment, _ = self._acknowledge(session_id, order)
        return payment

    def _acknowledge(self, session_id: str, order=None) -> Tuple[Payment, bool]:
        try:
            remote = self.client.fetch(session_id)
        except RemoteError as e:
            raise PaymentGatewayError(str(e)) from e

        if remote.status != STATUS_CHECKOUT_COMPLETE:
            raise PaymentGatewayError(
                "Unexpected Klarna order status (Expected: %s, Actual: %s)"
                % (STATUS_CHECKOUT_COMPLETE, remote.status))

        # Already processed (repeated push, or return + push for the same order).
        existing = payments_store.get_payment_by_remote_id(remote.id)
        if existing is not None:
            return existing, False

        if order is None:
            order = orders_store.get_order(remote.merchant_reference2)
            if order is None:
                raise PaymentGatewayError(
                    f"Cannot find order {remote.merchant_reference2!r} for Klarna order {remote.id}")

        self.hooks.validate_completed_session(order, remote)

        try:
            self.client.acknowledge(remote.id)
        except RemoteError as e:
            logger.error("Cannot acknowledge the order ID %s", remote.id)
            raise PaymentGatewayError(str(e)) from e

        # Klarna's amount wins over the order total; the two can differ.
        try:
            amount = from_minor_units(
                remote.order_amount or 0, self.fraction_digits(remote.purchase_currency))
        except ConfigurationError as e:
            raise PaymentGatewayError(
                f"Cannot read the Klarna order amount: {e}") from e

        if amount != D(order.total_price) or remote.purchase_currency != order.currency_code:
            AMOUNT_MISMATCHES.inc()
            logger.warning("Order total mismatch: (Klarna total: %s %s, Order total: %s %s)",
                           amount, remote.purchase_currency,
                           D(order.total_price), order.currency_code)

        payment, created = payments_store.create_authorized_payment(
            gateway=self.name,
            order_id=order.id,
            amount=amount,
            currency_code=remote.purchase_currency,
            remote_id=remote.id,
            remote_state=remote.status,
            test=self.config.is_test,
            apply_order_changes=lambda s, db_order: self._update_order(
                s, db_order, remote),
        )
        if not created:
            logger.info("Klarna order %s was processed concurrently; reusing payment %s",
                        remote.id, payment.id)
            return payment, False

        PAYMENTS_AUTHORIZED.inc()
        logger.info("Authorized payment %s (%s %s) for order %s from Klarna order %s",
                    payment.id, payment.amount, payment.currency_code, order.id, remote.id)

        if self.config.capture:
            payment = self.capture_payment(payment)
        return payment, True

    def _update_order(self, s, db_order, remote: RemoteSession) -> None:
        if self.config.update_billing_profile:
            profile = db_order.billing_profile
            if profile is None:
                profile = Profile(type="customer", uid=0, data={})
                s.add(profile)
                db_order.billing_profile = profile
            populate_profile(profile, remote.billing_address)
            self.hooks.alter_billing_profile(profile, remote)

        email = (remote.billing_address or {}).get("email")
        if email:
            db_order.email = email

    # ----- capture --------------------------------------------------------

    def capture_payment(self, payment: Payment, amount: Decimal | None = None) -> Payment:
        # the caller's copy may be stale; check the stored state before calling Klarna
        payment = payments_store.get_payment(payment.id) or payment
        if payment.state != "authorization":
            raise InvalidState(
                f"Payment {payment.id} is in state '{payment.state}', expected 'authorization'")
        # capture the full amount unless told otherwise
        amount = D(payment.amount) if amount is None else D(amount)
        if amount > D(payment.amount):
            raise InvalidArgument(
                f"Capture amount {amount} exceeds the authorized {payment.amount}")

        order = orders_store.get_order(payment.order_id)
        if order is None:
            raise PaymentGatewayError(f"Order {payment.order_id} not found")

        # amount and lines both use the payment's currency precision
        digits = self.fraction_digits(payment.currency_code)
        minor = to_minor_units(amount, digits)
        try:
            lines = build_order_lines(
                order, fraction_digits=lambda _code: digits, transformer=self.transformer)
            capture = self.client.create_capture(payment.remote_id, minor, lines)
        except RemoteError as e:
            CAPTURES.labels(outcome="error").inc()
            logger.error("Capture of payment %s (Klarna order %s) failed: %s",
                         payment.id, payment.remote_id, e)
            raise PaymentGatewayError(str(e)) from e

        captured = payments_store.mark_captured(
            payment.id, from_minor_units(minor, digits),
            capture.capture_id, capture.location)
        CAPTURES.labels(outcome="ok").inc()
        logger.info("Captured %s %s on payment %s (capture %s)",
                    captured.amount, captured.currency_code, captured.id, capture.capture_id)
        return captured
