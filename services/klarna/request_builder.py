# services/klarna/request_builder.py
"""Builds the create/update body for a Klarna checkout order."""

from __future__ import annotations
from typing import Any, Callable, Dict, Mapping, Optional

from models.orders_store import collect_adjustments
from services.klarna.address import to_provider_address
from services.klarna.adjustments import AdjustmentTransformer, adjustments_total
from services.klarna.config import KlarnaConfig
from services.klarna.errors import InvalidArgument
from services.klarna.hooks import CheckoutHooks
from services.klarna.money import to_minor_units
from services.klarna.order_lines import build_order_lines

REQUIRED_MERCHANT_URLS = ("checkout", "confirmation", "push")


def validate_merchant_urls(merchant_urls: Optional[Mapping[str, str]]) -> None:
    urls = merchant_urls or {}
    for key in REQUIRED_MERCHANT_URLS:
        if not urls.get(key):
            raise InvalidArgument(
                f"Missing required key {key} in the provided merchant_urls.")


def build_session_request(order, merchant_urls: Mapping[str, str], config: KlarnaConfig, *,
                          fraction_digits: Callable[[str], int],
                          transformer: AdjustmentTransformer,
                          hooks: Optional[CheckoutHooks] = None,
                          base_url: Optional[str] = None) -> Dict[str, Any]:
    validate_merchant_urls(merchant_urls)

    currency_code = order.currency_code
    digits = fraction_digits(currency_code)
    store = getattr(order, "store", None)

    params: Dict[str, Any] = {
        "purchase_country": config.purchase_country,
        "purchase_currency": currency_code,
        "name": store.name if store is not None else config.store_name,
        "locale": config.locale,
        "order_amount": to_minor_units(order.total_price, digits),
        "merchant_urls": {
            "terms": config.terms_url(base_url),
            "checkout": merchant_urls["checkout"],
            "confirmation": merchant_urls["confirmation"],
            "push": merchant_urls["push"],
        },
        "merchant_reference1": str(order.order_number or order.id),
        "merchant_reference2": str(order.id),
        "options": {
            "allow_separate_shipping_address": bool(config.allow_separate_shipping_address),
        },
        "order_lines": build_order_lines(
            order, fraction_digits=fraction_digits, transformer=transformer),
    }

    if config.allowed_customer_types:
        params["options"]["allowed_customer_types"] = list(
            config.allowed_customer_types)

    # Send the billing address only when the order has a billing profile.
    if order.billing_profile is not None:
        params["billing_address"] = to_provider_address(order.billing_profile)
        if order.email:
            params["billing_address"]["email"] = order.email

    tax_total = adjustments_total(
        collect_adjustments(order), currency_code, transformer,
        types=["tax"], skip_included=False)
    params["order_tax_amount"] = to_minor_units(
        tax_total, digits) if tax_total else 0

    if hooks is not None:
        params = hooks.before_session_request_send(params, order)
    return params
