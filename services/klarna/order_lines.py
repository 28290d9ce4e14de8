# services/klarna/order_lines.py
"""
Order -> Klarna order_lines.

One line per order item, then one synthetic line per non-included
promotion/shipping adjustment. Everything else (tax, fees, included
adjustments) is left out so nothing is counted twice against order_amount.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Callable, Dict, List

from models.orders_store import collect_adjustments
from services.klarna.adjustments import (
    AdjustmentTransformer, adjustments_total, as_adjustments, filter_adjustments,
)
from services.klarna.money import D, to_minor_units

# host adjustment type -> Klarna order line type
ADJUSTMENT_LINE_TYPES = {
    "promotion": "discount",
    "shipping": "shipping_fee",
}


def item_reference(item) -> str:
    entity = getattr(item, "purchased_entity", None)
    sku = getattr(entity, "sku", None) if entity is not None else None
    if sku:
        return str(sku)
    # fallback to the order item id
    return str(item.id)


def tax_rate(tax_adjustments) -> int:
    """First tax adjustment's percentage in Klarna's scale (25% -> 2500)."""
    if not tax_adjustments or not tax_adjustments[0].percentage:
        return 0
    return int(D(tax_adjustments[0].percentage) * Decimal(10000))


def build_item_line(item, currency_code: str, digits: int,
                    transformer: AdjustmentTransformer) -> Dict[str, Any]:
    taxes = filter_adjustments(item.adjustments, ["tax"], skip_included=False)
    tax_total = adjustments_total(
        taxes, currency_code, transformer, skip_included=False)
    return {
        "reference": item_reference(item),
        "name": item.title,
        "quantity": int(item.quantity),
        "tax_rate": tax_rate(taxes),
        "unit_price": to_minor_units(item.unit_price, digits),
        "total_tax_amount": to_minor_units(tax_total, digits) if tax_total else 0,
        "total_amount": to_minor_units(item.total_price, digits),
    }


def build_adjustment_lines(adjustments, currency_code: str, digits: int,
                           transformer: AdjustmentTransformer) -> List[Dict[str, Any]]:
    candidates = filter_adjustments(adjustments, ADJUSTMENT_LINE_TYPES.keys())
    if not candidates:
        return []
    lines = []
    for adj in transformer.process(candidates, currency_code):
        amount = to_minor_units(adj.amount, digits)
        lines.append({
            "reference": adj.source_id or "",
            "name": adj.label,
            "type": ADJUSTMENT_LINE_TYPES[adj.type],
            "quantity": 1,
            "tax_rate": 0,
            "total_tax_amount": 0,
            "unit_price": amount,
            "total_amount": amount,
        })
    return lines


def build_order_lines(order, *, fraction_digits: Callable[[str], int],
                      transformer: AdjustmentTransformer) -> List[Dict[str, Any]]:
    currency_code = order.currency_code
    digits = fraction_digits(currency_code)
    lines = [build_item_line(item, currency_code, digits, transformer)
             for item in order.items]
    lines.extend(build_adjustment_lines(
        as_adjustments(collect_adjustments(order)), currency_code, digits, transformer))
    return lines
