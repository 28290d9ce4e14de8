from decimal import Decimal

import pytest

from models.currency_store import get_fraction_digits
from services.klarna.adjustments import (
    Adjustment, DefaultAdjustmentTransformer, adjustments_total,
)
from services.klarna.order_lines import build_order_lines, tax_rate
from tests.utils import make_order


@pytest.fixture()
def transformer():
    return DefaultAdjustmentTransformer(get_fraction_digits)


def _lines(order, transformer):
    return build_order_lines(order, fraction_digits=get_fraction_digits, transformer=transformer)


def test_simple_order_single_line(transformer):
    order = make_order(total="19.99")
    lines = _lines(order, transformer)
    assert lines == [{
        "reference": "TSHIRT-1",
        "name": "T-shirt",
        "quantity": 2,
        "tax_rate": 0,
        "unit_price": 1000,
        "total_tax_amount": 0,
        "total_amount": 1999,
    }]


def test_reference_falls_back_to_item_id(transformer):
    order = make_order(items=[{"title": "Gift wrap", "quantity": 1,
                               "unit_price": "2.00", "total_price": "2.00"}], total="2.00")
    [line] = _lines(order, transformer)
    assert line["reference"] == str(order.items[0].id)


def test_item_tax_rate_and_included_tax_amount(transformer):
    order = make_order(total="12.50", items=[{
        "title": "Book", "quantity": 1, "unit_price": "12.50", "total_price": "12.50",
        "sku": "BOOK-1",
        "adjustments": [{"type": "tax", "label": "VAT", "amount": "2.50",
                         "percentage": "0.25", "source_id": "vat|se", "included": True}],
    }])
    [line] = _lines(order, transformer)
    assert line["tax_rate"] == 2500
    assert line["total_tax_amount"] == 250
    assert line["total_amount"] == 1250


def test_promotion_becomes_discount_line(transformer):
    order = make_order(total="15.00", items=[{
        "title": "Mug", "quantity": 1, "unit_price": "20.00", "total_price": "20.00", "sku": "MUG",
    }], adjustments=[{"type": "promotion", "label": "Summer sale", "amount": "-5.00",
                      "source_id": "promo-7"}])
    lines = _lines(order, transformer)
    assert len(lines) == 2
    assert lines[1] == {
        "reference": "promo-7",
        "name": "Summer sale",
        "type": "discount",
        "quantity": 1,
        "tax_rate": 0,
        "total_tax_amount": 0,
        "unit_price": -500,
        "total_amount": -500,
    }


def test_only_non_included_promotions_and_shipping_become_lines(transformer):
    order = make_order(total="22.00", items=[{
        "title": "Mug", "quantity": 2, "unit_price": "10.00", "total_price": "20.00", "sku": "MUG",
        "adjustments": [
            {"type": "promotion", "label": "Bundle", "amount": "-1.00", "included": True},
            {"type": "tax", "label": "VAT", "amount": "4.00", "percentage": "0.25", "included": True},
        ],
    }], adjustments=[
        {"type": "promotion", "label": "Coupon", "amount": "-3.00", "source_id": "c1"},
        {"type": "shipping", "label": "Standard shipping", "amount": "5.00", "source_id": "ship"},
        {"type": "fee", "label": "Handling", "amount": "1.00"},
    ])
    lines = _lines(order, transformer)
    assert [(l.get("type"), l["total_amount"]) for l in lines] == [
        (None, 2000), ("shipping_fee", 500), ("discount", -300)]
    # what Klarna checks: lines add up to order_amount
    assert sum(l["total_amount"] for l in lines) == 2200


def test_same_source_adjustments_are_combined(transformer):
    order = make_order(total="16.00", items=[
        {"title": "A", "quantity": 1, "unit_price": "10.00", "total_price": "10.00", "sku": "A",
         "adjustments": [{"type": "promotion", "label": "10% off", "amount": "-1.00",
                          "source_id": "promo-1"}]},
        {"title": "B", "quantity": 1, "unit_price": "10.00", "total_price": "10.00", "sku": "B",
         "adjustments": [{"type": "promotion", "label": "10% off", "amount": "-1.00",
                          "source_id": "promo-1"}]},
    ], adjustments=[{"type": "promotion", "label": "Loyalty", "amount": "-2.00", "source_id": "loyal"}])
    discounts = [l for l in _lines(order, transformer) if l.get("type") == "discount"]
    assert [(d["reference"], d["total_amount"]) for d in discounts] == [
        ("promo-1", -200), ("loyal", -200)]


def test_jpy_lines_have_no_fraction(transformer):
    order = make_order(currency="JPY", total="1500", items=[
        {"title": "Tea", "quantity": 3, "unit_price": "500", "total_price": "1500", "sku": "TEA"}])
    [line] = _lines(order, transformer)
    assert (line["unit_price"], line["total_amount"]) == (500, 1500)


def test_tax_rate_scale():
    assert tax_rate([]) == 0
    assert tax_rate([Adjustment("tax", "VAT", Decimal("1"), Decimal("0.25"))]) == 2500
    assert tax_rate([Adjustment("tax", "VAT", Decimal("1"), Decimal("0.07"))]) == 700
    assert tax_rate([Adjustment("tax", "VAT", Decimal("1"), None)]) == 0


def test_adjustments_total_normalizes_before_summing(transformer):
    adjustments = [
        Adjustment("tax", "VAT", Decimal("0.333"), source_id="vat"),
        Adjustment("tax", "VAT", Decimal("0.333"), source_id="vat"),
        Adjustment("promotion", "Promo", Decimal("-1.00")),
    ]
    # 0.666 combined, rounded to 0.67; raw rounding each would give 0.66
    assert adjustments_total(adjustments, "USD", transformer, types=["tax"]) == Decimal("0.67")
    assert adjustments_total(adjustments, "USD", transformer, types=["shipping"]) is None


def test_adjustments_total_skips_included_by_default(transformer):
    adjustments = [Adjustment("tax", "VAT", Decimal("2.00"), included=True)]
    assert adjustments_total(adjustments, "USD", transformer) is None
    assert adjustments_total(adjustments, "USD", transformer,
                             skip_included=False) == Decimal("2.00")


def test_transformer_sorts_by_type_weight():
    out = DefaultAdjustmentTransformer.sort([
        Adjustment("tax", "t", Decimal("1")),
        Adjustment("promotion", "p", Decimal("-1")),
        Adjustment("shipping", "s", Decimal("2")),
    ])
    assert [a.type for a in out] == ["shipping", "promotion", "tax"]
