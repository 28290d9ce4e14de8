# services/klarna/adjustments.py
"""
Adjustment value objects, the normalization step and the aggregator.

Every total computed from adjustments goes through an AdjustmentTransformer
first (combine same type+source, sort, round to currency precision) and is
summed on its output only. Raw adjustments are never summed directly;
percentages are only read for a line's tax_rate.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from services.klarna.money import D

# lower weight sorts first
ADJUSTMENT_TYPE_WEIGHTS = {
    "shipping": -10,
    "promotion": 0,
    "fee": 10,
    "custom": 20,
    "tax": 50,
}


@dataclass(frozen=True)
class Adjustment:
    type: str
    label: str
    amount: Decimal
    percentage: Optional[Decimal] = None
    source_id: Optional[str] = None
    included: bool = False

    @classmethod
    def from_model(cls, row) -> "Adjustment":
        pct = row.percentage
        return cls(
            type=row.type,
            label=row.label or "",
            amount=D(row.amount),
            percentage=D(pct) if pct is not None else None,
            source_id=row.source_id or None,
            included=bool(row.included),
        )

    def add(self, other: "Adjustment") -> "Adjustment":
        return replace(self, amount=self.amount + other.amount)


def as_adjustments(rows: Iterable) -> List[Adjustment]:
    return [r if isinstance(r, Adjustment) else Adjustment.from_model(r) for r in rows]


class AdjustmentTransformer(Protocol):
    def process(self, adjustments: Sequence[Adjustment], currency_code: str) -> List[Adjustment]:
        ...


class DefaultAdjustmentTransformer:
    """Combine, sort and round, the same way the order system displays them."""

    def __init__(self, fraction_digits: Callable[[str], int]):
        self._fraction_digits = fraction_digits

    def process(self, adjustments: Sequence[Adjustment], currency_code: str) -> List[Adjustment]:
        combined = self.combine(adjustments)
        ordered = self.sort(combined)
        return self.round(ordered, self._fraction_digits(currency_code))

    @staticmethod
    def combine(adjustments: Sequence[Adjustment]) -> List[Adjustment]:
        out: dict = {}
        for index, adj in enumerate(adjustments):
            if not adj.source_id:
                # no source: always standalone
                key = ("#", index)
            else:
                key = (adj.type, adj.source_id, adj.included)
            out[key] = out[key].add(adj) if key in out else adj
        return list(out.values())

    @staticmethod
    def sort(adjustments: Sequence[Adjustment]) -> List[Adjustment]:
        return sorted(adjustments, key=lambda a: ADJUSTMENT_TYPE_WEIGHTS.get(a.type, 100))

    @staticmethod
    def round(adjustments: Sequence[Adjustment], fraction_digits: int) -> List[Adjustment]:
        q = Decimal(1).scaleb(-int(fraction_digits))
        return [replace(a, amount=a.amount.quantize(q, rounding=ROUND_HALF_UP)) for a in adjustments]


def filter_adjustments(adjustments: Iterable, types: Optional[Iterable[str]] = None,
                       skip_included: bool = True) -> List[Adjustment]:
    wanted = set(types or ())
    out = []
    for adj in as_adjustments(adjustments):
        if wanted and adj.type not in wanted:
            continue
        if skip_included and adj.included:
            continue
        out.append(adj)
    return out


def adjustments_total(adjustments: Iterable, currency_code: str,
                      transformer: AdjustmentTransformer,
                      types: Optional[Iterable[str]] = None,
                      skip_included: bool = True) -> Optional[Decimal]:
    """Sum of the normalized matching adjustments, or None if none matched."""
    matching = filter_adjustments(adjustments, types, skip_included)
    if not matching:
        return None
    total: Optional[Decimal] = None
    for adj in transformer.process(matching, currency_code):
        total = adj.amount if total is None else total + adj.amount
    return total
