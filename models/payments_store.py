# models/payments_store.py (SQLAlchemy)
from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from models.base import session_scope
from models.schema import Order, Payment
from services.klarna.errors import InvalidState


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_payment(payment_id: int) -> Optional[Payment]:
    with session_scope() as s:
        return s.get(Payment, payment_id)


def get_payment_by_remote_id(remote_id: str) -> Optional[Payment]:
    if not remote_id:
        return None
    with session_scope() as s:
        return s.execute(select(Payment).where(
            Payment.remote_id == remote_id)).scalars().first()


def list_payments_for_order(order_id: int) -> list[Payment]:
    with session_scope() as s:
        return list(s.execute(select(Payment).where(
            Payment.order_id == order_id).order_by(Payment.id)).scalars().all())


def create_authorized_payment(*, gateway: str, order_id: int, amount: Decimal,
                              currency_code: str, remote_id: str,
                              remote_state: Optional[str], test: bool,
                              apply_order_changes: Callable[[Session, Order], None] | None = None,
                              ) -> Tuple[Payment, bool]:
    """
    Insert the payment and apply the order-side changes (billing profile,
    email) in one transaction. Returns (payment, created).

    A concurrent delivery for the same remote_id loses on
    uq_payments_remote_id; everything is rolled back and the winner's row is
    returned with created=False.
    """
    now = _now_utc()
    try:
        with session_scope() as s:
            order = s.get(Order, order_id)
            if order is None:
                raise LookupError(f"Order {order_id} not found")
            if apply_order_changes is not None:
                apply_order_changes(s, order)
                order.updated_at = now
            p = Payment(
                order_id=order_id, payment_gateway=gateway,
                state="authorization", amount=amount,
                currency_code=currency_code, remote_id=remote_id,
                remote_state=remote_state, test=bool(test),
                created_at=now, updated_at=now,
            )
            s.add(p)
            s.flush()
            return p, True
    except IntegrityError:
        existing = get_payment_by_remote_id(remote_id)
        if existing is None:
            raise
        return existing, False


def mark_captured(payment_id: int, amount: Decimal, capture_id: Optional[str],
                  capture_url: Optional[str]) -> Payment:
    now = _now_utc()
    with session_scope() as s:
        # conditional update: only one capture can move the row out of 'authorization'
        res = s.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.state == "authorization")
            .values(state="completed", amount=amount, capture_id=capture_id,
                    capture_url=capture_url, completed_at=now, updated_at=now)
        )
        if res.rowcount != 1:
            raise InvalidState(
                f"Payment {payment_id} is not in the 'authorization' state")
    return get_payment(payment_id)
