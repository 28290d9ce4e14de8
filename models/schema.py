# models/schema.py
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from models.base import Base


# --- CATALOG / REFERENCE DATA

class Currency(Base):
    __tablename__ = "currencies"
    code: Mapped[str] = mapped_column(String(3), primary_key=True)  # ISO 4217
    name: Mapped[str] = mapped_column(String, nullable=False)
    fraction_digits: Mapped[int] = mapped_column(Integer, nullable=False)
    __table_args__ = (
        CheckConstraint("fraction_digits >= 0",
                        name="ck_currencies_fraction_digits_ge_0"),
    )


class Store(Base):
    __tablename__ = "stores"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class ProductVariation(Base):
    __tablename__ = "product_variations"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    sku: Mapped[str | None] = mapped_column(String, unique=True)
    title: Mapped[str] = mapped_column(String, nullable=False)


# --- CUSTOMER PROFILES

class Profile(Base):
    __tablename__ = "profiles"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(
        String, nullable=False, default="customer")
    uid: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0)  # 0 = anonymous

    # address value object, flattened
    organization: Mapped[str | None] = mapped_column(String)
    given_name: Mapped[str | None] = mapped_column(String)
    family_name: Mapped[str | None] = mapped_column(String)
    country_code: Mapped[str | None] = mapped_column(String(2))
    postal_code: Mapped[str | None] = mapped_column(String)
    locality: Mapped[str | None] = mapped_column(String)
    administrative_area: Mapped[str | None] = mapped_column(String)
    address_line1: Mapped[str | None] = mapped_column(String)
    address_line2: Mapped[str | None] = mapped_column(String)

    # custom fields set through CheckoutHooks.alter_billing_profile
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


# --- ORDERS

class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str | None] = mapped_column(String, unique=True)
    store_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("stores.id"))
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=Decimal("0"))
    email: Mapped[str | None] = mapped_column(String)
    billing_profile_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("profiles.id"))
    shipping_profile_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("profiles.id"))
    # arbitrary key/value bag; holds 'klarna_order_id'
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False)

    store: Mapped[Optional["Store"]] = relationship(lazy="selectin")
    billing_profile: Mapped[Optional["Profile"]] = relationship(
        foreign_keys=[billing_profile_id], lazy="selectin")
    shipping_profile: Mapped[Optional["Profile"]] = relationship(
        foreign_keys=[shipping_profile_id], lazy="selectin")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", lazy="selectin", order_by="OrderItem.id",
        cascade="all, delete-orphan")
    adjustments: Mapped[list["OrderAdjustment"]] = relationship(
        lazy="selectin", order_by="OrderAdjustment.id",
        cascade="all, delete-orphan",
        foreign_keys="OrderAdjustment.order_id")


class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey(
        "orders.id", ondelete="CASCADE"), nullable=False)
    purchased_entity_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("product_variations.id"))
    title: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")
    purchased_entity: Mapped[Optional["ProductVariation"]] = relationship(
        lazy="selectin")
    adjustments: Mapped[list["OrderAdjustment"]] = relationship(
        lazy="selectin", order_by="OrderAdjustment.id",
        cascade="all, delete-orphan",
        foreign_keys="OrderAdjustment.order_item_id")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_order_items_quantity_ge_0"),
    )


class OrderAdjustment(Base):
    """Exactly one of order_id / order_item_id is set."""
    __tablename__ = "order_adjustments"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"))
    order_item_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("order_items.id", ondelete="CASCADE"))
    type: Mapped[str] = mapped_column(String, nullable=False)
    label: Mapped[str] = mapped_column(String, nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False)            # signed
    percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 6))                            # 0.25 == 25%
    source_id: Mapped[str | None] = mapped_column(String)
    included: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "(order_id IS NULL) <> (order_item_id IS NULL)",
            name="ck_order_adjustments_single_owner"),
        CheckConstraint(
            "type in ('tax','promotion','shipping','fee','custom')",
            name="ck_order_adjustments_type"),
    )


Index("idx_order_items_order", OrderItem.order_id)
Index("idx_order_adjustments_order", OrderAdjustment.order_id)
Index("idx_order_adjustments_item", OrderAdjustment.order_item_id)


# --- PAYMENTS

class Payment(Base):
    __tablename__ = "payments"
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey(
        "orders.id", ondelete="CASCADE"), nullable=False)
    payment_gateway: Mapped[str] = mapped_column(String, nullable=False)
    state: Mapped[str] = mapped_column(
        String, nullable=False, default="authorization")
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    remote_id: Mapped[str] = mapped_column(String, nullable=False)
    remote_state: Mapped[str | None] = mapped_column(String)
    test: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    capture_id: Mapped[str | None] = mapped_column(String)
    capture_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True))
    __table_args__ = (
        CheckConstraint("state in ('authorization','completed')",
                        name="ck_payments_state"),
        # one local payment per Klarna order; duplicate deliveries collide here
        UniqueConstraint("remote_id", name="uq_payments_remote_id"),
    )


Index("idx_payments_order", Payment.order_id)
