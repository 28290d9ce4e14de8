"""initial checkout schema

Revision ID: 3c1f0a7d9e21
Revises:
Create Date: 2026-10-19 09:12:03.118402

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f0a7d9e21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "currencies",
        sa.Column("code", sa.String(3), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("fraction_digits", sa.Integer(), nullable=False),
        sa.CheckConstraint("fraction_digits >= 0",
                           name="ck_currencies_fraction_digits_ge_0"),
    )
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False),
    )
    op.create_table(
        "product_variations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("sku", sa.String(), unique=True),
        sa.Column("title", sa.String(), nullable=False),
    )
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("uid", sa.Integer(), nullable=False),
        sa.Column("organization", sa.String()),
        sa.Column("given_name", sa.String()),
        sa.Column("family_name", sa.String()),
        sa.Column("country_code", sa.String(2)),
        sa.Column("postal_code", sa.String()),
        sa.Column("locality", sa.String()),
        sa.Column("administrative_area", sa.String()),
        sa.Column("address_line1", sa.String()),
        sa.Column("address_line2", sa.String()),
        sa.Column("data", sa.JSON(), nullable=False),
    )
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(), unique=True),
        sa.Column("store_id", sa.Integer(), sa.ForeignKey("stores.id")),
        sa.Column("currency_code", sa.String(3), nullable=False),
        sa.Column("total_price", sa.Numeric(18, 6), nullable=False),
        sa.Column("email", sa.String()),
        sa.Column("billing_profile_id", sa.Integer(),
                  sa.ForeignKey("profiles.id")),
        sa.Column("shipping_profile_id", sa.Integer(),
                  sa.ForeignKey("profiles.id")),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey(
            "orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("purchased_entity_id", sa.Integer(),
                  sa.ForeignKey("product_variations.id")),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(18, 6), nullable=False),
        sa.Column("total_price", sa.Numeric(18, 6), nullable=False),
        sa.CheckConstraint("quantity >= 0",
                           name="ck_order_items_quantity_ge_0"),
    )
    op.create_index("idx_order_items_order", "order_items", ["order_id"])
    op.create_table(
        "order_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey(
            "orders.id", ondelete="CASCADE")),
        sa.Column("order_item_id", sa.Integer(), sa.ForeignKey(
            "order_items.id", ondelete="CASCADE")),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("percentage", sa.Numeric(10, 6)),
        sa.Column("source_id", sa.String()),
        sa.Column("included", sa.Boolean(), nullable=False),
        sa.CheckConstraint("(order_id IS NULL) <> (order_item_id IS NULL)",
                           name="ck_order_adjustments_single_owner"),
        sa.CheckConstraint("type in ('tax','promotion','shipping','fee','custom')",
                           name="ck_order_adjustments_type"),
    )
    op.create_index("idx_order_adjustments_order",
                    "order_adjustments", ["order_id"])
    op.create_index("idx_order_adjustments_item",
                    "order_adjustments", ["order_item_id"])
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey(
            "orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payment_gateway", sa.String(), nullable=False),
        sa.Column("state", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency_code", sa.String(3), nullable=False),
        sa.Column("remote_id", sa.String(), nullable=False),
        sa.Column("remote_state", sa.String()),
        sa.Column("test", sa.Boolean(), nullable=False),
        sa.Column("capture_id", sa.String()),
        sa.Column("capture_url", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("state in ('authorization','completed')",
                           name="ck_payments_state"),
        sa.UniqueConstraint("remote_id", name="uq_payments_remote_id"),
    )
    op.create_index("idx_payments_order", "payments", ["order_id"])


def downgrade():
    op.drop_index("idx_payments_order", table_name="payments")
    op.drop_table("payments")
    op.drop_index("idx_order_adjustments_item", table_name="order_adjustments")
    op.drop_index("idx_order_adjustments_order",
                  table_name="order_adjustments")
    op.drop_table("order_adjustments")
    op.drop_index("idx_order_items_order", table_name="order_items")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("profiles")
    op.drop_table("product_variations")
    op.drop_table("stores")
    op.drop_table("currencies")
