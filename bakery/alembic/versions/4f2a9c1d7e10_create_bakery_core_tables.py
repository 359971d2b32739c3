"""create bakery core tables

Revision ID: 4f2a9c1d7e10
Revises:
Create Date: 2026-09-14
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4f2a9c1d7e10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Codes the order engine relies on (1, 2, 6) plus the default fulfilment states
ORDER_STATES = [
    (1, "Pending Payment"),
    (2, "Confirmed"),
    (3, "In Production"),
    (4, "Ready for Pickup"),
    (5, "Delivered"),
    (6, "Cancelled"),
]


def upgrade() -> None:
    op.create_table(
        "ingredients",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("unit", sa.String(32), nullable=False, server_default="unit"),
        sa.Column("stock", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("unlimited", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("price >= 0", name="ck_product_price_nonneg"),
    )

    op.create_table(
        "product_ingredients",
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "ingredient_id",
            sa.BigInteger(),
            sa.ForeignKey("ingredients.id", ondelete="RESTRICT"),
            primary_key=True,
        ),
        sa.Column("quantity_required", sa.Numeric(14, 3), nullable=False),
        sa.CheckConstraint("quantity_required > 0", name="ck_recipe_qty_pos"),
    )

    op.create_table(
        "coupons",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("discount_percent", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_on", sa.Date()),
        sa.CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_coupon_percent_0_100",
        ),
    )

    order_states = op.create_table(
        "order_states",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(64), nullable=False, unique=True),
    )
    op.bulk_insert(order_states, [{"id": i, "name": n} for i, n in ORDER_STATES])

    op.create_table(
        "orders",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("customer_id", sa.String(64), nullable=False),
        sa.Column(
            "state_id",
            sa.Integer(),
            sa.ForeignKey("order_states.id", ondelete="RESTRICT"),
            nullable=False,
            server_default="1",
        ),
        sa.Column("coupon_id", sa.BigInteger(), sa.ForeignKey("coupons.id", ondelete="SET NULL")),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("delivery_info", sa.JSON(), nullable=False),
        sa.Column("payment_proof_ref", sa.String(512)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("total >= 0", name="ck_order_total_nonneg"),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_customer_created", "orders", ["customer_id", "created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("order_id", sa.BigInteger(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint("quantity >= 1", name="ck_order_item_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_order_item_price_nonneg"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])


def downgrade() -> None:
    op.drop_index("ix_order_items_order_id", table_name="order_items")
    op.drop_table("order_items")
    op.drop_index("ix_orders_customer_created", table_name="orders")
    op.drop_index("ix_orders_customer_id", table_name="orders")
    op.drop_table("orders")
    op.drop_table("order_states")
    op.drop_table("coupons")
    op.drop_table("product_ingredients")
    op.drop_table("products")
    op.drop_table("ingredients")
