"""add order stock ledger (stock_movements + orders.stock_applied_at)

Revision ID: 9b3e5d2c8a41
Revises: 4f2a9c1d7e10
Create Date: 2026-09-28
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "9b3e5d2c8a41"
down_revision: Union[str, Sequence[str], None] = "4f2a9c1d7e10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MOVEMENT_TYPE = sa.Enum("consume", "reversal", name="movement_type")


def upgrade() -> None:
    op.add_column("orders", sa.Column("stock_applied_at", sa.DateTime(timezone=True)))

    # Orders confirmed before the ledger existed already had their stock applied
    op.execute(
        """
        UPDATE orders
        SET stock_applied_at = updated_at
        WHERE state_id NOT IN (1, 6)
          AND stock_applied_at IS NULL;
        """
    )

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("order_id", sa.BigInteger(), sa.ForeignKey("orders.id", ondelete="SET NULL")),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="SET NULL")),
        sa.Column("ingredient_id", sa.BigInteger(), sa.ForeignKey("ingredients.id", ondelete="SET NULL")),
        sa.Column("movement_type", MOVEMENT_TYPE, nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
    )
    op.create_index("ix_stock_movements_order_id", "stock_movements", ["order_id"])


def downgrade() -> None:
    op.drop_index("ix_stock_movements_order_id", table_name="stock_movements")
    op.drop_table("stock_movements")
    MOVEMENT_TYPE.drop(op.get_bind(), checkfirst=True)
    op.drop_column("orders", "stock_applied_at")
