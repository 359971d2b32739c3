from __future__ import annotations

from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    Enum,
    JSON,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bakery.app.db.base import Base, BigIntPK
from bakery.app.db.models.core_types import MovementType, OrderStateCode


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- CATALOG ----------
class Ingredient(Base):
    __tablename__ = "ingredients"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="unit", nullable=False)  # display only
    # Signed: concurrent writers outside the engine may leave it transiently negative
    stock: Mapped[Decimal] = mapped_column(Numeric(14, 3), default=0, nullable=False)
    unlimited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    recipe: Mapped[list["RecipeLine"]] = relationship(back_populates="product", cascade="all, delete-orphan")

    __table_args__ = (CheckConstraint("price >= 0", name="ck_product_price_nonneg"),)


class RecipeLine(Base):
    __tablename__ = "product_ingredients"
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    ingredient_id: Mapped[int] = mapped_column(ForeignKey("ingredients.id", ondelete="RESTRICT"), primary_key=True)
    quantity_required: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)

    product: Mapped[Product] = relationship(back_populates="recipe")
    ingredient: Mapped[Ingredient] = relationship()

    __table_args__ = (CheckConstraint("quantity_required > 0", name="ck_recipe_qty_pos"),)


class Coupon(Base):
    __tablename__ = "coupons"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    discount_percent: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_on: Mapped[date | None] = mapped_column(Date)

    __table_args__ = (
        CheckConstraint("discount_percent >= 0 AND discount_percent <= 100", name="ck_coupon_percent_0_100"),
    )


# ---------- ORDERS ----------
class OrderState(Base):
    __tablename__ = "order_states"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)


class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    state_id: Mapped[int] = mapped_column(
        ForeignKey("order_states.id", ondelete="RESTRICT"),
        default=int(OrderStateCode.pending_payment),
        nullable=False,
    )
    coupon_id: Mapped[int | None] = mapped_column(ForeignKey("coupons.id", ondelete="SET NULL"))

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    delivery_info: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    payment_proof_ref: Mapped[str | None] = mapped_column(String(512))

    # Set exactly once, in the same transaction that decrements stock
    stock_applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    state: Mapped[OrderState] = relationship()
    coupon: Mapped[Coupon | None] = relationship()
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_order_total_nonneg"),
        Index("ix_orders_customer_created", "customer_id", "created_at"),
        # ids feed ledger idempotency keys, never reuse them
        {"sqlite_autoincrement": True},
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Historical snapshot, never recomputed from the current product price
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_qty_pos"),
        CheckConstraint("unit_price >= 0", name="ck_order_item_price_nonneg"),
    )


# ---------- INVENTORY LEDGER ----------
class StockMovement(Base):
    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    order_id: Mapped[int | None] = mapped_column(ForeignKey("orders.id", ondelete="SET NULL"), index=True)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id", ondelete="SET NULL"))
    ingredient_id: Mapped[int | None] = mapped_column(ForeignKey("ingredients.id", ondelete="SET NULL"))

    movement_type: Mapped[MovementType] = mapped_column(Enum(MovementType, name="movement_type"), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)

    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),)
