"""
Order engine.

State machine (codes from order_states):

    PendingPayment --confirm_payment--> Confirmed --admin--> fulfilment states...
    PendingPayment --cancel-----------> Cancelled

Only PendingPayment -> Confirmed touches stock, and it does so once: the
state change is a conditional UPDATE guarded on the order still being
pending with no stock applied, and it runs in the same transaction as the
stock decrement. Either both are committed or neither is.

Availability is checked twice: at creation (informational, may go stale)
and at confirmation (authoritative). Nothing is reserved in between.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Iterator

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from bakery.app.core.config import (
    ORDER_REFERENCE_PREFIX,
    PAYMENT_HOLDER,
    PAYMENT_HOLDER_ID,
    PAYMENT_PHONE,
)
from bakery.app.db.models.core_types import OrderStateCode, TERMINAL_STATES
from bakery.app.db.models.models_v1 import Order, OrderItem, OrderState
from bakery.services import errors
from bakery.services.availability import RequestedItem, validate
from bakery.services.coupons import CENTS, apply_coupon
from bakery.services.inventory import consume_for_order, reverse_for_order
from bakery.services.recipes import load_recipe_snapshot

logger = structlog.get_logger()

REQUIRED_DELIVERY_FIELDS = ("address", "phone")


@contextmanager
def _transaction(db: Session, operation: str, **context: Any) -> Iterator[None]:
    """Commit on success; roll back on any failure, hiding store errors."""
    try:
        yield
        db.commit()
    except errors.OrderEngineError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("order_store_failure", operation=operation, error=str(exc), **context)
        raise errors.InternalFailure() from exc
    except Exception as exc:
        db.rollback()
        logger.error("order_unexpected_failure", operation=operation, error=repr(exc), **context)
        raise errors.InternalFailure() from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def payment_reference(order_id: int) -> str:
    return f"{ORDER_REFERENCE_PREFIX}-{int(order_id):06d}"


def payment_instructions(order: Order) -> dict[str, Any]:
    return {
        "reference": payment_reference(order.id),
        "phone": PAYMENT_PHONE,
        "holder": PAYMENT_HOLDER,
        "holder_id": PAYMENT_HOLDER_ID,
        "amount": order.total,
    }


def _check_items(items: Iterable[RequestedItem | tuple[int, int]]) -> list[RequestedItem]:
    checked = [RequestedItem(int(pid), int(qty)) for pid, qty in items or ()]
    if not checked:
        raise errors.ValidationError("An order must contain at least one product")
    for item in checked:
        if item.quantity < 1:
            raise errors.ValidationError(
                f"Quantity for product {item.product_id} must be at least 1",
                product_id=item.product_id,
            )
    return checked


def _check_delivery_info(delivery_info: dict[str, Any] | None) -> dict[str, Any]:
    info = dict(delivery_info or {})
    missing = [
        field
        for field in REQUIRED_DELIVERY_FIELDS
        if not isinstance(info.get(field), str) or not info[field].strip()
    ]
    if missing:
        raise errors.ValidationError("Delivery information is incomplete", missing=missing)
    return info


def _owned_order(db: Session, order_id: int, customer_id: str, *, for_update: bool = False) -> Order:
    # Someone else's order is reported exactly like a missing one
    stmt = select(Order).where(Order.id == order_id).where(Order.customer_id == customer_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    order = db.execute(stmt).scalar_one_or_none()
    if not order:
        raise errors.NotFound("Order not found", order_id=order_id)
    return order


# ---------- CREATE ----------
def create_order(
    db: Session,
    *,
    customer_id: str,
    items: Iterable[RequestedItem | tuple[int, int]],
    delivery_info: dict[str, Any] | None,
    coupon_id: int | None = None,
    today: date | None = None,
) -> Order:
    """
    Record a customer's intent to buy.

    Nothing is reserved and no stock moves. The order is stored in
    PendingPayment with each item's current price frozen on the line.
    """
    checked = _check_items(items)
    info = _check_delivery_info(delivery_info)

    with _transaction(db, "create_order", customer_id=customer_id):
        snapshot = load_recipe_snapshot(db, [i.product_id for i in checked])
        availability = validate(checked, snapshot)
        if not availability.ok:
            raise errors.InsufficientStock(
                "Insufficient stock for some products",
                conflicts=availability.conflict_dicts(),
            )

        subtotal = sum(
            (snapshot.products[i.product_id].price * i.quantity for i in checked),
            Decimal("0"),
        ).quantize(CENTS)
        pricing = apply_coupon(db, coupon_id, subtotal, today=today)

        order = Order(
            customer_id=customer_id,
            state_id=int(OrderStateCode.pending_payment),
            coupon_id=pricing.coupon.id if pricing.coupon else None,
            subtotal=subtotal,
            discount=pricing.discount,
            total=subtotal - pricing.discount,
            delivery_info=info,
        )
        order.items = [
            OrderItem(
                product_id=i.product_id,
                quantity=i.quantity,
                unit_price=snapshot.products[i.product_id].price,
            )
            for i in checked
        ]
        db.add(order)
        db.flush()
        order_id = order.id

    logger.info(
        "order_created",
        order_id=order_id,
        customer_id=customer_id,
        total=str(order.total),
        coupon_id=order.coupon_id,
    )
    return order


# ---------- CONFIRM PAYMENT ----------
def confirm_payment(
    db: Session,
    *,
    order_id: int,
    customer_id: str,
    proof_ref: str | None,
) -> Order:
    """
    Authoritative checkpoint: re-validate availability against current
    stock, then decrement stock and move the order to Confirmed.

    On InsufficientStock the order stays in PendingPayment so the customer
    can retry or cancel.
    """
    proof_ref = (proof_ref or "").strip()
    if not proof_ref:
        raise errors.ValidationError("A payment proof reference is required")

    with _transaction(db, "confirm_payment", order_id=order_id, customer_id=customer_id):
        order = _owned_order(db, order_id, customer_id, for_update=True)
        if order.state_id != OrderStateCode.pending_payment or order.stock_applied_at is not None:
            raise errors.InvalidTransition(
                "Order has already been processed or cancelled",
                order_id=order_id,
                state_id=order.state_id,
            )

        snapshot = load_recipe_snapshot(db, [i.product_id for i in order.items], for_update=True)
        availability = validate([(i.product_id, i.quantity) for i in order.items], snapshot)
        if not availability.ok:
            raise errors.InsufficientStock(
                "Insufficient stock: inventory changed since the order was created",
                conflicts=availability.conflict_dicts(),
            )

        now = _utcnow()
        claimed = db.execute(
            update(Order)
            .where(Order.id == order.id)
            .where(Order.state_id == int(OrderStateCode.pending_payment))
            .where(Order.stock_applied_at.is_(None))
            .values(
                state_id=int(OrderStateCode.confirmed),
                payment_proof_ref=proof_ref,
                stock_applied_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            # another confirmation won the race
            raise errors.InvalidTransition("Order has already been processed or cancelled", order_id=order_id)

        consume_for_order(db, order, snapshot)

    db.refresh(order)
    logger.info("order_confirmed", order_id=order.id, customer_id=customer_id)
    return order


# ---------- CANCEL ----------
def cancel_order(db: Session, *, order_id: int, customer_id: str) -> Order:
    with _transaction(db, "cancel_order", order_id=order_id, customer_id=customer_id):
        order = _owned_order(db, order_id, customer_id, for_update=True)
        if order.state_id != OrderStateCode.pending_payment:
            raise errors.InvalidTransition(
                "Only orders pending payment can be cancelled",
                order_id=order_id,
                state_id=order.state_id,
            )

        cancelled = db.execute(
            update(Order)
            .where(Order.id == order.id)
            .where(Order.state_id == int(OrderStateCode.pending_payment))
            .values(state_id=int(OrderStateCode.cancelled), updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if cancelled.rowcount != 1:
            raise errors.InvalidTransition("Only orders pending payment can be cancelled", order_id=order_id)

    db.refresh(order)
    logger.info("order_cancelled", order_id=order.id, customer_id=customer_id)
    return order


# ---------- ADMIN ----------
def set_order_state(db: Session, *, order_id: int, state_id: int) -> Order:
    """
    Fulfilment tracking. Never moves stock.

    An order whose stock was never applied can only be cancelled here; it
    reaches Confirmed (and the fulfilment states after it) through
    confirm_payment alone.
    """
    with _transaction(db, "set_order_state", order_id=order_id, state_id=state_id):
        order = db.get(Order, order_id, with_for_update=True, populate_existing=True)
        if not order:
            raise errors.NotFound("Order not found", order_id=order_id)
        if not db.get(OrderState, state_id):
            raise errors.NotFound("Order state not found", state_id=state_id)
        if order.state_id in TERMINAL_STATES:
            raise errors.InvalidTransition(
                "Order is in a terminal state",
                order_id=order_id,
                state_id=order.state_id,
            )
        unpaid_targets = {int(OrderStateCode.pending_payment), int(OrderStateCode.cancelled)}
        if order.stock_applied_at is None and state_id not in unpaid_targets:
            raise errors.InvalidTransition(
                "Order has not been paid: use confirm-payment to confirm it",
                order_id=order_id,
                state_id=order.state_id,
            )

        previous = order.state_id
        order.state_id = state_id

    db.refresh(order)
    logger.info("order_state_changed", order_id=order.id, previous_state_id=previous, state_id=state_id)
    return order


def delete_order(db: Session, *, order_id: int) -> dict[str, Any]:
    """
    Remove an order. If its stock was applied, restore exactly the recorded
    consumption in the same transaction; otherwise stock is left alone.
    """
    with _transaction(db, "delete_order", order_id=order_id):
        order = db.get(Order, order_id, with_for_update=True, populate_existing=True)
        if not order:
            raise errors.NotFound("Order not found", order_id=order_id)

        restored: dict[str, dict[int, Decimal]] = {"products": {}, "ingredients": {}}
        if order.stock_applied_at is not None:
            restored = reverse_for_order(db, order)

        db.delete(order)

    logger.info(
        "order_deleted",
        order_id=order_id,
        restored_products=len(restored["products"]),
        restored_ingredients=len(restored["ingredients"]),
    )
    return {"order_id": order_id, "restored": restored}


# ---------- READS ----------
def list_customer_orders(db: Session, customer_id: str) -> list[Order]:
    return list(
        db.execute(
            select(Order)
            .options(selectinload(Order.items), selectinload(Order.state), selectinload(Order.coupon))
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        .scalars()
        .all()
    )


def get_customer_order(db: Session, *, order_id: int, customer_id: str) -> Order:
    return _owned_order(db, order_id, customer_id)


def list_orders(db: Session, *, state_id: int | None = None) -> list[Order]:
    stmt = (
        select(Order)
        .options(selectinload(Order.items), selectinload(Order.state))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if state_id is not None:
        stmt = stmt.where(Order.state_id == state_id)
    return list(db.execute(stmt).scalars().all())
