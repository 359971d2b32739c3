from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bakery.app.api.deps import get_customer_id, get_db, require_admin
from bakery.app.db.models.models_v1 import Order
from bakery.services import orders as engine
from bakery.services.availability import RequestedItem

router = APIRouter(prefix="/orders")


class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(ge=1, le=999_999)


class OrderCreate(BaseModel):
    items: list[OrderItemIn] = Field(default_factory=list)
    coupon_id: int | None = None
    # address, phone, optional notes: checked by the engine, stored as-is
    delivery_info: dict[str, Any] | None = None


class PaymentConfirm(BaseModel):
    proof_ref: str = Field(min_length=1, max_length=512)


class OrderStateUpdate(BaseModel):
    state_id: int


def _order_dict(o: Order) -> dict[str, Any]:
    return {
        "id": o.id,
        "reference": engine.payment_reference(o.id),
        "customer_id": o.customer_id,
        "state_id": o.state_id,
        "state": o.state.name if o.state else None,
        "coupon_id": o.coupon_id,
        "subtotal": o.subtotal,
        "discount": o.discount,
        "total": o.total,
        "delivery_info": o.delivery_info,
        "payment_proof_ref": o.payment_proof_ref,
        "created_at": o.created_at,
        "items": [
            {
                "product_id": i.product_id,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
            }
            for i in o.items
        ],
    }


# ---------- Customer ----------
@router.post("", status_code=201)
def create_order(
    payload: OrderCreate,
    customer_id: str = Depends(get_customer_id),
    db: Session = Depends(get_db),
):
    order = engine.create_order(
        db,
        customer_id=customer_id,
        items=[RequestedItem(i.product_id, i.quantity) for i in payload.items],
        delivery_info=payload.delivery_info,
        coupon_id=payload.coupon_id,
    )
    return {
        "message": "Order created",
        "order": {
            "id": order.id,
            "reference": engine.payment_reference(order.id),
            "subtotal": order.subtotal,
            "discount": order.discount,
            "total": order.total,
            "coupon": (
                {"code": order.coupon.code, "discount_percent": order.coupon.discount_percent}
                if order.coupon
                else None
            ),
            "payment": engine.payment_instructions(order),
        },
    }


@router.get("/mine")
def list_my_orders(
    customer_id: str = Depends(get_customer_id),
    db: Session = Depends(get_db),
):
    return [_order_dict(o) for o in engine.list_customer_orders(db, customer_id)]


@router.get("/{order_id}")
def get_my_order(
    order_id: int,
    customer_id: str = Depends(get_customer_id),
    db: Session = Depends(get_db),
):
    return _order_dict(engine.get_customer_order(db, order_id=order_id, customer_id=customer_id))


@router.post("/{order_id}/confirm-payment")
def confirm_payment(
    order_id: int,
    payload: PaymentConfirm,
    customer_id: str = Depends(get_customer_id),
    db: Session = Depends(get_db),
):
    order = engine.confirm_payment(db, order_id=order_id, customer_id=customer_id, proof_ref=payload.proof_ref)
    return {
        "message": "Payment confirmed, your order is being processed",
        "order_id": order.id,
        "reference": engine.payment_reference(order.id),
        "state_id": order.state_id,
        "state": order.state.name if order.state else None,
    }


@router.post(
    "/{order_id}/cancel",
    responses={404: {"description": "Order not found"}, 409: {"description": "Order is not pending payment"}},
)
def cancel_order(
    order_id: int,
    customer_id: str = Depends(get_customer_id),
    db: Session = Depends(get_db),
):
    """
    Cancel an order still pending payment. Stock is never touched.
    - 404 when the order does not exist or belongs to someone else
    - 409 when the order is no longer pending payment
    """
    order = engine.cancel_order(db, order_id=order_id, customer_id=customer_id)
    return {"message": "Order cancelled", "order_id": order.id, "state_id": order.state_id}


# ---------- Admin ----------
@router.get("", dependencies=[Depends(require_admin)])
def list_all_orders(state_id: int | None = None, db: Session = Depends(get_db)):
    return [_order_dict(o) for o in engine.list_orders(db, state_id=state_id)]


@router.put("/{order_id}/state", dependencies=[Depends(require_admin)])
def set_order_state(order_id: int, payload: OrderStateUpdate, db: Session = Depends(get_db)):
    order = engine.set_order_state(db, order_id=order_id, state_id=payload.state_id)
    return {"message": "Order state updated", "order_id": order.id, "state_id": order.state_id}


@router.delete("/{order_id}", dependencies=[Depends(require_admin)])
def delete_order(order_id: int, db: Session = Depends(get_db)):
    result = engine.delete_order(db, order_id=order_id)
    return {
        "message": "Order deleted",
        "order_id": result["order_id"],
        "restored": {
            kind: {str(k): v for k, v in quantities.items()}
            for kind, quantities in result["restored"].items()
        },
    }
