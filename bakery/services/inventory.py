"""
Stock mutations owned by the order engine.

Every decrement goes through a conditional UPDATE (stock >= needed) so a
committed stock value never goes negative because of an order, even when
the availability snapshot went stale between read and write. Each mutation
is recorded in stock_movements under a deterministic idempotency key.

Nothing here commits: callers run these inside their own transaction.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bakery.app.db.models.core_types import MovementType
from bakery.app.db.models.models_v1 import Ingredient, Order, Product, StockMovement
from bakery.services.errors import InsufficientStock
from bakery.services.recipes import RecipeSnapshot


def consumption_for_order(
    order: Order,
    snapshot: RecipeSnapshot,
) -> tuple[dict[int, int], dict[int, Decimal]]:
    """
    Quantities an order takes out of stock.

    Returns (product_id -> units, ingredient_id -> amount). Unlimited
    ingredients are left out.
    """
    products: dict[int, int] = defaultdict(int)
    ingredients: dict[int, Decimal] = defaultdict(Decimal)

    for item in order.items:
        products[int(item.product_id)] += int(item.quantity)
        for req in snapshot.recipe_for(int(item.product_id)):
            ingredient = snapshot.ingredients.get(req.ingredient_id)
            if ingredient is None or ingredient.unlimited:
                continue
            ingredients[req.ingredient_id] += req.quantity_required * int(item.quantity)

    return dict(products), dict(ingredients)


def _products_using(order: Order, snapshot: RecipeSnapshot, ingredient_id: int) -> list[int]:
    return sorted(
        {
            int(item.product_id)
            for item in order.items
            if any(req.ingredient_id == ingredient_id for req in snapshot.recipe_for(int(item.product_id)))
        }
    )


def _movement_key(order_id: int, movement_type: MovementType, kind: str, target_id: int) -> str:
    return f"order:{order_id}:{movement_type.value.lower()}:{kind}:{target_id}"


def consume_for_order(db: Session, order: Order, snapshot: RecipeSnapshot) -> None:
    products, ingredients = consumption_for_order(order, snapshot)

    for product_id in sorted(products):
        qty = products[product_id]
        result = db.execute(
            update(Product)
            .where(Product.id == product_id)
            .where(Product.stock >= qty)
            .values(stock=Product.stock - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = db.execute(select(Product.stock).where(Product.id == product_id)).scalar_one_or_none()
            raise InsufficientStock(
                "Stock changed while confirming the order",
                conflicts=[{"product_id": product_id, "requested": qty, "available": int(current or 0)}],
            )
        db.add(
            StockMovement(
                order_id=order.id,
                product_id=product_id,
                movement_type=MovementType.consume,
                quantity=Decimal(qty),
                idempotency_key=_movement_key(order.id, MovementType.consume, "product", product_id),
            )
        )

    for ingredient_id in sorted(ingredients):
        amount = ingredients[ingredient_id]
        result = db.execute(
            update(Ingredient)
            .where(Ingredient.id == ingredient_id)
            .where(Ingredient.stock >= amount)
            .values(stock=Ingredient.stock - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = db.execute(
                select(Ingredient.stock).where(Ingredient.id == ingredient_id)
            ).scalar_one_or_none()
            raise InsufficientStock(
                "Ingredient stock changed while confirming the order",
                conflicts=[
                    {
                        "ingredient_id": ingredient_id,
                        "product_ids": _products_using(order, snapshot, ingredient_id),
                        "requested": amount,
                        "available": current if current is not None else Decimal("0"),
                    }
                ],
            )
        db.add(
            StockMovement(
                order_id=order.id,
                ingredient_id=ingredient_id,
                movement_type=MovementType.consume,
                quantity=amount,
                idempotency_key=_movement_key(order.id, MovementType.consume, "ingredient", ingredient_id),
            )
        )

    db.flush()


def reverse_for_order(db: Session, order: Order) -> dict[str, dict[int, Decimal]]:
    """
    Compensating update: give back exactly what the order consumed.

    Reads the CONSUME ledger rows instead of the current recipes, so a recipe
    edited after confirmation does not change what is restored.
    """
    movements = (
        db.execute(
            select(StockMovement)
            .where(StockMovement.order_id == order.id)
            .where(StockMovement.movement_type == MovementType.consume)
            .order_by(StockMovement.id)
        )
        .scalars()
        .all()
    )

    restored: dict[str, dict[int, Decimal]] = {"products": {}, "ingredients": {}}
    for mv in movements:
        if mv.product_id is not None:
            db.execute(
                update(Product)
                .where(Product.id == mv.product_id)
                .values(stock=Product.stock + int(mv.quantity))
                .execution_options(synchronize_session=False)
            )
            restored["products"][int(mv.product_id)] = Decimal(mv.quantity)
            kind, target_id = "product", int(mv.product_id)
        elif mv.ingredient_id is not None:
            db.execute(
                update(Ingredient)
                .where(Ingredient.id == mv.ingredient_id)
                .values(stock=Ingredient.stock + mv.quantity)
                .execution_options(synchronize_session=False)
            )
            restored["ingredients"][int(mv.ingredient_id)] = Decimal(mv.quantity)
            kind, target_id = "ingredient", int(mv.ingredient_id)
        else:
            # product or ingredient deleted since: nothing left to restore
            continue

        db.add(
            StockMovement(
                order_id=order.id,
                product_id=mv.product_id,
                ingredient_id=mv.ingredient_id,
                movement_type=MovementType.reversal,
                quantity=mv.quantity,
                idempotency_key=_movement_key(order.id, MovementType.reversal, kind, target_id),
            )
        )

    db.flush()
    return restored
