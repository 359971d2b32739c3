"""
Recipe index.

Loads, in one pass, everything the availability math needs for a set of
products: finished-goods stock, the bill of materials, and the stock of
every ingredient involved.

Properties:
- read only (no mutation)
- built once per call, immutable afterwards
- optional row locks (FOR UPDATE) when called inside the confirmation
  transaction
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from bakery.app.db.models.models_v1 import Ingredient, Product, RecipeLine
from bakery.services.errors import NotFound


@dataclass(frozen=True)
class ProductInfo:
    id: int
    name: str
    price: Decimal
    stock: int


@dataclass(frozen=True)
class IngredientStock:
    id: int
    stock: Decimal
    unlimited: bool


@dataclass(frozen=True)
class RecipeRequirement:
    ingredient_id: int
    quantity_required: Decimal


@dataclass(frozen=True)
class RecipeSnapshot:
    products: Mapping[int, ProductInfo]
    ingredients: Mapping[int, IngredientStock]
    recipes: Mapping[int, tuple[RecipeRequirement, ...]]
    missing: frozenset[int]

    def product(self, product_id: int) -> ProductInfo:
        info = self.products.get(product_id)
        if info is None:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)
        return info

    def recipe_for(self, product_id: int) -> tuple[RecipeRequirement, ...]:
        return self.recipes.get(product_id, ())

    def ingredient(self, ingredient_id: int) -> IngredientStock:
        info = self.ingredients.get(ingredient_id)
        if info is None:
            raise NotFound(f"Ingredient {ingredient_id} not found", ingredient_id=ingredient_id)
        return info


def load_recipe_snapshot(
    db: Session,
    product_ids: Iterable[int],
    *,
    for_update: bool = False,
) -> RecipeSnapshot:
    # sorted ids: rows are always locked in the same order
    product_ids = sorted({int(pid) for pid in product_ids if pid is not None})
    if not product_ids:
        return RecipeSnapshot(
            products=MappingProxyType({}),
            ingredients=MappingProxyType({}),
            recipes=MappingProxyType({}),
            missing=frozenset(),
        )

    # ---------- PRODUCTS ----------
    stmt = (
        select(Product.id, Product.name, Product.price, Product.stock)
        .where(Product.id.in_(product_ids))
        .order_by(Product.id)
    )
    if for_update:
        stmt = stmt.with_for_update()
    products = {
        int(p.id): ProductInfo(
            id=int(p.id),
            name=p.name,
            price=Decimal(p.price),
            stock=int(p.stock or 0),
        )
        for p in db.execute(stmt).all()
    }

    # ---------- BILL OF MATERIALS ----------
    lines = db.execute(
        select(RecipeLine.product_id, RecipeLine.ingredient_id, RecipeLine.quantity_required)
        .where(RecipeLine.product_id.in_(list(products)))
        .order_by(RecipeLine.product_id, RecipeLine.ingredient_id)
    ).all()

    recipes: dict[int, list[RecipeRequirement]] = {}
    for product_id, ingredient_id, quantity_required in lines:
        recipes.setdefault(int(product_id), []).append(
            RecipeRequirement(
                ingredient_id=int(ingredient_id),
                quantity_required=Decimal(quantity_required),
            )
        )

    # ---------- INGREDIENT STOCK ----------
    ingredient_ids = sorted({req.ingredient_id for reqs in recipes.values() for req in reqs})
    ingredients: dict[int, IngredientStock] = {}
    if ingredient_ids:
        stmt = (
            select(Ingredient.id, Ingredient.stock, Ingredient.unlimited)
            .where(Ingredient.id.in_(ingredient_ids))
            .order_by(Ingredient.id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        ingredients = {
            int(i.id): IngredientStock(
                id=int(i.id),
                stock=Decimal(i.stock or 0),
                unlimited=bool(i.unlimited),
            )
            for i in db.execute(stmt).all()
        }

    return RecipeSnapshot(
        products=MappingProxyType(products),
        ingredients=MappingProxyType(ingredients),
        recipes=MappingProxyType({pid: tuple(reqs) for pid, reqs in recipes.items()}),
        missing=frozenset(pid for pid in product_ids if pid not in products),
    )
