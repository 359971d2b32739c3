"""
Availability calculator ("limiting reagent").

For a product P with recipe lines L:

    max(P) = max(0, min(P.stock, min over L of floor(ingredient.stock / qty_required)))

Ingredients flagged unlimited never constrain the result.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, NamedTuple

from sqlalchemy.orm import Session

from bakery.services.recipes import RecipeSnapshot, load_recipe_snapshot


class RequestedItem(NamedTuple):
    product_id: int
    quantity: int


@dataclass(frozen=True)
class Conflict:
    product_id: int
    requested: int
    available: int
    name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "requested": self.requested,
            "available": self.available,
        }


@dataclass(frozen=True)
class AvailabilityResult:
    conflicts: tuple[Conflict, ...]
    max_available: Mapping[int, int]

    @property
    def ok(self) -> bool:
        return not self.conflicts

    def conflict_dicts(self) -> list[dict[str, Any]]:
        return [c.as_dict() for c in self.conflicts]


def compute_max(product_id: int, snapshot: RecipeSnapshot) -> int:
    product = snapshot.product(product_id)
    maximum = product.stock

    for req in snapshot.recipe_for(product_id):
        if req.quantity_required <= 0:
            continue
        ingredient = snapshot.ingredients.get(req.ingredient_id)
        if ingredient is None:
            # dangling recipe line: nothing can be produced from it
            maximum = min(maximum, 0)
            continue
        if ingredient.unlimited:
            continue
        possible = math.floor(ingredient.stock / req.quantity_required)
        maximum = min(maximum, possible)

    return max(0, maximum)


def merge_quantities(items: Iterable[tuple[int, int]]) -> dict[int, int]:
    """Sum quantities per product, keeping first-seen order."""
    merged: dict[int, int] = {}
    for product_id, quantity in items:
        merged[int(product_id)] = merged.get(int(product_id), 0) + int(quantity)
    return merged


def validate(items: Iterable[tuple[int, int]], snapshot: RecipeSnapshot) -> AvailabilityResult:
    conflicts: list[Conflict] = []
    max_available: dict[int, int] = {}

    for product_id, requested in merge_quantities(items).items():
        if product_id in snapshot.missing or product_id not in snapshot.products:
            max_available[product_id] = 0
            conflicts.append(Conflict(product_id=product_id, requested=requested, available=0))
            continue

        available = compute_max(product_id, snapshot)
        max_available[product_id] = available
        if requested > available:
            conflicts.append(
                Conflict(
                    product_id=product_id,
                    requested=requested,
                    available=available,
                    name=snapshot.products[product_id].name,
                )
            )

    return AvailabilityResult(conflicts=tuple(conflicts), max_available=max_available)


def check_availability(db: Session, items: Iterable[tuple[int, int]]) -> AvailabilityResult:
    items = list(items)
    snapshot = load_recipe_snapshot(db, [product_id for product_id, _ in items])
    return validate(items, snapshot)
