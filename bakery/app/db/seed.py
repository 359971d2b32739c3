from __future__ import annotations

from decimal import Decimal

import structlog
from sqlalchemy import select

from bakery.app.core.config import LOG_LEVEL
from bakery.app.core.log import configure_logging
from bakery.app.db.session import SessionLocal
from bakery.app.db.models.models_v1 import Coupon, Ingredient, OrderState, Product, RecipeLine

logger = structlog.get_logger()

# Codes 1, 2 and 6 are the ones the order engine relies on; the others are
# fulfilment states admins move orders through.
ORDER_STATES = {
    1: "Pending Payment",
    2: "Confirmed",
    3: "In Production",
    4: "Ready for Pickup",
    5: "Delivered",
    6: "Cancelled",
}


def seed_order_states(db) -> None:
    existing = set(db.execute(select(OrderState.id)).scalars().all())
    for state_id, name in ORDER_STATES.items():
        if state_id not in existing:
            db.add(OrderState(id=state_id, name=name))
    db.flush()


def run_seed():
    db = SessionLocal()
    try:
        # 1) Order states
        seed_order_states(db)

        # 2) Demo catalog: one cake, flour counted, water unlimited
        flour = db.scalar(select(Ingredient).where(Ingredient.name == "Flour"))
        if not flour:
            flour = Ingredient(name="Flour", unit="kg", stock=Decimal("25"), unlimited=False)
            db.add(flour)
        water = db.scalar(select(Ingredient).where(Ingredient.name == "Water"))
        if not water:
            water = Ingredient(name="Water", unit="l", stock=Decimal("0"), unlimited=True)
            db.add(water)
        db.flush()

        cake = db.scalar(select(Product).where(Product.name == "Vanilla Cake"))
        if not cake:
            cake = Product(name="Vanilla Cake", price=Decimal("12500.00"), stock=10, active=True)
            cake.recipe = [
                RecipeLine(ingredient_id=flour.id, quantity_required=Decimal("0.5")),
                RecipeLine(ingredient_id=water.id, quantity_required=Decimal("0.25")),
            ]
            db.add(cake)

        # 3) Welcome coupon, no expiry
        if not db.scalar(select(Coupon).where(Coupon.code == "WELCOME10")):
            db.add(Coupon(code="WELCOME10", discount_percent=10, active=True))

        db.commit()
        logger.info("seed_ok", order_states=len(ORDER_STATES))
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging(LOG_LEVEL)
    run_seed()
