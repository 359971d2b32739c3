import os
from dataclasses import dataclass
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bakery.app.api.deps import get_db
from bakery.app.db.base import Base
from bakery.app.db.models.models_v1 import Coupon, Ingredient, Product, RecipeLine
from bakery.app.db.seed import seed_order_states
from bakery.app.main import app

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")


@pytest.fixture(scope="function")
def engine():
    """
    Fresh schema per test.

    SQLite in memory by default (one shared connection); set
    TEST_DATABASE_URL to run the same suite against PostgreSQL.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        eng = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        eng = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    seed_order_states(session)
    session.commit()
    try:
        yield session
    finally:
        session.close()


@dataclass
class Catalog:
    cake: int          # stock 10, 2 flour + 1 water per unit, price 100
    flour: int         # stock 15, counted
    water: int         # unlimited
    cookie: int        # stock 50, 1 flour per unit, price 5
    coupon_10: int     # 10%, active, no expiry


@pytest.fixture
def catalog(db_session) -> Catalog:
    """
    The reference bakery:
    - cake: max = min(10, floor(15 / 2)) = 7, water never constrains
    - cookie shares the flour with the cake
    """
    flour = Ingredient(name="Flour", unit="kg", stock=Decimal("15"), unlimited=False)
    water = Ingredient(name="Water", unit="l", stock=Decimal("0"), unlimited=True)
    db_session.add_all([flour, water])
    db_session.flush()

    cake = Product(name="Cake", price=Decimal("100.00"), stock=10)
    cake.recipe = [
        RecipeLine(ingredient_id=flour.id, quantity_required=Decimal("2")),
        RecipeLine(ingredient_id=water.id, quantity_required=Decimal("1")),
    ]
    cookie = Product(name="Cookie", price=Decimal("5.00"), stock=50)
    cookie.recipe = [RecipeLine(ingredient_id=flour.id, quantity_required=Decimal("1"))]

    coupon = Coupon(code="PROMO10", discount_percent=10, active=True)

    db_session.add_all([cake, cookie, coupon])
    db_session.commit()

    return Catalog(
        cake=cake.id,
        flour=flour.id,
        water=water.id,
        cookie=cookie.id,
        coupon_10=coupon.id,
    )


@pytest.fixture
def delivery():
    return {"address": "100m norte del parque, San Jose", "phone": "8888-0000"}


@pytest.fixture
def client(session_factory):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
