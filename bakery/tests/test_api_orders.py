from decimal import Decimal

from fastapi.testclient import TestClient

from bakery.app.api.deps import get_db
from bakery.app.db.models.models_v1 import Ingredient, Product
from bakery.app.main import app
from bakery.services import orders as engine

CUSTOMER = {"X-Customer-Id": "cust-ana"}
ADMIN = {"X-User-Role": "admin"}


def _order_payload(catalog, delivery, qty=2, **extra):
    payload = {"items": [{"product_id": catalog.cake, "quantity": qty}], "delivery_info": delivery}
    payload.update(extra)
    return payload


def _create(client, catalog, delivery, **kw):
    r = client.post("/v1/orders", json=_order_payload(catalog, delivery, **kw), headers=CUSTOMER)
    assert r.status_code == 201, r.text
    return r.json()["order"]


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_validate_availability(client, catalog):
    r = client.post(
        "/v1/products/validate-availability",
        json={"items": [{"product_id": catalog.cake, "quantity": 8}, {"product_id": catalog.cookie, "quantity": 1}]},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["valid"] is False
    assert body["conflicts"] == [
        {"product_id": catalog.cake, "name": "Cake", "requested": 8, "available": 7}
    ]
    assert body["max_available_per_product"] == {str(catalog.cake): 7, str(catalog.cookie): 15}


def test_validate_availability_needs_items(client, catalog):
    r = client.post("/v1/products/validate-availability", json={"items": []})
    assert r.status_code == 422


def test_validate_coupon(client, catalog):
    r = client.post("/v1/coupons/validate", json={"code": "promo10"})
    assert r.status_code == 200
    assert r.json()["id"] == catalog.coupon_10
    assert r.json()["discount_percent"] == 10

    r = client.post("/v1/coupons/validate", json={"code": "NOPE"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_coupon"


def test_create_order(client, catalog, delivery):
    r = client.post(
        "/v1/orders",
        json=_order_payload(catalog, delivery, coupon_id=catalog.coupon_10),
        headers=CUSTOMER,
    )
    assert r.status_code == 201, r.text
    order = r.json()["order"]
    assert Decimal(order["subtotal"]) == Decimal("200.00")
    assert Decimal(order["discount"]) == Decimal("20.00")
    assert Decimal(order["total"]) == Decimal("180.00")
    assert order["coupon"] == {"code": "PROMO10", "discount_percent": 10}
    assert order["reference"] == f"BISK-{order['id']:06d}"
    assert order["payment"]["reference"] == order["reference"]


def test_create_order_requires_customer(client, catalog, delivery):
    r = client.post("/v1/orders", json=_order_payload(catalog, delivery))
    assert r.status_code == 401


def test_create_order_insufficient_stock(client, catalog, delivery):
    r = client.post("/v1/orders", json=_order_payload(catalog, delivery, qty=8), headers=CUSTOMER)
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "insufficient_stock"
    assert body["conflicts"][0]["available"] == 7

    assert client.get("/v1/orders/mine", headers=CUSTOMER).json() == []


def test_create_order_incomplete_delivery(client, catalog):
    r = client.post("/v1/orders", json=_order_payload(catalog, {"address": "x"}), headers=CUSTOMER)
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"
    assert r.json()["missing"] == ["phone"]


def test_confirm_payment_flow(client, catalog, delivery, session_factory):
    order = _create(client, catalog, delivery)

    r = client.post(f"/v1/orders/{order['id']}/confirm-payment", json={"proof_ref": "sinpe-123"}, headers=CUSTOMER)
    assert r.status_code == 200, r.text
    assert r.json()["state_id"] == 2
    assert r.json()["state"] == "Confirmed"

    again = client.post(f"/v1/orders/{order['id']}/confirm-payment", json={"proof_ref": "sinpe-123"}, headers=CUSTOMER)
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_transition"

    with session_factory() as db:
        assert db.get(Product, catalog.cake).stock == 8
        assert db.get(Ingredient, catalog.flour).stock == Decimal("11")


def test_other_customer_sees_not_found(client, catalog, delivery):
    order = _create(client, catalog, delivery)
    other = {"X-Customer-Id": "cust-luis"}

    assert client.get(f"/v1/orders/{order['id']}", headers=other).status_code == 404
    r = client.post(f"/v1/orders/{order['id']}/confirm-payment", json={"proof_ref": "x"}, headers=other)
    assert r.status_code == 404
    assert client.post(f"/v1/orders/{order['id']}/cancel", headers=other).status_code == 404


def test_my_orders_and_detail(client, catalog, delivery):
    order = _create(client, catalog, delivery)

    mine = client.get("/v1/orders/mine", headers=CUSTOMER).json()
    assert [o["id"] for o in mine] == [order["id"]]
    assert mine[0]["state"] == "Pending Payment"

    detail = client.get(f"/v1/orders/{order['id']}", headers=CUSTOMER).json()
    assert detail["items"][0]["quantity"] == 2
    assert Decimal(detail["items"][0]["unit_price"]) == Decimal("100.00")
    assert detail["delivery_info"] == delivery


def test_cancel(client, catalog, delivery):
    order = _create(client, catalog, delivery)

    r = client.post(f"/v1/orders/{order['id']}/cancel", headers=CUSTOMER)
    assert r.status_code == 200
    assert r.json()["state_id"] == 6

    assert client.post(f"/v1/orders/{order['id']}/cancel", headers=CUSTOMER).status_code == 409


def test_admin_endpoints_require_role(client, catalog, delivery):
    order = _create(client, catalog, delivery)

    assert client.get("/v1/orders").status_code == 403
    assert client.get("/v1/orders", headers={"X-User-Role": "customer"}).status_code == 403
    assert client.put(f"/v1/orders/{order['id']}/state", json={"state_id": 3}).status_code == 403
    assert client.delete(f"/v1/orders/{order['id']}").status_code == 403


def test_admin_state_and_delete(client, catalog, delivery, session_factory):
    order = _create(client, catalog, delivery)
    client.post(f"/v1/orders/{order['id']}/confirm-payment", json={"proof_ref": "p"}, headers=CUSTOMER)

    r = client.put(f"/v1/orders/{order['id']}/state", json={"state_id": 4}, headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["state_id"] == 4

    assert client.put(f"/v1/orders/{order['id']}/state", json={"state_id": 77}, headers=ADMIN).status_code == 404

    listed = client.get("/v1/orders", params={"state_id": 4}, headers=ADMIN).json()
    assert [o["id"] for o in listed] == [order["id"]]

    r = client.delete(f"/v1/orders/{order['id']}", headers=ADMIN)
    assert r.status_code == 200
    assert Decimal(r.json()["restored"]["ingredients"][str(catalog.flour)]) == Decimal("4")

    with session_factory() as db:
        assert db.get(Product, catalog.cake).stock == 10
        assert db.get(Ingredient, catalog.flour).stock == Decimal("15")

    assert client.delete(f"/v1/orders/{order['id']}", headers=ADMIN).status_code == 404


def test_admin_cannot_confirm_unpaid_order(client, catalog, delivery):
    order = _create(client, catalog, delivery)

    r = client.put(f"/v1/orders/{order['id']}/state", json={"state_id": 2}, headers=ADMIN)
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_transition"

    assert client.get(f"/v1/orders/{order['id']}", headers=CUSTOMER).json()["state_id"] == 1


def test_cancel_documents_its_errors(client):
    responses = client.get("/openapi.json").json()["paths"]["/v1/orders/{order_id}/cancel"]["post"]["responses"]
    assert {"404", "409"} <= set(responses)


def test_unexpected_error_renders_internal_failure(session_factory, catalog, delivery, monkeypatch):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def broken(order):
        raise RuntimeError("payment settings unreadable")

    monkeypatch.setattr(engine, "payment_instructions", broken)
    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app, raise_server_exceptions=False) as c:
            r = c.post("/v1/orders", json=_order_payload(catalog, delivery), headers=CUSTOMER)
    finally:
        app.dependency_overrides.clear()

    assert r.status_code == 500
    assert r.json() == {"error": "internal_error", "detail": "Internal error while processing the request"}
