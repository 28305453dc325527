"""
HTTP adapter: identity headers, role gates, and the error category -> status mapping.
"""

from storeflow.models import AuditLogEntry
from storeflow.services import credit_service, payment_service

from conftest import CASHIER_ID, KEEPER_ID, MANAGER_ID, SELLER_ID, actor_headers


def _create_sale(client, location, product, qty=2, role="SELLER", actor_id=SELLER_ID, **body):
    body.setdefault("items", [{"product_id": product.id, "qty": qty}])
    return client.post("/api/sales", json=body, headers=actor_headers(role, actor_id, location.id))


def test_missing_identity_is_401(client, db_session, location):
    response = client.post("/api/sales", json={"items": []})
    assert response.status_code == 401

    response = client.get("/api/inventory", headers={"X-Actor-Id": "abc", "X-Actor-Role": "SELLER",
                                                     "X-Location-Id": str(location.id)})
    assert response.status_code == 401


def test_wrong_role_is_403(client, db_session, location, product_a):
    response = _create_sale(client, location, product_a, role="CASHIER", actor_id=CASHIER_ID)
    assert response.status_code == 403
    assert response.get_json()["error"] == "Forbidden"


def test_owner_passes_every_gate(client, db_session, location, product_a):
    response = _create_sale(client, location, product_a, role="OWNER", actor_id=1)
    assert response.status_code == 201
    assert response.get_json()["sale"]["status"] == "DRAFT"


def test_create_sale_returns_items(client, db_session, location, product_a):
    response = _create_sale(client, location, product_a, discount_percent=5)
    assert response.status_code == 201

    sale = response.get_json()["sale"]
    assert sale["subtotal_amount"] == 2000
    assert sale["total_amount"] == 1900
    assert sale["items"][0]["product_id"] == product_a.id


def test_validation_errors_are_400(client, db_session, location, product_a):
    response = _create_sale(client, location, product_a,
                            items=[{"product_id": product_a.id, "qty": 1, "discount_percent": 50}])
    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "DiscountTooHigh"
    assert body["context"]["product_id"] == product_a.id

    response = _create_sale(client, location, product_a, items="nope")
    assert response.status_code == 400

    response = client.post("/api/payments", json={"sale_id": "abc", "amount": 1},
                           headers=actor_headers("CASHIER", CASHIER_ID, location.id))
    assert response.status_code == 400
    assert response.get_json()["error"] == "ValidationError"


def test_missing_entities_are_404(client, db_session, location):
    response = client.get("/api/sales/4040", headers=actor_headers("SELLER", SELLER_ID, location.id))
    assert response.status_code == 404
    assert response.get_json()["error"] == "NotFound"


def test_conflicts_are_409_with_context(client, db_session, location, product_a):
    sale_id = _create_sale(client, location, product_a, qty=6).get_json()["sale"]["id"]

    response = client.post(f"/api/sales/{sale_id}/fulfill",
                           headers=actor_headers("STORE_KEEPER", KEEPER_ID, location.id))
    assert response.status_code == 409
    body = response.get_json()
    assert body["error"] == "InsufficientInventoryStock"
    assert body["context"] == {"product_id": product_a.id, "available": 5, "needed": 6}


def test_marking_someone_elses_sale_is_403(client, db_session, location, product_a):
    sale_id = _create_sale(client, location, product_a).get_json()["sale"]["id"]
    client.post(f"/api/sales/{sale_id}/fulfill", headers=actor_headers("STORE_KEEPER", KEEPER_ID, location.id))

    response = client.post(f"/api/sales/{sale_id}/mark", json={"status": "PAID", "payment_method": "CASH"},
                           headers=actor_headers("SELLER", SELLER_ID + 1, location.id))
    assert response.status_code == 403
    assert response.get_json()["error"] == "Forbidden"


def test_viewing_a_sale_is_audited(client, db_session, location, product_a):
    sale_id = _create_sale(client, location, product_a).get_json()["sale"]["id"]

    response = client.get(f"/api/sales/{sale_id}", headers=actor_headers("MANAGER", MANAGER_ID, location.id))
    assert response.status_code == 200

    views = db_session.query(AuditLogEntry).filter_by(action="SALE_VIEW", entity_id=sale_id).all()
    assert len(views) == 1
    assert views[0].actor_id == MANAGER_ID


def test_sales_are_location_scoped(client, db_session, location, other_location, product_a):
    sale_id = _create_sale(client, location, product_a).get_json()["sale"]["id"]
    response = client.get(f"/api/sales/{sale_id}", headers=actor_headers("SELLER", SELLER_ID, other_location.id))
    assert response.status_code == 404


def test_cash_sale_over_http(client, db_session, location, product_a):
    seller = actor_headers("SELLER", SELLER_ID, location.id)
    keeper = actor_headers("STORE_KEEPER", KEEPER_ID, location.id)
    cashier = actor_headers("CASHIER", CASHIER_ID, location.id)

    session = client.post("/api/cash-sessions", json={"opening_balance": 500}, headers=cashier)
    assert session.status_code == 201
    session_id = session.get_json()["session"]["id"]

    sale_id = _create_sale(client, location, product_a).get_json()["sale"]["id"]
    assert client.post(f"/api/sales/{sale_id}/fulfill", headers=keeper).status_code == 200
    marked = client.post(f"/api/sales/{sale_id}/mark", json={"status": "PAID", "payment_method": "CASH"},
                         headers=seller)
    assert marked.get_json()["sale"]["status"] == "AWAITING_PAYMENT_RECORD"

    payment = client.post("/api/payments", json={"sale_id": sale_id, "amount": 2000,
                                                 "cash_session_id": session_id}, headers=cashier)
    assert payment.status_code == 201
    assert payment.get_json()["payment"]["amount"] == 2000

    again = client.post("/api/payments", json={"sale_id": sale_id, "amount": 2000,
                                               "cash_session_id": session_id}, headers=cashier)
    assert again.status_code == 409

    summary = client.get(f"/api/cash-sessions/{session_id}", headers=cashier).get_json()
    assert summary["cash_balance"] == 2500

    closed = client.post(f"/api/cash-sessions/{session_id}/close", json={"counted_cash": 2500}, headers=cashier)
    assert closed.status_code == 200
    assert closed.get_json()["session"]["variance"] == 0


def test_inventory_adjust_over_http(client, db_session, location, product_a):
    keeper = actor_headers("STORE_KEEPER", KEEPER_ID, location.id)

    response = client.post("/api/inventory/adjust", json={"product_id": product_a.id, "qty_change": -2,
                                                          "reason": "Damaged"}, headers=keeper)
    assert response.status_code == 200
    assert response.get_json() == {"product_id": product_a.id, "qty_on_hand": 3}

    response = client.post("/api/inventory/adjust", json={"product_id": product_a.id, "qty_change": -9},
                           headers=keeper)
    assert response.status_code == 409
    assert response.get_json()["error"] == "InsufficientStock"

    listing = client.get("/api/inventory", headers=keeper).get_json()
    assert listing["count"] == 1


def test_payment_reads_over_http(client, db_session, location, product_a, cash_session, sale_factory):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")
    payment_service.record_payment(location_id=location.id, cashier_id=CASHIER_ID, sale_id=sale.id,
                                   amount=2000, cash_session_id=cash_session.id)
    manager = actor_headers("MANAGER", MANAGER_ID, location.id)

    listed = client.get("/api/payments?limit=10", headers=manager)
    assert listed.status_code == 200
    assert [p["sale_id"] for p in listed.get_json()["payments"]] == [sale.id]

    one = client.get(f"/api/payments?sale_id={sale.id}", headers=manager)
    assert one.get_json()["payment"]["amount"] == 2000
    missing = client.get("/api/payments?sale_id=4040", headers=manager)
    assert missing.status_code == 404
    assert missing.get_json()["error"] == "NotFound"

    summary = client.get("/api/payments/summary", headers=manager).get_json()["summary"]
    assert summary["all"] == {"count": 1, "total": 2000}

    breakdown = client.get("/api/payments/breakdown?window=all", headers=manager)
    assert breakdown.get_json()["methods"] == [{"method": "CASH", "count": 1, "total": 2000}]
    assert client.get("/api/payments/breakdown?window=decade", headers=manager).status_code == 400

    seller = actor_headers("SELLER", SELLER_ID, location.id)
    assert client.get("/api/payments", headers=seller).status_code == 403


def test_get_credit_over_http(client, db_session, location, other_location, product_a, sale_factory, customer):
    sale = sale_factory(product_a, status="PENDING")
    credit = credit_service.create_credit(location_id=location.id, seller_id=SELLER_ID, sale_id=sale.id,
                                          customer_id=customer.id)

    response = client.get(f"/api/credits/{credit.id}", headers=actor_headers("CASHIER", CASHIER_ID, location.id))
    assert response.status_code == 200
    assert response.get_json()["credit"]["status"] == "OPEN"

    elsewhere = client.get(f"/api/credits/{credit.id}",
                           headers=actor_headers("CASHIER", CASHIER_ID, other_location.id))
    assert elsewhere.status_code == 404
