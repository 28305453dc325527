from decimal import Decimal

import pytest

from storeflow.errors import CatalogError, ErrorKind
from storeflow.models import AuditLogEntry
from storeflow.services import customer_service, products_service, sales_service

from conftest import MANAGER_ID, SELLER_ID


@pytest.mark.parametrize("cost, selling, pct", [
    (-1, 1000, 0),
    (0, 0, 0),
    (1200, 1000, 0),
    (0, 1000, 101),
    (0, 1000, -1),
    (0, 1000, "ten"),
    (0, 1000, "NaN"),
    (0, 1000, float("inf")),
    (0, 999.5, 0),
    (True, 1000, 0),
])
def test_pricing_rule(cost, selling, pct):
    with pytest.raises(CatalogError) as exc:
        products_service.validate_pricing(cost, selling, pct)
    assert exc.value.kind == ErrorKind.BAD_PRICE


def test_pricing_rule_accepts_edges():
    assert products_service.validate_pricing(1000, 1000, 100) == Decimal(100)
    assert products_service.validate_pricing(0, 1, "12.5") == Decimal("12.5")


def test_create_requires_name(db_session, location):
    with pytest.raises(ValueError):
        products_service.create_product(location_id=location.id, actor_id=MANAGER_ID, name="  ",
                                        selling_price=100)


def test_update_pricing_is_audited(db_session, location, make_product):
    product = make_product(selling_price=1000, cost_price=600, max_discount_percent=10)

    updated = products_service.update_pricing(location_id=location.id, actor_id=MANAGER_ID,
                                              product_id=product.id, cost_price=700,
                                              selling_price=1200, max_discount_percent=5)
    assert updated.selling_price == 1200
    assert updated.max_discount_percent == Decimal(5)

    entry = db_session.query(AuditLogEntry).filter_by(action="PRODUCT_PRICING_UPDATE").one()
    assert entry.meta["before"]["selling_price"] == 1000
    assert entry.meta["after"]["selling_price"] == 1200


def test_update_pricing_does_not_touch_existing_sales(db_session, location, product_a, sale_factory):
    sale = sale_factory(product_a)
    products_service.update_pricing(location_id=location.id, actor_id=MANAGER_ID, product_id=product_a.id,
                                    cost_price=600, selling_price=1500, max_discount_percent=10)
    assert sales_service.get_sale(location.id, sale.id).total_amount == 2000


def test_update_pricing_unknown_product(db_session, location, other_location, make_product):
    product = make_product()
    with pytest.raises(CatalogError) as exc:
        products_service.update_pricing(location_id=other_location.id, actor_id=MANAGER_ID,
                                        product_id=product.id, cost_price=0, selling_price=10,
                                        max_discount_percent=0)
    assert exc.value.kind == ErrorKind.NOT_FOUND


def test_list_products_hides_inactive(db_session, location, make_product):
    active = make_product(name="Bread")
    hidden = make_product(name="Apples")
    hidden.is_active = False
    db_session.commit()

    assert [p.id for p in products_service.list_products(location.id)] == [active.id]
    assert [p.id for p in products_service.list_products(location.id, include_inactive=True)] == [
        hidden.id, active.id,
    ]


def test_customer_history(db_session, location, product_a, customer, sale_factory):
    first = sale_factory(product_a, qty=1, customer_id=customer.id)
    second = sale_factory(product_a, qty=1, customer_id=customer.id)
    sale_factory(product_a, qty=1)

    history = customer_service.customer_history(location.id, customer.id)
    assert history["customer"]["name"] == "Ama Mensah"
    assert [s["id"] for s in history["sales"]] == [second.id, first.id]
    assert history["credits"] == []


def test_customer_requires_name(db_session, location):
    with pytest.raises(ValueError):
        customer_service.create_customer(location_id=location.id, actor_id=SELLER_ID, name="")


def test_unknown_customer_history(db_session, location):
    with pytest.raises(CatalogError) as exc:
        customer_service.customer_history(location.id, 404)
    assert exc.value.kind == ErrorKind.NOT_FOUND
