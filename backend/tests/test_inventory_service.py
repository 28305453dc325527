import pytest

from storeflow.errors import ErrorKind, InventoryError
from storeflow.models import AuditLogEntry, InventoryBalance
from storeflow.services import inventory_service

from conftest import KEEPER_ID


def test_balance_row_created_on_product_create(db_session, location, make_product):
    product = make_product()
    rows = db_session.query(InventoryBalance).filter_by(product_id=product.id).all()
    assert len(rows) == 1
    assert rows[0].qty_on_hand == 0


def test_adjust_is_lazy_and_cumulative(db_session, location, make_product):
    product = make_product()
    db_session.query(InventoryBalance).filter_by(product_id=product.id).delete()
    db_session.commit()

    result = inventory_service.adjust_inventory(
        location_id=location.id, product_id=product.id, delta=7, reason="Restock", actor_id=KEEPER_ID
    )
    assert result.qty_on_hand == 7

    result = inventory_service.adjust_inventory(
        location_id=location.id, product_id=product.id, delta=-3, reason="Damaged", actor_id=KEEPER_ID
    )
    assert result.qty_on_hand == 4
    assert inventory_service.get_balance(location.id, product.id) == 4
    assert db_session.query(InventoryBalance).filter_by(product_id=product.id).count() == 1


def test_insufficient_stock_leaves_balance_unchanged(db_session, location, product_a):
    with pytest.raises(InventoryError) as exc:
        inventory_service.adjust_inventory(
            location_id=location.id, product_id=product_a.id, delta=-6, actor_id=KEEPER_ID
        )

    assert exc.value.kind == ErrorKind.INSUFFICIENT_STOCK
    assert exc.value.context == {"product_id": product_a.id, "available": 5, "needed": 6}
    assert inventory_service.get_balance(location.id, product_a.id) == 5


@pytest.mark.parametrize("delta", [0, 1.5, "3", True])
def test_bad_qty_change(db_session, location, product_a, delta):
    with pytest.raises(InventoryError) as exc:
        inventory_service.adjust_inventory(
            location_id=location.id, product_id=product_a.id, delta=delta, actor_id=KEEPER_ID
        )
    assert exc.value.kind == ErrorKind.BAD_QTY_CHANGE


def test_product_from_other_location_is_not_found(db_session, location, other_location, product_a):
    with pytest.raises(InventoryError) as exc:
        inventory_service.adjust_inventory(
            location_id=other_location.id, product_id=product_a.id, delta=1, actor_id=KEEPER_ID
        )
    assert exc.value.kind == ErrorKind.PRODUCT_NOT_FOUND
    assert exc.value.category == "missing"


def test_adjustment_audit_is_keyed_by_product(db_session, location, product_a):
    entries = db_session.query(AuditLogEntry).filter_by(action="INVENTORY_ADJUST").all()
    assert len(entries) == 1
    assert entries[0].entity_type == "inventory_balance"
    assert entries[0].entity_id == product_a.id
    assert entries[0].meta["qty_change"] == 5


def test_list_balances_includes_unadjusted_products(db_session, location, make_product, product_a):
    other = make_product(name="Product B")
    rows = {r["product_id"]: r["qty_on_hand"] for r in inventory_service.list_balances(location.id)}
    assert rows == {product_a.id: 5, other.id: 0}
