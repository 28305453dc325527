"""
Refund flow, including the full cash sale round trip:
create -> fulfill -> mark PAID -> record payment -> refund.
"""

import pytest

from storeflow.errors import ErrorKind, RefundError
from storeflow.models import AuditLogEntry, CashLedgerEntry, Refund
from storeflow.services import inventory_service, payment_service, refund_service, sales_service
from storeflow.services.ledger_service import session_cash_balance

from conftest import CASHIER_ID, KEEPER_ID, SELLER_ID


@pytest.fixture
def completed_sale(location, product_a, cash_session, sale_factory):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")
    payment_service.record_payment(location_id=location.id, cashier_id=CASHIER_ID, sale_id=sale.id,
                                   amount=sale.total_amount, cash_session_id=cash_session.id)
    return sales_service.get_sale(location.id, sale.id)


def _refund(location, sale, **kwargs):
    kwargs.setdefault("reason", "customer return")
    return refund_service.create_refund(location_id=location.id, actor_id=CASHIER_ID, sale_id=sale.id, **kwargs)


def test_cash_sale_round_trip(db_session, location, product_a, cash_session):
    sale = sales_service.create_sale(location_id=location.id, seller_id=SELLER_ID,
                                     items=[{"product_id": product_a.id, "qty": 2}])
    assert sale.total_amount == 2000
    assert inventory_service.get_balance(location.id, product_a.id) == 5

    sales_service.fulfill_sale(location_id=location.id, store_keeper_id=KEEPER_ID, sale_id=sale.id)
    assert inventory_service.get_balance(location.id, product_a.id) == 3

    sales_service.mark_sale(location_id=location.id, seller_id=SELLER_ID, sale_id=sale.id,
                            status="PAID", payment_method="CASH")
    payment_service.record_payment(location_id=location.id, cashier_id=CASHIER_ID, sale_id=sale.id,
                                   amount=2000, cash_session_id=cash_session.id)
    assert sales_service.get_sale(location.id, sale.id).status == "COMPLETED"
    assert session_cash_balance(cash_session.id) == 2000

    refund = _refund(location, sale)

    assert refund.amount == 2000
    assert refund.reason == "customer return"
    assert inventory_service.get_balance(location.id, product_a.id) == 5
    assert sales_service.get_sale(location.id, sale.id).status == "REFUNDED"

    entries = db_session.query(CashLedgerEntry).filter_by(sale_id=sale.id).order_by(CashLedgerEntry.id).all()
    assert [(e.type, e.direction, e.amount) for e in entries] == [
        ("SALE_PAYMENT", "IN", 2000),
        ("REFUND", "OUT", 2000),
    ]
    assert entries[1].note == "Refund: customer return"
    assert session_cash_balance(cash_session.id) == 0
    assert db_session.query(AuditLogEntry).filter_by(action="REFUND_CREATE", entity_id=sale.id).count() == 1


def test_second_refund_is_rejected(db_session, location, product_a, completed_sale):
    _refund(location, completed_sale)

    with pytest.raises(RefundError) as exc:
        _refund(location, completed_sale)
    assert exc.value.kind == ErrorKind.ALREADY_REFUNDED
    assert exc.value.context["sale_id"] == completed_sale.id
    assert db_session.query(Refund).filter_by(sale_id=completed_sale.id).count() == 1
    assert inventory_service.get_balance(location.id, product_a.id) == 5


def test_unique_constraint_backstops_a_racing_refund(db_session, location, product_a, completed_sale,
                                                      monkeypatch):
    before = inventory_service.get_balance(location.id, product_a.id)
    db_session.add(Refund(location_id=location.id, sale_id=completed_sale.id, amount=2000,
                          method="CASH", created_by=CASHIER_ID))
    db_session.commit()

    monkeypatch.setattr(refund_service, "_existing_refund", lambda sale_id: None)

    with pytest.raises(RefundError) as exc:
        _refund(location, completed_sale)

    assert exc.value.kind == ErrorKind.ALREADY_REFUNDED
    assert exc.value.context["sale_id"] == completed_sale.id
    assert inventory_service.get_balance(location.id, product_a.id) == before
    assert sales_service.get_sale(location.id, completed_sale.id).status == "COMPLETED"


@pytest.mark.parametrize("status", ["DRAFT", "FULFILLED", "AWAITING_PAYMENT_RECORD", "PENDING"])
def test_only_completed_sales_refund(db_session, location, product_a, cash_session, sale_factory, status):
    sale = sale_factory(product_a, status=status)
    with pytest.raises(RefundError) as exc:
        _refund(location, sale)
    assert exc.value.kind == ErrorKind.BAD_STATUS


def test_unknown_sale(db_session, location):
    with pytest.raises(RefundError) as exc:
        refund_service.create_refund(location_id=location.id, actor_id=CASHIER_ID, sale_id=12345)
    assert exc.value.kind == ErrorKind.NOT_FOUND


def test_bad_method(db_session, location, completed_sale):
    with pytest.raises(RefundError) as exc:
        _refund(location, completed_sale, method="VOUCHER")
    assert exc.value.kind == ErrorKind.BAD_PAYMENT_METHOD


def test_cash_refund_needs_open_session(db_session, location, product_a, completed_sale, cash_session):
    from storeflow.services import cash_session_service

    cash_session_service.close_session(location_id=location.id, cashier_id=CASHIER_ID,
                                       cash_session_id=cash_session.id, counted_cash=2000)

    with pytest.raises(RefundError) as exc:
        _refund(location, completed_sale)
    assert exc.value.kind == ErrorKind.NO_OPEN_SESSION
    # nothing moved
    assert inventory_service.get_balance(location.id, product_a.id) == 3
    assert sales_service.get_sale(location.id, completed_sale.id).status == "COMPLETED"


def test_non_cash_refund_skips_session(db_session, location, completed_sale):
    refund = _refund(location, completed_sale, method="bank", reference="TX-" + "9" * 200)
    assert refund.method == "BANK"
    assert len(refund.reference) == 120

    entry = db_session.query(CashLedgerEntry).filter_by(sale_id=completed_sale.id, type="REFUND").one()
    assert entry.method == "BANK"
    assert entry.cash_session_id is None


def test_list_refunds(db_session, location, completed_sale):
    refund = _refund(location, completed_sale)
    assert [r.id for r in refund_service.list_refunds(location.id)] == [refund.id]
