"""
Payment posting: precondition order, exactly-once, and the UNIQUE(sale_id) backstop.
"""

from datetime import datetime, timedelta

import pytest

from storeflow.errors import ErrorKind, PaymentError
from storeflow.models import AuditLogEntry, CashLedgerEntry, Payment
from storeflow.services import cash_session_service, payment_service, sales_service
from storeflow.services.ledger_service import session_cash_balance

from conftest import CASHIER_ID


def _pay(location, sale, session_id, **overrides):
    kwargs = dict(
        location_id=location.id,
        cashier_id=CASHIER_ID,
        sale_id=sale.id,
        amount=sale.total_amount,
        cash_session_id=session_id,
    )
    kwargs.update(overrides)
    return payment_service.record_payment(**kwargs)


def test_record_payment_completes_sale(db_session, location, product_a, cash_session, sale_factory):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")

    payment = _pay(location, sale, cash_session.id)

    assert payment.amount == 2000
    assert payment.method == "CASH"
    assert sales_service.get_sale(location.id, sale.id).status == "COMPLETED"

    entries = db_session.query(CashLedgerEntry).filter_by(sale_id=sale.id).all()
    assert len(entries) == 1
    assert entries[0].type == "SALE_PAYMENT"
    assert entries[0].direction == "IN"
    assert entries[0].amount == 2000
    assert entries[0].payment_id == payment.id
    assert entries[0].cash_session_id == cash_session.id
    assert session_cash_balance(cash_session.id) == 2000
    assert db_session.query(AuditLogEntry).filter_by(action="PAYMENT_RECORD", entity_id=sale.id).count() == 1


def test_method_defaults_to_marked_method(db_session, location, product_a, cash_session, sale_factory):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD", payment_method="MOMO")
    payment = _pay(location, sale, cash_session.id)
    assert payment.method == "MOMO"
    # non-cash money does not count towards the drawer
    assert session_cash_balance(cash_session.id) == 0


def test_unknown_sale(db_session, location, cash_session):
    with pytest.raises(PaymentError) as exc:
        payment_service.record_payment(location_id=location.id, cashier_id=CASHIER_ID, sale_id=999,
                                       amount=1, cash_session_id=cash_session.id)
    assert exc.value.kind == ErrorKind.NOT_FOUND


@pytest.mark.parametrize("status", ["DRAFT", "FULFILLED", "PENDING"])
def test_only_awaiting_sales_accept_payment(db_session, location, product_a, cash_session, sale_factory, status):
    sale = sale_factory(product_a, status=status)
    with pytest.raises(PaymentError) as exc:
        _pay(location, sale, cash_session.id)
    assert exc.value.kind == ErrorKind.BAD_STATUS


def test_status_checked_before_amount(db_session, location, product_a, cash_session, sale_factory):
    sale = sale_factory(product_a, status="FULFILLED")
    with pytest.raises(PaymentError) as exc:
        _pay(location, sale, cash_session.id, amount=1)
    assert exc.value.kind == ErrorKind.BAD_STATUS


@pytest.mark.parametrize("amount", [1999, 2001, 0, "2000"])
def test_amount_must_equal_total(db_session, location, product_a, cash_session, sale_factory, amount):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")
    with pytest.raises(PaymentError) as exc:
        _pay(location, sale, cash_session.id, amount=amount)
    assert exc.value.kind == ErrorKind.BAD_AMOUNT
    assert exc.value.context["expected"] == 2000


def test_bad_method(db_session, location, product_a, cash_session, sale_factory):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")
    with pytest.raises(PaymentError) as exc:
        _pay(location, sale, cash_session.id, method="CHEQUE")
    assert exc.value.kind == ErrorKind.BAD_PAYMENT_METHOD


def test_amount_checked_before_session(db_session, location, product_a, sale_factory):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")
    with pytest.raises(PaymentError) as exc:
        _pay(location, sale, None, amount=5)
    assert exc.value.kind == ErrorKind.BAD_AMOUNT


def test_session_must_be_open_and_owned(db_session, location, product_a, sale_factory):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")
    someone_else = cash_session_service.open_session(location_id=location.id, cashier_id=CASHIER_ID + 1)

    for session_id in (None, 9999, someone_else.id):
        with pytest.raises(PaymentError) as exc:
            _pay(location, sale, session_id)
        assert exc.value.kind == ErrorKind.NO_OPEN_SESSION

    mine = cash_session_service.open_session(location_id=location.id, cashier_id=CASHIER_ID)
    cash_session_service.close_session(location_id=location.id, cashier_id=CASHIER_ID,
                                       cash_session_id=mine.id, counted_cash=0)
    with pytest.raises(PaymentError) as exc:
        _pay(location, sale, mine.id)
    assert exc.value.kind == ErrorKind.NO_OPEN_SESSION


def test_sequential_repeats_succeed_exactly_once(db_session, location, product_a, cash_session, sale_factory):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")

    outcomes = []
    for _ in range(5):
        try:
            _pay(location, sale, cash_session.id)
            outcomes.append("ok")
        except PaymentError as exc:
            outcomes.append(exc.kind)

    assert outcomes.count("ok") == 1
    assert set(outcomes[1:]) == {ErrorKind.DUPLICATE_PAYMENT}
    assert db_session.query(Payment).filter_by(sale_id=sale.id).count() == 1
    assert db_session.query(CashLedgerEntry).filter_by(sale_id=sale.id, type="SALE_PAYMENT").count() == 1


def test_existing_payment_is_duplicate(db_session, location, product_a, cash_session, sale_factory):
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")
    db_session.add(Payment(location_id=location.id, sale_id=sale.id, cashier_id=CASHIER_ID,
                           cash_session_id=cash_session.id, amount=2000, method="CASH"))
    db_session.commit()

    with pytest.raises(PaymentError) as exc:
        _pay(location, sale, cash_session.id)
    assert exc.value.kind == ErrorKind.DUPLICATE_PAYMENT


def test_unique_constraint_backstops_a_racing_payment(db_session, location, product_a, cash_session,
                                                       sale_factory, monkeypatch):
    """A request that slipped past the pre-check still fails at flush, and nothing partial survives."""
    sale = sale_factory(product_a, status="AWAITING_PAYMENT_RECORD")
    db_session.add(Payment(location_id=location.id, sale_id=sale.id, cashier_id=CASHIER_ID,
                           cash_session_id=cash_session.id, amount=2000, method="CASH"))
    db_session.commit()

    monkeypatch.setattr(payment_service, "_existing_payment", lambda sale_id: None)

    with pytest.raises(PaymentError) as exc:
        _pay(location, sale, cash_session.id)

    assert exc.value.kind == ErrorKind.DUPLICATE_PAYMENT
    assert exc.value.context["sale_id"] == sale.id
    assert db_session.query(Payment).filter_by(sale_id=sale.id).count() == 1
    assert db_session.query(CashLedgerEntry).filter_by(sale_id=sale.id).count() == 0
    assert sales_service.get_sale(location.id, sale.id).status == "AWAITING_PAYMENT_RECORD"


NOW = datetime(2026, 10, 19, 15, 30)


@pytest.fixture
def posted_payments(db_session, location, other_location, make_product, sale_factory):
    """Three payments here (two today, one yesterday) and one at another location."""
    product = make_product(qty_on_hand=10)
    rows = [
        ("CASH", 1000, NOW - timedelta(hours=1)),
        ("MOMO", 1000, NOW - timedelta(hours=2)),
        ("CASH", 1000, NOW - timedelta(days=1)),
    ]
    payments = []
    for method, amount, created_at in rows:
        sale = sale_factory(product, qty=1)
        payment = Payment(location_id=location.id, sale_id=sale.id, cashier_id=CASHIER_ID,
                          amount=amount, method=method, created_at=created_at)
        db_session.add(payment)
        db_session.commit()
        payments.append(payment)
    elsewhere = sale_factory(product, qty=1)
    db_session.add(Payment(location_id=other_location.id, sale_id=elsewhere.id, cashier_id=CASHIER_ID,
                           amount=9999, method="CARD", created_at=NOW))
    db_session.commit()
    return payments


def test_list_payments_newest_first(db_session, location, posted_payments):
    listed = payment_service.list_payments(location.id)
    assert [p.id for p in listed] == [p.id for p in posted_payments]

    page = payment_service.list_payments(location.id, limit=1, offset=1)
    assert [p.id for p in page] == [posted_payments[1].id]
    assert len(payment_service.list_payments(location.id, limit=-5)) == 1


def test_payments_summary_windows(db_session, location, posted_payments):
    summary = payment_service.payments_summary(location.id, now=NOW)
    assert summary == {
        "today": {"count": 2, "total": 2000},
        "yesterday": {"count": 1, "total": 1000},
        "all": {"count": 3, "total": 3000},
    }


def test_payments_breakdown_by_method(db_session, location, posted_payments):
    assert payment_service.payments_breakdown(location.id, now=NOW) == [
        {"method": "CASH", "count": 2, "total": 2000},
        {"method": "MOMO", "count": 1, "total": 1000},
    ]
    assert payment_service.payments_breakdown(location.id, window="yesterday", now=NOW) == [
        {"method": "CASH", "count": 1, "total": 1000},
    ]
    with pytest.raises(ValueError):
        payment_service.payments_breakdown(location.id, window="lastweek", now=NOW)


def test_get_payment_for_sale(db_session, location, other_location, posted_payments):
    first = posted_payments[0]
    assert payment_service.get_payment_for_sale(location.id, first.sale_id).id == first.id

    with pytest.raises(PaymentError) as exc:
        payment_service.get_payment_for_sale(other_location.id, first.sale_id)
    assert exc.value.kind == ErrorKind.NOT_FOUND
    assert exc.value.context["sale_id"] == first.sale_id
