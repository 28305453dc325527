# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Posting Service

WHY: A seller's PAID mark is only a declaration. The sale completes when a
cashier with an open session records the money.

EXACTLY-ONCE:
- One payment per sale. The service pre-checks for an existing payment under
  the sale row lock; UNIQUE(payments.sale_id) rejects anything that races past
  the pre-check, surfaced as DuplicatePayment.
- Payment row, SALE_PAYMENT ledger entry, sale status and audit entry commit
  together or not at all.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ErrorKind, PaymentError
from ..models import Sale, Payment
from storeflow.time_utils import utcnow
from .audit_service import write_audit
from .cash_session_service import is_session_open
from .concurrency import lock_for_update, transactional
from .ledger_service import ENTRY_SALE_PAYMENT, METHOD_CASH, MONEY_METHODS, append_cash_entry, normalize_method
from .state_machine import SaleEvent, next_sale_status


def _existing_payment(sale_id: int) -> Payment | None:
    return db.session.query(Payment).filter_by(sale_id=sale_id).first()


def insert_payment(
    *,
    sale: Sale,
    cashier_id: int,
    amount: int,
    method: str,
    cash_session_id: int | None,
    note: str | None,
    error_cls=PaymentError,
) -> Payment:
    """
    Insert the single payment row for a sale (no commit).

    Shared with credit settlement, which posts a payment-equivalent row.
    """
    sale_id = sale.id
    if _existing_payment(sale_id) is not None:
        raise error_cls(ErrorKind.DUPLICATE_PAYMENT, "Payment already recorded for this sale", sale_id=sale_id)

    payment = Payment(
        location_id=sale.location_id,
        sale_id=sale_id,
        cashier_id=cashier_id,
        cash_session_id=cash_session_id,
        amount=amount,
        method=method,
        note=note,
        created_at=utcnow(),
    )
    db.session.add(payment)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # session is unusable until rollback; only locals from here on
        raise error_cls(
            ErrorKind.DUPLICATE_PAYMENT,
            "Payment already recorded for this sale",
            sale_id=sale_id,
        ) from exc
    return payment


def record_payment(
    *,
    location_id: int,
    cashier_id: int,
    sale_id: int,
    amount: int,
    cash_session_id: int | None,
    method: str | None = None,
    note: str | None = None,
) -> Payment:
    """
    Record the payment for an AWAITING_PAYMENT_RECORD sale and complete it.

    Checks, in order:
        NotFound -> DuplicatePayment -> BadStatus -> BadAmount
        -> BadPaymentMethod -> NoOpenSession

    Requests that lose the race for the sale lock fail with DuplicatePayment.
    """
    def _op():
        sale = lock_for_update(
            db.session.query(Sale).filter_by(id=sale_id, location_id=location_id)
        ).first()
        if sale is None:
            raise PaymentError(ErrorKind.NOT_FOUND, "Sale not found", sale_id=sale_id)

        if _existing_payment(sale.id) is not None:
            raise PaymentError(ErrorKind.DUPLICATE_PAYMENT, "Payment already recorded for this sale",
                               sale_id=sale.id, current=sale.status)

        target = next_sale_status(sale.status, SaleEvent.RECORD_PAYMENT, PaymentError)

        if isinstance(amount, bool) or not isinstance(amount, int) or amount != sale.total_amount:
            raise PaymentError(
                ErrorKind.BAD_AMOUNT,
                "Amount must equal the sale total",
                expected=sale.total_amount,
                got=amount,
            )

        pay_method = normalize_method(method, default=sale.payment_method or METHOD_CASH)
        if pay_method not in MONEY_METHODS:
            raise PaymentError(ErrorKind.BAD_PAYMENT_METHOD, "Unsupported payment method", method=method)

        if not is_session_open(cash_session_id, cashier_id, location_id):
            raise PaymentError(
                ErrorKind.NO_OPEN_SESSION,
                "No open cash session for this cashier",
                cash_session_id=cash_session_id,
            )

        payment = insert_payment(
            sale=sale,
            cashier_id=cashier_id,
            amount=amount,
            method=pay_method,
            cash_session_id=cash_session_id,
            note=note,
        )

        if amount > 0:
            append_cash_entry(
                location_id=location_id,
                cashier_id=cashier_id,
                entry_type=ENTRY_SALE_PAYMENT,
                amount=amount,
                method=pay_method,
                cash_session_id=cash_session_id,
                sale_id=sale.id,
                payment_id=payment.id,
                note=note,
            )

        now = utcnow()
        sale.status = target.value
        sale.completed_at = now
        sale.updated_at = now
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=cashier_id,
            action="PAYMENT_RECORD",
            entity_type="sale",
            entity_id=sale.id,
            description=f"Recorded {pay_method} payment of {amount} for sale #{sale.id}",
            meta={"payment_id": payment.id, "amount": amount, "method": pay_method,
                  "cash_session_id": cash_session_id},
        )
        return payment

    return transactional(_op)


# =============================================================================
# READS
# =============================================================================

SUMMARY_WINDOWS = ("today", "yesterday", "all")


def list_payments(location_id: int, limit: int = 100, offset: int = 0) -> list[Payment]:
    """Newest-first payments of a location, limit clamped to 1-500."""
    lim = min(max(int(limit or 100), 1), 500)
    off = max(int(offset or 0), 0)
    return db.session.query(Payment).filter_by(location_id=location_id).order_by(
        Payment.created_at.desc(), Payment.id.desc()
    ).offset(off).limit(lim).all()


def _window_bounds(window: str, now=None):
    """(start, end) in naive UTC for a summary window; None means unbounded."""
    now = now or utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if window == "today":
        return today, None
    if window == "yesterday":
        return today - timedelta(days=1), today
    if window == "all":
        return None, None
    raise ValueError(f"window must be one of {', '.join(SUMMARY_WINDOWS)}")


def _windowed(query, window: str, now=None):
    start, end = _window_bounds(window, now)
    if start is not None:
        query = query.filter(Payment.created_at >= start)
    if end is not None:
        query = query.filter(Payment.created_at < end)
    return query


def payments_summary(location_id: int, now=None) -> dict:
    """
    Payment count and total for today, yesterday and all time (UTC days).

    Returns:
        {"today": {"count", "total"}, "yesterday": {...}, "all": {...}}
    """
    out = {}
    for window in SUMMARY_WINDOWS:
        query = db.session.query(
            func.count(Payment.id),
            func.coalesce(func.sum(Payment.amount), 0),
        ).filter(Payment.location_id == location_id)
        count, total = _windowed(query, window, now).one()
        out[window] = {"count": int(count or 0), "total": int(total or 0)}
    return out


def payments_breakdown(location_id: int, window: str = "all", now=None) -> list[dict]:
    """Per-method count and total within a window, ordered by method."""
    query = db.session.query(
        Payment.method,
        func.count(Payment.id),
        func.coalesce(func.sum(Payment.amount), 0),
    ).filter(Payment.location_id == location_id)
    rows = _windowed(query, window, now).group_by(Payment.method).order_by(Payment.method.asc()).all()
    return [{"method": method, "count": int(count), "total": int(total)} for method, count, total in rows]


def get_payment_for_sale(location_id: int, sale_id: int) -> Payment:
    payment = db.session.query(Payment).filter_by(location_id=location_id, sale_id=sale_id).first()
    if payment is None:
        raise PaymentError(ErrorKind.NOT_FOUND, "No payment recorded for this sale", sale_id=sale_id)
    return payment
