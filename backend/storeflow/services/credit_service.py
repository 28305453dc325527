# Overview: Service-layer operations for store credit; request, decision and settlement.

"""
Credit Service

WHY: A PENDING sale has left the store without payment. A credit records who
owes the total, a manager approves or rejects it, and settlement brings the
money in and completes the sale.

LIFECYCLE: OPEN -> APPROVED | REJECTED; APPROVED -> SETTLED
(transitions resolved by services/state_machine.py).

SETTLEMENT posts a payment-equivalent Payment row, so UNIQUE(payments.sale_id)
also guards against a sale being both paid and credit-settled.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import CreditError, ErrorKind
from ..models import Credit, Customer, Sale
from storeflow.time_utils import utcnow
from .audit_service import write_audit
from .cash_session_service import find_open_session_id
from .concurrency import lock_for_update, transactional
from .ledger_service import ENTRY_CREDIT_SETTLEMENT, METHOD_CASH, MONEY_METHODS, append_cash_entry, normalize_method
from .payment_service import insert_payment
from .state_machine import CreditEvent, CreditStatus, SaleEvent, SaleStatus, next_credit_status, next_sale_status

DECISIONS = {
    "APPROVE": CreditEvent.APPROVE,
    "REJECT": CreditEvent.REJECT,
}

MAX_PAGE_SIZE = 200


def _locked_credit(location_id: int, credit_id: int) -> Credit:
    credit = lock_for_update(
        db.session.query(Credit).filter_by(id=credit_id, location_id=location_id)
    ).first()
    if credit is None:
        raise CreditError(ErrorKind.NOT_FOUND, "Credit not found", credit_id=credit_id)
    return credit


def _existing_credit(sale_id: int):
    return db.session.query(Credit.id).filter_by(sale_id=sale_id).first()


def get_credit(location_id: int, credit_id: int) -> Credit:
    credit = db.session.query(Credit).filter_by(id=credit_id, location_id=location_id).first()
    if credit is None:
        raise CreditError(ErrorKind.NOT_FOUND, "Credit not found", credit_id=credit_id)
    return credit


def create_credit(
    *,
    location_id: int,
    seller_id: int,
    sale_id: int,
    customer_id: int,
    note: str | None = None,
) -> Credit:
    def _op():
        sale = lock_for_update(
            db.session.query(Sale).filter_by(id=sale_id, location_id=location_id)
        ).first()
        if sale is None:
            raise CreditError(ErrorKind.NOT_FOUND, "Sale not found", sale_id=sale_id)
        if sale.status != SaleStatus.PENDING.value:
            raise CreditError(ErrorKind.BAD_STATUS, "Credit requires a PENDING sale",
                              current=sale.status, sale_id=sale.id)
        sale_ref = sale.id

        customer = db.session.query(Customer).filter_by(id=customer_id, location_id=location_id).first()
        if customer is None:
            raise CreditError(ErrorKind.NOT_FOUND, "Customer not found", customer_id=customer_id)

        if _existing_credit(sale.id) is not None:
            raise CreditError(ErrorKind.DUPLICATE_CREDIT, "Credit already exists for this sale", sale_id=sale.id)

        credit = Credit(
            location_id=location_id,
            sale_id=sale.id,
            customer_id=customer.id,
            amount=sale.total_amount,
            status=CreditStatus.OPEN.value,
            created_by=seller_id,
            note=note,
            created_at=utcnow(),
        )
        db.session.add(credit)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise CreditError(ErrorKind.DUPLICATE_CREDIT, "Credit already exists for this sale",
                              sale_id=sale_ref) from exc

        write_audit(
            location_id=location_id,
            actor_id=seller_id,
            action="CREDIT_CREATE",
            entity_type="credit",
            entity_id=credit.id,
            description=f"Credit of {credit.amount} for sale #{sale.id} to {customer.name}",
            meta={"sale_id": sale.id, "customer_id": customer.id, "amount": credit.amount},
        )
        return credit

    return transactional(_op)


def approve_credit(
    *,
    location_id: int,
    manager_id: int,
    credit_id: int,
    decision: str,
    note: str | None = None,
) -> Credit:
    """Manager decision on an OPEN credit: APPROVE or REJECT."""
    def _op():
        credit = _locked_credit(location_id, credit_id)

        event = DECISIONS.get((decision or "").strip().upper())
        if event is None:
            raise CreditError(ErrorKind.BAD_DECISION, "decision must be APPROVE or REJECT", decision=decision)

        credit.status = next_credit_status(credit.status, event, CreditError).value
        credit.approved_by = manager_id
        credit.approved_at = utcnow()
        if note:
            credit.note = note
        db.session.flush()

        action = "CREDIT_APPROVE" if event == CreditEvent.APPROVE else "CREDIT_REJECT"
        write_audit(
            location_id=location_id,
            actor_id=manager_id,
            action=action,
            entity_type="credit",
            entity_id=credit.id,
            description=f"Credit #{credit.id} {credit.status}",
            meta={"sale_id": credit.sale_id, "note": note},
        )
        return credit

    return transactional(_op)


def settle_credit(
    *,
    location_id: int,
    cashier_id: int,
    credit_id: int,
    method: str | None = None,
    note: str | None = None,
) -> Credit:
    """
    Customer pays an APPROVED credit; the sale completes.

    CASH needs the cashier's open session; other methods post without one.
    """
    def _op():
        credit = _locked_credit(location_id, credit_id)

        if credit.status == CreditStatus.SETTLED.value:
            raise CreditError(ErrorKind.BAD_STATUS, "Credit already settled",
                              current=credit.status, credit_id=credit.id)
        if credit.status != CreditStatus.APPROVED.value:
            raise CreditError(ErrorKind.NOT_APPROVED, "Credit is not approved",
                              current=credit.status, credit_id=credit.id)

        sale = lock_for_update(
            db.session.query(Sale).filter_by(id=credit.sale_id, location_id=location_id)
        ).first()
        if sale is None:
            raise CreditError(ErrorKind.NOT_FOUND, "Sale not found", sale_id=credit.sale_id)
        sale_target = next_sale_status(sale.status, SaleEvent.SETTLE_CREDIT, CreditError)

        pay_method = normalize_method(method, default=METHOD_CASH)
        if pay_method not in MONEY_METHODS:
            raise CreditError(ErrorKind.BAD_PAYMENT_METHOD, "Unsupported payment method", method=method)

        session_id = None
        if pay_method == METHOD_CASH:
            session_id = find_open_session_id(cashier_id, location_id)
            if session_id is None:
                raise CreditError(ErrorKind.NO_OPEN_SESSION, "Cash settlement needs an open cash session",
                                  cashier_id=cashier_id)

        payment = insert_payment(
            sale=sale,
            cashier_id=cashier_id,
            amount=credit.amount,
            method=pay_method,
            cash_session_id=session_id,
            note=note or f"Credit #{credit.id} settlement",
            error_cls=CreditError,
        )

        if credit.amount > 0:
            append_cash_entry(
                location_id=location_id,
                cashier_id=cashier_id,
                entry_type=ENTRY_CREDIT_SETTLEMENT,
                amount=credit.amount,
                method=pay_method,
                cash_session_id=session_id,
                sale_id=sale.id,
                payment_id=payment.id,
                credit_id=credit.id,
                note=note,
            )

        now = utcnow()
        credit.status = next_credit_status(credit.status, CreditEvent.SETTLE, CreditError).value
        credit.settled_by = cashier_id
        credit.settled_at = now
        sale.status = sale_target.value
        sale.completed_at = now
        sale.updated_at = now
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=cashier_id,
            action="CREDIT_SETTLE",
            entity_type="credit",
            entity_id=credit.id,
            description=f"Settled credit #{credit.id} ({pay_method} {credit.amount}) for sale #{sale.id}",
            meta={"sale_id": sale.id, "payment_id": payment.id, "method": pay_method,
                  "cash_session_id": session_id},
        )
        return credit

    return transactional(_op)


def list_credits(
    location_id: int,
    *,
    status: str | None = None,
    limit: int = 50,
    cursor: int | None = None,
) -> dict:
    """
    Newest-first credits with id cursor pagination.

    Returns:
        {"items": [...], "next_cursor": id | None}
    """
    lim = min(max(int(limit or 50), 1), MAX_PAGE_SIZE)

    query = db.session.query(Credit).filter_by(location_id=location_id)
    if status:
        query = query.filter_by(status=status.strip().upper())
    if cursor is not None:
        query = query.filter(Credit.id < int(cursor))

    rows = query.order_by(Credit.id.desc()).limit(lim + 1).all()
    has_more = len(rows) > lim
    rows = rows[:lim]
    return {
        "items": [c.to_dict() for c in rows],
        "next_cursor": rows[-1].id if has_more and rows else None,
    }
