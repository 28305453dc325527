# Overview: Service-layer operations for refunds; full reversal of a completed sale.

"""
Refund Service

A refund reverses a COMPLETED sale in full:
- every line goes back to inventory
- the sale total leaves the drawer (REFUND / OUT ledger entry)
- the sale becomes REFUNDED

One refund per sale: checked under the sale lock before the status
transition, backed by UNIQUE(refunds.sale_id). A repeat refund is always
AlreadyRefunded, never BadStatus.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ErrorKind, RefundError
from ..models import Refund, Sale
from storeflow.time_utils import utcnow
from .audit_service import write_audit
from .cash_session_service import find_open_session_id
from .concurrency import lock_for_update, transactional
from .inventory_service import apply_adjustment
from .ledger_service import ENTRY_REFUND, METHOD_CASH, MONEY_METHODS, append_cash_entry, normalize_method
from .state_machine import SaleEvent, next_sale_status


def _existing_refund(sale_id: int):
    return db.session.query(Refund.id).filter_by(sale_id=sale_id).first()


def create_refund(
    *,
    location_id: int,
    actor_id: int,
    sale_id: int,
    reason: str | None = None,
    method: str | None = None,
    reference: str | None = None,
) -> Refund:
    def _op():
        sale = lock_for_update(
            db.session.query(Sale).filter_by(id=sale_id, location_id=location_id)
        ).first()
        if sale is None:
            raise RefundError(ErrorKind.NOT_FOUND, "Sale not found", sale_id=sale_id)

        if _existing_refund(sale.id) is not None:
            raise RefundError(ErrorKind.ALREADY_REFUNDED, "Sale already refunded", sale_id=sale.id)

        target = next_sale_status(sale.status, SaleEvent.REFUND, RefundError)
        sale_ref = sale.id

        if not sale.items:
            raise RefundError(ErrorKind.BAD_STATUS, "Sale has no items to refund",
                              sale_id=sale.id, reason="NO_ITEMS")

        refund_method = normalize_method(method, default=METHOD_CASH)
        if refund_method not in MONEY_METHODS:
            raise RefundError(ErrorKind.BAD_PAYMENT_METHOD, "Unsupported refund method", method=method)

        session_id = None
        if refund_method == METHOD_CASH:
            session_id = find_open_session_id(actor_id, location_id)
            if session_id is None:
                raise RefundError(ErrorKind.NO_OPEN_SESSION, "Cash refund needs an open cash session",
                                  cashier_id=actor_id)

        for item in sale.items:
            apply_adjustment(
                location_id=location_id,
                product_id=item.product_id,
                delta=item.qty,
                reason=f"Refund sale #{sale.id}",
                actor_id=actor_id,
            )

        clean_reason = (reason or "").strip()[:300] or None
        clean_reference = (reference or "").strip()[:120] or None

        refund = Refund(
            location_id=location_id,
            sale_id=sale.id,
            amount=sale.total_amount,
            method=refund_method,
            reference=clean_reference,
            reason=clean_reason,
            created_by=actor_id,
            created_at=utcnow(),
        )
        db.session.add(refund)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # session is unusable until rollback
            raise RefundError(ErrorKind.ALREADY_REFUNDED, "Sale already refunded", sale_id=sale_ref) from exc

        if refund.amount > 0:
            append_cash_entry(
                location_id=location_id,
                cashier_id=actor_id,
                entry_type=ENTRY_REFUND,
                amount=refund.amount,
                method=refund_method,
                cash_session_id=session_id,
                sale_id=sale.id,
                reference=clean_reference,
                note=f"Refund: {clean_reason or '-'}",
            )

        sale.status = target.value
        sale.updated_at = utcnow()
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=actor_id,
            action="REFUND_CREATE",
            entity_type="sale",
            entity_id=sale.id,
            description=f"Refunded sale #{sale.id} ({refund_method} {refund.amount})",
            meta={"refund_id": refund.id, "amount": refund.amount, "method": refund_method,
                  "cash_session_id": session_id, "reason": clean_reason},
        )
        return refund

    return transactional(_op)


def list_refunds(location_id: int, limit: int = 50) -> list[Refund]:
    lim = min(max(int(limit or 50), 1), 200)
    return db.session.query(Refund).filter_by(location_id=location_id).order_by(
        Refund.id.desc()
    ).limit(lim).all()
