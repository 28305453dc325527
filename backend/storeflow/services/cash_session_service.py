# Overview: Service-layer operations for cash sessions; drawer open/close and reconciliation.

"""
Cash Session Service

WHY: Cash accountability per cashier. Every cash movement binds to the open
session of the cashier who handled it; closing the session reconciles the
counted drawer against the ledger.

RULES:
- At most one OPEN session per cashier per location.
- A session never reopens once CLOSED.
- Expected cash is derived from the cash ledger at close time
  (SUM IN - SUM OUT of CASH-method entries bound to the session).
- variance = counted - expected (positive = over, negative = short).
"""

from __future__ import annotations

from ..extensions import db
from ..errors import CashSessionError, ErrorKind
from ..models import CashSession
from storeflow.time_utils import utcnow
from .audit_service import write_audit
from .concurrency import lock_for_update, transactional
from .ledger_service import (
    DIRECTION_OUT,
    ENTRY_DIRECTIONS,
    ENTRY_OPENING_BALANCE,
    ENTRY_PETTY_CASH_IN,
    ENTRY_PETTY_CASH_OUT,
    ENTRY_VERSEMENT,
    METHOD_CASH,
    append_cash_entry,
    session_cash_balance,
    session_totals_by_type,
)

SESSION_OPEN = "OPEN"
SESSION_CLOSED = "CLOSED"

MOVEMENT_TYPES = (ENTRY_PETTY_CASH_IN, ENTRY_PETTY_CASH_OUT, ENTRY_VERSEMENT)


def _require_amount(value, *, allow_zero: bool, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CashSessionError(ErrorKind.BAD_AMOUNT, f"{field} must be an integer", **{field: value})
    if value < 0 or (value == 0 and not allow_zero):
        raise CashSessionError(ErrorKind.BAD_AMOUNT, f"{field} out of range", **{field: value})
    return value


# =============================================================================
# REGISTRY CONTRACT (consumed by payments, credit settlement, refunds)
# =============================================================================

def is_session_open(session_id: int | None, cashier_id: int, location_id: int) -> bool:
    """True when the session exists, is OPEN, belongs to the cashier and the location."""
    if session_id is None:
        return False
    found = db.session.query(CashSession.id).filter_by(
        id=session_id,
        cashier_id=cashier_id,
        location_id=location_id,
        status=SESSION_OPEN,
    ).first()
    return found is not None


def find_open_session_id(cashier_id: int, location_id: int) -> int | None:
    row = db.session.query(CashSession.id).filter_by(
        cashier_id=cashier_id,
        location_id=location_id,
        status=SESSION_OPEN,
    ).order_by(CashSession.id.desc()).first()
    return row[0] if row else None


def _locked_open_session(location_id: int, cashier_id: int, session_id: int) -> CashSession:
    session = lock_for_update(
        db.session.query(CashSession).filter_by(id=session_id, location_id=location_id)
    ).first()
    if session is None or session.status != SESSION_OPEN or session.cashier_id != cashier_id:
        raise CashSessionError(
            ErrorKind.NO_OPEN_SESSION,
            "No open cash session for this cashier",
            cash_session_id=session_id,
            cashier_id=cashier_id,
        )
    return session


# =============================================================================
# LIFECYCLE
# =============================================================================

def open_session(
    *,
    location_id: int,
    cashier_id: int,
    opening_balance: int = 0,
    note: str | None = None,
) -> CashSession:
    opening_balance = _require_amount(opening_balance, allow_zero=True, field="opening_balance")

    def _op():
        existing = find_open_session_id(cashier_id, location_id)
        if existing is not None:
            raise CashSessionError(
                ErrorKind.SESSION_ALREADY_OPEN,
                "Cashier already has an open session",
                cash_session_id=existing,
            )

        session = CashSession(
            location_id=location_id,
            cashier_id=cashier_id,
            status=SESSION_OPEN,
            opening_balance=opening_balance,
            opened_at=utcnow(),
            note=note,
        )
        db.session.add(session)
        db.session.flush()

        if opening_balance > 0:
            append_cash_entry(
                location_id=location_id,
                cashier_id=cashier_id,
                entry_type=ENTRY_OPENING_BALANCE,
                amount=opening_balance,
                method=METHOD_CASH,
                cash_session_id=session.id,
                note="Opening balance",
            )

        write_audit(
            location_id=location_id,
            actor_id=cashier_id,
            action="CASH_SESSION_OPEN",
            entity_type="cash_session",
            entity_id=session.id,
            description=f"Opened cash session #{session.id} with {opening_balance}",
            meta={"opening_balance": opening_balance},
        )
        return session

    return transactional(_op)


def record_movement(
    *,
    location_id: int,
    cashier_id: int,
    cash_session_id: int,
    movement_type: str,
    amount: int,
    note: str | None = None,
    reference: str | None = None,
):
    """
    Petty cash in/out or a versement (cash handed over) on an open session.

    OUT movements may not take the drawer below zero.
    """
    movement_type = (movement_type or "").strip().upper()
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"movement type must be one of {', '.join(MOVEMENT_TYPES)}")

    def _op():
        session = _locked_open_session(location_id, cashier_id, cash_session_id)
        value = _require_amount(amount, allow_zero=False, field="amount")

        if ENTRY_DIRECTIONS[movement_type] == DIRECTION_OUT:
            available = session_cash_balance(session.id)
            if value > available:
                raise CashSessionError(
                    ErrorKind.INSUFFICIENT_CASH,
                    "Not enough cash in the drawer",
                    cash_session_id=session.id,
                    available=available,
                    needed=value,
                )

        entry = append_cash_entry(
            location_id=location_id,
            cashier_id=cashier_id,
            entry_type=movement_type,
            amount=value,
            method=METHOD_CASH,
            cash_session_id=session.id,
            reference=reference,
            note=note,
        )

        write_audit(
            location_id=location_id,
            actor_id=cashier_id,
            action="CASH_MOVEMENT",
            entity_type="cash_session",
            entity_id=session.id,
            description=f"{movement_type} {value} on session #{session.id}",
            meta={"type": movement_type, "amount": value, "ledger_entry_id": entry.id},
        )
        return entry

    return transactional(_op)


def close_session(
    *,
    location_id: int,
    cashier_id: int,
    cash_session_id: int,
    counted_cash: int,
    note: str | None = None,
) -> CashSession:
    """Freeze expected/counted/variance and close the session."""
    def _op():
        session = _locked_open_session(location_id, cashier_id, cash_session_id)
        counted = _require_amount(counted_cash, allow_zero=True, field="counted_cash")

        expected = session_cash_balance(session.id)
        session.expected_cash = expected
        session.counted_cash = counted
        session.variance = counted - expected
        session.status = SESSION_CLOSED
        session.closed_at = utcnow()
        if note:
            session.note = note
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=cashier_id,
            action="CASH_SESSION_CLOSE",
            entity_type="cash_session",
            entity_id=session.id,
            description=f"Closed cash session #{session.id}: expected={expected} counted={counted}",
            meta={"expected_cash": expected, "counted_cash": counted, "variance": counted - expected},
        )
        return session

    return transactional(_op)


def session_summary(location_id: int, cash_session_id: int) -> dict:
    session = db.session.query(CashSession).filter_by(id=cash_session_id, location_id=location_id).first()
    if session is None:
        raise CashSessionError(ErrorKind.NOT_FOUND, "Cash session not found", cash_session_id=cash_session_id)
    return {
        "session": session.to_dict(),
        "cash_balance": session_cash_balance(session.id),
        "totals_by_type": session_totals_by_type(session.id),
    }
