# Overview: Service-layer operations for the cash ledger; append-only writes and derived balances.

from __future__ import annotations

from sqlalchemy import case, func

from ..extensions import db
from ..models import CashLedgerEntry
from storeflow.time_utils import utcnow
"""
Cash Ledger Invariants (authoritative)

- Append-only: entries are never updated or deleted (ORM listeners enforce it).
- amount is always positive; direction (IN/OUT) carries the sign.
- Entries are written inside the same DB transaction as the business mutation.
- Session cash balance is derived: SUM(IN) - SUM(OUT) over CASH-method entries
  bound to the session. It is never stored incrementally.
"""


# =============================================================================
# ENTRY TYPES / DIRECTIONS / METHODS (CONSTANTS)
# =============================================================================

DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"

ENTRY_SALE_PAYMENT = "SALE_PAYMENT"
ENTRY_CREDIT_SETTLEMENT = "CREDIT_SETTLEMENT"
ENTRY_REFUND = "REFUND"
ENTRY_OPENING_BALANCE = "OPENING_BALANCE"
ENTRY_PETTY_CASH_IN = "PETTY_CASH_IN"
ENTRY_PETTY_CASH_OUT = "PETTY_CASH_OUT"
ENTRY_VERSEMENT = "VERSEMENT"

ENTRY_DIRECTIONS = {
    ENTRY_SALE_PAYMENT: DIRECTION_IN,
    ENTRY_CREDIT_SETTLEMENT: DIRECTION_IN,
    ENTRY_REFUND: DIRECTION_OUT,
    ENTRY_OPENING_BALANCE: DIRECTION_IN,
    ENTRY_PETTY_CASH_IN: DIRECTION_IN,
    ENTRY_PETTY_CASH_OUT: DIRECTION_OUT,
    ENTRY_VERSEMENT: DIRECTION_OUT,
}

METHOD_CASH = "CASH"
METHOD_MOMO = "MOMO"
METHOD_CARD = "CARD"
METHOD_BANK = "BANK"
METHOD_OTHER = "OTHER"

# Methods accepted when money actually moves (payment, settlement, refund)
MONEY_METHODS = (METHOD_CASH, METHOD_MOMO, METHOD_CARD, METHOD_BANK, METHOD_OTHER)

# Methods a seller may declare when marking a sale PAID
MARK_PAID_METHODS = (METHOD_CASH, METHOD_MOMO, METHOD_BANK)


def normalize_method(value: str | None, default: str | None = METHOD_CASH) -> str | None:
    if value is None or not str(value).strip():
        return default
    return str(value).strip().upper()


def append_cash_entry(
    *,
    location_id: int,
    cashier_id: int,
    entry_type: str,
    amount: int,
    method: str = METHOD_CASH,
    cash_session_id: int | None = None,
    sale_id: int | None = None,
    payment_id: int | None = None,
    credit_id: int | None = None,
    reference: str | None = None,
    note: str | None = None,
) -> CashLedgerEntry:
    """
    Append-only cash ledger entry.

    - Direction is implied by the entry type.
    - No commit; flushes so the id is available to the caller.
    """
    direction = ENTRY_DIRECTIONS.get(entry_type)
    if direction is None:
        raise ValueError(f"Unknown cash ledger entry type {entry_type!r}")
    if amount is None or amount <= 0:
        raise ValueError("Cash ledger amount must be positive")

    entry = CashLedgerEntry(
        location_id=location_id,
        cashier_id=cashier_id,
        cash_session_id=cash_session_id,
        type=entry_type,
        direction=direction,
        amount=amount,
        method=method,
        reference=reference[:120] if reference else None,
        sale_id=sale_id,
        payment_id=payment_id,
        credit_id=credit_id,
        note=note,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def session_cash_balance(cash_session_id: int) -> int:
    """Cash currently expected in the drawer for a session, from the ledger."""
    signed = case(
        (CashLedgerEntry.direction == DIRECTION_IN, CashLedgerEntry.amount),
        else_=-CashLedgerEntry.amount,
    )
    total = db.session.query(func.coalesce(func.sum(signed), 0)).filter(
        CashLedgerEntry.cash_session_id == cash_session_id,
        CashLedgerEntry.method == METHOD_CASH,
    ).scalar()
    return int(total or 0)


def session_totals_by_type(cash_session_id: int) -> dict[str, int]:
    """Per-entry-type totals for a session (all methods)."""
    rows = db.session.query(
        CashLedgerEntry.type,
        func.coalesce(func.sum(CashLedgerEntry.amount), 0),
    ).filter(
        CashLedgerEntry.cash_session_id == cash_session_id,
    ).group_by(CashLedgerEntry.type).all()
    return {entry_type: int(total) for entry_type, total in rows}


def list_entries(
    location_id: int,
    *,
    cash_session_id: int | None = None,
    sale_id: int | None = None,
    limit: int = 200,
) -> list[CashLedgerEntry]:
    query = db.session.query(CashLedgerEntry).filter_by(location_id=location_id)
    if cash_session_id is not None:
        query = query.filter_by(cash_session_id=cash_session_id)
    if sale_id is not None:
        query = query.filter_by(sale_id=sale_id)
    lim = min(max(int(limit or 200), 1), 500)
    return query.order_by(CashLedgerEntry.id.desc()).limit(lim).all()
