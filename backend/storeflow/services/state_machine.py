"""
Sale and credit lifecycles as closed transition tables.

Every status change in the workflow services goes through next_sale_status()
or next_credit_status(); a (state, event) pair missing from the table is a
BadStatus rejection.

SALE:
    DRAFT --FULFILL--> FULFILLED
    FULFILLED | PENDING | AWAITING_PAYMENT_RECORD --MARK_PAID--> AWAITING_PAYMENT_RECORD
    FULFILLED | PENDING | AWAITING_PAYMENT_RECORD --MARK_PENDING--> PENDING
    AWAITING_PAYMENT_RECORD --RECORD_PAYMENT--> COMPLETED
    PENDING --SETTLE_CREDIT--> COMPLETED
    DRAFT | FULFILLED | PENDING | AWAITING_PAYMENT_RECORD --CANCEL--> CANCELLED
    COMPLETED --REFUND--> REFUNDED

CREDIT:
    OPEN --APPROVE--> APPROVED
    OPEN --REJECT--> REJECTED
    APPROVED --SETTLE--> SETTLED
    OPEN | APPROVED --VOID--> REJECTED   (sale cancelled underneath the credit)
"""

from __future__ import annotations

from enum import Enum

from ..errors import ErrorKind, WorkflowError


class SaleStatus(str, Enum):
    DRAFT = "DRAFT"
    FULFILLED = "FULFILLED"
    AWAITING_PAYMENT_RECORD = "AWAITING_PAYMENT_RECORD"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class SaleEvent(str, Enum):
    FULFILL = "FULFILL"
    MARK_PAID = "MARK_PAID"
    MARK_PENDING = "MARK_PENDING"
    RECORD_PAYMENT = "RECORD_PAYMENT"
    SETTLE_CREDIT = "SETTLE_CREDIT"
    CANCEL = "CANCEL"
    REFUND = "REFUND"


class CreditStatus(str, Enum):
    OPEN = "OPEN"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SETTLED = "SETTLED"


class CreditEvent(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    SETTLE = "SETTLE"
    VOID = "VOID"


_MARKABLE = (SaleStatus.FULFILLED, SaleStatus.PENDING, SaleStatus.AWAITING_PAYMENT_RECORD)

SALE_TRANSITIONS: dict[tuple[SaleStatus, SaleEvent], SaleStatus] = {
    (SaleStatus.DRAFT, SaleEvent.FULFILL): SaleStatus.FULFILLED,
    **{(s, SaleEvent.MARK_PAID): SaleStatus.AWAITING_PAYMENT_RECORD for s in _MARKABLE},
    **{(s, SaleEvent.MARK_PENDING): SaleStatus.PENDING for s in _MARKABLE},
    (SaleStatus.AWAITING_PAYMENT_RECORD, SaleEvent.RECORD_PAYMENT): SaleStatus.COMPLETED,
    (SaleStatus.PENDING, SaleEvent.SETTLE_CREDIT): SaleStatus.COMPLETED,
    (SaleStatus.DRAFT, SaleEvent.CANCEL): SaleStatus.CANCELLED,
    **{(s, SaleEvent.CANCEL): SaleStatus.CANCELLED for s in _MARKABLE},
    (SaleStatus.COMPLETED, SaleEvent.REFUND): SaleStatus.REFUNDED,
}

CREDIT_TRANSITIONS: dict[tuple[CreditStatus, CreditEvent], CreditStatus] = {
    (CreditStatus.OPEN, CreditEvent.APPROVE): CreditStatus.APPROVED,
    (CreditStatus.OPEN, CreditEvent.REJECT): CreditStatus.REJECTED,
    (CreditStatus.APPROVED, CreditEvent.SETTLE): CreditStatus.SETTLED,
    (CreditStatus.OPEN, CreditEvent.VOID): CreditStatus.REJECTED,
    (CreditStatus.APPROVED, CreditEvent.VOID): CreditStatus.REJECTED,
}

# Statuses whose lines have already been deducted from inventory
STOCK_HELD_STATUSES = frozenset(_MARKABLE)

TERMINAL_SALE_STATUSES = frozenset({SaleStatus.CANCELLED, SaleStatus.REFUNDED})


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise WorkflowError(ErrorKind.BAD_STATUS, f"Unknown status {value!r}", current=value)


def allowed_sale_events(status) -> set[SaleEvent]:
    current = _coerce(SaleStatus, status)
    if current in TERMINAL_SALE_STATUSES:
        return set()
    return {event for (state, event) in SALE_TRANSITIONS if state == current}


def next_sale_status(status, event: SaleEvent, error_cls=WorkflowError) -> SaleStatus:
    """Resolve (status, event) to the next status or raise BadStatus."""
    current = _coerce(SaleStatus, status)
    target = SALE_TRANSITIONS.get((current, event))
    if target is None:
        raise error_cls(
            ErrorKind.BAD_STATUS,
            f"Cannot {event.value} a sale in status {current.value}",
            current=current.value,
            event=event.value,
        )
    return target


def next_credit_status(status, event: CreditEvent, error_cls=WorkflowError) -> CreditStatus:
    current = _coerce(CreditStatus, status)
    target = CREDIT_TRANSITIONS.get((current, event))
    if target is None:
        raise error_cls(
            ErrorKind.BAD_STATUS,
            f"Cannot {event.value} a credit in status {current.value}",
            current=current.value,
            event=event.value,
        )
    return target
