# Overview: Tagged error taxonomy shared by every workflow service.

"""
Workflow errors

Every failure raised by the core carries an ErrorKind plus structured context
(e.g. available vs. needed quantity). The core never decides transport status
codes; ErrorKind.category gives the stable client-visible class and the HTTP
adapter maps it to a status.

CATEGORIES:
- validation: request is malformed or violates a pricing/amount rule
- missing: referenced entity does not exist in the caller's location
- conflict: entity exists but its current state forbids the action
- forbidden: caller is not the owner of the entity
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    BAD_STATUS = "BadStatus"
    BAD_QTY = "BadQty"
    BAD_QTY_CHANGE = "BadQtyChange"
    BAD_DISCOUNT = "BadDiscount"
    DISCOUNT_TOO_HIGH = "DiscountTooHigh"
    SALE_DISCOUNT_TOO_HIGH = "SaleDiscountTooHigh"
    PRICE_TOO_HIGH = "PriceTooHigh"
    BAD_PRICE = "BadPrice"
    PRODUCT_NOT_FOUND = "ProductNotFound"
    NO_ITEMS = "NoItems"
    INSUFFICIENT_INVENTORY_STOCK = "InsufficientInventoryStock"
    INSUFFICIENT_STOCK = "InsufficientStock"
    INSUFFICIENT_CASH = "InsufficientCash"
    BAD_AMOUNT = "BadAmount"
    NO_OPEN_SESSION = "NoOpenSession"
    SESSION_ALREADY_OPEN = "SessionAlreadyOpen"
    DUPLICATE_PAYMENT = "DuplicatePayment"
    DUPLICATE_CREDIT = "DuplicateCredit"
    ALREADY_REFUNDED = "AlreadyRefunded"
    NOT_APPROVED = "NotApproved"
    BAD_DECISION = "BadDecision"
    FORBIDDEN = "Forbidden"
    BAD_PAYMENT_METHOD = "BadPaymentMethod"

    @property
    def category(self) -> str:
        return _CATEGORIES[self]


_CATEGORIES = {
    ErrorKind.NOT_FOUND: "missing",
    ErrorKind.PRODUCT_NOT_FOUND: "missing",
    ErrorKind.FORBIDDEN: "forbidden",
    ErrorKind.BAD_QTY: "validation",
    ErrorKind.BAD_QTY_CHANGE: "validation",
    ErrorKind.BAD_DISCOUNT: "validation",
    ErrorKind.DISCOUNT_TOO_HIGH: "validation",
    ErrorKind.SALE_DISCOUNT_TOO_HIGH: "validation",
    ErrorKind.PRICE_TOO_HIGH: "validation",
    ErrorKind.BAD_PRICE: "validation",
    ErrorKind.NO_ITEMS: "validation",
    ErrorKind.BAD_AMOUNT: "validation",
    ErrorKind.BAD_DECISION: "validation",
    ErrorKind.BAD_PAYMENT_METHOD: "validation",
    ErrorKind.BAD_STATUS: "conflict",
    ErrorKind.INSUFFICIENT_INVENTORY_STOCK: "conflict",
    ErrorKind.INSUFFICIENT_STOCK: "conflict",
    ErrorKind.INSUFFICIENT_CASH: "conflict",
    ErrorKind.NO_OPEN_SESSION: "conflict",
    ErrorKind.SESSION_ALREADY_OPEN: "conflict",
    ErrorKind.DUPLICATE_PAYMENT: "conflict",
    ErrorKind.DUPLICATE_CREDIT: "conflict",
    ErrorKind.ALREADY_REFUNDED: "conflict",
    ErrorKind.NOT_APPROVED: "conflict",
}


class WorkflowError(Exception):
    """Raised for any rejected workflow operation."""

    def __init__(self, kind: ErrorKind, message: str | None = None, **context):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value
        self.context = context

    @property
    def category(self) -> str:
        return self.kind.category

    def to_dict(self) -> dict:
        return {
            "error": self.kind.value,
            "message": self.message,
            "context": self.context,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind.value} context={self.context!r}>"


class InventoryError(WorkflowError):
    """Raised for inventory adjustment errors."""


class CatalogError(WorkflowError):
    """Raised for product/customer catalog errors."""


class SaleError(WorkflowError):
    """Raised for sale workflow errors."""


class PaymentError(WorkflowError):
    """Raised for payment posting errors."""


class CreditError(WorkflowError):
    """Raised for credit workflow errors."""


class RefundError(WorkflowError):
    """Raised for refund errors."""


class CashSessionError(WorkflowError):
    """Raised for cash session errors."""


class ImmutableRecordError(RuntimeError):
    """Attempted to update or delete an append-only row."""

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} is append-only and cannot be modified")
