# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sales Service: document-first sale processing

WHY: Separates sale intent from stock movement. A seller records the sale as
DRAFT with no inventory effect; the store keeper fulfills it, which deducts
stock; the seller then marks it PAID (awaiting a cashier) or PENDING (credit).

LIFECYCLE: see services/state_machine.py. Every status change goes through
next_sale_status(); this module never compares status strings to decide a
transition.

PRICING (integers in minor units, half-up rounding):
- line:  base = unit_price * qty
         pct_disc = round(clamp(pct, 0, 100) * base / 100)
         line_total = base - clamp(pct_disc + flat, 0, base)
- sale:  total = subtotal - clamp(round(subtotal * pct / 100) + flat, 0, subtotal)
- The sale-level percent is bounded by the smallest max_discount_percent of
  the products on the sale.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..extensions import db
from ..errors import ErrorKind, InventoryError, SaleError
from ..models import Sale, SaleItem, Product, Customer, Credit
from storeflow.time_utils import utcnow
from .audit_service import write_audit
from .concurrency import lock_for_update, transactional
from .inventory_service import apply_adjustment
from .ledger_service import MARK_PAID_METHODS, normalize_method
from .state_machine import (
    CreditEvent,
    CreditStatus,
    SaleEvent,
    SaleStatus,
    STOCK_HELD_STATUSES,
    next_credit_status,
    next_sale_status,
)

MARK_TARGETS = ("PAID", "PENDING")

# Credits that keep a PENDING sale from being re-marked PAID
_BLOCKING_CREDIT_STATUSES = (
    CreditStatus.OPEN.value,
    CreditStatus.APPROVED.value,
    CreditStatus.SETTLED.value,
)


# =============================================================================
# PRICING
# =============================================================================

def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _clamp(value, low, high):
    return max(low, min(high, value))


def _as_decimal(value, field: str) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, bool):
        raise SaleError(ErrorKind.BAD_DISCOUNT, f"{field} must be a number", **{field: value})
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise SaleError(ErrorKind.BAD_DISCOUNT, f"{field} must be a number", **{field: value})
    if not d.is_finite():
        raise SaleError(ErrorKind.BAD_DISCOUNT, f"{field} must be a finite number", **{field: str(value)})
    return d


def _as_int(value, kind: ErrorKind, field: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise SaleError(kind, f"{field} must be an integer", **{field: value})
    return value


@dataclass(frozen=True)
class LineComputation:
    product_id: int
    qty: int
    unit_price: int
    discount_percent: Decimal
    discount_amount: int
    line_total: int


def compute_line(
    product: Product,
    qty,
    unit_price=None,
    discount_percent=None,
    discount_amount=None,
) -> LineComputation:
    """
    Validate and price one sale line against its product.

    Raises:
        SaleError(BadQty): qty is not a positive integer
        SaleError(BadDiscount): negative price, percent or flat discount
        SaleError(PriceTooHigh): unit price above the selling price
        SaleError(DiscountTooHigh): percent above the product maximum
    """
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise SaleError(ErrorKind.BAD_QTY, "qty must be a positive integer",
                        product_id=product.id, qty=qty)

    price = product.selling_price if unit_price is None else _as_int(unit_price, ErrorKind.BAD_DISCOUNT, "unit_price")
    if price < 0:
        raise SaleError(ErrorKind.BAD_DISCOUNT, "unit_price cannot be negative",
                        product_id=product.id, unit_price=price)
    if price > product.selling_price:
        raise SaleError(ErrorKind.PRICE_TOO_HIGH, "unit_price above selling price",
                        product_id=product.id, unit_price=price, selling_price=product.selling_price)

    pct = _as_decimal(discount_percent, "discount_percent")
    flat = _as_int(discount_amount, ErrorKind.BAD_DISCOUNT, "discount_amount")
    if pct < 0 or flat < 0:
        raise SaleError(ErrorKind.BAD_DISCOUNT, "discounts cannot be negative",
                        product_id=product.id, discount_percent=str(pct), discount_amount=flat)

    max_pct = Decimal(str(product.max_discount_percent or 0))
    if pct > max_pct:
        raise SaleError(ErrorKind.DISCOUNT_TOO_HIGH, "discount above product maximum",
                        product_id=product.id, discount_percent=str(pct), max_discount_percent=str(max_pct))

    base = price * qty
    pct_safe = _clamp(pct, Decimal(0), Decimal(100))
    pct_disc = _round_half_up(Decimal(base) * pct_safe / 100)
    total_disc = _clamp(pct_disc + flat, 0, base)
    line_total = base - total_disc
    if line_total < 0:
        raise SaleError(ErrorKind.BAD_DISCOUNT, "line total cannot be negative", product_id=product.id)

    return LineComputation(
        product_id=product.id,
        qty=qty,
        unit_price=price,
        discount_percent=pct_safe,
        discount_amount=flat,
        line_total=line_total,
    )


def apply_sale_discount(
    subtotal: int,
    discount_percent=None,
    discount_amount=None,
    max_percent: Decimal | None = None,
) -> tuple[Decimal, int, int]:
    """
    Apply the sale-level discount to a subtotal.

    Returns:
        (discount_percent, discount_amount, total_amount)
    """
    pct = _as_decimal(discount_percent, "discount_percent")
    flat = _as_int(discount_amount, ErrorKind.BAD_DISCOUNT, "discount_amount")
    if pct < 0 or flat < 0:
        raise SaleError(ErrorKind.BAD_DISCOUNT, "discounts cannot be negative",
                        discount_percent=str(pct), discount_amount=flat)
    if max_percent is not None and pct > max_percent:
        raise SaleError(ErrorKind.SALE_DISCOUNT_TOO_HIGH, "sale discount above the lowest product maximum",
                        discount_percent=str(pct), max_discount_percent=str(max_percent))

    pct_safe = _clamp(pct, Decimal(0), Decimal(100))
    pct_disc = _round_half_up(Decimal(subtotal) * pct_safe / 100)
    total_disc = _clamp(pct_disc + flat, 0, subtotal)
    return pct_safe, flat, subtotal - total_disc


# =============================================================================
# LOOKUPS
# =============================================================================

def _locked_sale(location_id: int, sale_id: int) -> Sale:
    sale = lock_for_update(
        db.session.query(Sale).filter_by(id=sale_id, location_id=location_id)
    ).first()
    if sale is None:
        raise SaleError(ErrorKind.NOT_FOUND, "Sale not found", sale_id=sale_id)
    return sale


def get_sale(location_id: int, sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id, location_id=location_id).first()
    if sale is None:
        raise SaleError(ErrorKind.NOT_FOUND, "Sale not found", sale_id=sale_id)
    return sale


def _load_products(location_id: int, product_ids: list) -> dict[int, Product]:
    rows = db.session.query(Product).filter(
        Product.location_id == location_id,
        Product.id.in_(product_ids),
    ).all()
    return {p.id: p for p in rows}


# =============================================================================
# WORKFLOW
# =============================================================================

def create_sale(
    *,
    location_id: int,
    seller_id: int,
    items: list[dict],
    customer_id: int | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    note: str | None = None,
    discount_percent=None,
    discount_amount=None,
) -> Sale:
    """
    Record a DRAFT sale. No inventory is touched.

    Each item: {"product_id", "qty", "unit_price"?, "discount_percent"?, "discount_amount"?}
    """
    if not items:
        raise SaleError(ErrorKind.NO_ITEMS, "Sale has no items")

    def _op():
        products = _load_products(location_id, [it.get("product_id") for it in items])

        lines: list[LineComputation] = []
        for it in items:
            product = products.get(it.get("product_id"))
            if product is None or not product.is_active:
                raise SaleError(ErrorKind.PRODUCT_NOT_FOUND, "Product not found",
                                product_id=it.get("product_id"))
            lines.append(compute_line(
                product,
                it.get("qty"),
                unit_price=it.get("unit_price"),
                discount_percent=it.get("discount_percent"),
                discount_amount=it.get("discount_amount"),
            ))

        strict_max = min(Decimal(str(products[ln.product_id].max_discount_percent or 0)) for ln in lines)
        subtotal = sum(ln.line_total for ln in lines)
        pct, flat, total = apply_sale_discount(subtotal, discount_percent, discount_amount, max_percent=strict_max)

        if customer_id is not None:
            customer = db.session.query(Customer).filter_by(id=customer_id, location_id=location_id).first()
            if customer is None:
                raise SaleError(ErrorKind.NOT_FOUND, "Customer not found", customer_id=customer_id)

        now = utcnow()
        sale = Sale(
            location_id=location_id,
            seller_id=seller_id,
            customer_id=customer_id,
            customer_name=(customer_name or "").strip() or None,
            customer_phone=(customer_phone or "").strip() or None,
            status=SaleStatus.DRAFT.value,
            subtotal_amount=subtotal,
            discount_percent=pct,
            discount_amount=flat,
            total_amount=total,
            note=note,
            created_at=now,
            updated_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for ln in lines:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=ln.product_id,
                qty=ln.qty,
                unit_price=ln.unit_price,
                discount_percent=ln.discount_percent,
                discount_amount=ln.discount_amount,
                line_total=ln.line_total,
            ))
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=seller_id,
            action="SALE_CREATE",
            entity_type="sale",
            entity_id=sale.id,
            description=f"Created sale #{sale.id} total={total}",
            meta={"subtotal": subtotal, "total": total, "items": len(lines)},
        )
        return sale

    return transactional(_op)


def fulfill_sale(*, location_id: int, store_keeper_id: int, sale_id: int, note: str | None = None) -> Sale:
    """
    Deduct every line from inventory and move DRAFT -> FULFILLED.

    All-or-nothing: one short line rolls back the deductions already applied.

    Raises:
        SaleError(NotFound | BadStatus | NoItems)
        SaleError(InsufficientInventoryStock): context product_id, available, needed
    """
    def _op():
        sale = _locked_sale(location_id, sale_id)
        target = next_sale_status(sale.status, SaleEvent.FULFILL, SaleError)

        if not sale.items:
            raise SaleError(ErrorKind.NO_ITEMS, "Sale has no items", sale_id=sale.id)

        for item in sale.items:
            try:
                apply_adjustment(
                    location_id=location_id,
                    product_id=item.product_id,
                    delta=-item.qty,
                    reason=f"Fulfill sale #{sale.id}",
                    actor_id=store_keeper_id,
                )
            except InventoryError as exc:
                if exc.kind != ErrorKind.INSUFFICIENT_STOCK:
                    raise
                raise SaleError(
                    ErrorKind.INSUFFICIENT_INVENTORY_STOCK,
                    "Insufficient stock to fulfill sale",
                    **exc.context,
                ) from exc

        now = utcnow()
        sale.status = target.value
        sale.fulfilled_by = store_keeper_id
        sale.fulfilled_at = now
        sale.updated_at = now
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=store_keeper_id,
            action="SALE_FULFILL",
            entity_type="sale",
            entity_id=sale.id,
            description=f"Fulfilled sale #{sale.id}",
            meta={"note": note, "lines": len(sale.items)},
        )
        return sale

    return transactional(_op)


def mark_sale(
    *,
    location_id: int,
    seller_id: int,
    sale_id: int,
    status: str,
    payment_method: str | None = None,
) -> Sale:
    """
    Seller declares how the customer settles: PAID (cashier must record the
    payment) or PENDING (credit).

    Re-marking the current status is a no-op, except that a new payment method
    on an AWAITING_PAYMENT_RECORD sale is patched.
    """
    def _op():
        sale = _locked_sale(location_id, sale_id)

        if sale.seller_id != seller_id:
            raise SaleError(ErrorKind.FORBIDDEN, "Only the seller can mark this sale",
                            sale_id=sale.id, seller_id=sale.seller_id)

        current = sale.status
        if current not in STOCK_HELD_STATUSES:
            raise SaleError(ErrorKind.BAD_STATUS, f"Cannot mark a sale in status {sale.status}",
                            current=sale.status)

        target = (status or "").strip().upper()
        if target not in MARK_TARGETS:
            raise SaleError(ErrorKind.BAD_STATUS, f"Unknown mark status {status!r}", target=status)

        previous = sale.status
        previous_method = sale.payment_method

        if target == "PAID":
            method = normalize_method(payment_method, default=None)
            if method not in MARK_PAID_METHODS:
                raise SaleError(ErrorKind.BAD_PAYMENT_METHOD, "payment_method must be CASH, MOMO or BANK",
                                payment_method=payment_method)

            if current == SaleStatus.AWAITING_PAYMENT_RECORD:
                if method == sale.payment_method:
                    return sale
                sale.payment_method = method
            else:
                if current == SaleStatus.PENDING and sale.credit is not None \
                        and sale.credit.status in _BLOCKING_CREDIT_STATUSES:
                    raise SaleError(ErrorKind.BAD_STATUS, "Sale has an active credit",
                                    current=sale.status, credit_id=sale.credit.id,
                                    credit_status=sale.credit.status)
                sale.status = next_sale_status(current, SaleEvent.MARK_PAID, SaleError).value
                sale.payment_method = method
        else:
            if current == SaleStatus.PENDING:
                return sale
            sale.status = next_sale_status(current, SaleEvent.MARK_PENDING, SaleError).value
            sale.payment_method = None

        sale.updated_at = utcnow()
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=seller_id,
            action="SALE_MARK",
            entity_type="sale",
            entity_id=sale.id,
            description=f"Marked sale #{sale.id} {target}",
            meta={
                "from": previous,
                "to": sale.status,
                "payment_method": sale.payment_method,
                "previous_payment_method": previous_method,
            },
        )
        return sale

    return transactional(_op)


def cancel_sale(*, location_id: int, actor_id: int, sale_id: int, reason: str | None = None) -> Sale:
    """
    Cancel a sale that has not been paid.

    Stock already deducted (FULFILLED, PENDING, AWAITING_PAYMENT_RECORD) is
    restored line by line; an OPEN or APPROVED credit on the sale is closed as
    REJECTED.
    """
    def _op():
        sale = _locked_sale(location_id, sale_id)
        previous = sale.status
        target = next_sale_status(previous, SaleEvent.CANCEL, SaleError)

        restored = 0
        if previous in STOCK_HELD_STATUSES:
            for item in sale.items:
                apply_adjustment(
                    location_id=location_id,
                    product_id=item.product_id,
                    delta=item.qty,
                    reason=f"Cancel sale #{sale.id}",
                    actor_id=actor_id,
                )
                restored += 1

        voided_credit_id = None
        credit = lock_for_update(db.session.query(Credit).filter_by(sale_id=sale.id)).first()
        if credit is not None and credit.status in (CreditStatus.OPEN.value, CreditStatus.APPROVED.value):
            credit.status = next_credit_status(credit.status, CreditEvent.VOID).value
            voided_credit_id = credit.id

        now = utcnow()
        sale.status = target.value
        sale.cancelled_by = actor_id
        sale.cancelled_at = now
        sale.cancel_reason = (reason or "").strip()[:255] or None
        sale.updated_at = now
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=actor_id,
            action="SALE_CANCEL",
            entity_type="sale",
            entity_id=sale.id,
            description=f"Cancelled sale #{sale.id}. Reason: {reason or '-'}",
            meta={"from": previous, "restored_lines": restored, "voided_credit_id": voided_credit_id},
        )
        return sale

    return transactional(_op)
