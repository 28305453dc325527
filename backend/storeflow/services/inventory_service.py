# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/storeflow/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..errors import ErrorKind, InventoryError
from ..models import Product, InventoryBalance
from storeflow.time_utils import utcnow
from .audit_service import write_audit
from .concurrency import lock_for_update, transactional
"""
Inventory Invariants (authoritative)

Inventory model:
- Quantity on hand is a stored balance per (location, product), one row each.
- Rows are created lazily with quantity 0 the first time a product is adjusted.

Business invariants:
- qty_on_hand may never go negative. The check and the write happen on a
  locked row inside the caller's transaction, so concurrent fulfillments of the
  same product serialize instead of losing updates.
- A rejected adjustment leaves the balance unchanged.

Audit:
- Each adjustment appends an INVENTORY_ADJUST audit entry keyed by product id
  (never by the balance row id) in the same DB transaction.
"""


@dataclass(frozen=True)
class AdjustmentResult:
    product_id: int
    qty_on_hand: int

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "qty_on_hand": self.qty_on_hand}


def _ensure_product_in_location(location_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None or product.location_id != location_id:
        raise InventoryError(
            ErrorKind.PRODUCT_NOT_FOUND,
            "Product not found",
            product_id=product_id,
        )
    return product


def ensure_balance_row(location_id: int, product_id: int) -> None:
    """INSERT ... ON CONFLICT DO NOTHING on (location_id, product_id)."""
    dialect = db.engine.dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        existing = db.session.query(InventoryBalance.id).filter_by(
            location_id=location_id, product_id=product_id
        ).first()
        if existing is None:
            db.session.add(InventoryBalance(location_id=location_id, product_id=product_id, qty_on_hand=0))
            db.session.flush()
        return

    stmt = insert(InventoryBalance.__table__).values(
        location_id=location_id,
        product_id=product_id,
        qty_on_hand=0,
        updated_at=utcnow(),
        version_id=1,
    ).on_conflict_do_nothing(index_elements=["location_id", "product_id"])
    db.session.execute(stmt)


def _lock_balance(location_id: int, product_id: int) -> InventoryBalance:
    ensure_balance_row(location_id, product_id)
    return lock_for_update(
        db.session.query(InventoryBalance).filter_by(location_id=location_id, product_id=product_id)
    ).populate_existing().one()


def apply_adjustment(
    *,
    location_id: int,
    product_id: int,
    delta: int,
    reason: str | None = None,
    actor_id: int,
) -> AdjustmentResult:
    """
    Core adjustment logic without opening or committing a unit of work.

    Called by adjust_inventory() and by the sale, cancel and refund workflows so
    that every line of a sale moves inside one transaction.

    Raises:
        InventoryError(BadQtyChange): delta is not a non-zero integer
        InventoryError(ProductNotFound): product not in this location
        InventoryError(InsufficientStock): result would be negative
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise InventoryError(
            ErrorKind.BAD_QTY_CHANGE,
            "qty change must be a non-zero integer",
            qty_change=delta,
        )

    product = _ensure_product_in_location(location_id, product_id)
    balance = _lock_balance(location_id, product_id)

    current = balance.qty_on_hand or 0
    new_qty = current + delta
    if new_qty < 0:
        raise InventoryError(
            ErrorKind.INSUFFICIENT_STOCK,
            "Insufficient stock",
            product_id=product_id,
            available=current,
            needed=-delta,
        )

    balance.qty_on_hand = new_qty
    balance.updated_at = utcnow()
    db.session.flush()

    write_audit(
        location_id=location_id,
        actor_id=actor_id,
        action="INVENTORY_ADJUST",
        entity_type="inventory_balance",
        entity_id=product_id,
        description=f"Product {product.name}: qty_change={delta}. Reason: {reason or '-'}",
        meta={"qty_change": delta, "qty_on_hand": new_qty, "reason": reason},
    )

    return AdjustmentResult(product_id=product_id, qty_on_hand=new_qty)


def adjust_inventory(
    *,
    location_id: int,
    product_id: int,
    delta: int,
    reason: str | None = None,
    actor_id: int,
) -> AdjustmentResult:
    """Adjust stock for a product in its own atomic unit of work (restock, manual correction)."""
    def _op():
        return apply_adjustment(
            location_id=location_id,
            product_id=product_id,
            delta=delta,
            reason=reason,
            actor_id=actor_id,
        )

    return transactional(_op)


def get_balance(location_id: int, product_id: int) -> int:
    """Current quantity; 0 when no balance row exists yet."""
    _ensure_product_in_location(location_id, product_id)
    balance = db.session.query(InventoryBalance).filter_by(
        location_id=location_id, product_id=product_id
    ).first()
    return balance.qty_on_hand if balance else 0


def list_balances(location_id: int) -> list[dict]:
    """Every product of the location with its quantity on hand (0 when never adjusted)."""
    rows = db.session.query(Product, InventoryBalance).outerjoin(
        InventoryBalance,
        (InventoryBalance.product_id == Product.id) & (InventoryBalance.location_id == Product.location_id),
    ).filter(Product.location_id == location_id).order_by(Product.id.desc()).all()

    out = []
    for product, balance in rows:
        out.append({
            "product_id": product.id,
            "name": product.name,
            "sku": product.sku,
            "unit": product.unit,
            "selling_price": product.selling_price,
            "qty_on_hand": balance.qty_on_hand if balance else 0,
        })
    return out
