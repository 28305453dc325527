# backend/storeflow/services/products_service.py
"""
Products Service

Location-scoped catalog: product creation and pricing updates.

Prices are integers in minor currency units. A product's selling price and
max discount percent are read by the sale workflow at sale creation only;
changing them never touches committed sales.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation

from ..extensions import db
from ..errors import CatalogError, ErrorKind
from ..models import Product
from storeflow.time_utils import utcnow
from .audit_service import write_audit
from .concurrency import lock_for_update, transactional
from .inventory_service import ensure_balance_row


def _as_percent(value) -> Decimal:
    try:
        pct = Decimal(str(value if value is not None else 0))
    except (InvalidOperation, ValueError):
        raise CatalogError(ErrorKind.BAD_PRICE, "max_discount_percent must be a number", max_discount_percent=value)
    if not pct.is_finite():
        raise CatalogError(ErrorKind.BAD_PRICE, "max_discount_percent must be a finite number",
                           max_discount_percent=str(value))
    return pct


def validate_pricing(cost_price, selling_price, max_discount_percent) -> Decimal:
    """
    Pricing rule shared by create and update.

    cost >= 0, selling > 0, 0 <= max discount <= 100, selling >= cost.
    """
    pct = _as_percent(max_discount_percent)
    for field, value in (("cost_price", cost_price), ("selling_price", selling_price)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise CatalogError(ErrorKind.BAD_PRICE, f"{field} must be an integer", **{field: value})
    if cost_price < 0:
        raise CatalogError(ErrorKind.BAD_PRICE, "cost_price must be >= 0", cost_price=cost_price)
    if selling_price <= 0:
        raise CatalogError(ErrorKind.BAD_PRICE, "selling_price must be > 0", selling_price=selling_price)
    if pct < 0 or pct > 100:
        raise CatalogError(ErrorKind.BAD_PRICE, "max_discount_percent must be between 0 and 100",
                           max_discount_percent=str(pct))
    if selling_price < cost_price:
        raise CatalogError(ErrorKind.BAD_PRICE, "selling_price must be >= cost_price",
                           cost_price=cost_price, selling_price=selling_price)
    return pct


def create_product(
    *,
    location_id: int,
    actor_id: int,
    name: str,
    selling_price: int,
    cost_price: int = 0,
    max_discount_percent=0,
    unit: str = "unit",
    sku: str | None = None,
) -> Product:
    """
    Create a product and its zero balance row.

    Raises:
        ValueError: empty name
        CatalogError(BadPrice): pricing rule violated
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("name is required")
    pct = validate_pricing(cost_price, selling_price, max_discount_percent)

    def _op():
        product = Product(
            location_id=location_id,
            name=name,
            sku=(sku or "").strip() or None,
            unit=(unit or "unit").strip() or "unit",
            selling_price=selling_price,
            cost_price=cost_price,
            max_discount_percent=pct,
            is_active=True,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        db.session.add(product)
        db.session.flush()

        ensure_balance_row(location_id, product.id)

        write_audit(
            location_id=location_id,
            actor_id=actor_id,
            action="PRODUCT_CREATE",
            entity_type="product",
            entity_id=product.id,
            description=f"Created product {product.name}",
            meta={"selling_price": selling_price, "cost_price": cost_price,
                  "max_discount_percent": str(pct)},
        )
        return product

    return transactional(_op)


def update_pricing(
    *,
    location_id: int,
    actor_id: int,
    product_id: int,
    cost_price: int,
    selling_price: int,
    max_discount_percent,
) -> Product:
    """
    Replace a product's cost, selling price and max discount percent.

    Raises:
        CatalogError(NotFound): product not in this location
        CatalogError(BadPrice): pricing rule violated
    """
    pct = validate_pricing(cost_price, selling_price, max_discount_percent)

    def _op():
        product = lock_for_update(
            db.session.query(Product).filter_by(id=product_id, location_id=location_id)
        ).first()
        if product is None:
            raise CatalogError(ErrorKind.NOT_FOUND, "Product not found", product_id=product_id)

        before = {
            "cost_price": product.cost_price,
            "selling_price": product.selling_price,
            "max_discount_percent": str(product.max_discount_percent),
        }
        product.cost_price = cost_price
        product.selling_price = selling_price
        product.max_discount_percent = pct
        product.updated_at = utcnow()
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=actor_id,
            action="PRODUCT_PRICING_UPDATE",
            entity_type="product",
            entity_id=product.id,
            description=f"Pricing updated for {product.name}",
            meta={
                "before": before,
                "after": {"cost_price": cost_price, "selling_price": selling_price,
                          "max_discount_percent": str(pct)},
            },
        )
        return product

    return transactional(_op)


def list_products(location_id: int, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product).filter_by(location_id=location_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()
