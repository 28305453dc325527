from __future__ import annotations

from ..extensions import db
from storeflow.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product, owned by a location.

    Prices are integers in minor currency units. The selling price is copied
    onto each sale item at sale time, so later pricing updates never change
    committed sales.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("max_discount_percent >= 0 AND max_discount_percent <= 100",
                           name="ck_products_max_discount_range"),
        db.Index("ix_products_location_active", "location_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="unit")

    selling_price = db.Column(db.Integer, nullable=False)
    cost_price = db.Column(db.Integer, nullable=False, default=0)
    max_discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    location = db.relationship("Location", backref=db.backref("products", lazy=True))

    def to_dict(self, include_cost: bool = False) -> dict:
        data = {
            "id": self.id,
            "location_id": self.location_id,
            "name": self.name,
            "sku": self.sku,
            "unit": self.unit,
            "selling_price": self.selling_price,
            "max_discount_percent": float(self.max_discount_percent or 0),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
        if include_cost:
            data["cost_price"] = self.cost_price
        return data


class InventoryBalance(db.Model):
    """
    Quantity on hand per (location, product).

    INVARIANT: qty_on_hand >= 0, checked in the adjusting transaction before
    the write and backed by a CHECK constraint.
    Rows are created lazily (quantity 0) on first adjustment.
    """
    __tablename__ = "inventory_balances"
    __table_args__ = (
        db.UniqueConstraint("location_id", "product_id", name="uq_inventory_balances_location_product"),
        db.CheckConstraint("qty_on_hand >= 0", name="ck_inventory_balances_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty_on_hand = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("balances", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "product_id": self.product_id,
            "qty_on_hand": self.qty_on_hand,
            "updated_at": to_utc_z(self.updated_at),
        }
