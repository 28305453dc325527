from __future__ import annotations

from ..extensions import db
from storeflow.time_utils import to_utc_z


class Sale(db.Model):
    """
    Sale document.

    WHY: A sale is recorded before stock moves. Fulfillment deducts inventory,
    marking signals payment intent, and payment/credit settlement completes it.

    LIFECYCLE (see services/state_machine.py):
    DRAFT -> FULFILLED -> AWAITING_PAYMENT_RECORD | PENDING -> COMPLETED -> REFUNDED
    CANCELLED from DRAFT, FULFILLED, PENDING, AWAITING_PAYMENT_RECORD.

    All amounts are integers in minor currency units.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_location_status_created", "location_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, nullable=False, index=True)

    # Either a known customer or free-text contact details
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(32), nullable=False, default="DRAFT", index=True)

    subtotal_amount = db.Column(db.Integer, nullable=False, default=0)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False)

    # Only set while AWAITING_PAYMENT_RECORD (seller's declared method)
    payment_method = db.Column(db.String(16), nullable=True)

    note = db.Column(db.Text, nullable=True)

    fulfilled_by = db.Column(db.Integer, nullable=True)
    fulfilled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cancelled_by = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("Location", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    items = db.relationship("SaleItem", back_populates="sale", order_by="SaleItem.id", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "location_id": self.location_id,
            "seller_id": self.seller_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "status": self.status,
            "subtotal_amount": self.subtotal_amount,
            "discount_percent": float(self.discount_percent or 0),
            "discount_amount": self.discount_amount,
            "total_amount": self.total_amount,
            "payment_method": self.payment_method,
            "note": self.note,
            "fulfilled_by": self.fulfilled_by,
            "fulfilled_at": to_utc_z(self.fulfilled_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a sale.

    IMMUTABLE: created with the sale and never edited; corrections happen by
    cancelling the sale.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    line_total = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "qty": self.qty,
            "unit_price": self.unit_price,
            "discount_percent": float(self.discount_percent or 0),
            "discount_amount": self.discount_amount,
            "line_total": self.line_total,
        }


class Payment(db.Model):
    """
    The single payment recorded against a sale.

    EXACTLY-ONCE: sale_id is UNIQUE. The service pre-checks for an existing
    payment; the constraint catches requests that race past the pre-check.

    cash_session_id is always set for cashier-recorded payments; a non-cash
    credit settlement posts without a session.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_payments_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    cashier_id = db.Column(db.Integer, nullable=False, index=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True, index=True)

    amount = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False, default="CASH")
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    sale = db.relationship("Sale", backref=db.backref("payment", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "sale_id": self.sale_id,
            "cashier_id": self.cashier_id,
            "cash_session_id": self.cash_session_id,
            "amount": self.amount,
            "method": self.method,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
