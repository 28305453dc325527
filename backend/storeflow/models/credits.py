from __future__ import annotations

from ..extensions import db
from storeflow.time_utils import to_utc_z


class Credit(db.Model):
    """
    Store credit granted against a PENDING sale.

    LIFECYCLE:
    - OPEN: requested by the seller
    - APPROVED / REJECTED: manager decision
    - SETTLED: customer paid; a payment-equivalent row and a ledger IN entry exist

    One credit per sale (UNIQUE sale_id).
    """
    __tablename__ = "credits"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_credits_sale"),
        db.Index("ix_credits_location_status", "location_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)

    created_by = db.Column(db.Integer, nullable=False)
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    settled_by = db.Column(db.Integer, nullable=True)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("credit", uselist=False, lazy=True))
    customer = db.relationship("Customer", backref=db.backref("credits", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "amount": self.amount,
            "status": self.status,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "settled_by": self.settled_by,
            "settled_at": to_utc_z(self.settled_at),
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
