from __future__ import annotations

from ..extensions import db
from storeflow.time_utils import to_utc_z


class Refund(db.Model):
    """
    Full reversal of a COMPLETED sale.

    One refund per sale (UNIQUE sale_id). Amount always equals the sale total.
    """
    __tablename__ = "refunds"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_refunds_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)

    amount = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False, default="CASH")
    reference = db.Column(db.String(120), nullable=True)
    reason = db.Column(db.String(300), nullable=True)

    created_by = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    sale = db.relationship("Sale", backref=db.backref("refund", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "sale_id": self.sale_id,
            "amount": self.amount,
            "method": self.method,
            "reference": self.reference,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
