from __future__ import annotations

from ..extensions import db
from storeflow.time_utils import to_utc_z


class Customer(db.Model):
    """Customer known to a location; required for store credit."""
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_location_phone", "location_id", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "name": self.name,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }
