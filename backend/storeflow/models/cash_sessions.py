from __future__ import annotations

from ..extensions import db
from storeflow.time_utils import to_utc_z


class CashSession(db.Model):
    """
    A cashier's working period at a location.

    WHY: Cash accountability. Every cash movement binds to the open session of
    the cashier who handled it, and closing the session reconciles counted
    cash against the ledger.

    LIFECYCLE:
    - OPEN: cash-affecting operations may bind to it
    - CLOSED: expected/counted/variance frozen; never reopened
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index("ix_cash_sessions_location_cashier_status", "location_id", "cashier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)

    opening_balance = db.Column(db.Integer, nullable=False, default=0)
    expected_cash = db.Column(db.Integer, nullable=True)
    counted_cash = db.Column(db.Integer, nullable=True)
    variance = db.Column(db.Integer, nullable=True)  # counted - expected

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    note = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "cashier_id": self.cashier_id,
            "status": self.status,
            "opening_balance": self.opening_balance,
            "expected_cash": self.expected_cash,
            "counted_cash": self.counted_cash,
            "variance": self.variance,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "note": self.note,
        }
