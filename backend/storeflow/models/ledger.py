from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import ImmutableRecordError
from storeflow.time_utils import to_utc_z


class CashLedgerEntry(db.Model):
    """
    Append-only record of one cash movement.

    WHY: The ledger is the source of truth for cash reconciliation. Session
    expected cash is derived from it, never stored on the fly.

    ENTRY TYPES:
    - SALE_PAYMENT (IN): payment recorded against a sale
    - CREDIT_SETTLEMENT (IN): store credit settled by the customer
    - REFUND (OUT): completed sale refunded
    - OPENING_BALANCE (IN): float placed in the drawer at session open
    - PETTY_CASH_IN / PETTY_CASH_OUT: discretionary drawer movements
    - VERSEMENT (OUT): cash handed over / deposited

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "cash_ledger"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_cash_ledger_positive_amount"),
        db.CheckConstraint("direction IN ('IN', 'OUT')", name="ck_cash_ledger_direction"),
        db.Index("ix_cash_ledger_location_created", "location_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, nullable=False, index=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True, index=True)

    type = db.Column(db.String(40), nullable=False, index=True)
    direction = db.Column(db.String(8), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False, default="CASH")
    reference = db.Column(db.String(120), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    credit_id = db.Column(db.Integer, db.ForeignKey("credits.id"), nullable=True)

    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "cashier_id": self.cashier_id,
            "cash_session_id": self.cash_session_id,
            "type": self.type,
            "direction": self.direction,
            "amount": self.amount,
            "method": self.method,
            "reference": self.reference,
            "sale_id": self.sale_id,
            "payment_id": self.payment_id,
            "credit_id": self.credit_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class AuditLogEntry(db.Model):
    """
    Append-only audit trail.

    Workflow actions write their entry inside the same transaction as the
    mutation it describes. Observational events (views) go through the
    background dispatcher in services/audit_service.py.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_location_created", "location_id", "created_at"),
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    actor_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(80), nullable=False, index=True)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    description = db.Column(db.Text, nullable=False)
    meta = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "meta": self.meta,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(CashLedgerEntry, "before_update")
@event.listens_for(AuditLogEntry, "before_update")
def _prevent_update(mapper, connection, target):
    raise ImmutableRecordError(target.__tablename__, target.id)


@event.listens_for(CashLedgerEntry, "before_delete")
@event.listens_for(AuditLogEntry, "before_delete")
def _prevent_delete(mapper, connection, target):
    raise ImmutableRecordError(target.__tablename__, target.id)
