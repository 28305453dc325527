# Overview: Service-layer operations for customers; location-scoped records and history.

from __future__ import annotations

from ..extensions import db
from ..errors import CatalogError, ErrorKind
from ..models import Customer, Sale, Credit
from storeflow.time_utils import utcnow
from .audit_service import write_audit
from .concurrency import transactional


def get_customer(location_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, location_id=location_id).first()
    if customer is None:
        raise CatalogError(ErrorKind.NOT_FOUND, "Customer not found", customer_id=customer_id)
    return customer


def create_customer(*, location_id: int, actor_id: int, name: str, phone: str | None = None) -> Customer:
    name = (name or "").strip()
    if not name:
        raise ValueError("name is required")

    def _op():
        customer = Customer(
            location_id=location_id,
            name=name,
            phone=(phone or "").strip() or None,
            created_by=actor_id,
            created_at=utcnow(),
        )
        db.session.add(customer)
        db.session.flush()

        write_audit(
            location_id=location_id,
            actor_id=actor_id,
            action="CUSTOMER_CREATE",
            entity_type="customer",
            entity_id=customer.id,
            description=f"Created customer {customer.name}",
        )
        return customer

    return transactional(_op)


def customer_history(location_id: int, customer_id: int) -> dict:
    """Sales and credits for a customer, newest first."""
    customer = get_customer(location_id, customer_id)

    sales = db.session.query(Sale).filter_by(
        location_id=location_id, customer_id=customer.id
    ).order_by(Sale.id.desc()).all()
    credits = db.session.query(Credit).filter_by(
        location_id=location_id, customer_id=customer.id
    ).order_by(Credit.id.desc()).all()

    return {
        "customer": customer.to_dict(),
        "sales": [s.to_dict() for s in sales],
        "credits": [c.to_dict() for c in credits],
    }
