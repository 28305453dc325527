# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/storeflow/routes/sales.py
"""
Sales API Routes

DESIGN:
- Seller records a DRAFT sale (no stock movement)
- Store keeper fulfills it (stock deducted)
- Seller marks it PAID or PENDING
- Cancel restores stock already deducted

Business rules live in services/sales_service.py; this module only parses
input, applies the role gate and maps errors to HTTP.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role, STAFF_ROLES
from ..errors import WorkflowError
from ..services import sales_service
from ..services.audit_service import log_observational
from ..validation import error_response, validation_response, require_json, require_int


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_actor
@require_role("SELLER", "MANAGER")
def create_sale_route():
    """
    Record a DRAFT sale.

    Request body:
    {
        "items": [{"product_id": 1, "qty": 2, "unit_price": 1000, "discount_percent": 5, "discount_amount": 0}],
        "customer_id": 3,            (optional)
        "customer_name": "Ama",      (optional)
        "customer_phone": "024...",  (optional)
        "discount_percent": 0,       (optional, sale level)
        "discount_amount": 0,        (optional, sale level)
        "note": "..."                (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        items = data.get("items") or []
        if not isinstance(items, list) or not all(isinstance(it, dict) for it in items):
            return jsonify({"error": "ValidationError", "message": "items must be a list of objects",
                            "context": {}}), 400

        sale = sales_service.create_sale(
            location_id=g.actor.location_id,
            seller_id=g.actor.id,
            items=items,
            customer_id=require_int(data, "customer_id", required=False),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            note=data.get("note"),
            discount_percent=data.get("discount_percent"),
            discount_amount=data.get("discount_amount"),
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_actor
@require_role(*STAFF_ROLES)
def get_sale_route(sale_id: int):
    """Sale with items. Emits an observational SALE_VIEW audit event."""
    try:
        sale = sales_service.get_sale(g.actor.location_id, sale_id)
        payload = sale.to_dict(include_items=True)

        log_observational(
            location_id=g.actor.location_id,
            actor_id=g.actor.id,
            action="SALE_VIEW",
            entity_type="sale",
            entity_id=sale.id,
            description=f"Viewed sale #{sale.id}",
        )
        return jsonify({"sale": payload}), 200

    except WorkflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/fulfill")
@require_actor
@require_role("STORE_KEEPER", "MANAGER")
def fulfill_sale_route(sale_id: int):
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.fulfill_sale(
            location_id=g.actor.location_id,
            store_keeper_id=g.actor.id,
            sale_id=sale_id,
            note=data.get("note"),
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200

    except WorkflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fulfill sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/mark")
@require_actor
@require_role("SELLER")
def mark_sale_route(sale_id: int):
    """
    Request body:
    {"status": "PAID" | "PENDING", "payment_method": "CASH" | "MOMO" | "BANK"}
    """
    try:
        data = require_json(request.get_json(silent=True))
        sale = sales_service.mark_sale(
            location_id=g.actor.location_id,
            seller_id=g.actor.id,
            sale_id=sale_id,
            status=data.get("status"),
            payment_method=data.get("payment_method"),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/cancel")
@require_actor
@require_role("SELLER", "MANAGER", "ADMIN")
def cancel_sale_route(sale_id: int):
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.cancel_sale(
            location_id=g.actor.location_id,
            actor_id=g.actor.id,
            sale_id=sale_id,
            reason=data.get("reason"),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except WorkflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
