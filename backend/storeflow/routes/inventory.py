# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role, STAFF_ROLES
from ..errors import WorkflowError
from ..services import inventory_service
from ..validation import error_response, validation_response, require_json, require_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjust")
@require_actor
@require_role("STORE_KEEPER", "MANAGER", "ADMIN")
def adjust_inventory_route():
    """Request body: {"product_id": 1, "qty_change": 10, "reason": "Restock"}"""
    try:
        data = require_json(request.get_json(silent=True))
        result = inventory_service.adjust_inventory(
            location_id=g.actor.location_id,
            product_id=require_int(data, "product_id"),
            delta=require_int(data, "qty_change"),
            reason=data.get("reason"),
            actor_id=g.actor.id,
        )
        return jsonify(result.to_dict()), 200

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("")
@require_actor
@require_role(*STAFF_ROLES)
def list_inventory_route():
    try:
        rows = inventory_service.list_balances(g.actor.location_id)
        return jsonify({"items": rows, "count": len(rows)}), 200

    except Exception:
        current_app.logger.exception("Failed to list inventory")
        return jsonify({"error": "Internal server error"}), 500
