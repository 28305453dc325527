# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role, STAFF_ROLES
from ..errors import WorkflowError
from ..services import customer_service
from ..validation import error_response, validation_response, require_json


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
@require_actor
@require_role("SELLER", "CASHIER", "MANAGER")
def create_customer_route():
    try:
        data = require_json(request.get_json(silent=True))
        customer = customer_service.create_customer(
            location_id=g.actor.location_id,
            actor_id=g.actor.id,
            name=data.get("name"),
            phone=data.get("phone"),
        )
        return jsonify({"customer": customer.to_dict()}), 201

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/history")
@require_actor
@require_role(*STAFF_ROLES)
def customer_history_route(customer_id: int):
    try:
        return jsonify(customer_service.customer_history(g.actor.location_id, customer_id)), 200

    except WorkflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load customer history")
        return jsonify({"error": "Internal server error"}), 500
