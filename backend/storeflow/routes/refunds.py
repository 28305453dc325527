# Overview: Flask API routes for refund operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..errors import WorkflowError
from ..services import refund_service
from ..validation import error_response, validation_response, require_json, require_int


refunds_bp = Blueprint("refunds", __name__, url_prefix="/api/refunds")


@refunds_bp.post("")
@require_actor
@require_role("CASHIER", "MANAGER", "ADMIN")
def create_refund_route():
    """
    Request body:
    {"sale_id": 1, "reason": "...", "method": "CASH", "reference": "..."}
    """
    try:
        data = require_json(request.get_json(silent=True))
        refund = refund_service.create_refund(
            location_id=g.actor.location_id,
            actor_id=g.actor.id,
            sale_id=require_int(data, "sale_id"),
            reason=data.get("reason"),
            method=data.get("method"),
            reference=data.get("reference"),
        )
        return jsonify({"refund": refund.to_dict()}), 201

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to create refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.get("")
@require_actor
@require_role("CASHIER", "MANAGER", "ADMIN")
def list_refunds_route():
    try:
        refunds = refund_service.list_refunds(
            g.actor.location_id,
            limit=request.args.get("limit", 50, type=int),
        )
        return jsonify({"items": [r.to_dict() for r in refunds], "count": len(refunds)}), 200

    except Exception:
        current_app.logger.exception("Failed to list refunds")
        return jsonify({"error": "Internal server error"}), 500
