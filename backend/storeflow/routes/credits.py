# Overview: Flask API routes for credit operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..errors import WorkflowError
from ..services import credit_service
from ..validation import error_response, validation_response, require_json, require_int


credits_bp = Blueprint("credits", __name__, url_prefix="/api/credits")


@credits_bp.post("")
@require_actor
@require_role("SELLER", "MANAGER")
def create_credit_route():
    try:
        data = require_json(request.get_json(silent=True))
        credit = credit_service.create_credit(
            location_id=g.actor.location_id,
            seller_id=g.actor.id,
            sale_id=require_int(data, "sale_id"),
            customer_id=require_int(data, "customer_id"),
            note=data.get("note"),
        )
        return jsonify({"credit": credit.to_dict()}), 201

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to create credit")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("/<int:credit_id>")
@require_actor
@require_role("SELLER", "CASHIER", "MANAGER", "ADMIN")
def get_credit_route(credit_id: int):
    try:
        credit = credit_service.get_credit(g.actor.location_id, credit_id)
        return jsonify({"credit": credit.to_dict()}), 200

    except WorkflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load credit")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.post("/<int:credit_id>/approve")
@require_actor
@require_role("MANAGER", "ADMIN")
def approve_credit_route(credit_id: int):
    """Request body: {"decision": "APPROVE" | "REJECT", "note": "..."}"""
    try:
        data = require_json(request.get_json(silent=True))
        credit = credit_service.approve_credit(
            location_id=g.actor.location_id,
            manager_id=g.actor.id,
            credit_id=credit_id,
            decision=data.get("decision"),
            note=data.get("note"),
        )
        return jsonify({"credit": credit.to_dict()}), 200

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to decide credit")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.post("/<int:credit_id>/settle")
@require_actor
@require_role("CASHIER")
def settle_credit_route(credit_id: int):
    try:
        data = request.get_json(silent=True) or {}
        credit = credit_service.settle_credit(
            location_id=g.actor.location_id,
            cashier_id=g.actor.id,
            credit_id=credit_id,
            method=data.get("method"),
            note=data.get("note"),
        )
        return jsonify({"credit": credit.to_dict()}), 200

    except WorkflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to settle credit")
        return jsonify({"error": "Internal server error"}), 500


@credits_bp.get("")
@require_actor
@require_role("SELLER", "CASHIER", "MANAGER", "ADMIN")
def list_credits_route():
    """Query params: status, limit (1-200), cursor (id of the last item seen)."""
    try:
        page = credit_service.list_credits(
            g.actor.location_id,
            status=request.args.get("status"),
            limit=request.args.get("limit", 50, type=int),
            cursor=request.args.get("cursor", None, type=int),
        )
        return jsonify(page), 200

    except Exception:
        current_app.logger.exception("Failed to list credits")
        return jsonify({"error": "Internal server error"}), 500
