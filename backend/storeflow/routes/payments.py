# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..errors import WorkflowError
from ..services import payment_service
from ..validation import error_response, validation_response, require_json, require_int


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_actor
@require_role("CASHIER")
def record_payment_route():
    """
    Record the payment for a sale awaiting it.

    Request body:
    {
        "sale_id": 123,
        "amount": 10000,
        "cash_session_id": 5,
        "method": "CASH",   (optional, defaults to the seller's marked method)
        "note": "..."       (optional)
    }

    Returns:
        201: Payment recorded, sale COMPLETED
        400: Invalid input / BadAmount / BadPaymentMethod
        404: Sale not found
        409: BadStatus / NoOpenSession / DuplicatePayment
    """
    try:
        data = require_json(request.get_json(silent=True))
        payment = payment_service.record_payment(
            location_id=g.actor.location_id,
            cashier_id=g.actor.id,
            sale_id=require_int(data, "sale_id"),
            amount=require_int(data, "amount"),
            cash_session_id=require_int(data, "cash_session_id", required=False),
            method=data.get("method"),
            note=data.get("note"),
        )
        return jsonify({"payment": payment.to_dict()}), 201

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("")
@require_actor
@require_role("CASHIER", "MANAGER", "ADMIN")
def list_payments_route():
    """
    Query params: limit (1-500), offset, sale_id.

    With sale_id the single payment of that sale is returned (404 if none).
    """
    try:
        sale_id = request.args.get("sale_id", None, type=int)
        if sale_id is not None:
            payment = payment_service.get_payment_for_sale(g.actor.location_id, sale_id)
            return jsonify({"payment": payment.to_dict()}), 200

        payments = payment_service.list_payments(
            g.actor.location_id,
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200

    except WorkflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/summary")
@require_actor
@require_role("CASHIER", "MANAGER", "ADMIN")
def payments_summary_route():
    try:
        return jsonify({"summary": payment_service.payments_summary(g.actor.location_id)}), 200

    except Exception:
        current_app.logger.exception("Failed to summarise payments")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/breakdown")
@require_actor
@require_role("CASHIER", "MANAGER", "ADMIN")
def payments_breakdown_route():
    """Query params: window = today | yesterday | all (default all)."""
    try:
        window = request.args.get("window", "all").strip().lower()
        rows = payment_service.payments_breakdown(g.actor.location_id, window=window)
        return jsonify({"window": window, "methods": rows}), 200

    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to break down payments")
        return jsonify({"error": "Internal server error"}), 500
