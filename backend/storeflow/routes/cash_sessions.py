# Overview: Flask API routes for cash session operations; parses input and returns JSON responses.

# backend/storeflow/routes/cash_sessions.py
"""
Cash Session API Routes

- Open a drawer session (optional opening float)
- Petty cash in/out and versements against the open session
- Close with a counted amount; expected cash comes from the ledger
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role
from ..errors import WorkflowError
from ..services import cash_session_service
from ..validation import error_response, validation_response, require_json, require_int


cash_sessions_bp = Blueprint("cash_sessions", __name__, url_prefix="/api/cash-sessions")


@cash_sessions_bp.post("")
@require_actor
@require_role("CASHIER")
def open_session_route():
    try:
        data = request.get_json(silent=True) or {}
        session = cash_session_service.open_session(
            location_id=g.actor.location_id,
            cashier_id=g.actor.id,
            opening_balance=require_int(data, "opening_balance", required=False) or 0,
            note=data.get("note"),
        )
        return jsonify({"session": session.to_dict()}), 201

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to open cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.get("/<int:session_id>")
@require_actor
@require_role("CASHIER", "MANAGER", "ADMIN")
def session_summary_route(session_id: int):
    try:
        return jsonify(cash_session_service.session_summary(g.actor.location_id, session_id)), 200

    except WorkflowError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.post("/<int:session_id>/movements")
@require_actor
@require_role("CASHIER")
def record_movement_route(session_id: int):
    """Request body: {"type": "PETTY_CASH_OUT", "amount": 500, "note": "...", "reference": "..."}"""
    try:
        data = require_json(request.get_json(silent=True))
        entry = cash_session_service.record_movement(
            location_id=g.actor.location_id,
            cashier_id=g.actor.id,
            cash_session_id=session_id,
            movement_type=data.get("type"),
            amount=require_int(data, "amount"),
            note=data.get("note"),
            reference=data.get("reference"),
        )
        return jsonify({"entry": entry.to_dict()}), 201

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to record cash movement")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.post("/<int:session_id>/close")
@require_actor
@require_role("CASHIER")
def close_session_route(session_id: int):
    """Request body: {"counted_cash": 12000, "note": "..."}"""
    try:
        data = require_json(request.get_json(silent=True))
        session = cash_session_service.close_session(
            location_id=g.actor.location_id,
            cashier_id=g.actor.id,
            cash_session_id=session_id,
            counted_cash=require_int(data, "counted_cash"),
            note=data.get("note"),
        )
        return jsonify({"session": session.to_dict()}), 200

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to close cash session")
        return jsonify({"error": "Internal server error"}), 500
