# Overview: Flask API routes for product operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_role, STAFF_ROLES
from ..errors import WorkflowError
from ..services import products_service
from ..validation import error_response, validation_response, require_json, require_int


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRICING_ROLES = ("MANAGER", "ADMIN")


@products_bp.get("")
@require_actor
@require_role(*STAFF_ROLES)
def list_products_route():
    try:
        include_cost = g.actor.role in PRICING_ROLES or g.actor.role == "OWNER"
        products = products_service.list_products(g.actor.location_id)
        return jsonify({
            "items": [p.to_dict(include_cost=include_cost) for p in products],
            "count": len(products),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_actor
@require_role(*PRICING_ROLES)
def create_product_route():
    try:
        data = require_json(request.get_json(silent=True))
        product = products_service.create_product(
            location_id=g.actor.location_id,
            actor_id=g.actor.id,
            name=data.get("name"),
            selling_price=require_int(data, "selling_price"),
            cost_price=require_int(data, "cost_price", required=False) or 0,
            max_discount_percent=data.get("max_discount_percent", 0),
            unit=data.get("unit") or "unit",
            sku=data.get("sku"),
        )
        return jsonify({"product": product.to_dict(include_cost=True)}), 201

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>/pricing")
@require_actor
@require_role(*PRICING_ROLES)
def update_pricing_route(product_id: int):
    """Request body: {"cost_price": 500, "selling_price": 800, "max_discount_percent": 10}"""
    try:
        data = require_json(request.get_json(silent=True))
        product = products_service.update_pricing(
            location_id=g.actor.location_id,
            actor_id=g.actor.id,
            product_id=product_id,
            cost_price=require_int(data, "cost_price"),
            selling_price=require_int(data, "selling_price"),
            max_discount_percent=data.get("max_discount_percent", 0),
        )
        return jsonify({"product": product.to_dict(include_cost=True)}), 200

    except WorkflowError as e:
        return error_response(e)
    except ValueError as e:
        return validation_response(e)
    except Exception:
        current_app.logger.exception("Failed to update pricing")
        return jsonify({"error": "Internal server error"}), 500
