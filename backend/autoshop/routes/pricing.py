# backend/autoshop/routes/pricing.py
"""
Pricing Matrix API Routes

- GET    /api/pricing                                   - List pricing rules (branch-scoped)
- GET    /api/pricing/:id                               - Pricing rule detail
- GET    /api/pricing/resolve/:catalog_item_id?branch_id= - Resolved price components
- POST   /api/pricing                                   - Create pricing rule
- PUT    /api/pricing/:id                               - Update pricing rule
- DELETE /api/pricing/:id                               - Delete, or deactivate when referenced

CONFLICTS: Creating or activating a second ACTIVE rule for the same
(catalog item, branch, pricing type) returns 409.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..services import pricing_service


pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/pricing")


@pricing_bp.get("")
@require_auth
def list_pricing_route():
    """Query params: branch_id, catalog_item_id, status, pricing_type, search, limit, offset"""
    try:
        return jsonify(pricing_service.list_pricing_rules(g.principal, request.args.to_dict())), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list pricing matrices")
        return jsonify({"error": "Failed to fetch pricing matrices", "kind": "internal_error"}), 500


@pricing_bp.get("/resolve/<int:catalog_item_id>")
@require_auth
def resolve_pricing_route(catalog_item_id: int):
    """
    Response:
        {
            "catalog_item": {...},
            "pricing_rules": [...],
            "resolved_prices": {"base_price_cents", "labor_price_cents", "packaging_price_cents"}
        }

    labor/packaging are null when no active rule exists for the branch.
    """
    try:
        result = pricing_service.resolve_pricing(g.principal, catalog_item_id, request.args.get("branch_id"))
        return jsonify(result), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resolve pricing")
        return jsonify({"error": "Failed to resolve pricing", "kind": "internal_error"}), 500


@pricing_bp.get("/<int:rule_id>")
@require_auth
def get_pricing_rule_route(rule_id: int):
    try:
        return jsonify(pricing_service.get_pricing_rule(g.principal, rule_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch pricing matrix")
        return jsonify({"error": "Failed to fetch pricing matrix", "kind": "internal_error"}), 500


@pricing_bp.post("")
@require_auth
def create_pricing_rule_route():
    """
    Request body:
        {
            "catalog_item_id": int,
            "branch_id": int,
            "pricing_type": "labor" | "packaging",
            "price_cents": int,
            "status": "active" | "inactive" (optional, default active),
            "description": str (optional)
        }
    """
    try:
        rule = pricing_service.create_pricing_rule(g.principal, request.get_json(silent=True))
        return jsonify(rule), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create pricing matrix")
        return jsonify({"error": "Failed to create pricing matrix", "kind": "internal_error"}), 500


@pricing_bp.put("/<int:rule_id>")
@require_auth
def update_pricing_rule_route(rule_id: int):
    try:
        rule = pricing_service.update_pricing_rule(g.principal, rule_id, request.get_json(silent=True))
        return jsonify(rule), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update pricing matrix")
        return jsonify({"error": "Failed to update pricing matrix", "kind": "internal_error"}), 500


@pricing_bp.delete("/<int:rule_id>")
@require_auth
def delete_pricing_rule_route(rule_id: int):
    try:
        return jsonify(pricing_service.delete_pricing_rule(g.principal, rule_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete pricing matrix")
        return jsonify({"error": "Failed to delete pricing matrix", "kind": "internal_error"}), 500
