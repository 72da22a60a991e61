# backend/autoshop/routes/catalog.py
"""
Catalog API Routes

- GET    /api/catalog        - List catalog items (global + own branches)
- GET    /api/catalog/:id    - Catalog item detail
- POST   /api/catalog        - Create item (global items: HM only)
- PUT    /api/catalog/:id    - Update item (global items / global flag: HM only)
- DELETE /api/catalog/:id    - Delete, or deactivate when referenced
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..services import catalog_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("")
@require_auth
def list_catalog_route():
    """Query params: type, status, branch_id, is_global, search, limit, offset"""
    try:
        return jsonify(catalog_service.list_catalog_items(g.principal, request.args.to_dict())), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list catalog items")
        return jsonify({"error": "Failed to fetch catalog items", "kind": "internal_error"}), 500


@catalog_bp.get("/<int:item_id>")
@require_auth
def get_catalog_item_route(item_id: int):
    try:
        return jsonify(catalog_service.get_catalog_item(g.principal, item_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch catalog item")
        return jsonify({"error": "Failed to fetch catalog item", "kind": "internal_error"}), 500


@catalog_bp.post("")
@require_auth
def create_catalog_item_route():
    """
    Request body:
        {
            "name": str,
            "type": "service" | "product" | "package",
            "base_price_cents": int,
            "description": str (optional),
            "status": "active" | "inactive" (optional),
            "is_global": bool (optional, default false),
            "branch_id": int (required unless is_global)
        }
    """
    try:
        item = catalog_service.create_catalog_item(g.principal, request.get_json(silent=True))
        return jsonify(item), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create catalog item")
        return jsonify({"error": "Failed to create catalog item", "kind": "internal_error"}), 500


@catalog_bp.put("/<int:item_id>")
@require_auth
def update_catalog_item_route(item_id: int):
    try:
        item = catalog_service.update_catalog_item(g.principal, item_id, request.get_json(silent=True))
        return jsonify(item), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update catalog item")
        return jsonify({"error": "Failed to update catalog item", "kind": "internal_error"}), 500


@catalog_bp.delete("/<int:item_id>")
@require_auth
def delete_catalog_item_route(item_id: int):
    """
    Response:
        {"deleted": true, "message": ...}
        {"deactivated": true, "message": ...}   // item is used by job orders
    """
    try:
        return jsonify(catalog_service.delete_catalog_item(g.principal, item_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete catalog item")
        return jsonify({"error": "Failed to delete catalog item", "kind": "internal_error"}), 500
