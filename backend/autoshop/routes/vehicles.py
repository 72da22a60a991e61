# backend/autoshop/routes/vehicles.py
"""
Vehicle API Routes

- GET    /api/vehicles        - List vehicles (own branches; HM sees all)
- GET    /api/vehicles/:id    - Vehicle detail
- POST   /api/vehicles        - Register vehicle for a customer
- PUT    /api/vehicles/:id    - Update vehicle
- DELETE /api/vehicles/:id    - Deactivate vehicle (never removed)

CONFLICTS: A plate number already registered anywhere returns 409.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..services import vehicle_service


vehicles_bp = Blueprint("vehicles", __name__, url_prefix="/api/vehicles")


@vehicles_bp.get("")
@require_auth
def list_vehicles_route():
    """Query params: branch_id, customer_id, status, vehicle_type, search, limit, offset"""
    try:
        return jsonify(vehicle_service.list_vehicles(g.principal, request.args.to_dict())), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list vehicles")
        return jsonify({"error": "Failed to fetch vehicles", "kind": "internal_error"}), 500


@vehicles_bp.get("/<int:vehicle_id>")
@require_auth
def get_vehicle_route(vehicle_id: int):
    try:
        return jsonify(vehicle_service.get_vehicle(g.principal, vehicle_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch vehicle")
        return jsonify({"error": "Failed to fetch vehicle", "kind": "internal_error"}), 500


@vehicles_bp.post("")
@require_auth
def create_vehicle_route():
    """
    Request body:
        {
            "plate_number": str,
            "vehicle_type": "sedan" | "suv" | ... | "other",
            "model": str,
            "customer_id": int,
            "branch_id": int (must match the customer's branch),
            "color": str (optional),
            "year": int (optional)
        }
    """
    try:
        vehicle = vehicle_service.create_vehicle(g.principal, request.get_json(silent=True))
        return jsonify(vehicle), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create vehicle")
        return jsonify({"error": "Failed to create vehicle", "kind": "internal_error"}), 500


@vehicles_bp.put("/<int:vehicle_id>")
@require_auth
def update_vehicle_route(vehicle_id: int):
    try:
        vehicle = vehicle_service.update_vehicle(g.principal, vehicle_id, request.get_json(silent=True))
        return jsonify(vehicle), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update vehicle")
        return jsonify({"error": "Failed to update vehicle", "kind": "internal_error"}), 500


@vehicles_bp.delete("/<int:vehicle_id>")
@require_auth
def delete_vehicle_route(vehicle_id: int):
    try:
        return jsonify(vehicle_service.deactivate_vehicle(g.principal, vehicle_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate vehicle")
        return jsonify({"error": "Failed to deactivate vehicle", "kind": "internal_error"}), 500
