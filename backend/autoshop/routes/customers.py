# backend/autoshop/routes/customers.py
"""
Customer API Routes

- GET    /api/customers        - List customers (own branches; HM sees all)
- GET    /api/customers/:id    - Customer detail
- POST   /api/customers        - Register customer at a branch
- PUT    /api/customers/:id    - Update customer details
- DELETE /api/customers/:id    - Delete, or deactivate when it has vehicles/job orders
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..services import customer_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    """Query params: branch_id, status, customer_type, search, limit, offset"""
    try:
        return jsonify(customer_service.list_customers(g.principal, request.args.to_dict())), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Failed to fetch customers", "kind": "internal_error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return jsonify(customer_service.get_customer(g.principal, customer_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch customer")
        return jsonify({"error": "Failed to fetch customer", "kind": "internal_error"}), 500


@customers_bp.post("")
@require_auth
def create_customer_route():
    """
    Request body:
        {
            "full_name": str,
            "customer_type": "individual" | "company",
            "branch_id": int,
            "contact_number": str (optional, 7-20 digits),
            "email": str (optional),
            "address": str (optional),
            "notes": str (optional)
        }

    At least one of contact_number / email is required.
    """
    try:
        customer = customer_service.create_customer(g.principal, request.get_json(silent=True))
        return jsonify(customer), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Failed to create customer", "kind": "internal_error"}), 500


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(g.principal, customer_id, request.get_json(silent=True))
        return jsonify(customer), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Failed to update customer", "kind": "internal_error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    try:
        return jsonify(customer_service.delete_customer(g.principal, customer_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Failed to delete customer", "kind": "internal_error"}), 500
