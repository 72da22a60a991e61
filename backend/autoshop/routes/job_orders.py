# backend/autoshop/routes/job_orders.py
"""
Job Order API Routes

- GET    /api/job-orders                          - List job orders (branch-scoped)
- GET    /api/job-orders/:id                      - Job order with items
- POST   /api/job-orders                          - Create a priced job order
- PUT    /api/job-orders/:id                      - Update notes
- DELETE /api/job-orders/:id                      - Delete order and items
- PATCH  /api/job-orders/:id/request-approval     - created -> pending_approval
- PATCH  /api/job-orders/:id/record-approval      - pending_approval -> approved | rejected

SECURITY:
- All routes require authentication
- Role and branch checks happen in job_order_service against g.principal
- approved_by / created_by come from the authenticated principal, never the body
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..services import job_order_service


job_orders_bp = Blueprint("job_orders", __name__, url_prefix="/api/job-orders")


@job_orders_bp.get("")
@require_auth
def list_job_orders_route():
    """
    Query params: branch_id, customer_id, vehicle_id, status, search, limit, offset

    Response:
        {"data": [...], "pagination": {"total", "limit", "offset"}}
    """
    try:
        return jsonify(job_order_service.list_job_orders(g.principal, request.args.to_dict())), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list job orders")
        return jsonify({"error": "Failed to fetch job orders", "kind": "internal_error"}), 500


@job_orders_bp.get("/<int:order_id>")
@require_auth
def get_job_order_route(order_id: int):
    try:
        return jsonify(job_order_service.get_job_order(g.principal, order_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch job order")
        return jsonify({"error": "Failed to fetch job order", "kind": "internal_error"}), 500


@job_orders_bp.post("")
@require_auth
def create_job_order_route():
    """
    Create a job order.

    Request body:
        {
            "customer_id": int,
            "vehicle_id": int,
            "branch_id": int,
            "notes": str (optional),
            "items": [{"catalog_item_id": int, "quantity": int (optional, default 1)}]
        }

    Requires: HM, or POC, JS or R with access to branch_id

    Error responses:
        400: Invalid payload, vehicle does not belong to customer
        403: Role or branch denied
        404: Customer, vehicle or catalog item not found
        500: Storage failure (nothing persisted)
    """
    try:
        order = job_order_service.create_job_order(g.principal, request.get_json(silent=True))
        return jsonify(order), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create job order")
        return jsonify({"error": "Failed to create job order", "kind": "internal_error"}), 500


@job_orders_bp.put("/<int:order_id>")
@require_auth
def update_job_order_route(order_id: int):
    """Only {"notes": ...} is accepted; items and totals are immutable."""
    try:
        order = job_order_service.update_job_order(g.principal, order_id, request.get_json(silent=True))
        return jsonify(order), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update job order")
        return jsonify({"error": "Failed to update job order", "kind": "internal_error"}), 500


@job_orders_bp.delete("/<int:order_id>")
@require_auth
def delete_job_order_route(order_id: int):
    try:
        return jsonify(job_order_service.delete_job_order(g.principal, order_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete job order")
        return jsonify({"error": "Failed to delete job order", "kind": "internal_error"}), 500


@job_orders_bp.patch("/<int:order_id>/request-approval")
@require_auth
def request_approval_route(order_id: int):
    """
    created -> pending_approval

    Error responses:
        403: Role or branch denied
        404: Job order not found
        409: Order is not in "created" status
    """
    try:
        return jsonify(job_order_service.request_approval(g.principal, order_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to request approval")
        return jsonify({"error": "Failed to request approval", "kind": "internal_error"}), 500


@job_orders_bp.patch("/<int:order_id>/record-approval")
@require_auth
def record_approval_route(order_id: int):
    """
    pending_approval -> approved | rejected

    Request body:
        {"decision": "approved" | "rejected", "notes": str (optional)}

    Error responses:
        400: Invalid decision
        403: Role or branch denied
        404: Job order not found
        409: Order is not in "pending_approval" status
    """
    try:
        order = job_order_service.record_approval(g.principal, order_id, request.get_json(silent=True))
        return jsonify(order), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record approval")
        return jsonify({"error": "Failed to record approval", "kind": "internal_error"}), 500
