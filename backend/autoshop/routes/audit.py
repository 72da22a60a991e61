# backend/autoshop/routes/audit.py
"""
Audit Log API Routes

- GET /api/audit - List audit events (HM: all branches, POC: own branches)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..services import audit_service


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_auth
def list_audit_logs_route():
    """
    Query params:
        action, entity_type, entity_id, user_id, status (SUCCESS | FAILED),
        branch_id, start_date, end_date (ISO-8601), limit, offset
    """
    try:
        return jsonify(audit_service.list_audit_logs(g.principal, request.args.to_dict())), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list audit logs")
        return jsonify({"error": "Failed to fetch audit logs", "kind": "internal_error"}), 500
