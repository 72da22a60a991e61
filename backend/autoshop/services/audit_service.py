# Overview: Best-effort audit trail for mutation attempts; never fails the caller.

"""
Audit Recorder

WHY: Every create/update/delete/transition is recorded, including failed
attempts with their error message. The trail is a side channel: a broken
audit write is logged locally and discarded, it never changes the result the
caller sees.

RULES:
- Audit rows are written AFTER the primary operation has committed or rolled
  back, in their own commit, so an audit failure cannot undo primary work.
- record_audit_event never raises.
- Pure input validation failures are not audited (they never touch storage).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from flask import current_app

from ..extensions import db
from ..errors import ServiceError, ValidationError, InternalError
from ..models import AuditLog
from ..time_utils import parse_filter_datetime
from .authorization_service import Principal, AUDIT_VIEW_ROLES, require_any_role, visible_branch_ids
from .pagination import paginate, parse_page_args, parse_optional_int


logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = "SUCCESS"
OUTCOME_FAILED = "FAILED"


def record_audit_event(
    *,
    action: str,
    entity_type: str,
    entity_id: int | str | None,
    principal_id: str | None,
    branch_id: int | None,
    outcome: str = OUTCOME_SUCCESS,
    new_values: dict | None = None,
    old_values: dict | None = None,
) -> AuditLog | None:
    """
    Append an audit row. Returns None when disabled or when the write failed.

    action examples: CREATE, UPDATE, DELETE, REQUEST_APPROVAL, APPROVE, REJECT
    entity_type examples: JOB_ORDER, CATALOG_ITEM, PRICING_MATRIX
    """
    if not current_app.config.get("AUDIT_ENABLED", True):
        return None

    try:
        event = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            user_id=principal_id,
            branch_id=branch_id,
            status=outcome,
            new_values=new_values,
            old_values=old_values,
        )
        db.session.add(event)
        db.session.commit()
        return event
    except Exception:
        db.session.rollback()
        logger.exception(
            "Failed to record audit event %s %s %s (%s)",
            action, entity_type, entity_id, outcome,
        )
        return None


def record_failed_attempt(
    principal: Principal,
    action: str,
    entity_type: str,
    entity_id: int | str | None,
    error_message: str,
    branch_id: int | None = None,
) -> AuditLog | None:
    return record_audit_event(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        principal_id=principal.id,
        branch_id=branch_id if branch_id is not None else principal.primary_branch_id,
        outcome=OUTCOME_FAILED,
        new_values={"error": error_message},
    )


@contextmanager
def audited_attempt(
    principal: Principal,
    action: str,
    entity_type: str,
    *,
    failure_message: str,
    entity_id: int | str | None = None,
    branch_id: int | None = None,
):
    """
    Wrap a mutating operation so every failure is rolled back and audited.

    - ValidationError: rolled back, not audited, re-raised
    - other ServiceError: rolled back, FAILED row written, re-raised
    - anything else: rolled back, logged, FAILED row written, raised as InternalError
    """
    try:
        yield
    except ValidationError:
        db.session.rollback()
        raise
    except ServiceError as exc:
        db.session.rollback()
        record_failed_attempt(principal, action, entity_type, entity_id, exc.message, branch_id)
        raise
    except Exception as exc:
        db.session.rollback()
        logger.exception(failure_message)
        record_failed_attempt(principal, action, entity_type, entity_id, str(exc) or failure_message, branch_id)
        raise InternalError(failure_message) from exc


def list_audit_logs(principal: Principal, filters: dict) -> dict:
    """
    Audit log listing.

    HM sees every row; POC sees rows attributed to their branches only.
    """
    require_any_role(principal, AUDIT_VIEW_ROLES, "view audit logs")
    limit, offset = parse_page_args(filters)

    q = db.session.query(AuditLog)

    for key in ("action", "entity_type", "entity_id", "user_id", "status"):
        value = filters.get(key)
        if value:
            q = q.filter(getattr(AuditLog, key) == value)

    branch_id = parse_optional_int(filters, "branch_id")
    if branch_id is not None:
        q = q.filter(AuditLog.branch_id == branch_id)

    start = parse_filter_datetime(filters.get("start_date"), "start_date")
    end = parse_filter_datetime(filters.get("end_date"), "end_date", end_of_day=True)
    if start is not None:
        q = q.filter(AuditLog.created_at >= start)
    if end is not None:
        q = q.filter(AuditLog.created_at <= end)

    scope = visible_branch_ids(principal)
    if scope is not None:
        q = q.filter(AuditLog.branch_id.in_(scope))

    q = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return paginate(q, limit=limit, offset=offset)
