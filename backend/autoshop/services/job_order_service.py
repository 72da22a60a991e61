# Overview: Job order creation, notes edits, deletion and the approval lifecycle.

"""
Job Order Lifecycle Service

================================================================================
PURPOSE: Priced job orders with a one-way approval workflow
================================================================================

STATE MACHINE:
    created -> pending_approval -> approved | rejected

    created:          Items priced and frozen, notes still editable
    pending_approval: Sent to the customer/manager for a decision
    approved:         Terminal, work may proceed
    rejected:         Terminal

RULES (NON-NEGOTIABLE):
1. Cannot skip states (created -> approved is forbidden)
2. Cannot reverse states (approved -> pending_approval is forbidden)
3. Items and total_amount_cents are fixed at creation
4. An order is never visible without its items: order and items commit
   together, and if writing the items fails the order row is removed
   before the error is returned

CONCURRENCY:
- Transitions lock the order row (SELECT ... FOR UPDATE where supported)
- JobOrder.version_id rejects the losing writer of two concurrent transitions
- Order numbers come from the per-branch document sequence
================================================================================
"""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConflictError, InternalError, InvalidTransitionError, NotFoundError, ValidationError
from ..models import Customer, JobOrder, JobOrderItem, Vehicle
from ..time_utils import utcnow
from ..validation import clean_text, parse_id, parse_quantity, reject_unknown_fields, require_payload
from .audit_service import audited_attempt, record_audit_event
from .authorization_service import (
    Principal,
    JOB_ORDER_CREATE_ROLES,
    JOB_ORDER_DELETE_ROLES,
    JOB_ORDER_TRANSITION_ROLES,
    JOB_ORDER_UPDATE_ROLES,
    JOB_ORDER_VIEW_ROLES,
    require_any_role,
    require_branch_access,
    visible_branch_ids,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .pagination import paginate, parse_optional_int, parse_page_args
from .pricing_service import compute_line_total, resolve_price


logger = logging.getLogger(__name__)

ENTITY_TYPE = "JOB_ORDER"

STATUS_CREATED = "created"
STATUS_PENDING_APPROVAL = "pending_approval"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

VALID_STATUSES = (STATUS_CREATED, STATUS_PENDING_APPROVAL, STATUS_APPROVED, STATUS_REJECTED)
DECISIONS = (STATUS_APPROVED, STATUS_REJECTED)

# from_status -> allowed to_statuses
ALLOWED_TRANSITIONS = {
    STATUS_CREATED: {STATUS_PENDING_APPROVAL},
    STATUS_PENDING_APPROVAL: {STATUS_APPROVED, STATUS_REJECTED},
    STATUS_APPROVED: set(),
    STATUS_REJECTED: set(),
}

CREATE_FIELDS = {"customer_id", "vehicle_id", "branch_id", "notes", "items"}
ITEM_FIELDS = {"catalog_item_id", "quantity"}


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check if a state transition is allowed.

    Allowed:
    - created -> pending_approval
    - pending_approval -> approved
    - pending_approval -> rejected
    """
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


# =============================================================================
# READS
# =============================================================================

def _get_order_or_404(order_id: int) -> JobOrder:
    order = db.session.get(JobOrder, order_id)
    if order is None:
        raise NotFoundError("Job order not found")
    return order


def _get_order_for_update(order_id: int) -> JobOrder:
    order = lock_for_update(db.session.query(JobOrder).filter(JobOrder.id == order_id)).first()
    if order is None:
        raise NotFoundError("Job order not found")
    return order


def get_job_order(principal: Principal, order_id: int) -> dict:
    require_any_role(principal, JOB_ORDER_VIEW_ROLES, "view job orders")
    order = _get_order_or_404(order_id)
    require_branch_access(principal, order.branch_id, "job order")
    return order.to_dict(include_items=True)


def list_job_orders(principal: Principal, filters: dict) -> dict:
    """
    Job order listing, newest first.

    Filters: branch_id, customer_id, vehicle_id, status, search (order number
    or notes), limit, offset. Non-HM principals only see their branches.
    """
    require_any_role(principal, JOB_ORDER_VIEW_ROLES, "view job orders")
    limit, offset = parse_page_args(filters)

    q = db.session.query(JobOrder)

    scope = visible_branch_ids(principal)
    if scope is not None:
        q = q.filter(JobOrder.branch_id.in_(scope))

    for key, column in (
        ("branch_id", JobOrder.branch_id),
        ("customer_id", JobOrder.customer_id),
        ("vehicle_id", JobOrder.vehicle_id),
    ):
        value = parse_optional_int(filters, key)
        if value is not None:
            q = q.filter(column == value)

    status = filters.get("status")
    if status:
        if status not in VALID_STATUSES:
            raise ValidationError(f"Invalid status '{status}'. Must be one of: {', '.join(VALID_STATUSES)}")
        q = q.filter(JobOrder.status == status)

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(JobOrder.order_number.ilike(pattern), JobOrder.notes.ilike(pattern)))

    q = q.order_by(JobOrder.created_at.desc(), JobOrder.id.desc())
    return paginate(q, limit=limit, offset=offset)


# =============================================================================
# CREATE
# =============================================================================

def _parse_create_payload(payload) -> dict:
    payload = require_payload(payload)
    reject_unknown_fields(payload, CREATE_FIELDS)

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    lines = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {idx + 1} must be an object")
        reject_unknown_fields(raw, ITEM_FIELDS)
        lines.append({
            "catalog_item_id": parse_id(raw.get("catalog_item_id"), "catalog_item_id", label="Catalog item ID"),
            "quantity": parse_quantity(raw.get("quantity")),
        })

    return {
        "customer_id": parse_id(payload.get("customer_id"), "customer_id", label="Customer ID"),
        "vehicle_id": parse_id(payload.get("vehicle_id"), "vehicle_id", label="Vehicle ID"),
        "branch_id": parse_id(payload.get("branch_id"), "branch_id", label="Branch ID"),
        "notes": clean_text(payload.get("notes"), "notes"),
        "items": lines,
    }


def _price_lines(lines: list[dict], branch_id: int) -> tuple[list[dict], int]:
    """Resolve every line at the branch; returns (snapshots, total_amount_cents)."""
    snapshots = []
    total = 0
    for line in lines:
        resolved = resolve_price(line["catalog_item_id"], branch_id)
        line_total = compute_line_total(resolved, line["quantity"])
        total += line_total
        snapshots.append({
            "catalog_item_id": resolved.catalog_item.id,
            "catalog_item_name": resolved.catalog_item.name,
            "catalog_item_type": resolved.catalog_item.type,
            "quantity": line["quantity"],
            "base_price_cents": resolved.base_price_cents,
            "labor_price_cents": resolved.labor_price_cents,
            "packaging_price_cents": resolved.packaging_price_cents,
            "line_total_cents": line_total,
            "labor_pricing_rule_id": resolved.labor_rule.id if resolved.labor_rule else None,
            "packaging_pricing_rule_id": resolved.packaging_rule.id if resolved.packaging_rule else None,
        })
    return snapshots, total


def _persist_items(order_id: int, snapshots: list[dict]) -> None:
    for snapshot in snapshots:
        db.session.add(JobOrderItem(job_order_id=order_id, **snapshot))
    db.session.flush()


def _compensate_order(order_id: int) -> None:
    """Remove a partially written order and whatever items reached storage."""
    try:
        db.session.query(JobOrderItem).filter(JobOrderItem.job_order_id == order_id).delete(synchronize_session=False)
        db.session.query(JobOrder).filter(JobOrder.id == order_id).delete(synchronize_session=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to compensate job order %s after item write failure", order_id)
        raise
    logger.warning("Compensated job order %s after item write failure", order_id)


def _write_order(principal: Principal, data: dict, snapshots: list[dict], total: int) -> int:
    order = JobOrder(
        order_number=next_document_number(branch_id=data["branch_id"]),
        customer_id=data["customer_id"],
        vehicle_id=data["vehicle_id"],
        branch_id=data["branch_id"],
        status=STATUS_CREATED,
        total_amount_cents=total,
        notes=data["notes"],
        created_by=principal.id,
    )
    db.session.add(order)
    db.session.flush()
    order_id = order.id

    try:
        _persist_items(order_id, snapshots)
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        logger.exception("Failed to write items for job order %s", order_id)
        _compensate_order(order_id)
        raise InternalError("Failed to create job order items; the job order was not created") from exc

    return order_id


def create_job_order(principal: Principal, payload) -> dict:
    """
    Create a job order with priced item snapshots.

    Requires: HM, or POC, JS or R with access to branch_id.

    Error responses:
    - 400: malformed payload, vehicle not owned by the customer
    - 403: role or branch denied
    - 404: customer, vehicle or catalog item missing / not usable at the branch
    - 500: storage failure (order compensated)
    """
    data = _parse_create_payload(payload)
    branch_id = data["branch_id"]

    with audited_attempt(
        principal, "CREATE", ENTITY_TYPE,
        failure_message="Failed to create job order",
        branch_id=branch_id,
    ):
        require_any_role(principal, JOB_ORDER_CREATE_ROLES, "create job orders")
        require_branch_access(principal, branch_id)

        if db.session.get(Customer, data["customer_id"]) is None:
            raise NotFoundError("Customer not found")
        vehicle = db.session.get(Vehicle, data["vehicle_id"])
        if vehicle is None:
            raise NotFoundError("Vehicle not found")
        if vehicle.customer_id != data["customer_id"]:
            raise ValidationError("Vehicle does not belong to the specified customer")

        snapshots, total = _price_lines(data["items"], branch_id)
        order_id = run_with_retry(lambda: _write_order(principal, data, snapshots, total))

    order = _get_order_or_404(order_id)
    result = order.to_dict(include_items=True)
    record_audit_event(
        action="CREATE",
        entity_type=ENTITY_TYPE,
        entity_id=order.id,
        principal_id=principal.id,
        branch_id=order.branch_id,
        new_values={
            "order_number": order.order_number,
            "status": order.status,
            "total_amount_cents": order.total_amount_cents,
            "item_count": len(order.items),
        },
    )
    return result


# =============================================================================
# UPDATE / DELETE
# =============================================================================

def update_job_order(principal: Principal, order_id: int, payload) -> dict:
    """Only notes are editable; items and totals are frozen at creation."""
    payload = require_payload(payload)
    disallowed = sorted(k for k in payload if k != "notes")
    if disallowed:
        raise ValidationError(f"Only notes can be updated on a job order. Not allowed: {', '.join(disallowed)}")
    if "notes" not in payload:
        raise ValidationError("notes is required")
    notes = clean_text(payload["notes"], "notes")

    with audited_attempt(
        principal, "UPDATE", ENTITY_TYPE,
        failure_message="Failed to update job order",
        entity_id=order_id,
    ):
        require_any_role(principal, JOB_ORDER_UPDATE_ROLES, "update job orders")
        order = _get_order_or_404(order_id)
        require_branch_access(principal, order.branch_id, "job order")

        old_notes = order.notes
        order.notes = notes
        _commit_versioned()

    record_audit_event(
        action="UPDATE",
        entity_type=ENTITY_TYPE,
        entity_id=order.id,
        principal_id=principal.id,
        branch_id=order.branch_id,
        old_values={"notes": old_notes},
        new_values={"notes": notes},
    )
    return order.to_dict(include_items=True)


def delete_job_order(principal: Principal, order_id: int) -> dict:
    """
    Delete an order and its items (items first).

    NOTE: Orders are deletable in every status, approved ones included.
    """
    with audited_attempt(
        principal, "DELETE", ENTITY_TYPE,
        failure_message="Failed to delete job order",
        entity_id=order_id,
    ):
        require_any_role(principal, JOB_ORDER_DELETE_ROLES, "delete job orders")
        order = _get_order_or_404(order_id)
        require_branch_access(principal, order.branch_id, "job order")

        old_values = order.to_dict()
        branch_id = order.branch_id

        db.session.query(JobOrderItem).filter(JobOrderItem.job_order_id == order_id).delete(synchronize_session=False)
        db.session.query(JobOrder).filter(JobOrder.id == order_id).delete(synchronize_session=False)
        db.session.commit()

    record_audit_event(
        action="DELETE",
        entity_type=ENTITY_TYPE,
        entity_id=order_id,
        principal_id=principal.id,
        branch_id=branch_id,
        old_values=old_values,
    )
    return {"deleted": True, "message": "Job order deleted successfully"}


# =============================================================================
# TRANSITIONS
# =============================================================================

def _commit_versioned() -> None:
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise ConflictError("Job order was modified by another request. Reload and try again.")


def request_approval(principal: Principal, order_id: int) -> dict:
    """
    created -> pending_approval

    Requires: HM, or POC, JS, R or T with access to the order's branch.
    """
    def _transition() -> JobOrder:
        order = _get_order_for_update(order_id)
        require_branch_access(principal, order.branch_id, "job order")

        if not can_transition(order.status, STATUS_PENDING_APPROVAL):
            raise InvalidTransitionError(
                f'Cannot request approval for a job order with status "{order.status}". '
                f'Only "{STATUS_CREATED}" orders can be sent for approval.'
            )

        order.status = STATUS_PENDING_APPROVAL
        _commit_versioned()
        return order

    with audited_attempt(
        principal, "REQUEST_APPROVAL", ENTITY_TYPE,
        failure_message="Failed to request approval",
        entity_id=order_id,
    ):
        require_any_role(principal, JOB_ORDER_TRANSITION_ROLES, "request approval")
        order = run_with_retry(_transition)

    record_audit_event(
        action="REQUEST_APPROVAL",
        entity_type=ENTITY_TYPE,
        entity_id=order.id,
        principal_id=principal.id,
        branch_id=order.branch_id,
        old_values={"status": STATUS_CREATED},
        new_values={"status": order.status},
    )
    return order.to_dict(include_items=True)


def record_approval(principal: Principal, order_id: int, payload) -> dict:
    """
    pending_approval -> approved | rejected

    Body: {"decision": "approved" | "rejected", "notes": optional}
    Stamps approved_at, approved_by and approval_notes for either decision.
    """
    payload = require_payload(payload)
    decision = payload.get("decision")
    if decision not in DECISIONS:
        raise ValidationError('Decision must be either "approved" or "rejected"')
    notes = clean_text(payload.get("notes"), "notes")
    action = "APPROVE" if decision == STATUS_APPROVED else "REJECT"

    def _transition() -> JobOrder:
        order = _get_order_for_update(order_id)
        require_branch_access(principal, order.branch_id, "job order")

        if not can_transition(order.status, decision):
            raise InvalidTransitionError(
                f'Cannot record approval for a job order with status "{order.status}". '
                f'Only "{STATUS_PENDING_APPROVAL}" orders can be approved or rejected.'
            )

        order.status = decision
        order.approved_at = utcnow()
        order.approved_by = principal.id
        order.approval_notes = notes
        _commit_versioned()
        return order

    with audited_attempt(
        principal, action, ENTITY_TYPE,
        failure_message="Failed to record approval",
        entity_id=order_id,
    ):
        require_any_role(principal, JOB_ORDER_TRANSITION_ROLES, "record approval decisions")
        order = run_with_retry(_transition)

    record_audit_event(
        action=action,
        entity_type=ENTITY_TYPE,
        entity_id=order.id,
        principal_id=principal.id,
        branch_id=order.branch_id,
        old_values={"status": STATUS_PENDING_APPROVAL},
        new_values={"status": order.status, "approval_notes": notes},
    )
    return order.to_dict(include_items=True)
