# Overview: Branch-scoped customer records; deactivated instead of deleted once referenced.

"""
Customer Service

WHY: Job orders point at a customer and one of their vehicles, both owned by
the branch that registered them. Front-desk staff keep these records here.

RULES:
- Every customer belongs to exactly one branch; non-HM principals only see
  and touch customers of their assigned branches
- A customer keeps at least one contact method (phone or email)
- Customers with vehicles or job orders are deactivated, never deleted
"""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Branch, Customer, JobOrder, Vehicle
from ..models.catalog import RECORD_STATUSES
from ..models.customers import CUSTOMER_TYPES
from ..validation import (
    clean_email,
    clean_phone,
    clean_text,
    parse_choice,
    parse_id,
    reject_unknown_fields,
    require_payload,
    require_text,
)
from .audit_service import audited_attempt, record_audit_event
from .authorization_service import (
    Principal,
    CUSTOMER_CREATE_ROLES,
    CUSTOMER_DELETE_ROLES,
    CUSTOMER_UPDATE_ROLES,
    CUSTOMER_VIEW_ROLES,
    require_any_role,
    require_branch_access,
    visible_branch_ids,
)
from .pagination import paginate, parse_optional_int, parse_page_args


logger = logging.getLogger(__name__)

ENTITY_TYPE = "CUSTOMER"

CUSTOMER_FIELDS = {
    "full_name", "contact_number", "email", "customer_type", "branch_id", "status", "address", "notes",
}
CUSTOMER_UPDATE_FIELDS = CUSTOMER_FIELDS - {"branch_id"}

CONTACT_REQUIRED = "At least one contact method (phone or email) is required"


def _get_customer_or_404(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(principal: Principal, filters: dict) -> dict:
    """Filters: branch_id, status, customer_type, search (name/email/phone)."""
    require_any_role(principal, CUSTOMER_VIEW_ROLES, "view customers")
    limit, offset = parse_page_args(filters)

    q = db.session.query(Customer)

    scope = visible_branch_ids(principal)
    if scope is not None:
        q = q.filter(Customer.branch_id.in_(scope))

    branch_id = parse_optional_int(filters, "branch_id")
    if branch_id is not None:
        q = q.filter(Customer.branch_id == branch_id)

    status = filters.get("status")
    if status:
        q = q.filter(Customer.status == parse_choice(status, RECORD_STATUSES, "Status"))

    customer_type = filters.get("customer_type")
    if customer_type:
        q = q.filter(Customer.customer_type == parse_choice(customer_type, CUSTOMER_TYPES, "Customer type"))

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(
            Customer.full_name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.contact_number.ilike(pattern),
        ))

    q = q.order_by(Customer.created_at.desc(), Customer.id.desc())
    return paginate(q, limit=limit, offset=offset)


def get_customer(principal: Principal, customer_id: int) -> dict:
    require_any_role(principal, CUSTOMER_VIEW_ROLES, "view customers")
    customer = _get_customer_or_404(customer_id)
    require_branch_access(principal, customer.branch_id, "customer")
    return customer.to_dict()


def create_customer(principal: Principal, payload) -> dict:
    """
    Register a customer at a branch.

    Required: full_name, customer_type, branch_id, and contact_number or email.
    """
    payload = require_payload(payload)
    reject_unknown_fields(payload, CUSTOMER_FIELDS)

    full_name = require_text(payload.get("full_name"), "full_name", label="Full name", max_length=255)
    contact_number = clean_phone(payload.get("contact_number"))
    email = clean_email(payload.get("email"))
    if contact_number is None and email is None:
        raise ValidationError(CONTACT_REQUIRED)
    customer_type = parse_choice(payload.get("customer_type"), CUSTOMER_TYPES, "Customer type")
    branch_id = parse_id(payload.get("branch_id"), "branch_id", label="Branch")
    status = parse_choice(payload.get("status") or "active", RECORD_STATUSES, "Status")

    with audited_attempt(
        principal, "CREATE", ENTITY_TYPE,
        failure_message="Failed to create customer",
        branch_id=branch_id,
    ):
        require_any_role(principal, CUSTOMER_CREATE_ROLES, "create customers")
        require_branch_access(principal, branch_id)
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError("Branch not found")

        customer = Customer(
            full_name=full_name,
            contact_number=contact_number,
            email=email,
            customer_type=customer_type,
            branch_id=branch_id,
            status=status,
            address=clean_text(payload.get("address"), "address", max_length=255),
            notes=clean_text(payload.get("notes"), "notes"),
            created_by=principal.id,
        )
        db.session.add(customer)
        db.session.commit()

    result = customer.to_dict()
    record_audit_event(
        action="CREATE",
        entity_type=ENTITY_TYPE,
        entity_id=customer.id,
        principal_id=principal.id,
        branch_id=customer.branch_id,
        new_values=result,
    )
    return result


def update_customer(principal: Principal, customer_id: int, payload) -> dict:
    """
    Update customer details. The owning branch never changes.

    Clearing contact_number or email is allowed while the other one remains.
    """
    payload = require_payload(payload)
    reject_unknown_fields(payload, CUSTOMER_UPDATE_FIELDS)

    patch: dict = {}
    if "full_name" in payload:
        patch["full_name"] = require_text(payload["full_name"], "full_name", label="Full name", max_length=255)
    if "contact_number" in payload:
        patch["contact_number"] = clean_phone(payload["contact_number"])
    if "email" in payload:
        patch["email"] = clean_email(payload["email"])
    if "customer_type" in payload:
        patch["customer_type"] = parse_choice(payload["customer_type"], CUSTOMER_TYPES, "Customer type")
    if "status" in payload:
        patch["status"] = parse_choice(payload["status"], RECORD_STATUSES, "Status")
    if "address" in payload:
        patch["address"] = clean_text(payload["address"], "address", max_length=255)
    if "notes" in payload:
        patch["notes"] = clean_text(payload["notes"], "notes")
    if not patch:
        raise ValidationError("No fields to update")

    with audited_attempt(
        principal, "UPDATE", ENTITY_TYPE,
        failure_message="Failed to update customer",
        entity_id=customer_id,
    ):
        require_any_role(principal, CUSTOMER_UPDATE_ROLES, "update customers")
        customer = _get_customer_or_404(customer_id)
        require_branch_access(principal, customer.branch_id, "customer")

        phone = patch.get("contact_number", customer.contact_number)
        email = patch.get("email", customer.email)
        if phone is None and email is None:
            raise ValidationError(CONTACT_REQUIRED)

        old_values = customer.to_dict()
        for key, value in patch.items():
            setattr(customer, key, value)
        db.session.commit()

    result = customer.to_dict()
    record_audit_event(
        action="UPDATE",
        entity_type=ENTITY_TYPE,
        entity_id=customer.id,
        principal_id=principal.id,
        branch_id=customer.branch_id,
        old_values=old_values,
        new_values=result,
    )
    return result


def _is_referenced(customer_id: int) -> bool:
    if db.session.query(Vehicle.id).filter(Vehicle.customer_id == customer_id).first() is not None:
        return True
    return db.session.query(JobOrder.id).filter(JobOrder.customer_id == customer_id).first() is not None


def delete_customer(principal: Principal, customer_id: int) -> dict:
    """Delete a customer; one with vehicles or job orders is deactivated instead."""
    with audited_attempt(
        principal, "DELETE", ENTITY_TYPE,
        failure_message="Failed to delete customer",
        entity_id=customer_id,
    ):
        require_any_role(principal, CUSTOMER_DELETE_ROLES, "delete customers")
        customer = _get_customer_or_404(customer_id)
        require_branch_access(principal, customer.branch_id, "customer")

        old_values = customer.to_dict()
        branch_id = customer.branch_id

        deactivated = _is_referenced(customer.id)
        if not deactivated:
            try:
                with db.session.begin_nested():
                    db.session.delete(customer)
            except IntegrityError:
                deactivated = True

        if deactivated:
            customer = _get_customer_or_404(customer_id)
            customer.status = "inactive"
        db.session.commit()

    if deactivated:
        logger.info("Customer %s is referenced; deactivated instead of deleted", customer_id)
        record_audit_event(
            action="UPDATE",
            entity_type=ENTITY_TYPE,
            entity_id=customer_id,
            principal_id=principal.id,
            branch_id=branch_id,
            old_values=old_values,
            new_values={"status": "inactive"},
        )
        return {
            "deactivated": True,
            "message": "Customer has vehicles or job orders and has been deactivated instead",
        }

    record_audit_event(
        action="DELETE",
        entity_type=ENTITY_TYPE,
        entity_id=customer_id,
        principal_id=principal.id,
        branch_id=branch_id,
        old_values=old_values,
    )
    return {"deleted": True, "message": "Customer deleted successfully"}
