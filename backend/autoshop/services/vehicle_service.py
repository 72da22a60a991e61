# Overview: Vehicles of branch customers; plate numbers are unique and deletion only deactivates.

"""
Vehicle Service

RULES:
- A vehicle belongs to one customer and to that customer's branch
- plate_number is stored upper-cased and is unique across all branches
- DELETE never removes the row: job orders keep pointing at it, so the
  vehicle is set inactive
"""

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Customer, Vehicle
from ..models.catalog import RECORD_STATUSES
from ..models.customers import VEHICLE_TYPES
from ..time_utils import utcnow
from ..validation import (
    clean_text,
    parse_choice,
    parse_id,
    parse_year,
    reject_unknown_fields,
    require_payload,
    require_text,
)
from .audit_service import audited_attempt, record_audit_event
from .authorization_service import (
    Principal,
    VEHICLE_MANAGE_ROLES,
    VEHICLE_VIEW_ROLES,
    require_any_role,
    require_branch_access,
    visible_branch_ids,
)
from .pagination import paginate, parse_optional_int, parse_page_args


ENTITY_TYPE = "VEHICLE"

VEHICLE_FIELDS = {"plate_number", "vehicle_type", "model", "color", "year", "customer_id", "branch_id", "status"}
VEHICLE_UPDATE_FIELDS = VEHICLE_FIELDS - {"branch_id"}

DUPLICATE_PLATE = "A vehicle with this plate number already exists"


def _get_vehicle_or_404(vehicle_id: int) -> Vehicle:
    vehicle = db.session.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise NotFoundError("Vehicle not found")
    return vehicle


def _plate(value) -> str:
    return require_text(value, "plate_number", label="Plate number", max_length=32).upper()


def _require_owner(customer_id: int, branch_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    if customer.branch_id != branch_id:
        raise ValidationError("Vehicle must belong to the same branch as the customer")
    return customer


def _assert_plate_free(plate_number: str, exclude_vehicle_id: int | None = None) -> None:
    q = db.session.query(Vehicle.id).filter(Vehicle.plate_number == plate_number)
    if exclude_vehicle_id is not None:
        q = q.filter(Vehicle.id != exclude_vehicle_id)
    if q.first() is not None:
        raise ConflictError(DUPLICATE_PLATE)


def _commit_vehicle() -> None:
    """The unique constraint on plate_number is authoritative under races."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(DUPLICATE_PLATE)


def list_vehicles(principal: Principal, filters: dict) -> dict:
    """Filters: branch_id, customer_id, status, vehicle_type, search (plate/model/color)."""
    require_any_role(principal, VEHICLE_VIEW_ROLES, "view vehicles")
    limit, offset = parse_page_args(filters)

    q = db.session.query(Vehicle)

    scope = visible_branch_ids(principal)
    if scope is not None:
        q = q.filter(Vehicle.branch_id.in_(scope))

    for key in ("branch_id", "customer_id"):
        value = parse_optional_int(filters, key)
        if value is not None:
            q = q.filter(getattr(Vehicle, key) == value)

    status = filters.get("status")
    if status:
        q = q.filter(Vehicle.status == parse_choice(status, RECORD_STATUSES, "Status"))

    vehicle_type = filters.get("vehicle_type")
    if vehicle_type:
        q = q.filter(Vehicle.vehicle_type == parse_choice(vehicle_type, VEHICLE_TYPES, "Vehicle type"))

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(
            Vehicle.plate_number.ilike(pattern),
            Vehicle.model.ilike(pattern),
            Vehicle.color.ilike(pattern),
        ))

    q = q.order_by(Vehicle.created_at.desc(), Vehicle.id.desc())
    return paginate(q, limit=limit, offset=offset)


def get_vehicle(principal: Principal, vehicle_id: int) -> dict:
    require_any_role(principal, VEHICLE_VIEW_ROLES, "view vehicles")
    vehicle = _get_vehicle_or_404(vehicle_id)
    require_branch_access(principal, vehicle.branch_id, "vehicle")
    return vehicle.to_dict()


def create_vehicle(principal: Principal, payload) -> dict:
    """
    Register a vehicle for a customer.

    Required: plate_number, vehicle_type, model, customer_id, branch_id.
    Errors: 400 branch differs from the customer's, 404 customer missing,
    409 plate number taken.
    """
    payload = require_payload(payload)
    reject_unknown_fields(payload, VEHICLE_FIELDS)

    plate_number = _plate(payload.get("plate_number"))
    vehicle_type = parse_choice(payload.get("vehicle_type"), VEHICLE_TYPES, "Vehicle type")
    model = require_text(payload.get("model"), "model", label="Model", max_length=120)
    customer_id = parse_id(payload.get("customer_id"), "customer_id", label="Customer")
    branch_id = parse_id(payload.get("branch_id"), "branch_id", label="Branch")
    year = parse_year(payload.get("year"), latest=utcnow().year + 1)
    color = clean_text(payload.get("color"), "color", max_length=32)
    status = parse_choice(payload.get("status") or "active", RECORD_STATUSES, "Status")

    with audited_attempt(
        principal, "CREATE", ENTITY_TYPE,
        failure_message="Failed to create vehicle",
        branch_id=branch_id,
    ):
        require_any_role(principal, VEHICLE_MANAGE_ROLES, "create vehicles")
        require_branch_access(principal, branch_id)
        _require_owner(customer_id, branch_id)
        _assert_plate_free(plate_number)

        vehicle = Vehicle(
            plate_number=plate_number,
            vehicle_type=vehicle_type,
            model=model,
            color=color,
            year=year,
            customer_id=customer_id,
            branch_id=branch_id,
            status=status,
            created_by=principal.id,
        )
        db.session.add(vehicle)
        _commit_vehicle()

    result = vehicle.to_dict()
    record_audit_event(
        action="CREATE",
        entity_type=ENTITY_TYPE,
        entity_id=vehicle.id,
        principal_id=principal.id,
        branch_id=vehicle.branch_id,
        new_values=result,
    )
    return result


def update_vehicle(principal: Principal, vehicle_id: int, payload) -> dict:
    """
    Update a vehicle. A new owner must be a customer of the same branch.
    """
    payload = require_payload(payload)
    reject_unknown_fields(payload, VEHICLE_UPDATE_FIELDS)

    patch: dict = {}
    if "plate_number" in payload:
        patch["plate_number"] = _plate(payload["plate_number"])
    if "vehicle_type" in payload:
        patch["vehicle_type"] = parse_choice(payload["vehicle_type"], VEHICLE_TYPES, "Vehicle type")
    if "model" in payload:
        patch["model"] = require_text(payload["model"], "model", label="Model", max_length=120)
    if "color" in payload:
        patch["color"] = clean_text(payload["color"], "color", max_length=32)
    if "year" in payload:
        patch["year"] = parse_year(payload["year"], latest=utcnow().year + 1)
    if "customer_id" in payload:
        patch["customer_id"] = parse_id(payload["customer_id"], "customer_id", label="Customer")
    if "status" in payload:
        patch["status"] = parse_choice(payload["status"], RECORD_STATUSES, "Status")
    if not patch:
        raise ValidationError("No fields to update")

    with audited_attempt(
        principal, "UPDATE", ENTITY_TYPE,
        failure_message="Failed to update vehicle",
        entity_id=vehicle_id,
    ):
        require_any_role(principal, VEHICLE_MANAGE_ROLES, "update vehicles")
        vehicle = _get_vehicle_or_404(vehicle_id)
        require_branch_access(principal, vehicle.branch_id, "vehicle")

        if "customer_id" in patch and patch["customer_id"] != vehicle.customer_id:
            _require_owner(patch["customer_id"], vehicle.branch_id)
        if "plate_number" in patch and patch["plate_number"] != vehicle.plate_number:
            _assert_plate_free(patch["plate_number"], exclude_vehicle_id=vehicle.id)

        old_values = vehicle.to_dict()
        for key, value in patch.items():
            setattr(vehicle, key, value)
        _commit_vehicle()

    result = vehicle.to_dict()
    record_audit_event(
        action="UPDATE",
        entity_type=ENTITY_TYPE,
        entity_id=vehicle.id,
        principal_id=principal.id,
        branch_id=vehicle.branch_id,
        old_values=old_values,
        new_values=result,
    )
    return result


def deactivate_vehicle(principal: Principal, vehicle_id: int) -> dict:
    with audited_attempt(
        principal, "UPDATE", ENTITY_TYPE,
        failure_message="Failed to deactivate vehicle",
        entity_id=vehicle_id,
    ):
        require_any_role(principal, VEHICLE_MANAGE_ROLES, "deactivate vehicles")
        vehicle = _get_vehicle_or_404(vehicle_id)
        require_branch_access(principal, vehicle.branch_id, "vehicle")

        old_status = vehicle.status
        vehicle.status = "inactive"
        db.session.commit()

    record_audit_event(
        action="UPDATE",
        entity_type=ENTITY_TYPE,
        entity_id=vehicle.id,
        principal_id=principal.id,
        branch_id=vehicle.branch_id,
        old_values={"status": old_status},
        new_values={"status": "inactive"},
    )
    return {"deactivated": True, "message": "Vehicle deactivated successfully"}
