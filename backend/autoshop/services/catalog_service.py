# Overview: Catalog item maintenance with branch scoping and HM-only global items.

"""
Catalog Service

GLOBAL ITEMS:
- is_global=True  -> branch_id is NULL, visible at every branch
- is_global=False -> branch_id is set, visible only to that branch (and HM)

Every write path normalizes the pair so is_global <=> branch_id IS NULL holds
before the row reaches the database; ck_catalog_items_global_branch backs it.
Creating, editing, deleting or toggling a global item is HM only.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Branch, CatalogItem, JobOrderItem
from ..models.catalog import CATALOG_ITEM_TYPES, RECORD_STATUSES
from ..validation import (
    clean_text,
    parse_bool,
    parse_choice,
    parse_id,
    parse_price_cents,
    reject_unknown_fields,
    require_payload,
    require_text,
)
from .audit_service import audited_attempt, record_audit_event
from .authorization_service import (
    Principal,
    CATALOG_MANAGE_ROLES,
    CATALOG_VIEW_ROLES,
    require_any_role,
    require_branch_access,
    require_catalog_item_access,
    require_global_item_manager,
    visible_branch_ids,
)
from .pagination import paginate, parse_optional_int, parse_page_args


logger = logging.getLogger(__name__)

ENTITY_TYPE = "CATALOG_ITEM"

CATALOG_ITEM_FIELDS = {"name", "type", "description", "base_price_cents", "status", "branch_id", "is_global"}


def _get_item_or_404(item_id: int) -> CatalogItem:
    item = db.session.get(CatalogItem, item_id)
    if item is None:
        raise NotFoundError("Catalog item not found")
    return item


def _require_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError("Branch not found")
    return branch


def _parse_patch(payload: dict) -> dict:
    patch: dict = {}
    if "name" in payload:
        patch["name"] = require_text(payload["name"], "name", label="Name", max_length=255)
    if "type" in payload:
        patch["type"] = parse_choice(payload["type"], CATALOG_ITEM_TYPES, "Type")
    if "description" in payload:
        patch["description"] = clean_text(payload["description"], "description")
    if "base_price_cents" in payload:
        patch["base_price_cents"] = parse_price_cents(payload["base_price_cents"], "base_price_cents")
    if "status" in payload:
        patch["status"] = parse_choice(payload["status"], RECORD_STATUSES, "Status")
    if "is_global" in payload:
        patch["is_global"] = parse_bool(payload["is_global"], "is_global")
    if "branch_id" in payload and payload["branch_id"] is not None:
        patch["branch_id"] = parse_id(payload["branch_id"], "branch_id", label="Branch ID")
    elif "branch_id" in payload:
        patch["branch_id"] = None
    return patch


def list_catalog_items(principal: Principal, filters: dict) -> dict:
    """
    Catalog listing.

    Non-HM principals see global items plus items of their own branches.
    Filters: type, status, branch_id, is_global, search (name/description).
    """
    require_any_role(principal, CATALOG_VIEW_ROLES, "view catalog items")
    limit, offset = parse_page_args(filters)

    q = db.session.query(CatalogItem)

    scope = visible_branch_ids(principal)
    if scope is not None:
        q = q.filter(or_(CatalogItem.is_global.is_(True), CatalogItem.branch_id.in_(scope)))

    item_type = filters.get("type")
    if item_type:
        q = q.filter(CatalogItem.type == parse_choice(item_type, CATALOG_ITEM_TYPES, "Type"))

    status = filters.get("status")
    if status:
        q = q.filter(CatalogItem.status == parse_choice(status, RECORD_STATUSES, "Status"))

    branch_id = parse_optional_int(filters, "branch_id")
    if branch_id is not None:
        # Branch view includes the globals usable there
        q = q.filter(or_(CatalogItem.branch_id == branch_id, CatalogItem.is_global.is_(True)))

    is_global = filters.get("is_global")
    if is_global not in (None, ""):
        q = q.filter(CatalogItem.is_global.is_(parse_bool(is_global, "is_global")))

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(CatalogItem.name.ilike(pattern), CatalogItem.description.ilike(pattern)))

    q = q.order_by(CatalogItem.name.asc(), CatalogItem.id.asc())
    return paginate(q, limit=limit, offset=offset)


def get_catalog_item(principal: Principal, item_id: int) -> dict:
    require_any_role(principal, CATALOG_VIEW_ROLES, "view catalog items")
    item = _get_item_or_404(item_id)
    require_catalog_item_access(principal, item)
    return item.to_dict()


def create_catalog_item(principal: Principal, payload) -> dict:
    """
    Create a catalog item.

    Required: name, type, base_price_cents, and branch_id unless is_global.
    A global item never keeps a branch_id, even if one was sent.
    """
    payload = require_payload(payload)
    reject_unknown_fields(payload, CATALOG_ITEM_FIELDS)

    name = require_text(payload.get("name"), "name", label="Name", max_length=255)
    item_type = parse_choice(payload.get("type"), CATALOG_ITEM_TYPES, "Type")
    base_price_cents = parse_price_cents(payload.get("base_price_cents"), "base_price_cents")
    description = clean_text(payload.get("description"), "description")
    status = parse_choice(payload.get("status") or "active", RECORD_STATUSES, "Status")
    is_global = parse_bool(payload.get("is_global", False), "is_global")

    branch_id = None
    if not is_global:
        branch_id = parse_id(payload.get("branch_id"), "branch_id", label="Branch ID for non-global items")

    with audited_attempt(
        principal, "CREATE", ENTITY_TYPE,
        failure_message="Failed to create catalog item",
        branch_id=branch_id,
    ):
        require_any_role(principal, CATALOG_MANAGE_ROLES, "create catalog items")
        if is_global:
            require_global_item_manager(principal, "create")
        else:
            require_branch_access(principal, branch_id)
            _require_branch(branch_id)

        item = CatalogItem(
            name=name,
            type=item_type,
            description=description,
            base_price_cents=base_price_cents,
            status=status,
            is_global=is_global,
            branch_id=branch_id,
            created_by=principal.id,
        )
        db.session.add(item)
        db.session.commit()

    result = item.to_dict()
    record_audit_event(
        action="CREATE",
        entity_type=ENTITY_TYPE,
        entity_id=item.id,
        principal_id=principal.id,
        branch_id=item.branch_id,
        new_values=result,
    )
    return result


def update_catalog_item(principal: Principal, item_id: int, payload) -> dict:
    """
    Update a catalog item.

    RULES:
    - Editing a global item, or changing is_global either way, is HM only
    - Becoming global clears branch_id
    - Becoming branch-scoped requires a branch_id the principal can access
    """
    payload = require_payload(payload)
    reject_unknown_fields(payload, CATALOG_ITEM_FIELDS)
    patch = _parse_patch(payload)

    with audited_attempt(
        principal, "UPDATE", ENTITY_TYPE,
        failure_message="Failed to update catalog item",
        entity_id=item_id,
    ):
        require_any_role(principal, CATALOG_MANAGE_ROLES, "update catalog items")
        item = _get_item_or_404(item_id)
        require_catalog_item_access(principal, item)

        if item.is_global:
            require_global_item_manager(principal, "edit")
        else:
            require_branch_access(principal, item.branch_id, "catalog item")

        is_global = patch.get("is_global", item.is_global)
        if is_global != item.is_global:
            require_global_item_manager(principal, "toggle the global flag of")

        if is_global:
            patch["branch_id"] = None
        else:
            branch_id = patch.get("branch_id", item.branch_id)
            if branch_id is None:
                raise ValidationError("Branch ID is required for non-global items")
            if branch_id != item.branch_id:
                require_branch_access(principal, branch_id)
                _require_branch(branch_id)
            patch["branch_id"] = branch_id
        patch["is_global"] = is_global

        old_values = item.to_dict()
        for key, value in patch.items():
            setattr(item, key, value)
        db.session.commit()

    result = item.to_dict()
    record_audit_event(
        action="UPDATE",
        entity_type=ENTITY_TYPE,
        entity_id=item.id,
        principal_id=principal.id,
        branch_id=item.branch_id,
        old_values=old_values,
        new_values=result,
    )
    return result


def _is_referenced(item_id: int) -> bool:
    return db.session.query(JobOrderItem.id).filter(JobOrderItem.catalog_item_id == item_id).first() is not None


def delete_catalog_item(principal: Principal, item_id: int) -> dict:
    """
    Delete a catalog item and its pricing rules.

    Items already used on job orders are deactivated instead.
    """
    with audited_attempt(
        principal, "DELETE", ENTITY_TYPE,
        failure_message="Failed to delete catalog item",
        entity_id=item_id,
    ):
        require_any_role(principal, CATALOG_MANAGE_ROLES, "delete catalog items")
        item = _get_item_or_404(item_id)
        require_catalog_item_access(principal, item)
        if item.is_global:
            require_global_item_manager(principal, "delete")
        else:
            require_branch_access(principal, item.branch_id, "catalog item")

        old_values = item.to_dict()
        branch_id = item.branch_id

        deactivated = _is_referenced(item.id)
        if not deactivated:
            try:
                with db.session.begin_nested():
                    db.session.delete(item)
            except IntegrityError:
                deactivated = True

        if deactivated:
            item = _get_item_or_404(item_id)
            item.status = "inactive"
        db.session.commit()

    if deactivated:
        logger.info("Catalog item %s is referenced; deactivated instead of deleted", item_id)
        record_audit_event(
            action="UPDATE",
            entity_type=ENTITY_TYPE,
            entity_id=item_id,
            principal_id=principal.id,
            branch_id=branch_id,
            old_values=old_values,
            new_values={"status": "inactive"},
        )
        return {
            "deactivated": True,
            "message": "Catalog item is referenced by other records and has been deactivated instead",
        }

    record_audit_event(
        action="DELETE",
        entity_type=ENTITY_TYPE,
        entity_id=item_id,
        principal_id=principal.id,
        branch_id=branch_id,
        old_values=old_values,
    )
    return {"deleted": True, "message": "Catalog item deleted successfully"}
