# Overview: Price resolution and pricing matrix maintenance (labor/packaging rules per branch).

"""
Pricing Service

WHY: A catalog item carries only a base price. Each branch layers its own
labor and packaging components on top through pricing rules, so the same
item can cost differently per branch without duplicating the catalog.

RULES:
1. At most one ACTIVE rule per (catalog_item_id, branch_id, pricing_type).
   assert_no_active_conflict checks it before every activation;
   uq_pricing_rules_active is the authoritative backstop under concurrency.
2. Resolution is read-only and idempotent: same storage state, same answer.
3. A missing component resolves to None (not 0) and contributes 0 to totals.
4. If legacy data ever holds duplicate active rules, the most recently
   created rule wins and the duplication is logged at WARNING.

All money is integer cents.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Branch, CatalogItem, PricingRule, JobOrderItem
from ..models.catalog import PRICING_TYPES, RECORD_STATUSES
from ..validation import (
    clean_text,
    parse_choice,
    parse_id,
    parse_price_cents,
    reject_unknown_fields,
    require_payload,
)
from .audit_service import audited_attempt, record_audit_event
from .authorization_service import (
    Principal,
    PRICING_MANAGE_ROLES,
    PRICING_RESOLVE_ROLES,
    PRICING_VIEW_ROLES,
    require_any_role,
    require_branch_access,
    visible_branch_ids,
)
from .pagination import paginate, parse_optional_int, parse_page_args


logger = logging.getLogger(__name__)

ENTITY_TYPE = "PRICING_MATRIX"

PRICING_RULE_FIELDS = {"catalog_item_id", "branch_id", "pricing_type", "price_cents", "status", "description"}


@dataclass(frozen=True)
class ResolvedPrice:
    """Price components for one catalog item at one branch."""
    catalog_item: CatalogItem
    base_price_cents: int
    labor_price_cents: int | None = None
    packaging_price_cents: int | None = None
    labor_rule: PricingRule | None = None
    packaging_rule: PricingRule | None = None

    @property
    def rules(self) -> list[PricingRule]:
        return [r for r in (self.labor_rule, self.packaging_rule) if r is not None]

    def to_dict(self) -> dict:
        return {
            "base_price_cents": self.base_price_cents,
            "labor_price_cents": self.labor_price_cents,
            "packaging_price_cents": self.packaging_price_cents,
        }


def conflict_message(pricing_type: str) -> str:
    return (
        f"An active {pricing_type} pricing rule already exists for this catalog item "
        f"in this branch. Deactivate it first."
    )


# =============================================================================
# PRICE RESOLVER
# =============================================================================

def _pick_rule(rules: list[PricingRule], pricing_type: str, catalog_item_id: int, branch_id: int) -> PricingRule | None:
    """rules arrive ordered newest first; the head wins."""
    if not rules:
        return None
    if len(rules) > 1:
        logger.warning(
            "Duplicate active %s pricing rules for catalog item %s at branch %s: %s; using rule %s",
            pricing_type, catalog_item_id, branch_id, [r.id for r in rules], rules[0].id,
        )
    return rules[0]


def resolve_price(catalog_item_id: int, branch_id: int) -> ResolvedPrice:
    """
    Resolve base + labor + packaging prices for an item at a branch.

    Raises NotFoundError if the item does not exist or is a branch item that
    belongs to a different branch.
    """
    item = db.session.get(CatalogItem, catalog_item_id)
    if item is None:
        raise NotFoundError(f"Catalog item {catalog_item_id} not found")
    if not item.is_global and item.branch_id != branch_id:
        raise NotFoundError(f"Catalog item {catalog_item_id} is not available at branch {branch_id}")

    rules = (
        db.session.query(PricingRule)
        .filter(
            PricingRule.catalog_item_id == catalog_item_id,
            PricingRule.branch_id == branch_id,
            PricingRule.status == "active",
        )
        .order_by(PricingRule.created_at.desc(), PricingRule.id.desc())
        .all()
    )

    by_type: dict[str, list[PricingRule]] = {t: [] for t in PRICING_TYPES}
    for rule in rules:
        by_type.setdefault(rule.pricing_type, []).append(rule)

    labor = _pick_rule(by_type["labor"], "labor", catalog_item_id, branch_id)
    packaging = _pick_rule(by_type["packaging"], "packaging", catalog_item_id, branch_id)

    return ResolvedPrice(
        catalog_item=item,
        base_price_cents=item.base_price_cents,
        labor_price_cents=labor.price_cents if labor else None,
        packaging_price_cents=packaging.price_cents if packaging else None,
        labor_rule=labor,
        packaging_rule=packaging,
    )


def compute_line_total(resolved: ResolvedPrice, quantity: int = 1) -> int:
    """(base + labor + packaging) * quantity, with missing components as 0."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Quantity must be a positive integer")
    unit = resolved.base_price_cents + (resolved.labor_price_cents or 0) + (resolved.packaging_price_cents or 0)
    return unit * quantity


def resolve_pricing(principal: Principal, catalog_item_id: int, branch_id) -> dict:
    """Resolved prices plus the rules that produced them, for quoting in the UI."""
    branch_id = parse_id(branch_id, "branch_id", label="Branch ID")
    require_any_role(principal, PRICING_RESOLVE_ROLES, "resolve pricing")
    require_branch_access(principal, branch_id)

    resolved = resolve_price(catalog_item_id, branch_id)
    return {
        "catalog_item": resolved.catalog_item.to_dict(),
        "pricing_rules": [r.to_dict() for r in resolved.rules],
        "resolved_prices": resolved.to_dict(),
    }


# =============================================================================
# CONFLICT GUARD
# =============================================================================

def assert_no_active_conflict(
    catalog_item_id: int,
    branch_id: int,
    pricing_type: str,
    exclude_rule_id: int | None = None,
) -> None:
    q = db.session.query(PricingRule.id).filter(
        PricingRule.catalog_item_id == catalog_item_id,
        PricingRule.branch_id == branch_id,
        PricingRule.pricing_type == pricing_type,
        PricingRule.status == "active",
    )
    if exclude_rule_id is not None:
        q = q.filter(PricingRule.id != exclude_rule_id)
    if q.first() is not None:
        raise ConflictError(conflict_message(pricing_type))


def _commit_rule(rule: PricingRule) -> None:
    """Commit, surfacing the partial unique index as the guard's ConflictError."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(conflict_message(rule.pricing_type))


# =============================================================================
# PRICING RULE CRUD
# =============================================================================

def _get_rule_or_404(rule_id: int) -> PricingRule:
    rule = db.session.get(PricingRule, rule_id)
    if rule is None:
        raise NotFoundError("Pricing matrix not found")
    return rule


def _require_catalog_item(catalog_item_id: int, branch_id: int) -> CatalogItem:
    """The item must exist and be usable at branch_id (global or owned by it)."""
    item = db.session.get(CatalogItem, catalog_item_id)
    if item is None or not (item.is_global or item.branch_id == branch_id):
        raise NotFoundError("Catalog item not found")
    return item


def _require_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError("Branch not found")
    return branch


def list_pricing_rules(principal: Principal, filters: dict) -> dict:
    require_any_role(principal, PRICING_VIEW_ROLES, "view pricing matrices")
    limit, offset = parse_page_args(filters)

    q = db.session.query(PricingRule).join(CatalogItem, PricingRule.catalog_item_id == CatalogItem.id)

    scope = visible_branch_ids(principal)
    if scope is not None:
        q = q.filter(PricingRule.branch_id.in_(scope))

    branch_id = parse_optional_int(filters, "branch_id")
    if branch_id is not None:
        q = q.filter(PricingRule.branch_id == branch_id)

    catalog_item_id = parse_optional_int(filters, "catalog_item_id")
    if catalog_item_id is not None:
        q = q.filter(PricingRule.catalog_item_id == catalog_item_id)

    status = filters.get("status")
    if status:
        q = q.filter(PricingRule.status == parse_choice(status, RECORD_STATUSES, "Status"))

    pricing_type = filters.get("pricing_type")
    if pricing_type:
        q = q.filter(PricingRule.pricing_type == parse_choice(pricing_type, PRICING_TYPES, "Pricing type"))

    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(PricingRule.description.ilike(pattern), CatalogItem.name.ilike(pattern)))

    q = q.order_by(PricingRule.created_at.desc(), PricingRule.id.desc())
    return paginate(q, limit=limit, offset=offset)


def get_pricing_rule(principal: Principal, rule_id: int) -> dict:
    require_any_role(principal, PRICING_VIEW_ROLES, "view pricing matrices")
    rule = _get_rule_or_404(rule_id)
    require_branch_access(principal, rule.branch_id, "pricing matrix")
    return rule.to_dict()


def create_pricing_rule(principal: Principal, payload) -> dict:
    """
    Create a pricing rule for a catalog item at a branch.

    Required: catalog_item_id, branch_id, pricing_type, price_cents
    Optional: status (default active), description
    """
    payload = require_payload(payload)
    reject_unknown_fields(payload, PRICING_RULE_FIELDS)

    catalog_item_id = parse_id(payload.get("catalog_item_id"), "catalog_item_id", label="Catalog item ID")
    branch_id = parse_id(payload.get("branch_id"), "branch_id", label="Branch ID")
    pricing_type = parse_choice(payload.get("pricing_type"), PRICING_TYPES, "Pricing type")
    price_cents = parse_price_cents(payload.get("price_cents"), "price_cents")
    status = parse_choice(payload.get("status") or "active", RECORD_STATUSES, "Status")
    description = clean_text(payload.get("description"), "description")

    with audited_attempt(
        principal, "CREATE", ENTITY_TYPE,
        failure_message="Failed to create pricing matrix",
        branch_id=branch_id,
    ):
        require_any_role(principal, PRICING_MANAGE_ROLES, "create pricing matrices")
        require_branch_access(principal, branch_id)
        _require_branch(branch_id)
        _require_catalog_item(catalog_item_id, branch_id)

        if status == "active":
            assert_no_active_conflict(catalog_item_id, branch_id, pricing_type)

        rule = PricingRule(
            catalog_item_id=catalog_item_id,
            branch_id=branch_id,
            pricing_type=pricing_type,
            price_cents=price_cents,
            status=status,
            description=description,
            created_by=principal.id,
        )
        db.session.add(rule)
        _commit_rule(rule)

    result = rule.to_dict()
    record_audit_event(
        action="CREATE",
        entity_type=ENTITY_TYPE,
        entity_id=rule.id,
        principal_id=principal.id,
        branch_id=rule.branch_id,
        new_values=result,
    )
    return result


def update_pricing_rule(principal: Principal, rule_id: int, payload) -> dict:
    """
    Update any subset of pricing rule fields.

    Moving a rule to a new branch requires access to both branches. The
    conflict guard runs whenever the result would be an active rule.
    """
    payload = require_payload(payload)
    reject_unknown_fields(payload, PRICING_RULE_FIELDS)

    patch: dict = {}
    if "catalog_item_id" in payload:
        patch["catalog_item_id"] = parse_id(payload["catalog_item_id"], "catalog_item_id", label="Catalog item ID")
    if "branch_id" in payload:
        patch["branch_id"] = parse_id(payload["branch_id"], "branch_id", label="Branch ID")
    if "pricing_type" in payload:
        patch["pricing_type"] = parse_choice(payload["pricing_type"], PRICING_TYPES, "Pricing type")
    if "price_cents" in payload:
        patch["price_cents"] = parse_price_cents(payload["price_cents"], "price_cents")
    if "status" in payload:
        patch["status"] = parse_choice(payload["status"], RECORD_STATUSES, "Status")
    if "description" in payload:
        patch["description"] = clean_text(payload["description"], "description")

    with audited_attempt(
        principal, "UPDATE", ENTITY_TYPE,
        failure_message="Failed to update pricing matrix",
        entity_id=rule_id,
    ):
        require_any_role(principal, PRICING_MANAGE_ROLES, "update pricing matrices")
        rule = _get_rule_or_404(rule_id)
        require_branch_access(principal, rule.branch_id, "pricing matrix")

        if "branch_id" in patch and patch["branch_id"] != rule.branch_id:
            require_branch_access(principal, patch["branch_id"])
            _require_branch(patch["branch_id"])
        if "catalog_item_id" in patch or "branch_id" in patch:
            _require_catalog_item(
                patch.get("catalog_item_id", rule.catalog_item_id),
                patch.get("branch_id", rule.branch_id),
            )

        old_values = rule.to_dict()

        final_status = patch.get("status", rule.status)
        if final_status == "active":
            assert_no_active_conflict(
                patch.get("catalog_item_id", rule.catalog_item_id),
                patch.get("branch_id", rule.branch_id),
                patch.get("pricing_type", rule.pricing_type),
                exclude_rule_id=rule.id,
            )

        for key, value in patch.items():
            setattr(rule, key, value)
        _commit_rule(rule)

    result = rule.to_dict()
    record_audit_event(
        action="UPDATE",
        entity_type=ENTITY_TYPE,
        entity_id=rule.id,
        principal_id=principal.id,
        branch_id=rule.branch_id,
        old_values=old_values,
        new_values=result,
    )
    return result


def _is_referenced(rule_id: int) -> bool:
    return (
        db.session.query(JobOrderItem.id)
        .filter(or_(JobOrderItem.labor_pricing_rule_id == rule_id, JobOrderItem.packaging_pricing_rule_id == rule_id))
        .first()
        is not None
    )


def delete_pricing_rule(principal: Principal, rule_id: int) -> dict:
    """
    Delete a pricing rule.

    A rule already snapshotted on job order items cannot be removed; it is
    deactivated instead and the response says so.
    """
    with audited_attempt(
        principal, "DELETE", ENTITY_TYPE,
        failure_message="Failed to delete pricing matrix",
        entity_id=rule_id,
    ):
        require_any_role(principal, PRICING_MANAGE_ROLES, "delete pricing matrices")
        rule = _get_rule_or_404(rule_id)
        require_branch_access(principal, rule.branch_id, "pricing matrix")

        old_values = rule.to_dict()
        branch_id = rule.branch_id

        deactivated = _is_referenced(rule.id)
        if not deactivated:
            try:
                with db.session.begin_nested():
                    db.session.delete(rule)
            except IntegrityError:
                deactivated = True

        if deactivated:
            rule = _get_rule_or_404(rule_id)
            rule.status = "inactive"
        db.session.commit()

    if deactivated:
        record_audit_event(
            action="UPDATE",
            entity_type=ENTITY_TYPE,
            entity_id=rule_id,
            principal_id=principal.id,
            branch_id=branch_id,
            old_values=old_values,
            new_values={"status": "inactive"},
        )
        return {
            "deactivated": True,
            "message": "Pricing matrix is referenced by other records and has been deactivated instead",
        }

    record_audit_event(
        action="DELETE",
        entity_type=ENTITY_TYPE,
        entity_id=rule_id,
        principal_id=principal.id,
        branch_id=branch_id,
        old_values=old_values,
    )
    return {"deleted": True, "message": "Pricing matrix deleted successfully"}
