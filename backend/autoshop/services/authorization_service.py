# Overview: Service-layer role and branch authorization; pure functions over a Principal.

"""
Role and Branch Authorization

WHY: Every operation answers two questions with the same rules:
1. May this principal use this kind of operation at all? (role check)
2. May this principal touch this specific record? (branch check)

Role checks run before the record is fetched; branch checks run after,
against the record's branch_id / is_global flag.

DESIGN PRINCIPLES:
- Fail closed: Deny unless a role or branch assignment grants access
- HM is the super-role: branch scoping is skipped for HM
- Global catalog items are visible to everyone, mutable only by HM
- The Principal is passed explicitly; nothing here reads request state
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable

from ..errors import ForbiddenError


class Role(str, enum.Enum):
    HM = "HM"     # Higher Management
    POC = "POC"   # Point of Contact
    JS = "JS"     # Job Supervisor
    R = "R"       # Receptionist
    T = "T"       # Technician

    @classmethod
    def parse(cls, value: str) -> "Role":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown role '{value}'. Must be one of: {', '.join(r.value for r in cls)}")


ALL_ROLES = frozenset(Role)

# Role sets per operation kind; HM can act on job orders at every branch
JOB_ORDER_VIEW_ROLES = ALL_ROLES
JOB_ORDER_CREATE_ROLES = frozenset({Role.HM, Role.POC, Role.JS, Role.R})
JOB_ORDER_UPDATE_ROLES = ALL_ROLES
JOB_ORDER_DELETE_ROLES = frozenset({Role.HM, Role.POC, Role.JS, Role.R})
JOB_ORDER_TRANSITION_ROLES = ALL_ROLES

CUSTOMER_VIEW_ROLES = ALL_ROLES
CUSTOMER_CREATE_ROLES = frozenset({Role.HM, Role.POC, Role.JS, Role.R})
CUSTOMER_UPDATE_ROLES = ALL_ROLES
CUSTOMER_DELETE_ROLES = frozenset({Role.HM, Role.POC, Role.JS, Role.R})

VEHICLE_VIEW_ROLES = frozenset({Role.HM, Role.POC, Role.JS, Role.R})
VEHICLE_MANAGE_ROLES = frozenset({Role.HM, Role.POC, Role.JS, Role.R})

CATALOG_VIEW_ROLES =frozenset({Role.HM, Role.POC, Role.JS, Role.R})
CATALOG_MANAGE_ROLES = frozenset({Role.HM, Role.POC, Role.JS})

PRICING_VIEW_ROLES = ALL_ROLES
PRICING_RESOLVE_ROLES = frozenset({Role.HM, Role.POC, Role.JS, Role.R})
PRICING_MANAGE_ROLES = frozenset({Role.HM, Role.POC, Role.JS, Role.R})

AUDIT_VIEW_ROLES = frozenset({Role.HM, Role.POC})


@dataclass(frozen=True)
class Principal:
    """
    Authenticated actor for one request.

    roles is never empty; branch_ids may be empty (e.g. HM with no assignment).
    """
    id: str
    roles: frozenset[Role]
    branch_ids: frozenset[int] = frozenset()
    email: str | None = None

    def __post_init__(self):
        if not self.roles:
            raise ValueError("Principal must hold at least one role")

    @property
    def is_hm(self) -> bool:
        return Role.HM in self.roles

    @property
    def primary_branch_id(self) -> int | None:
        """Deterministic branch used to attribute events without a resource branch."""
        return min(self.branch_ids) if self.branch_ids else None


def _role_list(roles: Iterable[Role]) -> list[str]:
    return sorted(r.value for r in roles)


def has_any_role(principal: Principal, allowed_roles: Iterable[Role]) -> bool:
    return bool(principal.roles & frozenset(allowed_roles))


def can_access_branch(principal: Principal, branch_id: int | None) -> bool:
    if principal.is_hm:
        return True
    if branch_id is None:
        return False
    return branch_id in principal.branch_ids


def require_any_role(principal: Principal, allowed_roles: Iterable[Role], action: str) -> None:
    """
    Raise ForbiddenError unless the principal holds one of allowed_roles.

    The message names the required roles so a UI can explain the denial.
    """
    allowed = frozenset(allowed_roles)
    if not has_any_role(principal, allowed):
        raise ForbiddenError(
            f"Insufficient permissions to {action}. Requires one of: {', '.join(_role_list(allowed))}",
            details={"required": _role_list(allowed), "current": _role_list(principal.roles)},
        )


def require_branch_access(principal: Principal, branch_id: int | None, resource: str | None = None) -> None:
    if not can_access_branch(principal, branch_id):
        if resource:
            raise ForbiddenError(f"No access to this {resource}'s branch")
        raise ForbiddenError("No access to this branch")


# =============================================================================
# GLOBAL CATALOG ITEMS
# =============================================================================

def can_manage_global_items(principal: Principal) -> bool:
    """Create, edit, delete or toggle the global flag of catalog items."""
    return principal.is_hm


def can_view_catalog_item(principal: Principal, *, is_global: bool, branch_id: int | None) -> bool:
    if is_global:
        return True
    return can_access_branch(principal, branch_id)


def require_catalog_item_access(principal: Principal, item) -> None:
    if not can_view_catalog_item(principal, is_global=item.is_global, branch_id=item.branch_id):
        raise ForbiddenError("No access to this catalog item's branch")


def require_global_item_manager(principal: Principal, action: str) -> None:
    if not can_manage_global_items(principal):
        raise ForbiddenError(f"Only Higher Management can {action} global catalog items")


def visible_branch_ids(principal: Principal) -> frozenset[int] | None:
    """Branch filter for listings; None means unrestricted (HM)."""
    if principal.is_hm:
        return None
    return principal.branch_ids
