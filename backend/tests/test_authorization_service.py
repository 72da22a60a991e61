"""
Authorization evaluator tests.

Verifies:
- Role checks name the required roles
- Branch checks: assigned branches only, HM everywhere
- Global catalog items: visible to all, managed by HM only
- Principal construction rejects empty role sets and unknown roles
"""

from types import SimpleNamespace

import pytest

from autoshop.errors import ForbiddenError
from autoshop.services.authorization_service import (
    Principal,
    Role,
    CATALOG_MANAGE_ROLES,
    JOB_ORDER_CREATE_ROLES,
    can_access_branch,
    can_manage_global_items,
    can_view_catalog_item,
    has_any_role,
    require_any_role,
    require_branch_access,
    require_catalog_item_access,
    visible_branch_ids,
)
from autoshop.services.identity_service import principal_from_records


def _p(*roles, branches=()):
    return Principal(id="u1", roles=frozenset(roles), branch_ids=frozenset(branches))


# =============================================================================
# ROLES
# =============================================================================


class TestRoles:

    def test_has_any_role_intersection(self):
        assert has_any_role(_p(Role.R), JOB_ORDER_CREATE_ROLES)
        assert not has_any_role(_p(Role.T), JOB_ORDER_CREATE_ROLES)

    def test_require_any_role_names_required_roles(self):
        with pytest.raises(ForbiddenError) as exc:
            require_any_role(_p(Role.T), JOB_ORDER_CREATE_ROLES, "create job orders")
        assert "JS, POC, R" in exc.value.message
        assert exc.value.details["current"] == ["T"]
        assert exc.value.status_code == 403

    def test_technician_cannot_manage_catalog(self):
        with pytest.raises(ForbiddenError):
            require_any_role(_p(Role.T, branches=[1]), CATALOG_MANAGE_ROLES, "create catalog items")

    def test_principal_requires_a_role(self):
        with pytest.raises(ValueError):
            Principal(id="u1", roles=frozenset())

    def test_unknown_role_rejected_at_ingestion(self):
        with pytest.raises(ValueError, match="Unknown role 'ADMIN'"):
            principal_from_records("u1", ["R", "ADMIN"], [1])

    def test_principal_from_records(self):
        p = principal_from_records("u1", ["R", "T"], [2, 1])
        assert p.roles == {Role.R, Role.T}
        assert p.branch_ids == {1, 2}
        assert p.primary_branch_id == 1


# =============================================================================
# BRANCHES
# =============================================================================


class TestBranchAccess:

    def test_assigned_branch_only(self):
        p = _p(Role.R, branches=[1])
        assert can_access_branch(p, 1)
        assert not can_access_branch(p, 2)
        assert not can_access_branch(p, None)

    def test_hm_accesses_every_branch(self):
        p = _p(Role.HM)
        assert can_access_branch(p, 1)
        assert can_access_branch(p, 999)
        assert visible_branch_ids(p) is None

    def test_require_branch_access_message(self):
        with pytest.raises(ForbiddenError, match="job order's branch"):
            require_branch_access(_p(Role.R, branches=[1]), 2, "job order")

    def test_visible_branch_ids_for_non_hm(self):
        assert visible_branch_ids(_p(Role.POC, branches=[3, 4])) == {3, 4}


# =============================================================================
# GLOBAL CATALOG ITEMS
# =============================================================================


class TestGlobalItems:

    def test_global_items_visible_to_everyone(self):
        assert can_view_catalog_item(_p(Role.T), is_global=True, branch_id=None)

    def test_branch_items_follow_branch_rule(self):
        p = _p(Role.JS, branches=[1])
        assert can_view_catalog_item(p, is_global=False, branch_id=1)
        assert not can_view_catalog_item(p, is_global=False, branch_id=2)

    def test_require_catalog_item_access(self):
        item = SimpleNamespace(is_global=False, branch_id=2)
        with pytest.raises(ForbiddenError):
            require_catalog_item_access(_p(Role.POC, branches=[1]), item)

    def test_only_hm_manages_global_items(self):
        assert can_manage_global_items(_p(Role.HM))
        assert not can_manage_global_items(_p(Role.POC, Role.JS, branches=[1]))
