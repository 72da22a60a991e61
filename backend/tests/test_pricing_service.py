"""
Price resolver and pricing matrix tests.

Verifies:
- Line total law (510 / 360)
- Resolution is idempotent and branch-aware
- Duplicate active rules resolve to the most recently created one
- At most one active rule per (item, branch, type), at service and storage level
- Referenced rules are deactivated instead of deleted
"""

import logging
from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from autoshop.extensions import db
from autoshop.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from autoshop.models import AuditLog, JobOrderItem, PricingRule
from autoshop.services import pricing_service
from autoshop.services.pricing_service import ResolvedPrice, compute_line_total, resolve_price

from conftest import make_item, make_rule


# =============================================================================
# LINE TOTALS
# =============================================================================


class TestLineTotals:

    def test_full_components(self, db_session, priced_item, branch_a):
        resolved = resolve_price(priced_item.id, branch_a.id)
        assert compute_line_total(resolved, 3) == 510

    def test_missing_labor_counts_as_zero(self, db_session, branch_a):
        item = make_item(db_session, base_price_cents=100, branch_id=branch_a.id)
        make_rule(db_session, item=item, branch=branch_a, pricing_type="packaging", price_cents=20)

        resolved = resolve_price(item.id, branch_a.id)
        assert resolved.labor_price_cents is None
        assert resolved.packaging_price_cents == 20
        assert compute_line_total(resolved, 3) == 360

    def test_default_quantity_is_one(self):
        resolved = ResolvedPrice(catalog_item=None, base_price_cents=100, labor_price_cents=50)
        assert compute_line_total(resolved) == 150

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_quantity_must_be_positive_integer(self, quantity):
        resolved = ResolvedPrice(catalog_item=None, base_price_cents=100)
        with pytest.raises(ValidationError):
            compute_line_total(resolved, quantity)


# =============================================================================
# RESOLUTION
# =============================================================================


class TestResolvePrice:

    def test_idempotent(self, db_session, priced_item, branch_a):
        first = resolve_price(priced_item.id, branch_a.id)
        second = resolve_price(priced_item.id, branch_a.id)
        assert first.to_dict() == second.to_dict()
        assert first.to_dict() == {
            "base_price_cents": 100,
            "labor_price_cents": 50,
            "packaging_price_cents": 20,
        }

    def test_inactive_rules_ignored(self, db_session, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        make_rule(db_session, item=item, branch=branch_a, pricing_type="labor", price_cents=50, status="inactive")
        assert resolve_price(item.id, branch_a.id).labor_price_cents is None

    def test_rules_of_other_branch_ignored(self, db_session, global_item, branch_a, branch_b):
        make_rule(db_session, item=global_item, branch=branch_b, pricing_type="labor", price_cents=75)
        assert resolve_price(global_item.id, branch_a.id).labor_price_cents is None
        assert resolve_price(global_item.id, branch_b.id).labor_price_cents == 75

    def test_missing_item(self, db_session, branch_a):
        with pytest.raises(NotFoundError):
            resolve_price(999, branch_a.id)

    def test_branch_item_not_usable_elsewhere(self, db_session, priced_item, branch_b):
        with pytest.raises(NotFoundError):
            resolve_price(priced_item.id, branch_b.id)

    def test_duplicate_active_rules_most_recent_wins(self, db_session, branch_a, caplog):
        item = make_item(db_session, branch_id=branch_a.id)
        db_session.execute(text("DROP INDEX uq_pricing_rules_active"))
        db_session.commit()
        try:
            newer = PricingRule(
                catalog_item_id=item.id, branch_id=branch_a.id, pricing_type="labor",
                price_cents=80, status="active", created_at=datetime(2026, 2, 1),
            )
            older = PricingRule(
                catalog_item_id=item.id, branch_id=branch_a.id, pricing_type="labor",
                price_cents=40, status="active", created_at=datetime(2026, 1, 1),
            )
            db_session.add_all([newer, older])
            db_session.commit()

            with caplog.at_level(logging.WARNING, logger="autoshop.services.pricing_service"):
                resolved = resolve_price(item.id, branch_a.id)

            assert resolved.labor_price_cents == 80
            assert resolved.labor_rule.id == newer.id
            assert "Duplicate active labor pricing rules" in caplog.text
        finally:
            db_session.query(PricingRule).delete()
            db_session.commit()
            index = next(i for i in PricingRule.__table__.indexes if i.name == "uq_pricing_rules_active")
            index.create(db.engine)

    def test_resolve_pricing_requires_branch_access(self, db_session, priced_item, receptionist_b, branch_a):
        with pytest.raises(ForbiddenError):
            pricing_service.resolve_pricing(receptionist_b, priced_item.id, branch_a.id)

    def test_resolve_pricing_technician_denied(self, db_session, priced_item, technician_a, branch_a):
        with pytest.raises(ForbiddenError):
            pricing_service.resolve_pricing(technician_a, priced_item.id, branch_a.id)

    def test_resolve_pricing_payload(self, db_session, priced_item, receptionist_a, branch_a):
        result = pricing_service.resolve_pricing(receptionist_a, priced_item.id, str(branch_a.id))
        assert result["catalog_item"]["id"] == priced_item.id
        assert len(result["pricing_rules"]) == 2
        assert result["resolved_prices"]["labor_price_cents"] == 50

    def test_resolve_pricing_requires_branch_id(self, db_session, priced_item, receptionist_a):
        with pytest.raises(ValidationError):
            pricing_service.resolve_pricing(receptionist_a, priced_item.id, None)


# =============================================================================
# CONFLICT GUARD
# =============================================================================


class TestConflictGuard:

    def _payload(self, item, branch, **overrides):
        payload = {
            "catalog_item_id": item.id,
            "branch_id": branch.id,
            "pricing_type": "labor",
            "price_cents": 500,
        }
        payload.update(overrides)
        return payload

    def test_second_active_rule_conflicts(self, db_session, poc_a, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a))

        with pytest.raises(ConflictError, match="An active labor pricing rule already exists"):
            pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a, price_cents=600))

        active = db_session.query(PricingRule).filter_by(catalog_item_id=item.id, status="active").count()
        assert active == 1

    def test_inactive_duplicates_allowed(self, db_session, poc_a, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a))
        created = pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a, status="inactive"))
        assert created["status"] == "inactive"

    def test_activation_via_update_conflicts(self, db_session, poc_a, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a))
        inactive = pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a, status="inactive"))

        with pytest.raises(ConflictError):
            pricing_service.update_pricing_rule(poc_a, inactive["id"], {"status": "active"})

    def test_key_change_into_occupied_slot_conflicts(self, db_session, poc_a, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a))
        packaging = pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a, pricing_type="packaging"))

        with pytest.raises(ConflictError):
            pricing_service.update_pricing_rule(poc_a, packaging["id"], {"pricing_type": "labor"})

    def test_updating_itself_is_not_a_conflict(self, db_session, poc_a, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        rule = pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a))
        updated = pricing_service.update_pricing_rule(poc_a, rule["id"], {"price_cents": 750})
        assert updated["price_cents"] == 750

    def test_storage_index_is_authoritative(self, db_session, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        make_rule(db_session, item=item, branch=branch_a, pricing_type="labor", price_cents=10)
        db_session.add(PricingRule(
            catalog_item_id=item.id, branch_id=branch_a.id, pricing_type="labor", price_cents=20, status="active",
        ))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_integrity_error_surfaces_as_conflict(self, db_session, poc_a, branch_a, monkeypatch):
        """A concurrent insert slipping past the check still yields 409."""
        item = make_item(db_session, branch_id=branch_a.id)
        make_rule(db_session, item=item, branch=branch_a, pricing_type="labor", price_cents=10)
        monkeypatch.setattr(pricing_service, "assert_no_active_conflict", lambda *a, **kw: None)

        with pytest.raises(ConflictError, match="Deactivate it first"):
            pricing_service.create_pricing_rule(poc_a, self._payload(item, branch_a))

        failed = db_session.query(AuditLog).filter_by(entity_type="PRICING_MATRIX", status="FAILED").one()
        assert "already exists" in failed.new_values["error"]


# =============================================================================
# PRICING RULE CRUD
# =============================================================================


class TestPricingRuleCrud:

    def test_create_validates_before_storage(self, db_session, poc_a, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        with pytest.raises(ValidationError, match="Pricing type"):
            pricing_service.create_pricing_rule(poc_a, {
                "catalog_item_id": item.id, "branch_id": branch_a.id, "pricing_type": "parts", "price_cents": 1,
            })
        with pytest.raises(ValidationError, match="price_cents must be >= 0"):
            pricing_service.create_pricing_rule(poc_a, {
                "catalog_item_id": item.id, "branch_id": branch_a.id, "pricing_type": "labor", "price_cents": -1,
            })
        # Validation failures are not audited
        assert db_session.query(AuditLog).count() == 0

    def test_create_in_foreign_branch_forbidden(self, db_session, poc_a, branch_b):
        item = make_item(db_session, is_global=True)
        with pytest.raises(ForbiddenError):
            pricing_service.create_pricing_rule(poc_a, {
                "catalog_item_id": item.id, "branch_id": branch_b.id, "pricing_type": "labor", "price_cents": 1,
            })
        failed = db_session.query(AuditLog).filter_by(status="FAILED").one()
        assert failed.action == "CREATE"
        assert failed.branch_id == branch_b.id

    def test_missing_catalog_item(self, db_session, poc_a, branch_a):
        with pytest.raises(NotFoundError, match="Catalog item not found"):
            pricing_service.create_pricing_rule(poc_a, {
                "catalog_item_id": 999, "branch_id": branch_a.id, "pricing_type": "labor", "price_cents": 1,
            })

    def test_item_of_another_branch_is_not_found(self, db_session, poc_a, branch_a, branch_b):
        foreign = make_item(db_session, name="Branch B Detailing", branch_id=branch_b.id)
        with pytest.raises(NotFoundError, match="Catalog item not found"):
            pricing_service.create_pricing_rule(poc_a, {
                "catalog_item_id": foreign.id, "branch_id": branch_a.id, "pricing_type": "labor", "price_cents": 1,
            })
        assert db_session.query(PricingRule).count() == 0

    def test_moving_rule_to_item_of_another_branch_is_not_found(self, db_session, poc_a, branch_a, branch_b):
        item = make_item(db_session, branch_id=branch_a.id)
        foreign = make_item(db_session, name="Branch B Detailing", branch_id=branch_b.id)
        rule = make_rule(db_session, item=item, branch=branch_a, pricing_type="labor", price_cents=1)

        with pytest.raises(NotFoundError):
            pricing_service.update_pricing_rule(poc_a, rule.id, {"catalog_item_id": foreign.id})
        assert db_session.get(PricingRule, rule.id).catalog_item_id == item.id

    def test_create_audited(self, db_session, poc_a, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        rule = pricing_service.create_pricing_rule(poc_a, {
            "catalog_item_id": item.id, "branch_id": branch_a.id, "pricing_type": "labor", "price_cents": 1,
        })
        event = db_session.query(AuditLog).filter_by(action="CREATE", status="SUCCESS").one()
        assert event.entity_type == "PRICING_MATRIX"
        assert event.entity_id == str(rule["id"])
        assert event.user_id == poc_a.id

    def test_list_scoped_to_branches(self, db_session, poc_a, hm, global_item, branch_a, branch_b):
        make_rule(db_session, item=global_item, branch=branch_a, pricing_type="labor", price_cents=1)
        make_rule(db_session, item=global_item, branch=branch_b, pricing_type="labor", price_cents=2)

        assert pricing_service.list_pricing_rules(poc_a, {})["pagination"]["total"] == 1
        assert pricing_service.list_pricing_rules(hm, {})["pagination"]["total"] == 2
        assert pricing_service.list_pricing_rules(hm, {"branch_id": str(branch_b.id)})["data"][0]["price_cents"] == 2

    def test_get_foreign_rule_forbidden(self, db_session, poc_a, global_item, branch_b):
        rule = make_rule(db_session, item=global_item, branch=branch_b, pricing_type="labor", price_cents=1)
        with pytest.raises(ForbiddenError):
            pricing_service.get_pricing_rule(poc_a, rule.id)

    def test_delete_unreferenced(self, db_session, poc_a, branch_a):
        item = make_item(db_session, branch_id=branch_a.id)
        rule = make_rule(db_session, item=item, branch=branch_a, pricing_type="labor", price_cents=1)
        result = pricing_service.delete_pricing_rule(poc_a, rule.id)
        assert result["deleted"] is True
        assert db_session.get(PricingRule, rule.id) is None

    def test_delete_referenced_deactivates(self, db_session, poc_a, receptionist_a, priced_item, customer_a, vehicle_a, branch_a):
        from autoshop.services import job_order_service

        job_order_service.create_job_order(receptionist_a, {
            "customer_id": customer_a.id,
            "vehicle_id": vehicle_a.id,
            "branch_id": branch_a.id,
            "items": [{"catalog_item_id": priced_item.id}],
        })
        labor_rule_id = db_session.query(JobOrderItem.labor_pricing_rule_id).scalar()

        result = pricing_service.delete_pricing_rule(poc_a, labor_rule_id)

        assert result["deactivated"] is True
        assert "deactivated instead" in result["message"]
        db_session.expire_all()
        assert db_session.get(PricingRule, labor_rule_id).status == "inactive"
