"""
Audit recorder tests.

Verifies:
- Events are written with outcome, principal and branch
- A failing audit write is swallowed and logged
- AUDIT_ENABLED=False disables writes
- Listing is restricted to HM/POC and scoped by branch for POC
"""

import logging

import pytest

from autoshop.errors import ForbiddenError, ValidationError
from autoshop.models import AuditLog
from autoshop.services import audit_service
from autoshop.services.audit_service import list_audit_logs, record_audit_event, record_failed_attempt
from autoshop.time_utils import utcnow


def _event(branch_id, action="CREATE", principal_id="u1"):
    return record_audit_event(
        action=action,
        entity_type="JOB_ORDER",
        entity_id=1,
        principal_id=principal_id,
        branch_id=branch_id,
    )


class TestRecordAuditEvent:

    def test_writes_row(self, db_session, branch_a):
        event = _event(branch_a.id)
        assert event is not None
        row = db_session.query(AuditLog).one()
        assert row.status == "SUCCESS"
        assert row.entity_id == "1"
        assert row.branch_id == branch_a.id

    def test_failure_swallowed_and_logged(self, db_session, monkeypatch, caplog):
        def boom(*args, **kwargs):
            raise RuntimeError("audit store down")

        monkeypatch.setattr(audit_service, "AuditLog", boom)
        with caplog.at_level(logging.ERROR, logger="autoshop.services.audit_service"):
            assert _event(1) is None
        assert "Failed to record audit event" in caplog.text

    def test_disabled(self, db_session, app):
        app.config["AUDIT_ENABLED"] = False
        assert _event(1) is None
        assert db_session.query(AuditLog).count() == 0

    def test_failed_attempt_defaults_to_primary_branch(self, db_session, receptionist_a, branch_a):
        record_failed_attempt(receptionist_a, "DELETE", "JOB_ORDER", 7, "Job order not found")
        row = db_session.query(AuditLog).one()
        assert row.status == "FAILED"
        assert row.branch_id == branch_a.id
        assert row.new_values == {"error": "Job order not found"}


class TestListAuditLogs:

    def test_poc_scoped_to_own_branches(self, db_session, poc_a, hm, branch_a, branch_b):
        _event(branch_a.id)
        _event(branch_b.id)

        assert list_audit_logs(poc_a, {})["pagination"]["total"] == 1
        assert list_audit_logs(hm, {})["pagination"]["total"] == 2

    def test_receptionist_denied(self, db_session, receptionist_a):
        with pytest.raises(ForbiddenError):
            list_audit_logs(receptionist_a, {})

    def test_filters(self, db_session, hm, branch_a):
        _event(branch_a.id, action="CREATE")
        _event(branch_a.id, action="DELETE", principal_id="u2")

        assert list_audit_logs(hm, {"action": "DELETE"})["data"][0]["user_id"] == "u2"
        assert list_audit_logs(hm, {"user_id": "u1"})["pagination"]["total"] == 1
        assert list_audit_logs(hm, {"start_date": "2000-01-01T00:00:00Z"})["pagination"]["total"] == 2

    def test_bare_end_date_covers_whole_day(self, db_session, hm, branch_a):
        _event(branch_a.id)
        today = utcnow().date().isoformat()

        assert list_audit_logs(hm, {"end_date": today})["pagination"]["total"] == 1
        assert list_audit_logs(hm, {"end_date": "2000-01-01"})["pagination"]["total"] == 0

    def test_bad_date(self, db_session, hm):
        with pytest.raises(ValidationError):
            list_audit_logs(hm, {"start_date": "yesterday"})

    def test_pagination(self, db_session, hm, branch_a):
        for _ in range(3):
            _event(branch_a.id)
        page = list_audit_logs(hm, {"limit": "2", "offset": "1"})
        assert len(page["data"]) == 2
        assert page["pagination"] == {"total": 3, "limit": 2, "offset": 1}
