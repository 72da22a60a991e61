from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Audit trail of mutation attempts, successful or not.

    WHY: Every create/update/delete/transition is attributable, and failed
    attempts are kept with their error message for investigation.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_logs_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    action = db.Column(db.String(32), nullable=False, index=True)       # CREATE, UPDATE, DELETE, APPROVE, ...
    entity_type = db.Column(db.String(32), nullable=False, index=True)  # JOB_ORDER, CATALOG_ITEM, PRICING_MATRIX
    entity_id = db.Column(db.String(64), nullable=True)

    user_id = db.Column(db.String(64), nullable=True, index=True)
    # Plain column, not a FK: audit rows outlive branches and must never block a write
    branch_id = db.Column(db.Integer, nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="SUCCESS", index=True)  # SUCCESS, FAILED

    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "status": self.status,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "created_at": to_utc_z(self.created_at),
        }
