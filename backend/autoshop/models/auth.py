from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class UserProfile(db.Model):
    """
    Local profile for a user authenticated by the external identity provider.

    The identity provider owns credentials; this table only carries what the
    backend needs for attribution and the is_active kill switch.
    """
    __tablename__ = "user_profiles"

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class UserRoleAssignment(db.Model):
    """Role held by a user. Values are validated against Role on ingestion."""
    __tablename__ = "user_roles"
    __table_args__ = (
        db.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    role = db.Column(db.String(8), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class UserBranchAssignment(db.Model):
    """
    Branch a user may operate in.

    WHY: A user can be assigned to several branches; is_primary marks the
    branch used to attribute audit events when no resource branch applies.
    """
    __tablename__ = "user_branch_assignments"
    __table_args__ = (
        db.UniqueConstraint("user_id", "branch_id", name="uq_user_branch_assignments"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("user_assignments", lazy=True))
