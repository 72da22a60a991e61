from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class JobOrder(db.Model):
    """
    Customer-facing job order for one vehicle at one branch.

    WHY: A job order is a document with an approval lifecycle, not an editable
    cart. Items and total_amount_cents are fixed at creation; afterwards only
    notes and the approval fields change.

    STATE MACHINE:
        created -> pending_approval -> approved | rejected
    """
    __tablename__ = "job_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_job_orders_order_number"),
        # Composite index for branch-scoped queries by status and date
        db.Index("ix_job_orders_branch_status_created", "branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "JO-001-0042")
    order_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    status = db.Column(db.String(32), nullable=False, default="created", index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    # Approval audit trail
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.String(64), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer")
    vehicle = db.relationship("Vehicle")
    branch = db.relationship("Branch", backref=db.backref("job_orders", lazy=True))
    items = db.relationship(
        "JobOrderItem",
        backref="job_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="JobOrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<JobOrder id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "vehicle_id": self.vehicle_id,
            "branch_id": self.branch_id,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "notes": self.notes,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "approved_by": self.approved_by,
            "approval_notes": self.approval_notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
            "customer": self.customer.to_summary() if self.customer else None,
            "vehicle": self.vehicle.to_summary() if self.vehicle else None,
            "branch": self.branch.to_summary() if self.branch else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class JobOrderItem(db.Model):
    """
    Immutable price snapshot of one catalog item on a job order.

    labor/packaging prices stay NULL when no active rule existed at creation
    time, which is distinct from a rule priced at 0.
    """
    __tablename__ = "job_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    job_order_id = db.Column(db.Integer, db.ForeignKey("job_orders.id"), nullable=False, index=True)

    catalog_item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False, index=True)
    catalog_item_name = db.Column(db.String(255), nullable=False)
    catalog_item_type = db.Column(db.String(16), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    base_price_cents = db.Column(db.Integer, nullable=False)
    labor_price_cents = db.Column(db.Integer, nullable=True)
    packaging_price_cents = db.Column(db.Integer, nullable=True)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Rules that produced the labor/packaging components
    labor_pricing_rule_id = db.Column(db.Integer, db.ForeignKey("pricing_rules.id"), nullable=True, index=True)
    packaging_pricing_rule_id = db.Column(db.Integer, db.ForeignKey("pricing_rules.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_order_id": self.job_order_id,
            "catalog_item_id": self.catalog_item_id,
            "catalog_item_name": self.catalog_item_name,
            "catalog_item_type": self.catalog_item_type,
            "quantity": self.quantity,
            "base_price_cents": self.base_price_cents,
            "labor_price_cents": self.labor_price_cents,
            "packaging_price_cents": self.packaging_price_cents,
            "line_total_cents": self.line_total_cents,
            "labor_pricing_rule_id": self.labor_pricing_rule_id,
            "packaging_pricing_rule_id": self.packaging_pricing_rule_id,
            "created_at": to_utc_z(self.created_at),
        }
