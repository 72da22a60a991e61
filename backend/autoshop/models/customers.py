from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

CUSTOMER_TYPES = ("individual", "company")
VEHICLE_TYPES = (
    "sedan", "suv", "truck", "van", "motorcycle",
    "hatchback", "coupe", "wagon", "bus", "other",
)


class Customer(db.Model):
    """Customer record, owned by the branch that registered it."""
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    contact_number = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    customer_type = db.Column(db.String(16), nullable=False, default="individual")

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    address = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("customers", lazy=True))

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "contact_number": self.contact_number,
            "email": self.email,
        }

    def to_dict(self) -> dict:
        return {
            **self.to_summary(),
            "customer_type": self.customer_type,
            "branch_id": self.branch_id,
            "status": self.status,
            "address": self.address,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Vehicle(db.Model):
    """Vehicle belonging to exactly one customer."""
    __tablename__ = "vehicles"
    __table_args__ = (
        db.UniqueConstraint("plate_number", name="uq_vehicles_plate_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    plate_number = db.Column(db.String(32), nullable=False)
    vehicle_type = db.Column(db.String(16), nullable=False, default="other")
    model = db.Column(db.String(120), nullable=False)
    color = db.Column(db.String(32), nullable=True)
    year = db.Column(db.Integer, nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("vehicles", lazy=True))
    branch = db.relationship("Branch")

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "plate_number": self.plate_number,
            "model": self.model,
            "vehicle_type": self.vehicle_type,
        }

    def to_dict(self) -> dict:
        return {
            **self.to_summary(),
            "color": self.color,
            "year": self.year,
            "customer_id": self.customer_id,
            "branch_id": self.branch_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
