from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

CATALOG_ITEM_TYPES = ("service", "product", "package")
PRICING_TYPES = ("labor", "packaging")
RECORD_STATUSES = ("active", "inactive")


class CatalogItem(db.Model):
    """
    Sellable service, product or package with a base price.

    GLOBAL ITEMS:
    - is_global=True items have no branch and are usable at every branch
    - is_global=False items belong to exactly one branch
    - Only HM principals may create, edit or delete global items

    The global/branch pairing is enforced by catalog_service on every write
    path and backed by ck_catalog_items_global_branch.
    """
    __tablename__ = "catalog_items"
    __table_args__ = (
        db.CheckConstraint(
            "(is_global AND branch_id IS NULL) OR (NOT is_global AND branch_id IS NOT NULL)",
            name="ck_catalog_items_global_branch",
        ),
        db.Index("ix_catalog_items_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    base_price_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    is_global = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("catalog_items", lazy=True))

    def __repr__(self) -> str:
        return f"<CatalogItem id={self.id} name={self.name!r} branch_id={self.branch_id} global={self.is_global}>"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "base_price_cents": self.base_price_cents,
        }

    def to_dict(self) -> dict:
        return {
            **self.to_summary(),
            "description": self.description,
            "status": self.status,
            "branch_id": self.branch_id,
            "is_global": self.is_global,
            "branch": self.branch.to_summary() if self.branch else None,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PricingRule(db.Model):
    """
    Branch- and type-specific price component layered on a catalog item.

    INVARIANT: at most one ACTIVE rule per (catalog_item_id, branch_id, pricing_type).
    pricing_service checks it before every activation; the partial unique index
    uq_pricing_rules_active is the authoritative backstop under concurrency.
    """
    __tablename__ = "pricing_rules"
    __table_args__ = (
        db.Index(
            "uq_pricing_rules_active",
            "catalog_item_id",
            "branch_id",
            "pricing_type",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index("ix_pricing_rules_lookup", "catalog_item_id", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    catalog_item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    pricing_type = db.Column(db.String(16), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active")
    description = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    catalog_item = db.relationship(
        "CatalogItem",
        backref=db.backref("pricing_rules", lazy=True, cascade="all, delete-orphan"),
    )
    branch = db.relationship("Branch")

    def __repr__(self) -> str:
        return (
            f"<PricingRule id={self.id} item={self.catalog_item_id} branch={self.branch_id} "
            f"type={self.pricing_type} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "catalog_item_id": self.catalog_item_id,
            "branch_id": self.branch_id,
            "pricing_type": self.pricing_type,
            "price_cents": self.price_cents,
            "status": self.status,
            "description": self.description,
            "catalog_item": self.catalog_item.to_summary() if self.catalog_item else None,
            "branch": self.branch.to_summary() if self.branch else None,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
