from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z

class Tenant(db.Model):
    """
    Multi-tenant root: every business using the system is a Tenant.

    DESIGN:
    - Stores, categories, products and transactions carry tenant_id
    - Variants and stock rows inherit the tenant through their product/store
    - Every query touching tenant data filters by tenant_id (see tenant_service)
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

class Store(db.Model):
    """
    Store (outlet or warehouse) within a tenant.

    Stock is held per (base variant, store). Store names and codes are
    unique within a tenant, not globally.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_stores_tenant_name"),
        db.UniqueConstraint("tenant_id", "code", name="uq_stores_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # Basis points applied to every line subtotal (e.g., 1100 = 11%)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("stores", lazy=True))

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "phone": self.phone,
            "tax_rate_bps": self.tax_rate_bps,
            "created_at": to_utc_z(self.created_at),
        }
