from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z


PRODUCT_TYPE_PHYSICAL = "PHYSICAL"
PRODUCT_TYPE_PARCEL = "PARCEL"
PRODUCT_TYPE_DIGITAL = "DIGITAL"
PRODUCT_TYPES = (PRODUCT_TYPE_PHYSICAL, PRODUCT_TYPE_PARCEL, PRODUCT_TYPE_DIGITAL)


class Category(db.Model):
    """
    Product category. Only read by the engine: default_margin feeds the
    stock-in price suggestion (NULL means use DEFAULT_CATEGORY_MARGIN).
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_categories_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    default_margin = db.Column(db.Numeric(6, 4), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "default_margin": str(self.default_margin) if self.default_margin is not None else None,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Sellable good. Owns one or more variants.

    TYPES:
    - PHYSICAL: stock lives on the base variant, derived variants convert
    - PARCEL: no stock of its own; availability comes from bundle components
    - DIGITAL: no stock tracking
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False, default=PRODUCT_TYPE_PHYSICAL)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    @property
    def is_parcel(self) -> bool:
        return self.type == PRODUCT_TYPE_PARCEL

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "category_id": self.category_id,
            "type": self.type,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ProductVariant(db.Model):
    """
    Sellable unit of a product.

    UNIT GRAPH:
    - Exactly one base variant per stocked product: multiplier=1, no parent.
    - Derived (grosir) variants point at a parent; multiplier is expressed
      in base units ("box of 12" -> multiplier 12).
    - The parent chain is acyclic; catalog_service rejects writes that
      would close a loop.
    - InventoryStock rows only ever reference base variants.

    SKU is unique per tenant.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_variants_tenant_sku"),
        db.CheckConstraint("multiplier >= 1", name="ck_variants_multiplier_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    unit_name = db.Column(db.String(32), nullable=False, default="pcs")
    multiplier = db.Column(db.Integer, nullable=False, default=1)

    # Whole currency units (no minor units)
    price = db.Column(db.BigInteger, nullable=False, default=0)

    parent_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)
    is_base_unit = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("variants", lazy=True, order_by="ProductVariant.id"))
    parent = db.relationship("ProductVariant", remote_side=[id], backref=db.backref("children", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r} multiplier={self.multiplier}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "unit_name": self.unit_name,
            "multiplier": self.multiplier,
            "price": self.price,
            "parent_variant_id": self.parent_variant_id,
            "is_base_unit": self.is_base_unit,
            "created_at": to_utc_z(self.created_at),
        }


class BundleComponent(db.Model):
    """Edge from a parcel variant to a component variant with the quantity one parcel needs."""
    __tablename__ = "bundle_components"
    __table_args__ = (
        db.UniqueConstraint("parcel_variant_id", "component_variant_id", name="uq_bundle_parcel_component"),
        db.CheckConstraint("qty >= 1", name="ck_bundle_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parcel_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    component_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    qty = db.Column(db.Integer, nullable=False, default=1)

    parcel_variant = db.relationship(
        "ProductVariant",
        foreign_keys=[parcel_variant_id],
        backref=db.backref("bundle_components", lazy=True, order_by="BundleComponent.id"),
    )
    component_variant = db.relationship("ProductVariant", foreign_keys=[component_variant_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parcel_variant_id": self.parcel_variant_id,
            "component_variant_id": self.component_variant_id,
            "qty": self.qty,
        }


class PriceHistory(db.Model):
    """
    Append-only purchase cost history per variant.

    new_price is the purchase cost recorded at that stock-in; the newest row
    is the "last recorded cost" used by the margin rule.
    """
    __tablename__ = "price_history"
    __table_args__ = (
        db.Index("ix_price_history_variant_date", "variant_id", "change_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    old_price = db.Column(db.BigInteger, nullable=False, default=0)
    new_price = db.Column(db.BigInteger, nullable=False)
    notes = db.Column(db.String(255), nullable=True)
    change_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "old_price": self.old_price,
            "new_price": self.new_price,
            "notes": self.notes,
            "change_date": to_utc_z(self.change_date),
        }
