from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z


LOG_TYPE_RESTOCK = "RESTOCK"
LOG_TYPE_ADJUSTMENT = "ADJUSTMENT"
LOG_TYPE_SALE = "SALE"
LOG_TYPE_TRANSFER_IN = "TRANSFER_IN"
LOG_TYPE_TRANSFER_OUT = "TRANSFER_OUT"
LOG_TYPE_VOID_RESTORE = "VOID_RESTORE"
LOG_TYPE_WASTE = "WASTE"
LOG_TYPE_EXPIRED = "EXPIRED"
LOG_TYPE_DAMAGE = "DAMAGE"
LOG_TYPE_LOST = "LOST"

STOCK_OUT_TYPES = (LOG_TYPE_WASTE, LOG_TYPE_EXPIRED, LOG_TYPE_DAMAGE, LOG_TYPE_LOST)
LOG_TYPES = (
    LOG_TYPE_RESTOCK,
    LOG_TYPE_ADJUSTMENT,
    LOG_TYPE_SALE,
    LOG_TYPE_TRANSFER_IN,
    LOG_TYPE_TRANSFER_OUT,
    LOG_TYPE_VOID_RESTORE,
) + STOCK_OUT_TYPES


class InventoryStock(db.Model):
    """
    The only place physical quantity is stored.

    INVARIANTS:
    - One row per (variant_id, store_id); variant_id is always a BASE variant.
    - stock_qty >= 0 (CHECK constraint plus conditional UPDATE in the ledger).
    - stock_qty is only changed through stock_ledger_service, and every
      change is paired with exactly one InventoryLog row.
    """
    __tablename__ = "inventory_stock"
    __table_args__ = (
        db.UniqueConstraint("variant_id", "store_id", name="uq_inventory_stock_variant_store"),
        db.CheckConstraint("stock_qty >= 0", name="ck_inventory_stock_non_negative"),
        db.Index("ix_inventory_stock_store_qty", "store_id", "stock_qty"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    stock_qty = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variant = db.relationship("ProductVariant", backref=db.backref("stocks", lazy=True))
    store = db.relationship("Store", backref=db.backref("stocks", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryStock id={self.id} variant_id={self.variant_id} store_id={self.store_id} qty={self.stock_qty}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "store_id": self.store_id,
            # BigInteger: serialize as string so JS clients keep precision
            "stock_qty": str(self.stock_qty),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryLog(db.Model):
    """
    Append-only audit record of every stock change.

    qty_change is signed in base units. reference_id groups related rows
    (one opname session, both sides of a transfer, one sale). Rows are never
    updated or deleted.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.Index("ix_inventory_logs_stock_created", "inventory_stock_id", "created_at"),
        db.Index("ix_inventory_logs_type_reference", "type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_stock_id = db.Column(db.Integer, db.ForeignKey("inventory_stock.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    qty_change = db.Column(db.BigInteger, nullable=False)

    reference_id = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    inventory_stock = db.relationship("InventoryStock", backref=db.backref("logs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_stock_id": self.inventory_stock_id,
            "type": self.type,
            "qty_change": str(self.qty_change),
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class StockBatch(db.Model):
    """
    FIFO costing layer for a stock row.

    qty is what remains of initial_qty (base units). Batches are consumed
    oldest first and never go negative. They are NOT authoritative for the
    total: InventoryStock.stock_qty is. Stock that entered without a batch
    (opname, void restore, legacy data) is simply uncovered.
    """
    __tablename__ = "stock_batches"
    __table_args__ = (
        db.Index("ix_stock_batches_stock_created", "inventory_stock_id", "created_at"),
        db.CheckConstraint("qty >= 0", name="ck_stock_batches_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_stock_id = db.Column(db.Integer, db.ForeignKey("inventory_stock.id"), nullable=False, index=True)

    qty = db.Column(db.BigInteger, nullable=False)
    initial_qty = db.Column(db.BigInteger, nullable=False)

    purchase_price = db.Column(db.BigInteger, nullable=False, default=0)
    unit_price = db.Column(db.BigInteger, nullable=False, default=0)

    batch_number = db.Column(db.String(64), nullable=True)
    supplier_id = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    inventory_stock = db.relationship("InventoryStock", backref=db.backref("batches", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_stock_id": self.inventory_stock_id,
            "qty": str(self.qty),
            "initial_qty": str(self.initial_qty),
            "purchase_price": self.purchase_price,
            "unit_price": self.unit_price,
            "batch_number": self.batch_number,
            "supplier_id": self.supplier_id,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "created_at": to_utc_z(self.created_at),
        }


class ReferenceSequence(db.Model):
    """
    Atomic per-tenant reference sequences (OPN-2026, TRF-2026, ...).

    Allocating with an UPDATE ... SET next_number = next_number + 1 keeps two
    concurrent opname submissions from drawing the same number.
    """
    __tablename__ = "reference_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sequence_key", name="uq_reference_sequences_tenant_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    sequence_key = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
