from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z


PAYMENT_STATUS_UNPAID = "UNPAID"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_VOID = "VOID"


class Transaction(db.Model):
    """
    Sale header.

    Created atomically with its items and stock effects by
    transaction_service.create_transaction. Never hard-deleted: voiding
    flips payment_status to VOID and stamps meta with reason/actor/time,
    leaving items and amounts as they were.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_tenant_status_date", "tenant_id", "payment_status", "transaction_date"),
        db.Index("ix_transactions_tenant_balance", "tenant_id", "balance_due"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("store_shifts.id"), nullable=True, index=True)

    created_by = db.Column(db.Integer, nullable=False)

    # Customers live in the customer service; the name is snapshotted
    customer_id = db.Column(db.String(64), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    total_amount = db.Column(db.BigInteger, nullable=False)
    paid_amount = db.Column(db.BigInteger, nullable=False, default=0)
    balance_due = db.Column(db.BigInteger, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_UNPAID, index=True)

    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("transactions", lazy=True))
    shift = db.relationship("StoreShift", backref=db.backref("transactions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_void(self) -> bool:
        return self.payment_status == PAYMENT_STATUS_VOID

    @property
    def invoice_number(self) -> str:
        return f"INV-{str(self.id).zfill(6)}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "tenant_id": self.tenant_id,
            "store_id": self.store_id,
            "shift_id": self.shift_id,
            "created_by": self.created_by,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "total_amount": self.total_amount,
            "paid_amount": self.paid_amount,
            "balance_due": self.balance_due,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "metadata": self.meta or {},
            "transaction_date": to_utc_z(self.transaction_date),
        }


class TransactionItem(db.Model):
    """Line of a sale with price, cost, discount and tax snapshotted at posting time."""
    __tablename__ = "transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.BigInteger, nullable=False)
    cost_price = db.Column(db.BigInteger, nullable=False, default=0)
    discount_amount = db.Column(db.BigInteger, nullable=False, default=0)
    tax_amount = db.Column(db.BigInteger, nullable=False, default=0)
    subtotal = db.Column(db.BigInteger, nullable=False)

    transaction = db.relationship(
        "Transaction",
        backref=db.backref("items", lazy=True, order_by="TransactionItem.id"),
    )
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "variant_id": self.variant_id,
            "qty": self.qty,
            "unit_price": self.unit_price,
            "cost_price": self.cost_price,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "subtotal": self.subtotal,
        }


class TransactionItemStock(db.Model):
    """
    Snapshot of the exact stock rows (and base-unit quantities) a line
    decremented. Void replays these instead of re-resolving the unit graph,
    so edits to parents/bundles after the sale cannot misdirect a restore.
    """
    __tablename__ = "transaction_item_stocks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_item_id = db.Column(db.Integer, db.ForeignKey("transaction_items.id"), nullable=False, index=True)
    inventory_stock_id = db.Column(db.Integer, db.ForeignKey("inventory_stock.id"), nullable=False, index=True)
    qty = db.Column(db.BigInteger, nullable=False)

    transaction_item = db.relationship(
        "TransactionItem",
        backref=db.backref("stock_movements", lazy=True, order_by="TransactionItemStock.id"),
    )
    inventory_stock = db.relationship("InventoryStock")
