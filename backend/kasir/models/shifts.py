from __future__ import annotations

from ..extensions import db
from kasir.time_utils import to_utc_z

class StoreShift(db.Model):
    """
    Cashier shift at a store.

    LIFECYCLE:
    - OPEN: cashier may post transactions against this store
    - CLOSED: shift ended, expected cash computed from cash sales

    A user holds at most one OPEN shift at a time. Transactions reference
    the shift they were posted under.
    """
    __tablename__ = "store_shifts"
    __table_args__ = (
        db.Index("ix_store_shifts_store_user_status", "store_id", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    # Users live in the auth service; only the id is kept here
    user_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)  # OPEN, CLOSED

    starting_cash = db.Column(db.BigInteger, nullable=False, default=0)
    expected_cash = db.Column(db.BigInteger, nullable=True)
    closing_cash = db.Column(db.BigInteger, nullable=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "store_id": self.store_id,
            "user_id": self.user_id,
            "status": self.status,
            "starting_cash": self.starting_cash,
            "expected_cash": self.expected_cash,
            "closing_cash": self.closing_cash,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "notes": self.notes,
        }
