# Overview: Service-layer operations for cashier shifts; encapsulates business logic and database work.

"""
Shift lifecycle.

A cashier opens a shift at a store before posting sales and closes it at
the end of the day. Expected cash at close is the opening float plus the
cash collected by non-void transactions in the shift.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError, NotFoundError, ConflictError
from ..models import StoreShift, Transaction
from ..models.transactions import PAYMENT_STATUS_VOID
from kasir.time_utils import utcnow
from .concurrency import run_atomic, lock_for_update
from .tenant_service import require_store


SHIFT_STATUS_OPEN = "OPEN"
SHIFT_STATUS_CLOSED = "CLOSED"
CASH_PAYMENT_METHOD = "CASH"


def find_open_shift(*, tenant_id: int, user_id: int, store_id: int | None = None) -> StoreShift | None:
    query = db.session.query(StoreShift).filter_by(
        tenant_id=tenant_id,
        user_id=user_id,
        status=SHIFT_STATUS_OPEN,
    )
    if store_id is not None:
        query = query.filter(StoreShift.store_id == store_id)
    return query.order_by(StoreShift.id.desc()).first()


def open_shift(*, tenant_id: int, store_id: int, user_id: int, starting_cash: int = 0, notes: str | None = None) -> dict:
    if not isinstance(starting_cash, int) or isinstance(starting_cash, bool) or starting_cash < 0:
        raise ValidationError("starting_cash must be a non-negative integer")

    def _op():
        store = require_store(tenant_id, store_id)
        if find_open_shift(tenant_id=tenant_id, user_id=user_id) is not None:
            raise ConflictError("User already has an open shift", details={"user_id": user_id})
        shift = StoreShift(
            tenant_id=tenant_id,
            store_id=store.id,
            user_id=user_id,
            status=SHIFT_STATUS_OPEN,
            starting_cash=starting_cash,
            notes=notes,
        )
        db.session.add(shift)
        db.session.flush()
        current_app.logger.info("Shift %s opened by user %s at store %s", shift.id, user_id, store.id)
        return shift.to_dict()

    return run_atomic(_op)


def get_current_shift(*, tenant_id: int, user_id: int, store_id: int | None = None) -> dict | None:
    shift = find_open_shift(tenant_id=tenant_id, user_id=user_id, store_id=store_id)
    return shift.to_dict() if shift else None


def _cash_collected(shift_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Transaction.paid_amount), 0))
        .filter(
            Transaction.shift_id == shift_id,
            Transaction.payment_method == CASH_PAYMENT_METHOD,
            Transaction.payment_status != PAYMENT_STATUS_VOID,
        )
        .scalar()
    )
    return int(total or 0)


def close_shift(*, tenant_id: int, shift_id: int, user_id: int, closing_cash: int, notes: str | None = None) -> dict:
    """
    Close an open shift owned by user_id.

    Records the counted closing cash next to the computed expected cash;
    the difference is left for the reconciliation report.
    """
    if not isinstance(closing_cash, int) or isinstance(closing_cash, bool) or closing_cash < 0:
        raise ValidationError("closing_cash must be a non-negative integer")

    def _op():
        shift = lock_for_update(
            db.session.query(StoreShift).filter_by(id=shift_id, tenant_id=tenant_id)
        ).first()
        if shift is None:
            raise NotFoundError("Shift not found", details={"shift_id": shift_id})
        if shift.user_id != user_id:
            raise ValidationError("Shift belongs to another user", details={"shift_id": shift_id})
        if shift.status != SHIFT_STATUS_OPEN:
            raise ValidationError("Shift is already closed", details={"shift_id": shift_id})

        shift.expected_cash = shift.starting_cash + _cash_collected(shift.id)
        shift.closing_cash = closing_cash
        shift.status = SHIFT_STATUS_CLOSED
        shift.end_time = utcnow()
        if notes:
            shift.notes = notes
        db.session.flush()
        current_app.logger.info(
            "Shift %s closed (expected=%s, counted=%s)", shift.id, shift.expected_cash, closing_cash
        )
        return shift.to_dict()

    return run_atomic(_op)
