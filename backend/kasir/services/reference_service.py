# Overview: Service-layer operations for reference numbers; allocates OPN/TRF ids per tenant.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from flask import current_app

from ..extensions import db
from ..errors import ValidationError
from ..models import InventoryLog, InventoryStock, ReferenceSequence, Store
from kasir.time_utils import utcnow
from .concurrency import RetryableConflict


OPNAME_PREFIX = "OPN"
TRANSFER_PREFIX = "TRF"


def _format(prefix: str, year: int, number: int, pad: int) -> str:
    return f"{prefix}-{year}-{str(number).zfill(pad)}"


def _highest_existing_suffix(tenant_id: int, prefix: str, year: int) -> int:
    """
    Largest NNN already used in this tenant's logs for PREFIX-YEAR-NNN.

    Seeds a sequence created after references were already written (data
    imported from an older install).
    """
    like = f"{prefix}-{year}-%"
    rows = (
        db.session.query(InventoryLog.reference_id)
        .join(InventoryStock, InventoryStock.id == InventoryLog.inventory_stock_id)
        .join(Store, Store.id == InventoryStock.store_id)
        .filter(Store.tenant_id == tenant_id, InventoryLog.reference_id.like(like))
        .distinct()
        .all()
    )
    highest = 0
    for (reference_id,) in rows:
        suffix = reference_id.rsplit("-", 1)[-1]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest


def next_reference(tenant_id: int, prefix: str, *, year: int | None = None, pad: int = 3) -> str:
    """
    Atomically allocate the next PREFIX-YEAR-NNN reference for a tenant.

    Runs inside the caller's unit of work, so a rolled back operation gives
    its number back. Two writers creating the same sequence row at once
    collide on the unique key; the loser's unit of work is replayed.
    """
    if not tenant_id:
        raise ValidationError("tenant_id is required")
    if not prefix:
        raise ValidationError("prefix is required")
    if year is None:
        year = utcnow().year
    sequence_key = f"{prefix}-{year}"

    stmt = (
        update(ReferenceSequence)
        .where(
            ReferenceSequence.tenant_id == tenant_id,
            ReferenceSequence.sequence_key == sequence_key,
        )
        .values(next_number=ReferenceSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(ReferenceSequence.next_number)
            .filter_by(tenant_id=tenant_id, sequence_key=sequence_key)
            .scalar()
        )
        return _format(prefix, year, current - 1, pad)

    number = _highest_existing_suffix(tenant_id, prefix, year) + 1
    seq = ReferenceSequence(tenant_id=tenant_id, sequence_key=sequence_key, next_number=number + 1)
    db.session.add(seq)
    try:
        db.session.flush()
    except IntegrityError as exc:
        current_app.logger.warning(
            "Reference sequence %s for tenant %s created concurrently; retrying",
            sequence_key,
            tenant_id,
        )
        raise RetryableConflict(f"sequence {sequence_key} created concurrently") from exc
    return _format(prefix, year, number, pad)
