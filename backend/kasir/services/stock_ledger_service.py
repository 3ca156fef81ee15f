# Overview: Service-layer operations for the stock ledger; sole writer of InventoryStock.stock_qty.

"""
Stock Ledger

INVARIANTS:
- stock_qty is changed ONLY here.
- Every change writes exactly one InventoryLog row in the same unit of work.
- A decrement never takes stock_qty below zero: the UPDATE carries the
  guard (stock_qty >= :qty) so two concurrent writers cannot both pass a
  stale read.
- StockBatch rows are consumed oldest first and never go negative.

Callers own the unit of work (see concurrency.run_atomic); nothing here
commits.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ValidationError, NotFoundError, InsufficientStockError
from ..models import InventoryStock, InventoryLog, StockBatch
from ..models.inventory import LOG_TYPE_ADJUSTMENT, LOG_TYPES
from .concurrency import lock_for_update, RetryableConflict


NOTE_MAX_LENGTH = 500


@dataclass(frozen=True)
class BatchSlice:
    """Quantity taken from one batch by a decrement."""
    batch: StockBatch
    qty: int


def get_stock_row(variant_id: int, store_id: int, *, lock: bool = False) -> InventoryStock | None:
    query = db.session.query(InventoryStock).filter_by(variant_id=variant_id, store_id=store_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def lock_stock_row(stock_id: int) -> InventoryStock:
    return lock_for_update(db.session.query(InventoryStock).filter_by(id=stock_id)).one()


def get_or_create_stock_row(variant_id: int, store_id: int) -> InventoryStock:
    """
    Fetch (locked) or create the stock row for a base variant in a store.

    A concurrent creator hitting the unique (variant_id, store_id) key makes
    the flush fail; the whole unit of work is replayed.
    """
    stock = get_stock_row(variant_id, store_id, lock=True)
    if stock is not None:
        return stock

    stock = InventoryStock(variant_id=variant_id, store_id=store_id, stock_qty=0)
    db.session.add(stock)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise RetryableConflict(f"stock row for variant {variant_id} in store {store_id} created concurrently") from exc
    return stock


def _write_log(stock: InventoryStock, *, log_type: str, qty_change: int, note: str | None, reference_id: str | None) -> InventoryLog:
    if log_type not in LOG_TYPES:
        raise ValidationError(f"Unknown log type: {log_type}")
    if note and len(note) > NOTE_MAX_LENGTH:
        note = note[:NOTE_MAX_LENGTH]
    log = InventoryLog(
        inventory_stock_id=stock.id,
        type=log_type,
        qty_change=qty_change,
        reference_id=reference_id,
        notes=note,
    )
    db.session.add(log)
    return log


def _require_positive(qty: int) -> None:
    if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
        raise ValidationError("qty must be a positive integer", details={"qty": qty})


def increment_row(
    stock: InventoryStock,
    *,
    qty: int,
    log_type: str,
    note: str | None = None,
    reference_id: str | None = None,
) -> InventoryStock:
    _require_positive(qty)
    db.session.execute(
        update(InventoryStock)
        .where(InventoryStock.id == stock.id)
        .values(stock_qty=InventoryStock.stock_qty + qty)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(stock)
    _write_log(stock, log_type=log_type, qty_change=qty, note=note, reference_id=reference_id)
    return stock


def increment(
    *,
    variant_id: int,
    store_id: int,
    qty: int,
    log_type: str,
    note: str | None = None,
    reference_id: str | None = None,
) -> InventoryStock:
    """Add qty base units, creating the stock row when absent."""
    _require_positive(qty)
    stock = get_or_create_stock_row(variant_id, store_id)
    return increment_row(stock, qty=qty, log_type=log_type, note=note, reference_id=reference_id)


def decrement_row(
    stock: InventoryStock,
    *,
    qty: int,
    log_type: str,
    note: str | None = None,
    reference_id: str | None = None,
    consume_batches: bool = True,
) -> list[BatchSlice]:
    """
    Remove qty base units from an existing row.

    Raises InsufficientStockError when the guarded UPDATE matches no row.
    Returns the batch slices consumed (empty when consume_batches is off or
    the row has no open batches).
    """
    _require_positive(qty)
    result = db.session.execute(
        update(InventoryStock)
        .where(InventoryStock.id == stock.id, InventoryStock.stock_qty >= qty)
        .values(stock_qty=InventoryStock.stock_qty - qty)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        db.session.refresh(stock)
        raise InsufficientStockError(
            f"Insufficient stock for variant {stock.variant_id} in store {stock.store_id}",
            details={
                "variant_id": stock.variant_id,
                "store_id": stock.store_id,
                "available": str(stock.stock_qty),
                "requested": str(qty),
            },
        )
    db.session.refresh(stock)
    slices = consume_fifo(stock.id, qty) if consume_batches else []
    _write_log(stock, log_type=log_type, qty_change=-qty, note=note, reference_id=reference_id)
    return slices


def decrement(
    *,
    variant_id: int,
    store_id: int,
    qty: int,
    log_type: str,
    note: str | None = None,
    reference_id: str | None = None,
    consume_batches: bool = True,
) -> list[BatchSlice]:
    stock = get_stock_row(variant_id, store_id, lock=True)
    if stock is None:
        raise NotFoundError(
            f"No stock record for variant {variant_id} in store {store_id}",
            details={"variant_id": variant_id, "store_id": store_id},
        )
    return decrement_row(
        stock,
        qty=qty,
        log_type=log_type,
        note=note,
        reference_id=reference_id,
        consume_batches=consume_batches,
    )


def set_absolute(
    *,
    variant_id: int,
    store_id: int,
    actual_qty: int,
    note: str | None = None,
    reference_id: str | None = None,
) -> tuple[InventoryStock, int, int]:
    """
    Force stock to actual_qty (physical count).

    Returns (stock, system_qty, delta). Always writes one ADJUSTMENT log,
    including a zero delta, so the count itself is on record.
    """
    if not isinstance(actual_qty, int) or isinstance(actual_qty, bool) or actual_qty < 0:
        raise ValidationError("actual_qty must be a non-negative integer", details={"actual_qty": actual_qty})

    stock = get_or_create_stock_row(variant_id, store_id)
    system_qty = stock.stock_qty or 0
    delta = actual_qty - system_qty

    if delta:
        result = db.session.execute(
            update(InventoryStock)
            .where(InventoryStock.id == stock.id, InventoryStock.stock_qty == system_qty)
            .values(stock_qty=actual_qty)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise RetryableConflict(f"stock row {stock.id} changed during count")
        db.session.refresh(stock)
        if delta < 0:
            consume_fifo(stock.id, -delta)

    _write_log(stock, log_type=LOG_TYPE_ADJUSTMENT, qty_change=delta, note=note, reference_id=reference_id)
    return stock, system_qty, delta


def consume_fifo(stock_id: int, qty: int) -> list[BatchSlice]:
    """
    Take qty from open batches, oldest first.

    Stock not covered by any batch is left uncovered; batches are never
    authoritative for the total.
    """
    batches = (
        lock_for_update(
            db.session.query(StockBatch)
            .filter(StockBatch.inventory_stock_id == stock_id, StockBatch.qty > 0)
            .order_by(StockBatch.created_at.asc(), StockBatch.id.asc())
        )
        .all()
    )
    remaining = qty
    slices = []
    for batch in batches:
        if remaining <= 0:
            break
        take = min(remaining, batch.qty)
        batch.qty = batch.qty - take
        remaining -= take
        slices.append(BatchSlice(batch=batch, qty=take))
    return slices


def create_batch(
    stock: InventoryStock,
    *,
    qty: int,
    purchase_price: int = 0,
    unit_price: int = 0,
    batch_number: str | None = None,
    supplier_id: str | None = None,
    expiry_date=None,
) -> StockBatch:
    batch = StockBatch(
        inventory_stock_id=stock.id,
        qty=qty,
        initial_qty=qty,
        purchase_price=purchase_price,
        unit_price=unit_price,
        batch_number=batch_number,
        supplier_id=supplier_id,
        expiry_date=expiry_date,
    )
    db.session.add(batch)
    return batch


def latest_batch(stock_id: int) -> StockBatch | None:
    """Newest batch for a row, used as the cost snapshot at sale time."""
    return (
        db.session.query(StockBatch)
        .filter(StockBatch.inventory_stock_id == stock_id)
        .order_by(StockBatch.created_at.desc(), StockBatch.id.desc())
        .first()
    )
