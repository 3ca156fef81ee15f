# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Kasir Inventory Operations (authoritative)

Quantities:
- Inputs are in the variant's own unit; they are converted to base units
  with the variant multiplier before touching stock.
- InventoryStock only ever holds base variants.
- All writes go through stock_ledger_service; every change is logged.

Units of work:
- Each mutation runs in one database transaction (run_atomic). Any error
  rolls the whole operation back, including sequence numbers it drew.

Costing:
- StockBatch prices are stored per BASE unit so batches moved between
  stores or consumed by derived variants stay comparable.
- Stock-in raises the selling price when the purchase cost goes up
  (category margin, rounded up to PRICE_ROUNDING_STEP).
"""

from __future__ import annotations

import re
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func, case, or_

from ..extensions import db
from ..errors import ValidationError, NotFoundError, InsufficientStockError
from ..models import (
    InventoryStock,
    InventoryLog,
    PriceHistory,
    Product,
    ProductVariant,
    Store,
)
from ..models.catalog import PRODUCT_TYPE_PHYSICAL
from kasir.time_utils import to_utc_z
from ..models.inventory import (
    LOG_TYPE_RESTOCK,
    LOG_TYPE_ADJUSTMENT,
    LOG_TYPE_TRANSFER_IN,
    LOG_TYPE_TRANSFER_OUT,
    STOCK_OUT_TYPES,
)
from . import stock_ledger_service as ledger
from .concurrency import run_atomic
from .pagination import paginate
from .reference_service import next_reference, OPNAME_PREFIX, TRANSFER_PREFIX
from .tenant_service import require_store, require_variant, variant_query
from .unit_graph_service import resolve_base_variant, sellable_quantity


OPNAME_NOTE_RE = re.compile(r"^Opname by (?P<auditor>.*?)\. Sys: (?P<sys>-?\d+), Act: (?P<act>-?\d+)\. Note: (?P<note>.*)$", re.S)


def _require_int(value, field: str, *, minimum: int | None = None, allow_zero: bool = True) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: value})
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: value})
    if not allow_zero and value == 0:
        raise ValidationError(f"{field} must not be zero", details={field: value})
    return value


def _half_up_div(numerator: int, denominator: int) -> int:
    return int((Decimal(numerator) / Decimal(denominator)).to_integral_value(rounding=ROUND_HALF_UP))


# =============================================================================
# Pricing
# =============================================================================

def last_recorded_cost(variant_id: int) -> int:
    """Newest PriceHistory.new_price for the variant (0 when none)."""
    row = (
        db.session.query(PriceHistory)
        .filter_by(variant_id=variant_id)
        .order_by(PriceHistory.change_date.desc(), PriceHistory.id.desc())
        .first()
    )
    return row.new_price if row else 0


def _margin_for(variant: ProductVariant) -> Decimal:
    category = variant.product.category
    if category is not None and category.default_margin is not None:
        return Decimal(str(category.default_margin))
    return Decimal(str(current_app.config.get("DEFAULT_CATEGORY_MARGIN", "0.20")))


def suggested_price(cost: int, margin: Decimal, step: int | None = None) -> int:
    """
    cost * (1 + margin), rounded UP to the next multiple of step.

    Decimal keeps 10000 * 1.2 at exactly 12000.
    """
    if step is None:
        step = int(current_app.config.get("PRICE_ROUNDING_STEP", 500))
    raw = Decimal(cost) * (Decimal(1) + margin)
    steps = (raw / Decimal(step)).to_integral_value(rounding=ROUND_CEILING)
    return int(steps) * step


# =============================================================================
# Mutations
# =============================================================================

def stock_in(
    *,
    tenant_id: int,
    store_id: int,
    variant_id: int,
    qty: int,
    purchase_price: int,
    reference_id: str | None = None,
    supplier_id: str | None = None,
    expiry_date=None,
    notes: str | None = None,
) -> dict:
    """
    Receive qty units of a variant into a store.

    Increments base stock (RESTOCK), always records a StockBatch and, when
    the purchase cost rose, reprices the variant and appends PriceHistory.
    """
    _require_int(qty, "qty", minimum=1)
    _require_int(purchase_price, "purchase_price", minimum=0)

    def _op():
        store = require_store(tenant_id, store_id)
        variant, base = resolve_base_variant(tenant_id, variant_id)

        last_cost = last_recorded_cost(variant.id)
        price_updated = False
        old_price = variant.price
        if purchase_price > last_cost:
            variant.price = suggested_price(purchase_price, _margin_for(variant))
            db.session.add(PriceHistory(
                variant_id=variant.id,
                old_price=last_cost,
                new_price=purchase_price,
                notes=f"Stock in {reference_id}" if reference_id else "Stock in",
            ))
            price_updated = True

        base_qty = qty * variant.multiplier
        stock = ledger.increment(
            variant_id=base.id,
            store_id=store.id,
            qty=base_qty,
            log_type=LOG_TYPE_RESTOCK,
            note=notes or f"Stock in {qty} {variant.unit_name}",
            reference_id=reference_id,
        )
        batch = ledger.create_batch(
            stock,
            qty=base_qty,
            purchase_price=_half_up_div(purchase_price, variant.multiplier),
            unit_price=_half_up_div(variant.price, variant.multiplier),
            batch_number=reference_id,
            supplier_id=supplier_id,
            expiry_date=expiry_date,
        )
        db.session.flush()

        return {
            "stock": stock.to_dict(),
            "batch": batch.to_dict(),
            "variant_id": variant.id,
            "price": variant.price,
            "old_price": old_price,
            "price_updated": price_updated,
        }

    return run_atomic(_op)


def adjust_stock(
    *,
    tenant_id: int,
    store_id: int,
    variant_id: int,
    adjustment_qty: int,
    reason: str,
    adjustment_type: str | None = None,
    reference_id: str | None = None,
) -> dict:
    """
    Apply a signed correction to an existing stock row.

    The row must already exist; a correction never creates stock out of
    nothing. Negative corrections that would go below zero are refused.
    """
    _require_int(adjustment_qty, "adjustment_qty", allow_zero=False)
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required")

    note = f"[{adjustment_type}] {reason}" if adjustment_type else reason

    def _op():
        store = require_store(tenant_id, store_id)
        variant, base = resolve_base_variant(tenant_id, variant_id)
        stock = ledger.get_stock_row(base.id, store.id, lock=True)
        if stock is None:
            raise NotFoundError(
                f"No stock record for variant {variant.id} in store {store.id}",
                details={"variant_id": variant.id, "store_id": store.id},
            )

        base_delta = adjustment_qty * variant.multiplier
        if base_delta > 0:
            ledger.increment_row(stock, qty=base_delta, log_type=LOG_TYPE_ADJUSTMENT, note=note, reference_id=reference_id)
        else:
            ledger.decrement_row(stock, qty=-base_delta, log_type=LOG_TYPE_ADJUSTMENT, note=note, reference_id=reference_id)

        return {"stock": stock.to_dict(), "qty_change": str(base_delta)}

    return run_atomic(_op)


def transfer_stock(
    *,
    tenant_id: int,
    from_store_id: int,
    to_store_id: int,
    variant_id: int,
    qty: int,
    reference_id: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Move qty units of a variant between two stores of the same tenant.

    Writes TRANSFER_OUT at the source and TRANSFER_IN at the destination
    under one reference id. Batches consumed at the source are recreated
    at the destination with their cost data. Either both sides land or
    neither does.
    """
    _require_int(qty, "qty", minimum=1)
    if from_store_id == to_store_id:
        raise ValidationError("Cannot transfer to the same store", details={"store_id": from_store_id})

    def _op():
        from_store = require_store(tenant_id, from_store_id)
        to_store = require_store(tenant_id, to_store_id)
        variant, base = resolve_base_variant(tenant_id, variant_id)
        base_qty = qty * variant.multiplier

        source = ledger.get_stock_row(base.id, from_store.id)
        if source is None:
            raise InsufficientStockError(
                f"Insufficient stock for variant {variant.id} in store {from_store.id}",
                details={
                    "variant_id": variant.id,
                    "store_id": from_store.id,
                    "available": "0",
                    "requested": str(base_qty),
                },
            )
        dest = ledger.get_stock_row(base.id, to_store.id)

        # Lock existing rows in ascending id order
        for stock_id in sorted(s.id for s in (source, dest) if s is not None):
            ledger.lock_stock_row(stock_id)
        if dest is None:
            dest = ledger.get_or_create_stock_row(base.id, to_store.id)

        ref = reference_id or next_reference(tenant_id, TRANSFER_PREFIX)
        suffix = f": {notes}" if notes else ""

        slices = ledger.decrement_row(
            source,
            qty=base_qty,
            log_type=LOG_TYPE_TRANSFER_OUT,
            note=f"Transfer to {to_store.name}{suffix}",
            reference_id=ref,
        )
        ledger.increment_row(
            dest,
            qty=base_qty,
            log_type=LOG_TYPE_TRANSFER_IN,
            note=f"Transfer from {from_store.name}{suffix}",
            reference_id=ref,
        )
        for piece in slices:
            ledger.create_batch(
                dest,
                qty=piece.qty,
                purchase_price=piece.batch.purchase_price,
                unit_price=piece.batch.unit_price,
                batch_number=piece.batch.batch_number,
                supplier_id=piece.batch.supplier_id,
                expiry_date=piece.batch.expiry_date,
            )
        db.session.flush()

        current_app.logger.info(
            "Transfer %s: variant=%s qty=%s store %s -> %s (tenant=%s)",
            ref, base.id, base_qty, from_store.id, to_store.id, tenant_id,
        )
        return {
            "reference_id": ref,
            "from_stock": source.to_dict(),
            "to_stock": dest.to_dict(),
            "qty": str(base_qty),
        }

    return run_atomic(_op)


def finalize_opname(*, tenant_id: int, store_id: int, auditor_name: str, items: list[dict]) -> dict:
    """
    Reconcile a physical count for one store.

    Every item is validated before the first write: a bad variant id, a
    parcel, a digital product or two lines resolving to the same base
    variant fail the whole submission. All adjustments share one
    OPN-<year>-NNN reference.
    """
    if not auditor_name or not str(auditor_name).strip():
        raise ValidationError("auditor_name is required")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    def _op():
        store = require_store(tenant_id, store_id)

        resolved = []
        seen_variants = set()
        seen_bases = {}
        for idx, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValidationError(f"items[{idx}] must be an object")
            vid = _require_int(item.get("variant_id"), f"items[{idx}].variant_id", minimum=1)
            actual = _require_int(item.get("actual_qty"), f"items[{idx}].actual_qty", minimum=0)
            if vid in seen_variants:
                raise ValidationError(f"Duplicate variant {vid} in opname", details={"variant_id": vid})
            seen_variants.add(vid)

            variant, base = resolve_base_variant(tenant_id, vid)
            if base.id in seen_bases:
                raise ValidationError(
                    f"Variants {seen_bases[base.id]} and {vid} count the same stock",
                    details={"variant_id": vid, "base_variant_id": base.id},
                )
            seen_bases[base.id] = vid
            resolved.append((variant, base, actual, item.get("note")))

        reference = next_reference(tenant_id, OPNAME_PREFIX)

        summary = []
        for variant, base, actual, note in resolved:
            actual_base = actual * variant.multiplier
            current = ledger.get_stock_row(base.id, store.id)
            system_qty = current.stock_qty if current is not None else 0
            stock, system_qty, delta = ledger.set_absolute(
                variant_id=base.id,
                store_id=store.id,
                actual_qty=actual_base,
                note=f"Opname by {auditor_name}. Sys: {system_qty}, Act: {actual_base}. Note: {note or '-'}",
                reference_id=reference,
            )
            summary.append({
                "variant_id": variant.id,
                "base_variant_id": base.id,
                "system_qty": str(system_qty),
                "actual_qty": str(actual_base),
                "delta": str(delta),
            })

        current_app.logger.info(
            "Opname %s finalized: store=%s items=%s auditor=%s",
            reference, store.id, len(summary), auditor_name,
        )
        return {"reference_id": reference, "store_id": store.id, "items": summary}

    return run_atomic(_op)


def stock_out(
    *,
    tenant_id: int,
    store_id: int,
    variant_id: int,
    qty: int,
    out_type: str,
    reference_id: str | None = None,
    notes: str | None = None,
) -> dict:
    """Write stock off as WASTE, EXPIRED, DAMAGE or LOST."""
    _require_int(qty, "qty", minimum=1)
    if out_type not in STOCK_OUT_TYPES:
        raise ValidationError(
            f"type must be one of {', '.join(STOCK_OUT_TYPES)}",
            details={"type": out_type},
        )

    def _op():
        store = require_store(tenant_id, store_id)
        variant, base = resolve_base_variant(tenant_id, variant_id)
        base_qty = qty * variant.multiplier

        stock = ledger.get_stock_row(base.id, store.id, lock=True)
        if stock is None:
            raise InsufficientStockError(
                f"Insufficient stock for variant {variant.id} in store {store.id}",
                details={
                    "variant_id": variant.id,
                    "store_id": store.id,
                    "available": "0",
                    "requested": str(base_qty),
                },
            )
        ledger.decrement_row(
            stock,
            qty=base_qty,
            log_type=out_type,
            note=notes or out_type,
            reference_id=reference_id,
        )
        return {"stock": stock.to_dict(), "qty_change": str(-base_qty)}

    return run_atomic(_op)


# =============================================================================
# Reads
# =============================================================================

def _stock_query(tenant_id: int):
    return (
        db.session.query(InventoryStock)
        .join(Store, Store.id == InventoryStock.store_id)
        .filter(Store.tenant_id == tenant_id)
    )


def _stock_with_variant(stock: InventoryStock) -> dict:
    data = stock.to_dict()
    data["variant_name"] = stock.variant.name
    data["sku"] = stock.variant.sku
    data["unit_name"] = stock.variant.unit_name
    data["product_name"] = stock.variant.product.name
    return data


def list_stock(*, tenant_id: int, store_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    require_store(tenant_id, store_id)
    query = (
        _stock_query(tenant_id)
        .filter(InventoryStock.store_id == store_id)
        .order_by(InventoryStock.id.asc())
    )
    return paginate(query, page=page, per_page=per_page, serialize=_stock_with_variant)


def get_variant_history(
    *,
    tenant_id: int,
    variant_id: int,
    store_id: int,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Ledger of the stock row backing variant_id (via its base variant), newest first."""
    require_store(tenant_id, store_id)
    _, base = resolve_base_variant(tenant_id, variant_id)
    query = (
        db.session.query(InventoryLog)
        .join(InventoryStock, InventoryStock.id == InventoryLog.inventory_stock_id)
        .filter(InventoryStock.variant_id == base.id, InventoryStock.store_id == store_id)
        .order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
    )
    result = paginate(query, page=page, per_page=per_page, serialize=lambda log: log.to_dict())
    result["base_variant_id"] = base.id
    return result


def get_logs(
    *,
    tenant_id: int,
    variant_id: int | None = None,
    store_id: int | None = None,
    log_type: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = (
        db.session.query(InventoryLog)
        .join(InventoryStock, InventoryStock.id == InventoryLog.inventory_stock_id)
        .join(Store, Store.id == InventoryStock.store_id)
        .filter(Store.tenant_id == tenant_id)
    )
    if variant_id is not None:
        _, base = resolve_base_variant(tenant_id, variant_id)
        query = query.filter(InventoryStock.variant_id == base.id)
    if store_id is not None:
        require_store(tenant_id, store_id)
        query = query.filter(InventoryStock.store_id == store_id)
    if log_type:
        query = query.filter(InventoryLog.type == log_type)
    query = query.order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda log: log.to_dict())


def find_low_stock(
    *,
    tenant_id: int,
    store_id: int,
    threshold: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Stock rows at or below threshold, emptiest first."""
    require_store(tenant_id, store_id)
    if threshold is None:
        threshold = int(current_app.config.get("LOW_STOCK_DEFAULT_THRESHOLD", 10))
    _require_int(threshold, "threshold", minimum=0)
    query = (
        _stock_query(tenant_id)
        .filter(InventoryStock.store_id == store_id, InventoryStock.stock_qty <= threshold)
        .order_by(InventoryStock.stock_qty.asc(), InventoryStock.id.asc())
    )
    result = paginate(query, page=page, per_page=per_page, serialize=_stock_with_variant)
    result["threshold"] = threshold
    return result


def get_products_for_opname(
    *,
    tenant_id: int,
    store_id: int,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Countable variants with their current quantity in their own unit."""
    require_store(tenant_id, store_id)
    query = (
        variant_query(tenant_id)
        .filter(Product.type == PRODUCT_TYPE_PHYSICAL, Product.is_active.is_(True))
    )
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(ProductVariant.name.ilike(like), ProductVariant.sku.ilike(like), Product.name.ilike(like)))
    query = query.order_by(Product.name.asc(), ProductVariant.id.asc())

    def _serialize(variant: ProductVariant) -> dict:
        data = variant.to_dict()
        data["product_name"] = variant.product.name
        qty = sellable_quantity(tenant_id, variant.id, store_id, tolerate_missing=True)
        data["system_qty"] = str(qty)
        return data

    return paginate(query, page=page, per_page=per_page, serialize=_serialize)


def _parse_opname_note(note: str | None) -> dict:
    match = OPNAME_NOTE_RE.match(note or "")
    if not match:
        return {"auditor": None, "system_qty": None, "actual_qty": None, "note": note}
    return {
        "auditor": match.group("auditor"),
        "system_qty": match.group("sys"),
        "actual_qty": match.group("act"),
        "note": None if match.group("note") == "-" else match.group("note"),
    }


def get_opname_history(
    *,
    tenant_id: int,
    store_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Opname sessions grouped by reference id, newest first."""
    query = (
        db.session.query(
            InventoryLog.reference_id.label("reference_id"),
            InventoryStock.store_id.label("store_id"),
            func.min(InventoryLog.created_at).label("created_at"),
            func.min(InventoryLog.notes).label("sample_note"),
            func.count(InventoryLog.id).label("item_count"),
            func.sum(case((InventoryLog.qty_change < 0, 1), else_=0)).label("shortages"),
            func.sum(case((InventoryLog.qty_change > 0, 1), else_=0)).label("overages"),
        )
        .join(InventoryStock, InventoryStock.id == InventoryLog.inventory_stock_id)
        .join(Store, Store.id == InventoryStock.store_id)
        .filter(
            Store.tenant_id == tenant_id,
            InventoryLog.type == LOG_TYPE_ADJUSTMENT,
            InventoryLog.reference_id.like(f"{OPNAME_PREFIX}-%"),
        )
    )
    if store_id is not None:
        require_store(tenant_id, store_id)
        query = query.filter(InventoryStock.store_id == store_id)
    query = (
        query.group_by(InventoryLog.reference_id, InventoryStock.store_id)
        .order_by(func.min(InventoryLog.created_at).desc(), InventoryLog.reference_id.desc())
    )

    def _serialize(row) -> dict:
        return {
            "reference_id": row.reference_id,
            "store_id": row.store_id,
            "auditor": _parse_opname_note(row.sample_note)["auditor"],
            "created_at": to_utc_z(row.created_at),
            "item_count": int(row.item_count or 0),
            "shortages": int(row.shortages or 0),
            "overages": int(row.overages or 0),
        }

    return paginate(query, page=page, per_page=per_page, serialize=_serialize)


def get_opname_detail(*, tenant_id: int, reference_id: str) -> dict:
    logs = (
        db.session.query(InventoryLog)
        .join(InventoryStock, InventoryStock.id == InventoryLog.inventory_stock_id)
        .join(Store, Store.id == InventoryStock.store_id)
        .filter(
            Store.tenant_id == tenant_id,
            InventoryLog.type == LOG_TYPE_ADJUSTMENT,
            InventoryLog.reference_id == reference_id,
        )
        .order_by(InventoryLog.id.asc())
        .all()
    )
    if not logs:
        raise NotFoundError(f"Opname {reference_id} not found", details={"reference_id": reference_id})

    items = []
    for log in logs:
        parsed = _parse_opname_note(log.notes)
        variant = log.inventory_stock.variant
        items.append({
            "log_id": log.id,
            "variant_id": variant.id,
            "variant_name": variant.name,
            "sku": variant.sku,
            "qty_change": str(log.qty_change),
            "system_qty": parsed["system_qty"],
            "actual_qty": parsed["actual_qty"],
            "note": parsed["note"],
        })

    first = logs[0]
    return {
        "reference_id": reference_id,
        "store_id": first.inventory_stock.store_id,
        "auditor": _parse_opname_note(first.notes)["auditor"],
        "created_at": first.to_dict()["created_at"],
        "items": items,
    }


def get_sellable_quantity(*, tenant_id: int, variant_id: int, store_id: int) -> dict:
    """
    Units of variant_id sellable at store_id. A variant with no stock row
    yet reports 0; digital variants report tracked=False.
    """
    require_store(tenant_id, store_id)
    variant = require_variant(tenant_id, variant_id)
    qty = sellable_quantity(tenant_id, variant.id, store_id, tolerate_missing=True)
    return {
        "variant_id": variant.id,
        "store_id": store_id,
        "tracked": qty is not None,
        "sellable_qty": str(qty) if qty is not None else None,
    }
