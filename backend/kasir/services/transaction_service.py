# Overview: Service-layer operations for sales transactions; encapsulates business logic and database work.

"""
Kasir Transaction Posting & Void (authoritative)

Posting is one unit of work:
1. The cashier must hold an OPEN shift at the store.
2. Prices come from the variant, never from the client. Per line:
   dpp = price * qty - discount, tax = dpp * store.tax_rate_bps / 10000
   (half-up), subtotal = dpp + tax.
3. Every line resolves to the stock rows that back it (base variant for
   simple/grosir units, each component for parcels).
4. All decrements are checked together, summed per stock row, before
   anything is written.
5. The server total must match the declared total within TOTAL_TOLERANCE.
6. Header, decrements (ascending stock id), items and stock snapshots are
   written; any failure rolls everything back.

Void replays the per-line stock snapshot so later edits to the unit graph
cannot send restored stock to the wrong row.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import (
    ValidationError,
    NotFoundError,
    ConflictError,
    InsufficientStockError,
    IntegrityViolationError,
)
from ..models import (
    ProductVariant,
    Transaction,
    TransactionItem,
    TransactionItemStock,
)
from ..models.catalog import PRODUCT_TYPE_DIGITAL, PRODUCT_TYPE_PARCEL
from ..models.inventory import LOG_TYPE_SALE, LOG_TYPE_VOID_RESTORE
from ..models.transactions import (
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_UNPAID,
    PAYMENT_STATUS_VOID,
)
from kasir.time_utils import utcnow, to_utc_z
from . import stock_ledger_service as ledger
from .concurrency import run_atomic, lock_for_update
from .pagination import paginate
from .shift_service import find_open_shift
from .tenant_service import require_store, require_variant
from .unit_graph_service import (
    BundleSource,
    SimpleSource,
    resolve_stock_source,
    walk_to_base,
)


def _require_amount(value, field: str, *, minimum: int = 0) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise ValidationError(f"{field} must be an integer >= {minimum}", details={field: value})
    return value


def compute_tax(dpp: int, tax_rate_bps: int) -> int:
    if not tax_rate_bps:
        return 0
    tax = Decimal(dpp) * Decimal(tax_rate_bps) / Decimal(10000)
    return int(tax.to_integral_value(rounding=ROUND_HALF_UP))


def payment_status_for(total: int, paid: int) -> str:
    if total - paid <= 0:
        return PAYMENT_STATUS_PAID
    if paid > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_UNPAID


def _price_line(idx: int, raw: dict, tenant_id: int, tax_rate_bps: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{idx}] must be an object")
    variant_id = _require_amount(raw.get("variant_id"), f"items[{idx}].variant_id", minimum=1)
    qty = _require_amount(raw.get("qty"), f"items[{idx}].qty", minimum=1)
    discount = _require_amount(raw.get("discount_amount", 0) or 0, f"items[{idx}].discount_amount")

    variant = require_variant(tenant_id, variant_id)
    if not variant.product.is_active:
        raise ValidationError(f"Product for variant {variant.id} is inactive", details={"variant_id": variant.id})

    gross = variant.price * qty
    if discount > gross:
        raise ValidationError(
            f"items[{idx}].discount_amount exceeds line amount",
            details={"variant_id": variant.id, "discount_amount": discount, "line_amount": gross},
        )
    dpp = gross - discount
    tax = compute_tax(dpp, tax_rate_bps)
    return {
        "variant": variant,
        "qty": qty,
        "unit_price": variant.price,
        "discount_amount": discount,
        "tax_amount": tax,
        "subtotal": dpp + tax,
    }


def _queue_decrements(source, qty: int) -> list[tuple]:
    """(stock_row, base_qty, component_variant_id) for every row a line draws from."""
    if isinstance(source, SimpleSource):
        return [(source.stock, source.base_qty(qty), source.variant_id)]
    if isinstance(source, BundleSource):
        return [(c.stock, c.base_qty(qty), c.component_variant_id) for c in source.components]
    return []


def _cost_snapshot(source) -> int:
    if isinstance(source, SimpleSource):
        batch = ledger.latest_batch(source.stock.id)
        return batch.purchase_price * source.multiplier if batch else 0
    return 0


def create_transaction(
    *,
    tenant_id: int,
    user_id: int,
    store_id: int,
    items: list[dict],
    total_amount: int,
    paid_amount: int,
    payment_method: str,
    customer_id: str | None = None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    metadata: dict | None = None,
) -> dict:
    """
    Post a sale atomically.

    items: [{variant_id, qty, discount_amount}]; a client "price" is ignored.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    _require_amount(total_amount, "total_amount")
    _require_amount(paid_amount, "paid_amount")
    if not payment_method or not str(payment_method).strip():
        raise ValidationError("payment_method is required")
    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")

    tolerance = int(current_app.config.get("TOTAL_TOLERANCE", 2))

    def _op():
        store = require_store(tenant_id, store_id)
        shift = find_open_shift(tenant_id=tenant_id, user_id=user_id, store_id=store.id)
        if shift is None:
            raise ValidationError(
                "No open shift for this cashier at this store",
                details={"store_id": store.id, "user_id": user_id},
            )

        lines = []
        for idx, raw in enumerate(items):
            line = _price_line(idx, raw, tenant_id, store.tax_rate_bps or 0)
            line["source"] = resolve_stock_source(tenant_id, line["variant"].id, store.id, lock=True)
            line["decrements"] = _queue_decrements(line["source"], line["qty"])
            lines.append(line)

        # Validate everything before the first write
        needed = {}
        rows = {}
        for line in lines:
            for stock, base_qty, component_id in line["decrements"]:
                needed[stock.id] = needed.get(stock.id, 0) + base_qty
                rows[stock.id] = (stock, component_id)
        for stock_id, total_needed in needed.items():
            stock, component_id = rows[stock_id]
            if stock.stock_qty < total_needed:
                raise InsufficientStockError(
                    f"Insufficient stock for variant {component_id}",
                    details={
                        "variant_id": component_id,
                        "store_id": store.id,
                        "available": str(stock.stock_qty),
                        "requested": str(total_needed),
                    },
                )

        server_total = sum(line["subtotal"] for line in lines)
        if abs(server_total - total_amount) > tolerance:
            raise IntegrityViolationError(
                "Total mismatch between client and server",
                details={"server_total": server_total, "declared_total": total_amount},
            )

        txn = Transaction(
            tenant_id=tenant_id,
            store_id=store.id,
            shift_id=shift.id,
            created_by=user_id,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            total_amount=server_total,
            paid_amount=paid_amount,
            balance_due=max(server_total - paid_amount, 0),
            payment_method=str(payment_method).strip().upper(),
            payment_status=payment_status_for(server_total, paid_amount),
            meta=dict(metadata or {}),
        )
        db.session.add(txn)
        db.session.flush()

        # Costs are read before batches are consumed
        for line in lines:
            line["cost_price"] = _cost_snapshot(line["source"])

        # Decrement in ascending stock id to keep lock order stable
        movements = []
        for line_idx, line in enumerate(lines):
            for stock, base_qty, _ in line["decrements"]:
                movements.append((stock.id, line_idx, stock, base_qty))
        movements.sort(key=lambda m: (m[0], m[1]))
        for _, line_idx, stock, base_qty in movements:
            ledger.decrement_row(
                stock,
                qty=base_qty,
                log_type=LOG_TYPE_SALE,
                note=f"Sale #{txn.id}: {lines[line_idx]['variant'].name}",
                reference_id=str(txn.id),
            )

        for line in lines:
            item = TransactionItem(
                transaction_id=txn.id,
                variant_id=line["variant"].id,
                qty=line["qty"],
                unit_price=line["unit_price"],
                cost_price=line["cost_price"],
                discount_amount=line["discount_amount"],
                tax_amount=line["tax_amount"],
                subtotal=line["subtotal"],
            )
            db.session.add(item)
            for stock, base_qty, _ in line["decrements"]:
                db.session.add(TransactionItemStock(transaction_item=item, inventory_stock_id=stock.id, qty=base_qty))
        db.session.flush()

        current_app.logger.info(
            "Transaction %s posted: tenant=%s store=%s total=%s status=%s",
            txn.id, tenant_id, store.id, server_total, txn.payment_status,
        )
        return _transaction_payload(txn)

    return run_atomic(_op)


def _transaction_payload(txn: Transaction) -> dict:
    db.session.expire(txn, ["items"])
    data = txn.to_dict()
    data["items"] = [i.to_dict() for i in txn.items]
    return data


def _get_transaction(tenant_id: int, transaction_id: int, *, lock: bool = False) -> Transaction:
    query = db.session.query(Transaction).filter_by(id=transaction_id, tenant_id=tenant_id)
    if lock:
        query = lock_for_update(query)
    txn = query.first()
    if txn is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
    return txn


def get_transaction(*, tenant_id: int, transaction_id: int) -> dict:
    return _transaction_payload(_get_transaction(tenant_id, transaction_id))


def get_receipt(*, tenant_id: int, transaction_id: int) -> dict:
    """Receipt data (formatting is left to the client)."""
    txn = _get_transaction(tenant_id, transaction_id)
    store = txn.store
    meta = txn.meta or {}

    items = []
    for item in txn.items:
        variant = item.variant
        items.append({
            "variant_id": variant.id,
            "name": variant.name,
            "sku": variant.sku,
            "unit_name": variant.unit_name,
            "qty": item.qty,
            "unit_price": item.unit_price,
            "discount_amount": item.discount_amount,
            "tax_amount": item.tax_amount,
            "subtotal": item.subtotal,
        })

    receipt = {
        "header": {
            "invoice_number": txn.invoice_number,
            "transaction_id": txn.id,
            "transaction_date": to_utc_z(txn.transaction_date),
            "store": {"id": store.id, "name": store.name, "address": store.address, "phone": store.phone},
            "cashier_id": txn.created_by,
            "payment_status": txn.payment_status,
        },
        "customer": None,
        "items": items,
        "summary": {
            "subtotal": sum(i.unit_price * i.qty for i in txn.items),
            "discount_total": sum(i.discount_amount for i in txn.items),
            "tax_total": sum(i.tax_amount for i in txn.items),
            "total_amount": txn.total_amount,
            "paid_amount": txn.paid_amount,
            "balance_due": txn.balance_due,
            "change": max(txn.paid_amount - txn.total_amount, 0),
            "payment_method": txn.payment_method,
        },
    }
    if txn.customer_id or txn.customer_name:
        receipt["customer"] = {"id": txn.customer_id, "name": txn.customer_name, "phone": txn.customer_phone}
    if txn.is_void:
        receipt["void"] = {
            "reason": meta.get("void_reason"),
            "void_at": meta.get("void_at"),
            "void_by": meta.get("void_by"),
        }
    return receipt


def _restore_without_snapshot(txn: Transaction, item: TransactionItem, note: str) -> None:
    """Older lines have no stock snapshot; resolve the unit graph as it is now."""
    variant = db.session.get(ProductVariant, item.variant_id)
    product_type = variant.product.type
    if product_type == PRODUCT_TYPE_DIGITAL:
        return
    if product_type == PRODUCT_TYPE_PARCEL:
        targets = [
            (walk_to_base(link.component_variant).id, item.qty * link.qty * link.component_variant.multiplier)
            for link in variant.bundle_components
        ]
    else:
        targets = [(walk_to_base(variant).id, item.qty * variant.multiplier)]
    for base_id, base_qty in targets:
        ledger.increment(
            variant_id=base_id,
            store_id=txn.store_id,
            qty=base_qty,
            log_type=LOG_TYPE_VOID_RESTORE,
            note=note,
            reference_id=str(txn.id),
        )


def void_transaction(*, tenant_id: int, transaction_id: int, user_id: int, reason: str) -> dict:
    """
    Reverse a posted sale.

    Restores every stock movement recorded at sale time (VOID_RESTORE),
    marks the header VOID and stamps who, when and why into metadata.
    Items and amounts are left as posted.
    """
    min_length = int(current_app.config.get("VOID_REASON_MIN_LENGTH", 5))
    reason = (reason or "").strip()
    if len(reason) < min_length:
        raise ValidationError(f"reason must be at least {min_length} characters")

    def _op():
        txn = _get_transaction(tenant_id, transaction_id, lock=True)
        if txn.is_void:
            raise ConflictError(f"Transaction {txn.id} is already void", details={"transaction_id": txn.id})

        note = f"Void #{txn.id}: {reason}"
        snapshots = []
        for item in txn.items:
            if item.stock_movements:
                snapshots.extend(item.stock_movements)
            else:
                _restore_without_snapshot(txn, item, note)

        for movement in sorted(snapshots, key=lambda m: (m.inventory_stock_id, m.id)):
            stock = ledger.lock_stock_row(movement.inventory_stock_id)
            ledger.increment_row(
                stock,
                qty=movement.qty,
                log_type=LOG_TYPE_VOID_RESTORE,
                note=note,
                reference_id=str(txn.id),
            )

        meta = dict(txn.meta or {})
        meta.update({"void_reason": reason, "void_at": to_utc_z(utcnow()), "void_by": user_id})
        txn.meta = meta
        txn.payment_status = PAYMENT_STATUS_VOID
        db.session.flush()

        current_app.logger.info("Transaction %s voided by user %s (tenant=%s)", txn.id, user_id, tenant_id)
        return _transaction_payload(txn)

    return run_atomic(_op)


def _debt_query(tenant_id: int, customer_id: str | None, store_id: int | None):
    query = db.session.query(Transaction).filter(
        Transaction.tenant_id == tenant_id,
        Transaction.balance_due > 0,
        Transaction.payment_status != PAYMENT_STATUS_VOID,
    )
    if customer_id:
        query = query.filter(Transaction.customer_id == customer_id)
    if store_id is not None:
        require_store(tenant_id, store_id)
        query = query.filter(Transaction.store_id == store_id)
    return query


def list_debts(
    *,
    tenant_id: int,
    customer_id: str | None = None,
    store_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Open receivables: unpaid or partially paid, not void."""
    query = _debt_query(tenant_id, customer_id, store_id)
    total_debt = query.with_entities(func.coalesce(func.sum(Transaction.balance_due), 0)).scalar()
    result = paginate(
        query.order_by(Transaction.transaction_date.asc(), Transaction.id.asc()),
        page=page,
        per_page=per_page,
        serialize=lambda t: t.to_dict(),
    )
    result["total_debt_amount"] = int(total_debt or 0)
    return result


def pay_debt(
    *,
    tenant_id: int,
    transaction_id: int,
    amount: int,
    payment_method: str = "CASH",
    notes: str | None = None,
) -> dict:
    """Record a repayment against an open balance."""
    _require_amount(amount, "amount", minimum=1)

    def _op():
        txn = _get_transaction(tenant_id, transaction_id, lock=True)
        if txn.is_void:
            raise ConflictError(f"Transaction {txn.id} is void", details={"transaction_id": txn.id})
        if txn.balance_due <= 0:
            raise ValidationError(f"Transaction {txn.id} is already settled", details={"transaction_id": txn.id})
        if amount > txn.balance_due:
            raise ValidationError(
                "Payment exceeds remaining balance",
                details={"balance_due": txn.balance_due, "amount": amount},
            )

        txn.paid_amount = txn.paid_amount + amount
        txn.balance_due = txn.balance_due - amount
        txn.payment_status = PAYMENT_STATUS_PAID if txn.balance_due == 0 else PAYMENT_STATUS_PARTIAL

        meta = dict(txn.meta or {})
        payments = list(meta.get("debt_payments") or [])
        payments.append({
            "amount": amount,
            "payment_method": (payment_method or "CASH").upper(),
            "notes": notes,
            "paid_at": to_utc_z(utcnow()),
        })
        meta["debt_payments"] = payments
        txn.meta = meta
        db.session.flush()

        current_app.logger.info(
            "Debt payment on transaction %s: amount=%s remaining=%s",
            txn.id, amount, txn.balance_due,
        )
        return txn.to_dict()

    return run_atomic(_op)
