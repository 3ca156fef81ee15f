# backend/kasir/routes/inventory.py
"""
Inventory routes: stock-in, adjustment, transfer, stock-out, opname and
stock reads.

All routes require tenant context (require_context). Quantities in request
bodies are in the variant's own unit; stock quantities in responses are
base units serialized as strings.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..validation import (
    PayloadPolicy,
    validate_payload,
    parse_int_arg,
    FIELD_INT,
    FIELD_STR,
    FIELD_DATE,
    FIELD_LIST,
)
from ..decorators import require_context, resolve_store_id
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

STOCK_IN_POLICY = PayloadPolicy(
    fields={
        "store_id": FIELD_INT,
        "variant_id": FIELD_INT,
        "qty": FIELD_INT,
        "purchase_price": FIELD_INT,
        "reference_id": FIELD_STR,
        "supplier_id": FIELD_STR,
        "expiry_date": FIELD_DATE,
        "notes": FIELD_STR,
    },
    required={"variant_id", "qty", "purchase_price"},
    max_lengths={"reference_id": 64, "supplier_id": 64, "notes": 500},
)

ADJUST_POLICY = PayloadPolicy(
    fields={
        "store_id": FIELD_INT,
        "variant_id": FIELD_INT,
        "adjustment_qty": FIELD_INT,
        "reason": FIELD_STR,
        "adjustment_type": FIELD_STR,
        "reference_id": FIELD_STR,
    },
    required={"variant_id", "adjustment_qty", "reason"},
    max_lengths={"reason": 400, "adjustment_type": 32, "reference_id": 64},
)

TRANSFER_POLICY = PayloadPolicy(
    fields={
        "from_store_id": FIELD_INT,
        "to_store_id": FIELD_INT,
        "variant_id": FIELD_INT,
        "qty": FIELD_INT,
        "reference_id": FIELD_STR,
        "notes": FIELD_STR,
    },
    required={"from_store_id", "to_store_id", "variant_id", "qty"},
    max_lengths={"reference_id": 64, "notes": 400},
)

STOCK_OUT_POLICY = PayloadPolicy(
    fields={
        "store_id": FIELD_INT,
        "variant_id": FIELD_INT,
        "qty": FIELD_INT,
        "type": FIELD_STR,
        "reference_id": FIELD_STR,
        "notes": FIELD_STR,
    },
    required={"variant_id", "qty", "type"},
    max_lengths={"reference_id": 64, "notes": 500},
)

OPNAME_POLICY = PayloadPolicy(
    fields={
        "store_id": FIELD_INT,
        "auditor_name": FIELD_STR,
        "items": FIELD_LIST,
    },
    required={"auditor_name", "items"},
    max_lengths={"auditor_name": 120},
)


def _error(e: DomainError):
    return jsonify(e.to_dict()), e.status_code


def _page_args():
    return {
        "page": parse_int_arg(request.args, "page"),
        "per_page": parse_int_arg(request.args, "per_page"),
    }


@inventory_bp.get("")
@require_context
def list_stock_route():
    try:
        result = inventory_service.list_stock(tenant_id=g.tenant_id, store_id=resolve_store_id(), **_page_args())
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/stock-in")
@require_context
def stock_in_route():
    """Receive stock; may reprice the variant when the purchase cost rose."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=STOCK_IN_POLICY)
        result = inventory_service.stock_in(
            tenant_id=g.tenant_id,
            store_id=resolve_store_id(patch),
            variant_id=patch["variant_id"],
            qty=patch["qty"],
            purchase_price=patch["purchase_price"],
            reference_id=patch.get("reference_id"),
            supplier_id=patch.get("supplier_id"),
            expiry_date=patch.get("expiry_date"),
            notes=patch.get("notes"),
        )
        return jsonify(result), 201
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to stock in")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjust")
@require_context
def adjust_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=ADJUST_POLICY)
        result = inventory_service.adjust_stock(
            tenant_id=g.tenant_id,
            store_id=resolve_store_id(patch),
            variant_id=patch["variant_id"],
            adjustment_qty=patch["adjustment_qty"],
            reason=patch["reason"],
            adjustment_type=patch.get("adjustment_type"),
            reference_id=patch.get("reference_id"),
        )
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/transfer")
@require_context
def transfer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=TRANSFER_POLICY)
        result = inventory_service.transfer_stock(
            tenant_id=g.tenant_id,
            from_store_id=patch["from_store_id"],
            to_store_id=patch["to_store_id"],
            variant_id=patch["variant_id"],
            qty=patch["qty"],
            reference_id=patch.get("reference_id"),
            notes=patch.get("notes"),
        )
        return jsonify(result), 201
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to transfer stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/stock-out")
@require_context
def stock_out_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=STOCK_OUT_POLICY)
        result = inventory_service.stock_out(
            tenant_id=g.tenant_id,
            store_id=resolve_store_id(patch),
            variant_id=patch["variant_id"],
            qty=patch["qty"],
            out_type=patch["type"].upper(),
            reference_id=patch.get("reference_id"),
            notes=patch.get("notes"),
        )
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to record stock out")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/opname")
@require_context
def opname_route():
    """
    Finalize a physical count.

    Body: {"auditor_name": "...", "items": [{"variant_id": 1, "actual_qty": 7, "note": "..."}]}
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=OPNAME_POLICY)
        result = inventory_service.finalize_opname(
            tenant_id=g.tenant_id,
            store_id=resolve_store_id(patch),
            auditor_name=patch["auditor_name"],
            items=patch["items"],
        )
        return jsonify(result), 201
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to finalize opname")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/opname/products")
@require_context
def opname_products_route():
    try:
        result = inventory_service.get_products_for_opname(
            tenant_id=g.tenant_id,
            store_id=resolve_store_id(),
            search=request.args.get("search"),
            **_page_args(),
        )
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list opname products")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/opname/history")
@require_context
def opname_history_route():
    try:
        store_id = parse_int_arg(request.args, "store_id", default=g.store_id)
        result = inventory_service.get_opname_history(tenant_id=g.tenant_id, store_id=store_id, **_page_args())
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load opname history")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/opname/<reference_id>")
@require_context
def opname_detail_route(reference_id: str):
    try:
        return jsonify(inventory_service.get_opname_detail(tenant_id=g.tenant_id, reference_id=reference_id)), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load opname detail")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/variants/<int:variant_id>/history")
@require_context
def variant_history_route(variant_id: int):
    try:
        result = inventory_service.get_variant_history(
            tenant_id=g.tenant_id,
            variant_id=variant_id,
            store_id=resolve_store_id(),
            **_page_args(),
        )
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load variant history")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/variants/<int:variant_id>/sellable")
@require_context
def sellable_route(variant_id: int):
    try:
        result = inventory_service.get_sellable_quantity(
            tenant_id=g.tenant_id,
            variant_id=variant_id,
            store_id=resolve_store_id(),
        )
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to compute sellable quantity")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/logs")
@require_context
def logs_route():
    try:
        result = inventory_service.get_logs(
            tenant_id=g.tenant_id,
            variant_id=parse_int_arg(request.args, "variant_id"),
            store_id=parse_int_arg(request.args, "store_id"),
            log_type=request.args.get("type"),
            **_page_args(),
        )
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load inventory logs")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
@require_context
def low_stock_route():
    try:
        result = inventory_service.find_low_stock(
            tenant_id=g.tenant_id,
            store_id=resolve_store_id(),
            threshold=parse_int_arg(request.args, "threshold"),
            **_page_args(),
        )
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load low stock")
        return jsonify({"error": "Internal server error"}), 500
