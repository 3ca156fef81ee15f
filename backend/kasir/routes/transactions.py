# backend/kasir/routes/transactions.py
"""
Transaction routes: posting, receipts, voids and customer debts.

Prices sent by the client are ignored; the server prices every line and
only checks the declared total against its own within TOTAL_TOLERANCE.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..validation import (
    PayloadPolicy,
    validate_payload,
    parse_int_arg,
    FIELD_INT,
    FIELD_STR,
    FIELD_LIST,
    FIELD_DICT,
)
from ..decorators import require_context, resolve_store_id
from ..services import transaction_service


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

CREATE_POLICY = PayloadPolicy(
    fields={
        "store_id": FIELD_INT,
        "items": FIELD_LIST,
        "total_amount": FIELD_INT,
        "paid_amount": FIELD_INT,
        "payment_method": FIELD_STR,
        "customer_id": FIELD_STR,
        "customer_name": FIELD_STR,
        "customer_phone": FIELD_STR,
        "metadata": FIELD_DICT,
    },
    required={"items", "total_amount", "paid_amount", "payment_method"},
    max_lengths={"payment_method": 32, "customer_id": 64, "customer_name": 255, "customer_phone": 32},
)

VOID_POLICY = PayloadPolicy(fields={"reason": FIELD_STR}, required={"reason"}, max_lengths={"reason": 500})

PAY_DEBT_POLICY = PayloadPolicy(
    fields={"amount": FIELD_INT, "payment_method": FIELD_STR, "notes": FIELD_STR},
    required={"amount"},
    max_lengths={"payment_method": 32, "notes": 255},
)


def _error(e: DomainError):
    return jsonify(e.to_dict()), e.status_code


@transactions_bp.post("")
@require_context
def create_transaction_route():
    """
    Post a sale.

    Body: {"items": [{"variant_id": 1, "qty": 2, "discount_amount": 0}],
           "total_amount": 24000, "paid_amount": 25000, "payment_method": "CASH"}
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=CREATE_POLICY)
        result = transaction_service.create_transaction(
            tenant_id=g.tenant_id,
            user_id=g.user_id,
            store_id=resolve_store_id(patch),
            items=patch["items"],
            total_amount=patch["total_amount"],
            paid_amount=patch["paid_amount"],
            payment_method=patch["payment_method"],
            customer_id=patch.get("customer_id"),
            customer_name=patch.get("customer_name"),
            customer_phone=patch.get("customer_phone"),
            metadata=patch.get("metadata"),
        )
        return jsonify({"transaction": result}), 201
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/debts")
@require_context
def list_debts_route():
    try:
        result = transaction_service.list_debts(
            tenant_id=g.tenant_id,
            customer_id=request.args.get("customer_id"),
            store_id=parse_int_arg(request.args, "store_id"),
            page=parse_int_arg(request.args, "page"),
            per_page=parse_int_arg(request.args, "per_page"),
        )
        return jsonify(result), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list debts")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>")
@require_context
def get_transaction_route(transaction_id: int):
    try:
        result = transaction_service.get_transaction(tenant_id=g.tenant_id, transaction_id=transaction_id)
        return jsonify({"transaction": result}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>/receipt")
@require_context
def receipt_route(transaction_id: int):
    try:
        return jsonify(transaction_service.get_receipt(tenant_id=g.tenant_id, transaction_id=transaction_id)), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to build receipt")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<int:transaction_id>/void")
@require_context
def void_route(transaction_id: int):
    """Void a posted transaction and restore its stock."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=VOID_POLICY)
        result = transaction_service.void_transaction(
            tenant_id=g.tenant_id,
            transaction_id=transaction_id,
            user_id=g.user_id,
            reason=patch["reason"],
        )
        return jsonify({"transaction": result}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to void transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<int:transaction_id>/pay-debt")
@require_context
def pay_debt_route(transaction_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=PAY_DEBT_POLICY)
        result = transaction_service.pay_debt(
            tenant_id=g.tenant_id,
            transaction_id=transaction_id,
            amount=patch["amount"],
            payment_method=patch.get("payment_method") or "CASH",
            notes=patch.get("notes"),
        )
        return jsonify({"transaction": result}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to record debt payment")
        return jsonify({"error": "Internal server error"}), 500
