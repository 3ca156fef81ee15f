# backend/kasir/routes/shifts.py
"""Cashier shift routes."""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..validation import PayloadPolicy, validate_payload, FIELD_INT, FIELD_STR
from ..decorators import require_context, resolve_store_id
from ..services import shift_service


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")

OPEN_POLICY = PayloadPolicy(
    fields={"store_id": FIELD_INT, "starting_cash": FIELD_INT, "notes": FIELD_STR},
)

CLOSE_POLICY = PayloadPolicy(
    fields={"closing_cash": FIELD_INT, "notes": FIELD_STR},
    required={"closing_cash"},
)


@shifts_bp.post("/open")
@require_context
def open_shift_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=OPEN_POLICY)
        shift = shift_service.open_shift(
            tenant_id=g.tenant_id,
            store_id=resolve_store_id(patch),
            user_id=g.user_id,
            starting_cash=patch.get("starting_cash") or 0,
            notes=patch.get("notes"),
        )
        return jsonify({"shift": shift}), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/current")
@require_context
def current_shift_route():
    try:
        shift = shift_service.get_current_shift(tenant_id=g.tenant_id, user_id=g.user_id, store_id=g.store_id)
        return jsonify({"shift": shift}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load current shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/close")
@require_context
def close_shift_route(shift_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=CLOSE_POLICY)
        shift = shift_service.close_shift(
            tenant_id=g.tenant_id,
            shift_id=shift_id,
            user_id=g.user_id,
            closing_cash=patch["closing_cash"],
            notes=patch.get("notes"),
        )
        return jsonify({"shift": shift}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500
