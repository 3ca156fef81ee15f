# backend/kasir/routes/catalog.py
"""
Catalog routes for products, variants and the unit graph.

Only the writes that shape stock resolution live here (variant parents,
parcel components). Category/customer/supplier management is served
elsewhere.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..validation import PayloadPolicy, validate_payload, FIELD_INT, FIELD_STR, FIELD_LIST
from ..decorators import require_context
from ..services import catalog_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")

PRODUCT_POLICY = PayloadPolicy(
    fields={"name": FIELD_STR, "type": FIELD_STR, "category_id": FIELD_INT, "variants": FIELD_LIST},
    required={"name", "variants"},
    max_lengths={"name": 255, "type": 16},
)

VARIANT_POLICY = PayloadPolicy(
    fields={
        "name": FIELD_STR,
        "sku": FIELD_STR,
        "unit_name": FIELD_STR,
        "multiplier": FIELD_INT,
        "price": FIELD_INT,
        "parent_variant_id": FIELD_INT,
    },
    required={"name", "sku", "multiplier"},
    max_lengths={"name": 255, "sku": 64, "unit_name": 32},
)

PARENT_POLICY = PayloadPolicy(fields={"parent_variant_id": FIELD_INT}, required={"parent_variant_id"})

COMPONENTS_POLICY = PayloadPolicy(fields={"components": FIELD_LIST}, required={"components"})


@catalog_bp.post("/products")
@require_context
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=PRODUCT_POLICY)
        product = catalog_service.create_product(
            tenant_id=g.tenant_id,
            name=patch["name"],
            product_type=(patch.get("type") or "PHYSICAL").upper(),
            category_id=patch.get("category_id"),
            variants=patch["variants"],
        )
        return jsonify({"product": product}), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products/<int:product_id>")
@require_context
def get_product_route(product_id: int):
    try:
        return jsonify({"product": catalog_service.get_product(tenant_id=g.tenant_id, product_id=product_id)}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/products/<int:product_id>/variants")
@require_context
def add_variant_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=VARIANT_POLICY)
        variant = catalog_service.add_variant(
            tenant_id=g.tenant_id,
            product_id=product_id,
            name=patch["name"],
            sku=patch["sku"],
            multiplier=patch["multiplier"],
            price=patch.get("price") or 0,
            unit_name=patch.get("unit_name") or "pcs",
            parent_variant_id=patch.get("parent_variant_id"),
        )
        return jsonify({"variant": variant}), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add variant")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/variants")
@require_context
def list_variants_route():
    try:
        variants = catalog_service.list_variants(tenant_id=g.tenant_id, product_type=request.args.get("type"))
        return jsonify({"items": variants, "count": len(variants)}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list variants")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/variants/<int:variant_id>/parent")
@require_context
def set_parent_route(variant_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=PARENT_POLICY)
        variant = catalog_service.set_variant_parent(
            tenant_id=g.tenant_id,
            variant_id=variant_id,
            parent_variant_id=patch["parent_variant_id"],
        )
        return jsonify({"variant": variant}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set variant parent")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/variants/<int:variant_id>/components")
@require_context
def set_components_route(variant_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(payload=payload, policy=COMPONENTS_POLICY)
        result = catalog_service.set_bundle_components(
            tenant_id=g.tenant_id,
            parcel_variant_id=variant_id,
            components=patch["components"],
        )
        return jsonify(result), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set parcel components")
        return jsonify({"error": "Internal server error"}), 500
