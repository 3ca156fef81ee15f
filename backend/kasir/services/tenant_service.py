"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every lookup of tenant-owned data goes through a helper here, and every
helper takes tenant_id as a required argument. A row owned by another
tenant is reported exactly like a missing row (NotFoundError) so callers
cannot probe for other tenants' ids.

USAGE:
    from kasir.services.tenant_service import require_store, require_variant

    store = require_store(tenant_id, store_id)
    variant = require_variant(tenant_id, variant_id)
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError
from ..models import Tenant, Store, Product, ProductVariant
from .concurrency import lock_for_update


def require_active_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant or not tenant.is_active:
        raise NotFoundError("Tenant not found")
    return tenant


def require_store(tenant_id: int, store_id: int) -> Store:
    """
    Validate that a store belongs to the tenant.

    Call this before any operation that uses a store_id from client input.
    """
    store = db.session.query(Store).filter_by(id=store_id).first()

    if not store:
        raise NotFoundError("Store not found", details={"store_id": store_id})

    if store.tenant_id != tenant_id:
        _log_cross_tenant_attempt("store", store_id, tenant_id)
        raise NotFoundError("Store not found", details={"store_id": store_id})

    return store


def variant_query(tenant_id: int):
    """Base query for variants owned by tenant_id (via their product)."""
    return (
        db.session.query(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(Product.tenant_id == tenant_id)
    )


def require_variant(tenant_id: int, variant_id: int, *, lock: bool = False) -> ProductVariant:
    query = variant_query(tenant_id).filter(ProductVariant.id == variant_id)
    if lock:
        query = lock_for_update(query)
    variant = query.first()
    if variant is None:
        raise NotFoundError(f"Variant {variant_id} not found", details={"variant_id": variant_id})
    return variant


def require_product(tenant_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _log_cross_tenant_attempt(resource: str, resource_id: int, tenant_id: int) -> None:
    current_app.logger.warning(
        "Cross-tenant access denied: tenant=%s requested %s=%s",
        tenant_id,
        resource,
        resource_id,
    )
