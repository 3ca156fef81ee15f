# Overview: Service-layer operations for the product catalog; encapsulates business logic and database work.

"""
Catalog Service: products, variants and the unit graph

Writes that shape the unit graph live here so the resolver can trust it:
- A PHYSICAL product has exactly one base variant (multiplier 1, no parent).
- Derived variants hang off a parent of the same product with a larger
  multiplier; the chain always ends at the base variant and never loops.
- PARCEL variants have no parent and are defined by their components,
  which must be PHYSICAL variants of the same tenant drawing on distinct
  base stock.
- DIGITAL variants have no parent and no stock.

SKU is unique per tenant.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ValidationError, ConflictError, NotFoundError
from ..models import BundleComponent, Category, Product, ProductVariant
from ..models.catalog import (
    PRODUCT_TYPE_PARCEL,
    PRODUCT_TYPE_PHYSICAL,
    PRODUCT_TYPES,
)
from .concurrency import run_atomic
from .tenant_service import require_active_tenant, require_product, require_variant
from .unit_graph_service import UnitGraphError, walk_to_base


def _require_sku_free(tenant_id: int, sku: str) -> None:
    existing = db.session.query(ProductVariant.id).filter_by(tenant_id=tenant_id, sku=sku).first()
    if existing:
        raise ConflictError(f"SKU {sku} already exists", details={"sku": sku})


def _flush_or_conflict(message: str) -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictError(message) from exc


def _require_larger_multiplier(multiplier: int, parent: ProductVariant, sku: str) -> None:
    if multiplier <= parent.multiplier:
        raise ValidationError(
            f"Variant {sku} must hold more base units than its parent ({parent.multiplier})",
            details={"sku": sku, "multiplier": multiplier, "parent_multiplier": parent.multiplier},
        )


def _clean_variant_entry(entry: dict, idx: int) -> dict:
    if not isinstance(entry, dict):
        raise ValidationError(f"variants[{idx}] must be an object")
    name = (entry.get("name") or "").strip()
    sku = (entry.get("sku") or "").strip()
    if not name:
        raise ValidationError(f"variants[{idx}].name is required")
    if not sku:
        raise ValidationError(f"variants[{idx}].sku is required")

    multiplier = entry.get("multiplier", 1)
    price = entry.get("price", 0)
    if not isinstance(multiplier, int) or isinstance(multiplier, bool) or multiplier < 1:
        raise ValidationError(f"variants[{idx}].multiplier must be an integer >= 1")
    if not isinstance(price, int) or isinstance(price, bool) or price < 0:
        raise ValidationError(f"variants[{idx}].price must be a non-negative integer")

    return {
        "name": name,
        "sku": sku,
        "unit_name": (entry.get("unit_name") or "pcs").strip(),
        "multiplier": multiplier,
        "price": price,
        "parent_sku": entry.get("parent_sku"),
        "components": entry.get("components") or [],
    }


def _order_by_parent(entries: list[dict]) -> list[dict]:
    """Parents before children; raises on unknown parents and loops."""
    by_sku = {s["sku"]: s for s in entries}
    ordered = []
    placed = set()
    visiting = set()

    def _place(entry):
        if entry["sku"] in placed:
            return
        if entry["sku"] in visiting:
            raise UnitGraphError(f"Variant {entry['sku']} has a cyclic parent chain", details={"sku": entry["sku"]})
        visiting.add(entry["sku"])
        parent_sku = entry["parent_sku"]
        if parent_sku:
            if parent_sku not in by_sku:
                raise ValidationError(f"Unknown parent_sku {parent_sku}", details={"sku": entry["sku"]})
            _place(by_sku[parent_sku])
        visiting.discard(entry["sku"])
        placed.add(entry["sku"])
        ordered.append(entry)

    for entry in entries:
        _place(entry)
    return ordered


def _component_links(tenant_id: int, parcel: ProductVariant, components: list) -> list[BundleComponent]:
    if not isinstance(components, list) or not components:
        raise ValidationError(
            f"Parcel variant {parcel.sku} needs at least one component",
            details={"sku": parcel.sku},
        )
    links = []
    seen_bases = set()
    for idx, comp in enumerate(components):
        if not isinstance(comp, dict):
            raise ValidationError(f"components[{idx}] must be an object")
        qty = comp.get("qty", 1)
        if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
            raise ValidationError(f"components[{idx}].qty must be an integer >= 1")

        if comp.get("variant_id") is not None:
            component = require_variant(tenant_id, comp["variant_id"])
        elif comp.get("sku"):
            component = db.session.query(ProductVariant).filter_by(tenant_id=tenant_id, sku=comp["sku"]).first()
            if component is None:
                raise NotFoundError(f"Variant {comp['sku']} not found", details={"sku": comp["sku"]})
        else:
            raise ValidationError(f"components[{idx}] needs variant_id or sku")

        if component.product.type != PRODUCT_TYPE_PHYSICAL:
            raise ValidationError(
                "Parcel components must be physical variants",
                details={"component_variant_id": component.id},
            )
        # Two units of one product share a stock row
        base = walk_to_base(component)
        if base.id in seen_bases:
            raise ValidationError(
                f"Component {component.id} draws on stock already listed in this parcel",
                details={"component_variant_id": component.id, "base_variant_id": base.id},
            )
        seen_bases.add(base.id)
        links.append(BundleComponent(parcel_variant_id=parcel.id, component_variant_id=component.id, qty=qty))
    return links


def create_product(
    *,
    tenant_id: int,
    name: str,
    product_type: str = PRODUCT_TYPE_PHYSICAL,
    category_id: int | None = None,
    variants: list[dict],
) -> dict:
    """
    Create a product with its variants in one unit of work.

    variants: [{name, sku, unit_name, multiplier, price, parent_sku, components}]
    parent_sku references another variant in the same payload; components
    ([{variant_id | sku, qty}]) are only read for parcels.
    """
    if not name or not str(name).strip():
        raise ValidationError("name is required")
    if product_type not in PRODUCT_TYPES:
        raise ValidationError(f"type must be one of {', '.join(PRODUCT_TYPES)}")
    if not isinstance(variants, list) or not variants:
        raise ValidationError("variants must be a non-empty list")

    entries = [_clean_variant_entry(v, i) for i, v in enumerate(variants)]
    skus = [s["sku"] for s in entries]
    if len(set(skus)) != len(skus):
        raise ConflictError("Duplicate SKU in payload")

    if product_type == PRODUCT_TYPE_PHYSICAL:
        bases = [s for s in entries if not s["parent_sku"]]
        if len(bases) != 1:
            raise ValidationError("A physical product needs exactly one base variant")
        if bases[0]["multiplier"] != 1:
            raise ValidationError("The base variant must have multiplier 1")
    else:
        if any(s["parent_sku"] for s in entries):
            raise ValidationError(f"{product_type} variants cannot have a parent")

    def _op():
        require_active_tenant(tenant_id)
        if category_id is not None:
            category = db.session.query(Category).filter_by(id=category_id, tenant_id=tenant_id).first()
            if category is None:
                raise NotFoundError("Category not found", details={"category_id": category_id})
        for sku in skus:
            _require_sku_free(tenant_id, sku)

        product = Product(tenant_id=tenant_id, category_id=category_id, type=product_type, name=name.strip())
        db.session.add(product)
        db.session.flush()

        created = {}
        for entry in _order_by_parent(entries):
            parent = created.get(entry["parent_sku"]) if entry["parent_sku"] else None
            if parent is not None:
                _require_larger_multiplier(entry["multiplier"], parent, entry["sku"])
            variant = ProductVariant(
                product_id=product.id,
                tenant_id=tenant_id,
                name=entry["name"],
                sku=entry["sku"],
                unit_name=entry["unit_name"],
                multiplier=entry["multiplier"] if product_type == PRODUCT_TYPE_PHYSICAL else 1,
                price=entry["price"],
                parent_variant_id=parent.id if parent else None,
                is_base_unit=product_type == PRODUCT_TYPE_PHYSICAL and parent is None,
            )
            db.session.add(variant)
            _flush_or_conflict(f"SKU {entry['sku']} already exists")
            created[entry["sku"]] = variant

            if product_type == PRODUCT_TYPE_PARCEL:
                for link in _component_links(tenant_id, variant, entry["components"]):
                    db.session.add(link)
                db.session.flush()

        db.session.flush()
        db.session.expire_all()
        return get_product(tenant_id=tenant_id, product_id=product.id)

    return run_atomic(_op)


def add_variant(
    *,
    tenant_id: int,
    product_id: int,
    name: str,
    sku: str,
    multiplier: int,
    price: int = 0,
    unit_name: str = "pcs",
    parent_variant_id: int | None = None,
) -> dict:
    """Add a derived variant to a physical product (or a plain one to a digital product)."""
    entry = _clean_variant_entry(
        {"name": name, "sku": sku, "multiplier": multiplier, "price": price, "unit_name": unit_name},
        0,
    )

    def _op():
        product = require_product(tenant_id, product_id)
        if product.type == PRODUCT_TYPE_PARCEL:
            raise ValidationError("Use create_product to define parcel variants")
        _require_sku_free(tenant_id, entry["sku"])

        parent = None
        if product.type == PRODUCT_TYPE_PHYSICAL:
            if parent_variant_id is None:
                raise ValidationError("parent_variant_id is required; a product has one base variant")
            parent = require_variant(tenant_id, parent_variant_id)
            if parent.product_id != product.id:
                raise ValidationError("Parent variant belongs to another product")
            _require_larger_multiplier(entry["multiplier"], parent, entry["sku"])
        elif parent_variant_id is not None:
            raise ValidationError(f"{product.type} variants cannot have a parent")

        variant = ProductVariant(
            product_id=product.id,
            tenant_id=tenant_id,
            name=entry["name"],
            sku=entry["sku"],
            unit_name=entry["unit_name"],
            multiplier=entry["multiplier"] if product.type == PRODUCT_TYPE_PHYSICAL else 1,
            price=entry["price"],
            parent_variant_id=parent.id if parent else None,
            is_base_unit=False,
        )
        db.session.add(variant)
        _flush_or_conflict(f"SKU {entry['sku']} already exists")
        return variant.to_dict()

    return run_atomic(_op)


def set_variant_parent(*, tenant_id: int, variant_id: int, parent_variant_id: int) -> dict:
    """
    Re-point a derived variant at another parent of the same product.

    Rejects moves that would close a loop or detach the base variant.
    """
    def _op():
        variant = require_variant(tenant_id, variant_id, lock=True)
        parent = require_variant(tenant_id, parent_variant_id)

        if variant.product.type != PRODUCT_TYPE_PHYSICAL:
            raise ValidationError(
                f"{variant.product.type} variants cannot have a parent", details={"variant_id": variant.id}
            )
        if variant.is_base_unit:
            raise ValidationError("The base variant cannot have a parent", details={"variant_id": variant.id})
        if parent.product_id != variant.product_id:
            raise ValidationError("Parent variant belongs to another product")

        # Walking up from the new parent must not reach the variant itself
        node = parent
        seen = set()
        while node is not None and node.id not in seen:
            seen.add(node.id)
            if node.id == variant.id:
                raise UnitGraphError(
                    f"Parent {parent.id} would make variant {variant.id} its own ancestor",
                    details={"variant_id": variant.id, "parent_variant_id": parent.id},
                )
            node = node.parent
        _require_larger_multiplier(variant.multiplier, parent, variant.sku)

        variant.parent_variant_id = parent.id
        db.session.flush()
        walk_to_base(variant)
        return variant.to_dict()

    return run_atomic(_op)


def set_bundle_components(*, tenant_id: int, parcel_variant_id: int, components: list[dict]) -> dict:
    """Replace the component list of a parcel variant."""
    def _op():
        parcel = require_variant(tenant_id, parcel_variant_id, lock=True)
        if parcel.product.type != PRODUCT_TYPE_PARCEL:
            raise ValidationError("Variant is not a parcel", details={"variant_id": parcel.id})

        links = _component_links(tenant_id, parcel, components)
        for existing in list(parcel.bundle_components):
            db.session.delete(existing)
        db.session.flush()
        for link in links:
            db.session.add(link)
        db.session.flush()
        db.session.expire(parcel, ["bundle_components"])
        return {
            "parcel_variant_id": parcel.id,
            "components": [c.to_dict() for c in parcel.bundle_components],
        }

    return run_atomic(_op)


def get_product(*, tenant_id: int, product_id: int) -> dict:
    product = require_product(tenant_id, product_id)
    data = product.to_dict()
    variants = []
    for variant in product.variants:
        v = variant.to_dict()
        if product.type == PRODUCT_TYPE_PARCEL:
            v["components"] = [c.to_dict() for c in variant.bundle_components]
        variants.append(v)
    data["variants"] = variants
    return data


def list_variants(*, tenant_id: int, product_type: str | None = None) -> list[dict]:
    query = (
        db.session.query(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(Product.tenant_id == tenant_id)
    )
    if product_type:
        query = query.filter(Product.type == product_type)
    return [v.to_dict() for v in query.order_by(ProductVariant.id.asc()).all()]
