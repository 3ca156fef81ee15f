# Overview: Service-layer operations for the variant unit graph; resolves where a variant's stock lives.

"""
Unit Graph Resolver

A sellable variant never holds stock itself unless it is a base unit.

- PHYSICAL variants walk parent_variant_id up to the base variant; stock
  lives on the base variant's InventoryStock row. The resolved multiplier
  is the variant's own multiplier (multipliers are expressed in base units).
- PARCEL variants resolve each bundle component independently; the parcel
  is only as sellable as its scarcest component.
- DIGITAL products are not stock tracked.

Resolution is read-only; the ledger performs the writes.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import ValidationError, NotFoundError
from ..models import InventoryStock, ProductVariant
from ..models.catalog import PRODUCT_TYPE_DIGITAL, PRODUCT_TYPE_PARCEL, PRODUCT_TYPE_PHYSICAL
from .concurrency import lock_for_update
from .tenant_service import require_variant


class UnitGraphError(ValidationError):
    """Raised when a parent chain is cyclic, too deep or malformed."""
    code = "UNIT_GRAPH_ERROR"


@dataclass(frozen=True)
class SimpleSource:
    variant_id: int
    base_variant_id: int
    stock: InventoryStock | None
    multiplier: int

    @property
    def available_qty(self) -> int:
        if self.stock is None:
            return 0
        return self.stock.stock_qty // self.multiplier

    def base_qty(self, qty: int) -> int:
        return qty * self.multiplier


@dataclass(frozen=True)
class BundleComponentSource:
    component_variant_id: int
    base_variant_id: int
    stock: InventoryStock | None
    multiplier: int
    qty_needed: int

    @property
    def supported_parcels(self) -> int:
        if self.stock is None:
            return 0
        return (self.stock.stock_qty // self.multiplier) // self.qty_needed

    def base_qty(self, parcel_qty: int) -> int:
        return parcel_qty * self.qty_needed * self.multiplier


@dataclass(frozen=True)
class BundleSource:
    variant_id: int
    components: tuple[BundleComponentSource, ...]

    @property
    def sellable_qty(self) -> int:
        # Components sharing a stock row draw on it together
        needed: dict[int, int] = {}
        on_hand: dict[int, int] = {}
        for c in self.components:
            if c.stock is None:
                return 0
            needed[c.stock.id] = needed.get(c.stock.id, 0) + c.base_qty(1)
            on_hand[c.stock.id] = c.stock.stock_qty
        return min(on_hand[row_id] // per_parcel for row_id, per_parcel in needed.items())


@dataclass(frozen=True)
class UntrackedSource:
    variant_id: int

    @property
    def sellable_qty(self) -> None:
        return None


def _max_depth() -> int:
    return int(current_app.config.get("MAX_UNIT_DEPTH", 8))


def walk_to_base(variant: ProductVariant) -> ProductVariant:
    """
    Follow parent links to the root of the chain.

    Raises UnitGraphError on a revisited node or when the chain is longer
    than MAX_UNIT_DEPTH.
    """
    max_depth = _max_depth()
    seen = {variant.id}
    node = variant
    depth = 0
    while node.parent_variant_id is not None:
        depth += 1
        if depth > max_depth:
            raise UnitGraphError(
                f"Variant {variant.id} exceeds maximum unit depth",
                details={"variant_id": variant.id, "max_depth": max_depth},
            )
        parent = db.session.get(ProductVariant, node.parent_variant_id)
        if parent is None:
            raise UnitGraphError(
                f"Variant {node.id} references a missing parent",
                details={"variant_id": node.id, "parent_variant_id": node.parent_variant_id},
            )
        if parent.id in seen:
            raise UnitGraphError(
                f"Variant {variant.id} has a cyclic parent chain",
                details={"variant_id": variant.id},
            )
        if parent.product_id != variant.product_id:
            raise UnitGraphError(
                f"Variant {node.id} has a parent from another product",
                details={"variant_id": node.id, "parent_variant_id": parent.id},
            )
        seen.add(parent.id)
        node = parent
    return node


def resolve_base_variant(tenant_id: int, variant_id: int) -> tuple[ProductVariant, ProductVariant]:
    """
    Return (variant, base_variant) for a stock-tracked variant.

    Used by operations that may create the stock row (stock-in, opname),
    so no stock lookup happens here. Parcel and digital variants have no
    base stock and are rejected.
    """
    variant = require_variant(tenant_id, variant_id)
    product = variant.product
    if product.type == PRODUCT_TYPE_PARCEL:
        raise ValidationError(
            "Parcel variants have no stock of their own",
            details={"variant_id": variant_id},
        )
    if product.type == PRODUCT_TYPE_DIGITAL:
        raise ValidationError(
            "Digital products are not stock tracked",
            details={"variant_id": variant_id},
        )
    return variant, walk_to_base(variant)


def _stock_row(base_variant_id: int, store_id: int, *, lock: bool) -> InventoryStock | None:
    query = db.session.query(InventoryStock).filter_by(variant_id=base_variant_id, store_id=store_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _require_stock_row(base_variant_id: int, store_id: int, variant_id: int, *, lock: bool, tolerate_missing: bool):
    stock = _stock_row(base_variant_id, store_id, lock=lock)
    if stock is None and not tolerate_missing:
        raise NotFoundError(
            f"No stock record for variant {variant_id} in store {store_id}",
            details={"variant_id": variant_id, "base_variant_id": base_variant_id, "store_id": store_id},
        )
    return stock


def resolve_stock_source(
    tenant_id: int,
    variant_id: int,
    store_id: int,
    *,
    lock: bool = False,
    tolerate_missing: bool = False,
):
    """
    Resolve a variant to the stock rows that back it.

    Returns SimpleSource, BundleSource or UntrackedSource. A missing stock
    row raises NotFoundError unless tolerate_missing is set, in which case
    the source carries stock=None and reports zero availability.
    """
    variant = require_variant(tenant_id, variant_id)
    product = variant.product

    if product.type == PRODUCT_TYPE_DIGITAL:
        return UntrackedSource(variant_id=variant.id)

    if product.type == PRODUCT_TYPE_PARCEL:
        if not variant.bundle_components:
            raise ValidationError(
                f"Parcel variant {variant.id} has no components",
                details={"variant_id": variant.id},
            )
        components = []
        for link in variant.bundle_components:
            component = link.component_variant
            if component.product.type != PRODUCT_TYPE_PHYSICAL:
                raise UnitGraphError(
                    f"Parcel component {component.id} is not a physical variant",
                    details={"variant_id": variant.id, "component_variant_id": component.id},
                )
            base = walk_to_base(component)
            stock = _require_stock_row(
                base.id, store_id, component.id, lock=lock, tolerate_missing=tolerate_missing
            )
            components.append(
                BundleComponentSource(
                    component_variant_id=component.id,
                    base_variant_id=base.id,
                    stock=stock,
                    multiplier=component.multiplier,
                    qty_needed=link.qty,
                )
            )
        return BundleSource(variant_id=variant.id, components=tuple(components))

    base = walk_to_base(variant)
    stock = _require_stock_row(base.id, store_id, variant.id, lock=lock, tolerate_missing=tolerate_missing)
    return SimpleSource(
        variant_id=variant.id,
        base_variant_id=base.id,
        stock=stock,
        multiplier=variant.multiplier,
    )


def sellable_quantity(tenant_id: int, variant_id: int, store_id: int, *, tolerate_missing: bool = False):
    """
    How many units of variant_id can be sold at store_id right now.

    Returns None for untracked (digital) variants.
    """
    source = resolve_stock_source(tenant_id, variant_id, store_id, tolerate_missing=tolerate_missing)
    if isinstance(source, SimpleSource):
        return source.available_qty
    return source.sellable_qty
