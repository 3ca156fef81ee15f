# Overview: Pytest coverage for catalog writes that shape the unit graph.

import pytest

from kasir.errors import ConflictError, NotFoundError, ValidationError
from kasir.models import ProductVariant
from kasir.services import catalog_service
from kasir.services.unit_graph_service import UnitGraphError, sellable_quantity

from conftest import put_stock


def _create(tenant, variants, *, name="Susu", product_type="PHYSICAL", **kwargs):
    return catalog_service.create_product(
        tenant_id=tenant.id, name=name, product_type=product_type, variants=variants, **kwargs,
    )


MILK_VARIANTS = [
    {"name": "Susu kotak", "sku": "SUSU-PCS", "price": 6000},
    {"name": "Susu pak", "sku": "SUSU-PAK", "unit_name": "pak", "multiplier": 6, "price": 34000, "parent_sku": "SUSU-PCS"},
    {"name": "Susu dus", "sku": "SUSU-DUS", "unit_name": "dus", "multiplier": 24, "price": 130000, "parent_sku": "SUSU-PAK"},
]


class TestCreateProduct:

    def test_physical_product_with_unit_chain(self, db_session, tenant_a, store_a):
        product = _create(tenant_a, MILK_VARIANTS)

        by_sku = {v["sku"]: v for v in product["variants"]}
        assert by_sku["SUSU-PCS"]["is_base_unit"] is True
        assert by_sku["SUSU-PAK"]["parent_variant_id"] == by_sku["SUSU-PCS"]["id"]
        assert by_sku["SUSU-DUS"]["parent_variant_id"] == by_sku["SUSU-PAK"]["id"]

        base = db_session.get(ProductVariant, by_sku["SUSU-PCS"]["id"])
        put_stock(base, store_a, 50)
        assert sellable_quantity(tenant_a.id, by_sku["SUSU-DUS"]["id"], store_a.id) == 2

    def test_children_may_precede_parents_in_payload(self, db_session, tenant_a):
        product = _create(tenant_a, list(reversed(MILK_VARIANTS)))
        assert len(product["variants"]) == 3

    def test_exactly_one_base_required(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            _create(tenant_a, [
                {"name": "A", "sku": "A-1"},
                {"name": "B", "sku": "B-1"},
            ])

    def test_base_multiplier_must_be_one(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            _create(tenant_a, [{"name": "A", "sku": "A-1", "multiplier": 6}])

    def test_payload_cycle_rejected(self, db_session, tenant_a):
        with pytest.raises(UnitGraphError):
            _create(tenant_a, [
                {"name": "Base", "sku": "X-0"},
                {"name": "A", "sku": "X-1", "multiplier": 2, "parent_sku": "X-2"},
                {"name": "B", "sku": "X-2", "multiplier": 4, "parent_sku": "X-1"},
            ])

    def test_unknown_parent_sku_rejected(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            _create(tenant_a, [
                {"name": "Base", "sku": "Y-0"},
                {"name": "Box", "sku": "Y-1", "multiplier": 10, "parent_sku": "NOPE"},
            ])

    def test_duplicate_sku_conflicts(self, db_session, tenant_a, noodle):
        with pytest.raises(ConflictError):
            _create(tenant_a, [{"name": "Mie lain", "sku": "MIE-PCS"}])
        with pytest.raises(ConflictError):
            _create(tenant_a, [{"name": "A", "sku": "Z-1"}, {"name": "B", "sku": "Z-1", "parent_sku": "Z-1"}])

    def test_sku_is_scoped_per_tenant(self, db_session, tenant_b, noodle):
        product = _create(tenant_b, [{"name": "Mie", "sku": "MIE-PCS"}])
        assert product["tenant_id"] == tenant_b.id

    def test_parcel_with_components(self, db_session, tenant_a, store_a, coffee, sugar):
        product = _create(
            tenant_a,
            [{
                "name": "Hamper", "sku": "HAMPER-1", "price": 40000,
                "components": [{"sku": "KOPI-PCS", "qty": 3}, {"variant_id": sugar.base.id, "qty": 1}],
            }],
            name="Hamper", product_type="PARCEL",
        )

        components = product["variants"][0]["components"]
        assert {(c["component_variant_id"], c["qty"]) for c in components} == {(coffee.base.id, 3), (sugar.base.id, 1)}

    def test_parcel_needs_components(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            _create(tenant_a, [{"name": "Empty", "sku": "EMPTY-1"}], name="Empty", product_type="PARCEL")

    def test_parcel_component_must_be_physical(self, db_session, tenant_a, voucher):
        with pytest.raises(ValidationError):
            _create(
                tenant_a,
                [{"name": "Bundle", "sku": "BND-1", "components": [{"variant_id": voucher.variant.id, "qty": 1}]}],
                name="Bundle", product_type="PARCEL",
            )

    def test_parcel_component_from_other_tenant_not_found(self, db_session, tenant_b, noodle):
        with pytest.raises(NotFoundError):
            _create(
                tenant_b,
                [{"name": "Bundle", "sku": "BND-1", "components": [{"variant_id": noodle.base.id, "qty": 1}]}],
                name="Bundle", product_type="PARCEL",
            )

    def test_non_physical_cannot_have_parent(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            _create(
                tenant_a,
                [{"name": "P1", "sku": "P-1"}, {"name": "P2", "sku": "P-2", "parent_sku": "P-1"}],
                name="Pulsa", product_type="DIGITAL",
            )

    def test_unknown_category_not_found(self, db_session, tenant_a):
        with pytest.raises(NotFoundError):
            _create(tenant_a, [{"name": "A", "sku": "A-1"}], category_id=999)


class TestVariantEdits:

    def test_add_variant_under_base(self, db_session, tenant_a, noodle):
        variant = catalog_service.add_variant(
            tenant_id=tenant_a.id, product_id=noodle.product.id, name="Mie dus",
            sku="MIE-DUS", multiplier=40, price=130000, unit_name="dus", parent_variant_id=noodle.base.id,
        )

        assert variant["parent_variant_id"] == noodle.base.id
        assert variant["is_base_unit"] is False

    def test_add_variant_needs_parent(self, db_session, tenant_a, noodle):
        with pytest.raises(ValidationError):
            catalog_service.add_variant(
                tenant_id=tenant_a.id, product_id=noodle.product.id, name="Loose", sku="MIE-X", multiplier=2,
            )

    def test_add_variant_parent_from_other_product(self, db_session, tenant_a, noodle, coffee):
        with pytest.raises(ValidationError):
            catalog_service.add_variant(
                tenant_id=tenant_a.id, product_id=noodle.product.id, name="Mix", sku="MIE-MIX",
                multiplier=2, parent_variant_id=coffee.base.id,
            )

    def test_reparent_that_closes_loop_is_rejected(self, db_session, tenant_a):
        product = _create(tenant_a, MILK_VARIANTS)
        by_sku = {v["sku"]: v["id"] for v in product["variants"]}

        with pytest.raises(UnitGraphError):
            catalog_service.set_variant_parent(
                tenant_id=tenant_a.id, variant_id=by_sku["SUSU-PAK"], parent_variant_id=by_sku["SUSU-DUS"],
            )

    def test_reparent_to_base(self, db_session, tenant_a):
        product = _create(tenant_a, MILK_VARIANTS)
        by_sku = {v["sku"]: v["id"] for v in product["variants"]}

        result = catalog_service.set_variant_parent(
            tenant_id=tenant_a.id, variant_id=by_sku["SUSU-DUS"], parent_variant_id=by_sku["SUSU-PCS"],
        )

        assert result["parent_variant_id"] == by_sku["SUSU-PCS"]

    def test_base_cannot_be_reparented(self, db_session, tenant_a, noodle):
        with pytest.raises(ValidationError):
            catalog_service.set_variant_parent(
                tenant_id=tenant_a.id, variant_id=noodle.base.id, parent_variant_id=noodle.dozen.id,
            )

    def test_replace_bundle_components(self, db_session, tenant_a, store_a, noodle, coffee, parcel):
        result = catalog_service.set_bundle_components(
            tenant_id=tenant_a.id,
            parcel_variant_id=parcel.variant.id,
            components=[{"variant_id": noodle.dozen.id, "qty": 1}, {"variant_id": coffee.base.id, "qty": 4}],
        )

        assert {(c["component_variant_id"], c["qty"]) for c in result["components"]} == {
            (noodle.dozen.id, 1),
            (coffee.base.id, 4),
        }

    def test_duplicate_component_rejected(self, db_session, tenant_a, coffee, parcel):
        with pytest.raises(ValidationError):
            catalog_service.set_bundle_components(
                tenant_id=tenant_a.id,
                parcel_variant_id=parcel.variant.id,
                components=[{"variant_id": coffee.base.id, "qty": 1}, {"sku": "KOPI-PCS", "qty": 2}],
            )

    def test_components_only_on_parcels(self, db_session, tenant_a, noodle, coffee):
        with pytest.raises(ValidationError):
            catalog_service.set_bundle_components(
                tenant_id=tenant_a.id,
                parcel_variant_id=noodle.base.id,
                components=[{"variant_id": coffee.base.id, "qty": 1}],
            )

    def test_components_sharing_stock_rejected(self, db_session, tenant_a, noodle, parcel):
        with pytest.raises(ValidationError):
            catalog_service.set_bundle_components(
                tenant_id=tenant_a.id,
                parcel_variant_id=parcel.variant.id,
                components=[{"variant_id": noodle.base.id, "qty": 1}, {"variant_id": noodle.dozen.id, "qty": 1}],
            )

    def test_digital_variant_cannot_take_parent(self, db_session, tenant_a):
        product = _create(
            tenant_a,
            [{"name": "Pulsa 5k", "sku": "P-5"}, {"name": "Pulsa 10k", "sku": "P-10"}],
            name="Pulsa", product_type="DIGITAL",
        )
        by_sku = {v["sku"]: v["id"] for v in product["variants"]}

        with pytest.raises(ValidationError):
            catalog_service.set_variant_parent(
                tenant_id=tenant_a.id, variant_id=by_sku["P-10"], parent_variant_id=by_sku["P-5"],
            )
        assert db_session.get(ProductVariant, by_sku["P-10"]).parent_variant_id is None

    @pytest.mark.parametrize("multiplier", [1, 12])
    def test_derived_unit_must_exceed_parent(self, db_session, tenant_a, noodle, multiplier):
        with pytest.raises(ValidationError):
            catalog_service.add_variant(
                tenant_id=tenant_a.id, product_id=noodle.product.id, name="Mie satuan", sku="MIE-X",
                multiplier=multiplier, parent_variant_id=noodle.dozen.id,
            )

    def test_payload_child_smaller_than_parent_rejected(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            _create(tenant_a, [
                {"name": "Susu kotak", "sku": "SUSU-PCS"},
                {"name": "Susu pak", "sku": "SUSU-PAK", "multiplier": 6, "parent_sku": "SUSU-PCS"},
                {"name": "Susu duo", "sku": "SUSU-DUO", "multiplier": 2, "parent_sku": "SUSU-PAK"},
            ])

    def test_reparent_under_larger_unit_rejected(self, db_session, tenant_a):
        product = _create(tenant_a, [
            {"name": "Susu kotak", "sku": "SUSU-PCS"},
            {"name": "Susu pak", "sku": "SUSU-PAK", "multiplier": 6, "parent_sku": "SUSU-PCS"},
            {"name": "Susu duo", "sku": "SUSU-DUO", "multiplier": 2, "parent_sku": "SUSU-PCS"},
        ])
        by_sku = {v["sku"]: v["id"] for v in product["variants"]}

        with pytest.raises(ValidationError):
            catalog_service.set_variant_parent(
                tenant_id=tenant_a.id, variant_id=by_sku["SUSU-DUO"], parent_variant_id=by_sku["SUSU-PAK"],
            )

    def test_list_variants_by_type(self, db_session, tenant_a, noodle, parcel, voucher):
        parcels = catalog_service.list_variants(tenant_id=tenant_a.id, product_type="PARCEL")
        everything = catalog_service.list_variants(tenant_id=tenant_a.id)

        assert [v["sku"] for v in parcels] == ["PARCEL-1"]
        assert len(everything) == 6
