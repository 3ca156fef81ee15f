# Overview: Pytest coverage for OPN/TRF reference allocation.

import pytest

from kasir.errors import ValidationError
from kasir.models import ReferenceSequence
from kasir.services import stock_ledger_service as ledger
from kasir.services.concurrency import run_atomic
from kasir.services.reference_service import next_reference, OPNAME_PREFIX, TRANSFER_PREFIX

from conftest import put_stock


def _allocate(tenant, prefix, **kwargs):
    return run_atomic(lambda: next_reference(tenant.id, prefix, **kwargs))


class TestNextReference:

    def test_numbers_are_zero_padded_and_sequential(self, db_session, tenant_a):
        assert _allocate(tenant_a, OPNAME_PREFIX, year=2026) == "OPN-2026-001"
        assert _allocate(tenant_a, OPNAME_PREFIX, year=2026) == "OPN-2026-002"

    def test_prefixes_and_years_are_independent(self, db_session, tenant_a):
        _allocate(tenant_a, OPNAME_PREFIX, year=2026)

        assert _allocate(tenant_a, TRANSFER_PREFIX, year=2026) == "TRF-2026-001"
        assert _allocate(tenant_a, OPNAME_PREFIX, year=2027) == "OPN-2027-001"

    def test_tenants_are_independent(self, db_session, tenant_a, tenant_b):
        _allocate(tenant_a, OPNAME_PREFIX, year=2026)
        _allocate(tenant_a, OPNAME_PREFIX, year=2026)

        assert _allocate(tenant_b, OPNAME_PREFIX, year=2026) == "OPN-2026-001"
        assert db_session.query(ReferenceSequence).count() == 2

    def test_rolled_back_allocation_is_reused(self, db_session, tenant_a):
        def _op():
            next_reference(tenant_a.id, TRANSFER_PREFIX, year=2026)
            raise ValidationError("later step failed")

        with pytest.raises(ValidationError):
            run_atomic(_op)

        assert _allocate(tenant_a, TRANSFER_PREFIX, year=2026) == "TRF-2026-001"

    def test_seeds_from_existing_references(self, db_session, tenant_a, store_a, noodle):
        """References written before the sequence row existed are not reissued."""
        put_stock(noodle.base, store_a, 5)

        def _legacy():
            return ledger.set_absolute(
                variant_id=noodle.base.id, store_id=store_a.id, actual_qty=4,
                note="imported", reference_id="OPN-2026-041",
            )
        run_atomic(_legacy)

        assert _allocate(tenant_a, OPNAME_PREFIX, year=2026) == "OPN-2026-042"

    def test_other_tenant_references_do_not_seed(self, db_session, tenant_a, tenant_b, store_a, noodle):
        put_stock(noodle.base, store_a, 5)
        run_atomic(lambda: ledger.set_absolute(
            variant_id=noodle.base.id, store_id=store_a.id, actual_qty=4, reference_id="OPN-2026-009",
        ))

        assert _allocate(tenant_b, OPNAME_PREFIX, year=2026) == "OPN-2026-001"

    def test_wide_padding(self, db_session, tenant_a):
        assert _allocate(tenant_a, OPNAME_PREFIX, year=2026, pad=5) == "OPN-2026-00001"

    @pytest.mark.parametrize("tenant_id,prefix", [(None, "OPN"), (1, "")])
    def test_requires_tenant_and_prefix(self, db_session, tenant_id, prefix):
        with pytest.raises(ValidationError):
            next_reference(tenant_id, prefix)
