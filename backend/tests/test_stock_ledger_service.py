# Overview: Pytest coverage for the stock ledger primitives.

import pytest

from kasir.extensions import db
from kasir.errors import InsufficientStockError, NotFoundError, ValidationError
from kasir.models import InventoryStock, InventoryLog, StockBatch
from kasir.models.inventory import LOG_TYPE_RESTOCK, LOG_TYPE_SALE, LOG_TYPE_ADJUSTMENT
from kasir.services import stock_ledger_service as ledger
from kasir.services.concurrency import run_atomic

from conftest import put_stock, stock_qty, logs_for


def _batch(stock, qty, price):
    def _op():
        return ledger.create_batch(stock, qty=qty, purchase_price=price, unit_price=price)
    return run_atomic(_op)


class TestIncrement:

    def test_increment_creates_missing_row(self, db_session, store_a, noodle):
        """Upsert: the first restock creates the row and logs it."""
        assert stock_qty(noodle.base, store_a) is None

        put_stock(noodle.base, store_a, 24)

        assert stock_qty(noodle.base, store_a) == 24
        logs = logs_for(noodle.base, store_a)
        assert [(l.type, l.qty_change) for l in logs] == [(LOG_TYPE_RESTOCK, 24)]

    def test_increment_adds_to_existing_row(self, db_session, store_a, noodle):
        put_stock(noodle.base, store_a, 10)
        put_stock(noodle.base, store_a, 5)

        assert stock_qty(noodle.base, store_a) == 15
        assert db_session.query(InventoryStock).filter_by(variant_id=noodle.base.id).count() == 1

    @pytest.mark.parametrize("qty", [0, -3, True])
    def test_non_positive_quantity_is_rejected(self, db_session, store_a, noodle, qty):
        with pytest.raises(ValidationError):
            put_stock(noodle.base, store_a, qty)
        assert stock_qty(noodle.base, store_a) is None

    def test_long_note_is_truncated(self, db_session, store_a, noodle):
        def _op():
            return ledger.increment(
                variant_id=noodle.base.id, store_id=store_a.id, qty=1,
                log_type=LOG_TYPE_RESTOCK, note="x" * (ledger.NOTE_MAX_LENGTH + 50),
            )
        run_atomic(_op)

        log = logs_for(noodle.base, store_a)[0]
        assert len(log.notes) == ledger.NOTE_MAX_LENGTH

    def test_unknown_log_type_rolls_back(self, db_session, store_a, noodle):
        put_stock(noodle.base, store_a, 5)

        def _op():
            return ledger.increment(variant_id=noodle.base.id, store_id=store_a.id, qty=1, log_type="GIFT")
        with pytest.raises(ValidationError):
            run_atomic(_op)

        assert stock_qty(noodle.base, store_a) == 5
        assert len(logs_for(noodle.base, store_a)) == 1


class TestDecrement:

    def test_guarded_decrement_refuses_to_go_negative(self, db_session, store_a, noodle):
        """Asking for more than is on hand leaves row and log untouched."""
        put_stock(noodle.base, store_a, 3)

        def _op():
            return ledger.decrement(variant_id=noodle.base.id, store_id=store_a.id, qty=5, log_type=LOG_TYPE_SALE)
        with pytest.raises(InsufficientStockError) as exc_info:
            run_atomic(_op)

        assert exc_info.value.details["available"] == "3"
        assert exc_info.value.details["requested"] == "5"
        assert stock_qty(noodle.base, store_a) == 3
        assert len(logs_for(noodle.base, store_a)) == 1

    def test_decrement_to_exactly_zero(self, db_session, store_a, noodle):
        put_stock(noodle.base, store_a, 3)

        def _op():
            return ledger.decrement(variant_id=noodle.base.id, store_id=store_a.id, qty=3, log_type=LOG_TYPE_SALE)
        run_atomic(_op)

        assert stock_qty(noodle.base, store_a) == 0
        assert [l.qty_change for l in logs_for(noodle.base, store_a)] == [3, -3]

    def test_decrement_without_row_is_not_found(self, db_session, store_a, noodle):
        def _op():
            return ledger.decrement(variant_id=noodle.base.id, store_id=store_a.id, qty=1, log_type=LOG_TYPE_SALE)
        with pytest.raises(NotFoundError):
            run_atomic(_op)

    def test_fifo_consumes_oldest_batch_first(self, db_session, store_a, noodle):
        stock = put_stock(noodle.base, store_a, 10)
        older = _batch(stock, 4, 3000)
        newer = _batch(stock, 6, 3200)

        def _op():
            return ledger.decrement(variant_id=noodle.base.id, store_id=store_a.id, qty=7, log_type=LOG_TYPE_SALE)
        slices = run_atomic(_op)

        assert [(s.batch.id, s.qty) for s in slices] == [(older.id, 4), (newer.id, 3)]
        assert db_session.get(StockBatch, older.id).qty == 0
        assert db_session.get(StockBatch, newer.id).qty == 3

    def test_uncovered_stock_yields_partial_slices(self, db_session, store_a, noodle):
        """Batches never drive the total: stock without batches still sells."""
        stock = put_stock(noodle.base, store_a, 10)
        _batch(stock, 2, 3000)

        def _op():
            return ledger.decrement(variant_id=noodle.base.id, store_id=store_a.id, qty=5, log_type=LOG_TYPE_SALE)
        slices = run_atomic(_op)

        assert sum(s.qty for s in slices) == 2
        assert stock_qty(noodle.base, store_a) == 5


class TestSetAbsolute:

    def test_set_absolute_on_missing_row(self, db_session, store_a, noodle):
        """A count of a never-stocked item creates the row at the counted value."""
        def _op():
            return ledger.set_absolute(variant_id=noodle.base.id, store_id=store_a.id, actual_qty=6, note="count")
        stock, system_qty, delta = run_atomic(_op)

        assert (system_qty, delta) == (0, 6)
        assert stock_qty(noodle.base, store_a) == 6
        assert [(l.type, l.qty_change) for l in logs_for(noodle.base, store_a)] == [(LOG_TYPE_ADJUSTMENT, 6)]

    def test_zero_delta_still_logged(self, db_session, store_a, noodle):
        put_stock(noodle.base, store_a, 8)

        def _op():
            return ledger.set_absolute(variant_id=noodle.base.id, store_id=store_a.id, actual_qty=8)
        _, _, delta = run_atomic(_op)

        assert delta == 0
        assert len(logs_for(noodle.base, store_a, LOG_TYPE_ADJUSTMENT)) == 1

    def test_negative_actual_is_rejected(self, db_session, store_a, noodle):
        def _op():
            return ledger.set_absolute(variant_id=noodle.base.id, store_id=store_a.id, actual_qty=-1)
        with pytest.raises(ValidationError):
            run_atomic(_op)


class TestLedgerConsistency:

    def test_log_sum_matches_stock(self, db_session, store_a, noodle):
        """Replaying every log for a row reproduces its stock_qty."""
        put_stock(noodle.base, store_a, 20)

        def _sell():
            return ledger.decrement(variant_id=noodle.base.id, store_id=store_a.id, qty=7, log_type=LOG_TYPE_SALE)
        run_atomic(_sell)

        def _count():
            return ledger.set_absolute(variant_id=noodle.base.id, store_id=store_a.id, actual_qty=11)
        run_atomic(_count)
        put_stock(noodle.base, store_a, 4)

        stock = db_session.query(InventoryStock).filter_by(variant_id=noodle.base.id, store_id=store_a.id).one()
        total = (
            db.session.query(db.func.sum(InventoryLog.qty_change))
            .filter(InventoryLog.inventory_stock_id == stock.id)
            .scalar()
        )
        assert stock.stock_qty == 15
        assert total == stock.stock_qty
