"""
Pytest fixtures for Kasir backend tests.

Provides test database setup, two tenants with their stores, a small
catalog (base/derived units, a parcel, a digital product) and an open
cashier shift.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from kasir import create_app
from kasir.extensions import db
from kasir.models import (
    Tenant, Store, Category, Product, ProductVariant, BundleComponent,
    InventoryStock, InventoryLog, StoreShift,
)
from kasir.models.inventory import LOG_TYPE_RESTOCK
from kasir.services import stock_ledger_service as ledger
from kasir.services.concurrency import run_atomic


CASHIER_ID = 7
OTHER_CASHIER_ID = 8


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    tenant = Tenant(name="Toko Maju", code="MAJU", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    tenant = Tenant(name="Toko Sejahtera", code="SEJAHTERA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def store_a(db_session, tenant_a):
    store = Store(tenant_id=tenant_a.id, name="Pusat", code="A1", address="Jl. Merdeka 1")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_a2(db_session, tenant_a):
    """Second store of tenant A (transfer target)."""
    store = Store(tenant_id=tenant_a.id, name="Cabang", code="A2")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, tenant_b):
    store = Store(tenant_id=tenant_b.id, name="Pusat", code="B1")
    db_session.add(store)
    db_session.commit()
    return store


def make_physical(db_session, tenant, *, name, sku, price, derived=(), category=None):
    """
    Physical product with a base "pcs" variant and optional derived units.

    derived: iterable of (sku, unit_name, multiplier, price); each derived
    unit hangs directly off the base variant.
    """
    product = Product(tenant_id=tenant.id, name=name, type="PHYSICAL", category_id=category.id if category else None)
    db_session.add(product)
    db_session.flush()
    base = ProductVariant(
        product_id=product.id, tenant_id=tenant.id, name=f"{name} pcs", sku=sku,
        unit_name="pcs", multiplier=1, price=price, is_base_unit=True,
    )
    db_session.add(base)
    db_session.flush()
    units = {}
    for d_sku, unit_name, multiplier, d_price in derived:
        variant = ProductVariant(
            product_id=product.id, tenant_id=tenant.id, name=f"{name} {unit_name}", sku=d_sku,
            unit_name=unit_name, multiplier=multiplier, price=d_price, parent_variant_id=base.id,
        )
        db_session.add(variant)
        db_session.flush()
        units[unit_name] = variant
    db_session.commit()
    return SimpleNamespace(product=product, base=base, **units)


@pytest.fixture(scope='function')
def noodle(db_session, tenant_a):
    """Base pcs (3500) with a dozen unit (multiplier 12, price 40000)."""
    return make_physical(
        db_session, tenant_a, name="Mie Goreng", sku="MIE-PCS", price=3500,
        derived=[("MIE-LSN", "dozen", 12, 40000)],
    )


@pytest.fixture(scope='function')
def coffee(db_session, tenant_a):
    return make_physical(db_session, tenant_a, name="Kopi", sku="KOPI-PCS", price=2000)


@pytest.fixture(scope='function')
def sugar(db_session, tenant_a):
    return make_physical(db_session, tenant_a, name="Gula", sku="GULA-PCS", price=15000)


@pytest.fixture(scope='function')
def parcel(db_session, tenant_a, coffee, sugar):
    """Parcel needing 2 coffee and 1 sugar."""
    product = Product(tenant_id=tenant_a.id, name="Parcel Lebaran", type="PARCEL")
    db_session.add(product)
    db_session.flush()
    variant = ProductVariant(
        product_id=product.id, tenant_id=tenant_a.id, name="Parcel Lebaran", sku="PARCEL-1",
        unit_name="box", multiplier=1, price=25000,
    )
    db_session.add(variant)
    db_session.flush()
    db_session.add(BundleComponent(parcel_variant_id=variant.id, component_variant_id=coffee.base.id, qty=2))
    db_session.add(BundleComponent(parcel_variant_id=variant.id, component_variant_id=sugar.base.id, qty=1))
    db_session.commit()
    return SimpleNamespace(product=product, variant=variant)


@pytest.fixture(scope='function')
def voucher(db_session, tenant_a):
    """Digital product (no stock tracking)."""
    product = Product(tenant_id=tenant_a.id, name="Pulsa 10k", type="DIGITAL")
    db_session.add(product)
    db_session.flush()
    variant = ProductVariant(
        product_id=product.id, tenant_id=tenant_a.id, name="Pulsa 10k", sku="PULSA-10",
        unit_name="voucher", multiplier=1, price=11000,
    )
    db_session.add(variant)
    db_session.commit()
    return SimpleNamespace(product=product, variant=variant)


@pytest.fixture(scope='function')
def margin_category(db_session, tenant_a):
    category = Category(tenant_id=tenant_a.id, name="Sembako", default_margin=Decimal("0.25"))
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def open_shift(db_session, tenant_a, store_a):
    shift = StoreShift(tenant_id=tenant_a.id, store_id=store_a.id, user_id=CASHIER_ID, status="OPEN", starting_cash=100000)
    db_session.add(shift)
    db_session.commit()
    return shift


def put_stock(variant, store, qty):
    """Seed base stock for a variant through the ledger (RESTOCK, no batch)."""
    def _op():
        return ledger.increment(
            variant_id=variant.id, store_id=store.id, qty=qty, log_type=LOG_TYPE_RESTOCK, note="seed",
        )
    return run_atomic(_op)


def stock_qty(variant, store):
    row = db.session.query(InventoryStock).filter_by(variant_id=variant.id, store_id=store.id).first()
    return None if row is None else row.stock_qty


def logs_for(variant, store, log_type=None):
    query = (
        db.session.query(InventoryLog)
        .join(InventoryStock, InventoryStock.id == InventoryLog.inventory_stock_id)
        .filter(InventoryStock.variant_id == variant.id, InventoryStock.store_id == store.id)
    )
    if log_type:
        query = query.filter(InventoryLog.type == log_type)
    return query.order_by(InventoryLog.id.asc()).all()


def context_headers(tenant, store=None, user_id=CASHIER_ID) -> dict:
    headers = {"X-Tenant-Id": str(tenant.id), "X-User-Id": str(user_id)}
    if store is not None:
        headers["store-id"] = str(store.id)
    return headers
