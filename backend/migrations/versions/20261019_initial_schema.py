"""Initial schema: tenants, catalog, stock ledger, shifts, transactions

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. Tenants and stores
2. Categories, products, variants (unit graph), bundle components, price history
3. Inventory stock, inventory logs, stock batches, reference sequences
4. Store shifts
5. Transactions, transaction items, transaction item stock snapshots
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. TENANCY
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    op.create_table('stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_stores_tenant_name'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_stores_tenant_code'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stores_tenant_id', 'stores', ['tenant_id'])
    op.create_index('ix_stores_code', 'stores', ['code'])

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('default_margin', sa.Numeric(6, 4), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_categories_tenant_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_categories_tenant_id', 'categories', ['tenant_id'])

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='PHYSICAL'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_tenant_name', 'products', ['tenant_id', 'name'])
    op.create_index('ix_products_tenant_active', 'products', ['tenant_id', 'is_active'])

    op.create_table('product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('unit_name', sa.String(length=32), nullable=False, server_default='pcs'),
        sa.Column('multiplier', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('parent_variant_id', sa.Integer(), nullable=True),
        sa.Column('is_base_unit', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['parent_variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sku', name='uq_variants_tenant_sku'),
        sa.CheckConstraint('multiplier >= 1', name='ck_variants_multiplier_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])
    op.create_index('ix_product_variants_tenant_id', 'product_variants', ['tenant_id'])
    op.create_index('ix_product_variants_parent_variant_id', 'product_variants', ['parent_variant_id'])

    op.create_table('bundle_components',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parcel_variant_id', sa.Integer(), nullable=False),
        sa.Column('component_variant_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['parcel_variant_id'], ['product_variants.id']),
        sa.ForeignKeyConstraint(['component_variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('parcel_variant_id', 'component_variant_id', name='uq_bundle_parcel_component'),
        sa.CheckConstraint('qty >= 1', name='ck_bundle_qty_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_bundle_components_parcel_variant_id', 'bundle_components', ['parcel_variant_id'])
    op.create_index('ix_bundle_components_component_variant_id', 'bundle_components', ['component_variant_id'])

    op.create_table('price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('old_price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('new_price', sa.BigInteger(), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('change_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_price_history_variant_id', 'price_history', ['variant_id'])
    op.create_index('ix_price_history_variant_date', 'price_history', ['variant_id', 'change_date'])

    # ==========================================================================
    # 3. STOCK LEDGER
    # ==========================================================================
    op.create_table('inventory_stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('stock_qty', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('variant_id', 'store_id', name='uq_inventory_stock_variant_store'),
        sa.CheckConstraint('stock_qty >= 0', name='ck_inventory_stock_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_inventory_stock_variant_id', 'inventory_stock', ['variant_id'])
    op.create_index('ix_inventory_stock_store_id', 'inventory_stock', ['store_id'])
    op.create_index('ix_inventory_stock_store_qty', 'inventory_stock', ['store_id', 'stock_qty'])

    op.create_table('inventory_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_stock_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('qty_change', sa.BigInteger(), nullable=False),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['inventory_stock_id'], ['inventory_stock.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_inventory_logs_inventory_stock_id', 'inventory_logs', ['inventory_stock_id'])
    op.create_index('ix_inventory_logs_type', 'inventory_logs', ['type'])
    op.create_index('ix_inventory_logs_reference_id', 'inventory_logs', ['reference_id'])
    op.create_index('ix_inventory_logs_created_at', 'inventory_logs', ['created_at'])
    op.create_index('ix_inventory_logs_stock_created', 'inventory_logs', ['inventory_stock_id', 'created_at'])
    op.create_index('ix_inventory_logs_type_reference', 'inventory_logs', ['type', 'reference_id'])

    op.create_table('stock_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_stock_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.BigInteger(), nullable=False),
        sa.Column('initial_qty', sa.BigInteger(), nullable=False),
        sa.Column('purchase_price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('unit_price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('batch_number', sa.String(length=64), nullable=True),
        sa.Column('supplier_id', sa.String(length=64), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['inventory_stock_id'], ['inventory_stock.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('qty >= 0', name='ck_stock_batches_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_batches_inventory_stock_id', 'stock_batches', ['inventory_stock_id'])
    op.create_index('ix_stock_batches_stock_created', 'stock_batches', ['inventory_stock_id', 'created_at'])

    op.create_table('reference_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sequence_key', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sequence_key', name='uq_reference_sequences_tenant_key'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_reference_sequences_tenant_id', 'reference_sequences', ['tenant_id'])

    # ==========================================================================
    # 4. SHIFTS
    # ==========================================================================
    op.create_table('store_shifts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('starting_cash', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('expected_cash', sa.BigInteger(), nullable=True),
        sa.Column('closing_cash', sa.BigInteger(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_store_shifts_tenant_id', 'store_shifts', ['tenant_id'])
    op.create_index('ix_store_shifts_store_id', 'store_shifts', ['store_id'])
    op.create_index('ix_store_shifts_user_id', 'store_shifts', ['user_id'])
    op.create_index('ix_store_shifts_status', 'store_shifts', ['status'])
    op.create_index('ix_store_shifts_store_user_status', 'store_shifts', ['store_id', 'user_id', 'status'])

    # ==========================================================================
    # 5. TRANSACTIONS
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        sa.Column('paid_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('balance_due', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='UNPAID'),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.ForeignKeyConstraint(['shift_id'], ['store_shifts.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transactions_tenant_id', 'transactions', ['tenant_id'])
    op.create_index('ix_transactions_store_id', 'transactions', ['store_id'])
    op.create_index('ix_transactions_shift_id', 'transactions', ['shift_id'])
    op.create_index('ix_transactions_customer_id', 'transactions', ['customer_id'])
    op.create_index('ix_transactions_payment_status', 'transactions', ['payment_status'])
    op.create_index('ix_transactions_tenant_status_date', 'transactions', ['tenant_id', 'payment_status', 'transaction_date'])
    op.create_index('ix_transactions_tenant_balance', 'transactions', ['tenant_id', 'balance_due'])

    op.create_table('transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.BigInteger(), nullable=False),
        sa.Column('cost_price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transaction_items_transaction_id', 'transaction_items', ['transaction_id'])
    op.create_index('ix_transaction_items_variant_id', 'transaction_items', ['variant_id'])

    op.create_table('transaction_item_stocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_item_id', sa.Integer(), nullable=False),
        sa.Column('inventory_stock_id', sa.Integer(), nullable=False),
        sa.Column('qty', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_item_id'], ['transaction_items.id']),
        sa.ForeignKeyConstraint(['inventory_stock_id'], ['inventory_stock.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transaction_item_stocks_transaction_item_id', 'transaction_item_stocks', ['transaction_item_id'])
    op.create_index('ix_transaction_item_stocks_inventory_stock_id', 'transaction_item_stocks', ['inventory_stock_id'])


def downgrade():
    op.drop_table('transaction_item_stocks')
    op.drop_table('transaction_items')
    op.drop_table('transactions')
    op.drop_table('store_shifts')
    op.drop_table('reference_sequences')
    op.drop_table('stock_batches')
    op.drop_table('inventory_logs')
    op.drop_table('inventory_stock')
    op.drop_table('price_history')
    op.drop_table('bundle_components')
    op.drop_table('product_variants')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('stores')
    op.drop_table('tenants')
