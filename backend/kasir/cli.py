# Overview: Flask CLI command groups for bootstrap, tenant setup, and stock inspection.

# backend/kasir/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "kasir:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
#   List all tenants with store counts.
# - python -m flask tenants create --name "Toko Maju" --code "MAJU"
#   Create a tenant.
# - python -m flask tenants add-store --tenant-id 1 --name "Gudang" --code "GDG" --tax-rate-bps 1100
#   Add a store to a tenant.
#
# Stock inspection:
# - python -m flask inventory low-stock --tenant-id 1 --store-id 1 [--threshold 10]
#   Stock rows at or below the threshold.
# - python -m flask inventory sellable --tenant-id 1 --store-id 1 --variant-id 5
#   Units sellable right now (bundles use the bottleneck component).

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import DomainError
from .models import Tenant, Store
from .services import inventory_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Stores'}")
    click.echo("="*70)

    for tenant in tenants:
        store_count = db.session.query(Store).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str:<8} {store_count}")

    click.echo("="*70 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant_cli(name, code):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        return

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


@tenants_group.command('add-store')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--name', required=True, help='Store name')
@click.option('--code', help='Store code (unique within tenant)')
@click.option('--tax-rate-bps', type=int, default=0, show_default=True, help='Tax rate in basis points')
@with_appcontext
def add_store_cli(tenant_id, name, code, tax_rate_bps):
    """Add a store to a tenant."""
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant:
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    existing = db.session.query(Store).filter_by(tenant_id=tenant_id, name=name).first()
    if existing:
        click.echo(f"FAIL Store '{name}' already exists in this tenant")
        return

    store = Store(tenant_id=tenant_id, name=name, code=code, tax_rate_bps=tax_rate_bps)
    db.session.add(store)
    db.session.commit()

    click.echo(f"PASS Created store: {store.name} (ID: {store.id}) in tenant '{tenant.name}'")


@click.group('inventory')
def inventory_group():
    """Stock inspection commands."""


@inventory_group.command('low-stock')
@click.option('--tenant-id', type=int, required=True)
@click.option('--store-id', type=int, required=True)
@click.option('--threshold', type=int, default=None, help='Defaults to LOW_STOCK_DEFAULT_THRESHOLD')
@with_appcontext
def low_stock_cli(tenant_id, store_id, threshold):
    """List stock rows at or below the threshold."""
    try:
        result = inventory_service.find_low_stock(
            tenant_id=tenant_id,
            store_id=store_id,
            threshold=threshold,
            page=1,
            per_page=100,
        )
    except DomainError as e:
        raise click.ClickException(str(e))

    rows = result["items"]
    if not rows:
        click.echo(f"No stock at or below {result['threshold']}.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'Stock':<7} {'SKU':<20} {'Variant':<30} {'Qty'}")
    click.echo("="*70)
    for row in rows:
        click.echo(f"{row['id']:<7} {row['sku']:<20} {row['variant_name'][:30]:<30} {row['stock_qty']}")
    click.echo("="*70 + "\n")


@inventory_group.command('sellable')
@click.option('--tenant-id', type=int, required=True)
@click.option('--store-id', type=int, required=True)
@click.option('--variant-id', type=int, required=True)
@with_appcontext
def sellable_cli(tenant_id, store_id, variant_id):
    """Show how many units of a variant can be sold now."""
    try:
        result = inventory_service.get_sellable_quantity(
            tenant_id=tenant_id,
            variant_id=variant_id,
            store_id=store_id,
        )
    except DomainError as e:
        raise click.ClickException(str(e))

    if not result["tracked"]:
        click.echo(f"Variant {variant_id} is not stock tracked")
        return
    click.echo(f"Variant {variant_id} @ store {store_id}: {result['sellable_qty']} sellable")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(inventory_group)
