# Overview: Flask CLI command groups for tenant bootstrap, accounting setup and tail replay.

# backend/mtpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
#   List all tenants.
# - python -m flask tenants create --name "Corner Shop" --code "CORNER" [--business-name "Corner Shop Ltd"]
#   Create a tenant with its document counter and default chart of accounts.
#
# Chart of accounts:
# - python -m flask coa seed --tenant-id 1
#   Seed the default accounts for a tenant that has none.
# - python -m flask coa list --tenant-id 1
#   List a tenant's accounts.
#
# Invoices:
# - python -m flask invoices replay-tail 42 --tenant-id 1
#   Re-run loyalty / accounting / VAT / receipt for an invoice; finished steps are skipped.
# - python -m flask invoices pending-tail --tenant-id 1
#   List invoices whose tail has not reached VAT_AGGREGATED.

import click
from flask.cli import with_appcontext

from .errors import TransactionError
from .extensions import db
from .models import Account, Invoice, Tenant
from .services import tenant_service
from .services.coa_service import seed_default_coa
from .services.concurrency import run_transaction
from .services.deferred_service import run_invoice_tail


@click.group('system')
def system_group():
    """System maintenance commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' to add a tenant.")


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

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Accounts'}")
    click.echo("="*80)

    for tenant in tenants:
        account_count = db.session.query(Account).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str:<8} {account_count}")

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', help='Short code (unique)')
@click.option('--business-name', help='Name printed on receipts')
@with_appcontext
def create_tenant_cli(name, code, business_name):
    """Create a tenant with counter and default chart of accounts."""
    try:
        tenant = tenant_service.create_tenant(name=name, code=code, business_name=business_name)
    except TransactionError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code or '-'})")


@click.group('coa')
def coa_group():
    """Chart of accounts commands."""


@coa_group.command('seed')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def seed_coa_cli(tenant_id):
    """Seed the default chart of accounts (no-op if the tenant already has one)."""
    if not db.session.get(Tenant, tenant_id):
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    created = run_transaction(lambda: seed_default_coa(tenant_id))
    if created:
        click.echo(f"PASS Created {created} accounts for tenant {tenant_id}")
    else:
        click.echo(f"SKIP Tenant {tenant_id} already has a chart of accounts")


@coa_group.command('list')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def list_coa_cli(tenant_id):
    accounts = db.session.query(Account).filter_by(tenant_id=tenant_id).order_by(Account.id.asc()).all()
    if not accounts:
        click.echo("No accounts found.")
        return
    for account in accounts:
        click.echo(f"{account.id:<5} {account.name:<30} {account.type}")


@click.group('invoices')
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command('replay-tail')
@click.argument('invoice_id', type=int)
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def replay_tail_cli(invoice_id, tenant_id):
    """Re-run the deferred tail for one invoice."""
    invoice = db.session.query(Invoice).filter_by(id=invoice_id, tenant_id=tenant_id).first()
    if not invoice:
        click.echo(f"FAIL Invoice {invoice_id} not found for tenant {tenant_id}")
        return

    outcome = run_invoice_tail(tenant_id, invoice_id)
    for step, result in outcome.items():
        click.echo(f"{step:<12} {result}")

    if "failed" in outcome.values():
        click.echo(f"FAIL Tail incomplete for invoice {invoice_id}")
    else:
        click.echo(f"PASS Tail complete for invoice {invoice_id}")


@invoices_group.command('pending-tail')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def pending_tail_cli(tenant_id, limit):
    invoices = (
        db.session.query(Invoice)
        .filter(Invoice.tenant_id == tenant_id, Invoice.status != "VAT_AGGREGATED")
        .order_by(Invoice.id.asc())
        .limit(limit)
        .all()
    )
    if not invoices:
        click.echo("No pending invoices.")
        return
    for invoice in invoices:
        click.echo(f"{invoice.id:<6} {invoice.invoice_number:<16} {invoice.status:<18} {invoice.tail_error or ''}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(coa_group)
    app.cli.add_command(invoices_group)
