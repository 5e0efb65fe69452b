# Overview: Flask CLI command groups for bootstrap, tenant provisioning and reference data maintenance.

# backend/repairdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to the package (PowerShell: $env:FLASK_APP="repairdesk").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"] [--org-code CODE]
#   Idempotent bootstrap: default organization, core currencies, per-org defaults.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
#   List all organizations with their currency / tax rate counts.
# - python -m flask orgs create --name "Acme Repairs" --code "ACME" [--email .. --phone .. --address ..]
#   Create a new organization (tenant) and provision its defaults.
#
# Reference data maintenance:
# - python -m flask currencies backfill [--org-id 1]
#   Ensure every organization (or one) has currencies and tax rates.
# - python -m flask currencies normalize-codes
#   One-time rewrite of namespaced codes (USD_5, USD_CORE) into per-scope codes.
# - python -m flask documents migrate-snapshots
#   One-time conversion of legacy item-id lists into item snapshots.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Currency, Organization, TaxRate
from .services.backfill_service import (
    backfill_all_organizations,
    ensure_defaults,
    normalize_legacy_currency_codes,
)
from .services.currency_service import ensure_core_currencies
from .services.document_service import migrate_legacy_snapshots


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Initialize the system: organization, core currencies and per-org defaults.

    MULTI-TENANT: Creates a default organization as the tenant root when none
    exists. Safe to run repeatedly.
    """
    click.echo("START Initializing repairdesk...")

    org = db.session.query(Organization).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created default organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    added = ensure_core_currencies()
    click.echo(f"PASS Core currencies ready ({added} added)")

    report = backfill_all_organizations()
    _echo_report(report)
    click.echo("DONE System initialization complete")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Currencies':<11} {'Tax rates'}")
    click.echo("="*80)

    for org in orgs:
        currency_count = db.session.query(Currency).filter_by(organization_id=org.id).count()
        tax_count = db.session.query(TaxRate).filter_by(organization_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"

        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {currency_count:<11} {tax_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--email', default=None, help='Business email printed on documents')
@click.option('--phone', default=None, help='Business phone printed on documents')
@click.option('--address', default=None, help='Business address printed on documents')
@with_appcontext
def create_org_cli(name, code, email, phone, address):
    """Create a new organization (tenant) with default currencies and tax rates."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, email=email, phone=phone, address=address, is_active=True)
    db.session.add(org)
    db.session.commit()

    result = ensure_defaults(org.id)
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    click.echo(f"PASS Provisioned {result.currencies_added} currencies, {result.tax_rates_added} tax rates")


@click.group('currencies')
def currencies_group():
    """Currency and tax rate reference data maintenance."""


def _echo_report(report) -> None:
    if report.core_error:
        click.echo(f"FAIL Core currencies: {report.core_error}")
    for result in report.results:
        if result.changed:
            click.echo(
                f"PASS Org {result.org_id}: added {result.currencies_added} currencies, "
                f"{result.tax_rates_added} tax rates"
            )
        else:
            click.echo(f"SKIP Org {result.org_id}: already provisioned")
    for org_id, error in report.failures.items():
        click.echo(f"FAIL Org {org_id}: {error}")


@currencies_group.command('backfill')
@click.option('--org-id', type=int, default=None, help='Only backfill this organization')
@with_appcontext
def backfill_cli(org_id):
    """Ensure organizations have default currencies and tax rates (idempotent)."""
    report = backfill_all_organizations(org_id=org_id)
    _echo_report(report)
    if not report.ok:
        raise SystemExit(1)


@currencies_group.command('normalize-codes')
@with_appcontext
def normalize_codes_cli():
    """Rewrite namespaced currency codes into the per-scope model."""
    summary = normalize_legacy_currency_codes()
    click.echo(f"PASS Renamed {summary['renamed']} currencies, updated {summary['documents_updated']} documents")
    for code in summary["skipped"]:
        click.echo(f"SKIP {code}: target code already exists in its scope")


@click.group('documents')
def documents_group():
    """Quote and invoice maintenance."""


@documents_group.command('migrate-snapshots')
@with_appcontext
def migrate_snapshots_cli():
    """Convert legacy item-id lists on quotes and invoices into item snapshots."""
    converted = migrate_legacy_snapshots()
    click.echo(f"PASS Converted {converted} documents")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(currencies_group)
    app.cli.add_command(documents_group)
