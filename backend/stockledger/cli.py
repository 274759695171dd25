# Overview: Flask CLI command groups for bootstrap, unit issuing, ledger inspection and audits.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app stockledger.wsgi <group> <command> [options]
#
# Database:
# - flask db-admin init
#   Create all tables (dev/test; production uses `flask db upgrade`).
#
# Units:
# - flask units create --company-id 1 --product-id 7 --quantity 5 --user-id 1
#   Issue 5 barcoded units and record the stock IN.
# - flask units dates --company-id 1
#   Days on which units were created, with counts.
#
# Ledger:
# - flask movements list --company-id 1 [--product-id 7] [--type OUT] [--page 2]
#   Movements newest-first.
#
# Audit:
# - flask inventory check [--company-id 1]
#   Verify stock counters against the ledger and the unit registry.
#   Exits with status 1 when violations are found.

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from .errors import EngineError
from .extensions import db
from .services import invariant_service, movement_service, unit_service
from .time_utils import to_utc_z


@click.group('db-admin')
def db_admin_group():
    """Database bootstrap commands."""


@db_admin_group.command('init')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Tables created")


@click.group('units')
def units_group():
    """Barcoded unit registry commands."""


@units_group.command('create')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--quantity', type=int, required=True, help='Number of units to issue')
@click.option('--user-id', type=int, required=True, help='Acting user ID')
@with_appcontext
def create_units_cli(company_id, product_id, quantity, user_id):
    """Issue barcoded units for a product."""
    try:
        units = unit_service.create_units(
            db.session,
            company_id=company_id,
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
        )
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    except SQLAlchemyError:
        current_app.logger.exception("Unit creation failed for product %s", product_id)
        click.echo("FAIL Database error while creating units (see log)")
        raise SystemExit(1)

    click.echo(f"PASS Created {len(units)} unit(s)")
    for unit in units:
        click.echo(f"  {unit.id:<6} {unit.barcode}")


@units_group.command('dates')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def unit_dates_cli(company_id):
    """List days on which units were created."""
    rows = unit_service.list_unit_creation_dates(db.session, company_id)
    if not rows:
        click.echo("No units found.")
        return
    for row in rows:
        click.echo(f"{row['date'].isoformat()}  {row['count']}")


@click.group('movements')
def movements_group():
    """Stock ledger inspection commands."""


@movements_group.command('list')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--product-id', type=int, default=None, help='Filter by product')
@click.option('--type', 'movement_type', type=click.Choice(['IN', 'OUT'], case_sensitive=False), default=None)
@click.option('--page', type=int, default=1, show_default=True)
@click.option('--limit', type=int, default=None, help='Page size')
@with_appcontext
def list_movements_cli(company_id, product_id, movement_type, page, limit):
    """List movements newest-first."""
    try:
        result = movement_service.list_movements(
            db.session,
            company_id,
            product_id=product_id,
            type=movement_type,
            page=page,
            limit=limit,
        )
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    if not result.items:
        click.echo("No movements found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Product':<8} {'Type':<5} {'Quantity':>10}  {'When':<21} {'Reason'}")
    click.echo("="*80)
    for m in result.items:
        click.echo(
            f"{m.id:<6} {m.product_id:<8} {m.type:<5} {str(m.quantity):>10}  "
            f"{to_utc_z(m.created_at) or '-':<21} {m.reason or ''}"
        )
    click.echo("="*80)
    click.echo(f"Page {result.page}/{max(result.total_pages, 1)} ({result.total} total)\n")


@click.group('inventory')
def inventory_group():
    """Inventory audit commands."""


@inventory_group.command('check')
@click.option('--company-id', type=int, default=None, help='Limit to one company')
@with_appcontext
def check_inventory_cli(company_id):
    """Verify stock invariants."""
    violations = invariant_service.check_invariants(db.session, company_id=company_id)
    if not violations:
        click.echo("PASS All stock invariants hold")
        return

    for violation in violations:
        click.echo(f"FAIL {violation}")
    click.echo(f"\n{len(violations)} violation(s) found")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(db_admin_group)
    app.cli.add_command(units_group)
    app.cli.add_command(movements_group)
    app.cli.add_command(inventory_group)
