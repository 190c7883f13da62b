# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/regcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Maintenance:
# - python -m flask maintenance cleanup-orders [--older-than-hours 24] [--event-year-id 1] [--execute]
#   Report (or with --execute delete) abandoned pending orders and release their holds.
# - python -m flask maintenance verify-balances [--event-year-id 1] [--fix]
#   Compare order balances/status/invoices with completed payments.
#
# Teams:
# - python -m flask teams sync --organization-id 1 --event-year-id 1
#   Create missing numbered teams for paid team registrations.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import CommerceError
from .services import maintenance_service, team_service
from .services.money import format_cents


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-orders')
@click.option('--older-than-hours', type=int, default=None, help='Defaults to ABANDONED_ORDER_HOURS')
@click.option('--event-year-id', type=int, default=None)
@click.option('--execute', is_flag=True, help='Delete orders (default is a dry run)')
@with_appcontext
def cleanup_orders_cli(older_than_hours, event_year_id, execute):
    """
    Find abandoned pending orders with no payment.

    Dry run unless --execute is given.
    """
    try:
        report = maintenance_service.cleanup_abandoned_orders(
            older_than_hours=older_than_hours,
            execute=execute,
            event_year_id=event_year_id,
        )
    except CommerceError as e:
        raise click.ClickException(e.message)

    label = "DRY RUN" if report["dry_run"] else "EXECUTE"
    click.echo(f"{label} {len(report['candidates'])} abandoned order(s) older than {report['older_than_hours']}h")
    for row in report["candidates"]:
        click.echo(
            f"  {row['order_number']} org={row['organization_id']} "
            f"total={format_cents(row['total_amount_cents'])} created={row['created_at']}"
        )
    if not report["dry_run"]:
        click.echo(
            f"PASS Deleted {report['deleted']} order(s), "
            f"released {report['orphan_reservations_released']} orphan hold(s)."
        )


@maintenance_group.command('verify-balances')
@click.option('--event-year-id', type=int, default=None)
@click.option('--fix', is_flag=True, help='Rewrite derived balance/status/invoice fields')
@with_appcontext
def verify_balances_cli(event_year_id, fix):
    """Check order balances against completed payments."""
    report = maintenance_service.verify_balances(event_year_id=event_year_id, fix=fix)
    click.echo(f"Checked {report['checked']} order(s).")
    if not report["discrepancies"]:
        click.echo("PASS No discrepancies found.")
        return
    for row in report["discrepancies"]:
        click.echo(
            f"  FAIL {row['order_number']}: {', '.join(row['problems'])} "
            f"(balance {format_cents(row['balance_owed_cents'])} -> "
            f"{format_cents(row['expected_balance_owed_cents'])}, "
            f"status {row['status']} -> {row['expected_status']})"
        )
    if fix:
        click.echo(f"PASS Fixed {report['fixed']} order(s).")


@click.group('teams')
def teams_group():
    """Company team commands."""


@teams_group.command('sync')
@click.option('--organization-id', type=int, required=True)
@click.option('--event-year-id', type=int, required=True)
@with_appcontext
def sync_teams_cli(organization_id, event_year_id):
    """Create missing teams for paid team registrations."""
    try:
        result = team_service.sync_teams(organization_id, event_year_id)
    except CommerceError as e:
        raise click.ClickException(e.message)
    click.echo(
        f"Purchased {result['teams_purchased']}, existing {result['existing_teams']}, "
        f"created {result['created']} {result['team_numbers']}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(maintenance_group)
    app.cli.add_command(teams_group)
