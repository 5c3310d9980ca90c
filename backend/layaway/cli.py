# Overview: Flask CLI command groups for bootstrap and deposit order maintenance.

# backend/layaway/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Deposit orders:
# - python -m flask deposits expire-overdue [--dry-run]
#   Expire active orders whose pickup date is overdue (DEPOSIT_EXPIRY_OVERDUE_DAYS).
# - python -m flask deposits stats
#   Per-status order counts and money held in active orders.

import click
from flask import current_app
from flask.cli import with_appcontext

from .config import DepositPolicy
from .extensions import db
from .services import deposit_service, maintenance_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database initialized.")


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


@click.group('deposits')
def deposits_group():
    """Deposit order maintenance commands."""


@deposits_group.command('expire-overdue')
@click.option('--dry-run', is_flag=True, help='List overdue orders without expiring them')
@with_appcontext
def expire_overdue_cli(dry_run):
    """
    Expire active orders whose pickup is overdue.

    An order is overdue when its expected pickup date is more than
    DEPOSIT_EXPIRY_OVERDUE_DAYS in the past and no payment arrived in that window.
    """
    policy = DepositPolicy.from_config(current_app.config)
    result = maintenance_service.expire_overdue_orders(policy, dry_run=dry_run)

    verb = "Would expire" if dry_run else "Expired"
    for entry in result["expired"]:
        refund = entry.get("refund_due_cents")
        suffix = f" (refund due {refund} cents)" if refund else ""
        click.echo(f"  {verb} {entry['document_number']}{suffix}")
    for entry in result["skipped"]:
        click.echo(f"  SKIP {entry['document_number']}: {entry['reason']}")

    if not dry_run and result["expired"]:
        current_app.logger.info("Expiry sweep expired %d deposit orders", len(result["expired"]))
    click.echo(f"PASS {verb} {len(result['expired'])} order(s), skipped {len(result['skipped'])}.")


@deposits_group.command('stats')
@with_appcontext
def stats_cli():
    """Show deposit order counts and active balances."""
    stats = deposit_service.get_order_stats()
    click.echo("\nDeposit orders:")
    click.echo("-" * 40)
    for status, count in stats["counts"].items():
        click.echo(f"  {status:<12} {count:>6}")
    click.echo("-" * 40)
    click.echo(f"  Active value:       {stats['active_total_value_cents']:>12} cents")
    click.echo(f"  Active paid:        {stats['active_total_paid_cents']:>12} cents")
    click.echo(f"  Active balance due: {stats['active_balance_due_cents']:>12} cents")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(deposits_group)
