# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/preorders/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "preorders:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger maintenance:
# - python -m flask ledger recompute [--order-id 12]
#   Recompute stored totals (one order or all) and print any drift corrected.
# - python -m flask ledger repair --order-id 12
#   Rebuild item advances from payment rows, then recompute. Use after a
#   "payment recorded but ledger not fully updated" error.
# - python -m flask ledger check
#   Report orders whose stored totals differ from a fresh aggregation (no writes).

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import PreOrder
from .services import ledger_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Database ready.")


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


@click.group('ledger')
def ledger_group():
    """Order ledger inspection and repair."""


def _order_ids(order_id):
    if order_id is not None:
        return [order_id]
    return [row[0] for row in db.session.query(PreOrder.id).order_by(PreOrder.id).all()]


@ledger_group.command('recompute')
@click.option('--order-id', type=int, default=None, help='Only this pre-order')
@with_appcontext
def recompute(order_id):
    """Recompute and persist totals, printing any drift that was corrected."""
    ids = _order_ids(order_id)
    drifted = 0
    failed = 0

    for oid in ids:
        try:
            result = ledger_service.recompute_ledger(oid)
        except LedgerError as exc:
            failed += 1
            click.echo(f"FAIL order {oid}: {exc.message}", err=True)
            continue
        if result.drifted:
            drifted += 1
            for warning in result.warnings:
                click.echo(f"DRIFT {warning}")

    click.echo(f"PASS {len(ids)} order(s) recomputed, {drifted} corrected, {failed} failed.")
    if failed:
        raise SystemExit(1)


@ledger_group.command('repair')
@click.option('--order-id', type=int, required=True, help='Pre-order to rebuild')
@with_appcontext
def repair(order_id):
    """Rebuild item advances from payment rows, then recompute totals."""
    try:
        result = ledger_service.rebuild_item_advances(order_id)
    except LedgerError as exc:
        raise click.ClickException(exc.message)

    for warning in result.warnings:
        click.echo(f"FIXED {warning}")
    totals = result.totals
    click.echo(
        f"PASS order {order_id}: total {totals.total_amount} advance {totals.advance_total} "
        f"balance due {totals.balance_due} ({totals.payment_status})"
    )


@ledger_group.command('check')
@with_appcontext
def check():
    """Report stored totals that differ from a fresh aggregation (read-only)."""
    orders = db.session.query(PreOrder).order_by(PreOrder.id).all()
    mismatched = 0
    for order in orders:
        warnings = ledger_service.detect_drift(order, ledger_service.ledger_snapshot(order))
        if warnings:
            mismatched += 1
            for warning in warnings:
                click.echo(f"DRIFT {warning}")
    click.echo(f"CHECKED {len(orders)} order(s), {mismatched} with drift.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
