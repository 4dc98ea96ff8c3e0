# Overview: Flask CLI command groups for bootstrap, ledger verification and the sync queue.

# backend/ledgerpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Local store:
# - python -m flask db upgrade
#   Apply local schema migrations (Flask-Migrate).
# - python -m flask ledger init-db
#   DEV only: create local and remote tables directly from the models.
# - python -m flask ledger seed-demo [--no-remote]
#   Seed the demo customer, supplier, catalog and opening stock.
# - python -m flask ledger verify
#   Replay every ledger and stock history; exits 1 on any mismatch.
#
# Sync queue:
# - python -m flask sync status
# - python -m flask sync run-once
# - python -m flask sync retry-failed
# - python -m flask sync clear-synced --yes
# - python -m flask sync worker
#   Run the background worker in the foreground until Ctrl+C.

import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .core import get_core
from .extensions import db
from .services.balance_engine import STOCK_TOLERANCE_KG
from .services.seed_service import seed_demo


@click.group('ledger')
def ledger_group():
    """Local ledger bootstrap and verification commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all local and remote tables (development only; use `flask db upgrade` for the local store)."""
    db.create_all()
    click.echo("PASS Created local and remote tables")


@ledger_group.command('seed-demo')
@click.option('--no-remote', is_flag=True, help='Do not create the demo customer on the remote store')
@with_appcontext
def seed_demo_command(no_remote):
    """Seed demo master data and opening stock."""
    created = seed_demo(get_core(), with_remote=not no_remote)
    for name, count in created.items():
        click.echo(f"PASS {name}: {count} created")


@ledger_group.command('verify')
@with_appcontext
def verify_command():
    """Replay customer/supplier ledgers and stock movements against the cached values."""
    core = get_core()
    engine = core.engine
    engine.load()
    problems = 0

    for kind, parties in (("customer", core.store.list_customers()), ("supplier", core.store.list_suppliers())):
        for party in parties:
            check = engine.verify_ledger(kind, party.id)
            if check.ok:
                continue
            problems += 1
            click.echo(
                f"FAIL {kind} {party.id}: replay={check.replayed_cents} "
                f"last_balance_after={check.last_balance_after_cents} cached={check.cached_cents} "
                f"chain_ok={check.chain_ok}"
            )

    for product_id, branch_id, cached in engine.stock_levels():
        replayed = engine.recompute_stock(product_id, branch_id)
        if abs(replayed - cached) > STOCK_TOLERANCE_KG:
            problems += 1
            click.echo(f"FAIL stock {product_id}/{branch_id}: movements={replayed:.3f} cached={cached:.3f}")

    if engine.last_repairs:
        click.echo(f"WARN  {len(engine.last_repairs)} cached value(s) were repaired from the ledger at load")
    if problems:
        click.echo(f"FAIL {problems} mismatch(es) found")
        raise click.exceptions.Exit(1)
    click.echo("PASS All ledgers and stock levels reconcile")


@click.group('sync')
def sync_group():
    """Outbox queue inspection and sync commands."""


@sync_group.command('status')
@with_appcontext
def sync_status():
    core = get_core()
    counts = core.outbox.counts()
    settings = core.sync.settings
    click.echo(f"Company: {settings.company_id}  Branch: {settings.branch_id}  Enabled: {settings.enabled}")
    click.echo(
        f"PENDING {counts['PENDING']}  SYNCED {counts['SYNCED']}  FAILED {counts['FAILED']}  total {counts['total']}"
    )
    for entry in core.outbox.list_entries(status="FAILED", limit=20):
        click.echo(f"  FAILED #{entry.id} {entry.client_txn_id} attempts={entry.attempts}: {entry.last_error}")


@sync_group.command('run-once')
@with_appcontext
def sync_run_once():
    """Run one sync pass now, even if background sync is disabled."""
    report = get_core().sync.sync_pass(force=True)
    if report.skipped:
        click.echo(f"SKIP Sync pass skipped: {report.skipped}")
        return
    click.echo(
        f"PASS selected={report.selected} synced={report.synced} "
        f"already_applied={report.already_applied} failed={report.failed}"
        + (f" local_errors={report.local_errors}" if report.local_errors else "")
    )
    for txn_id, error in report.errors.items():
        click.echo(f"  FAIL {txn_id}: {error}")


@sync_group.command('retry-failed')
@with_appcontext
def sync_retry_failed():
    count = get_core().outbox.retry_failed()
    click.echo(f"PASS {count} failed row(s) returned to PENDING")


@sync_group.command('clear-synced')
@click.option('--yes', is_flag=True, help='Confirm deletion of SYNCED rows')
@with_appcontext
def sync_clear_synced(yes):
    if not yes:
        click.echo("Refusing to delete without --yes")
        return
    count = get_core().outbox.clear_synced()
    click.echo(f"PASS Deleted {count} synced row(s)")


@sync_group.command('worker')
@with_appcontext
def sync_worker():
    """Run the background sync worker until interrupted."""
    from .services.sync_service import SyncWorker

    core = get_core()
    worker = core.worker or SyncWorker(current_app._get_current_object(), core.sync)
    core.worker = worker
    worker.start()
    click.echo("Sync worker running; press Ctrl+C to stop")
    try:
        while worker.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        click.echo("Stopping sync worker...")
    finally:
        worker.stop()


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
    app.cli.add_command(sync_group)
