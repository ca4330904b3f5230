# Overview: Flask CLI commands for running and inspecting daily stock reconciliation.

# backend/gasdsr/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask dsr <command> [options]
#
# - python -m flask dsr reconcile --date 2024-03-02 --snapshot day.json [--employee-id E] [--remote URL]
#   Aggregate the snapshot, reconcile the day and roll closings into the next day.
#   With --remote (or DSR_REMOTE_URL) writes go through the offline-capable gateway.
# - python -m flask dsr sync [--remote URL]
#   Push entries saved locally while the remote was unreachable.
# - python -m flask dsr show --date 2024-03-02 [--employee-id E] [--remote URL]
#   Print the entries of one day.

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .services.persistence_gateway import HttpReconciliationStore, LocalEntryCache, PersistenceGateway
from .services.reconciliation_service import run_reconciliation
from .services.snapshot_parser import parse_snapshot
from .services.stock_entry_service import SqlReconciliationStore
from .services.stock_records import Item
from .time_utils import business_today, format_business_date, parse_business_date, shift_day


def _business_date(value):
    tz = current_app.config["DSR_TIMEZONE"]
    if not value:
        return business_today(tz)
    try:
        return parse_business_date(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--date")


def _gateway(remote_url):
    config = current_app.config
    remote = HttpReconciliationStore(remote_url, timeout=config["DSR_REMOTE_TIMEOUT"])
    cache = LocalEntryCache(config["DSR_CACHE_PATH"] or None, config["DSR_CACHE_KEY"])
    return PersistenceGateway(remote, cache)


def _entry_line(entry) -> str:
    flags = []
    if entry.opening_locked:
        flags.append("locked")
    if entry.pending_sync:
        flags.append("pending")
    return (
        f"{entry.item_name:<28} open {entry.opening_full or 0:>4}/{entry.opening_empty or 0:<4}"
        f" refill {entry.refilled:>3} gas {entry.gas_sales:>3} cyl {entry.cylinder_sales:>3}"
        f" dep {entry.deposits:>3} ret {entry.returns:>3}"
        f" close {entry.closing_full if entry.closing_full is not None else '-':>4}"
        f"/{entry.closing_empty if entry.closing_empty is not None else '-':<4}"
        + (f" [{', '.join(flags)}]" if flags else "")
    )


@click.group('dsr')
def dsr_group():
    """Daily stock reconciliation commands."""


@dsr_group.command('reconcile')
@click.option('--date', 'day', default=None, help='Business date (YYYY-MM-DD, default today)')
@click.option('--snapshot', 'snapshot_path', required=True, type=click.Path(exists=True, dir_okay=False),
              help='JSON file with items, sales, cylinderTransactions, refills, purchases, transfers')
@click.option('--employee-id', default=None, help='Employee scope (omit for admin scope)')
@click.option('--remote', 'remote_url', default=None, help='Remote DSR API base URL')
@with_appcontext
def reconcile_day(day, snapshot_path, employee_id, remote_url):
    """Reconcile one business day and roll closings forward."""
    day = _business_date(day)
    tz = current_app.config["DSR_TIMEZONE"]
    remote_url = remote_url or current_app.config["DSR_REMOTE_URL"]

    with open(snapshot_path, "r", encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except ValueError as e:
            raise click.ClickException(f"Snapshot is not valid JSON: {e}")
    if not isinstance(payload, dict):
        raise click.ClickException("Snapshot must be a JSON object")

    try:
        items = [Item.from_dict(row) for row in payload.get("items") or []]
    except ValueError as e:
        raise click.ClickException(f"Invalid item in snapshot: {e}")
    snapshot = parse_snapshot(payload, tz)

    if remote_url:
        gateway = _gateway(remote_url)
        try:
            run = run_reconciliation(gateway, day, items, snapshot, employee_id=employee_id, tz=tz)
        finally:
            gateway.remote.close()
    else:
        store = SqlReconciliationStore()
        run = run_reconciliation(store, day, items, snapshot, employee_id=employee_id, tz=tz)
        store.commit()

    click.echo(f"Reconciled {format_business_date(day)} ({'employee ' + employee_id if employee_id else 'admin'})")
    for entry in run.current:
        click.echo("  " + _entry_line(entry))
    click.echo(f"Rolled {len(run.next_day_openings)} opening(s) into {format_business_date(shift_day(run.day, 1))}")
    if run.skipped:
        click.echo(f"WARN  Skipped {run.skipped} record(s) with no identifiable item")
    for message in run.messages:
        click.echo(f"WARN  {message}")


@dsr_group.command('sync')
@click.option('--remote', 'remote_url', default=None, help='Remote DSR API base URL')
@with_appcontext
def sync_pending(remote_url):
    """Push entries saved locally while offline."""
    remote_url = remote_url or current_app.config["DSR_REMOTE_URL"]
    if not remote_url:
        raise click.ClickException("No remote configured (use --remote or DSR_REMOTE_URL)")

    gateway = _gateway(remote_url)
    try:
        report = gateway.sync_pending()
    finally:
        gateway.remote.close()

    if not report.online:
        raise click.ClickException(f"Remote unreachable, {report.remaining} entry(ies) still pending")
    click.echo(f"PASS Pushed {report.pushed}, {report.remaining} still pending")
    for rejected in report.rejected:
        click.echo(f"WARN  Rejected: {rejected}")


@dsr_group.command('show')
@click.option('--date', 'day', default=None, help='Business date (YYYY-MM-DD, default today)')
@click.option('--employee-id', default=None, help='Employee scope (omit for admin scope)')
@click.option('--remote', 'remote_url', default=None, help='Remote DSR API base URL')
@with_appcontext
def show_day(day, employee_id, remote_url):
    """Print the entries of one business day."""
    day = _business_date(day)
    remote_url = remote_url or current_app.config["DSR_REMOTE_URL"]

    if remote_url:
        gateway = _gateway(remote_url)
        try:
            entries = gateway.list_for_date(day, employee_id)
        finally:
            gateway.remote.close()
        if not gateway.online:
            click.echo("WARN  Remote unreachable, showing local mirror")
    else:
        entries = SqlReconciliationStore().list_for_date(day, employee_id)

    if not entries:
        click.echo(f"No entries for {format_business_date(day)}.")
        return
    click.echo(f"{format_business_date(day)} ({'employee ' + employee_id if employee_id else 'admin'})")
    for entry in entries:
        click.echo("  " + _entry_line(entry))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(dsr_group)
