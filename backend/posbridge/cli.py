# Overview: Flask CLI command groups for the upstream token, sync jobs, scheduler and schema bootstrap.

# backend/posbridge/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Upstream credential:
# - python -m flask upstream refresh-token
#   Fetch a new bearer token and store it (exit 0 on success, 1 on failure).
#   Also available as the console script `posbridge-refresh-token`.
# - python -m flask upstream token-status
#   Show whether a token is stored, its storage form, and whether it expired.
#
# Sync jobs:
# - python -m flask sync products | customers | categories | pricebooks
# - python -m flask sync invoices-day --date 2024-03-15
# - python -m flask sync invoices-month --year 2024 --month 2
# - python -m flask sync invoice HD000123
# - python -m flask sync purchase-orders [--from 01/01/2024 --to 03/31/2024]
# - python -m flask sync all
#   Run the daily sweep now (stops at the first job that aborts).
#
# Scheduler:
# - python -m flask scheduler run
#   Run the 01:00/02:00/03:00 schedule in the foreground until interrupted.
#
# System:
# - python -m flask system init-db
#   DEV/TEST only: create all tables without migrations.

import json
import sys
import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .config import ConfigurationError, validate_required
from .extensions import db
from .services import (
    category_sync_service,
    credential_service,
    customer_sync_service,
    invoice_sync_service,
    pricebook_sync_service,
    product_sync_service,
    purchase_order_sync_service,
    scheduler_service,
)
from .services.sync_service import SyncSummary, SyncValidationError
from .services.upstream_client import build_client
from .services.upstream_errors import UpstreamError
from .time_utils import today_in


def _echo_summary(summary: SyncSummary) -> None:
    prefix = "PASS" if summary.ok else "FAIL"
    click.echo(f"{prefix} {summary.job}: {summary.message}")
    for message in summary.errors:
        click.echo(f"   - {message}")


def _run_job(job, *args) -> None:
    try:
        summary = job(*args)
    except SyncValidationError as e:
        raise click.BadParameter(str(e))
    _echo_summary(summary)
    if not summary.ok:
        sys.exit(1)


@click.group('upstream')
def upstream_group():
    """Upstream POS credential commands."""


def refresh_token() -> bool:
    """Refresh and store the upstream token; True on success."""
    try:
        validate_required(current_app.config, (
            "UPSTREAM_BASE_URL",
            "UPSTREAM_CLIENT_ID",
            "UPSTREAM_CLIENT_SECRET",
        ))
        stored = build_client().refresh()
    except (ConfigurationError, UpstreamError) as e:
        click.echo(f"FAIL Token refresh failed: {e}", err=True)
        return False
    click.echo(f"PASS Token refreshed (expires_at={stored.to_dict()['expires_at']})")
    return True


@upstream_group.command('refresh-token')
@with_appcontext
def refresh_token_command():
    """Fetch a new bearer token from the upstream token endpoint."""
    sys.exit(0 if refresh_token() else 1)


@upstream_group.command('token-status')
@with_appcontext
def token_status_command():
    """Show the stored token's form and expiry (never the token itself)."""
    status = credential_service.status()
    if not status["stored"]:
        click.echo(f"WARN No usable token: {status['reason']}")
        return
    state = "EXPIRED" if status["expired"] else "valid"
    click.echo(f"Token form: {status['form']}")
    click.echo(f"Expires at: {status['expires_at'] or 'unknown'}")
    click.echo(f"State:      {state}")


@click.group('sync')
def sync_group():
    """Run upstream sync jobs once."""


@sync_group.command('products')
@with_appcontext
def sync_products_command():
    _run_job(product_sync_service.sync_products)


@sync_group.command('customers')
@with_appcontext
def sync_customers_command():
    _run_job(customer_sync_service.sync_customers)


@sync_group.command('categories')
@with_appcontext
def sync_categories_command():
    _run_job(category_sync_service.sync_categories)


@sync_group.command('pricebooks')
@with_appcontext
def sync_pricebooks_command():
    _run_job(pricebook_sync_service.sync_pricebooks)


@sync_group.command('invoices-day')
@click.option('--date', 'day', type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help='YYYY-MM-DD (default: today)')
@with_appcontext
def sync_invoices_day_command(day):
    if day is None:
        target = today_in(current_app.config["SCHEDULER_TIMEZONE"])
    else:
        target = day.date()
    _run_job(invoice_sync_service.sync_invoices_by_day, target.year, target.month, target.day)


@sync_group.command('invoices-month')
@click.option('--year', type=int, required=True)
@click.option('--month', type=int, required=True)
@with_appcontext
def sync_invoices_month_command(year, month):
    _run_job(invoice_sync_service.sync_invoices_by_month, year, month)


@sync_group.command('invoice')
@click.argument('code')
@with_appcontext
def sync_invoice_command(code):
    """Sync one invoice by its upstream code."""
    _run_job(invoice_sync_service.sync_invoice_by_code, code)


@sync_group.command('purchase-orders')
@click.option('--from', 'from_date', default=None, help='MM/DD/YYYY')
@click.option('--to', 'to_date', default=None, help='MM/DD/YYYY')
@with_appcontext
def sync_purchase_orders_command(from_date, to_date):
    """Completed purchase orders; defaults to the trailing three months."""
    if not from_date and not to_date:
        from_date, to_date = purchase_order_sync_service.recent_range()
    elif not from_date or not to_date:
        raise click.UsageError("--from and --to must be given together")
    _run_job(purchase_order_sync_service.sync_purchase_orders, from_date, to_date)


@sync_group.command('all')
@click.option('--json', 'as_json', is_flag=True, help='Print the sweep result as JSON')
@with_appcontext
def sync_all_command(as_json):
    """Run the daily sweep now."""
    result = scheduler_service.run_sweep()
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        for _, summary in result.steps:
            _echo_summary(summary)
        if result.stopped_at:
            click.echo(f"WARN Sweep stopped at {result.stopped_at}")
    if not result.ok:
        sys.exit(1)


@click.group('scheduler')
def scheduler_group():
    """In-process job scheduler."""


@scheduler_group.command('run')
@with_appcontext
def scheduler_run_command():
    """Run the schedule in the foreground until Ctrl+C."""
    app = current_app._get_current_object()
    try:
        validate_required(app.config)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    scheduler = scheduler_service.SyncScheduler(app)
    scheduler.start()
    click.echo(f"PASS Scheduler running (timezone={scheduler.timezone}); press Ctrl+C to stop")
    for job in scheduler.scheduler.get_jobs():
        click.echo(f"   {job.id}: next run {job.next_run_time}")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        click.echo("\nStopping scheduler...")
    finally:
        scheduler.shutdown()


@click.group('system')
def system_group():
    """Schema bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_command():
    """
    DEV/TEST only: create every mirror table directly.

    Production databases are managed with `flask db upgrade`.
    """
    db.create_all()
    click.echo(f"PASS Created tables: {', '.join(sorted(db.metadata.tables))}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(upstream_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(scheduler_group)
    app.cli.add_command(system_group)


def refresh_token_main() -> None:
    """Console entry point: refresh the token outside the Flask CLI."""
    from . import create_app

    app = create_app()
    with app.app_context():
        ok = refresh_token()
    sys.exit(0 if ok else 1)
